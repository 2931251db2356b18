"""Validation utilities for applicant and offer data."""

import re
from typing import Optional
from email_validator import validate_email as _validate_email, EmailNotValidError

# Loose address check used for optional contact emails on an offer
SIMPLE_EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
NATIONAL_ID_PATTERN = re.compile(r'^\d{13}$')

CV_CONTENT_TYPES = {
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
}


def validate_email(email: str) -> tuple[bool, Optional[str]]:
    """
    Validate email address format.

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, normalized_email or error_message)
    """
    try:
        validation = _validate_email(email, check_deliverability=False)
        return True, validation.normalized
    except EmailNotValidError as e:
        return False, str(e)


def is_simple_email(email: str) -> bool:
    return bool(SIMPLE_EMAIL_PATTERN.match(email or ''))


def normalize_national_id(national_id: str) -> str:
    """Strip dashes and surrounding whitespace."""
    return (national_id or '').replace('-', '').strip()


def validate_national_id(national_id: str) -> tuple[bool, Optional[str]]:
    """
    Validate a 13-digit national ID (dashes allowed).

    Returns:
        Tuple of (is_valid, normalized_id or error_message)
    """
    cleaned = normalize_national_id(national_id)
    if not NATIONAL_ID_PATTERN.match(cleaned):
        return False, "National ID must be 13 digits"
    return True, cleaned


def validate_phone(phone: str) -> tuple[bool, Optional[str]]:
    """
    Validate phone number format (basic validation).

    Args:
        phone: Phone number to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not phone:
        return False, "Phone number is required"

    digits = re.findall(r'\d', re.sub(r'[\s\-\(\)\.]', '', phone))
    if len(digits) < 7 or len(digits) > 15:
        return False, "Phone number must be between 7 and 15 digits"

    return True, None


def validate_cv_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
    max_bytes: int,
) -> tuple[bool, Optional[str]]:
    """
    Accept PDF or DOCX files up to ``max_bytes``.

    Returns:
        Tuple of (is_valid, file extension or error_message)
    """
    extension = CV_CONTENT_TYPES.get(content_type or '')
    if extension is None and filename:
        lowered = filename.lower()
        extension = next((ext for ext in CV_CONTENT_TYPES.values() if lowered.endswith(ext)), None)
    if extension is None:
        return False, "CV must be a PDF or DOCX file"
    if size > max_bytes:
        return False, f"CV must be at most {max_bytes // (1024 * 1024)} MB"
    return True, extension


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename by removing dangerous characters.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename
    """
    sanitized = re.sub(r'[<>:"/\\|?*\x00-\x1f]', '', filename)
    sanitized = sanitized.replace(' ', '_')

    if len(sanitized) > 255:
        name, ext = sanitized.rsplit('.', 1) if '.' in sanitized else (sanitized, '')
        sanitized = name[:250] + ('.' + ext if ext else '')

    return sanitized
