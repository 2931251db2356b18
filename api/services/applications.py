"""Public application intake."""

from decimal import Decimal
from typing import Any, Dict, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.storage.local import LocalStorage
from core.utils.validators import (
    sanitize_filename,
    validate_cv_upload,
    validate_email,
    validate_phone,
)
from database.models.candidates import Candidate, CandidateStatus
from api.services.candidates import candidate_to_dict

logger = logging.getLogger(__name__)


async def create_application(
    db: AsyncSession,
    storage: LocalStorage,
    first_name: str,
    last_name: str,
    email: str,
    position_applied: str,
    years_of_experience: Decimal,
    phone_number: Optional[str] = None,
    current_position: Optional[str] = None,
    current_employer: Optional[str] = None,
    education_level: Optional[str] = None,
    institution: Optional[str] = None,
    message: Optional[str] = None,
    cv_filename: Optional[str] = None,
    cv_content_type: Optional[str] = None,
    cv_data: Optional[bytes] = None,
) -> Dict[str, Any]:
    """
    Create a candidate in status ``new`` from the public form.

    The CV, when given, is stored before the candidate row is written.

    Returns:
        Result dict with the created candidate
    """
    ok, normalized = validate_email(email)
    if not ok:
        return {"success": False, "error": f"Invalid email address: {normalized}"}

    if years_of_experience is not None and years_of_experience < 0:
        return {"success": False, "error": "years_of_experience must not be negative"}

    phone_number = (phone_number or "").strip() or None
    if phone_number:
        ok, error = validate_phone(phone_number)
        if not ok:
            return {"success": False, "error": error}

    cv_file_url = None
    cv_file_name = None
    if cv_data:
        ok, extension = validate_cv_upload(
            cv_filename, cv_content_type, len(cv_data), settings.cv_max_bytes
        )
        if not ok:
            return {"success": False, "error": extension}
        cv_file_url = storage.save_with_uuid(settings.cv_bucket, cv_data, extension)
        cv_file_name = sanitize_filename(cv_filename or f"cv{extension}")

    candidate = Candidate(
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=normalized.lower(),
        phone_number=phone_number,
        position_applied=position_applied.strip(),
        years_of_experience=years_of_experience,
        current_position=current_position or None,
        current_employer=current_employer or None,
        education_level=education_level or None,
        institution=institution or None,
        message=message or None,
        cv_file_url=cv_file_url,
        cv_file_name=cv_file_name,
        status=CandidateStatus.NEW,
    )
    db.add(candidate)
    await db.commit()

    logger.info(f"Application received: candidate {candidate.id} for {candidate.position_applied}")
    return {"success": True, "candidate": candidate_to_dict(candidate)}
