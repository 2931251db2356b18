"""
Public application endpoint.

The only unauthenticated write: applicants submit the form with an optional CV.
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import raise_for_result
from core.storage.local import LocalStorage, get_storage
from database.engine import get_db
from api.services import applications as application_service

router = APIRouter(prefix="/applications", tags=["applications"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Submit Application",
    description="Public application form. CV must be PDF or DOCX, at most 10 MB.",
)
async def submit_application(
    first_name: str = Form(..., min_length=1, max_length=100),
    last_name: str = Form(..., min_length=1, max_length=100),
    email: str = Form(..., max_length=255),
    position_applied: str = Form(..., min_length=1, max_length=200),
    years_of_experience: Decimal = Form(..., ge=0),
    phone_number: Optional[str] = Form(None, max_length=50),
    current_position: Optional[str] = Form(None, max_length=200),
    current_employer: Optional[str] = Form(None, max_length=200),
    education_level: Optional[str] = Form(None, max_length=100),
    institution: Optional[str] = Form(None, max_length=200),
    message: Optional[str] = Form(None),
    cv: Optional[UploadFile] = File(None, description="CV file"),
    db: AsyncSession = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
):
    """Create a candidate in status new."""
    cv_data = await cv.read() if cv is not None else None
    result = await application_service.create_application(
        db,
        storage,
        first_name=first_name,
        last_name=last_name,
        email=email,
        position_applied=position_applied,
        years_of_experience=years_of_experience,
        phone_number=phone_number,
        current_position=current_position,
        current_employer=current_employer,
        education_level=education_level,
        institution=institution,
        message=message,
        cv_filename=cv.filename if cv is not None else None,
        cv_content_type=cv.content_type if cv is not None else None,
        cv_data=cv_data,
    )
    return raise_for_result(result, "Failed to submit application")
