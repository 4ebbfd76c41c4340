"""
Application Routes — Submission and public status lookup.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from licensing.clock import Clock, get_clock
from licensing.database import get_db
from licensing.schemas.schemas import (
    ApplicationCreateRequest, ApplicationCreateResponse, ApplicationStatusResponse,
)
from licensing.services.application_service import ApplicationService

router = APIRouter(prefix="/api/applications", tags=["Applications"])


@router.post("", response_model=ApplicationCreateResponse, status_code=201)
def submit_application(
    payload: ApplicationCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Register a licence application."""
    application = ApplicationService(db, clock=clock).submit(
        position_type=payload.position_type,
        applicant_name=payload.applicant_name,
        applicant_email=payload.applicant_email,
        applicant_phone=payload.applicant_phone,
        request_ip=request.client.host if request.client else None,
    )
    return ApplicationCreateResponse(
        application_id=application.id,
        application_number=application.application_number,
        status=application.status,
    )


@router.get("/{application_id}/status", response_model=ApplicationStatusResponse)
def get_application_status(
    application_id: int,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Current status, stage timeline and next action for an application."""
    view = ApplicationService(db, clock=clock).get_status(application_id)
    return ApplicationStatusResponse.model_validate(view, from_attributes=True)
