"""
Workflow Routes — Officer queues, signature OTP, approval and rejection.
One set of routes serves every review stage.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from licensing.clock import Clock, get_clock
from licensing.database import get_db
from licensing.models.enums import PositionType, Stage
from licensing.routes.responses import result_response
from licensing.schemas.schemas import (
    ActionResponse, ApplicationSummaryResponse, GenerateOtpResponse,
    RejectRequest, VerifyAndSignRequest,
)
from licensing.services.auth_service import get_current_caller
from licensing.services.certificate_service import CertificateService
from licensing.services.document_store import DocumentStore, get_document_store
from licensing.services.notification_service import NotificationService, get_notifier
from licensing.services.state_machine import Caller
from licensing.services.workflow_service import StageWorkflowCoordinator, coordinator_for

router = APIRouter(prefix="/api/workflow", tags=["Workflow"])


def get_coordinator(
    stage: Stage,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: NotificationService = Depends(get_notifier),
    store: DocumentStore = Depends(get_document_store),
) -> StageWorkflowCoordinator:
    return coordinator_for(
        stage, db,
        clock=clock,
        notifier=notifier,
        certificates=CertificateService(db, store=store, clock=clock),
    )


@router.get("/{stage}/pending", response_model=list[ApplicationSummaryResponse])
def list_pending(
    position_type: Optional[PositionType] = None,
    caller: Caller = Depends(get_current_caller),
    coordinator: StageWorkflowCoordinator = Depends(get_coordinator),
):
    """Applications awaiting the caller at this stage."""
    return coordinator.list_pending(caller, position_type)


@router.get("/{stage}/completed", response_model=list[ApplicationSummaryResponse])
def list_completed(
    position_type: Optional[PositionType] = None,
    caller: Caller = Depends(get_current_caller),
    coordinator: StageWorkflowCoordinator = Depends(get_coordinator),
):
    """Applications the caller has approved or rejected at this stage."""
    return coordinator.list_completed(caller, position_type)


@router.post("/{stage}/{application_id}/generate-otp", response_model=GenerateOtpResponse)
def generate_otp(
    application_id: int,
    request: Request,
    caller: Caller = Depends(get_current_caller),
    coordinator: StageWorkflowCoordinator = Depends(get_coordinator),
):
    """Send the caller a signature OTP for this application."""
    handle = coordinator.generate_otp(
        application_id, caller,
        request_ip=request.client.host if request.client else None,
    )
    return result_response(GenerateOtpResponse(
        success=handle.sent,
        message=handle.message,
        code=handle.code,
        expires_at=handle.expires_at,
        otp=handle.otp,
    ))


@router.post("/{stage}/{application_id}/verify-and-sign", response_model=ActionResponse)
def verify_and_sign(
    application_id: int,
    payload: VerifyAndSignRequest,
    request: Request,
    caller: Caller = Depends(get_current_caller),
    coordinator: StageWorkflowCoordinator = Depends(get_coordinator),
):
    """Verify the signature OTP and approve the application at this stage."""
    result = coordinator.verify_and_sign(
        application_id, caller,
        otp_code=payload.otp,
        comments=payload.comments,
        request_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return result_response(ActionResponse(
        success=result.success, message=result.message,
        code=result.code, new_status=result.new_status,
    ))


@router.post("/{stage}/{application_id}/reject", response_model=ActionResponse)
def reject(
    application_id: int,
    payload: RejectRequest,
    request: Request,
    caller: Caller = Depends(get_current_caller),
    coordinator: StageWorkflowCoordinator = Depends(get_coordinator),
):
    """Reject the application at this stage."""
    result = coordinator.reject(
        application_id, caller, payload.comments,
        request_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return result_response(ActionResponse(
        success=result.success, message=result.message,
        code=result.code, new_status=result.new_status,
    ))
