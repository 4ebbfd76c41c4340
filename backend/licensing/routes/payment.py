"""
Payment Routes — Licence fee confirmation.
Stands in for the payment gateway callback while MOCK_PAYMENT_ENABLED is set.
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from licensing.clock import Clock, get_clock
from licensing.config import Settings, get_settings
from licensing.database import get_db
from licensing.schemas.schemas import ActionResponse
from licensing.services.audit_service import AuditService
from licensing.services.auth_service import require_admin
from licensing.services.certificate_service import CertificateService
from licensing.services.document_store import DocumentStore, get_document_store
from licensing.services.notification_service import NotificationService, get_notifier
from licensing.services.state_machine import ApplicationStateMachine, Caller

router = APIRouter(prefix="/api/payment", tags=["Payment"])


@router.post("/{application_id}/complete", response_model=ActionResponse)
def complete_payment(
    application_id: int,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
    notifier: NotificationService = Depends(get_notifier),
    store: DocumentStore = Depends(get_document_store),
):
    """Mark the licence fee as paid, issue the fee challan and hand the application to the clerk."""
    if not settings.MOCK_PAYMENT_ENABLED:
        raise HTTPException(status_code=404, detail="Mock payment is disabled")

    machine = ApplicationStateMachine(db, clock=clock)
    result = machine.record_payment(application_id)

    AuditService.log(
        db, application_id, "PAYMENT_COMPLETED",
        actor=caller.actor,
        payload={"from": result.previous_status.value, "to": result.new_status.value,
                 "mock": True, "amount": settings.LICENCE_FEE},
        ip_address=request.client.host if request.client else None,
        timestamp=clock.now(),
    )

    application = machine.get_application(application_id)
    challan = CertificateService(db, store=store, clock=clock).issue_challan(application, settings.LICENCE_FEE)
    if challan is not None:
        AuditService.log(
            db, application_id, "CHALLAN_ISSUED",
            payload={"storage_key": challan.storage_key, "amount": settings.LICENCE_FEE},
            timestamp=clock.now(),
        )
    db.commit()

    notifier.send(
        application.applicant_email,
        f"Payment received for application {application.application_number}. "
        "Your application is now with the clerk for processing.",
    )
    return ActionResponse(success=True, message="Payment recorded", new_status=result.new_status)
