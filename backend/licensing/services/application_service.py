"""
Application Service — Submission intake and the public status view.
"""
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from licensing.clock import Clock, system_clock
from licensing.config import Settings, get_settings
from licensing.exceptions import NotFoundError, ValidationError
from licensing.models.application import Application
from licensing.models.enums import ApplicationStatus, ApprovalStatus, PositionType
from licensing.services.audit_service import AuditService
from licensing.services.stages import STAGE_ORDER, get_stage, stage_awaiting
from licensing.utils.validators import is_blank, validate_email, validate_phone

logger = logging.getLogger(__name__)

# Happy-path order used for progress reporting
STATUS_SEQUENCE = [
    ApplicationStatus.SUBMITTED,
    ApplicationStatus.ASSISTANT_ENGINEER_PENDING,
    ApplicationStatus.EXECUTIVE_ENGINEER_PENDING,
    ApplicationStatus.CITY_ENGINEER_PENDING,
    ApplicationStatus.PAYMENT_PENDING,
    ApplicationStatus.PAYMENT_COMPLETED,
    ApplicationStatus.EE_STAGE2_PENDING,
    ApplicationStatus.CE_STAGE2_PENDING,
    ApplicationStatus.FINAL_APPROVED,
]

NEXT_ACTION = {
    ApplicationStatus.SUBMITTED: "Awaiting routing for scrutiny",
    ApplicationStatus.ASSISTANT_ENGINEER_PENDING: "Awaiting Assistant Engineer review",
    ApplicationStatus.EXECUTIVE_ENGINEER_PENDING: "Awaiting Executive Engineer approval",
    ApplicationStatus.CITY_ENGINEER_PENDING: "Awaiting City Engineer approval",
    ApplicationStatus.PAYMENT_PENDING: "Applicant to pay licence fee",
    ApplicationStatus.PAYMENT_COMPLETED: "Awaiting clerk processing",
    ApplicationStatus.EE_STAGE2_PENDING: "Awaiting Executive Engineer certificate signature",
    ApplicationStatus.CE_STAGE2_PENDING: "Awaiting City Engineer certificate signature",
    ApplicationStatus.FINAL_APPROVED: "Certificate available for download",
    ApplicationStatus.REJECTED: "No further action",
}


@dataclass
class ApplicationStatusView:
    application_id: int
    application_number: str
    position_type: PositionType
    status: ApplicationStatus
    current_stage: Optional[str]
    progress_percent: int
    next_action: str
    rejected_at_stage: Optional[str] = None
    remarks: Optional[str] = None
    certificate_number: Optional[str] = None
    submitted_at: Optional[datetime] = None
    timeline: list[dict] = field(default_factory=list)


class ApplicationService:

    def __init__(self, db: Session, clock: Clock | None = None, settings: Settings | None = None):
        self.db = db
        self.clock = clock or system_clock
        self.settings = settings or get_settings()

    def _new_number(self) -> str:
        year = self.clock.now().year
        prefix = self.settings.APPLICATION_NUMBER_PREFIX
        while True:
            number = f"{prefix}-{year}-{secrets.randbelow(10**6):06d}"
            exists = self.db.query(Application.id).filter(Application.application_number == number).first()
            if not exists:
                return number

    def submit(
        self,
        position_type: PositionType,
        applicant_name: str,
        applicant_email: str,
        applicant_phone: Optional[str] = None,
        request_ip: Optional[str] = None,
    ) -> Application:
        """Register a submitted application. Commits."""
        if is_blank(applicant_name):
            raise ValidationError("Applicant name is required")
        if not validate_email(applicant_email):
            raise ValidationError("A valid applicant email is required")
        if applicant_phone and not validate_phone(applicant_phone):
            raise ValidationError("Invalid mobile number")

        now = self.clock.now()
        application = Application(
            application_number=self._new_number(),
            position_type=position_type,
            applicant_name=applicant_name.strip(),
            applicant_email=applicant_email.strip(),
            applicant_phone=applicant_phone,
            status=ApplicationStatus.SUBMITTED,
            created_at=now,
            updated_at=now,
            submitted_at=now,
        )
        self.db.add(application)
        self.db.flush()

        AuditService.log(
            self.db, application.id, "APPLICATION_SUBMITTED",
            actor="applicant",
            payload={"application_number": application.application_number,
                     "position_type": position_type.value},
            ip_address=request_ip,
            timestamp=now,
        )
        self.db.commit()
        self.db.refresh(application)

        logger.info("Application %s submitted (%s)", application.application_number, position_type.value)
        return application

    def get(self, application_id: int) -> Application:
        application = self.db.query(Application).filter(Application.id == application_id).first()
        if not application:
            raise NotFoundError("Application not found")
        return application

    def get_status(self, application_id: int) -> ApplicationStatusView:
        application = self.get(application_id)
        status = application.status

        if status == ApplicationStatus.REJECTED and application.rejected_at_stage:
            reached = STATUS_SEQUENCE.index(get_stage(application.rejected_at_stage).pending_status)
        elif status in STATUS_SEQUENCE:
            reached = STATUS_SEQUENCE.index(status)
        else:
            reached = 0
        progress = round(100 * reached / (len(STATUS_SEQUENCE) - 1))

        awaiting = stage_awaiting(status)
        timeline = []
        for stage in STAGE_ORDER:
            review = application.review_for(stage)
            if review is None:
                state = "current" if awaiting and awaiting.stage == stage else "upcoming"
                timeline.append({"stage": stage.value, "label": get_stage(stage).label, "state": state})
                continue

            if review.approval_status == ApprovalStatus.APPROVED:
                state, date = "approved", review.approval_date
            elif review.approval_status == ApprovalStatus.REJECTED:
                state, date = "rejected", review.rejection_date
            else:
                state, date = "current", review.assigned_at
            timeline.append({
                "stage": stage.value,
                "label": get_stage(stage).label,
                "state": state,
                "officer_id": review.acted_by_officer_id or review.assigned_officer_id,
                "date": date.isoformat() if date else None,
                "comments": review.comments,
            })

        return ApplicationStatusView(
            application_id=application.id,
            application_number=application.application_number,
            position_type=application.position_type,
            status=status,
            current_stage=awaiting.label if awaiting else None,
            progress_percent=progress,
            next_action=NEXT_ACTION[status],
            rejected_at_stage=application.rejected_at_stage.value if application.rejected_at_stage else None,
            remarks=application.remarks,
            certificate_number=application.certificate_number,
            submitted_at=application.submitted_at,
            timeline=timeline,
        )
