"""
Stage Workflow Coordinator — Officer-facing operations for one review stage.

One class serves every stage; the StageConfig row decides the role, the
pending status, officer binding and whether approval is OTP-signed. The
coordinator owns the transaction: the signature OTP is consumed and the
application advanced in one commit, or neither happens.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from licensing.clock import Clock, system_clock
from licensing.config import Settings, get_settings
from licensing.exceptions import ForbiddenError, LicensingError, SignatureRequiredError, ValidationError
from licensing.models.application import Application, StageReview
from licensing.models.enums import (
    ApplicationStatus, ApprovalStatus, Decision, OtpPurpose, PositionType, Stage,
)
from licensing.models.officer import Officer
from licensing.services.application_service import ApplicationService, ApplicationStatusView
from licensing.services.assignment_service import AssignmentService
from licensing.services.audit_service import AuditService
from licensing.services.certificate_service import CertificateService
from licensing.services.notification_service import NotificationService, get_notifier
from licensing.services.otp_service import OtpService
from licensing.services.stages import StageConfig, get_stage, stage_after
from licensing.services.state_machine import ApplicationStateMachine, Caller
from licensing.utils.validators import is_blank

logger = logging.getLogger(__name__)


@dataclass
class WorkflowActionResult:
    success: bool
    message: str
    code: Optional[str] = None
    new_status: Optional[ApplicationStatus] = None

    @classmethod
    def failure(cls, error: LicensingError) -> "WorkflowActionResult":
        return cls(success=False, message=error.message, code=error.code)


@dataclass
class OtpHandle:
    sent: bool
    message: str
    code: Optional[str] = None              # failure code
    expires_at: Optional[datetime] = None
    otp: Optional[str] = None               # raw code, debug flag only


@dataclass
class ApplicationSummary:
    application_id: int
    application_number: str
    applicant_name: str
    position_type: PositionType
    status: ApplicationStatus
    submitted_at: Optional[datetime]
    assigned_officer_id: Optional[int] = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    action_date: Optional[datetime] = None
    comments: Optional[str] = None

    @classmethod
    def from_row(cls, application: Application, review: Optional[StageReview]) -> "ApplicationSummary":
        summary = cls(
            application_id=application.id,
            application_number=application.application_number,
            applicant_name=application.applicant_name,
            position_type=application.position_type,
            status=application.status,
            submitted_at=application.submitted_at,
        )
        if review is not None:
            summary.assigned_officer_id = review.assigned_officer_id
            summary.approval_status = review.approval_status
            summary.action_date = review.approval_date or review.rejection_date
            summary.comments = review.comments
        return summary


class StageWorkflowCoordinator:

    def __init__(
        self,
        db: Session,
        stage: Stage,
        clock: Clock | None = None,
        settings: Settings | None = None,
        notifier: NotificationService | None = None,
        certificates: CertificateService | None = None,
    ):
        self.db = db
        self.config: StageConfig = get_stage(stage)
        self.clock = clock or system_clock
        self.settings = settings or get_settings()
        self.notifier = notifier or get_notifier()
        self.machine = ApplicationStateMachine(db, clock=self.clock)
        self.otp = OtpService(db, clock=self.clock, settings=self.settings, notifier=self.notifier)
        self.assignments = AssignmentService(db, clock=self.clock)
        self.certificates = certificates or CertificateService(db, clock=self.clock)

    @property
    def stage(self) -> Stage:
        return self.config.stage

    def _require_role(self, caller: Caller) -> None:
        if caller.role != self.config.officer_role:
            raise ForbiddenError(f"Only a {self.config.label} can view this queue")

    def _position_filter(self, caller: Caller, position_type: Optional[PositionType]) -> Optional[PositionType]:
        if self.config.position_filtered:
            return position_type or caller.specialty
        return position_type

    # ─── Queues ──────────────────────────────────────────────────────

    def list_pending(self, caller: Caller, position_type: Optional[PositionType] = None) -> list[ApplicationSummary]:
        """Applications waiting on this stage that the caller may act on, oldest first."""
        self._require_role(caller)

        review_join = and_(StageReview.application_id == Application.id, StageReview.stage == self.stage)
        query = (
            self.db.query(Application, StageReview)
            .outerjoin(StageReview, review_join)
            .filter(Application.status == self.config.pending_status)
            .filter(or_(StageReview.id == None, StageReview.approval_status == ApprovalStatus.PENDING))  # noqa: E711
        )
        if self.config.binds_officer:
            query = query.filter(StageReview.assigned_officer_id == caller.officer_id)

        position = self._position_filter(caller, position_type)
        if position is not None:
            query = query.filter(Application.position_type == position)

        rows = query.order_by(Application.created_at.asc(), Application.id.asc()).all()
        return [ApplicationSummary.from_row(app, review) for app, review in rows]

    def list_completed(self, caller: Caller, position_type: Optional[PositionType] = None) -> list[ApplicationSummary]:
        """Applications the caller approved or rejected at this stage, newest action first."""
        self._require_role(caller)

        query = (
            self.db.query(Application, StageReview)
            .join(StageReview, StageReview.application_id == Application.id)
            .filter(
                StageReview.stage == self.stage,
                StageReview.acted_by_officer_id == caller.officer_id,
                StageReview.approval_status.in_([ApprovalStatus.APPROVED, ApprovalStatus.REJECTED]),
            )
        )
        position = self._position_filter(caller, position_type)
        if position is not None:
            query = query.filter(Application.position_type == position)

        acted_on = func.coalesce(StageReview.approval_date, StageReview.rejection_date)
        rows = query.order_by(acted_on.desc(), Application.id.desc()).all()
        return [ApplicationSummary.from_row(app, review) for app, review in rows]

    # ─── Signature OTP ───────────────────────────────────────────────

    def generate_otp(self, application_id: int, caller: Caller, request_ip: Optional[str] = None) -> OtpHandle:
        """Send the caller a signature OTP scoped to this application and stage."""
        try:
            if not self.config.requires_signature:
                raise ValidationError(f"{self.config.label} processing does not use an OTP signature")

            application = self.machine.get_application(application_id)
            self.machine.check_preconditions(application, self.config, caller)

            officer = self.db.query(Officer).filter(Officer.id == caller.officer_id).first()
            identifier = self.machine.signature_identifier(caller.officer_id, application.id, self.stage)
            issued = self.otp.issue(
                identifier,
                OtpPurpose.STAGE_SIGNATURE,
                deliver_to=officer.email if officer else None,
                request_ip=request_ip,
            )
            AuditService.log(
                self.db, application.id, "SIGNATURE_OTP_SENT",
                actor=caller.actor,
                payload={"stage": self.stage.value, "challenge_id": issued.challenge_id},
                ip_address=request_ip,
                timestamp=self.clock.now(),
            )
            self.db.commit()
        except LicensingError as e:
            self.db.rollback()
            return OtpHandle(sent=False, message=e.message, code=e.code)

        return OtpHandle(
            sent=True,
            message=f"OTP sent. It is valid for {self.settings.OTP_EXPIRY_MINUTES} minutes.",
            expires_at=issued.expires_at,
            otp=issued.code,
        )

    # ─── Decisions ───────────────────────────────────────────────────

    def verify_and_sign(
        self,
        application_id: int,
        caller: Caller,
        otp_code: Optional[str] = None,
        comments: Optional[str] = None,
        request_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> WorkflowActionResult:
        """Approve at this stage, signing with a signature OTP where the stage requires one.

        Preconditions are checked before the OTP so a repeated or misdirected
        call never burns an attempt. A failed OTP commits only the attempt
        counter; any failure after the OTP is consumed rolls both back.
        """
        try:
            application = self.machine.get_application(application_id)
            self.machine.check_preconditions(application, self.config, caller)
        except LicensingError as e:
            return WorkflowActionResult.failure(e)

        signature = None
        if self.config.requires_signature:
            if is_blank(otp_code):
                return WorkflowActionResult.failure(SignatureRequiredError("OTP is required to sign"))

            identifier = self.machine.signature_identifier(caller.officer_id, application.id, self.stage)
            verification = self.otp.verify(identifier, OtpPurpose.STAGE_SIGNATURE, otp_code)
            if not verification.success:
                self.db.commit()
                logger.info(
                    "Signature OTP rejected for %s at %s: %s",
                    application.application_number, self.stage.value, verification.outcome.value,
                )
                return WorkflowActionResult.failure(verification.to_error())
            signature = verification.challenge

        try:
            result = self.machine.advance(
                application.id, self.stage, caller, Decision.APPROVE,
                comments=comments, signature=signature,
            )

            following = stage_after(self.stage)
            if following is not None and following.binds_officer:
                self.assignments.auto_assign(application, following.stage)

            AuditService.log(
                self.db, application.id, "STAGE_APPROVED",
                actor=caller.actor,
                payload={
                    "stage": self.stage.value,
                    "from": result.previous_status.value,
                    "to": result.new_status.value,
                    "signature_challenge_id": signature.id if signature else None,
                },
                ip_address=request_ip,
                user_agent=user_agent,
                timestamp=self.clock.now(),
            )

            if application.status == ApplicationStatus.PAYMENT_PENDING:
                form = self.certificates.issue_recommendation_form(application)
                if form is not None:
                    AuditService.log(
                        self.db, application.id, "RECOMMENDATION_FORM_ISSUED",
                        payload={"storage_key": form.storage_key},
                        timestamp=self.clock.now(),
                    )

            if self.certificates.should_issue(application):
                document = self.certificates.issue(application)
                if document is not None:
                    AuditService.log(
                        self.db, application.id, "CERTIFICATE_ISSUED",
                        payload={"certificate_number": application.certificate_number,
                                 "storage_key": document.storage_key},
                        timestamp=self.clock.now(),
                    )

            self.db.commit()
        except LicensingError as e:
            self.db.rollback()
            return WorkflowActionResult.failure(e)
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self._notify_applicant(application, self._approval_message(application))
        return WorkflowActionResult(
            success=True,
            message=f"Application approved by {self.config.label}",
            new_status=result.new_status,
        )

    def reject(
        self,
        application_id: int,
        caller: Caller,
        comments: Optional[str],
        request_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> WorkflowActionResult:
        """Reject at this stage. Terminal; comments are mandatory."""
        if is_blank(comments):
            return WorkflowActionResult.failure(ValidationError("Rejection comments are required"))

        try:
            result = self.machine.advance(
                application_id, self.stage, caller, Decision.REJECT, comments=comments,
            )
            AuditService.log(
                self.db, application_id, "STAGE_REJECTED",
                actor=caller.actor,
                payload={"stage": self.stage.value, "from": result.previous_status.value,
                         "comments": comments.strip()},
                ip_address=request_ip,
                user_agent=user_agent,
                timestamp=self.clock.now(),
            )
            self.db.commit()
        except LicensingError as e:
            self.db.rollback()
            return WorkflowActionResult.failure(e)
        except SQLAlchemyError:
            self.db.rollback()
            raise

        application = self.machine.get_application(application_id)
        self._notify_applicant(
            application,
            f"Your application {application.application_number} was rejected at "
            f"{self.config.label} review. Remarks: {comments.strip()}",
        )
        return WorkflowActionResult(
            success=True,
            message=f"Application rejected by {self.config.label}",
            new_status=result.new_status,
        )

    def get_status(self, application_id: int) -> ApplicationStatusView:
        return ApplicationService(self.db, clock=self.clock, settings=self.settings).get_status(application_id)

    # ─── Helpers ─────────────────────────────────────────────────────

    def _approval_message(self, application: Application) -> str:
        if application.status == ApplicationStatus.FINAL_APPROVED:
            return (
                f"Your application {application.application_number} is approved. "
                "Your licence certificate can now be downloaded."
            )
        if application.status == ApplicationStatus.PAYMENT_PENDING:
            return (
                f"Your application {application.application_number} has been approved. "
                "Please pay the licence fee to continue."
            )
        return (
            f"Your application {application.application_number} was approved by the "
            f"{self.config.label} and forwarded for further review."
        )

    def _notify_applicant(self, application: Application, message: str) -> None:
        self.notifier.send(application.applicant_email, message)


def coordinator_for(stage: Stage, db: Session, **kwargs) -> StageWorkflowCoordinator:
    return StageWorkflowCoordinator(db, stage, **kwargs)
