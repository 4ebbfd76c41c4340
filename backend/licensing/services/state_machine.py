"""
Application State Machine — The single writer of Application.status.

Every transition is a conditional UPDATE keyed on the expected current
status, so two officers racing on one application cannot both move it.
Nothing here commits; the coordinator commits or rolls back the whole
action (OTP consumption included).
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from licensing.clock import Clock, system_clock
from licensing.exceptions import (
    ForbiddenError, InvalidTransitionError, NotFoundError,
    SignatureRequiredError, ValidationError,
)
from licensing.models.application import Application, StageReview
from licensing.models.enums import (
    ApplicationStatus, ApprovalStatus, Decision, OfficerRole, OtpPurpose,
    PositionType, Stage,
)
from licensing.models.otp import OtpChallenge
from licensing.services.stages import StageConfig, get_stage
from licensing.utils.validators import is_blank

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (ApplicationStatus.FINAL_APPROVED, ApplicationStatus.REJECTED)


@dataclass
class Caller:
    """The authenticated officer on whose behalf an action runs."""
    officer_id: int
    role: OfficerRole
    specialty: Optional[PositionType] = None
    name: str = ""

    @property
    def actor(self) -> str:
        return f"officer:{self.officer_id}"


@dataclass
class AdvanceResult:
    application_id: int
    stage: Optional[Stage]
    decision: Decision
    previous_status: ApplicationStatus
    new_status: ApplicationStatus


class ApplicationStateMachine:

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or system_clock

    @staticmethod
    def signature_identifier(officer_id: int, application_id: int, stage: Stage) -> str:
        """OTP identifier scoping a signature to one officer, application and stage."""
        return f"sign:{stage.value}:{officer_id}:{application_id}"

    @staticmethod
    def is_terminal(status: ApplicationStatus) -> bool:
        return status in TERMINAL_STATUSES

    def get_application(self, application_id: int) -> Application:
        application = self.db.query(Application).filter(Application.id == application_id).first()
        if not application:
            raise NotFoundError("Application not found")
        return application

    def get_review(self, application_id: int, stage: Stage) -> Optional[StageReview]:
        return (
            self.db.query(StageReview)
            .filter(StageReview.application_id == application_id, StageReview.stage == stage)
            .first()
        )

    def ensure_review(self, application_id: int, stage: Stage) -> StageReview:
        review = self.get_review(application_id, stage)
        if review is None:
            review = StageReview(
                application_id=application_id,
                stage=stage,
                approval_status=ApprovalStatus.PENDING,
            )
            self.db.add(review)
            self.db.flush()
        return review

    # ─── Preconditions ───────────────────────────────────────────────

    def check_preconditions(self, application: Application, config: StageConfig, caller: Caller) -> None:
        """Raise unless ``caller`` may act on ``application`` at this stage right now."""
        if caller.role != config.officer_role:
            raise ForbiddenError(f"Only a {config.label} can act at this stage")

        if application.status != config.pending_status:
            raise InvalidTransitionError(
                f"Application is {application.status.value}, not awaiting {config.label} review"
            )

        if config.binds_officer:
            review = self.get_review(application.id, config.stage)
            if review is None or review.assigned_officer_id != caller.officer_id:
                raise ForbiddenError("Application is not assigned to you")

        if config.position_filtered and caller.specialty != application.position_type:
            raise ForbiddenError(
                f"Application position {application.position_type.value} does not match your specialty"
            )

    def _signature_valid(self, application: Application, stage: Stage, caller: Caller,
                         signature: Optional[OtpChallenge]) -> bool:
        if signature is None or not signature.used:
            return False
        if signature.purpose != OtpPurpose.STAGE_SIGNATURE:
            return False
        expected = self.signature_identifier(caller.officer_id, application.id, stage)
        return signature.identifier == expected

    # ─── Transitions ─────────────────────────────────────────────────

    def _transition(self, application: Application, expected: ApplicationStatus, values: dict) -> None:
        values[Application.updated_at] = self.clock.now()
        moved = (
            self.db.query(Application)
            .filter(Application.id == application.id, Application.status == expected)
            .update(values, synchronize_session=False)
        )
        if moved == 0:
            raise InvalidTransitionError("Application status changed concurrently; action not applied")
        self.db.refresh(application)

    def advance(
        self,
        application_id: int,
        stage: Stage,
        caller: Caller,
        decision: Decision,
        comments: Optional[str] = None,
        signature: Optional[OtpChallenge] = None,
    ) -> AdvanceResult:
        """Apply an officer decision at ``stage``.

        Approval moves the application to the stage's next status and needs a
        consumed signature challenge scoped to (officer, application, stage)
        where the stage is signed. Rejection is terminal and needs comments.
        No row is written unless every check passes.
        """
        config = get_stage(stage)
        application = self.get_application(application_id)
        self.check_preconditions(application, config, caller)

        now = self.clock.now()
        previous = application.status

        if decision == Decision.APPROVE:
            if config.requires_signature and not self._signature_valid(application, stage, caller, signature):
                raise SignatureRequiredError()

            values = {Application.status: config.next_status}
            if config.next_status == ApplicationStatus.FINAL_APPROVED:
                values[Application.approved_at] = now
            self._transition(application, previous, values)

            review = self.ensure_review(application.id, stage)
            review.approval_status = ApprovalStatus.APPROVED
            review.approval_date = now
            review.acted_by_officer_id = caller.officer_id
            if comments:
                review.comments = comments.strip()
            if signature is not None:
                review.signature_challenge_id = signature.id
        else:
            if is_blank(comments):
                raise ValidationError("Rejection comments are required")

            self._transition(application, previous, {
                Application.status: ApplicationStatus.REJECTED,
                Application.rejected_at_stage: stage,
                Application.remarks: comments.strip(),
            })

            review = self.ensure_review(application.id, stage)
            review.approval_status = ApprovalStatus.REJECTED
            review.rejection_date = now
            review.acted_by_officer_id = caller.officer_id
            review.comments = comments.strip()

        self.db.flush()
        logger.info(
            "Application %s: %s at %s by officer %s (%s -> %s)",
            application.application_number, decision.value, stage.value,
            caller.officer_id, previous.value, application.status.value,
        )
        return AdvanceResult(
            application_id=application.id,
            stage=stage,
            decision=decision,
            previous_status=previous,
            new_status=application.status,
        )

    def route_for_review(self, application_id: int) -> AdvanceResult:
        """SUBMITTED → ASSISTANT_ENGINEER_PENDING, opening the first review."""
        application = self.get_application(application_id)
        if application.status != ApplicationStatus.SUBMITTED:
            raise InvalidTransitionError(f"Application is {application.status.value}, not SUBMITTED")

        self._transition(application, ApplicationStatus.SUBMITTED, {
            Application.status: ApplicationStatus.ASSISTANT_ENGINEER_PENDING,
        })
        self.ensure_review(application.id, Stage.ASSISTANT_ENGINEER)

        logger.info("Application %s routed for review", application.application_number)
        return AdvanceResult(
            application_id=application.id,
            stage=None,
            decision=Decision.APPROVE,
            previous_status=ApplicationStatus.SUBMITTED,
            new_status=application.status,
        )

    def record_payment(self, application_id: int) -> AdvanceResult:
        """PAYMENT_PENDING → PAYMENT_COMPLETED, handing the application to the clerk."""
        application = self.get_application(application_id)
        if application.status != ApplicationStatus.PAYMENT_PENDING:
            raise InvalidTransitionError(f"Application is {application.status.value}, not awaiting payment")

        self._transition(application, ApplicationStatus.PAYMENT_PENDING, {
            Application.status: ApplicationStatus.PAYMENT_COMPLETED,
        })
        self.ensure_review(application.id, Stage.CLERK)

        logger.info("Payment recorded for application %s", application.application_number)
        return AdvanceResult(
            application_id=application.id,
            stage=None,
            decision=Decision.APPROVE,
            previous_status=ApplicationStatus.PAYMENT_PENDING,
            new_status=application.status,
        )
