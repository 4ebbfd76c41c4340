"""
Assignment Service — Binds an application's stage review to an officer.
Auto-assignment picks the matching active officer with the fewest open reviews.
"""
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from licensing.clock import Clock, system_clock
from licensing.exceptions import NotFoundError, ValidationError
from licensing.models.application import Application, StageReview
from licensing.models.enums import ApprovalStatus, Stage
from licensing.models.officer import Officer
from licensing.services.stages import get_stage
from licensing.services.state_machine import ApplicationStateMachine

logger = logging.getLogger(__name__)


class AssignmentService:

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or system_clock
        self.machine = ApplicationStateMachine(db, clock=self.clock)

    def candidates(self, application: Application, stage: Stage) -> list[Officer]:
        config = get_stage(stage)
        query = self.db.query(Officer).filter(
            Officer.role == config.officer_role,
            Officer.is_active == True,  # noqa: E712
        )
        if config.position_filtered:
            query = query.filter(Officer.specialty == application.position_type)
        return query.order_by(Officer.id.asc()).all()

    def open_reviews(self, officer_id: int, stage: Stage) -> int:
        return (
            self.db.query(func.count(StageReview.id))
            .filter(
                StageReview.assigned_officer_id == officer_id,
                StageReview.stage == stage,
                StageReview.approval_status == ApprovalStatus.PENDING,
            )
            .scalar()
        )

    def auto_assign(self, application: Application, stage: Stage) -> Optional[Officer]:
        """Assign the least-loaded eligible officer (ties by id).

        Returns None, leaving the review unassigned, for non-binding stages
        and when nobody is eligible.
        """
        if not get_stage(stage).binds_officer:
            return None

        officers = self.candidates(application, stage)
        if not officers:
            logger.warning(
                "No active officer for %s review of %s (%s); left unassigned",
                stage.value, application.application_number, application.position_type.value,
            )
            return None

        chosen = min(officers, key=lambda o: (self.open_reviews(o.id, stage), o.id))
        self._bind(application, stage, chosen)
        return chosen

    def assign(self, application: Application, stage: Stage, officer_id: int) -> Officer:
        """Manual (admin) assignment; the officer must fit the stage."""
        officer = self.db.query(Officer).filter(Officer.id == officer_id).first()
        if not officer or not officer.is_active:
            raise NotFoundError("Officer not found")

        config = get_stage(stage)
        if officer.role != config.officer_role:
            raise ValidationError(f"Officer is not a {config.label}")
        if config.position_filtered and officer.specialty != application.position_type:
            raise ValidationError("Officer specialty does not match the application's position type")

        self._bind(application, stage, officer)
        return officer

    def _bind(self, application: Application, stage: Stage, officer: Officer) -> None:
        review = self.machine.ensure_review(application.id, stage)
        review.assigned_officer_id = officer.id
        review.assigned_at = self.clock.now()
        self.db.flush()
        logger.info(
            "Application %s %s review assigned to officer %s",
            application.application_number, stage.value, officer.id,
        )
