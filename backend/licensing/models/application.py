"""
Application Model — Licence application and its per-stage review records.
The state machine is the only writer of Application.status.
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, DateTime, Enum, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from licensing.database import Base
from licensing.models.enums import ApplicationStatus, ApprovalStatus, PositionType, Stage


class Application(Base):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    application_number = Column(String(32), unique=True, index=True, nullable=False)
    position_type = Column(Enum(PositionType, native_enum=False, length=32), nullable=False, index=True)

    applicant_name = Column(String(128), nullable=False)
    applicant_email = Column(String(255), nullable=False)
    applicant_phone = Column(String(20))

    status = Column(
        Enum(ApplicationStatus, native_enum=False, length=32),
        default=ApplicationStatus.SUBMITTED,
        nullable=False,
        index=True,
    )
    # Statuses: SUBMITTED → AE → EE → CE → PAYMENT_PENDING → PAYMENT_COMPLETED
    #           → (clerk) EE_STAGE2 → CE_STAGE2 → FINAL_APPROVED, or REJECTED
    rejected_at_stage = Column(Enum(Stage, native_enum=False, length=32), nullable=True)
    remarks = Column(String(1024))

    certificate_number = Column(String(64), nullable=True)
    certificate_issued_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    submitted_at = Column(DateTime, default=datetime.utcnow)
    approved_at = Column(DateTime, nullable=True)

    reviews = relationship(
        "StageReview",
        back_populates="application",
        order_by="StageReview.id",
        cascade="all, delete-orphan",
    )

    def review_for(self, stage: Stage):
        for review in self.reviews:
            if review.stage == stage:
                return review
        return None


class StageReview(Base):
    """One officer stage of one application: assignment, decision and dates."""
    __tablename__ = "stage_reviews"
    __table_args__ = (UniqueConstraint("application_id", "stage", name="uq_stage_review"),)

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)
    stage = Column(Enum(Stage, native_enum=False, length=32), nullable=False)

    assigned_officer_id = Column(Integer, ForeignKey("officers.id"), nullable=True, index=True)
    assigned_at = Column(DateTime, nullable=True)
    acted_by_officer_id = Column(Integer, ForeignKey("officers.id"), nullable=True, index=True)

    approval_status = Column(
        Enum(ApprovalStatus, native_enum=False, length=16),
        default=ApprovalStatus.PENDING,
        nullable=False,
    )
    comments = Column(String(1024))
    approval_date = Column(DateTime, nullable=True)
    rejection_date = Column(DateTime, nullable=True)

    signature_challenge_id = Column(Integer, ForeignKey("otp_challenges.id"), nullable=True)

    application = relationship("Application", back_populates="reviews")
