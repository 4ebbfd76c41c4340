"""
OTP Challenge Model — Outstanding and historical one-time-password challenges.
Rows are never deleted; dead challenges stay for audit.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Boolean, Enum, Index

from licensing.database import Base
from licensing.models.enums import OtpPurpose


class OtpChallenge(Base):
    __tablename__ = "otp_challenges"
    __table_args__ = (Index("ix_otp_identifier_purpose", "identifier", "purpose"),)

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    identifier = Column(String(255), nullable=False)   # email | phone | application number | signature scope
    purpose = Column(Enum(OtpPurpose, native_enum=False, length=32), nullable=False)
    code = Column(String(10), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    attempt_count = Column(Integer, default=0, nullable=False)
    max_attempts = Column(Integer, default=3, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    used_at = Column(DateTime, nullable=True)

    request_ip = Column(String(45))

    @property
    def locked_out(self) -> bool:
        return not self.active and self.attempt_count >= self.max_attempts
