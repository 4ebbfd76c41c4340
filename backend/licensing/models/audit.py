"""
Audit Log Models — Tamper-evident workflow trail and download access log.
Every workflow action is SHA-256 hashed and chained per application.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, Boolean, ForeignKey

from licensing.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)

    action = Column(String(50), nullable=False)
    # Actions: APPLICATION_SUBMITTED, ROUTED_FOR_REVIEW, OFFICER_ASSIGNED,
    #          SIGNATURE_OTP_SENT, STAGE_APPROVED, STAGE_REJECTED,
    #          PAYMENT_COMPLETED, CERTIFICATE_ISSUED, DOWNLOAD_TOKEN_ISSUED
    actor = Column(String(64))              # officer:<id> | applicant | system

    payload_hash = Column(String(64))       # Chain hash of the action payload
    previous_hash = Column(String(64))      # Hash chain for tamper detection

    ip_address = Column(String(45))
    user_agent = Column(String(256))

    log_metadata = Column(JSON, default=dict)
    timestamp = Column(DateTime, default=datetime.utcnow)


class DownloadAuditLog(Base):
    __tablename__ = "download_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)
    token = Column(String(64))
    artifact_kind = Column(String(32), nullable=False)

    downloaded_at = Column(DateTime, default=datetime.utcnow)
    ip_address = Column(String(45))
    user_agent = Column(String(256))

    success = Column(Boolean, default=False)
    error_message = Column(String(512))
