"""
Download Models — Anonymous document access tokens and generated artifacts.
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, DateTime, Boolean, JSON, Enum, ForeignKey, UniqueConstraint,
)

from licensing.database import Base
from licensing.models.enums import ArtifactKind


class DownloadToken(Base):
    __tablename__ = "download_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    token = Column(String(64), unique=True, index=True, nullable=False)   # secrets.token_urlsafe
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)
    application_number = Column(String(32), nullable=False)

    issued_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    used = Column(Boolean, default=False, nullable=False)      # Set on first redemption
    first_used_at = Column(DateTime, nullable=True)
    revoked = Column(Boolean, default=False, nullable=False)

    bound_artifact_types = Column(JSON, default=list)          # ["CERTIFICATE", "RECOMMENDATION_FORM", "CHALLAN"]
    request_ip = Column(String(45))


class GeneratedDocument(Base):
    """Pointer to an artifact in the object store."""
    __tablename__ = "generated_documents"
    __table_args__ = (UniqueConstraint("application_id", "kind", name="uq_generated_document"),)

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)
    kind = Column(Enum(ArtifactKind, native_enum=False, length=32), nullable=False)

    storage_key = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    content_type = Column(String(64), default="application/pdf")
    size_bytes = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
