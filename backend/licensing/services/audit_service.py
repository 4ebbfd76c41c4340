"""
Audit Service — Manages the immutable, hash-chained workflow audit trail.
"""
from datetime import datetime
from typing import Optional, Dict

from sqlalchemy.orm import Session

from licensing.models.audit import AuditLog, DownloadAuditLog
from licensing.utils.hashing import generate_chain_hash


class AuditService:
    """Creates tamper-evident audit log entries, chained per application."""

    @staticmethod
    def log(
        db: Session,
        application_id: int,
        action: str,
        actor: str = "system",
        payload: Optional[Dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict] = None,
        timestamp: Optional[datetime] = None,
    ) -> AuditLog:
        """Append an audit entry to the application's chain.

        Args:
            db: Database session. The entry is flushed, not committed, so it
                lands in the same transaction as the action it records.
            application_id: Application this action belongs to.
            action: Action identifier (e.g. STAGE_APPROVED, CERTIFICATE_ISSUED).
            actor: ``officer:<id>``, ``applicant`` or ``system``.
            payload: Data payload to hash into the chain.
            ip_address: Client IP.
            user_agent: Client user agent.
            metadata: Additional metadata to store.
            timestamp: Entry time; defaults to now.

        Returns:
            The created AuditLog entry.
        """
        # Get the hash of the last entry for this application (chain linking)
        last_entry = (
            db.query(AuditLog)
            .filter(AuditLog.application_id == application_id)
            .order_by(AuditLog.id.desc())
            .first()
        )
        previous_hash = last_entry.payload_hash if last_entry else ""

        payload_data = payload or {}
        chain_hash = generate_chain_hash(payload_data, previous_hash)

        entry = AuditLog(
            application_id=application_id,
            action=action,
            actor=actor,
            payload_hash=chain_hash,
            previous_hash=previous_hash,
            ip_address=ip_address,
            user_agent=user_agent[:256] if user_agent else None,
            log_metadata={**(metadata or {}), "payload": payload_data},
            timestamp=timestamp or datetime.utcnow(),
        )

        db.add(entry)
        db.flush()

        return entry

    @staticmethod
    def get_trail(db: Session, application_id: int) -> list[AuditLog]:
        """Get the full audit trail for an application, ordered chronologically."""
        return (
            db.query(AuditLog)
            .filter(AuditLog.application_id == application_id)
            .order_by(AuditLog.id.asc())
            .all()
        )

    @staticmethod
    def verify_chain(db: Session, application_id: int) -> dict:
        """Verify the integrity of the audit chain for an application.

        Both the link to the previous entry and each entry's own hash are
        recomputed from the stored payload.

        Returns:
            dict with 'valid' (bool), 'total_entries', and 'broken_at' (if invalid).
        """
        entries = AuditService.get_trail(db, application_id)

        if not entries:
            return {"valid": True, "total_entries": 0, "broken_at": None}

        for i, entry in enumerate(entries):
            expected_prev = entries[i - 1].payload_hash if i > 0 else ""
            payload = (entry.log_metadata or {}).get("payload", {})
            if (
                entry.previous_hash != expected_prev
                or entry.payload_hash != generate_chain_hash(payload, entry.previous_hash)
            ):
                return {
                    "valid": False,
                    "total_entries": len(entries),
                    "broken_at": entry.id,
                    "message": f"Chain broken at entry {entry.id} ({entry.action})",
                }

        return {"valid": True, "total_entries": len(entries), "broken_at": None}

    @staticmethod
    def log_download(
        db: Session,
        application_id: int,
        artifact_kind: str,
        token: Optional[str],
        success: bool,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        error_message: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> DownloadAuditLog:
        """Record one document download attempt."""
        entry = DownloadAuditLog(
            application_id=application_id,
            token=token,
            artifact_kind=artifact_kind,
            downloaded_at=timestamp or datetime.utcnow(),
            ip_address=ip_address,
            user_agent=user_agent[:256] if user_agent else None,
            success=success,
            error_message=error_message[:512] if error_message else None,
        )
        db.add(entry)
        db.flush()
        return entry
