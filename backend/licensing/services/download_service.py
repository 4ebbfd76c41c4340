"""
Download Token Service — Anonymous applicant access to generated documents.

Flow: request_access (application number + registered email) sends a
DOCUMENT_ACCESS OTP; verify_otp exchanges the code for a short-lived opaque
token; get_artifact serves certificate / recommendation form / challan bytes
for that token until it expires. Every redemption attempt is audited.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from licensing.clock import Clock, system_clock
from licensing.config import Settings, get_settings
from licensing.exceptions import (
    ExpiredError, ForbiddenError, InvalidTransitionError, LicensingError,
    LockedOutError, NotFoundError,
)
from licensing.models.application import Application
from licensing.models.download import DownloadToken, GeneratedDocument
from licensing.models.enums import ApplicationStatus, ArtifactKind, OtpPurpose
from licensing.services.audit_service import AuditService
from licensing.services.document_store import DocumentStore, get_document_store
from licensing.services.notification_service import NotificationService, get_notifier
from licensing.services.otp_service import NOT_FOUND_MESSAGE, OtpService
from licensing.utils.validators import emails_match, normalize_application_number

logger = logging.getLogger(__name__)

NO_MATCH_MESSAGE = "Application number and email address do not match our records."
INVALID_TOKEN_MESSAGE = "Invalid or expired download token."

ARTIFACT_LABELS = {
    ArtifactKind.CERTIFICATE: "Certificate",
    ArtifactKind.RECOMMENDATION_FORM: "Recommendation form",
    ArtifactKind.CHALLAN: "Payment challan",
}


@dataclass
class AccessResult:
    success: bool
    message: str
    code: Optional[str] = None
    otp: Optional[str] = None   # raw code, debug flag only

    @classmethod
    def failure(cls, error: LicensingError) -> "AccessResult":
        return cls(success=False, message=error.message, code=error.code)


@dataclass
class TokenResult:
    success: bool
    message: str
    code: Optional[str] = None
    token: Optional[str] = None
    applicant_name: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass
class ArtifactResult:
    content: Optional[bytes] = None
    file_name: Optional[str] = None
    content_type: str = "application/pdf"
    error: Optional[str] = None
    code: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.content is not None

    @classmethod
    def failure(cls, error: LicensingError) -> "ArtifactResult":
        return cls(error=error.message, code=error.code)


class DownloadTokenService:

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        settings: Settings | None = None,
        notifier: NotificationService | None = None,
        store: DocumentStore | None = None,
    ):
        self.db = db
        self.clock = clock or system_clock
        self.settings = settings or get_settings()
        self.store = store or get_document_store()
        self.otp = OtpService(db, clock=self.clock, settings=self.settings, notifier=notifier or get_notifier())

    def _find_application(self, application_number: str) -> Optional[Application]:
        number = normalize_application_number(application_number)
        if not number:
            return None
        return self.db.query(Application).filter(Application.application_number == number).first()

    # ─── Access request ──────────────────────────────────────────────

    def request_access(self, application_number: str, email: str, request_ip: Optional[str] = None) -> AccessResult:
        """Send a document-access OTP to the applicant's registered email.

        An unknown application and a wrong email give the same answer. No
        challenge is created unless every check passes.
        """
        application = self._find_application(application_number)
        if application is None or not emails_match(application.applicant_email, email):
            logger.warning("Download access denied for %s: no matching application/email", application_number)
            return AccessResult.failure(NotFoundError(NO_MATCH_MESSAGE))

        if application.status != ApplicationStatus.FINAL_APPROVED:
            logger.warning(
                "Download access for %s with status %s",
                application.application_number, application.status.value,
            )
            return AccessResult.failure(
                InvalidTransitionError("Certificate has not been issued yet. Please wait for approval.")
            )

        now = self.clock.now()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        sent_today = self.otp.requests_since(application.application_number, OtpPurpose.DOCUMENT_ACCESS, start_of_day)
        if sent_today >= self.settings.MAX_DAILY_DOWNLOAD_OTP_REQUESTS:
            logger.warning("Daily download OTP limit reached for %s", application.application_number)
            return AccessResult.failure(
                LockedOutError("Daily OTP request limit reached. Please try again tomorrow or contact support.")
            )

        issued = self.otp.issue(
            application.application_number,
            OtpPurpose.DOCUMENT_ACCESS,
            deliver_to=application.applicant_email,
            request_ip=request_ip,
        )
        self.db.commit()

        return AccessResult(
            success=True,
            message="OTP has been sent to your registered email address.",
            otp=issued.code,
        )

    # ─── OTP → token ─────────────────────────────────────────────────

    def verify_otp(self, application_number: str, code: str, request_ip: Optional[str] = None) -> TokenResult:
        application = self._find_application(application_number)
        if application is None:
            return TokenResult(success=False, message=NOT_FOUND_MESSAGE, code="NOT_FOUND")

        verification = self.otp.verify(application.application_number, OtpPurpose.DOCUMENT_ACCESS, code)
        if not verification.success:
            self.db.commit()
            error = verification.to_error()
            return TokenResult(success=False, message=error.message, code=error.code)

        now = self.clock.now()
        token = DownloadToken(
            token=secrets.token_urlsafe(32),
            application_id=application.id,
            application_number=application.application_number,
            issued_at=now,
            expires_at=now + timedelta(minutes=self.settings.DOWNLOAD_TOKEN_TTL_MINUTES),
            used=False,
            revoked=False,
            bound_artifact_types=[kind.value for kind in ArtifactKind],
            request_ip=request_ip,
        )
        self.db.add(token)
        self.db.flush()

        AuditService.log(
            self.db, application.id, "DOWNLOAD_TOKEN_ISSUED",
            actor="applicant",
            payload={"token_id": token.id, "challenge_id": verification.challenge.id},
            ip_address=request_ip,
            timestamp=now,
        )
        self.db.commit()

        logger.info("Download token issued for %s", application.application_number)
        return TokenResult(
            success=True,
            message="OTP verified successfully! You can now download your documents.",
            token=token.token,
            applicant_name=application.applicant_name,
            expires_at=token.expires_at,
        )

    # ─── Redemption ──────────────────────────────────────────────────

    def get_artifact(
        self,
        token: str,
        kind: ArtifactKind,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ArtifactResult:
        """Serve one artifact for a valid token. Fails closed when anything is missing."""
        now = self.clock.now()
        record = self.db.query(DownloadToken).filter(DownloadToken.token == token).first() if token else None
        if record is None:
            return ArtifactResult.failure(NotFoundError(INVALID_TOKEN_MESSAGE))

        if record.revoked:
            result = ArtifactResult.failure(NotFoundError(INVALID_TOKEN_MESSAGE))
        elif record.expires_at <= now:
            result = ArtifactResult.failure(ExpiredError("Download token has expired. Please verify again."))
        elif kind.value not in (record.bound_artifact_types or []):
            result = ArtifactResult.failure(ForbiddenError("This token does not allow that document."))
        else:
            result = self._load(record, kind)

        if result.success and not record.used:
            # First redemption; concurrent first downloads race on the flag only
            self.db.query(DownloadToken).filter(
                DownloadToken.id == record.id,
                DownloadToken.used == False,  # noqa: E712
            ).update(
                {DownloadToken.used: True, DownloadToken.first_used_at: now},
                synchronize_session=False,
            )
            self.db.commit()

        self._audit(record, kind, token, result, ip_address, user_agent, now)

        if result.success:
            logger.info("%s downloaded for %s", ARTIFACT_LABELS[kind], record.application_number)
        else:
            logger.warning("Download of %s for %s failed: %s", kind.value, record.application_number, result.code)
        return result

    def _load(self, record: DownloadToken, kind: ArtifactKind) -> ArtifactResult:
        document = (
            self.db.query(GeneratedDocument)
            .filter(GeneratedDocument.application_id == record.application_id, GeneratedDocument.kind == kind)
            .first()
        )
        content = self.store.get(document.storage_key) if document else None
        if content is None:
            return ArtifactResult.failure(NotFoundError(f"{ARTIFACT_LABELS[kind]} is not available."))
        return ArtifactResult(
            content=content,
            file_name=document.file_name,
            content_type=document.content_type or "application/pdf",
        )

    def _audit(self, record, kind, token, result, ip_address, user_agent, now) -> None:
        try:
            AuditService.log_download(
                self.db,
                application_id=record.application_id,
                artifact_kind=kind.value,
                token=token,
                success=result.success,
                ip_address=ip_address,
                user_agent=user_agent,
                error_message=result.error,
                timestamp=now,
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to write download audit for %s", record.application_number)

    def revoke(self, token: str) -> bool:
        revoked = (
            self.db.query(DownloadToken)
            .filter(DownloadToken.token == token, DownloadToken.revoked == False)  # noqa: E712
            .update({DownloadToken.revoked: True}, synchronize_session=False)
        )
        self.db.commit()
        return revoked > 0
