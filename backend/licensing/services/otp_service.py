"""
OTP Service — Issue, verify and consume one-time-password challenges.

Used for officer login, per-stage signature approval and anonymous document
access. A 6-digit code space (10^6) is only acceptable because each challenge
allows OTP_MAX_ATTEMPTS wrong guesses (3) inside OTP_EXPIRY_MINUTES (10);
loosening either changes the brute-force bound of 3 / 10^6 per challenge.

Every mutation is a single conditional UPDATE so concurrent verifications of
one challenge serialize in the database. The service never commits: the
caller owns the transaction, which lets a signature OTP be consumed in the
same transaction as the state transition it authorizes.
"""
import enum
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import case, false
from sqlalchemy.orm import Session

from licensing.clock import Clock, system_clock
from licensing.config import Settings, get_settings
from licensing.exceptions import InvalidCodeError, LockedOutError, NotFoundError, LicensingError
from licensing.models.enums import OtpPurpose
from licensing.models.otp import OtpChallenge
from licensing.services.notification_service import NotificationService, get_notifier
from licensing.utils.hashing import codes_match

logger = logging.getLogger(__name__)

CODE_MIN = 100000
CODE_SPAN = 900000   # codes are 100000..999999

NOT_FOUND_MESSAGE = "OTP is invalid or has expired. Please request a new OTP."

_PURPOSE_TEXT = {
    OtpPurpose.REGISTRATION: "complete your registration",
    OtpPurpose.LOGIN: "sign in",
    OtpPurpose.STAGE_SIGNATURE: "digitally sign the application",
    OtpPurpose.DOCUMENT_ACCESS: "download your certificate documents",
}


class OtpOutcome(str, enum.Enum):
    VERIFIED = "VERIFIED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_CODE = "INVALID_CODE"
    LOCKED_OUT = "LOCKED_OUT"


@dataclass
class OtpIssueResult:
    challenge_id: Optional[int]     # None when nothing was issued
    identifier: str
    purpose: OtpPurpose
    expires_at: datetime
    code: Optional[str] = None   # Only populated when EXPOSE_OTP_IN_RESPONSE is on outside production


@dataclass
class OtpVerification:
    outcome: OtpOutcome
    message: str
    challenge: Optional[OtpChallenge] = None
    attempts_remaining: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.outcome == OtpOutcome.VERIFIED

    def to_error(self) -> LicensingError:
        if self.outcome == OtpOutcome.LOCKED_OUT:
            return LockedOutError(self.message)
        if self.outcome == OtpOutcome.INVALID_CODE:
            return InvalidCodeError(self.message)
        return NotFoundError(self.message)

    def raise_for_outcome(self) -> None:
        if not self.success:
            raise self.to_error()


def generate_code() -> str:
    """Uniformly random 6-digit code from the OS CSPRNG."""
    return str(CODE_MIN + secrets.randbelow(CODE_SPAN))


class OtpService:
    """Owns every OtpChallenge row: creation, attempt counting and consumption."""

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        settings: Settings | None = None,
        notifier: NotificationService | None = None,
    ):
        self.db = db
        self.clock = clock or system_clock
        self.settings = settings or get_settings()
        self.notifier = notifier or get_notifier()

    # ─── Issue ───────────────────────────────────────────────────────

    def issue(
        self,
        identifier: str,
        purpose: OtpPurpose,
        deliver_to: Optional[str] = None,
        request_ip: Optional[str] = None,
    ) -> OtpIssueResult:
        """Supersede any live challenge for (identifier, purpose) and create a new one.

        Args:
            identifier: Key the challenge is bound to (email, application number,
                or a signature scope string).
            purpose: What the OTP authorizes.
            deliver_to: Email/phone to send the code to; defaults to identifier.
            request_ip: Requesting client, kept for audit.

        Returns:
            OtpIssueResult; ``code`` is set only for non-production debugging.
        """
        now = self.clock.now()

        superseded = (
            self.db.query(OtpChallenge)
            .filter(
                OtpChallenge.identifier == identifier,
                OtpChallenge.purpose == purpose,
                OtpChallenge.active == True,  # noqa: E712
                OtpChallenge.used == False,  # noqa: E712
            )
            .update({OtpChallenge.active: False}, synchronize_session=False)
        )

        code = generate_code()
        challenge = OtpChallenge(
            identifier=identifier,
            purpose=purpose,
            code=code,
            created_at=now,
            expires_at=now + timedelta(minutes=self.settings.OTP_EXPIRY_MINUTES),
            attempt_count=0,
            max_attempts=self.settings.OTP_MAX_ATTEMPTS,
            active=True,
            used=False,
            request_ip=request_ip,
        )
        self.db.add(challenge)
        self.db.flush()

        logger.info(
            "OTP issued: purpose=%s challenge=%s superseded=%d",
            purpose.value, challenge.id, superseded,
        )

        self.notifier.send(deliver_to or identifier, self._message(purpose, code))

        expose = self.settings.EXPOSE_OTP_IN_RESPONSE and not self.settings.is_production
        return OtpIssueResult(
            challenge_id=challenge.id,
            identifier=identifier,
            purpose=purpose,
            expires_at=challenge.expires_at,
            code=code if expose else None,
        )

    def _message(self, purpose: OtpPurpose, code: str) -> str:
        return (
            f"Your one-time password to {_PURPOSE_TEXT[purpose]} is {code}. "
            f"It is valid for {self.settings.OTP_EXPIRY_MINUTES} minutes. "
            "Do not share it with anyone."
        )

    # ─── Verify ──────────────────────────────────────────────────────

    def latest(self, identifier: str, purpose: OtpPurpose) -> Optional[OtpChallenge]:
        return (
            self.db.query(OtpChallenge)
            .filter(OtpChallenge.identifier == identifier, OtpChallenge.purpose == purpose)
            .order_by(OtpChallenge.created_at.desc(), OtpChallenge.id.desc())
            .first()
        )

    def verify(self, identifier: str, purpose: OtpPurpose, submitted_code: str) -> OtpVerification:
        """Check a code against the most recent challenge and consume it on success.

        Missing, expired, used and superseded challenges all report NOT_FOUND
        with the same message. A challenge locked by the attempt ceiling keeps
        reporting LOCKED_OUT, even for the correct code.
        """
        now = self.clock.now()
        challenge = self.latest(identifier, purpose)

        if challenge is None or challenge.used or challenge.expires_at <= now:
            return self._not_found()
        if challenge.locked_out:
            return self._locked_out(challenge)
        if not challenge.active:
            return self._not_found()

        if not codes_match(challenge.code, submitted_code):
            return self._record_failure(challenge)

        consumed = (
            self.db.query(OtpChallenge)
            .filter(
                OtpChallenge.id == challenge.id,
                OtpChallenge.active == True,  # noqa: E712
                OtpChallenge.used == False,  # noqa: E712
                OtpChallenge.expires_at > now,
            )
            .update(
                {OtpChallenge.used: True, OtpChallenge.used_at: now},
                synchronize_session=False,
            )
        )
        self.db.refresh(challenge)

        if consumed == 0:
            # Lost a race with another verification of the same challenge
            if challenge.locked_out:
                return self._locked_out(challenge)
            return self._not_found()

        logger.info("OTP verified: purpose=%s challenge=%s", purpose.value, challenge.id)
        return OtpVerification(OtpOutcome.VERIFIED, "OTP verified successfully", challenge=challenge)

    def _record_failure(self, challenge: OtpChallenge) -> OtpVerification:
        next_count = OtpChallenge.attempt_count + 1
        updated = (
            self.db.query(OtpChallenge)
            .filter(
                OtpChallenge.id == challenge.id,
                OtpChallenge.active == True,  # noqa: E712
                OtpChallenge.used == False,  # noqa: E712
                OtpChallenge.attempt_count < OtpChallenge.max_attempts,
            )
            .update(
                {
                    OtpChallenge.attempt_count: next_count,
                    OtpChallenge.active: case(
                        (next_count >= OtpChallenge.max_attempts, false()),
                        else_=OtpChallenge.active,
                    ),
                },
                synchronize_session=False,
            )
        )
        self.db.refresh(challenge)

        if challenge.locked_out:
            logger.warning("OTP locked out after %d attempts: challenge=%s", challenge.attempt_count, challenge.id)
            return self._locked_out(challenge)
        if updated == 0:
            return self._not_found()

        remaining = challenge.max_attempts - challenge.attempt_count
        return OtpVerification(
            OtpOutcome.INVALID_CODE,
            f"Invalid OTP. {remaining} attempt(s) remaining.",
            challenge=challenge,
            attempts_remaining=remaining,
        )

    def _not_found(self) -> OtpVerification:
        return OtpVerification(OtpOutcome.NOT_FOUND, NOT_FOUND_MESSAGE)

    def _locked_out(self, challenge: OtpChallenge) -> OtpVerification:
        return OtpVerification(
            OtpOutcome.LOCKED_OUT,
            "Maximum verification attempts exceeded. Please request a new OTP.",
            challenge=challenge,
            attempts_remaining=0,
        )

    # ─── Queries ─────────────────────────────────────────────────────

    def requests_since(self, identifier: str, purpose: OtpPurpose, since: datetime) -> int:
        """Number of challenges issued for the pair since a point in time."""
        return (
            self.db.query(OtpChallenge)
            .filter(
                OtpChallenge.identifier == identifier,
                OtpChallenge.purpose == purpose,
                OtpChallenge.created_at >= since,
            )
            .count()
        )
