"""
Auth Service — Login/registration OTP and signed session tokens.

Officers sign in with an email OTP and receive a JWT carrying their role and
specialty; every workflow route rebuilds an explicit Caller from it.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import func
from sqlalchemy.orm import Session

from licensing.config import Settings, get_settings
from licensing.database import get_db
from licensing.exceptions import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from licensing.models.enums import OfficerRole, OtpPurpose, PositionType
from licensing.models.officer import Officer
from licensing.services.otp_service import OtpIssueResult, OtpService
from licensing.services.state_machine import Caller
from licensing.utils.validators import validate_email, validate_phone

logger = logging.getLogger(__name__)

APPLICANT_ROLE = "APPLICANT"

security = HTTPBearer(auto_error=False)


def create_access_token(data: Dict[str, Any], settings: Settings | None = None,
                        expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed session token."""
    settings = settings or get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.SESSION_EXPIRY_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, settings: Settings | None = None) -> Dict[str, Any]:
    settings = settings or get_settings()
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Could not validate credentials")


class AuthService:

    def __init__(self, db: Session, otp: OtpService, settings: Settings | None = None):
        self.db = db
        self.otp = otp
        self.settings = settings or get_settings()

    def find_officer(self, email: str) -> Optional[Officer]:
        return (
            self.db.query(Officer)
            .filter(func.lower(Officer.email) == email.strip().lower(), Officer.is_active == True)  # noqa: E712
            .first()
        )

    @staticmethod
    def _identifier(identifier: str) -> str:
        return identifier.strip().lower()

    def send_otp(self, identifier: str, purpose: OtpPurpose, request_ip: Optional[str] = None) -> OtpIssueResult:
        if purpose not in (OtpPurpose.LOGIN, OtpPurpose.REGISTRATION):
            raise ValidationError("Purpose must be LOGIN or REGISTRATION")

        if purpose == OtpPurpose.LOGIN:
            if not validate_email(identifier):
                raise ValidationError("Officer login requires an email address")
            if self.find_officer(identifier) is None:
                # Same answer as a real send; nothing is issued or delivered
                logger.info("Login OTP requested for an unknown officer email")
                return OtpIssueResult(
                    challenge_id=None,
                    identifier=self._identifier(identifier),
                    purpose=purpose,
                    expires_at=self.otp.clock.now() + timedelta(minutes=self.settings.OTP_EXPIRY_MINUTES),
                )
        elif not (validate_email(identifier) or validate_phone(identifier)):
            raise ValidationError("Provide a valid email address or mobile number")

        issued = self.otp.issue(self._identifier(identifier), purpose, deliver_to=identifier.strip(),
                                request_ip=request_ip)
        self.db.commit()
        return issued

    def verify_otp(self, identifier: str, purpose: OtpPurpose, code: str) -> Dict[str, Any]:
        """Consume the OTP and mint a session token.

        LOGIN yields an officer session. REGISTRATION yields an APPLICANT token
        for the applicant portal, which sits outside this service; officer
        routes reject it in get_current_caller.
        """
        verification = self.otp.verify(self._identifier(identifier), purpose, code)
        self.db.commit()
        verification.raise_for_outcome()

        if purpose == OtpPurpose.LOGIN:
            officer = self.find_officer(identifier)
            if officer is None:
                raise NotFoundError("No active officer account for this email")
            claims = {
                "sub": str(officer.id),
                "role": officer.role.value,
                "specialty": officer.specialty.value if officer.specialty else None,
                "name": officer.name,
            }
            logger.info("Officer %s signed in", officer.id)
        else:
            claims = {"sub": self._identifier(identifier), "role": APPLICANT_ROLE}

        return {
            "access_token": create_access_token(claims, self.settings),
            "token_type": "bearer",
            "expires_in": self.settings.SESSION_EXPIRY_MINUTES * 60,
            "role": claims["role"],
        }


def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Caller:
    """FastAPI dependency: the signed-in officer as a Caller."""
    if credentials is None:
        raise UnauthorizedError()

    payload = decode_token(credentials.credentials)
    if payload.get("type") != "access" or payload.get("role") == APPLICANT_ROLE:
        raise UnauthorizedError("Officer session required")

    try:
        officer_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid token payload")

    officer = db.query(Officer).filter(Officer.id == officer_id).first()
    if officer is None or not officer.is_active:
        raise UnauthorizedError("Officer account is inactive")

    # Role and specialty come from the database, not the token
    return Caller(
        officer_id=officer.id,
        role=OfficerRole(officer.role),
        specialty=PositionType(officer.specialty) if officer.specialty else None,
        name=officer.name,
    )


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    if caller.role != OfficerRole.ADMIN:
        raise ForbiddenError("Administrator access required")
    return caller
