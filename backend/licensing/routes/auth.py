"""
Auth Routes — Officer login and applicant registration OTP.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from licensing.clock import Clock, get_clock
from licensing.database import get_db
from licensing.schemas.schemas import SendOtpRequest, SendOtpResponse, VerifyOtpRequest, SessionTokenResponse
from licensing.services.auth_service import AuthService
from licensing.services.notification_service import NotificationService, get_notifier
from licensing.services.otp_service import OtpService
from licensing.utils.rate_limiter import rate_limit

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _auth_service(db: Session, clock: Clock, notifier: NotificationService) -> AuthService:
    return AuthService(db, OtpService(db, clock=clock, notifier=notifier))


@router.post("/send-otp", response_model=SendOtpResponse)
def send_otp(
    payload: SendOtpRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: NotificationService = Depends(get_notifier),
    _throttle: bool = Depends(rate_limit(requests=5, window=60)),
):
    """Send a login or registration OTP."""
    issued = _auth_service(db, clock, notifier).send_otp(
        payload.identifier, payload.purpose,
        request_ip=request.client.host if request.client else None,
    )
    return SendOtpResponse(
        message="OTP sent successfully",
        expires_at=issued.expires_at,
        otp=issued.code,
    )


@router.post("/verify-otp", response_model=SessionTokenResponse)
def verify_otp(
    payload: VerifyOtpRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: NotificationService = Depends(get_notifier),
    _throttle: bool = Depends(rate_limit(requests=10, window=60)),
):
    """Exchange a login/registration OTP for a session token."""
    session = _auth_service(db, clock, notifier).verify_otp(payload.identifier, payload.purpose, payload.code)
    return SessionTokenResponse(**session)
