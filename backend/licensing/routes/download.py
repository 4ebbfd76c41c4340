"""
Download Routes — Anonymous applicant access to certificate documents.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from licensing.clock import Clock, get_clock
from licensing.database import get_db
from licensing.exceptions import NotFoundError
from licensing.models.enums import ArtifactKind
from licensing.routes.responses import result_response
from licensing.schemas.schemas import (
    DownloadVerifyRequest, DownloadVerifyResponse, RequestAccessRequest, RequestAccessResponse,
)
from licensing.services.document_store import DocumentStore, get_document_store
from licensing.services.download_service import DownloadTokenService
from licensing.services.notification_service import NotificationService, get_notifier
from licensing.utils.rate_limiter import rate_limit

router = APIRouter(prefix="/api/download", tags=["Download"])

KIND_BY_SLUG = {
    "certificate": ArtifactKind.CERTIFICATE,
    "recommendation-form": ArtifactKind.RECOMMENDATION_FORM,
    "challan": ArtifactKind.CHALLAN,
}


def get_download_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: NotificationService = Depends(get_notifier),
    store: DocumentStore = Depends(get_document_store),
) -> DownloadTokenService:
    return DownloadTokenService(db, clock=clock, notifier=notifier, store=store)


@router.post("/request-access", response_model=RequestAccessResponse)
def request_access(
    payload: RequestAccessRequest,
    request: Request,
    service: DownloadTokenService = Depends(get_download_service),
    _throttle: bool = Depends(rate_limit(requests=5, window=60)),
):
    """Email a document-access OTP to the applicant."""
    result = service.request_access(
        payload.application_number, payload.email,
        request_ip=request.client.host if request.client else None,
    )
    return result_response(RequestAccessResponse(
        success=result.success, message=result.message, code=result.code, otp=result.otp,
    ))


@router.post("/verify-otp", response_model=DownloadVerifyResponse)
def verify_otp(
    payload: DownloadVerifyRequest,
    request: Request,
    service: DownloadTokenService = Depends(get_download_service),
    _throttle: bool = Depends(rate_limit(requests=10, window=60)),
):
    """Exchange the document-access OTP for a download token."""
    result = service.verify_otp(
        payload.application_number, payload.otp,
        request_ip=request.client.host if request.client else None,
    )
    return result_response(DownloadVerifyResponse(
        success=result.success,
        message=result.message,
        code=result.code,
        token=result.token,
        applicant_name=result.applicant_name,
        expires_at=result.expires_at,
    ))


@router.get("/{kind}/{token}")
def download(
    kind: str,
    token: str,
    request: Request,
    service: DownloadTokenService = Depends(get_download_service),
):
    """Stream a generated document for a valid download token."""
    artifact_kind = KIND_BY_SLUG.get(kind.lower())
    if artifact_kind is None:
        raise NotFoundError("Unknown document type")

    result = service.get_artifact(
        token, artifact_kind,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    if not result.success:
        return result_response(RequestAccessResponse(success=False, message=result.error, code=result.code))

    return Response(
        content=result.content,
        media_type=result.content_type,
        headers={"Content-Disposition": f'attachment; filename="{result.file_name}"'},
    )
