"""
Pydantic Schemas — Request & Response models for API validation.
"""
from datetime import datetime
from typing import Optional, Dict, List, Any
from pydantic import BaseModel, Field

from licensing.models.enums import (
    ApplicationStatus, ApprovalStatus, OfficerRole, OtpPurpose, PositionType,
)


# ──────────────── Common ────────────────

class ActionResponse(BaseModel):
    success: bool
    message: str
    code: Optional[str] = None
    new_status: Optional[ApplicationStatus] = None


# ──────────────── Auth ────────────────

class SendOtpRequest(BaseModel):
    identifier: str = Field(..., description="Officer email, or applicant email/mobile for registration")
    purpose: OtpPurpose = OtpPurpose.LOGIN


class SendOtpResponse(BaseModel):
    success: bool = True
    message: str
    expires_at: datetime
    otp: Optional[str] = None


class VerifyOtpRequest(BaseModel):
    identifier: str
    purpose: OtpPurpose = OtpPurpose.LOGIN
    code: str = Field(..., min_length=1, max_length=10)


class SessionTokenResponse(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    role: str


# ──────────────── Applications ────────────────

class ApplicationCreateRequest(BaseModel):
    position_type: PositionType
    applicant_name: str = Field(..., min_length=1, max_length=128)
    applicant_email: str = Field(..., max_length=255)
    applicant_phone: Optional[str] = None


class ApplicationCreateResponse(BaseModel):
    success: bool = True
    application_id: int
    application_number: str
    status: ApplicationStatus
    message: str = "Application submitted successfully"


class TimelineEntry(BaseModel):
    stage: str
    label: str
    state: str
    officer_id: Optional[int] = None
    date: Optional[str] = None
    comments: Optional[str] = None


class ApplicationStatusResponse(BaseModel):
    application_id: int
    application_number: str
    position_type: PositionType
    status: ApplicationStatus
    current_stage: Optional[str] = None
    progress_percent: int
    next_action: str
    rejected_at_stage: Optional[str] = None
    remarks: Optional[str] = None
    certificate_number: Optional[str] = None
    submitted_at: Optional[datetime] = None
    timeline: List[TimelineEntry] = []

    class Config:
        from_attributes = True


# ──────────────── Workflow ────────────────

class ApplicationSummaryResponse(BaseModel):
    application_id: int
    application_number: str
    applicant_name: str
    position_type: PositionType
    status: ApplicationStatus
    submitted_at: Optional[datetime] = None
    assigned_officer_id: Optional[int] = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    action_date: Optional[datetime] = None
    comments: Optional[str] = None

    class Config:
        from_attributes = True


class GenerateOtpResponse(BaseModel):
    success: bool
    message: str
    code: Optional[str] = None
    expires_at: Optional[datetime] = None
    otp: Optional[str] = None


class VerifyAndSignRequest(BaseModel):
    otp: Optional[str] = Field(None, description="Signature OTP; omitted for clerk processing")
    comments: Optional[str] = Field(None, max_length=1024)


class RejectRequest(BaseModel):
    comments: Optional[str] = Field(None, max_length=1024)


# ──────────────── Download ────────────────

class RequestAccessRequest(BaseModel):
    application_number: str
    email: str


class RequestAccessResponse(BaseModel):
    success: bool
    message: str
    code: Optional[str] = None
    otp: Optional[str] = None


class DownloadVerifyRequest(BaseModel):
    application_number: str
    otp: str


class DownloadVerifyResponse(BaseModel):
    success: bool
    message: str
    code: Optional[str] = None
    token: Optional[str] = None
    applicant_name: Optional[str] = None
    expires_at: Optional[datetime] = None


# ──────────────── Admin ────────────────

class OfficerCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    email: str = Field(..., max_length=255)
    phone: Optional[str] = None
    role: OfficerRole
    specialty: Optional[PositionType] = None


class OfficerResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    role: OfficerRole
    specialty: Optional[PositionType] = None
    is_active: bool

    class Config:
        from_attributes = True


class AssignRequest(BaseModel):
    stage: str = Field(..., description="Binding stage: ASSISTANT_ENGINEER, EXECUTIVE_ENGINEER or CITY_ENGINEER")
    officer_id: int


class AssignResponse(BaseModel):
    success: bool = True
    application_id: int
    stage: str
    officer_id: int
    officer_name: str


class AdminDashboardResponse(BaseModel):
    total_applications: int
    by_status: Dict[str, int]
    by_position: Dict[str, int]
    unassigned_reviews: int
    certificates_issued: int
    downloads_served: int


class AuditLogEntry(BaseModel):
    id: int
    application_id: int
    action: str
    actor: Optional[str] = None
    payload_hash: Optional[str] = None
    previous_hash: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: datetime
    log_metadata: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True
