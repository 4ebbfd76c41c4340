from licensing.services.otp_service import OtpService
from licensing.services.state_machine import ApplicationStateMachine, Caller
from licensing.services.workflow_service import StageWorkflowCoordinator, coordinator_for
from licensing.services.download_service import DownloadTokenService
from licensing.services.certificate_service import CertificateService
from licensing.services.assignment_service import AssignmentService
from licensing.services.application_service import ApplicationService
from licensing.services.audit_service import AuditService

__all__ = [
    "OtpService", "ApplicationStateMachine", "Caller", "StageWorkflowCoordinator",
    "coordinator_for", "DownloadTokenService", "CertificateService",
    "AssignmentService", "ApplicationService", "AuditService",
]
