from licensing.models.officer import Officer
from licensing.models.application import Application, StageReview
from licensing.models.otp import OtpChallenge
from licensing.models.download import DownloadToken, GeneratedDocument
from licensing.models.audit import AuditLog, DownloadAuditLog

__all__ = [
    "Officer", "Application", "StageReview", "OtpChallenge",
    "DownloadToken", "GeneratedDocument", "AuditLog", "DownloadAuditLog",
]
