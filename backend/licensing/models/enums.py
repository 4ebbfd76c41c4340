"""
Enumerations shared by models, services and schemas.
"""
import enum


class PositionType(str, enum.Enum):
    ARCHITECT = "ARCHITECT"
    LICENCE_ENGINEER = "LICENCE_ENGINEER"
    STRUCTURAL_ENGINEER = "STRUCTURAL_ENGINEER"
    SUPERVISOR1 = "SUPERVISOR1"
    SUPERVISOR2 = "SUPERVISOR2"


class OfficerRole(str, enum.Enum):
    ASSISTANT_ENGINEER = "ASSISTANT_ENGINEER"
    EXECUTIVE_ENGINEER = "EXECUTIVE_ENGINEER"
    CITY_ENGINEER = "CITY_ENGINEER"
    CLERK = "CLERK"
    ADMIN = "ADMIN"


class ApplicationStatus(str, enum.Enum):
    SUBMITTED = "SUBMITTED"
    ASSISTANT_ENGINEER_PENDING = "ASSISTANT_ENGINEER_PENDING"
    EXECUTIVE_ENGINEER_PENDING = "EXECUTIVE_ENGINEER_PENDING"
    CITY_ENGINEER_PENDING = "CITY_ENGINEER_PENDING"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    EE_STAGE2_PENDING = "EE_STAGE2_PENDING"
    CE_STAGE2_PENDING = "CE_STAGE2_PENDING"
    FINAL_APPROVED = "FINAL_APPROVED"
    REJECTED = "REJECTED"


class Stage(str, enum.Enum):
    ASSISTANT_ENGINEER = "ASSISTANT_ENGINEER"
    EXECUTIVE_ENGINEER = "EXECUTIVE_ENGINEER"
    CITY_ENGINEER = "CITY_ENGINEER"
    CLERK = "CLERK"
    EE_STAGE2 = "EE_STAGE2"
    CE_STAGE2 = "CE_STAGE2"


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Decision(str, enum.Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class OtpPurpose(str, enum.Enum):
    REGISTRATION = "REGISTRATION"
    LOGIN = "LOGIN"
    STAGE_SIGNATURE = "STAGE_SIGNATURE"
    DOCUMENT_ACCESS = "DOCUMENT_ACCESS"


class ArtifactKind(str, enum.Enum):
    CERTIFICATE = "CERTIFICATE"
    RECOMMENDATION_FORM = "RECOMMENDATION_FORM"
    CHALLAN = "CHALLAN"
