"""
Review stage table — the fixed sequence of officer stages.

Each row says who acts at the stage, which status the application must be
in, where an approval sends it, and whether the action is OTP-signed.
"""
from dataclasses import dataclass
from typing import Optional

from licensing.models.enums import ApplicationStatus, OfficerRole, Stage


@dataclass(frozen=True)
class StageConfig:
    stage: Stage
    label: str
    officer_role: OfficerRole
    pending_status: ApplicationStatus
    next_status: ApplicationStatus
    binds_officer: bool         # Only the assigned officer may act
    position_filtered: bool     # Officer specialty must equal the application's position type
    requires_signature: bool    # Approval needs a consumed STAGE_SIGNATURE OTP


STAGES: dict[Stage, StageConfig] = {
    Stage.ASSISTANT_ENGINEER: StageConfig(
        stage=Stage.ASSISTANT_ENGINEER,
        label="Assistant Engineer",
        officer_role=OfficerRole.ASSISTANT_ENGINEER,
        pending_status=ApplicationStatus.ASSISTANT_ENGINEER_PENDING,
        next_status=ApplicationStatus.EXECUTIVE_ENGINEER_PENDING,
        binds_officer=True,
        position_filtered=True,
        requires_signature=True,
    ),
    Stage.EXECUTIVE_ENGINEER: StageConfig(
        stage=Stage.EXECUTIVE_ENGINEER,
        label="Executive Engineer",
        officer_role=OfficerRole.EXECUTIVE_ENGINEER,
        pending_status=ApplicationStatus.EXECUTIVE_ENGINEER_PENDING,
        next_status=ApplicationStatus.CITY_ENGINEER_PENDING,
        binds_officer=True,
        position_filtered=False,
        requires_signature=True,
    ),
    Stage.CITY_ENGINEER: StageConfig(
        stage=Stage.CITY_ENGINEER,
        label="City Engineer",
        officer_role=OfficerRole.CITY_ENGINEER,
        pending_status=ApplicationStatus.CITY_ENGINEER_PENDING,
        next_status=ApplicationStatus.PAYMENT_PENDING,
        binds_officer=True,
        position_filtered=False,
        requires_signature=True,
    ),
    Stage.CLERK: StageConfig(
        stage=Stage.CLERK,
        label="Clerk",
        officer_role=OfficerRole.CLERK,
        pending_status=ApplicationStatus.PAYMENT_COMPLETED,
        next_status=ApplicationStatus.EE_STAGE2_PENDING,
        binds_officer=False,
        position_filtered=False,
        requires_signature=False,
    ),
    Stage.EE_STAGE2: StageConfig(
        stage=Stage.EE_STAGE2,
        label="Executive Engineer (Stage 2)",
        officer_role=OfficerRole.EXECUTIVE_ENGINEER,
        pending_status=ApplicationStatus.EE_STAGE2_PENDING,
        next_status=ApplicationStatus.CE_STAGE2_PENDING,
        binds_officer=False,
        position_filtered=False,
        requires_signature=True,
    ),
    Stage.CE_STAGE2: StageConfig(
        stage=Stage.CE_STAGE2,
        label="City Engineer (Stage 2)",
        officer_role=OfficerRole.CITY_ENGINEER,
        pending_status=ApplicationStatus.CE_STAGE2_PENDING,
        next_status=ApplicationStatus.FINAL_APPROVED,
        binds_officer=False,
        position_filtered=False,
        requires_signature=True,
    ),
}

STAGE_ORDER: list[Stage] = list(STAGES)


def get_stage(stage: Stage) -> StageConfig:
    return STAGES[stage]


def stage_awaiting(status: ApplicationStatus) -> Optional[StageConfig]:
    """The stage whose officers act on applications in this status, if any."""
    for config in STAGES.values():
        if config.pending_status == status:
            return config
    return None


def stage_after(stage: Stage) -> Optional[StageConfig]:
    """The stage an approval at ``stage`` hands the application to, if any."""
    next_status = STAGES[stage].next_status
    return stage_awaiting(next_status)
