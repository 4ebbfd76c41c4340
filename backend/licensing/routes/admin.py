"""
Admin Routes — Intake routing, officer registry, assignment, dashboard and audit trail.
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from licensing.clock import Clock, get_clock
from licensing.database import get_db
from licensing.exceptions import ValidationError
from licensing.models.application import Application, StageReview
from licensing.models.audit import DownloadAuditLog
from licensing.models.enums import ApprovalStatus, OfficerRole, Stage
from licensing.models.officer import Officer
from licensing.schemas.schemas import (
    ActionResponse, AdminDashboardResponse, AssignRequest, AssignResponse,
    AuditLogEntry, OfficerCreateRequest, OfficerResponse,
)
from licensing.services.assignment_service import AssignmentService
from licensing.services.audit_service import AuditService
from licensing.services.auth_service import require_admin
from licensing.services.stages import get_stage
from licensing.services.state_machine import ApplicationStateMachine, Caller
from licensing.utils.validators import validate_email

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.post("/applications/{application_id}/route", response_model=ActionResponse)
def route_application(
    application_id: int,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Send a submitted application to Assistant Engineer scrutiny."""
    machine = ApplicationStateMachine(db, clock=clock)
    result = machine.route_for_review(application_id)

    application = machine.get_application(application_id)
    officer = AssignmentService(db, clock=clock).auto_assign(application, Stage.ASSISTANT_ENGINEER)

    AuditService.log(
        db, application_id, "ROUTED_FOR_REVIEW",
        actor=caller.actor,
        payload={"to": result.new_status.value, "assigned_officer_id": officer.id if officer else None},
        ip_address=request.client.host if request.client else None,
        timestamp=clock.now(),
    )
    db.commit()

    message = f"Routed and assigned to {officer.name}" if officer else "Routed; no Assistant Engineer available"
    return ActionResponse(success=True, message=message, new_status=result.new_status)


@router.post("/applications/{application_id}/assign", response_model=AssignResponse)
def assign_officer(
    application_id: int,
    payload: AssignRequest,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Manually bind a stage review to an officer."""
    try:
        stage = Stage(payload.stage)
    except ValueError:
        raise ValidationError(f"Unknown stage: {payload.stage}")
    if not get_stage(stage).binds_officer:
        raise ValidationError(f"{get_stage(stage).label} reviews are not assigned to individual officers")

    application = ApplicationStateMachine(db, clock=clock).get_application(application_id)
    officer = AssignmentService(db, clock=clock).assign(application, stage, payload.officer_id)

    AuditService.log(
        db, application_id, "OFFICER_ASSIGNED",
        actor=caller.actor,
        payload={"stage": stage.value, "officer_id": officer.id},
        ip_address=request.client.host if request.client else None,
        timestamp=clock.now(),
    )
    db.commit()

    return AssignResponse(
        application_id=application_id,
        stage=stage.value,
        officer_id=officer.id,
        officer_name=officer.name,
    )


@router.post("/officers", response_model=OfficerResponse, status_code=201)
def create_officer(
    payload: OfficerCreateRequest,
    _admin: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Register an officer."""
    if not validate_email(payload.email):
        raise ValidationError("A valid officer email is required")
    if payload.role == OfficerRole.ASSISTANT_ENGINEER and payload.specialty is None:
        raise ValidationError("Assistant Engineers need a position-type specialty")

    existing = db.query(Officer).filter(func.lower(Officer.email) == payload.email.strip().lower()).first()
    if existing:
        raise HTTPException(status_code=409, detail="An officer with this email already exists")

    officer = Officer(
        name=payload.name.strip(),
        email=payload.email.strip(),
        phone=payload.phone,
        role=payload.role,
        specialty=payload.specialty,
        is_active=True,
    )
    db.add(officer)
    db.commit()
    db.refresh(officer)
    return officer


@router.get("/officers", response_model=list[OfficerResponse])
def list_officers(
    role: OfficerRole = None,
    _admin: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """List officers, optionally by role."""
    query = db.query(Officer).order_by(Officer.id.asc())
    if role:
        query = query.filter(Officer.role == role)
    return query.all()


@router.get("/dashboard", response_model=AdminDashboardResponse)
def get_dashboard(
    _admin: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Aggregated workload metrics."""
    total = db.query(func.count(Application.id)).scalar() or 0

    by_status = db.query(Application.status, func.count(Application.id)).group_by(Application.status).all()
    by_position = db.query(
        Application.position_type, func.count(Application.id)
    ).group_by(Application.position_type).all()

    unassigned = db.query(func.count(StageReview.id)).filter(
        StageReview.stage.in_([Stage.ASSISTANT_ENGINEER, Stage.EXECUTIVE_ENGINEER, Stage.CITY_ENGINEER]),
        StageReview.assigned_officer_id.is_(None),
        StageReview.approval_status == ApprovalStatus.PENDING,
    ).scalar() or 0

    certificates = db.query(func.count(Application.id)).filter(
        Application.certificate_number.isnot(None)
    ).scalar() or 0
    downloads = db.query(func.count(DownloadAuditLog.id)).filter(
        DownloadAuditLog.success == True  # noqa: E712
    ).scalar() or 0

    return AdminDashboardResponse(
        total_applications=total,
        by_status={s.value: c for s, c in by_status},
        by_position={p.value: c for p, c in by_position},
        unassigned_reviews=unassigned,
        certificates_issued=certificates,
        downloads_served=downloads,
    )


@router.get("/audit/{application_id}", response_model=list[AuditLogEntry])
def get_audit_trail(
    application_id: int,
    _admin: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Get the full audit trail for an application."""
    logs = AuditService.get_trail(db, application_id)
    if not logs:
        raise HTTPException(status_code=404, detail="No audit logs found for this application")
    return logs


@router.get("/audit/{application_id}/verify")
def verify_audit_chain(
    application_id: int,
    _admin: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Verify the integrity of the audit hash chain for an application."""
    return AuditService.verify_chain(db, application_id)
