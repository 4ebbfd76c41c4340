"""
Application state machine: preconditions, signature gate, conditional transitions.
"""
import pytest

from licensing.exceptions import (
    ForbiddenError, InvalidTransitionError, SignatureRequiredError, ValidationError,
)
from licensing.models.enums import (
    ApplicationStatus, ApprovalStatus, Decision, OfficerRole, OtpPurpose, PositionType, Stage,
)
from licensing.services.otp_service import OtpService
from licensing.services.stages import STAGES, stage_after, stage_awaiting
from licensing.services.state_machine import ApplicationStateMachine


@pytest.fixture
def machine(db, clock):
    return ApplicationStateMachine(db, clock=clock)


@pytest.fixture
def otp(db, clock, notifier):
    return OtpService(db, clock=clock, notifier=notifier)


@pytest.fixture
def ae(make_officer):
    return make_officer(OfficerRole.ASSISTANT_ENGINEER, PositionType.STRUCTURAL_ENGINEER)


@pytest.fixture
def ae_pending(make_application, ae):
    return make_application(
        status=ApplicationStatus.ASSISTANT_ENGINEER_PENDING,
        assigned={Stage.ASSISTANT_ENGINEER: ae},
    )


def consumed_signature(otp, last_otp, machine, officer, application, stage):
    identifier = machine.signature_identifier(officer.id, application.id, stage)
    otp.issue(identifier, OtpPurpose.STAGE_SIGNATURE, deliver_to=officer.email)
    result = otp.verify(identifier, OtpPurpose.STAGE_SIGNATURE, last_otp(officer.email))
    assert result.success
    return result.challenge


def test_stage_table_chains_through_every_status():
    assert stage_after(Stage.ASSISTANT_ENGINEER).stage == Stage.EXECUTIVE_ENGINEER
    assert stage_after(Stage.EXECUTIVE_ENGINEER).stage == Stage.CITY_ENGINEER
    assert stage_after(Stage.CITY_ENGINEER) is None  # payment comes next
    assert stage_awaiting(ApplicationStatus.PAYMENT_COMPLETED).stage == Stage.CLERK
    assert stage_after(Stage.CLERK).stage == Stage.EE_STAGE2
    assert stage_after(Stage.EE_STAGE2).stage == Stage.CE_STAGE2
    assert STAGES[Stage.CE_STAGE2].next_status == ApplicationStatus.FINAL_APPROVED


def test_signature_identifier_is_scoped():
    ident = ApplicationStateMachine.signature_identifier(7, 42, Stage.ASSISTANT_ENGINEER)
    assert ident == 'sign:ASSISTANT_ENGINEER:7:42'
    assert ident != ApplicationStateMachine.signature_identifier(7, 43, Stage.ASSISTANT_ENGINEER)


def test_is_terminal():
    assert ApplicationStateMachine.is_terminal(ApplicationStatus.FINAL_APPROVED)
    assert ApplicationStateMachine.is_terminal(ApplicationStatus.REJECTED)
    assert not ApplicationStateMachine.is_terminal(ApplicationStatus.PAYMENT_PENDING)


def test_approve_with_signature_advances(db, clock, otp, last_otp, machine, ae, ae_pending, caller_for):
    signature = consumed_signature(otp, last_otp, machine, ae, ae_pending, Stage.ASSISTANT_ENGINEER)

    result = machine.advance(ae_pending.id, Stage.ASSISTANT_ENGINEER, caller_for(ae), Decision.APPROVE,
                             signature=signature)
    db.commit()

    assert result.new_status == ApplicationStatus.EXECUTIVE_ENGINEER_PENDING
    review = machine.get_review(ae_pending.id, Stage.ASSISTANT_ENGINEER)
    assert review.approval_status == ApprovalStatus.APPROVED
    assert review.approval_date == clock.now()
    assert review.acted_by_officer_id == ae.id
    assert review.signature_challenge_id == signature.id


def test_approve_without_signature_is_refused(db, machine, ae, ae_pending, caller_for):
    with pytest.raises(SignatureRequiredError):
        machine.advance(ae_pending.id, Stage.ASSISTANT_ENGINEER, caller_for(ae), Decision.APPROVE)

    db.rollback()
    db.refresh(ae_pending)
    assert ae_pending.status == ApplicationStatus.ASSISTANT_ENGINEER_PENDING
    assert machine.get_review(ae_pending.id, Stage.ASSISTANT_ENGINEER).approval_status == ApprovalStatus.PENDING


def test_signature_for_another_application_is_refused(otp, last_otp, machine, ae, ae_pending,
                                                      make_application, caller_for):
    other = make_application(status=ApplicationStatus.ASSISTANT_ENGINEER_PENDING,
                             assigned={Stage.ASSISTANT_ENGINEER: ae})
    signature = consumed_signature(otp, last_otp, machine, ae, other, Stage.ASSISTANT_ENGINEER)

    with pytest.raises(SignatureRequiredError):
        machine.advance(ae_pending.id, Stage.ASSISTANT_ENGINEER, caller_for(ae), Decision.APPROVE,
                        signature=signature)


def test_wrong_status_is_invalid_transition(db, machine, make_officer, make_application, caller_for):
    ee = make_officer(OfficerRole.EXECUTIVE_ENGINEER)
    application = make_application(status=ApplicationStatus.ASSISTANT_ENGINEER_PENDING,
                                   assigned={Stage.EXECUTIVE_ENGINEER: ee})

    with pytest.raises(InvalidTransitionError):
        machine.advance(application.id, Stage.EXECUTIVE_ENGINEER, caller_for(ee), Decision.REJECT,
                        comments='Incomplete')


def test_other_officer_is_forbidden(machine, make_officer, ae_pending, caller_for):
    intruder = make_officer(OfficerRole.ASSISTANT_ENGINEER, PositionType.STRUCTURAL_ENGINEER)
    with pytest.raises(ForbiddenError):
        machine.advance(ae_pending.id, Stage.ASSISTANT_ENGINEER, caller_for(intruder), Decision.REJECT,
                        comments='Not mine')


def test_wrong_role_is_forbidden(machine, make_officer, ae_pending, caller_for):
    clerk = make_officer(OfficerRole.CLERK)
    with pytest.raises(ForbiddenError):
        machine.check_preconditions(ae_pending, STAGES[Stage.ASSISTANT_ENGINEER], caller_for(clerk))


def test_specialty_mismatch_is_forbidden(machine, make_officer, make_application, caller_for):
    architect_ae = make_officer(OfficerRole.ASSISTANT_ENGINEER, PositionType.ARCHITECT)
    application = make_application(position_type=PositionType.STRUCTURAL_ENGINEER,
                                   status=ApplicationStatus.ASSISTANT_ENGINEER_PENDING,
                                   assigned={Stage.ASSISTANT_ENGINEER: architect_ae})
    with pytest.raises(ForbiddenError):
        machine.check_preconditions(application, STAGES[Stage.ASSISTANT_ENGINEER], caller_for(architect_ae))


def test_reject_is_terminal(db, machine, ae, ae_pending, caller_for, clock):
    result = machine.advance(ae_pending.id, Stage.ASSISTANT_ENGINEER, caller_for(ae), Decision.REJECT,
                             comments='  Drawings missing  ')
    db.commit()

    assert result.new_status == ApplicationStatus.REJECTED
    db.refresh(ae_pending)
    assert ae_pending.rejected_at_stage == Stage.ASSISTANT_ENGINEER
    assert ae_pending.remarks == 'Drawings missing'
    review = machine.get_review(ae_pending.id, Stage.ASSISTANT_ENGINEER)
    assert review.approval_status == ApprovalStatus.REJECTED
    assert review.rejection_date == clock.now()
    assert review.approval_date is None

    with pytest.raises(InvalidTransitionError):
        machine.advance(ae_pending.id, Stage.ASSISTANT_ENGINEER, caller_for(ae), Decision.REJECT,
                        comments='Again')


def test_reject_needs_comments(machine, ae, ae_pending, caller_for):
    with pytest.raises(ValidationError):
        machine.advance(ae_pending.id, Stage.ASSISTANT_ENGINEER, caller_for(ae), Decision.REJECT, comments='   ')


def test_clerk_processes_without_signature(db, machine, make_officer, make_application, caller_for):
    clerk = make_officer(OfficerRole.CLERK)
    application = make_application(status=ApplicationStatus.PAYMENT_COMPLETED)

    result = machine.advance(application.id, Stage.CLERK, caller_for(clerk), Decision.APPROVE)
    assert result.new_status == ApplicationStatus.EE_STAGE2_PENDING


def test_route_and_payment_transitions(db, machine, make_application):
    application = make_application()
    assert machine.route_for_review(application.id).new_status == ApplicationStatus.ASSISTANT_ENGINEER_PENDING
    assert machine.get_review(application.id, Stage.ASSISTANT_ENGINEER) is not None

    with pytest.raises(InvalidTransitionError):
        machine.route_for_review(application.id)

    paying = make_application(status=ApplicationStatus.PAYMENT_PENDING)
    assert machine.record_payment(paying.id).new_status == ApplicationStatus.PAYMENT_COMPLETED
    with pytest.raises(InvalidTransitionError):
        machine.record_payment(paying.id)
