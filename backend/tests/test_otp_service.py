"""
OTP engine: issue, supersede, attempt ceiling, expiry and single use.
"""
import pytest

from licensing.config import Settings
from licensing.models.enums import OtpPurpose
from licensing.models.otp import OtpChallenge
from licensing.services.otp_service import NOT_FOUND_MESSAGE, OtpOutcome, OtpService, generate_code

EMAIL = 'officer@pmc.gov.in'


@pytest.fixture
def otp(db, clock, notifier):
    return OtpService(db, clock=clock, notifier=notifier)


def test_generated_codes_are_six_digits():
    for _ in range(200):
        code = generate_code()
        assert len(code) == 6 and code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_issue_sends_code_and_hides_it_by_default(db, otp, notifier, last_otp):
    issued = otp.issue(EMAIL, OtpPurpose.LOGIN)
    db.commit()

    assert issued.code is None
    challenge = db.get(OtpChallenge, issued.challenge_id)
    assert last_otp(EMAIL) == challenge.code
    assert challenge.active and not challenge.used
    assert challenge.attempt_count == 0


def test_issue_exposes_code_only_outside_production(db, clock, notifier):
    debug = OtpService(db, clock=clock, notifier=notifier,
                       settings=Settings(EXPOSE_OTP_IN_RESPONSE=True, ENVIRONMENT='development'))
    assert debug.issue(EMAIL, OtpPurpose.LOGIN).code is not None

    prod = OtpService(db, clock=clock, notifier=notifier,
                      settings=Settings(EXPOSE_OTP_IN_RESPONSE=True, ENVIRONMENT='production'))
    assert prod.issue(EMAIL, OtpPurpose.LOGIN).code is None


def test_expiry_is_ten_minutes(db, otp, clock):
    issued = otp.issue(EMAIL, OtpPurpose.LOGIN)
    assert (issued.expires_at - clock.now()).total_seconds() == 600


def test_correct_code_verifies_once(db, otp, last_otp):
    otp.issue(EMAIL, OtpPurpose.LOGIN)
    code = last_otp(EMAIL)

    first = otp.verify(EMAIL, OtpPurpose.LOGIN, code)
    db.commit()
    assert first.outcome == OtpOutcome.VERIFIED
    assert first.challenge.used and first.challenge.used_at is not None

    second = otp.verify(EMAIL, OtpPurpose.LOGIN, code)
    assert second.outcome == OtpOutcome.NOT_FOUND
    assert second.message == NOT_FOUND_MESSAGE


def test_wrong_code_counts_attempts_then_locks(db, otp, last_otp):
    otp.issue(EMAIL, OtpPurpose.LOGIN)
    code = last_otp(EMAIL)
    wrong = '000000' if code != '000000' else '111111'

    first = otp.verify(EMAIL, OtpPurpose.LOGIN, wrong)
    assert first.outcome == OtpOutcome.INVALID_CODE
    assert first.attempts_remaining == 2

    second = otp.verify(EMAIL, OtpPurpose.LOGIN, wrong)
    assert second.outcome == OtpOutcome.INVALID_CODE
    assert second.attempts_remaining == 1

    third = otp.verify(EMAIL, OtpPurpose.LOGIN, wrong)
    assert third.outcome == OtpOutcome.LOCKED_OUT
    db.commit()

    challenge = third.challenge
    assert challenge.attempt_count == 3
    assert challenge.active is False

    # Lockout holds even for the right code
    after = otp.verify(EMAIL, OtpPurpose.LOGIN, code)
    assert after.outcome == OtpOutcome.LOCKED_OUT
    db.refresh(challenge)
    assert challenge.attempt_count == 3
    assert challenge.used is False


def test_correct_code_does_not_touch_attempt_count(db, otp, last_otp):
    otp.issue(EMAIL, OtpPurpose.LOGIN)
    result = otp.verify(EMAIL, OtpPurpose.LOGIN, last_otp(EMAIL))
    assert result.success
    assert result.challenge.attempt_count == 0


def test_expired_code_is_not_found(db, otp, clock, last_otp):
    otp.issue(EMAIL, OtpPurpose.LOGIN)
    code = last_otp(EMAIL)
    clock.advance(minutes=10)

    result = otp.verify(EMAIL, OtpPurpose.LOGIN, code)
    assert result.outcome == OtpOutcome.NOT_FOUND
    assert result.message == NOT_FOUND_MESSAGE


def test_code_valid_just_before_expiry(db, otp, clock, last_otp):
    otp.issue(EMAIL, OtpPurpose.LOGIN)
    clock.advance(minutes=9, seconds=59)
    assert otp.verify(EMAIL, OtpPurpose.LOGIN, last_otp(EMAIL)).success


def test_new_issue_supersedes_previous(db, otp, last_otp):
    otp.issue(EMAIL, OtpPurpose.LOGIN)
    old_code = last_otp(EMAIL)
    otp.issue(EMAIL, OtpPurpose.LOGIN)
    new_code = last_otp(EMAIL)
    db.commit()

    live = db.query(OtpChallenge).filter(OtpChallenge.active == True).all()  # noqa: E712
    assert len(live) == 1

    if old_code != new_code:
        stale = otp.verify(EMAIL, OtpPurpose.LOGIN, old_code)
        assert stale.outcome == OtpOutcome.INVALID_CODE
    assert otp.verify(EMAIL, OtpPurpose.LOGIN, new_code).success


def test_reissue_clears_lockout(db, otp, last_otp):
    otp.issue(EMAIL, OtpPurpose.LOGIN)
    for _ in range(3):
        otp.verify(EMAIL, OtpPurpose.LOGIN, 'abcdef')

    otp.issue(EMAIL, OtpPurpose.LOGIN)
    assert otp.verify(EMAIL, OtpPurpose.LOGIN, last_otp(EMAIL)).success


def test_purposes_are_independent(db, otp, last_otp):
    otp.issue(EMAIL, OtpPurpose.LOGIN)
    login_code = last_otp(EMAIL)
    otp.issue(EMAIL, OtpPurpose.REGISTRATION)

    assert otp.verify(EMAIL, OtpPurpose.LOGIN, login_code).success


def test_unknown_identifier_is_not_found(otp):
    result = otp.verify('nobody@example.com', OtpPurpose.LOGIN, '123456')
    assert result.outcome == OtpOutcome.NOT_FOUND
    assert result.message == NOT_FOUND_MESSAGE


def test_requests_since_counts_issued_challenges(db, otp, clock):
    start = clock.now()
    otp.issue('PMC-2025-000001', OtpPurpose.DOCUMENT_ACCESS)
    clock.advance(minutes=1)
    otp.issue('PMC-2025-000001', OtpPurpose.DOCUMENT_ACCESS)

    assert otp.requests_since('PMC-2025-000001', OtpPurpose.DOCUMENT_ACCESS, start) == 2
    assert otp.requests_since('PMC-2025-000001', OtpPurpose.DOCUMENT_ACCESS, clock.now()) == 1
