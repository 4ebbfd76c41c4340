"""
HTTP surface: status codes, auth and the end-to-end officer and applicant flows.
"""
import re

import pytest

from licensing.models.application import Application
from licensing.models.download import GeneratedDocument
from licensing.models.enums import ApplicationStatus, ArtifactKind, OfficerRole, PositionType, Stage
from licensing.services.certificate_service import CertificateService


@pytest.fixture
def admin(make_officer):
    return make_officer(OfficerRole.ADMIN, email='admin@pmc.gov.in')


@pytest.fixture
def ae(make_officer):
    return make_officer(OfficerRole.ASSISTANT_ENGINEER, PositionType.STRUCTURAL_ENGINEER)


class TestHealth:
    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'


class TestApplications:
    def test_submit_and_read_status(self, client):
        response = client.post('/api/applications', json={
            'position_type': 'STRUCTURAL_ENGINEER',
            'applicant_name': 'Asha Kulkarni',
            'applicant_email': 'asha@example.com',
            'applicant_phone': '9876543210',
        })
        assert response.status_code == 201
        body = response.json()
        assert re.fullmatch(r'PMC-2025-\d{6}', body['application_number'])
        assert body['status'] == 'SUBMITTED'

        status = client.get(f"/api/applications/{body['application_id']}/status")
        assert status.status_code == 200
        view = status.json()
        assert view['progress_percent'] == 0
        assert view['next_action'] == 'Awaiting routing for scrutiny'
        assert [entry['state'] for entry in view['timeline']] == ['upcoming'] * 6

    def test_invalid_email_is_rejected(self, client):
        response = client.post('/api/applications', json={
            'position_type': 'ARCHITECT',
            'applicant_name': 'Asha Kulkarni',
            'applicant_email': 'not-an-email',
        })
        assert response.status_code == 400
        assert response.json() == {
            'success': False, 'message': 'A valid applicant email is required', 'code': 'VALIDATION_ERROR',
        }

    def test_unknown_application_status(self, client):
        response = client.get('/api/applications/999/status')
        assert response.status_code == 404
        assert response.json()['code'] == 'NOT_FOUND'


class TestAuth:
    def test_officer_login(self, client, ae, last_otp):
        sent = client.post('/api/auth/send-otp', json={'identifier': ae.email, 'purpose': 'LOGIN'})
        assert sent.status_code == 200
        assert sent.json()['otp'] is None

        verified = client.post('/api/auth/verify-otp', json={
            'identifier': ae.email, 'purpose': 'LOGIN', 'code': last_otp(ae.email),
        })
        assert verified.status_code == 200
        token = verified.json()['access_token']

        queue = client.get('/api/workflow/ASSISTANT_ENGINEER/pending',
                           headers={'Authorization': f'Bearer {token}'})
        assert queue.status_code == 200
        assert queue.json() == []

    def test_wrong_login_code(self, client, ae, last_otp):
        client.post('/api/auth/send-otp', json={'identifier': ae.email})
        code = last_otp(ae.email)
        wrong = '000000' if code != '000000' else '111111'

        response = client.post('/api/auth/verify-otp', json={'identifier': ae.email, 'code': wrong})
        assert response.status_code == 400
        assert response.json()['code'] == 'INVALID_CODE'

    def test_unknown_officer_looks_like_a_real_send(self, client, ae, notifier):
        known = client.post('/api/auth/send-otp', json={'identifier': ae.email})
        unknown = client.post('/api/auth/send-otp', json={'identifier': 'nobody@pmc.gov.in'})

        assert unknown.status_code == known.status_code == 200
        assert unknown.json()['message'] == known.json()['message']
        assert notifier.messages_to('nobody@pmc.gov.in') == []

    def test_send_otp_is_rate_limited(self, client, ae):
        codes = [
            client.post('/api/auth/send-otp', json={'identifier': ae.email}).status_code
            for _ in range(6)
        ]
        assert codes == [200] * 5 + [429]

    def test_workflow_needs_a_session(self, client):
        assert client.get('/api/workflow/CLERK/pending').status_code == 401


class TestWorkflow:
    def test_route_sign_and_repeat(self, client, db, admin, ae, auth_headers, make_application, last_otp):
        application = make_application()

        routed = client.post(f'/api/admin/applications/{application.id}/route', headers=auth_headers(admin))
        assert routed.status_code == 200
        assert routed.json()['new_status'] == 'ASSISTANT_ENGINEER_PENDING'

        pending = client.get('/api/workflow/ASSISTANT_ENGINEER/pending', headers=auth_headers(ae))
        assert [item['application_id'] for item in pending.json()] == [application.id]

        otp = client.post(f'/api/workflow/ASSISTANT_ENGINEER/{application.id}/generate-otp',
                          headers=auth_headers(ae))
        assert otp.status_code == 200
        assert otp.json()['success'] is True
        code = last_otp(ae.email)

        signed = client.post(f'/api/workflow/ASSISTANT_ENGINEER/{application.id}/verify-and-sign',
                             json={'otp': code, 'comments': 'Documents in order'}, headers=auth_headers(ae))
        assert signed.status_code == 200
        assert signed.json()['new_status'] == 'EXECUTIVE_ENGINEER_PENDING'

        repeat = client.post(f'/api/workflow/ASSISTANT_ENGINEER/{application.id}/verify-and-sign',
                             json={'otp': code}, headers=auth_headers(ae))
        assert repeat.status_code == 409
        assert repeat.json()['code'] == 'INVALID_TRANSITION'

        db.expire_all()
        assert db.get(Application, application.id).status == ApplicationStatus.EXECUTIVE_ENGINEER_PENDING

    def test_wrong_role_is_forbidden(self, client, make_officer, auth_headers, make_application):
        clerk = make_officer(OfficerRole.CLERK)
        application = make_application(status=ApplicationStatus.CITY_ENGINEER_PENDING)

        response = client.post(f'/api/workflow/CITY_ENGINEER/{application.id}/generate-otp',
                               headers=auth_headers(clerk))
        assert response.status_code == 403
        assert response.json()['code'] == 'FORBIDDEN'

        queue = client.get('/api/workflow/CITY_ENGINEER/pending', headers=auth_headers(clerk))
        assert queue.status_code == 403

    def test_reject_without_comments(self, client, ae, auth_headers, make_application):
        application = make_application(status=ApplicationStatus.ASSISTANT_ENGINEER_PENDING,
                                       assigned={Stage.ASSISTANT_ENGINEER: ae})

        blank = client.post(f'/api/workflow/ASSISTANT_ENGINEER/{application.id}/reject',
                            json={'comments': '  '}, headers=auth_headers(ae))
        assert blank.status_code == 400
        assert blank.json()['code'] == 'VALIDATION_ERROR'

        rejected = client.post(f'/api/workflow/ASSISTANT_ENGINEER/{application.id}/reject',
                               json={'comments': 'Experience certificate missing'}, headers=auth_headers(ae))
        assert rejected.status_code == 200
        assert rejected.json()['new_status'] == 'REJECTED'

        status = client.get(f'/api/applications/{application.id}/status').json()
        assert status['rejected_at_stage'] == 'ASSISTANT_ENGINEER'
        assert status['remarks'] == 'Experience certificate missing'

    def test_unknown_stage(self, client, ae, auth_headers):
        assert client.get('/api/workflow/MAYOR/pending', headers=auth_headers(ae)).status_code == 422

    def test_mock_payment(self, client, db, store, admin, auth_headers, make_application, notifier):
        application = make_application(status=ApplicationStatus.PAYMENT_PENDING)

        paid = client.post(f'/api/payment/{application.id}/complete', headers=auth_headers(admin))
        assert paid.status_code == 200
        assert paid.json()['new_status'] == 'PAYMENT_COMPLETED'
        assert notifier.messages_to('applicant@example.com')

        challan = db.query(GeneratedDocument).filter_by(application_id=application.id,
                                                        kind=ArtifactKind.CHALLAN).one()
        assert store.get(challan.storage_key).startswith(b'%PDF')

        again = client.post(f'/api/payment/{application.id}/complete', headers=auth_headers(admin))
        assert again.status_code == 409


class TestDownload:
    @pytest.fixture
    def approved(self, db, clock, store, make_application):
        application = make_application(status=ApplicationStatus.FINAL_APPROVED)
        CertificateService(db, store=store, clock=clock).attach_document(
            application, ArtifactKind.CERTIFICATE, b'%PDF-1.4 certificate',
            f'licence-certificate-{application.application_number}.pdf',
        )
        db.commit()
        return application

    def test_download_flow(self, client, approved, clock, last_otp):
        access = client.post('/api/download/request-access', json={
            'application_number': approved.application_number, 'email': 'applicant@example.com',
        })
        assert access.status_code == 200
        assert access.json()['otp'] is None

        verified = client.post('/api/download/verify-otp', json={
            'application_number': approved.application_number, 'otp': last_otp('applicant@example.com'),
        })
        assert verified.status_code == 200
        token = verified.json()['token']
        assert verified.json()['applicant_name'] == 'Asha Kulkarni'

        document = client.get(f'/api/download/certificate/{token}')
        assert document.status_code == 200
        assert document.headers['content-type'] == 'application/pdf'
        assert 'licence-certificate-' in document.headers['content-disposition']
        assert document.content == b'%PDF-1.4 certificate'

        missing = client.get(f'/api/download/challan/{token}')
        assert missing.status_code == 404

        clock.advance(minutes=10)
        expired = client.get(f'/api/download/certificate/{token}')
        assert expired.status_code == 410
        assert expired.json()['code'] == 'EXPIRED'

    def test_review_chain_produces_every_document(self, client, admin, ae, make_officer, auth_headers,
                                                  make_application, last_otp):
        ee = make_officer(OfficerRole.EXECUTIVE_ENGINEER)
        ce = make_officer(OfficerRole.CITY_ENGINEER)
        clerk = make_officer(OfficerRole.CLERK)
        application = make_application()

        def approve(stage, officer, sign=True):
            path = f'/api/workflow/{stage}/{application.id}'
            body = {}
            if sign:
                assert client.post(f'{path}/generate-otp', headers=auth_headers(officer)).status_code == 200
                body = {'otp': last_otp(officer.email)}
            response = client.post(f'{path}/verify-and-sign', json=body, headers=auth_headers(officer))
            assert response.status_code == 200, response.json()
            return response.json()['new_status']

        assert client.post(f'/api/admin/applications/{application.id}/route',
                           headers=auth_headers(admin)).status_code == 200
        approve('ASSISTANT_ENGINEER', ae)
        approve('EXECUTIVE_ENGINEER', ee)
        assert approve('CITY_ENGINEER', ce) == 'PAYMENT_PENDING'
        assert client.post(f'/api/payment/{application.id}/complete',
                           headers=auth_headers(admin)).status_code == 200
        approve('CLERK', clerk, sign=False)
        approve('EE_STAGE2', ee)
        assert approve('CE_STAGE2', ce) == 'FINAL_APPROVED'

        client.post('/api/download/request-access', json={
            'application_number': application.application_number, 'email': 'applicant@example.com',
        })
        token = client.post('/api/download/verify-otp', json={
            'application_number': application.application_number, 'otp': last_otp('applicant@example.com'),
        }).json()['token']

        for kind in ('certificate', 'recommendation-form', 'challan'):
            document = client.get(f'/api/download/{kind}/{token}')
            assert document.status_code == 200, kind
            assert document.content.startswith(b'%PDF')
            assert f'{kind}-' in document.headers['content-disposition']

    def test_mismatched_email(self, client, approved, notifier):
        response = client.post('/api/download/request-access', json={
            'application_number': approved.application_number, 'email': 'intruder@example.com',
        })
        assert response.status_code == 404
        assert response.json()['success'] is False
        assert notifier.outbox == []

    def test_daily_limit(self, client, approved):
        payload = {'application_number': approved.application_number, 'email': 'applicant@example.com'}
        codes = [client.post('/api/download/request-access', json=payload).status_code for _ in range(4)]
        assert codes == [200, 200, 200, 429]

    def test_bad_token_and_kind(self, client):
        assert client.get('/api/download/certificate/nope').status_code == 404
        assert client.get('/api/download/photo/nope').status_code == 404


class TestAdmin:
    def test_officer_registry(self, client, admin, auth_headers):
        payload = {'name': 'Ravi Deshmukh', 'email': 'ravi@pmc.gov.in', 'role': 'EXECUTIVE_ENGINEER'}
        created = client.post('/api/admin/officers', json=payload, headers=auth_headers(admin))
        assert created.status_code == 201
        assert created.json()['is_active'] is True

        duplicate = client.post('/api/admin/officers', json=payload, headers=auth_headers(admin))
        assert duplicate.status_code == 409

        listed = client.get('/api/admin/officers?role=EXECUTIVE_ENGINEER', headers=auth_headers(admin))
        assert [o['email'] for o in listed.json()] == ['ravi@pmc.gov.in']

    def test_ae_needs_specialty(self, client, admin, auth_headers):
        response = client.post('/api/admin/officers', json={
            'name': 'Meera Joshi', 'email': 'meera@pmc.gov.in', 'role': 'ASSISTANT_ENGINEER',
        }, headers=auth_headers(admin))
        assert response.status_code == 400

    def test_admin_only(self, client, ae, auth_headers):
        assert client.get('/api/admin/dashboard', headers=auth_headers(ae)).status_code == 403

    def test_manual_assignment(self, client, admin, ae, auth_headers, make_application):
        application = make_application(status=ApplicationStatus.ASSISTANT_ENGINEER_PENDING)

        assigned = client.post(f'/api/admin/applications/{application.id}/assign',
                               json={'stage': 'ASSISTANT_ENGINEER', 'officer_id': ae.id},
                               headers=auth_headers(admin))
        assert assigned.status_code == 200
        assert assigned.json()['officer_id'] == ae.id

        clerk_stage = client.post(f'/api/admin/applications/{application.id}/assign',
                                  json={'stage': 'CLERK', 'officer_id': ae.id}, headers=auth_headers(admin))
        assert clerk_stage.status_code == 400

    def test_dashboard_and_audit(self, client, admin, auth_headers, make_application):
        application = make_application()
        make_application(status=ApplicationStatus.FINAL_APPROVED)

        assert client.get(f'/api/admin/audit/{application.id}', headers=auth_headers(admin)).status_code == 404

        routed = client.post(f'/api/admin/applications/{application.id}/route', headers=auth_headers(admin))
        assert routed.json()['message'] == 'Routed; no Assistant Engineer available'

        dashboard = client.get('/api/admin/dashboard', headers=auth_headers(admin)).json()
        assert dashboard['total_applications'] == 2
        assert dashboard['by_status'] == {'ASSISTANT_ENGINEER_PENDING': 1, 'FINAL_APPROVED': 1}
        assert dashboard['unassigned_reviews'] == 1

        trail = client.get(f'/api/admin/audit/{application.id}', headers=auth_headers(admin)).json()
        assert [entry['action'] for entry in trail] == ['ROUTED_FOR_REVIEW']

        chain = client.get(f'/api/admin/audit/{application.id}/verify', headers=auth_headers(admin)).json()
        assert chain['valid'] is True
