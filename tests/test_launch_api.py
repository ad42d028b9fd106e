"""
API tests for the launch password reset campaign endpoints.
"""

import pytest
from rxportal.models import LaunchPasswordReset


@pytest.fixture
def admin_headers(auth_headers, admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def outbox(app, db_session):
    with app.extensions['mail'].record_messages() as messages:
        yield messages


class TestLaunchAPI:
    """Test /api/launch"""

    def test_health(self, client):
        data = client.get('/api/launch/health').get_json()
        assert data['status'] == 'ok'
        assert data['service'] == 'launch-password-reset'

    def test_send_test_email(self, client, outbox, admin_headers, pharmacy_user):
        """Test that test mode sends exactly one email"""
        response = client.post('/api/launch/send-reset-emails', headers=admin_headers,
                               json={'testMode': True, 'testEmail': pharmacy_user.email})
        data = response.get_json()
        assert response.status_code == 200
        assert data['results']['sent'] == 1
        assert data['testMode']
        assert not data['sendToAll']
        assert len(outbox) == 1

    def test_send_selected(self, client, outbox, admin_headers, pharmacy_user, group_user):
        response = client.post('/api/launch/send-reset-emails', headers=admin_headers,
                               json={'selectedUserIds': [group_user.user_id]})
        data = response.get_json()
        assert data['selectedMode']
        assert data['results'] == {'total': 1, 'sent': 1, 'failed': 0, 'errors': []}
        assert outbox[0].recipients == [group_user.email]

    def test_send_requires_mode_and_admin(self, client, admin_headers, pharmacy_user, auth_headers):
        response = client.post('/api/launch/send-reset-emails', headers=admin_headers, json={})
        assert response.status_code == 400

        response = client.post('/api/launch/send-reset-emails', headers=auth_headers(pharmacy_user),
                               json={'sendToAll': True})
        assert response.status_code == 403

    def test_mark_completed_and_stats(self, client, outbox, admin_headers, pharmacy_user):
        client.post('/api/launch/send-reset-emails', headers=admin_headers,
                    json={'testMode': True, 'testEmail': pharmacy_user.email})

        response = client.post('/api/launch/mark-completed',
                               json={'email': pharmacy_user.email, 'action': 'both'})
        assert response.status_code == 200
        assert response.get_json()['reset']['email'] == pharmacy_user.email
        assert LaunchPasswordReset.query.one().completed

        stats = client.get('/api/launch/reset-stats', headers=admin_headers).get_json()['stats']
        assert stats['total_emails_sent'] == 1
        assert stats['completed'] == 1

    def test_mark_completed_errors(self, client, db_session, pharmacy_user):
        response = client.post('/api/launch/mark-completed', json={'email': pharmacy_user.email, 'action': 'nope'})
        assert response.get_json()['error_code'] == 'INVALID_ACTION'
        response = client.post('/api/launch/mark-completed', json={'email': 'ghost@example.com', 'action': 'both'})
        assert response.status_code == 404
