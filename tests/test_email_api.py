"""
API tests for test emails and email queue administration.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from rxportal.models import EmailQueue, EmailTemplate
from rxportal.utils.email_service import email_service


@pytest.fixture
def admin_headers(auth_headers, admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def outbox(app, db_session):
    with app.extensions['mail'].record_messages() as messages:
        yield messages


class TestSendTest:
    """Test /api/email/send-test"""

    def test_plain_test_email(self, client, outbox, admin_headers):
        response = client.post('/api/email/send-test', headers=admin_headers,
                               json={'to': 'QA@Example.com', 'content': '<p>Ping</p>'})
        assert response.status_code == 200
        assert response.get_json()['message_id']
        assert outbox[0].recipients == ['qa@example.com']
        assert outbox[0].subject == 'Test Email from 9RX'

    def test_template_test_email(self, client, db_session, outbox, admin_headers):
        template = EmailTemplate(name='Promo', subject='Deals for {{company_name}}',
                                 html_content='<p>{{company_name}}</p>')
        db_session.add(template)
        db_session.commit()

        client.post('/api/email/send-test', headers=admin_headers, json={
            'to': 'qa@example.com', 'template_id': template.id, 'variables': {'company_name': 'Acme Rx'},
        })
        assert outbox[0].subject == 'Deals for Acme Rx'

        response = client.post('/api/email/send-test', headers=admin_headers,
                               json={'to': 'qa@example.com', 'template_id': 404})
        assert response.get_json()['error_code'] == 'TEMPLATE_NOT_FOUND'

    def test_invalid_recipient(self, client, admin_headers):
        response = client.post('/api/email/send-test', headers=admin_headers, json={'to': 'not-an-email'})
        assert response.status_code == 400
        assert 'to' in response.get_json()['errors']

    def test_send_failure(self, client, admin_headers):
        with patch.object(email_service, 'send_test_email', return_value=(False, 'smtp down')):
            response = client.post('/api/email/send-test', headers=admin_headers, json={'to': 'qa@example.com'})
        assert response.status_code == 502
        assert response.get_json()['error_code'] == 'EMAIL_SEND_FAILED'


class TestQueueAdmin:
    """Test /api/email/queue"""

    def test_process_retry_and_stats(self, client, db_session, outbox, admin_headers):
        """Test the admin queue controls end to end"""
        email_service.queue_email('a@example.com', 'A', '<p>a</p>',
                                  scheduled_at=datetime.utcnow() - timedelta(minutes=1))
        db_session.add(EmailQueue(email='b@example.com', subject='B', html_content='b', status='failed',
                                  attempts=1))
        db_session.commit()

        results = client.post('/api/email/queue/process', headers=admin_headers, json={'limit': 10}).get_json()
        assert results['results']['sent'] == 1
        assert [m.subject for m in outbox] == ['A']

        assert client.post('/api/email/queue/retry', headers=admin_headers).get_json()['requeued'] == 1

        stats = client.get('/api/email/queue/stats', headers=admin_headers).get_json()['stats']
        assert stats['pending'] == 1
        assert stats['sent'] == 1
        assert stats['failed'] == 0

    def test_process_limit_must_be_integer(self, client, admin_headers):
        response = client.post('/api/email/queue/process', headers=admin_headers, json={'limit': 'many'})
        assert response.status_code == 400

    def test_requires_admin(self, client, pharmacy_user, auth_headers):
        assert client.get('/api/email/queue/stats', headers=auth_headers(pharmacy_user)).status_code == 403
