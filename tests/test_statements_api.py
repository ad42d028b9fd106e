"""
API tests for statement JSON, PDF download and server-side export.
"""

from datetime import datetime

import pytest
from rxportal.models import AccountTransaction

FEBRUARY = 'start_date=2024-02-01&end_date=2024-02-29'


@pytest.fixture
def ledger(db_session, pharmacy_user):
    AccountTransaction.record(pharmacy_user.id, 'Opening order', debit=100, transaction_date=datetime(2024, 1, 15))
    AccountTransaction.record(pharmacy_user.id, 'Payment received', credit=60, reference_type='payment',
                              transaction_date=datetime(2024, 2, 10))
    db_session.commit()


@pytest.fixture
def pharmacy_headers(auth_headers, pharmacy_user):
    return auth_headers(pharmacy_user)


class TestStatementsAPI:
    """Test /api/statements"""

    def test_statement_json(self, client, ledger, pharmacy_headers, pharmacy_user):
        response = client.get(f"/api/statements?{FEBRUARY}", headers=pharmacy_headers)
        data = response.get_json()
        assert response.status_code == 200
        assert data['statement']['opening_balance'] == -100.0
        assert data['statement']['closing_balance'] == -40.0
        assert data['statement']['transactions'][0]['credit_amount'] == 60.0
        assert data['validation']['is_valid']
        assert data['filename'] == f"statement_{pharmacy_user.user_id}_2024-02-01_to_2024-02-29.pdf"

    def test_empty_period(self, client, ledger, pharmacy_headers):
        """Test that quiet periods need include_zero_activity"""
        response = client.get('/api/statements?start_date=2024-03-01&end_date=2024-03-31', headers=pharmacy_headers)
        assert response.status_code == 400
        assert response.get_json()['error_code'] == 'STATEMENT_ERROR'

        response = client.get('/api/statements?start_date=2024-03-01&end_date=2024-03-31'
                              '&include_zero_activity=true', headers=pharmacy_headers)
        assert response.get_json()['statement']['closing_balance'] == -40.0

    def test_bad_dates(self, client, ledger, pharmacy_headers):
        response = client.get('/api/statements?start_date=soon&end_date=2024-02-29', headers=pharmacy_headers)
        assert response.get_json()['errors'] == {'start_date': 'Invalid date'}

    def test_only_admins_read_other_statements(self, client, ledger, pharmacy_user, group_user,
                                               admin_user, auth_headers):
        url = f"/api/statements?{FEBRUARY}&user_id={pharmacy_user.user_id}"
        assert client.get(url, headers=auth_headers(group_user)).status_code == 403
        assert client.get(url, headers=auth_headers(admin_user)).status_code == 200
        assert client.get(url).status_code == 401

    def test_download_pdf(self, client, ledger, pharmacy_headers):
        response = client.get(f"/api/statements/download?{FEBRUARY}", headers=pharmacy_headers)
        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')
        assert 'statement_Main_Street_Pharmacy_2024-02-01_to_2024-02-29_' in response.headers['Content-Disposition']

    def test_download_future_dates_rejected(self, client, ledger, pharmacy_headers):
        response = client.get('/api/statements/download?start_date=2024-02-01&end_date=2999-01-01',
                              headers=pharmacy_headers)
        assert response.status_code == 400
        assert response.get_json()['error_code'] == 'INVALID_REQUEST'

    def test_export_saves_file(self, client, app, ledger, pharmacy_headers):
        response = client.post('/api/statements/export', headers=pharmacy_headers,
                               json={'start_date': '2024-02-01', 'end_date': '2024-02-29'})
        data = response.get_json()
        assert response.status_code == 200
        assert data['success']
        assert data['validation_passed']
        assert data['path'].startswith(app.config['STATEMENT_OUTPUT_DIR'])

    def test_export_failure_is_422(self, client, ledger, pharmacy_headers):
        response = client.post('/api/statements/export', headers=pharmacy_headers,
                               json={'start_date': '2024-03-01', 'end_date': '2024-03-31'})
        assert response.status_code == 422
        assert response.get_json()['error'] == 'No transactions found for the selected period'
