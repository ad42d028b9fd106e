"""
API tests for the pharmacy side of credit term offers.
"""

from datetime import datetime, timedelta

import pytest
from rxportal.utils.credit_terms import send_credit_terms


@pytest.fixture
def offer(db_session, pharmacy_user, admin_user):
    return send_credit_terms(pharmacy_user, admin_user, '3000', net_terms=30)


@pytest.fixture
def pharmacy_headers(auth_headers, pharmacy_user):
    return auth_headers(pharmacy_user)


class TestCreditTermsAPI:
    """Test /api/credit-terms"""

    def test_pending_view_accept(self, client, offer, pharmacy_headers, pharmacy_user):
        """Test that a pharmacy can review and sign an offer"""
        pending = client.get('/api/credit-terms/pending', headers=pharmacy_headers).get_json()
        assert [t['id'] for t in pending['terms']] == [offer.id]

        terms = client.post(f"/api/credit-terms/{offer.id}/view", headers=pharmacy_headers).get_json()['terms']
        assert terms['status'] == 'viewed'

        response = client.post(f"/api/credit-terms/{offer.id}/accept", headers=pharmacy_headers,
                               json={'signed_name': 'Jane Pharmacist', 'signed_title': 'Owner'})
        data = response.get_json()
        assert response.status_code == 200
        assert data['terms']['status'] == 'accepted'
        assert data['credit_limit'] == 3000.0
        assert data['net_terms'] == 30
        assert client.get('/api/credit-terms/pending', headers=pharmacy_headers).get_json()['terms'] == []

    def test_accept_requires_signature(self, client, offer, pharmacy_headers):
        response = client.post(f"/api/credit-terms/{offer.id}/accept", headers=pharmacy_headers, json={})
        assert response.status_code == 400

    def test_reject(self, client, offer, pharmacy_headers):
        response = client.post(f"/api/credit-terms/{offer.id}/reject", headers=pharmacy_headers,
                               json={'reason': 'Not needed'})
        terms = response.get_json()['terms']
        assert terms['status'] == 'rejected'
        assert terms['rejection_reason'] == 'Not needed'

        response = client.post(f"/api/credit-terms/{offer.id}/accept", headers=pharmacy_headers,
                               json={'signed_name': 'Jane'})
        assert response.get_json()['error_code'] == 'TERMS_CLOSED'

    def test_expired_offers_drop_out(self, client, db_session, offer, pharmacy_headers):
        offer.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db_session.commit()
        assert client.get('/api/credit-terms/pending', headers=pharmacy_headers).get_json()['terms'] == []
        assert offer.status == 'expired'

    def test_other_users_offer_is_hidden(self, client, offer, group_user, auth_headers):
        response = client.post(f"/api/credit-terms/{offer.id}/view", headers=auth_headers(group_user))
        assert response.status_code == 404
        assert response.get_json()['error_code'] == 'TERMS_NOT_FOUND'
