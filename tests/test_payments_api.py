"""
API tests for payment processing, refunds, saved cards, ACH and processor settings.
"""

import json
from decimal import Decimal
from unittest.mock import patch, Mock

import pytest
from rxportal.models import db, Order, PaymentTransaction, SavedPaymentMethod

from conftest import VISA_CARD, BILLING, ACH_ACCOUNT

APPROVED = {
    'transactionResponse': {'responseCode': '1', 'transId': '60099', 'authCode': 'OK1'},
    'messages': {'resultCode': 'Ok', 'message': [{'code': 'I00001', 'text': 'Successful.'}]},
}
DECLINED = {
    'transactionResponse': {'responseCode': '2', 'errors': {'error': [
        {'errorCode': '2', 'errorText': 'This transaction has been declined.'}]}},
    'messages': {'resultCode': 'Error', 'message': [{'code': 'E00027', 'text': 'The transaction was unsuccessful.'}]},
}


def gateway_reply(payload):
    return Mock(text=json.dumps(payload), status_code=200)


@pytest.fixture
def order(db_session, pharmacy_user):
    order = Order(profile_id=pharmacy_user.id, total_amount=Decimal('60.00'))
    db_session.add(order)
    db_session.commit()
    return order


@pytest.fixture
def pharmacy_headers(auth_headers, pharmacy_user):
    return auth_headers(pharmacy_user)


@pytest.fixture
def admin_headers(auth_headers, admin_user):
    return auth_headers(admin_user)


class TestProcessPayment:
    """Test /api/payments/process"""

    @patch('rxportal.utils.payment_gateway.requests.post')
    def test_card_payment(self, mock_post, client, order, pharmacy_headers):
        """Test that an approved card payment marks the order paid"""
        mock_post.return_value = gateway_reply(APPROVED)
        response = client.post('/api/payments/process', headers=pharmacy_headers, json={
            'order_id': order.id, 'payment': {'type': 'card', **VISA_CARD}, 'billing': BILLING,
        })
        data = response.get_json()
        assert response.status_code == 200
        assert data['transaction_id'] == '60099'
        assert data['payment_summary']['label'] == 'Paid'
        assert order.payment_status == 'paid'

    @patch('rxportal.utils.payment_gateway.requests.post')
    def test_decline_returns_402(self, mock_post, client, order, pharmacy_headers):
        mock_post.return_value = gateway_reply(DECLINED)
        response = client.post('/api/payments/process', headers=pharmacy_headers, json={
            'order_id': order.id, 'payment': {'type': 'card', **VISA_CARD},
        })
        assert response.status_code == 402
        assert response.get_json()['error'] == 'This transaction has been declined.'

    def test_card_errors_are_field_mapped(self, client, order, pharmacy_headers):
        response = client.post('/api/payments/process', headers=pharmacy_headers, json={
            'order_id': order.id, 'payment': {'type': 'card', 'cardNumber': '1234'},
        })
        data = response.get_json()
        assert response.status_code == 400
        assert data['error_code'] == 'INVALID_CARD'
        assert {'cardNumber', 'expirationDate'} <= set(data['errors'])

    def test_cannot_pay_others_orders(self, client, order, group_user, auth_headers):
        response = client.post('/api/payments/process', headers=auth_headers(group_user), json={
            'order_id': order.id, 'payment': {'type': 'card', **VISA_CARD},
        })
        assert response.status_code == 403


class TestRefundAPI:
    """Test /api/payments/refund"""

    @patch('rxportal.utils.payment_gateway.requests.post')
    def test_admin_refund(self, mock_post, client, order, pharmacy_headers, admin_headers):
        mock_post.return_value = gateway_reply(APPROVED)
        client.post('/api/payments/process', headers=pharmacy_headers, json={
            'order_id': order.id, 'payment': {'type': 'card', **VISA_CARD},
        })
        payment = PaymentTransaction.query.filter_by(order_id=order.id).one()

        denied = client.post('/api/payments/refund', headers=pharmacy_headers, json={'transaction_id': payment.id})
        assert denied.status_code == 403

        response = client.post('/api/payments/refund', headers=admin_headers,
                               json={'transaction_id': payment.id, 'amount': '20', 'reason': 'Damaged'})
        assert response.status_code == 200
        assert response.get_json()['payment_summary']['paid_amount'] == 40.0

        missing = client.post('/api/payments/refund', headers=admin_headers, json={'transaction_id': 999})
        assert missing.status_code == 404


class TestSavedMethods:
    """Test saved card endpoints"""

    @patch('rxportal.utils.payment_gateway.requests.post')
    def test_add_list_charge_delete(self, mock_post, client, order, pharmacy_headers):
        """Test the saved card lifecycle"""
        mock_post.side_effect = [
            gateway_reply({'customerProfileId': '15', 'messages': {'resultCode': 'Ok'}}),
            gateway_reply({'customerPaymentProfileId': '22', 'messages': {'resultCode': 'Ok'}}),
        ]
        response = client.post('/api/payments/methods', headers=pharmacy_headers,
                               json={'card': VISA_CARD, 'billing': BILLING})
        assert response.status_code == 201
        method = response.get_json()['method']
        assert method['is_default']
        assert method['card_last_four'] == '1111'

        listing = client.get('/api/payments/methods', headers=pharmacy_headers).get_json()
        assert [m['id'] for m in listing['methods']] == [method['id']]

        mock_post.side_effect = None
        mock_post.return_value = gateway_reply(APPROVED)
        response = client.post(f"/api/payments/methods/{method['id']}/charge", headers=pharmacy_headers,
                               json={'order_id': order.id, 'amount': '10'})
        assert response.get_json()['amount'] == 10.0

        mock_post.return_value = gateway_reply({'messages': {'resultCode': 'Ok'}})
        assert client.delete(f"/api/payments/methods/{method['id']}", headers=pharmacy_headers).status_code == 200
        assert not db.session.get(SavedPaymentMethod, method["id"]).is_active
        assert client.delete(f"/api/payments/methods/{method['id']}", headers=pharmacy_headers).status_code == 404

    def test_add_method_validates_billing(self, client, pharmacy_headers):
        response = client.post('/api/payments/methods', headers=pharmacy_headers,
                               json={'card': VISA_CARD, 'billing': {**BILLING, 'zip': 'ABCDE'}})
        assert response.status_code == 400
        assert response.get_json()['errors'] == {'billing.zip': 'Invalid ZIP code'}


class TestFortisAndSettings:
    """Test direct ACH and processor settings"""

    def test_fortis_not_configured(self, client, pharmacy_headers):
        response = client.post('/api/payments/ach/fortis', headers=pharmacy_headers,
                               json={'ach': ACH_ACCOUNT, 'amount': '25'})
        assert response.status_code == 503
        assert response.get_json()['error_code'] == 'FORTIS_NOT_CONFIGURED'

    @patch('rxportal.utils.fortis_pay.requests.post')
    def test_settings_update_enables_fortis(self, mock_post, client, admin_headers, pharmacy_headers):
        """Test that settings saved through the API take effect immediately"""
        response = client.put('/api/payments/settings', headers=admin_headers, json={
            'provider': 'fortispay',
            'settings': {'enabled': True, 'userId': 'u', 'userApiKey': 'secret', 'locationId': 'l',
                         'productTransactionIdAch': 'p'},
        })
        data = response.get_json()
        assert data['settings']['settings']['userApiKey'] == '********'
        assert data['config']['fortis_pay_enabled']

        mock_post.return_value = Mock(ok=True, json=Mock(return_value={'transaction': {
            'id': 'fx-9', 'status_id': 131}}))
        response = client.post('/api/payments/ach/fortis', headers=pharmacy_headers,
                               json={'ach': ACH_ACCOUNT, 'amount': '25', 'sec_code': 'PPD'})
        assert response.status_code == 200
        assert response.get_json()['transaction_id'] == 'fx-9'

        response = client.post('/api/payments/ach/fortis', headers=pharmacy_headers,
                               json={'ach': ACH_ACCOUNT, 'amount': '25', 'sec_code': 'XXX'})
        assert response.get_json()['error_code'] == 'INVALID_SEC_CODE'

    def test_settings_require_admin(self, client, pharmacy_headers, admin_headers):
        assert client.get('/api/payments/settings', headers=pharmacy_headers).status_code == 403
        data = client.get('/api/payments/settings', headers=admin_headers).get_json()
        assert set(data['settings']) == {'authorize_net', 'fortispay', 'processors'}
        assert data['config']['ach_processor'] == 'authorize_net'
