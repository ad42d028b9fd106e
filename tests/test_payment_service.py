"""
Tests for order payments, refunds and payment settings updates.
"""

import json
from decimal import Decimal
from unittest.mock import patch, Mock

import pytest
from rxportal.models import Order, PaymentTransaction, PaymentSettings, AccountTransaction
from rxportal.utils.errors import ValidationError, PaymentError
from rxportal.utils.payment_config import get_payment_config
from rxportal.utils.payment_service import (pay_order, refund_transaction, update_payment_settings,
                                            parse_amount, MASKED_SECRET)

from conftest import VISA_CARD, BILLING, ACH_ACCOUNT

APPROVED = {
    'transactionResponse': {'responseCode': '1', 'transId': '60012345678', 'authCode': 'ABC123'},
    'messages': {'resultCode': 'Ok', 'message': [{'code': 'I00001', 'text': 'Successful.'}]},
}
DECLINED = {
    'transactionResponse': {'responseCode': '2', 'errors': {'error': [
        {'errorCode': '2', 'errorText': 'This transaction has been declined.'}]}},
    'messages': {'resultCode': 'Error', 'message': [{'code': 'E00027', 'text': 'The transaction was unsuccessful.'}]},
}


def gateway_reply(payload):
    return Mock(text='\ufeff' + json.dumps(payload), status_code=200)


@pytest.fixture
def order(db_session, pharmacy_user):
    order = Order(profile_id=pharmacy_user.id, total_amount=Decimal('100.00'))
    db_session.add(order)
    db_session.commit()
    return order


class TestParseAmount:
    """Test amount parsing"""

    def test_rejects_bad_amounts(self):
        for value in ('abc', '0', '-5'):
            with pytest.raises(ValidationError) as exc_info:
                parse_amount(value)
            assert exc_info.value.error_code == 'INVALID_AMOUNT'
        assert parse_amount('12.345') == Decimal('12.35')


class TestPayOrder:
    """Test card and ACH payments against an order"""

    @patch('rxportal.utils.payment_gateway.requests.post')
    def test_full_card_payment(self, mock_post, order, admin_user):
        mock_post.return_value = gateway_reply(APPROVED)

        result = pay_order(order, {'type': 'card', **VISA_CARD}, BILLING, actor=admin_user)

        assert result['transaction_id'] == '60012345678'
        assert result['processor'] == 'authorize_net'
        assert result['amount'] == 100.0
        assert result['payment_summary']['is_fully_paid']
        assert order.payment_status == 'paid'
        assert order.paid_amount == Decimal('100.00')

        record = PaymentTransaction.query.filter_by(order_id=order.id).one()
        assert record.status == 'approved'
        assert record.card_last_four == '1111'
        ledger = AccountTransaction.query.filter_by(reference_type='payment').one()
        assert ledger.credit_amount == Decimal('100.00')
        assert ledger.description == f"Payment for Order #{order.order_number}"

    @patch('rxportal.utils.payment_gateway.requests.post')
    def test_partial_then_overpayment(self, mock_post, order):
        mock_post.return_value = gateway_reply(APPROVED)
        pay_order(order, {'type': 'card', **VISA_CARD}, amount='40')
        assert order.payment_status == 'partial'

        with pytest.raises(ValidationError) as exc_info:
            pay_order(order, {'type': 'card', **VISA_CARD}, amount='60.50')
        assert exc_info.value.error_code == 'AMOUNT_EXCEEDS_BALANCE'

        pay_order(order, {'type': 'card', **VISA_CARD})
        assert order.payment_status == 'paid'
        with pytest.raises(ValidationError) as exc_info:
            pay_order(order, {'type': 'card', **VISA_CARD})
        assert exc_info.value.error_code == 'ORDER_ALREADY_PAID'

    @patch('rxportal.utils.payment_gateway.requests.post')
    def test_declined_payment_is_recorded(self, mock_post, order):
        mock_post.return_value = gateway_reply(DECLINED)

        with pytest.raises(PaymentError) as exc_info:
            pay_order(order, {'type': 'card', **VISA_CARD})

        assert exc_info.value.status_code == 402
        assert exc_info.value.message == 'This transaction has been declined.'
        record = PaymentTransaction.query.filter_by(order_id=order.id).one()
        assert record.status == 'declined'
        assert order.payment_status == 'pending'
        assert AccountTransaction.query.count() == 0

    def test_invalid_details_never_reach_processor(self, order):
        with patch('rxportal.utils.payment_gateway.requests.post') as mock_post:
            with pytest.raises(ValidationError) as exc_info:
                pay_order(order, {'type': 'card', **VISA_CARD, 'cardNumber': '4111111111111112'})
            assert exc_info.value.error_code == 'INVALID_CARD'
            assert 'cardNumber' in exc_info.value.errors

            with pytest.raises(ValidationError) as exc_info:
                pay_order(order, {'type': 'ach', **ACH_ACCOUNT, 'routingNumber': '021000022'})
            assert exc_info.value.error_code == 'INVALID_ACH'

            with pytest.raises(ValidationError) as exc_info:
                pay_order(order, {'type': 'bitcoin'})
            assert exc_info.value.error_code == 'INVALID_PAYMENT_TYPE'
            mock_post.assert_not_called()

    def test_cancelled_order(self, db_session, order):
        order.status = 'cancelled'
        db_session.commit()
        with pytest.raises(ValidationError) as exc_info:
            pay_order(order, {'type': 'card', **VISA_CARD})
        assert exc_info.value.error_code == 'ORDER_CANCELLED'

    @patch('rxportal.utils.fortis_pay.requests.post')
    def test_ach_routes_to_fortis(self, mock_post, db_session, order):
        db_session.add(PaymentSettings(provider='processors', settings={'achProcessor': 'fortispay'}))
        db_session.add(PaymentSettings(provider='fortispay', settings={
            'enabled': True, 'apiUrl': 'https://api.sandbox.fortis.test/v2/', 'userId': 'u',
            'userApiKey': 'k', 'locationId': 'l', 'productTransactionIdAch': 'p',
        }))
        db_session.commit()
        mock_post.return_value = Mock(ok=True, json=Mock(return_value={'transaction': {
            'id': 'fx-1', 'status_id': 131}}))

        result = pay_order(order, {'type': 'ach', **ACH_ACCOUNT}, BILLING)

        assert result['processor'] == 'fortispay'
        assert result['transaction_id'] == 'fx-1'
        sent = mock_post.call_args.kwargs['json']['transaction']
        assert sent['billing_street'] == '1 Main St'
        record = PaymentTransaction.query.filter_by(order_id=order.id).one()
        assert record.processor == 'fortispay'
        assert record.payment_method == 'ach'


class TestRefunds:
    """Test refunds of recorded payments"""

    @patch('rxportal.utils.payment_gateway.requests.post')
    def test_partial_and_full_refund(self, mock_post, order):
        mock_post.return_value = gateway_reply(APPROVED)
        pay_order(order, {'type': 'card', **VISA_CARD})
        payment = PaymentTransaction.query.filter_by(order_id=order.id).one()

        result = refund_transaction(payment, '30', reason='Damaged')
        assert result['amount'] == 30.0
        assert order.payment_status == 'partial'
        assert order.paid_amount == Decimal('70.00')

        refund_transaction(payment, '70')
        assert order.payment_status == 'refunded'
        assert AccountTransaction.latest_balance(order.profile_id) == Decimal('0.00')

    @patch('rxportal.utils.payment_gateway.requests.post')
    def test_refund_limits(self, mock_post, order):
        mock_post.return_value = gateway_reply(APPROVED)
        pay_order(order, {'type': 'card', **VISA_CARD}, amount='50')
        payment = PaymentTransaction.query.filter_by(order_id=order.id).one()

        with pytest.raises(ValidationError) as exc_info:
            refund_transaction(payment, '75')
        assert exc_info.value.error_code == 'INVALID_AMOUNT'

        refund_transaction(payment)
        refund = PaymentTransaction.query.filter_by(transaction_type='refund').one()
        with pytest.raises(ValidationError) as exc_info:
            refund_transaction(refund)
        assert exc_info.value.error_code == 'NOT_REFUNDABLE'

    @patch('rxportal.utils.payment_gateway.requests.post')
    def test_refunds_are_capped_cumulatively(self, mock_post, order):
        """Test that refunds together never exceed the original payment"""
        mock_post.return_value = gateway_reply(APPROVED)
        pay_order(order, {'type': 'card', **VISA_CARD})
        payment = PaymentTransaction.query.filter_by(order_id=order.id, transaction_type='auth_capture').one()

        refund_transaction(payment, '60')
        with pytest.raises(ValidationError) as exc_info:
            refund_transaction(payment, '60')
        assert exc_info.value.error_code == 'INVALID_AMOUNT'
        assert '$40.00' in exc_info.value.message

        result = refund_transaction(payment)
        assert result['amount'] == 40.0
        assert order.paid_amount == Decimal('0.00')
        assert {r.parent_transaction_id for r in
                PaymentTransaction.query.filter_by(transaction_type='refund')} == {payment.id}

        with pytest.raises(ValidationError) as exc_info:
            refund_transaction(payment, '1')
        assert exc_info.value.error_code == 'ALREADY_REFUNDED'
        assert AccountTransaction.latest_balance(order.profile_id) == Decimal('0.00')

    @patch('rxportal.utils.payment_gateway.requests.post')
    def test_failed_refund_changes_nothing(self, mock_post, order):
        mock_post.return_value = gateway_reply(APPROVED)
        pay_order(order, {'type': 'card', **VISA_CARD})
        payment = PaymentTransaction.query.filter_by(order_id=order.id).one()

        mock_post.return_value = gateway_reply(DECLINED)
        with pytest.raises(PaymentError):
            refund_transaction(payment, '10')
        assert order.payment_status == 'paid'
        assert PaymentTransaction.query.filter_by(transaction_type='refund').count() == 0


class TestPaymentSettings:
    """Test processor settings updates"""

    def test_masked_secrets_are_kept(self, db_session):
        update_payment_settings('authorize_net', {'enabled': True, 'apiLoginId': 'login',
                                                  'transactionKey': 'real-key'})
        row = update_payment_settings('authorize_net', {'apiLoginId': 'login-2',
                                                        'transactionKey': MASKED_SECRET})
        assert row.settings['transactionKey'] == 'real-key'
        assert row.settings['apiLoginId'] == 'login-2'

    def test_update_clears_cached_config(self, db_session):
        assert get_payment_config().ach_processor == 'authorize_net'
        update_payment_settings('processors', {'achProcessor': 'fortispay'})
        assert get_payment_config().ach_processor == 'fortispay'

    def test_invalid_input(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            update_payment_settings('stripe', {})
        assert exc_info.value.error_code == 'INVALID_PROVIDER'
        with pytest.raises(ValidationError):
            update_payment_settings('processors', {'achProcessor': 'paypal'})
