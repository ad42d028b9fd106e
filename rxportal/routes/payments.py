"""
Payment Routes

FLOW OVERVIEW
- /api/payments/process [POST]
  • {order_id, payment: {type: card|ach, ...}, billing, amount?} → processor →
    PaymentTransaction + order payment status. Declines return 402 with the
    processor's message.
- /api/payments/refund [POST] (admin)
  • {transaction_id (local payment transaction id), amount?, reason?}
- /api/payments/methods [GET, POST], /api/payments/methods/<id> [DELETE]
  • Saved cards. POST validates the card and billing address before a single
    save_card call.
- /api/payments/methods/<id>/charge [POST]
- /api/payments/ach/fortis [POST], /api/payments/ach/fortis/<transaction_id> [GET]
  • Direct FortisPay ACH debit and status lookup.
- /api/payments/settings [GET, PUT] (admin)
"""

from flask import Blueprint, jsonify, current_app

from ..models import db, PaymentTransaction, SavedPaymentMethod, PaymentSettings, ACHTransaction
from ..utils.api_utils import get_json_payload
from ..utils.auth_utils import login_required, admin_required, get_current_user
from ..utils.errors import ValidationError, NotFoundError, PaymentError, ConfigurationError
from ..utils.fortis_pay import FortisPayClient, SEC_CODES
from ..utils.order_service import get_order_for
from ..utils.payment_config import get_payment_config, is_fortis_pay_available
from ..utils.payment_gateway import save_card, delete_saved_card
from ..utils.payment_service import (pay_order, charge_saved_method, refund_transaction,
                                     update_payment_settings, parse_amount, SETTINGS_PROVIDERS)
from ..utils.validators import validate_card_details, validate_billing_address, validate_ach_details

payments_bp = Blueprint('payments', __name__)


def _owned_method(user, method_id):
    method = db.session.get(SavedPaymentMethod, method_id)
    if method is None or not method.is_active or (method.profile_id != user.id and not user.is_admin()):
        raise NotFoundError('Payment method not found', 'PAYMENT_METHOD_NOT_FOUND')
    return method


@payments_bp.route('/process', methods=['POST'])
@login_required
def process():
    data = get_json_payload(required=('order_id', 'payment'))
    user = get_current_user()
    order = get_order_for(user, data['order_id'])
    result = pay_order(order, data['payment'], data.get('billing'), data.get('amount'), actor=user)
    return jsonify({'success': True, 'message': 'Payment processed successfully', **result})


@payments_bp.route('/refund', methods=['POST'])
@admin_required
def refund():
    data = get_json_payload(required=('transaction_id',))
    transaction = db.session.get(PaymentTransaction, data['transaction_id'])
    if transaction is None:
        raise NotFoundError('Transaction not found', 'TRANSACTION_NOT_FOUND')
    result = refund_transaction(transaction, data.get('amount'), data.get('reason'),
                                actor=get_current_user())
    return jsonify({'success': True, 'message': 'Refund processed successfully', **result})


@payments_bp.route('/methods', methods=['GET'])
@login_required
def list_methods():
    user = get_current_user()
    methods = (SavedPaymentMethod.query
               .filter_by(profile_id=user.id, is_active=True)
               .order_by(SavedPaymentMethod.is_default.desc(), SavedPaymentMethod.created_at.desc())
               .all())
    return jsonify({'success': True, 'methods': [m.to_dict() for m in methods]})


@payments_bp.route('/methods', methods=['POST'])
@login_required
def add_method():
    data = get_json_payload(required=('card',))
    card = data['card']
    billing = data.get('billing') or {}

    errors = validate_card_details(card)
    errors.update({f"billing.{field}": message
                   for field, message in validate_billing_address(billing).items()})
    if errors:
        raise ValidationError('Please correct the highlighted fields', 'INVALID_PAYMENT_METHOD', errors=errors)

    user = get_current_user()
    result = save_card(user, card, billing, data.get('nickname'))
    if not result.success:
        raise PaymentError(result.error or 'Failed to save card', result.error_code or 'SAVE_CARD_FAILED')

    method = db.session.get(SavedPaymentMethod, result.saved_method_id)
    if data.get('is_default') or SavedPaymentMethod.query.filter_by(profile_id=user.id, is_active=True).count() == 1:
        SavedPaymentMethod.query.filter(SavedPaymentMethod.profile_id == user.id,
                                        SavedPaymentMethod.id != method.id).update({'is_default': False})
        method.is_default = True
        db.session.commit()

    return jsonify({'success': True, 'message': result.message, 'method': method.to_dict()}), 201


@payments_bp.route('/methods/<int:method_id>', methods=['DELETE'])
@login_required
def remove_method(method_id):
    method = _owned_method(get_current_user(), method_id)
    result = delete_saved_card(method)
    if method.is_active:
        method.is_active = False
        db.session.commit()
    if not result.success:
        current_app.logger.warning(f"Processor profile removal failed for method {method.id}: {result.error}")
    return jsonify({'success': True, 'message': 'Payment method removed'})


@payments_bp.route('/methods/<int:method_id>/charge', methods=['POST'])
@login_required
def charge_method(method_id):
    data = get_json_payload(required=('order_id',))
    user = get_current_user()
    method = _owned_method(user, method_id)
    order = get_order_for(user, data['order_id'])
    result = charge_saved_method(order, method, data.get('amount'), actor=user)
    return jsonify({'success': True, 'message': 'Payment successful', **result})


@payments_bp.route('/ach/fortis', methods=['POST'])
@login_required
def fortis_debit():
    data = get_json_payload(required=('ach', 'amount'))
    if not is_fortis_pay_available():
        raise ConfigurationError('FortisPay configuration missing', 'FORTIS_NOT_CONFIGURED')

    ach = data['ach']
    valid, errors = validate_ach_details(ach)
    if not valid:
        raise ValidationError(errors[0], 'INVALID_ACH', errors={'ach': errors})

    sec_code = data.get('sec_code') or 'WEB'
    if sec_code not in SEC_CODES:
        raise ValidationError(f"SEC code must be one of {', '.join(SEC_CODES)}", 'INVALID_SEC_CODE')

    user = get_current_user()
    order_id = None
    if data.get('order_id'):
        order_id = get_order_for(user, data['order_id']).id

    result = FortisPayClient.from_settings().process_ach_payment(
        ach, data.get('billing') or {}, parse_amount(data['amount']), sec_code=sec_code,
        order_id=order_id, description=data.get('description'), profile_id=user.id,
    )
    if not result.success:
        raise PaymentError(result.error_message or result.message, result.error_code or 'ACH_FAILED')
    return jsonify({'success': True, **result.to_dict()})


@payments_bp.route('/ach/fortis/<transaction_id>', methods=['GET'])
@login_required
def fortis_status(transaction_id):
    user = get_current_user()
    stored = ACHTransaction.query.filter_by(transaction_id=transaction_id).first()
    if stored is not None and stored.profile_id != user.id and not user.is_admin():
        raise NotFoundError('Transaction not found', 'TRANSACTION_NOT_FOUND')

    result = FortisPayClient.from_settings().get_transaction_status(transaction_id)
    if not result.success:
        raise PaymentError(result.error_message or result.message, 'STATUS_LOOKUP_FAILED')

    if stored is not None and result.status_id is not None and stored.status_id != result.status_id:
        stored.status_id = result.status_id
        stored.status = result.status
        db.session.commit()
    return jsonify({'success': True, **result.to_dict()})


@payments_bp.route('/settings', methods=['GET'])
@admin_required
def get_settings():
    rows = {row.provider: row.to_dict() for row in PaymentSettings.query.all()}
    return jsonify({
        'success': True,
        'settings': {provider: rows.get(provider) for provider in SETTINGS_PROVIDERS},
        'config': get_payment_config().to_dict(),
    })


@payments_bp.route('/settings', methods=['PUT'])
@admin_required
def put_settings():
    data = get_json_payload(required=('provider', 'settings'))
    row = update_payment_settings(data['provider'], data['settings'])
    return jsonify({'success': True, 'settings': row.to_dict(), 'config': get_payment_config().to_dict()})
