"""
Order Payments

FLOW OVERVIEW
- pay_order(order, payment, billing, amount, actor)
  • Amount defaults to the balance due and may not exceed it.
  • card → field validation → Authorize.Net.
  • ach  → ABA/account validation → FortisPay when it is the configured and available
    ACH processor, otherwise an Authorize.Net eCheck.
  • Every attempt is recorded as a PaymentTransaction. Approved payments also update
    the order's paid amount and payment status and credit the account ledger.
  • Declines raise PaymentError carrying the processor's message and code.
- charge_saved_method(order, method, amount, actor)
- refund_transaction(transaction, amount, reason, actor)
  • Amount defaults to what is still refundable: the original less earlier refunds
    linked to it through parent_transaction_id.
  • Routed back to the processor that took the payment; records a refund row, debits
    the ledger and moves the order to partial or refunded.
- update_payment_settings(provider, settings)
  • Masked secrets ("********") keep the stored value. Clears the config cache.
"""

import logging
from typing import Any, Dict, Optional

from ..models import db, Order, PaymentTransaction, PaymentSettings, AccountTransaction
from .errors import ValidationError, PaymentError
from .fortis_pay import FortisPayClient
from .money import ZERO, TOLERANCE, to_decimal, to_money, format_money
from .payment_config import (PROCESSORS, clear_payment_config_cache, get_ach_processor,
                             is_fortis_pay_available)
from .payment_gateway import (process_payment, charge_saved_card, process_refund,
                              card_brand)
from .payment_summary import calculate_payment_summary
from .validators import validate_card_details, validate_ach_details

logger = logging.getLogger(__name__)

MASKED_SECRET = '********'
SETTINGS_PROVIDERS = PROCESSORS + ('processors',)


def parse_amount(value, field='amount'):
    try:
        amount = to_money(value)
    except ValueError:
        raise ValidationError('Amount must be a number', 'INVALID_AMOUNT', errors={field: 'Invalid amount'})
    if not amount.is_finite() or amount <= 0:
        raise ValidationError('Amount must be greater than zero', 'INVALID_AMOUNT',
                              errors={field: 'Invalid amount'})
    return amount


def resolve_amount(order: Order, amount=None):
    balance_due = calculate_payment_summary(order).balance_due
    if balance_due <= 0:
        raise ValidationError('Order is already paid in full', 'ORDER_ALREADY_PAID')
    if amount in (None, ''):
        return balance_due

    value = parse_amount(amount)
    if value - balance_due > TOLERANCE:
        raise ValidationError(f"Amount exceeds the balance due of {format_money(balance_due)}",
                              'AMOUNT_EXCEEDS_BALANCE')
    return value


def _fortis_billing(billing: Dict[str, Any]) -> Dict[str, Any]:
    billing = billing or {}
    return {
        'street': billing.get('street') or billing.get('address'),
        'city': billing.get('city'),
        'state': billing.get('state'),
        'zip': billing.get('zip'),
        'phone': billing.get('phone'),
    }


def _record_attempt(order: Order, amount, payment_method: str, processor: str, success: bool,
                    transaction_id=None, auth_code=None, error=None, card_number=None,
                    raw=None) -> PaymentTransaction:
    digits = ''.join(ch for ch in (card_number or '') if ch in '0123456789')
    transaction = PaymentTransaction(
        order_id=order.id,
        profile_id=order.profile_id,
        transaction_id=str(transaction_id) if transaction_id else None,
        transaction_type='auth_capture',
        payment_method=payment_method,
        processor=processor,
        amount=amount,
        status='approved' if success else 'declined',
        auth_code=auth_code,
        card_last_four=digits[-4:] or None,
        card_type=card_brand(digits) if digits else None,
        error_message=error,
        raw_response=raw,
    )
    db.session.add(transaction)
    return transaction


def _apply_to_order(order: Order, amount, actor, description: str):
    """Refresh paid amount and status from the transactions and credit the ledger"""
    db.session.flush()
    summary = calculate_payment_summary(order)
    order.paid_amount = summary.paid_amount
    order.payment_status = 'paid' if summary.is_fully_paid else 'partial'
    AccountTransaction.record(
        order.profile_id,
        description,
        credit=amount,
        reference_type='payment',
        reference_id=order.id,
        created_by=actor.id if actor is not None else None,
    )
    db.session.commit()
    return summary


def pay_order(order: Order, payment: Dict[str, Any], billing: Optional[Dict[str, Any]] = None,
              amount=None, actor=None) -> Dict[str, Any]:
    if order.status == 'cancelled':
        raise ValidationError('Cannot pay for a cancelled order', 'ORDER_CANCELLED')
    payment = payment or {}
    payment_type = payment.get('type')
    if payment_type not in ('card', 'ach'):
        raise ValidationError('Invalid payment type', 'INVALID_PAYMENT_TYPE')

    amount = resolve_amount(order, amount)

    if payment_type == 'card':
        errors = validate_card_details(payment)
        if errors:
            raise ValidationError('Please correct the card details', 'INVALID_CARD', errors=errors)
    else:
        valid, errors = validate_ach_details(payment)
        if not valid:
            raise ValidationError(errors[0], 'INVALID_ACH', errors={'ach': errors})

    if payment_type == 'ach' and get_ach_processor() == 'fortispay' and is_fortis_pay_available():
        processor = 'fortispay'
        ach = dict(payment, accountHolderName=payment.get('accountHolderName') or payment.get('nameOnAccount'))
        result = FortisPayClient.from_settings().process_ach_payment(
            ach, _fortis_billing(billing), amount, sec_code=payment.get('secCode') or 'WEB',
            order_id=order.id, description=f"Order {order.order_number}", profile_id=order.profile_id,
        )
        success, transaction_id, auth_code = result.success, result.transaction_id, result.auth_code
        error, error_code = result.error_message or result.message, result.error_code
        raw = result.to_dict()
    else:
        processor = 'authorize_net'
        request = {
            'payment': dict(payment, nameOnAccount=payment.get('nameOnAccount') or payment.get('accountHolderName')),
            'amount': amount,
            'invoiceNumber': order.order_number,
            'orderId': order.id,
            'customerEmail': order.profile.email if order.profile else None,
            'billing': billing,
        }
        result = process_payment(request)
        success, transaction_id, auth_code = result.success, result.transaction_id, result.auth_code
        error, error_code = result.error, result.error_code
        raw = result.raw

    _record_attempt(order, amount, payment_type, processor, success, transaction_id, auth_code,
                    None if success else error,
                    card_number=payment.get('cardNumber') if payment_type == 'card' else None,
                    raw=raw)

    if not success:
        db.session.commit()
        logger.warning(f"{processor} {payment_type} payment declined for order {order.order_number}: {error}")
        raise PaymentError(error or 'Payment failed', error_code or 'PAYMENT_FAILED')

    summary = _apply_to_order(order, amount, actor, f"Payment for Order #{order.order_number}")
    logger.info(f"Order {order.order_number} paid {format_money(amount)} via {processor} ({payment_type})")
    return {
        'transaction_id': transaction_id,
        'auth_code': auth_code,
        'processor': processor,
        'amount': float(amount),
        'payment_summary': summary.to_dict(),
    }


def charge_saved_method(order: Order, method, amount=None, actor=None) -> Dict[str, Any]:
    if order.status == 'cancelled':
        raise ValidationError('Cannot pay for a cancelled order', 'ORDER_CANCELLED')
    if not method.is_active:
        raise ValidationError('Payment method is no longer available', 'PAYMENT_METHOD_INACTIVE')

    amount = resolve_amount(order, amount)
    result = charge_saved_card(method, amount, invoice_number=order.order_number, order_id=order.id)

    transaction = _record_attempt(order, amount, 'card', 'authorize_net', result.success,
                                  result.transaction_id, result.auth_code,
                                  None if result.success else result.error, raw=result.raw)
    transaction.card_last_four = method.card_last_four
    transaction.card_type = method.card_type

    if not result.success:
        db.session.commit()
        raise PaymentError(result.error or 'Payment failed', result.error_code or 'CHARGE_ERROR')

    summary = _apply_to_order(order, amount, actor, f"Payment for Order #{order.order_number}")
    return {
        'transaction_id': result.transaction_id,
        'auth_code': result.auth_code,
        'processor': 'authorize_net',
        'amount': float(amount),
        'payment_summary': summary.to_dict(),
    }


def refundable_amount(transaction: PaymentTransaction):
    """Original amount less the successful refunds already issued against it"""
    refunds = PaymentTransaction.query.filter_by(parent_transaction_id=transaction.id,
                                                 transaction_type='refund').all()
    refunded = sum((to_decimal(r.amount) for r in refunds
                    if (r.status or '') in PaymentTransaction.SUCCESS_STATUSES), ZERO)
    return to_money(to_decimal(transaction.amount) - refunded)


def refund_transaction(transaction: PaymentTransaction, amount=None, reason: Optional[str] = None,
                       actor=None) -> Dict[str, Any]:
    if transaction.is_refund or (transaction.status or '') not in PaymentTransaction.SUCCESS_STATUSES:
        raise ValidationError('Only successful payments can be refunded', 'NOT_REFUNDABLE')
    if not transaction.transaction_id:
        raise ValidationError('Transaction has no processor reference', 'NOT_REFUNDABLE')

    refundable = refundable_amount(transaction)
    if refundable <= 0:
        raise ValidationError('Transaction has already been fully refunded', 'ALREADY_REFUNDED')
    refund_amount = refundable if amount in (None, '') else parse_amount(amount)
    if refund_amount - refundable > TOLERANCE:
        raise ValidationError(f"Refund amount must be between $0.01 and {format_money(refundable)}",
                              'INVALID_AMOUNT')

    if transaction.processor == 'fortispay':
        result = FortisPayClient.from_settings().refund_ach_transaction(transaction.transaction_id,
                                                                        refund_amount)
        success, refund_id = result.success, result.transaction_id
        error, error_code = result.error_message or result.message, result.error_code
    else:
        result = process_refund(transaction.transaction_id, refund_amount, transaction.card_last_four,
                                order_id=transaction.order_id, reason=reason)
        success, refund_id = result.success, result.refund_transaction_id
        error, error_code = result.error, result.error_code

    if not success:
        logger.warning(f"Refund of transaction {transaction.transaction_id} failed: {error}")
        raise PaymentError(error or 'Refund failed', error_code or 'REFUND_FAILED')

    db.session.add(PaymentTransaction(
        order_id=transaction.order_id,
        profile_id=transaction.profile_id,
        transaction_id=str(refund_id) if refund_id else None,
        transaction_type='refund',
        payment_method=transaction.payment_method,
        parent_transaction_id=transaction.id,
        processor=transaction.processor,
        amount=refund_amount,
        status='completed',
        card_last_four=transaction.card_last_four,
        card_type=transaction.card_type,
        error_message=reason,
    ))
    db.session.flush()

    order = transaction.order
    summary = None
    if order is not None:
        summary = calculate_payment_summary(order)
        order.paid_amount = summary.paid_amount
        order.payment_status = 'refunded' if summary.paid_amount <= 0 else 'partial'
        AccountTransaction.record(
            order.profile_id,
            f"Refund for Order #{order.order_number}",
            debit=refund_amount,
            reference_type='refund',
            reference_id=order.id,
            created_by=actor.id if actor is not None else None,
        )
    db.session.commit()
    logger.info(f"Refunded {format_money(refund_amount)} of transaction {transaction.transaction_id}")
    return {
        'refund_transaction_id': refund_id,
        'amount': float(refund_amount),
        'payment_summary': summary.to_dict() if summary else None,
    }


def update_payment_settings(provider: str, settings: Dict[str, Any]) -> PaymentSettings:
    if provider not in SETTINGS_PROVIDERS:
        raise ValidationError(f"Unknown payment provider: {provider}", 'INVALID_PROVIDER')
    if not isinstance(settings, dict):
        raise ValidationError('settings must be an object')
    if provider == 'processors':
        for key in ('achProcessor', 'creditCardProcessor'):
            if key in settings and settings[key] not in PROCESSORS:
                raise ValidationError(f"{key} must be one of {', '.join(PROCESSORS)}",
                                      errors={key: 'Unknown processor'})

    row = PaymentSettings.query.filter_by(provider=provider).first()
    if row is None:
        row = PaymentSettings(provider=provider, settings={})
        db.session.add(row)

    merged = dict(row.settings or {})
    for key, value in settings.items():
        if value == MASKED_SECRET:
            continue
        merged[key] = value
    row.settings = merged
    db.session.commit()
    clear_payment_config_cache()
    logger.info(f"Payment settings for {provider} updated")
    return row
