"""
Order payment summary: how much of an order has been paid and what is still due.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..models import db, PaymentTransaction
from .money import ZERO, TOLERANCE, to_decimal, to_money

logger = logging.getLogger(__name__)


@dataclass
class PaymentSummary:
    paid_amount: Decimal
    balance_due: Decimal
    is_fully_paid: bool
    is_partially_paid: bool
    is_pending: bool

    def to_dict(self):
        return {
            'paid_amount': float(self.paid_amount),
            'balance_due': float(self.balance_due),
            'is_fully_paid': self.is_fully_paid,
            'is_partially_paid': self.is_partially_paid,
            'is_pending': self.is_pending,
            'label': payment_status_label(self),
        }


def summarize_payments(total_amount, payment_status, transactions) -> PaymentSummary:
    """
    Successful transactions count toward the paid amount and refunds are subtracted.
    An order marked paid with nothing recorded is a legacy order and counts as fully paid.
    """
    total_amount = to_money(total_amount)
    paid = ZERO
    counted = False
    for tx in transactions:
        if (tx.status or '').lower() not in PaymentTransaction.SUCCESS_STATUSES:
            continue
        counted = True
        amount = to_decimal(tx.amount)
        paid = paid - amount if (tx.transaction_type or '').lower() == 'refund' else paid + amount
    paid = to_money(paid)

    if not counted and payment_status == 'paid':
        paid = total_amount

    raw_balance = total_amount - paid
    balance_due = ZERO if abs(raw_balance) < TOLERANCE else max(ZERO, raw_balance)

    return PaymentSummary(
        paid_amount=paid,
        balance_due=balance_due,
        is_fully_paid=balance_due == 0 and paid > 0,
        is_partially_paid=paid > 0 and balance_due > 0,
        is_pending=paid == 0,
    )


def calculate_payment_summary(order) -> PaymentSummary:
    transactions = PaymentTransaction.query.filter_by(order_id=order.id).all()
    return summarize_payments(order.total_amount, order.payment_status, transactions)


def ensure_payment_transaction_exists(order) -> bool:
    """Record a legacy_record payment for a paid order that has no transactions"""
    count = PaymentTransaction.query.filter_by(order_id=order.id).count()
    amount = to_decimal(order.total_amount)
    if count == 0 and order.payment_status == 'paid' and amount > 0:
        db.session.add(PaymentTransaction(
            order_id=order.id,
            profile_id=order.profile_id,
            amount=amount,
            status='completed',
            transaction_type='payment',
            payment_method='legacy_record',
        ))
        db.session.commit()
        logger.info(f"Created legacy payment transaction for order {order.order_number}")
        return True
    return False


def payment_status_label(summary: PaymentSummary) -> str:
    if summary.is_fully_paid:
        return 'Paid'
    if summary.is_partially_paid:
        return 'Partial'
    return 'Unpaid'
