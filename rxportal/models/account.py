"""
Account Ledger Model

AccountTransaction rows form the customer's balance-forward ledger. The running
balance follows `balance = previous + credit - debit`, so purchases drive the balance
negative and payments bring it back up.
"""

from datetime import datetime
from decimal import Decimal
from .database import db, Money


class AccountTransaction(db.Model):
    __tablename__ = 'account_transactions'

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    transaction_date = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    transaction_type = db.Column(db.String(20), nullable=False)  # debit, credit, adjustment
    reference_type = db.Column(db.String(20))  # order, payment, credit_memo, refund
    reference_id = db.Column(db.String(64))
    description = db.Column(db.String(255))
    debit_amount = db.Column(Money, default=0)
    credit_amount = db.Column(Money, default=0)
    balance = db.Column(Money, default=0)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @classmethod
    def latest_balance(cls, profile_id):
        last = (cls.query.filter_by(profile_id=profile_id)
                .order_by(cls.transaction_date.desc(), cls.id.desc()).first())
        return Decimal(last.balance) if last and last.balance is not None else Decimal('0.00')

    @classmethod
    def record(cls, profile_id, description, debit=0, credit=0, reference_type=None,
               reference_id=None, created_by=None, transaction_date=None):
        """Append a ledger row carrying the running balance forward (not committed)."""
        debit = Decimal(str(debit or 0))
        credit = Decimal(str(credit or 0))
        balance = cls.latest_balance(profile_id) + credit - debit
        entry = cls(
            profile_id=profile_id,
            transaction_date=transaction_date or datetime.utcnow(),
            transaction_type='debit' if debit > credit else 'credit',
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            description=description,
            debit_amount=debit,
            credit_amount=credit,
            balance=balance,
            created_by=created_by,
        )
        db.session.add(entry)
        return entry
