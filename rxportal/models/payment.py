"""
Payment Models

PaymentSettings (admin-configured processor credentials), PaymentTransaction (every
charge, refund and legacy record against an order), SavedPaymentMethod (tokenized cards
held by the processor) and ACHTransaction (FortisPay debits).

Full card and bank account numbers are never stored; only the last four digits.
"""

from datetime import datetime
from .database import db, Money


class PaymentSettings(db.Model):
    __tablename__ = 'payment_settings'

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(30), unique=True, nullable=False)  # authorize_net, fortispay
    settings = db.Column(db.JSON, default=dict)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def enabled(self):
        return bool((self.settings or {}).get('enabled'))

    def to_dict(self, redact=True):
        settings = dict(self.settings or {})
        if redact:
            for secret in ('transactionKey', 'userApiKey'):
                if settings.get(secret):
                    settings[secret] = '********'
        return {'provider': self.provider, 'settings': settings,
                'updated_at': self.updated_at.isoformat() if self.updated_at else None}


class PaymentTransaction(db.Model):
    __tablename__ = 'payment_transactions'

    SUCCESS_STATUSES = ('approved', 'completed', 'success')

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'))
    profile_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    transaction_id = db.Column(db.String(64))
    transaction_type = db.Column(db.String(30), default='auth_capture')  # auth_capture, refund, legacy_record
    payment_method = db.Column(db.String(20))  # card, ach, credit, manual
    processor = db.Column(db.String(30))
    amount = db.Column(Money, nullable=False)
    status = db.Column(db.String(20), default='pending')  # pending, approved, declined, error, completed
    auth_code = db.Column(db.String(20))
    card_last_four = db.Column(db.String(4))
    card_type = db.Column(db.String(30))
    error_message = db.Column(db.Text)
    raw_response = db.Column(db.JSON)
    parent_transaction_id = db.Column(db.Integer, db.ForeignKey('payment_transactions.id'))  # refunds only
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    order = db.relationship('Order', backref=db.backref('transactions', lazy=True))

    @property
    def is_refund(self):
        return self.transaction_type == 'refund'

    def to_dict(self):
        return {
            'id': self.id,
            'order_id': self.order_id,
            'transaction_id': self.transaction_id,
            'transaction_type': self.transaction_type,
            'payment_method': self.payment_method,
            'processor': self.processor,
            'amount': float(self.amount or 0),
            'status': self.status,
            'auth_code': self.auth_code,
            'card_last_four': self.card_last_four,
            'card_type': self.card_type,
            'parent_transaction_id': self.parent_transaction_id,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class SavedPaymentMethod(db.Model):
    __tablename__ = 'saved_payment_methods'

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    customer_profile_id = db.Column(db.String(40), nullable=False)
    payment_profile_id = db.Column(db.String(40), nullable=False)
    method_type = db.Column(db.String(10), default='card')
    card_last_four = db.Column(db.String(4))
    card_type = db.Column(db.String(30))
    card_expiry_month = db.Column(db.Integer)
    card_expiry_year = db.Column(db.Integer)
    nickname = db.Column(db.String(80))
    billing_address = db.Column(db.JSON, default=dict)
    is_default = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'method_type': self.method_type,
            'card_last_four': self.card_last_four,
            'card_type': self.card_type,
            'card_expiry_month': self.card_expiry_month,
            'card_expiry_year': self.card_expiry_year,
            'nickname': self.nickname,
            'is_default': self.is_default,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class ACHTransaction(db.Model):
    __tablename__ = 'ach_transactions'

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.String(64), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'))
    profile_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    amount = db.Column(Money, nullable=False)
    status = db.Column(db.String(20))
    status_id = db.Column(db.Integer)
    account_holder_name = db.Column(db.String(120))
    account_last_four = db.Column(db.String(8))
    account_type = db.Column(db.String(20))
    sec_code = db.Column(db.String(4))
    processor = db.Column(db.String(30), default='fortispay')
    raw_response = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'transaction_id': self.transaction_id,
            'order_id': self.order_id,
            'amount': float(self.amount or 0),
            'status': self.status,
            'status_id': self.status_id,
            'account_holder_name': self.account_holder_name,
            'account_last_four': self.account_last_four,
            'account_type': self.account_type,
            'sec_code': self.sec_code,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
