"""
Credit Terms Models

SentCreditTerms records a credit offer an admin sends to a pharmacy; UserCreditLine is
the credit line created once the pharmacy accepts.
"""

from datetime import datetime
from .database import db, Money


class SentCreditTerms(db.Model):
    __tablename__ = 'sent_credit_terms'

    STATUSES = ('pending', 'viewed', 'accepted', 'rejected', 'expired')

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    sent_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    credit_limit = db.Column(Money, nullable=False)
    net_terms = db.Column(db.Integer, default=30)
    interest_rate = db.Column(db.Numeric(5, 2), default=0)
    custom_message = db.Column(db.Text)
    status = db.Column(db.String(20), default='pending')
    sent_at = db.Column(db.DateTime, default=datetime.utcnow)
    viewed_at = db.Column(db.DateTime)
    responded_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime)
    user_signed_name = db.Column(db.String(120))
    user_signed_title = db.Column(db.String(120))
    rejection_reason = db.Column(db.Text)

    user = db.relationship('User', foreign_keys=[user_id])

    def is_expired(self, now=None):
        return bool(self.expires_at and (now or datetime.utcnow()) > self.expires_at)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'sent_by': self.sent_by,
            'credit_limit': float(self.credit_limit or 0),
            'net_terms': self.net_terms,
            'interest_rate': float(self.interest_rate or 0),
            'custom_message': self.custom_message,
            'status': self.status,
            'sent_at': self.sent_at.isoformat() if self.sent_at else None,
            'viewed_at': self.viewed_at.isoformat() if self.viewed_at else None,
            'responded_at': self.responded_at.isoformat() if self.responded_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'user_signed_name': self.user_signed_name,
            'user_signed_title': self.user_signed_title,
            'rejection_reason': self.rejection_reason,
        }


class UserCreditLine(db.Model):
    __tablename__ = 'user_credit_lines'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    credit_limit = db.Column(Money, nullable=False)
    net_terms = db.Column(db.Integer, default=30)
    interest_rate = db.Column(db.Numeric(5, 2), default=0)
    status = db.Column(db.String(20), default='active')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
