"""
User Models

This module contains the User (customer/admin profile) and PasswordResetToken models.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from .database import db, Money
from .utils import generate_user_id, generate_password_reset_token


class User(db.Model):
    """Account and customer profile: login identity plus pharmacy billing and credit data"""
    __tablename__ = 'users'

    ROLES = ('admin', 'pharmacy', 'group', 'staff')

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(12), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), default='pharmacy')
    status = db.Column(db.String(20), default='active')  # pending, active, suspended
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    company_name = db.Column(db.String(200))
    phone = db.Column(db.String(30))
    billing_address = db.Column(db.JSON, default=dict)
    shipping_address = db.Column(db.JSON, default=dict)

    # Group pharmacies point at the group account that manages them
    group_id = db.Column(db.Integer, db.ForeignKey('users.id'))

    credit_limit = db.Column(Money, default=0)
    credit_used = db.Column(Money, default=0)
    payment_terms = db.Column(db.String(20), default='prepay')
    tax_percentage = db.Column(db.Numeric(5, 2), default=0)
    free_shipping = db.Column(db.Boolean, default=False)

    reward_points = db.Column(db.Integer, default=0)
    lifetime_reward_points = db.Column(db.Integer, default=0)
    reward_tier = db.Column(db.String(30), default='Bronze')

    password_reset_required = db.Column(db.Boolean, default=False)
    terms_accepted = db.Column(db.Boolean, default=False)
    terms_accepted_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_login = db.Column(db.DateTime)

    password_reset_tokens = db.relationship('PasswordResetToken', backref='user', lazy=True)
    pharmacies = db.relationship('User', backref=db.backref('group', remote_side=[id]), lazy=True)

    def __init__(self, email, password_hash, **fields):
        """Initialize a new user, validating the email and password hash"""
        from ..utils.validators import validate_email, validate_password_hash

        email_validation = validate_email(email)
        if not email_validation.is_valid:
            raise ValueError(email_validation.error_message)

        hash_validation = validate_password_hash(password_hash)
        if not hash_validation.is_valid:
            raise ValueError(hash_validation.error_message)

        role = fields.pop('role', 'pharmacy')
        if role not in self.ROLES:
            raise ValueError(f"Invalid role: {role}")

        super().__init__(**fields)
        self.email = email_validation.sanitized_value
        self.password_hash = hash_validation.sanitized_value
        self.role = role
        self.user_id = generate_user_id()
        self.status = fields.get('status', 'active')

    @property
    def display_name(self):
        """Company name, falling back to the person's name, then email"""
        if self.company_name:
            return self.company_name
        full_name = ' '.join(p for p in (self.first_name, self.last_name) if p)
        return full_name or self.email

    @property
    def available_credit(self):
        return Decimal(self.credit_limit or 0) - Decimal(self.credit_used or 0)

    def is_active(self):
        """Check if user account is active"""
        return self.status == 'active'

    def is_admin(self):
        return self.role == 'admin'

    def update_last_login(self):
        """Update the last login timestamp"""
        self.last_login = datetime.utcnow()
        db.session.commit()

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'email': self.email,
            'role': self.role,
            'status': self.status,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'company_name': self.company_name,
            'phone': self.phone,
            'billing_address': self.billing_address or {},
            'shipping_address': self.shipping_address or {},
            'group_id': self.group_id,
            'credit_limit': float(self.credit_limit or 0),
            'credit_used': float(self.credit_used or 0),
            'payment_terms': self.payment_terms,
            'tax_percentage': float(self.tax_percentage or 0),
            'free_shipping': bool(self.free_shipping),
            'reward_points': self.reward_points or 0,
            'lifetime_reward_points': self.lifetime_reward_points or 0,
            'reward_tier': self.reward_tier,
            'password_reset_required': bool(self.password_reset_required),
            'terms_accepted': bool(self.terms_accepted),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class PasswordResetToken(db.Model):
    """Password reset token for password recovery and launch resets"""
    __tablename__ = 'password_reset_tokens'

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(255), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    used = db.Column(db.Boolean, default=False)

    def __init__(self, user_id, expires_in_hours=1):
        self.user_id = user_id
        self.token = generate_password_reset_token()
        self.expires_at = datetime.utcnow() + timedelta(hours=expires_in_hours)

    def is_valid(self):
        """Check if token is valid and not expired"""
        return not self.used and datetime.utcnow() < self.expires_at

    def mark_used(self):
        self.used = True
        db.session.commit()
