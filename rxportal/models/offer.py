"""
Offer Model

Promotional offers. Offers with a promo_code are entered at checkout; offers without
one are auto-applied when their conditions match.
"""

from datetime import datetime
from .database import db, Money


class Offer(db.Model):
    __tablename__ = 'offers'

    OFFER_TYPES = ('percentage', 'flat', 'free_shipping')
    APPLICABLE_TO = ('all', 'first_order', 'user_group', 'category', 'product')

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    offer_type = db.Column(db.String(20), nullable=False)
    discount_value = db.Column(db.Numeric(10, 2))
    min_order_amount = db.Column(Money)
    max_discount_amount = db.Column(Money)
    promo_code = db.Column(db.String(50), unique=True)
    usage_limit = db.Column(db.Integer)
    used_count = db.Column(db.Integer, default=0)
    total_discount_given = db.Column(Money, default=0)
    total_orders = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    applicable_to = db.Column(db.String(20), default='all')
    applicable_ids = db.Column(db.JSON)
    user_groups = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'offer_type': self.offer_type,
            'discount_value': float(self.discount_value) if self.discount_value is not None else None,
            'min_order_amount': float(self.min_order_amount) if self.min_order_amount is not None else None,
            'max_discount_amount': float(self.max_discount_amount) if self.max_discount_amount is not None else None,
            'promo_code': self.promo_code,
            'usage_limit': self.usage_limit,
            'used_count': self.used_count or 0,
            'is_active': self.is_active,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'applicable_to': self.applicable_to,
            'applicable_ids': self.applicable_ids,
            'user_groups': self.user_groups,
        }
