"""
Order Models

Order, OrderItem and OrderActivity (audit trail of status, payment and note events).
"""

from datetime import datetime
from .database import db, Money
from .utils import generate_order_number


class Order(db.Model):
    __tablename__ = 'orders'

    STATUSES = ('new', 'pending', 'credit_approval_processing', 'processing', 'shipped',
                'delivered', 'cancelled')
    PAYMENT_STATUSES = ('pending', 'partial', 'paid', 'refunded', 'failed')

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), unique=True, nullable=False)
    profile_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    status = db.Column(db.String(40), default='new')
    payment_status = db.Column(db.String(20), default='pending')
    payment_method = db.Column(db.String(20), default='card')  # card, ach, credit, manual
    subtotal = db.Column(Money, default=0)
    shipping_cost = db.Column(Money, default=0)
    tax_amount = db.Column(Money, default=0)
    discount_amount = db.Column(Money, default=0)
    total_amount = db.Column(Money, default=0)
    paid_amount = db.Column(Money, default=0)
    promo_code = db.Column(db.String(50))
    discount_details = db.Column(db.JSON, default=list)
    shipping_address = db.Column(db.JSON, default=dict)
    billing_address = db.Column(db.JSON, default=dict)
    po_number = db.Column(db.String(64))
    notes = db.Column(db.Text)
    cancel_reason = db.Column(db.Text)
    cancelled_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    profile = db.relationship('User', backref=db.backref('orders', lazy='dynamic'))
    items = db.relationship('OrderItem', backref='order', lazy=True, cascade='all, delete-orphan')
    activities = db.relationship('OrderActivity', backref='order', lazy=True,
                                 cascade='all, delete-orphan', order_by='OrderActivity.created_at')

    def __init__(self, **fields):
        super().__init__(**fields)
        if not self.order_number:
            self.order_number = generate_order_number()

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'order_number': self.order_number,
            'profile_id': self.profile_id,
            'status': self.status,
            'payment_status': self.payment_status,
            'payment_method': self.payment_method,
            'subtotal': float(self.subtotal or 0),
            'shipping_cost': float(self.shipping_cost or 0),
            'tax_amount': float(self.tax_amount or 0),
            'discount_amount': float(self.discount_amount or 0),
            'total_amount': float(self.total_amount or 0),
            'paid_amount': float(self.paid_amount or 0),
            'promo_code': self.promo_code,
            'discount_details': self.discount_details or [],
            'shipping_address': self.shipping_address or {},
            'po_number': self.po_number,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = 'order_items'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'))
    size_id = db.Column(db.Integer, db.ForeignKey('product_sizes.id'))
    product_name = db.Column(db.String(200))
    size_label = db.Column(db.String(80))
    sku = db.Column(db.String(64))
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(Money, nullable=False)
    line_total = db.Column(Money, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'size_id': self.size_id,
            'product_name': self.product_name,
            'size_label': self.size_label,
            'sku': self.sku,
            'quantity': self.quantity,
            'unit_price': float(self.unit_price or 0),
            'line_total': float(self.line_total or 0),
        }


class OrderActivity(db.Model):
    __tablename__ = 'order_activities'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False)
    activity_type = db.Column(db.String(40), nullable=False)  # created, payment_received, cancelled, ...
    description = db.Column(db.Text)
    activity_metadata = db.Column(db.JSON, default=dict)
    performed_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'activity_type': self.activity_type,
            'description': self.description,
            'metadata': self.activity_metadata or {},
            'performed_by': self.performed_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
