"""
Catalog Models

Category, Product and ProductSize. A product is sold in one or more sizes,
each with its own SKU, unit price, stock and per-unit shipping cost.
"""

from datetime import datetime
from .database import db, Money


class Category(db.Model):
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.Text)
    display_order = db.Column(db.Integer, default=0)

    products = db.relationship('Product', backref='category', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'display_order': self.display_order,
        }


class Product(db.Model):
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    sku = db.Column(db.String(64), unique=True)
    description = db.Column(db.Text)
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'))
    image_url = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sizes = db.relationship('ProductSize', backref='product', lazy=True,
                            cascade='all, delete-orphan', order_by='ProductSize.id')

    def to_dict(self, include_sizes=True):
        data = {
            'id': self.id,
            'name': self.name,
            'sku': self.sku,
            'description': self.description,
            'category_id': self.category_id,
            'category': self.category.name if self.category else None,
            'image_url': self.image_url,
            'is_active': self.is_active,
        }
        if include_sizes:
            data['sizes'] = [size.to_dict() for size in self.sizes]
        return data


class ProductSize(db.Model):
    __tablename__ = 'product_sizes'

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    size_value = db.Column(db.String(50), nullable=False)
    size_unit = db.Column(db.String(20))
    sku = db.Column(db.String(64))
    price = db.Column(Money, nullable=False)
    price_per_case = db.Column(Money)
    stock = db.Column(db.Integer, default=0)
    shipping_cost = db.Column(Money, default=0)

    @property
    def label(self):
        return f"{self.size_value} {self.size_unit}".strip() if self.size_unit else self.size_value

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'size_value': self.size_value,
            'size_unit': self.size_unit,
            'sku': self.sku,
            'price': float(self.price or 0),
            'price_per_case': float(self.price_per_case) if self.price_per_case is not None else None,
            'stock': self.stock,
            'shipping_cost': float(self.shipping_cost or 0),
        }
