"""
Model Utilities

Identifier, token and number generators shared by the models package.
"""

import re
import secrets
import string
from datetime import datetime


def generate_user_id():
    """Generate a unique 12-character public user ID"""
    return ''.join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(12))


def generate_password_reset_token():
    """Generate a secure password reset token"""
    return secrets.token_urlsafe(32)


def generate_order_number():
    """Generate a human-facing order number, e.g. ORD-20240115-4F7K2Q"""
    suffix = ''.join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f"ORD-{datetime.utcnow().strftime('%Y%m%d')}-{suffix}"


def slugify(text):
    """Lowercase URL slug built from a title"""
    slug = re.sub(r'[^a-z0-9\s-]', '', (text or '').lower())
    slug = re.sub(r'[\s_-]+', '-', slug).strip('-')
    return slug
