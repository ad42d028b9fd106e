"""
Routes Package

This package contains all Flask route blueprints.
"""

from .auth import auth_bp
from .main import main_bp
from .catalog import catalog_bp
from .orders import orders_bp
from .payments import payments_bp
from .statements import statements_bp
from .admin import admin_bp
from .credit import credit_bp
from .groups import groups_bp
from .launch import launch_bp
from .email import email_bp

__all__ = [
    'auth_bp',
    'main_bp',
    'catalog_bp',
    'orders_bp',
    'payments_bp',
    'statements_bp',
    'admin_bp',
    'credit_bp',
    'groups_bp',
    'launch_bp',
    'email_bp'
]
