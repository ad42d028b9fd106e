"""
Utilities Package

This package contains the service layer and helper modules used by the blueprints.
"""

from . import auth_utils
from . import validators
from . import error_handlers

__all__ = [
    'auth_utils',
    'validators',
    'error_handlers'
]
