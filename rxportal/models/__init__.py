"""
Database Models Package

FLOW OVERVIEW
- Centralizes the SQLAlchemy DB instance and model imports for convenient usage.
- Exposes: db, users/tokens, catalog, orders, payments, ledger, offers, rewards,
  admin content, email, group staff and credit terms models.
"""

from .database import db
from .user import User, PasswordResetToken
from .catalog import Category, Product, ProductSize
from .order import Order, OrderItem, OrderActivity
from .payment import PaymentSettings, PaymentTransaction, SavedPaymentMethod, ACHTransaction
from .account import AccountTransaction
from .offer import Offer
from .rewards import RewardsConfig, RewardTier, RewardTransaction
from .content import Blog, FestivalTheme, Announcement, Alert
from .email import EmailTemplate, EmailQueue, EmailLog, LaunchPasswordReset
from .group import GroupStaff
from .credit import SentCreditTerms, UserCreditLine

__all__ = [
    'db',
    'User',
    'PasswordResetToken',
    'Category',
    'Product',
    'ProductSize',
    'Order',
    'OrderItem',
    'OrderActivity',
    'PaymentSettings',
    'PaymentTransaction',
    'SavedPaymentMethod',
    'ACHTransaction',
    'AccountTransaction',
    'Offer',
    'RewardsConfig',
    'RewardTier',
    'RewardTransaction',
    'Blog',
    'FestivalTheme',
    'Announcement',
    'Alert',
    'EmailTemplate',
    'EmailQueue',
    'EmailLog',
    'LaunchPasswordReset',
    'GroupStaff',
    'SentCreditTerms',
    'UserCreditLine',
]
