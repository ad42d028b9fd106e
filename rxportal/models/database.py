"""
Database Configuration

FLOW OVERVIEW
- Provides the global SQLAlchemy instance `db` used across all models.
- Initialized in the app factory (rxportal/__init__.py) with app context.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Monetary amounts are stored as fixed-point dollars with cents
Money = db.Numeric(12, 2)
