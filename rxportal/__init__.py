"""
RxPortal Application Package

FLOW OVERVIEW
- create_app(test_config=None)
  • Build Flask app, apply config (test or env-based), init extensions (DB, Mail).
  • Register blueprints: auth (/auth), main (/), catalog, orders, payments, statements,
    admin, credit terms, groups, launch and email under /api.
  • Register global error handlers.
"""

from flask import Flask
from flask_mail import Mail
from .models import db
from .routes import (auth_bp, main_bp, catalog_bp, orders_bp, payments_bp, statements_bp,
                     admin_bp, credit_bp, groups_bp, launch_bp, email_bp)
from .config import Config


def create_app(test_config=None):
    """Application factory pattern for production deployment"""
    app = Flask(__name__)

    # Configuration
    if test_config:
        # Use test configuration if provided
        app.config.update(test_config)
    else:
        # Use environment-based configuration
        app.config.from_object(Config())

    # Initialize extensions
    db.init_app(app)
    Mail(app)

    # Register blueprints
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(main_bp)
    app.register_blueprint(catalog_bp, url_prefix='/api/catalog')
    app.register_blueprint(orders_bp, url_prefix='/api/orders')
    app.register_blueprint(payments_bp, url_prefix='/api/payments')
    app.register_blueprint(statements_bp, url_prefix='/api/statements')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')
    app.register_blueprint(credit_bp, url_prefix='/api/credit-terms')
    app.register_blueprint(groups_bp, url_prefix='/api/groups')
    app.register_blueprint(launch_bp, url_prefix='/api/launch')
    app.register_blueprint(email_bp, url_prefix='/api/email')

    # Register error handlers
    from .utils.error_handlers import register_error_handlers
    register_error_handlers(app)

    return app
