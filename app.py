#!/usr/bin/env python3
"""
RxPortal application entry point.

This module selects configuration based on environment variables, creates the
Flask application via `create_app`, and eagerly initializes an in-memory
database for testing modes. When executed directly, it runs the development
server. In production, a WSGI server should import `app` from this module.

Environment variables of interest:
- FLASK_ENV: if set to 'testing', enables in-memory DB and testing flags.
- DATABASE_URL: if set to 'sqlite:///:memory:' forces in-memory DB init.
- SECRET_KEY, JWT_SECRET_KEY, mail and payment settings: consumed by `create_app`.
"""

import logging
import os
from rxportal import create_app
from rxportal.models import db

logging.basicConfig(level=os.getenv('LOG_LEVEL', 'INFO'),
                    format='%(asctime)s %(levelname)s %(name)s: %(message)s')
logger = logging.getLogger('rxportal')

# Create app instance
if os.getenv('FLASK_ENV') == 'testing':
    test_config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': os.getenv('DATABASE_URL', 'sqlite:///:memory:'),
        'SECRET_KEY': os.getenv('SECRET_KEY', 'test-secret-key'),
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'test-jwt-secret-key'),
        'MAIL_SERVER': os.getenv('MAIL_SERVER', 'localhost'),
        'MAIL_PORT': int(os.getenv('MAIL_PORT', 587)),
        'MAIL_SUPPRESS_SEND': True,
        'MAIL_DEFAULT_SENDER': os.getenv('MAIL_DEFAULT_SENDER', 'test@example.com'),
        'FRONTEND_URL': os.getenv('FRONTEND_URL', 'http://localhost:3000'),
    }
    app = create_app(test_config)
else:
    app = create_app()

in_memory = app.config.get('SQLALCHEMY_DATABASE_URI') == 'sqlite:///:memory:'
if os.getenv('FLASK_ENV') == 'testing' or in_memory:
    with app.app_context():
        db.create_all()
    logger.info("In-memory database initialized")
else:
    logger.info("Using database at configured DATABASE_URL")

if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5000)
