"""
Application Configuration

FLOW OVERVIEW
- Config.__init__
  • Reads FLASK_ENV to select which .env file to load (dev/prod). Testing bypasses file load.
- Properties expose configuration values, defaulting to sensible development-safe defaults.
- Payment processor credentials (Authorize.Net, FortisPay) are read here and used as the
  fallback when no admin-configured payment settings row exists.
"""

import os
from dotenv import load_dotenv


def _env_flag(name, default='False'):
    return os.getenv(name, default).lower() == 'true'


class Config:
    """Base configuration class"""

    def __init__(self):
        env_file = os.getenv('FLASK_ENV', 'development')
        if env_file == 'testing':
            # Testing reads the process environment only
            pass
        elif env_file == 'production':
            load_dotenv('config.prod.env')
        else:
            load_dotenv('config.env')

    @property
    def SECRET_KEY(self):
        """Application secret key"""
        return os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        """Database connection URI"""
        return os.getenv('DATABASE_URL', 'sqlite:///:memory:')

    @property
    def SQLALCHEMY_TRACK_MODIFICATIONS(self):
        return False

    @property
    def MAIL_SERVER(self):
        """Mail server hostname"""
        return os.getenv('MAIL_SERVER', 'smtp.gmail.com')

    @property
    def MAIL_PORT(self):
        return int(os.getenv('MAIL_PORT', 587))

    @property
    def MAIL_USE_TLS(self):
        return _env_flag('MAIL_USE_TLS', 'True')

    @property
    def MAIL_USE_SSL(self):
        return _env_flag('MAIL_USE_SSL')

    @property
    def MAIL_USERNAME(self):
        return os.getenv('MAIL_USERNAME')

    @property
    def MAIL_PASSWORD(self):
        return os.getenv('MAIL_PASSWORD')

    @property
    def MAIL_DEFAULT_SENDER(self):
        """Default sender email address"""
        return os.getenv('MAIL_DEFAULT_SENDER', 'noreply@9rx.com')

    @property
    def JWT_SECRET_KEY(self):
        """JWT secret key"""
        return os.getenv('JWT_SECRET_KEY', 'jwt-secret-key-change-in-production')

    @property
    def JWT_ACCESS_TOKEN_EXPIRES(self):
        """JWT access token expiration time in seconds"""
        return int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', 3600))

    @property
    def SESSION_COOKIE_SECURE(self):
        return _env_flag('SESSION_COOKIE_SECURE')

    @property
    def SESSION_COOKIE_HTTPONLY(self):
        return True

    @property
    def SESSION_COOKIE_SAMESITE(self):
        return 'Lax'

    @property
    def PERMANENT_SESSION_LIFETIME(self):
        """Session lifetime in seconds"""
        return 3600

    @property
    def FRONTEND_URL(self):
        """Public site URL used to build links in outgoing emails"""
        return os.getenv('FRONTEND_URL', 'http://localhost:3000')

    @property
    def COMPANY_NAME(self):
        return os.getenv('COMPANY_NAME', '9RX LLC')

    @property
    def COMPANY_CONTACT(self):
        """Contact line printed under the company name on statements and invoices"""
        return os.getenv(
            'COMPANY_CONTACT',
            'Tax ID: 99-0540972 | 936 Broad River Ln, Charlotte, NC 28211 | info@9rx.com | www.9rx.com'
        )

    # Authorize.Net

    @property
    def AUTHORIZE_NET_API_LOGIN_ID(self):
        return os.getenv('AUTHORIZE_NET_API_LOGIN_ID')

    @property
    def AUTHORIZE_NET_TRANSACTION_KEY(self):
        return os.getenv('AUTHORIZE_NET_TRANSACTION_KEY')

    @property
    def AUTHORIZE_NET_TEST_MODE(self):
        """Use the Authorize.Net sandbox endpoint"""
        return _env_flag('AUTHORIZE_NET_TEST_MODE', 'True')

    # FortisPay

    @property
    def FORTIS_API_URL(self):
        return os.getenv('FORTIS_API_URL', 'https://api.fortispay.com/v2')

    @property
    def FORTIS_USER_ID(self):
        return os.getenv('FORTIS_USER_ID')

    @property
    def FORTIS_USER_API_KEY(self):
        return os.getenv('FORTIS_USER_API_KEY')

    @property
    def FORTIS_LOCATION_ID(self):
        return os.getenv('FORTIS_LOCATION_ID')

    @property
    def FORTIS_PRODUCT_TRANSACTION_ID_ACH(self):
        return os.getenv('FORTIS_PRODUCT_TRANSACTION_ID_ACH')

    @property
    def ACH_PAYMENT_PROCESSOR(self):
        """Processor used for ACH payments: authorize_net or fortispay"""
        return os.getenv('ACH_PAYMENT_PROCESSOR', 'authorize_net')

    @property
    def PAYMENT_HTTP_TIMEOUT(self):
        """Timeout in seconds for outbound payment processor calls"""
        return float(os.getenv('PAYMENT_HTTP_TIMEOUT', 30))

    @property
    def STATEMENT_OUTPUT_DIR(self):
        """Directory used by server-side statement exports"""
        return os.getenv('STATEMENT_OUTPUT_DIR', 'statements')

    @property
    def LAUNCH_BATCH_SIZE(self):
        return int(os.getenv('LAUNCH_BATCH_SIZE', 10))

    @property
    def LAUNCH_BATCH_DELAY(self):
        """Pause in seconds between launch email batches"""
        return float(os.getenv('LAUNCH_BATCH_DELAY', 1))
