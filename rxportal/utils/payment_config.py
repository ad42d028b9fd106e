"""
Payment Configuration

FLOW OVERVIEW
- get_payment_config()
  • Admin-configured PaymentSettings rows (authorize_net, fortispay, processors) win;
    application config (environment) is the fallback for anything not stored.
  • The resolved PaymentConfig is cached until clear_payment_config_cache() is called,
    which the settings endpoint does after every update.
- get_authorize_net_settings() / get_fortis_settings()
  • Credentials for the gateway clients, same precedence.
- get_ach_processor / is_fortis_pay_available / is_authorize_net_available
"""

import logging
from dataclasses import dataclass
from typing import Optional

from flask import current_app

from ..models import PaymentSettings

logger = logging.getLogger(__name__)

PROCESSORS = ('authorize_net', 'fortispay')
FORTIS_REQUIRED_FIELDS = ('userId', 'userApiKey', 'locationId', 'productTransactionIdAch')


@dataclass
class PaymentConfig:
    ach_processor: str = 'authorize_net'
    credit_card_processor: str = 'authorize_net'
    fortis_pay_enabled: bool = False
    authorize_net_enabled: bool = False

    def to_dict(self):
        return {
            'ach_processor': self.ach_processor,
            'credit_card_processor': self.credit_card_processor,
            'fortis_pay_enabled': self.fortis_pay_enabled,
            'authorize_net_enabled': self.authorize_net_enabled,
        }


_cached_config: Optional[PaymentConfig] = None


def _settings_row(provider):
    return PaymentSettings.query.filter_by(provider=provider).first()


def get_authorize_net_settings() -> Optional[dict]:
    """Stored Authorize.Net settings, or settings built from config when credentials are set"""
    row = _settings_row('authorize_net')
    if row is not None:
        return dict(row.settings or {})

    login_id = current_app.config.get('AUTHORIZE_NET_API_LOGIN_ID')
    transaction_key = current_app.config.get('AUTHORIZE_NET_TRANSACTION_KEY')
    if not login_id and not transaction_key:
        return None
    return {
        'enabled': True,
        'apiLoginId': login_id or '',
        'transactionKey': transaction_key or '',
        'testMode': bool(current_app.config.get('AUTHORIZE_NET_TEST_MODE', True)),
    }


def get_fortis_settings() -> dict:
    row = _settings_row('fortispay')
    if row is not None:
        settings = dict(row.settings or {})
        settings.setdefault('apiUrl', current_app.config.get('FORTIS_API_URL', 'https://api.fortispay.com/v2'))
        return settings

    config = current_app.config
    settings = {
        'apiUrl': config.get('FORTIS_API_URL', 'https://api.fortispay.com/v2'),
        'userId': config.get('FORTIS_USER_ID'),
        'userApiKey': config.get('FORTIS_USER_API_KEY'),
        'locationId': config.get('FORTIS_LOCATION_ID'),
        'productTransactionIdAch': config.get('FORTIS_PRODUCT_TRANSACTION_ID_ACH'),
    }
    settings['enabled'] = all(settings[field] for field in FORTIS_REQUIRED_FIELDS)
    return settings


def _processor(value, default='authorize_net'):
    return value if value in PROCESSORS else default


def get_payment_config() -> PaymentConfig:
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    authorize_net = get_authorize_net_settings()
    fortis = get_fortis_settings()
    routing = _settings_row('processors')
    routing_settings = dict(routing.settings or {}) if routing is not None else {}

    config = PaymentConfig(
        ach_processor=_processor(routing_settings.get('achProcessor')
                                 or current_app.config.get('ACH_PAYMENT_PROCESSOR')),
        credit_card_processor=_processor(routing_settings.get('creditCardProcessor')),
        fortis_pay_enabled=bool(fortis.get('enabled')),
        authorize_net_enabled=bool(authorize_net and authorize_net.get('enabled')),
    )
    logger.debug(f"Resolved payment config: {config.to_dict()}")
    _cached_config = config
    return config


def clear_payment_config_cache():
    global _cached_config
    _cached_config = None


def get_ach_processor() -> str:
    return get_payment_config().ach_processor


def is_fortis_pay_available() -> bool:
    return get_payment_config().fortis_pay_enabled


def is_authorize_net_available() -> bool:
    return get_payment_config().authorize_net_enabled
