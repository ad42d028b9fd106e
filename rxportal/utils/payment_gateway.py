"""
Authorize.Net Payment Gateway

FLOW OVERVIEW
- PaymentGateway.from_settings()
  • Resolves credentials (stored settings, then config). No settings → NO_SETTINGS,
    disabled → GATEWAY_DISABLED, blank login/key → MISSING_CREDENTIALS.
- process_payment(request)
  • card: number stripped of spaces, expiry MMYY → YYYY-MM, CVV as cardCode.
  • ach / echeck: bankAccount block with echeckType defaulting to WEB.
  • billTo fields truncated to the gateway's limits; invoice number reduced to
    [A-Za-z0-9-] and 20 characters; description "Order <first 8 of id>".
  • Approved iff messages.resultCode == "Ok" and transactionResponse.responseCode == "1".
  • Approved payments against an order write a payment_received OrderActivity.
- save_card(profile, card, billing)
  • createCustomerProfile (E00039 duplicate → reuse the id in the message),
    createCustomerPaymentProfile, then store a SavedPaymentMethod (last four only).
- charge_saved_card(method, amount, invoice_number, order_id) / delete_saved_card(method)
- process_refund(transaction_id, amount, card_last_four, order_id, reason)

Processor failures never raise: every call returns a PaymentResponse/RefundResponse
with success=False plus error and error_code.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models import db, OrderActivity, SavedPaymentMethod
from .money import format_amount, format_money, to_decimal
from .payment_config import get_authorize_net_settings
from .prom_metrics import observe_payment

SANDBOX_ENDPOINT = 'https://apitest.authorize.net/xml/v1/request.api'
PRODUCTION_ENDPOINT = 'https://api.authorize.net/xml/v1/request.api'

DUPLICATE_PROFILE_CODE = 'E00039'
BILL_TO_LIMITS = (
    ('firstName', 50),
    ('lastName', 50),
    ('address', 60),
    ('city', 40),
    ('state', 40),
    ('zip', 20),
    ('country', 60),
)
CARD_BRANDS = (
    (re.compile(r'^4'), 'visa'),
    (re.compile(r'^5[1-5]'), 'mastercard'),
    (re.compile(r'^3[47]'), 'amex'),
    (re.compile(r'^6(?:011|5)'), 'discover'),
)


@dataclass
class PaymentResponse:
    success: bool
    transaction_id: Optional[str] = None
    auth_code: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    customer_profile_id: Optional[str] = None
    payment_profile_id: Optional[str] = None
    saved_method_id: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def failure(cls, error, error_code=''):
        return cls(success=False, error=error, error_code=error_code)

    def to_dict(self):
        data = {'success': self.success}
        for name in ('transaction_id', 'auth_code', 'message', 'error', 'error_code',
                     'customer_profile_id', 'payment_profile_id', 'saved_method_id'):
            value = getattr(self, name)
            if value not in (None, ''):
                data[name] = value
        return data


@dataclass
class RefundResponse:
    success: bool
    refund_transaction_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self):
        return {
            'success': self.success,
            'refund_transaction_id': self.refund_transaction_id,
            'message': self.message,
            'error': self.error,
            'error_code': self.error_code,
        }


class GatewayUnavailable(Exception):
    def __init__(self, error, error_code):
        super().__init__(error)
        self.error = error
        self.error_code = error_code


def card_brand(card_number: str) -> str:
    cleaned = re.sub(r'\s', '', card_number or '')
    for pattern, brand in CARD_BRANDS:
        if pattern.match(cleaned):
            return brand
    return 'unknown'


def format_expiration(expiration: str) -> str:
    """MMYY (with optional / - or spaces) → YYYY-MM; other shapes pass through"""
    cleaned = re.sub(r'[/\s-]', '', expiration or '')
    if len(cleaned) == 4:
        return f"20{cleaned[2:4]}-{cleaned[0:2]}"
    return cleaned


def clean_invoice_number(invoice_number) -> str:
    return re.sub(r'[^a-zA-Z0-9-]', '', str(invoice_number))[:20]


def build_bill_to(billing: Optional[Dict[str, Any]]) -> Dict[str, str]:
    bill_to = {}
    for key, limit in BILL_TO_LIMITS:
        value = (billing or {}).get(key)
        if value:
            bill_to[key] = str(value)[:limit]
    return bill_to


def _first_error(result: Dict[str, Any], default: str):
    """Error text and code from transactionResponse.errors, falling back to messages"""
    transaction_response = result.get('transactionResponse') or {}
    errors = (transaction_response.get('errors') or {}).get('error')
    if errors:
        first = errors[0] if isinstance(errors, list) else errors
        return first.get('errorText') or default, first.get('errorCode') or ''

    messages = (result.get('messages') or {}).get('message')
    if messages:
        first = messages[0] if isinstance(messages, list) else messages
        return first.get('text') or default, first.get('code') or ''
    return default, ''


def _approved(result: Dict[str, Any]) -> bool:
    return ((result.get('messages') or {}).get('resultCode') == 'Ok'
            and (result.get('transactionResponse') or {}).get('responseCode') == '1')


class PaymentGateway:
    """Thin client for the Authorize.Net JSON API"""

    def __init__(self, api_login_id: str, transaction_key: str, test_mode: bool = True,
                 timeout: float = 30):
        self.api_login_id = api_login_id
        self.transaction_key = transaction_key
        self.endpoint = SANDBOX_ENDPOINT if test_mode else PRODUCTION_ENDPOINT
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_settings(cls):
        settings = get_authorize_net_settings()
        if not settings:
            raise GatewayUnavailable('Payment gateway not configured.', 'NO_SETTINGS')
        if not settings.get('enabled'):
            raise GatewayUnavailable('Payment gateway is disabled.', 'GATEWAY_DISABLED')

        login_id = str(settings.get('apiLoginId') or '').strip()
        transaction_key = str(settings.get('transactionKey') or '').strip()
        if not login_id or not transaction_key:
            raise GatewayUnavailable('API credentials are required.', 'MISSING_CREDENTIALS')

        return cls(login_id, transaction_key,
                   test_mode=settings.get('testMode') is True,
                   timeout=current_app.config.get('PAYMENT_HTTP_TIMEOUT', 30))

    @property
    def merchant_authentication(self):
        return {'name': self.api_login_id, 'transactionKey': self.transaction_key}

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a request document; raises ValueError when the body is not JSON"""
        response = requests.post(self.endpoint, json=payload,
                                 headers={'Content-Type': 'application/json'},
                                 timeout=self.timeout)
        return json.loads(response.text.lstrip('\ufeff'))

    def _transaction(self, transaction_request: Dict[str, Any], ref_prefix='REF'):
        payload = {
            'createTransactionRequest': {
                'merchantAuthentication': self.merchant_authentication,
                'refId': f"{ref_prefix}-{int(time.time() * 1000)}",
                'transactionRequest': transaction_request,
            }
        }
        return self._post(payload)

    # Card and bank account payments

    def process_payment(self, request: Dict[str, Any]) -> PaymentResponse:
        payment = request.get('payment')
        amount = request.get('amount')
        if not payment or not amount:
            return PaymentResponse.failure('Payment details and amount are required', 'INVALID_REQUEST')

        payment_type = payment.get('type')
        if payment_type == 'card':
            payment_data = {
                'creditCard': {
                    'cardNumber': re.sub(r'[\s-]', '', payment.get('cardNumber') or ''),
                    'expirationDate': format_expiration(payment.get('expirationDate')),
                    'cardCode': payment.get('cvv'),
                }
            }
        elif payment_type in ('ach', 'echeck'):
            payment_data = {
                'bankAccount': {
                    'accountType': payment.get('accountType') or 'checking',
                    'routingNumber': payment.get('routingNumber'),
                    'accountNumber': payment.get('accountNumber'),
                    'nameOnAccount': payment.get('nameOnAccount'),
                    'echeckType': payment.get('echeckType') or 'WEB',
                    'bankName': payment.get('bankName') or '',
                }
            }
        else:
            return PaymentResponse.failure('Invalid payment type', 'INVALID_PAYMENT_TYPE')

        transaction_request = {
            'transactionType': 'authCaptureTransaction',
            'amount': format_amount(amount),
            'payment': payment_data,
        }

        order_info = {}
        if request.get('invoiceNumber'):
            order_info['invoiceNumber'] = clean_invoice_number(request['invoiceNumber'])
        if request.get('orderId'):
            order_info['description'] = f"Order {str(request['orderId'])[:8]}"
        if order_info:
            transaction_request['order'] = order_info

        email = request.get('customerEmail')
        if email and '@' in email:
            transaction_request['customer'] = {'email': email.strip()[:255]}

        bill_to = build_bill_to(request.get('billing'))
        if bill_to:
            transaction_request['billTo'] = bill_to

        method = 'card' if payment_type == 'card' else 'ach'
        started = time.perf_counter()
        try:
            result = self._transaction(transaction_request)
        except ValueError:
            observe_payment('authorize_net', method, False, time.perf_counter() - started)
            return PaymentResponse.failure('Invalid response from payment gateway', 'PARSE_ERROR')
        except requests.RequestException as e:
            self.logger.error(f"Authorize.Net request failed: {e}")
            observe_payment('authorize_net', method, False, time.perf_counter() - started)
            return PaymentResponse.failure(str(e), 'INTERNAL_ERROR')

        approved = _approved(result)
        observe_payment('authorize_net', method, approved, time.perf_counter() - started)
        if not approved:
            error, code = _first_error(result, 'Transaction failed')
            self.logger.warning(f"Authorize.Net declined {method} payment: {code} {error}")
            return PaymentResponse(success=False, error=error, error_code=code, raw=result)

        transaction_response = result['transactionResponse']
        response = PaymentResponse(
            success=True,
            transaction_id=transaction_response.get('transId'),
            auth_code=transaction_response.get('authCode'),
            message='Transaction approved',
            raw=result,
        )
        if request.get('orderId'):
            via = 'Credit Card' if payment_type == 'card' else 'ACH'
            self._log_payment_activity(request['orderId'], amount, via, response, payment_type)
        return response

    # Customer profiles (saved cards)

    def create_customer_profile(self, email: str, merchant_customer_id: str):
        payload = {
            'createCustomerProfileRequest': {
                'merchantAuthentication': self.merchant_authentication,
                'profile': {
                    'merchantCustomerId': merchant_customer_id.replace('-', '')[:20],
                    'email': email,
                },
            }
        }
        return self._profile_call(payload, 'customerProfileId', 'Failed to create customer profile')

    def create_payment_profile(self, customer_profile_id: str, card: Dict[str, Any],
                               billing: Optional[Dict[str, Any]]):
        billing = billing or {}
        payload = {
            'createCustomerPaymentProfileRequest': {
                'merchantAuthentication': self.merchant_authentication,
                'customerProfileId': customer_profile_id,
                'paymentProfile': {
                    'billTo': {
                        'firstName': billing.get('firstName') or 'Customer',
                        'lastName': billing.get('lastName') or 'Customer',
                        'address': billing.get('address') or '',
                        'city': billing.get('city') or '',
                        'state': billing.get('state') or '',
                        'zip': billing.get('zip') or '',
                        'country': billing.get('country') or 'USA',
                    },
                    'payment': {
                        'creditCard': {
                            'cardNumber': re.sub(r'[\s-]', '', card.get('cardNumber') or ''),
                            'expirationDate': format_expiration(card.get('expirationDate')),
                            'cardCode': card.get('cvv'),
                        }
                    },
                },
                'validationMode': 'liveMode',
            }
        }
        return self._profile_call(payload, 'customerPaymentProfileId', 'Failed to create payment profile')

    def _profile_call(self, payload, id_field, default_error):
        """(profile id, error) for the create*Profile requests"""
        try:
            result = self._post(payload)
        except (ValueError, requests.RequestException) as e:
            return None, str(e)

        messages = result.get('messages') or {}
        if messages.get('resultCode') == 'Ok':
            return result.get(id_field), None

        first = (messages.get('message') or [{}])[0]
        if first.get('code') == DUPLICATE_PROFILE_CODE:
            match = re.search(r'ID (\d+)', first.get('text') or '')
            if match:
                return match.group(1), None
        return None, first.get('text') or default_error

    def save_card(self, profile, card: Dict[str, Any], billing: Optional[Dict[str, Any]] = None,
                  nickname: Optional[str] = None) -> PaymentResponse:
        if not card.get('cardNumber') or not card.get('expirationDate') or not card.get('cvv'):
            return PaymentResponse.failure('Missing required fields', 'INVALID_REQUEST')

        customer_profile_id, error = self.create_customer_profile(profile.email, profile.user_id)
        if error:
            return PaymentResponse.failure(error, 'CUSTOMER_PROFILE_ERROR')

        payment_profile_id, error = self.create_payment_profile(customer_profile_id, card, billing)
        if error:
            return PaymentResponse.failure(error, 'PAYMENT_PROFILE_ERROR')

        number = re.sub(r'[\s-]', '', card['cardNumber'])
        brand = card_brand(number)
        expiry = re.sub(r'[/\s-]', '', card['expirationDate'])
        method = SavedPaymentMethod(
            profile_id=profile.id,
            customer_profile_id=customer_profile_id,
            payment_profile_id=payment_profile_id,
            method_type='card',
            card_last_four=number[-4:],
            card_type=brand,
            card_expiry_month=int(expiry[0:2]),
            card_expiry_year=int('20' + expiry[2:4]),
            billing_address=billing or {},
            nickname=nickname or f"{brand.capitalize()} •••• {number[-4:]}",
            is_default=False,
            is_active=True,
        )
        db.session.add(method)
        db.session.commit()
        self.logger.info(f"Saved card ****{number[-4:]} for user {profile.user_id}")

        return PaymentResponse(
            success=True,
            message='Card saved successfully',
            customer_profile_id=customer_profile_id,
            payment_profile_id=payment_profile_id,
            saved_method_id=method.id,
        )

    def charge_saved_card(self, method, amount, invoice_number: Optional[str] = None,
                          order_id=None) -> PaymentResponse:
        if not method.customer_profile_id or not method.payment_profile_id or not amount:
            return PaymentResponse.failure('Missing required fields', 'INVALID_REQUEST')

        transaction_request = {
            'transactionType': 'authCaptureTransaction',
            'amount': format_amount(amount),
            'profile': {
                'customerProfileId': method.customer_profile_id,
                'paymentProfile': {'paymentProfileId': method.payment_profile_id},
            },
        }
        if invoice_number:
            transaction_request['order'] = {'invoiceNumber': clean_invoice_number(invoice_number)}

        started = time.perf_counter()
        try:
            result = self._transaction(transaction_request)
        except (ValueError, requests.RequestException) as e:
            observe_payment('authorize_net', 'saved_card', False, time.perf_counter() - started)
            return PaymentResponse.failure(str(e), 'CHARGE_ERROR')

        approved = _approved(result)
        observe_payment('authorize_net', 'saved_card', approved, time.perf_counter() - started)
        if not approved:
            error, code = _first_error(result, 'Transaction failed')
            return PaymentResponse(success=False, error=error, error_code=code or 'CHARGE_ERROR', raw=result)

        transaction_response = result['transactionResponse']
        response = PaymentResponse(
            success=True,
            transaction_id=transaction_response.get('transId'),
            auth_code=transaction_response.get('authCode'),
            message='Payment successful',
            raw=result,
        )
        if order_id:
            self._log_payment_activity(order_id, amount, 'Saved Card', response, 'saved_card')
        return response

    def delete_saved_card(self, method) -> PaymentResponse:
        payload = {
            'deleteCustomerPaymentProfileRequest': {
                'merchantAuthentication': self.merchant_authentication,
                'customerProfileId': method.customer_profile_id,
                'customerPaymentProfileId': method.payment_profile_id,
            }
        }
        try:
            result = self._post(payload)
            messages = result.get('messages') or {}
            if messages.get('resultCode') == 'Ok':
                error = None
            else:
                error = (messages.get('message') or [{}])[0].get('text') or 'Failed to delete payment profile'
        except (ValueError, requests.RequestException) as e:
            error = str(e)

        # The stored method is deactivated even when the processor call fails
        method.is_active = False
        db.session.commit()

        if error:
            self.logger.warning(f"Deleting payment profile {method.payment_profile_id} failed: {error}")
            return PaymentResponse(success=False, error=error, message=error)
        return PaymentResponse(success=True, message='Card deleted')

    # Refunds

    def process_refund(self, transaction_id: str, amount, card_last_four: Optional[str] = None,
                       order_id=None, reason: Optional[str] = None) -> RefundResponse:
        if not transaction_id or not amount:
            return RefundResponse(success=False, error='Transaction ID and amount are required',
                                  error_code='INVALID_REQUEST')

        transaction_request = {
            'transactionType': 'refundTransaction',
            'amount': format_amount(amount),
            'refTransId': transaction_id,
        }
        if card_last_four:
            transaction_request['payment'] = {
                'creditCard': {'cardNumber': card_last_four, 'expirationDate': 'XXXX'}
            }

        try:
            result = self._transaction(transaction_request, ref_prefix='REFUND')
        except (ValueError, requests.RequestException) as e:
            self.logger.error(f"Refund of {transaction_id} failed: {e}")
            return RefundResponse(success=False, error=str(e), error_code='INTERNAL_ERROR')

        if not _approved(result):
            error, code = _first_error(result, 'Refund failed')
            return RefundResponse(success=False, error=error, error_code=code)

        refund_id = result['transactionResponse'].get('transId')
        if order_id:
            suffix = f": {reason}" if reason else ''
            self._record_activity(order_id, 'refund_processed',
                                  f"Refund of {format_money(amount)} processed{suffix}",
                                  {'original_transaction_id': transaction_id,
                                   'refund_transaction_id': refund_id,
                                   'amount': float(to_decimal(amount)),
                                   'reason': reason})
        return RefundResponse(success=True, refund_transaction_id=refund_id,
                              message='Refund processed successfully')

    # Order activity

    def _log_payment_activity(self, order_id, amount, via, response, payment_type):
        self._record_activity(order_id, 'payment_received',
                              f"Payment of {format_money(amount)} received via {via}",
                              {'transaction_id': response.transaction_id,
                               'auth_code': response.auth_code,
                               'payment_type': payment_type,
                               'amount': float(to_decimal(amount))})

    def _record_activity(self, order_id, activity_type, description, metadata):
        try:
            db.session.add(OrderActivity(order_id=order_id, activity_type=activity_type,
                                         description=description, activity_metadata=metadata))
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            self.logger.error(f"Failed to log {activity_type} activity for order {order_id}: {e}")


def _with_gateway(call, failure_cls=PaymentResponse):
    try:
        gateway = PaymentGateway.from_settings()
    except GatewayUnavailable as e:
        return failure_cls(success=False, error=e.error, error_code=e.error_code)
    return call(gateway)


# Convenience functions used by the payments API
def process_payment(request: Dict[str, Any]) -> PaymentResponse:
    return _with_gateway(lambda gateway: gateway.process_payment(request))


def save_card(profile, card, billing=None, nickname=None) -> PaymentResponse:
    return _with_gateway(lambda gateway: gateway.save_card(profile, card, billing, nickname))


def charge_saved_card(method, amount, invoice_number=None, order_id=None) -> PaymentResponse:
    return _with_gateway(lambda gateway: gateway.charge_saved_card(method, amount, invoice_number, order_id))


def delete_saved_card(method) -> PaymentResponse:
    return _with_gateway(lambda gateway: gateway.delete_saved_card(method))


def process_refund(transaction_id, amount, card_last_four=None, order_id=None, reason=None) -> RefundResponse:
    return _with_gateway(
        lambda gateway: gateway.process_refund(transaction_id, amount, card_last_four, order_id, reason),
        failure_cls=RefundResponse,
    )
