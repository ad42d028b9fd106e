"""
FortisPay ACH Client

FLOW OVERVIEW
- FortisPayClient.from_settings()
  • Credentials from stored fortispay settings or config (FORTIS_*).
- process_ach_payment(ach, billing, amount, sec_code, order_id, description, profile_id)
  • POST {api}/transactions with action "debit", payment_method "ach" and today's
    effective date. Headers carry the static user-id / user-api-key pair.
  • status_id 131-134 means the debit was accepted; an ACHTransaction is stored with
    only the last four digits of the account.
- get_transaction_status(transaction_id)
  • GET {api}/transactions/<id>
- refund_ach_transaction(original_transaction_id, amount)
  • POST {api}/transactions with action "refund" and previous_transaction_id.

SEC codes: PPD (personal), CCD (corporate), WEB (internet), TEL (telephone),
POP (point of purchase), C21 (check images).
"""

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

import requests
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models import db, ACHTransaction
from .money import format_amount, to_decimal
from .payment_config import get_fortis_settings
from .prom_metrics import observe_payment
from .validators import mask_account

SEC_CODES = ('PPD', 'CCD', 'WEB', 'TEL', 'POP', 'C21')
SUCCESS_STATUS_IDS = (131, 132, 133, 134)
STATUS_MAP = {
    131: 'pending',
    132: 'processing',
    133: 'originated',
    134: 'completed',
    201: 'voided',
    301: 'declined',
    331: 'charged_back',
}


def status_from_status_id(status_id) -> str:
    return STATUS_MAP.get(status_id, 'unknown')


@dataclass
class FortisPaymentResult:
    success: bool
    transaction_id: Optional[str] = None
    message: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    status_id: Optional[int] = None
    auth_code: Optional[str] = None
    verbiage: Optional[str] = None

    @property
    def status(self):
        return status_from_status_id(self.status_id) if self.status_id is not None else None

    def to_dict(self):
        return {
            'success': self.success,
            'transaction_id': self.transaction_id,
            'message': self.message,
            'error_code': self.error_code,
            'error_message': self.error_message,
            'status_id': self.status_id,
            'status': self.status,
            'auth_code': self.auth_code,
        }


MISSING_CONFIG = 'FortisPay configuration missing'


class FortisPayClient:
    """ACH debits, refunds and status lookups against the FortisPay v2 API"""

    def __init__(self, api_url: str, user_id: str, user_api_key: str, location_id: str = None,
                 product_transaction_id: str = None, timeout: float = 30):
        self.api_url = (api_url or '').rstrip('/')
        self.user_id = user_id
        self.user_api_key = user_api_key
        self.location_id = location_id
        self.product_transaction_id = product_transaction_id
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_settings(cls):
        settings = get_fortis_settings()
        return cls(
            api_url=settings.get('apiUrl'),
            user_id=settings.get('userId'),
            user_api_key=settings.get('userApiKey'),
            location_id=settings.get('locationId'),
            product_transaction_id=settings.get('productTransactionIdAch'),
            timeout=current_app.config.get('PAYMENT_HTTP_TIMEOUT', 30),
        )

    @property
    def headers(self):
        return {
            'Content-Type': 'application/json',
            'user-id': self.user_id,
            'user-api-key': self.user_api_key,
        }

    def _has_credentials(self, *extra):
        return all((self.user_id, self.user_api_key) + extra)

    def build_debit_request(self, ach: Dict[str, Any], billing: Dict[str, Any], amount,
                            sec_code: str = 'WEB', order_id=None, description: str = None):
        billing = billing or {}
        transaction = {
            'action': 'debit',
            'payment_method': 'ach',
            'account_holder_name': ach.get('accountHolderName'),
            'account_number': ach.get('accountNumber'),
            'account_type': ach.get('accountType'),
            'routing': ach.get('routingNumber'),
            'ach_sec_code': sec_code or 'WEB',
            'transaction_amount': format_amount(amount),
            'location_id': self.location_id,
            'product_transaction_id': self.product_transaction_id,
            'billing_street': billing.get('street'),
            'billing_city': billing.get('city'),
            'billing_state': billing.get('state'),
            'billing_zip': billing.get('zip'),
            'billing_phone': billing.get('phone'),
            'description': description or 'ACH Payment',
            'order_num': str(order_id) if order_id is not None else None,
            'check_number': ach.get('checkNumber'),
            'dl_number': ach.get('dlNumber'),
            'dl_state': ach.get('dlState'),
            'ssn4': ach.get('ssn4'),
            'dob_year': ach.get('dobYear'),
            'effective_date': date.today().isoformat(),
        }
        return {'transaction': {key: value for key, value in transaction.items() if value is not None}}

    def process_ach_payment(self, ach: Dict[str, Any], billing: Dict[str, Any], amount,
                            sec_code: str = 'WEB', order_id=None, description: str = None,
                            profile_id=None) -> FortisPaymentResult:
        if not self._has_credentials(self.location_id, self.product_transaction_id):
            return FortisPaymentResult(
                success=False,
                message=MISSING_CONFIG,
                error_message='Please configure FortisPay API credentials',
            )
        if sec_code not in SEC_CODES:
            return FortisPaymentResult(success=False, message='Invalid SEC code',
                                       error_message=f"SEC code must be one of {', '.join(SEC_CODES)}")

        payload = self.build_debit_request(ach, billing, amount, sec_code, order_id, description)
        started = time.perf_counter()
        try:
            response = requests.post(f"{self.api_url}/transactions", json=payload,
                                     headers=self.headers, timeout=self.timeout)
            result = response.json()
        except (ValueError, requests.RequestException) as e:
            self.logger.error(f"FortisPay ACH debit failed: {e}")
            observe_payment('fortispay', 'ach', False, time.perf_counter() - started)
            return FortisPaymentResult(success=False, message='ACH processing error',
                                       error_message=str(e) or 'An unexpected error occurred')

        if not response.ok:
            observe_payment('fortispay', 'ach', False, time.perf_counter() - started)
            return FortisPaymentResult(
                success=False,
                message='FortisPay API error',
                error_message=result.get('message') or result.get('error') or 'Failed to process ACH payment',
                error_code=str(result['code']) if result.get('code') is not None else None,
            )

        transaction = result.get('transaction') or {}
        status_id = transaction.get('status_id')
        accepted = status_id in SUCCESS_STATUS_IDS
        observe_payment('fortispay', 'ach', accepted, time.perf_counter() - started)

        if not accepted:
            reason = transaction.get('reason_code_id')
            return FortisPaymentResult(
                success=False,
                message=transaction.get('verbiage') or 'ACH payment declined',
                error_message=transaction.get('response_message'),
                error_code=str(reason) if reason is not None else None,
                status_id=status_id,
            )

        self._store_transaction(transaction, ach, amount, sec_code, order_id, profile_id)
        self.logger.info(f"FortisPay ACH debit {transaction.get('id')} accepted "
                         f"({status_from_status_id(status_id)}) for {mask_account(ach.get('accountNumber'))}")
        return FortisPaymentResult(
            success=True,
            transaction_id=transaction.get('id'),
            message=transaction.get('verbiage') or 'ACH payment initiated successfully',
            status_id=status_id,
            auth_code=transaction.get('auth_code'),
            verbiage=transaction.get('verbiage'),
        )

    def _store_transaction(self, transaction, ach, amount, sec_code, order_id, profile_id):
        try:
            db.session.add(ACHTransaction(
                transaction_id=str(transaction.get('id')),
                order_id=order_id,
                profile_id=profile_id,
                amount=to_decimal(amount),
                status=status_from_status_id(transaction.get('status_id')),
                status_id=transaction.get('status_id'),
                account_holder_name=ach.get('accountHolderName'),
                account_last_four=mask_account(ach.get('accountNumber')),
                account_type=ach.get('accountType'),
                sec_code=sec_code,
                raw_response=transaction,
            ))
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            self.logger.error(f"Error storing ACH transaction {transaction.get('id')}: {e}")

    def get_transaction_status(self, transaction_id: str) -> FortisPaymentResult:
        if not self._has_credentials():
            return FortisPaymentResult(success=False, message=MISSING_CONFIG)

        try:
            response = requests.get(f"{self.api_url}/transactions/{transaction_id}",
                                    headers=self.headers, timeout=self.timeout)
            result = response.json()
        except (ValueError, requests.RequestException) as e:
            return FortisPaymentResult(success=False, message='Error fetching transaction status',
                                       error_message=str(e))

        if not response.ok:
            return FortisPaymentResult(success=False, message='Failed to get transaction status',
                                       error_message=result.get('message') or result.get('error'))

        transaction = result.get('transaction') or {}
        return FortisPaymentResult(
            success=True,
            transaction_id=transaction.get('id'),
            status_id=transaction.get('status_id'),
            message=transaction.get('verbiage'),
            auth_code=transaction.get('auth_code'),
        )

    def refund_ach_transaction(self, original_transaction_id: str, amount) -> FortisPaymentResult:
        if not self._has_credentials(self.location_id):
            return FortisPaymentResult(success=False, message=MISSING_CONFIG)

        payload = {
            'transaction': {
                'action': 'refund',
                'payment_method': 'ach',
                'previous_transaction_id': original_transaction_id,
                'transaction_amount': format_amount(amount),
                'location_id': self.location_id,
            }
        }
        try:
            response = requests.post(f"{self.api_url}/transactions", json=payload,
                                     headers=self.headers, timeout=self.timeout)
            result = response.json()
        except (ValueError, requests.RequestException) as e:
            return FortisPaymentResult(success=False, message='Refund processing error',
                                       error_message=str(e))

        if not response.ok:
            return FortisPaymentResult(success=False, message='Refund failed',
                                       error_message=result.get('message') or result.get('error'))

        transaction = result.get('transaction') or {}
        self.logger.info(f"FortisPay refund {transaction.get('id')} for {original_transaction_id}")
        return FortisPaymentResult(
            success=True,
            transaction_id=transaction.get('id'),
            message='Refund processed successfully',
            status_id=transaction.get('status_id'),
        )
