"""
Account Statements

FLOW OVERVIEW
- StatementGenerationService.fetch_statement_data(user_id, start_date, end_date)
  • Ledger rows (account_transactions) dated inside the period, oldest first.
  • Orders placed in the period with a positive total and no matching order-type
    ledger row are added as debits ("Order #<number> - <status>") and the list is re-sorted.
  • Opening balance = balance of the last ledger row before the period (0 when none).
  • Running balance: previous + credit − debit. Purchases = Σ debits, payments = Σ credits.
- generate_statement_data(request)
  • Request validation, then fetch; a period with no activity fails unless
    include_zero_activity is set. Builds statement_<user>_<start>_to_<end>.pdf.
- validate_financial_calculations(data)
  • Balance and closing-balance drift are warnings (stored balances can lag);
    purchase/payment total mismatches are errors.
- get_user_profile(user_id)

Dates may be passed as date or datetime. A bare end date covers that whole day.
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from ..models import AccountTransaction, Order, User
from .errors import ValidationError, NotFoundError
from .money import ZERO, TOLERANCE, to_decimal, to_money

logger = logging.getLogger(__name__)


@dataclass
class StatementTransaction:
    id: str
    transaction_date: datetime
    description: str
    debit_amount: Decimal
    credit_amount: Decimal
    balance: Decimal
    transaction_type: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None

    def to_dict(self):
        data = asdict(self)
        data['transaction_date'] = self.transaction_date.isoformat()
        for key in ('debit_amount', 'credit_amount', 'balance'):
            data[key] = float(data[key])
        return data


@dataclass
class StatementData:
    user_id: str
    start_date: datetime
    end_date: datetime
    opening_balance: Decimal
    closing_balance: Decimal
    transactions: List[StatementTransaction] = field(default_factory=list)
    total_purchases: Decimal = ZERO
    total_payments: Decimal = ZERO

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'opening_balance': float(self.opening_balance),
            'closing_balance': float(self.closing_balance),
            'total_purchases': float(self.total_purchases),
            'total_payments': float(self.total_payments),
            'transactions': [t.to_dict() for t in self.transactions],
        }


@dataclass
class StatementRequest:
    user_id: Optional[str]
    start_date: Optional[date]
    end_date: Optional[date]
    include_zero_activity: bool = False


@dataclass
class StatementResponse:
    success: bool
    data: Optional[StatementData] = None
    error: Optional[str] = None
    filename: Optional[str] = None


@dataclass
class CalculationCheck:
    is_valid: bool
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _as_datetime(value, end_of_day=False) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.max if end_of_day else time.min)


def _day(value) -> str:
    return value.strftime('%Y-%m-%d')


class StatementGenerationService:
    """Balance-forward statements built from the account ledger and orders"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def get_user_profile(self, user_id: str) -> User:
        profile = User.query.filter_by(user_id=user_id).first()
        if profile is None:
            raise NotFoundError(f"Failed to fetch user profile: {user_id} not found", 'USER_NOT_FOUND')
        return profile

    def fetch_statement_data(self, user_id: str, start_date, end_date) -> StatementData:
        if not user_id:
            raise ValidationError('User ID is required')
        if start_date >= end_date:
            raise ValidationError('Start date must be before end date')

        profile = self.get_user_profile(user_id)
        start = _as_datetime(start_date)
        end = _as_datetime(end_date, end_of_day=True)

        rows = (AccountTransaction.query
                .filter(AccountTransaction.profile_id == profile.id,
                        AccountTransaction.transaction_date >= start,
                        AccountTransaction.transaction_date <= end)
                .order_by(AccountTransaction.transaction_date.asc(), AccountTransaction.id.asc())
                .all())

        transactions = [
            StatementTransaction(
                id=str(row.id),
                transaction_date=row.transaction_date,
                description=row.description or '',
                debit_amount=to_decimal(row.debit_amount),
                credit_amount=to_decimal(row.credit_amount),
                balance=to_decimal(row.balance),
                transaction_type=row.transaction_type,
                reference_type=row.reference_type,
                reference_id=row.reference_id,
            )
            for row in rows
        ]

        orders = (Order.query
                  .filter(Order.profile_id == profile.id,
                          Order.created_at >= start,
                          Order.created_at <= end)
                  .order_by(Order.created_at.asc())
                  .all())
        if orders:
            recorded = {t.reference_id for t in transactions if t.reference_type == 'order'}
            for order in orders:
                if str(order.id) in recorded or to_decimal(order.total_amount) <= 0:
                    continue
                transactions.append(StatementTransaction(
                    id=f"order-{order.id}",
                    transaction_date=order.created_at,
                    description=f"Order #{order.order_number} - {order.status}",
                    debit_amount=to_decimal(order.total_amount),
                    credit_amount=ZERO,
                    balance=ZERO,
                    transaction_type='debit',
                    reference_type='order',
                    reference_id=str(order.id),
                ))
            transactions.sort(key=lambda t: t.transaction_date)

        last_before = (AccountTransaction.query
                       .filter(AccountTransaction.profile_id == profile.id,
                               AccountTransaction.transaction_date < start)
                       .order_by(AccountTransaction.transaction_date.desc(), AccountTransaction.id.desc())
                       .first())
        opening_balance = to_decimal(last_before.balance) if last_before else ZERO

        closing_balance = opening_balance
        total_purchases = ZERO
        total_payments = ZERO
        for transaction in transactions:
            closing_balance = closing_balance + transaction.credit_amount - transaction.debit_amount
            total_purchases += transaction.debit_amount
            total_payments += transaction.credit_amount
            transaction.balance = closing_balance

        return StatementData(
            user_id=user_id,
            start_date=start,
            end_date=end,
            opening_balance=to_money(opening_balance),
            closing_balance=to_money(closing_balance),
            transactions=transactions,
            total_purchases=to_money(total_purchases),
            total_payments=to_money(total_payments),
        )

    def generate_statement_data(self, request: StatementRequest) -> StatementResponse:
        if not request.user_id:
            return StatementResponse(success=False, error='User ID is required')
        if not request.start_date or not request.end_date:
            return StatementResponse(success=False, error='Start date and end date are required')
        if request.start_date >= request.end_date:
            return StatementResponse(success=False, error='Start date must be before end date')

        try:
            data = self.fetch_statement_data(request.user_id, request.start_date, request.end_date)
        except (ValidationError, NotFoundError) as e:
            self.logger.error(f"Error generating statement for {request.user_id}: {e.message}")
            return StatementResponse(success=False, error=e.message)

        if not data.transactions and not request.include_zero_activity:
            return StatementResponse(success=False, error='No transactions found for the selected period')

        filename = f"statement_{request.user_id}_{_day(request.start_date)}_to_{_day(request.end_date)}.pdf"
        return StatementResponse(success=True, data=data, filename=filename)

    def validate_financial_calculations(self, data: StatementData) -> CalculationCheck:
        warnings = []
        errors = []
        calculated_purchases = ZERO
        calculated_payments = ZERO
        previous_balance = to_decimal(data.opening_balance)

        for transaction in data.transactions:
            expected = previous_balance + transaction.credit_amount - transaction.debit_amount
            difference = abs(to_decimal(transaction.balance) - expected)
            if difference > TOLERANCE:
                warnings.append(
                    f"Transaction {transaction.id}: balance difference of ${difference:.2f} "
                    f"(expected: ${expected:.2f}, actual: ${to_decimal(transaction.balance):.2f})"
                )
            previous_balance = to_decimal(transaction.balance)
            calculated_purchases += transaction.debit_amount
            calculated_payments += transaction.credit_amount

        if data.transactions:
            last_balance = to_decimal(data.transactions[-1].balance)
            if abs(to_decimal(data.closing_balance) - last_balance) > TOLERANCE:
                warnings.append(
                    f"Closing balance mismatch: statement shows ${to_decimal(data.closing_balance):.2f}, "
                    f"last transaction shows ${last_balance:.2f}"
                )
        elif abs(to_decimal(data.closing_balance) - to_decimal(data.opening_balance)) > TOLERANCE:
            warnings.append(
                f"No transactions but closing balance (${to_decimal(data.closing_balance):.2f}) "
                f"differs from opening balance (${to_decimal(data.opening_balance):.2f})"
            )

        if abs(to_decimal(data.total_purchases) - calculated_purchases) > TOLERANCE:
            errors.append(
                f"Total purchases mismatch: calculated ${calculated_purchases:.2f}, "
                f"statement shows ${to_decimal(data.total_purchases):.2f}"
            )
        if abs(to_decimal(data.total_payments) - calculated_payments) > TOLERANCE:
            errors.append(
                f"Total payments mismatch: calculated ${calculated_payments:.2f}, "
                f"statement shows ${to_decimal(data.total_payments):.2f}"
            )

        if warnings:
            self.logger.warning(f"Financial validation warnings: {warnings}")
        if errors:
            self.logger.error(f"Financial validation errors: {errors}")
        return CalculationCheck(is_valid=not errors, warnings=warnings, errors=errors)


statement_service = StatementGenerationService()
