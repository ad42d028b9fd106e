"""
Input Validation Utilities

FLOW OVERVIEW
- validate_email(email)
  • Syntax and length checks; returns sanitized lowercased value.
- validate_password_hash(hash) / validate_password_strength(password)
  • bcrypt hash shape; length and character variety for new passwords.
- validate_card_number(number) / get_card_type(number)
  • Strip whitespace, 13-19 digits, Luhn checksum; brand from the leading digits.
- validate_routing_number(routing)
  • 9 digits with the ABA weighted checksum 3-7-1.
- validate_expiry(expiration) / validate_cvv(cvv)
  • MMYY (or MM/YY, MM/YYYY) not in the past and not unreasonably far out; 3-4 digit CVV.
- validate_card_details(data) / validate_ach_details(data) / validate_billing_address(data)
  • Form-level checks returning a field -> message map, used before any processor call.
- sanitize_input(input, max_length) / mask_account(number)
"""

import re
from datetime import date
from typing import Optional, Tuple, List, Dict, Any
from dataclasses import dataclass


@dataclass
class ValidationResult:
    """Result of validation operation"""
    is_valid: bool
    error_message: Optional[str] = None
    sanitized_value: Optional[str] = None


class InputValidator:
    """Field validation for account, card and bank inputs"""

    EMAIL_PATTERN = re.compile(
        r'^[a-zA-Z0-9.!#$%&\'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$'
    )
    BCRYPT_PATTERN = re.compile(r'^\$2[aby]\$\d{2}\$[./A-Za-z0-9]{53}$')
    EXPIRY_PATTERN = re.compile(r'^([0-9]{2})\s*[/-]?\s*([0-9]{2}|[0-9]{4})$')
    ZIP_PATTERN = re.compile(r'^[0-9]{5}(-[0-9]{4})?$')

    CARD_TYPES = (
        (re.compile(r'^4'), 'Visa'),
        (re.compile(r'^5[1-5]'), 'Mastercard'),
        (re.compile(r'^3[47]'), 'American Express'),
        (re.compile(r'^6(?:011|5)'), 'Discover'),
    )
    ACH_ACCOUNT_TYPES = ('checking', 'savings', 'businessChecking')
    MAX_EXPIRY_YEARS = 20

    @classmethod
    def validate_email(cls, email: str) -> ValidationResult:
        """
        Validate email address

        Args:
            email: Email address to validate

        Returns:
            ValidationResult with validation status and sanitized value
        """
        if not email or not isinstance(email, str):
            return ValidationResult(False, "Email must be a non-empty string")

        email = email.strip()
        if email == "":
            return ValidationResult(False, "Email cannot be empty")

        if len(email) > 254:
            return ValidationResult(False, "Email address too long (max 254 characters)")

        if not cls.EMAIL_PATTERN.match(email):
            return ValidationResult(False, "Invalid email format")

        local_part, domain = email.split('@')
        if len(local_part) > 64:
            return ValidationResult(False, "Email local part too long (max 64 characters)")

        if local_part.startswith('.') or local_part.endswith('.') or '..' in local_part:
            return ValidationResult(False, "Invalid email format")

        if '..' in domain:
            return ValidationResult(False, "Domain cannot contain consecutive dots")

        return ValidationResult(True, sanitized_value=email.lower())

    @classmethod
    def validate_password_hash(cls, password_hash: str) -> ValidationResult:
        """Validate that a stored password hash is a bcrypt hash"""
        if not password_hash or not isinstance(password_hash, str):
            return ValidationResult(False, "Password hash must be a non-empty string")

        password_hash = password_hash.strip()
        if not cls.BCRYPT_PATTERN.match(password_hash):
            return ValidationResult(False, "Invalid password hash format: expected a bcrypt hash")

        return ValidationResult(True, sanitized_value=password_hash)

    @classmethod
    def validate_password_strength(cls, password: str) -> ValidationResult:
        """
        Validate password strength requirements

        Args:
            password: Password to validate

        Returns:
            ValidationResult with validation status
        """
        if not password or not isinstance(password, str):
            return ValidationResult(False, "Password must be a non-empty string")

        if len(password) < 8:
            return ValidationResult(False, "Password must be at least 8 characters long")

        if len(password) > 128:
            return ValidationResult(False, "Password too long (max 128 characters)")

        has_upper = any(c.isupper() for c in password)
        has_lower = any(c.islower() for c in password)
        has_digit = any(c.isdigit() for c in password)

        if not (has_upper and has_lower and has_digit):
            return ValidationResult(False, "Password must contain uppercase, lowercase, and numeric characters")

        return ValidationResult(True)

    @classmethod
    def luhn_checksum_valid(cls, digits: str) -> bool:
        """Luhn mod-10 check over a string of digits"""
        total = 0
        for index, char in enumerate(reversed(digits)):
            digit = int(char)
            if index % 2 == 1:
                digit *= 2
                if digit > 9:
                    digit -= 9
            total += digit
        return total % 10 == 0

    @classmethod
    def validate_card_number(cls, card_number: str) -> ValidationResult:
        """
        Validate a card number: spaces and dashes stripped, 13-19 ASCII digits, Luhn checksum.

        Returns:
            ValidationResult whose sanitized_value is the bare digit string
        """
        if not card_number or not isinstance(card_number, str):
            return ValidationResult(False, "Card number is required")

        cleaned = re.sub(r'[\s-]', '', card_number)
        if not re.fullmatch(r'[0-9]{13,19}', cleaned):
            return ValidationResult(False, "Invalid card number")

        if not cls.luhn_checksum_valid(cleaned):
            return ValidationResult(False, "Invalid card number")

        return ValidationResult(True, sanitized_value=cleaned)

    @classmethod
    def get_card_type(cls, card_number: str) -> str:
        cleaned = re.sub(r'[\s-]', '', card_number or '')
        for pattern, name in cls.CARD_TYPES:
            if pattern.match(cleaned):
                return name
        return 'Unknown'

    @classmethod
    def validate_routing_number(cls, routing_number: str) -> ValidationResult:
        """
        Validate an ABA routing number.

        The nine digits must satisfy 3(d1+d4+d7) + 7(d2+d5+d8) + (d3+d6+d9) = 0 (mod 10).
        """
        if not routing_number or not isinstance(routing_number, str):
            return ValidationResult(False, "Routing number is required")

        cleaned = routing_number.strip()
        if not re.fullmatch(r'[0-9]{9}', cleaned):
            return ValidationResult(False, "Routing number must be 9 digits")

        d = [int(c) for c in cleaned]
        checksum = (3 * (d[0] + d[3] + d[6])
                    + 7 * (d[1] + d[4] + d[7])
                    + (d[2] + d[5] + d[8]))
        if checksum % 10 != 0:
            return ValidationResult(False, "Invalid routing number")

        return ValidationResult(True, sanitized_value=cleaned)

    @classmethod
    def validate_expiry(cls, expiration: str, today: Optional[date] = None) -> ValidationResult:
        """
        Validate a card expiry date.

        Accepts MMYY, MM/YY, MM-YY and MM/YYYY. The card is valid through the last day
        of its expiry month.

        Returns:
            ValidationResult whose sanitized_value is MMYY
        """
        if not expiration or not isinstance(expiration, str):
            return ValidationResult(False, "Expiry date is required")

        match = cls.EXPIRY_PATTERN.match(expiration.strip())
        if not match:
            return ValidationResult(False, "Invalid expiry date (MMYY)")

        month = int(match.group(1))
        year_text = match.group(2)
        year = int(year_text) + 2000 if len(year_text) == 2 else int(year_text)

        if not 1 <= month <= 12:
            return ValidationResult(False, "Invalid expiry month")

        today = today or date.today()
        if (year, month) < (today.year, today.month):
            return ValidationResult(False, "Card has expired")

        if year > today.year + cls.MAX_EXPIRY_YEARS:
            return ValidationResult(False, "Invalid expiry year")

        return ValidationResult(True, sanitized_value=f"{month:02d}{year % 100:02d}")

    @classmethod
    def validate_cvv(cls, cvv: str, card_type: Optional[str] = None) -> ValidationResult:
        if not cvv or not isinstance(cvv, str):
            return ValidationResult(False, "Invalid CVV")

        cvv = cvv.strip()
        expected = (4,) if card_type == 'American Express' else (3, 4) if card_type is None else (3,)
        if not re.fullmatch(r'[0-9]{3,4}', cvv) or len(cvv) not in expected:
            return ValidationResult(False, "Invalid CVV")

        return ValidationResult(True, sanitized_value=cvv)

    @classmethod
    def validate_billing_address(cls, billing: Dict[str, Any]) -> Dict[str, str]:
        """Required billing fields for processor address verification"""
        billing = billing or {}
        errors = {}
        labels = (('firstName', 'First name required'), ('lastName', 'Last name required'),
                  ('address', 'Address required'), ('city', 'City required'),
                  ('state', 'State required'))
        for field, message in labels:
            if not str(billing.get(field) or '').strip():
                errors[field] = message
        if not cls.ZIP_PATTERN.match(str(billing.get('zip') or '').strip()):
            errors['zip'] = 'Invalid ZIP code'
        return errors

    @classmethod
    def validate_card_details(cls, card: Dict[str, Any], today: Optional[date] = None) -> Dict[str, str]:
        """Card form validation; returns field -> message for every failing field"""
        card = card or {}
        errors = {}

        number = cls.validate_card_number(card.get('cardNumber') or '')
        if not number.is_valid:
            errors['cardNumber'] = number.error_message

        expiry = cls.validate_expiry(card.get('expirationDate') or '', today=today)
        if not expiry.is_valid:
            errors['expirationDate'] = expiry.error_message

        card_type = cls.get_card_type(number.sanitized_value) if number.is_valid else None
        cvv = cls.validate_cvv(card.get('cvv') or '', card_type)
        if not cvv.is_valid:
            errors['cvv'] = cvv.error_message

        if 'cardholderName' in card and not str(card.get('cardholderName') or '').strip():
            errors['cardholderName'] = 'Cardholder name required'

        return errors

    @classmethod
    def validate_ach_details(cls, ach: Dict[str, Any]) -> Tuple[bool, List[str]]:
        """
        Validate bank account details before an ACH debit.

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        ach = ach or {}
        errors = []

        name = str(ach.get('accountHolderName') or ach.get('nameOnAccount') or '').strip()
        if len(name) < 2:
            errors.append('Account holder name is required')

        routing = str(ach.get('routingNumber') or '')
        if not re.fullmatch(r'[0-9]{9}', routing):
            errors.append('Routing number must be 9 digits')
        elif not cls.validate_routing_number(routing).is_valid:
            errors.append('Invalid routing number')

        account = str(ach.get('accountNumber') or '')
        if not re.fullmatch(r'[0-9]{4,19}', account):
            errors.append('Account number must be 4-19 digits')

        confirm = ach.get('confirmAccountNumber')
        if confirm is not None and str(confirm) != account:
            errors.append("Account numbers don't match")

        if ach.get('accountType') not in cls.ACH_ACCOUNT_TYPES:
            errors.append('Account type must be checking or savings')

        return len(errors) == 0, errors

    @classmethod
    def sanitize_input(cls, input_string: str, max_length: int = 1000) -> str:
        """
        Trim, bound length, remove null bytes and normalize line endings

        Args:
            input_string: Input string to sanitize
            max_length: Maximum allowed length
        """
        if not input_string:
            return ""

        sanitized = str(input_string).strip()
        if len(sanitized) > max_length:
            sanitized = sanitized[:max_length]

        sanitized = sanitized.replace('\x00', '')
        sanitized = sanitized.replace('\r\n', '\n').replace('\r', '\n')
        return sanitized


# Convenience functions for common validations
def validate_email(email: str) -> ValidationResult:
    return InputValidator.validate_email(email)


def validate_password_hash(password_hash: str) -> ValidationResult:
    return InputValidator.validate_password_hash(password_hash)


def validate_password_strength(password: str) -> ValidationResult:
    return InputValidator.validate_password_strength(password)


def validate_card_number(card_number: str) -> ValidationResult:
    return InputValidator.validate_card_number(card_number)


def get_card_type(card_number: str) -> str:
    return InputValidator.get_card_type(card_number)


def validate_routing_number(routing_number: str) -> ValidationResult:
    return InputValidator.validate_routing_number(routing_number)


def validate_expiry(expiration: str, today: Optional[date] = None) -> ValidationResult:
    return InputValidator.validate_expiry(expiration, today=today)


def validate_cvv(cvv: str, card_type: Optional[str] = None) -> ValidationResult:
    return InputValidator.validate_cvv(cvv, card_type)


def validate_card_details(card: Dict[str, Any], today: Optional[date] = None) -> Dict[str, str]:
    return InputValidator.validate_card_details(card, today=today)


def validate_ach_details(ach: Dict[str, Any]) -> Tuple[bool, List[str]]:
    return InputValidator.validate_ach_details(ach)


def validate_billing_address(billing: Dict[str, Any]) -> Dict[str, str]:
    return InputValidator.validate_billing_address(billing)


def sanitize_input(input_string: str, max_length: int = 1000) -> str:
    return InputValidator.sanitize_input(input_string, max_length)


def mask_account(number: str) -> str:
    """****1234 style mask keeping only the last four digits"""
    digits = re.sub(r'\D', '', number or '')
    return f"****{digits[-4:]}" if digits else ''
