"""
Credit Terms

FLOW OVERVIEW
- send_credit_terms(profile, admin, credit_limit, net_terms, interest_rate, message, expires_in_days)
  • Creates a pending SentCreditTerms offer and emails the pharmacy.
- pending_terms_for(profile)
  • Open offers (pending or viewed). Offers past expires_at are moved to expired.
- view_terms(terms)
  • pending → viewed, stamping viewed_at.
- accept_terms(terms, signed_name, signed_title)
  • Requires a signature name. Sets the profile's credit limit and net terms and
    creates or updates the UserCreditLine.
- reject_terms(terms, reason)
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from ..models import db, SentCreditTerms, UserCreditLine
from .email_service import email_service
from .errors import ValidationError
from .money import to_decimal, to_money, format_money

logger = logging.getLogger(__name__)

OPEN_STATUSES = ('pending', 'viewed')
NET_TERMS = (15, 30, 45, 60, 90)


def _require_open(terms: SentCreditTerms):
    if terms.status in OPEN_STATUSES and terms.is_expired():
        terms.status = 'expired'
        db.session.commit()
    if terms.status not in OPEN_STATUSES:
        raise ValidationError(f"Credit terms are already {terms.status}", 'TERMS_CLOSED')


def send_credit_terms(profile, admin, credit_limit, net_terms=30, interest_rate=0,
                      message: Optional[str] = None, expires_in_days: Optional[int] = 30) -> SentCreditTerms:
    try:
        limit = to_money(credit_limit)
        rate = to_decimal(interest_rate)
    except ValueError:
        raise ValidationError('Credit limit and interest rate must be numbers')
    if limit <= 0:
        raise ValidationError('Credit limit must be greater than zero', errors={'credit_limit': 'Must be positive'})
    try:
        net_terms = int(net_terms)
    except (TypeError, ValueError):
        raise ValidationError('Net terms must be a number of days')
    if net_terms not in NET_TERMS:
        raise ValidationError(f"Net terms must be one of {', '.join(str(n) for n in NET_TERMS)} days",
                              errors={'net_terms': 'Unsupported term'})
    if rate < 0 or rate > 100:
        raise ValidationError('Interest rate must be between 0 and 100', errors={'interest_rate': 'Out of range'})

    terms = SentCreditTerms(
        user_id=profile.id,
        sent_by=admin.id if admin is not None else None,
        credit_limit=limit,
        net_terms=net_terms,
        interest_rate=rate,
        custom_message=message,
        status='pending',
        sent_at=datetime.utcnow(),
        expires_at=datetime.utcnow() + timedelta(days=expires_in_days) if expires_in_days else None,
    )
    db.session.add(terms)
    email_service.queue_email(
        to=profile.email,
        subject='New credit terms are available for your account',
        html_content=(f"<p>Hello {profile.display_name},</p>"
                      f"<p>You have been offered a credit line of <strong>{format_money(limit)}</strong> "
                      f"on Net {net_terms} terms. Sign in to review and accept the offer.</p>"
                      + (f"<p>{message}</p>" if message else '')),
        user_id=profile.id,
        email_type='credit_terms',
        priority=3,
    )
    db.session.commit()
    logger.info(f"Credit terms {terms.id} ({format_money(limit)}, net {net_terms}) sent to {profile.user_id}")
    return terms


def pending_terms_for(profile) -> List[SentCreditTerms]:
    open_terms = (SentCreditTerms.query
                  .filter(SentCreditTerms.user_id == profile.id, SentCreditTerms.status.in_(OPEN_STATUSES))
                  .order_by(SentCreditTerms.sent_at.desc())
                  .all())
    expired = [terms for terms in open_terms if terms.is_expired()]
    for terms in expired:
        terms.status = 'expired'
    if expired:
        db.session.commit()
    return [terms for terms in open_terms if terms.status in OPEN_STATUSES]


def view_terms(terms: SentCreditTerms) -> SentCreditTerms:
    _require_open(terms)
    if terms.status == 'pending':
        terms.status = 'viewed'
        terms.viewed_at = datetime.utcnow()
        db.session.commit()
    return terms


def accept_terms(terms: SentCreditTerms, signed_name: Optional[str],
                 signed_title: Optional[str] = None) -> UserCreditLine:
    _require_open(terms)
    if not (signed_name or '').strip():
        raise ValidationError('Please sign and enter your name to accept the terms.',
                              'SIGNATURE_REQUIRED', errors={'signed_name': 'Required'})

    now = datetime.utcnow()
    terms.status = 'accepted'
    terms.responded_at = now
    terms.user_signed_name = signed_name.strip()
    terms.user_signed_title = (signed_title or '').strip() or None

    profile = terms.user
    profile.credit_limit = terms.credit_limit
    profile.payment_terms = f"net_{terms.net_terms}"

    line = UserCreditLine.query.filter_by(user_id=profile.id).first()
    if line is None:
        line = UserCreditLine(user_id=profile.id, credit_limit=terms.credit_limit)
        db.session.add(line)
    line.credit_limit = terms.credit_limit
    line.net_terms = terms.net_terms
    line.interest_rate = terms.interest_rate
    line.status = 'active'

    db.session.commit()
    logger.info(f"Credit terms {terms.id} accepted by {profile.user_id}")
    return line


def reject_terms(terms: SentCreditTerms, reason: Optional[str] = None) -> SentCreditTerms:
    _require_open(terms)
    terms.status = 'rejected'
    terms.responded_at = datetime.utcnow()
    terms.rejection_reason = reason
    db.session.commit()
    logger.info(f"Credit terms {terms.id} rejected")
    return terms
