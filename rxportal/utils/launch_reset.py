"""
Launch Password Reset Campaign

FLOW OVERVIEW
- send_reset_emails(test_mode, test_email, selected_user_ids, send_to_all)
  • Recipient selection, first match wins:
      test_mode and test_email → that single address
      selected_user_ids        → those profiles
      send_to_all              → every profile
      anything else            → ValidationError "Invalid send mode"
  • No matching profiles → NotFoundError "No users found".
  • Recipients are processed in batches of LAUNCH_BATCH_SIZE with LAUNCH_BATCH_DELAY
    seconds between batches. Each recipient gets a reset token, the launch email, a
    LaunchPasswordReset tracking row and password_reset_required = True.
  • A failure for one recipient is recorded in results["errors"] and the campaign
    continues.
- reset_stats()
  • Campaign totals plus one row per tracked email.
- mark_completed(email, action)
  • action is password_reset, terms_accepted or both. Duplicate tracking rows for the
    profile are collapsed to the most recent one; a row is created when none exists.
    Completed once both timestamps are set, which also clears password_reset_required.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models import db, User, LaunchPasswordReset, PasswordResetToken
from .email_service import email_service
from .errors import ValidationError, NotFoundError

logger = logging.getLogger(__name__)

LAUNCH_SUBJECT = 'Action Required: New Website Launch - Reset Password & Accept Terms'
ACTIONS = ('password_reset', 'terms_accepted', 'both')
# Launch links stay valid for three days
LAUNCH_TOKEN_HOURS = 72

LAUNCH_EMAIL_HTML = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; color: #1f2937;">
  <div style="background: #2563eb; padding: 40px; text-align: center;">
    <h1 style="color: #ffffff; margin: 0;">{company}</h1>
    <p style="color: #dbeafe; margin: 8px 0 0;">Welcome to our new platform</p>
  </div>
  <div style="padding: 32px;">
    <h2 style="margin-top: 0;">Hi {name},</h2>
    <p>We have launched our new website. To keep your account secure, please review our
       updated Terms &amp; Conditions and set a new password for <strong>{email}</strong>.</p>
    <ol>
      <li>Read the <a href="{terms_link}">Terms &amp; Conditions</a></li>
      <li>Accept the terms and choose your new password</li>
    </ol>
    <p style="text-align: center; margin: 32px 0;">
      <a href="{reset_link}" style="background: #2563eb; color: #ffffff; padding: 14px 28px;
         border-radius: 8px; text-decoration: none; font-weight: bold;">Get Started</a>
    </p>
    <p style="color: #6b7280; font-size: 13px;">This link expires in {hours} hours. If you did not
       expect this email, please contact our support team.</p>
  </div>
  <div style="padding: 16px; text-align: center; color: #9ca3af; font-size: 12px;">
    &copy; {year} {company}. All rights reserved.
  </div>
</div>
"""


def launch_email_html(name: str, email: str, reset_link: str, terms_link: str) -> str:
    return LAUNCH_EMAIL_HTML.format(
        company=current_app.config.get('COMPANY_NAME', '9RX LLC'),
        name=name,
        email=email,
        reset_link=reset_link,
        terms_link=terms_link,
        hours=LAUNCH_TOKEN_HOURS,
        year=datetime.utcnow().year,
    )


def _recipients(test_mode, test_email, selected_user_ids, send_to_all) -> List[User]:
    query = User.query
    if test_mode and test_email:
        query = query.filter(User.email == test_email.strip().lower())
    elif selected_user_ids:
        query = query.filter(User.user_id.in_([str(uid) for uid in selected_user_ids]))
    elif not send_to_all:
        raise ValidationError('Invalid send mode', 'INVALID_SEND_MODE')
    return query.order_by(User.id.asc()).all()


def _batches(items: List[Any], size: int) -> Iterable[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _send_one(user: User, frontend_url: str) -> None:
    """Send the launch email to one user; raises RuntimeError when delivery fails"""
    token = PasswordResetToken(user.id, expires_in_hours=LAUNCH_TOKEN_HOURS)
    db.session.add(token)
    db.session.flush()

    reset_link = f"{frontend_url}/launch-password-reset?launch=true&token={token.token}"
    terms_link = f"{frontend_url}/terms-and-conditions"
    name = f"{user.first_name or ''} {user.last_name or ''}".strip() or 'Valued Customer'

    sent, detail = email_service.send_email(
        user.email, LAUNCH_SUBJECT, launch_email_html(name, user.email, reset_link, terms_link),
        email_type='campaign',
    )
    if not sent:
        raise RuntimeError(detail or 'Email delivery failed')

    db.session.add(LaunchPasswordReset(
        profile_id=user.id,
        email=user.email,
        reset_token=token.token,
        email_sent_at=datetime.utcnow(),
    ))
    user.password_reset_required = True
    db.session.commit()


def send_reset_emails(test_mode: bool = False, test_email: Optional[str] = None,
                      selected_user_ids: Optional[List[str]] = None,
                      send_to_all: bool = False) -> Dict[str, Any]:
    users = _recipients(test_mode, test_email, selected_user_ids, send_to_all)
    if not users:
        raise NotFoundError('No users found', 'NO_USERS')

    config = current_app.config
    batch_size = max(int(config.get('LAUNCH_BATCH_SIZE', 10)), 1)
    batch_delay = float(config.get('LAUNCH_BATCH_DELAY', 1))
    frontend_url = config.get('FRONTEND_URL', 'http://localhost:3000').rstrip('/')

    results = {'total': len(users), 'sent': 0, 'failed': 0, 'errors': []}
    batches = list(_batches(users, batch_size))
    for index, batch in enumerate(batches):
        for user in batch:
            try:
                _send_one(user, frontend_url)
                results['sent'] += 1
            except (RuntimeError, SQLAlchemyError) as e:
                db.session.rollback()
                logger.error(f"Launch email failed for {user.email}: {e}")
                results['failed'] += 1
                results['errors'].append({'email': user.email, 'error': str(e)})
        if index < len(batches) - 1 and batch_delay > 0:
            time.sleep(batch_delay)

    logger.info(f"Launch campaign finished: {results['sent']} sent, {results['failed']} failed")
    return results


def reset_stats() -> Dict[str, Any]:
    resets = LaunchPasswordReset.query.order_by(LaunchPasswordReset.email_sent_at.desc()).all()
    stats = {
        'total_emails_sent': len(resets),
        'completed': sum(1 for r in resets if r.completed),
        'pending': sum(1 for r in resets if not r.completed),
        'password_reset': sum(1 for r in resets if r.password_reset_at),
        'terms_accepted': sum(1 for r in resets if r.terms_accepted_at),
        'both_completed': sum(1 for r in resets if r.password_reset_at and r.terms_accepted_at),
    }
    return {'stats': stats, 'resets': [r.to_dict() for r in resets]}


def mark_completed(email: Optional[str], action: Optional[str]) -> LaunchPasswordReset:
    if not email or not action:
        raise ValidationError('Missing required fields: email and action', 'MISSING_FIELDS')
    if action not in ACTIONS:
        raise ValidationError("Invalid action. Must be 'password_reset', 'terms_accepted', or 'both'",
                              'INVALID_ACTION')

    profile = User.query.filter_by(email=email.strip().lower()).first()
    if profile is None:
        raise NotFoundError('User not found', 'USER_NOT_FOUND')

    existing = (LaunchPasswordReset.query
                .filter_by(profile_id=profile.id)
                .order_by(LaunchPasswordReset.created_at.desc(), LaunchPasswordReset.id.desc())
                .all())
    for duplicate in existing[1:]:
        db.session.delete(duplicate)
    if existing:
        reset = existing[0]
    else:
        reset = LaunchPasswordReset(profile_id=profile.id, email=profile.email,
                                    email_sent_at=datetime.utcnow())
        db.session.add(reset)

    now = datetime.utcnow()
    if action in ('password_reset', 'both'):
        reset.password_reset_at = now
    if action in ('terms_accepted', 'both'):
        reset.terms_accepted_at = now
    if reset.password_reset_at and reset.terms_accepted_at:
        reset.completed = True

    if reset.terms_accepted_at:
        profile.terms_accepted = True
        profile.terms_accepted_at = reset.terms_accepted_at
    if reset.completed:
        profile.password_reset_required = False

    db.session.commit()
    logger.info(f"Launch reset for {profile.email} marked {action} (completed={reset.completed})")
    return reset
