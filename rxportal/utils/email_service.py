"""
Email Service

FLOW OVERVIEW
- render_template_string(html, variables)
  • Replace {{name}} placeholders; unknown placeholders are left untouched.
- EmailService.send_email(to, subject, html)
  • Send immediately through Flask-Mail. Returns (success, message_id or error).
- EmailService.queue_email(...)
  • Insert a pending EmailQueue row for the queue processor (caller commits).
- EmailService.process_queue(limit)
  • Pending rows due now, highest priority first then oldest schedule.
  • Each row: processing → send → sent (with EmailLog) or back to pending with an
    exponential retry delay of 2^attempts minutes, failed once max_attempts is reached.
- EmailService.retry_failed(max_attempts) / queue_stats()
- EmailService.send_test_email(to, subject, content, template, variables)
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from flask import current_app
from flask_mail import Message

from ..models import db, EmailQueue, EmailLog
from ..models.email import PLACEHOLDER_PATTERN
from .prom_metrics import observe_email

QUEUE_STATUSES = ('pending', 'processing', 'sent', 'failed', 'cancelled')
LOG_EMAIL_TYPES = ('campaign', 'automation')

TEST_EMAIL_HTML = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: #4f46e5; padding: 30px; text-align: center; border-radius: 10px 10px 0 0;">
    <h1 style="color: white; margin: 0;">Test Email Successful!</h1>
  </div>
  <div style="padding: 30px; background: #f9fafb; border-radius: 0 0 10px 10px;">
    <p>This is a test email from your 9RX email system.</p>
    <p><strong>Sent at:</strong> {sent_at}</p>
    <p style="color: #6b7280; font-size: 14px;">If you received this email, your email configuration is working correctly!</p>
  </div>
</div>
"""


def render_template_string(html: str, variables: Optional[Dict[str, Any]] = None) -> str:
    variables = variables or {}

    def replace(match):
        name = match.group(1)
        if name in variables and variables[name] is not None:
            return str(variables[name])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(replace, html or '')


class EmailService:
    """Immediate and queued email delivery"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None,
                   email_type: str = 'transactional') -> Tuple[bool, Optional[str]]:
        """
        Send one email now.

        Returns:
            Tuple of (success, message id on success or error message on failure)
        """
        try:
            msg = Message(subject=subject, recipients=[to], html=html, body=text)
            current_app.extensions['mail'].send(msg)
            observe_email(email_type, True)
            self.logger.info(f"Email '{subject}' sent to {to}")
            return True, msg.msgId
        except Exception as e:
            observe_email(email_type, False)
            self.logger.error(f"Failed to send email to {to}: {e}")
            return False, str(e)

    def queue_email(self, to: str, subject: str, html_content: str, user_id: Optional[int] = None,
                    email_type: str = 'transactional', template_id: Optional[int] = None,
                    priority: int = 0, scheduled_at: Optional[datetime] = None,
                    metadata: Optional[Dict[str, Any]] = None) -> EmailQueue:
        """Add an email to the outbound queue (not committed)"""
        entry = EmailQueue(
            email=to,
            subject=subject,
            html_content=html_content,
            user_id=user_id,
            email_type=email_type,
            template_id=template_id,
            priority=priority,
            status='pending',
            attempts=0,
            scheduled_at=scheduled_at or datetime.utcnow(),
            queue_metadata=metadata or {},
        )
        db.session.add(entry)
        return entry

    def process_queue(self, limit: int = 50, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or datetime.utcnow()
        pending = (EmailQueue.query
                   .filter(EmailQueue.status == 'pending', EmailQueue.scheduled_at <= now)
                   .order_by(EmailQueue.priority.desc(), EmailQueue.scheduled_at.asc())
                   .limit(limit).all())

        results = {'processed': 0, 'sent': 0, 'failed': 0, 'retrying': 0}
        if not pending:
            return results

        for entry in pending:
            entry.status = 'processing'
            entry.last_attempt_at = now
        db.session.commit()

        for entry in pending:
            results['processed'] += 1
            success, detail = self.send_email(entry.email, entry.subject, entry.html_content,
                                              email_type=entry.email_type)
            entry.attempts = (entry.attempts or 0) + 1

            if success:
                entry.status = 'sent'
                entry.sent_at = datetime.utcnow()
                entry.provider_message_id = detail
                entry.error_message = None
                db.session.add(EmailLog(
                    user_id=entry.user_id,
                    email_address=entry.email,
                    subject=entry.subject,
                    email_type=entry.email_type if entry.email_type in LOG_EMAIL_TYPES else 'transactional',
                    status='sent',
                    template_id=entry.template_id,
                    provider_message_id=detail,
                ))
                results['sent'] += 1
            elif entry.attempts < (entry.max_attempts or 3):
                retry_at = now + timedelta(minutes=2 ** entry.attempts)
                entry.status = 'pending'
                entry.next_retry_at = retry_at
                entry.scheduled_at = retry_at
                entry.error_message = detail
                results['retrying'] += 1
            else:
                entry.status = 'failed'
                entry.error_message = detail
                results['failed'] += 1
            db.session.commit()

        self.logger.info(f"Email queue processed: {results}")
        return results

    def retry_failed(self, max_attempts: int = 3) -> int:
        failed = (EmailQueue.query
                  .filter(EmailQueue.status == 'failed', EmailQueue.attempts < max_attempts)
                  .all())
        now = datetime.utcnow()
        for entry in failed:
            entry.status = 'pending'
            entry.scheduled_at = now
            entry.next_retry_at = None
        db.session.commit()
        return len(failed)

    def queue_stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Counts per status for emails created in the last 24 hours"""
        since = (now or datetime.utcnow()) - timedelta(hours=24)
        rows = (db.session.query(EmailQueue.status, db.func.count(EmailQueue.id))
                .filter(EmailQueue.created_at >= since)
                .group_by(EmailQueue.status).all())
        stats = {status: 0 for status in QUEUE_STATUSES}
        for status, count in rows:
            if status in stats:
                stats[status] = count
        return stats

    def send_test_email(self, to: str, subject: str, content: Optional[str] = None,
                        template=None, variables: Optional[Dict[str, Any]] = None) -> Tuple[bool, Optional[str]]:
        if template is not None:
            html = render_template_string(template.html_content, variables)
            subject = render_template_string(subject or template.subject, variables)
        else:
            html = content or TEST_EMAIL_HTML.format(sent_at=datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S UTC'))
        return self.send_email(to, subject, html, email_type='test')


email_service = EmailService()
