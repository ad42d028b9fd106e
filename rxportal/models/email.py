"""
Email Models

EmailTemplate (admin-edited HTML with {{variable}} placeholders), EmailQueue (outbound
mail waiting for the queue processor), EmailLog (delivery history) and
LaunchPasswordReset (tracking rows for the site-launch reset campaign).
"""

import re
from datetime import datetime
from .database import db

PLACEHOLDER_PATTERN = re.compile(r'\{\{\s*([A-Za-z_][A-Za-z0-9_.]*)\s*\}\}')


class EmailTemplate(db.Model):
    __tablename__ = 'email_templates'

    EDITABLE_FIELDS = ('name', 'subject', 'template_type', 'html_content', 'text_content',
                       'variables', 'preview_text', 'is_active')

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    subject = db.Column(db.String(255), nullable=False)
    template_type = db.Column(db.String(40), default='transactional')
    html_content = db.Column(db.Text, nullable=False)
    text_content = db.Column(db.Text)
    variables = db.Column(db.JSON, default=list)
    preview_text = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def extract_variables(self):
        """Placeholder names used in the subject and HTML body, in first-seen order"""
        found = []
        for text in (self.subject or '', self.html_content or ''):
            for name in PLACEHOLDER_PATTERN.findall(text):
                if name not in found:
                    found.append(name)
        return found

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'subject': self.subject,
            'template_type': self.template_type,
            'html_content': self.html_content,
            'text_content': self.text_content,
            'variables': self.variables or [],
            'preview_text': self.preview_text,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class EmailQueue(db.Model):
    __tablename__ = 'email_queue'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), nullable=False)
    subject = db.Column(db.String(255), nullable=False)
    html_content = db.Column(db.Text, nullable=False)
    template_id = db.Column(db.Integer, db.ForeignKey('email_templates.id'))
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    email_type = db.Column(db.String(40), default='transactional')
    status = db.Column(db.String(20), default='pending')  # pending, processing, sent, failed, cancelled
    priority = db.Column(db.Integer, default=0)
    attempts = db.Column(db.Integer, default=0)
    max_attempts = db.Column(db.Integer, default=3)
    scheduled_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_attempt_at = db.Column(db.DateTime)
    next_retry_at = db.Column(db.DateTime)
    sent_at = db.Column(db.DateTime)
    provider_message_id = db.Column(db.String(255))
    error_message = db.Column(db.Text)
    queue_metadata = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'subject': self.subject,
            'template_id': self.template_id,
            'email_type': self.email_type,
            'status': self.status,
            'priority': self.priority,
            'attempts': self.attempts,
            'scheduled_at': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'sent_at': self.sent_at.isoformat() if self.sent_at else None,
            'error_message': self.error_message,
        }


class EmailLog(db.Model):
    __tablename__ = 'email_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    email_address = db.Column(db.String(254), nullable=False)
    subject = db.Column(db.String(255))
    email_type = db.Column(db.String(40))
    status = db.Column(db.String(20))
    template_id = db.Column(db.Integer, db.ForeignKey('email_templates.id'))
    provider_message_id = db.Column(db.String(255))
    error_message = db.Column(db.Text)
    sent_at = db.Column(db.DateTime, default=datetime.utcnow)


class LaunchPasswordReset(db.Model):
    __tablename__ = 'launch_password_resets'

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    email = db.Column(db.String(254), nullable=False)
    reset_token = db.Column(db.String(255))
    email_sent_at = db.Column(db.DateTime, default=datetime.utcnow)
    password_reset_at = db.Column(db.DateTime)
    terms_accepted_at = db.Column(db.DateTime)
    completed = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'email': self.email,
            'email_sent_at': self.email_sent_at.isoformat() if self.email_sent_at else None,
            'password_reset_at': self.password_reset_at.isoformat() if self.password_reset_at else None,
            'terms_accepted_at': self.terms_accepted_at.isoformat() if self.terms_accepted_at else None,
            'completed': bool(self.completed),
        }
