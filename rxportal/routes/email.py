"""
Email Routes

FLOW OVERVIEW
- /api/email/send-test [POST] (admin)
  • {to, subject?, content?, template_id?, variables?} → sent now, not queued.
- /api/email/queue/process [POST] (admin)
  • {limit?} → send due queued emails.
- /api/email/queue/retry [POST] (admin)
  • Failed emails with attempts left go back to pending.
- /api/email/queue/stats [GET] (admin)
"""

from flask import Blueprint, jsonify, request, current_app

from ..models import db, EmailTemplate
from ..utils.api_utils import get_json_payload
from ..utils.auth_utils import admin_required
from ..utils.email_service import email_service
from ..utils.errors import ValidationError, NotFoundError, ServiceError
from ..utils.validators import validate_email

email_bp = Blueprint('email', __name__)


@email_bp.route('/send-test', methods=['POST'])
@admin_required
def send_test():
    data = get_json_payload(required=('to',))
    email_check = validate_email(data['to'])
    if not email_check.is_valid:
        raise ValidationError(email_check.error_message, errors={'to': email_check.error_message})

    template = None
    if data.get('template_id'):
        template = db.session.get(EmailTemplate, data['template_id'])
        if template is None:
            raise NotFoundError('Email template not found', 'TEMPLATE_NOT_FOUND')

    success, detail = email_service.send_test_email(
        email_check.sanitized_value,
        data.get('subject') or (None if template else 'Test Email from 9RX'),
        content=data.get('content'),
        template=template,
        variables=data.get('variables'),
    )
    if not success:
        raise ServiceError(f"Failed to send test email: {detail}", 'EMAIL_SEND_FAILED', 502)
    current_app.logger.info(f"Test email sent to {email_check.sanitized_value}")
    return jsonify({'success': True, 'message': 'Test email sent', 'message_id': detail})


@email_bp.route('/queue/process', methods=['POST'])
@admin_required
def process_queue():
    data = request.get_json(silent=True) or {}
    try:
        limit = int(data.get('limit', 50))
    except (TypeError, ValueError):
        raise ValidationError('limit must be an integer')
    results = email_service.process_queue(limit=max(1, min(limit, 500)))
    return jsonify({'success': True, 'results': results})


@email_bp.route('/queue/retry', methods=['POST'])
@admin_required
def retry_failed():
    data = request.get_json(silent=True) or {}
    requeued = email_service.retry_failed(max_attempts=int(data.get('max_attempts', 3)))
    return jsonify({'success': True, 'requeued': requeued})


@email_bp.route('/queue/stats', methods=['GET'])
@admin_required
def queue_stats():
    return jsonify({'success': True, 'stats': email_service.queue_stats()})
