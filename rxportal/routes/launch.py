"""
Launch Routes

FLOW OVERVIEW
- /api/launch/health [GET]
- /api/launch/send-reset-emails [POST] (admin)
  • {testMode, testEmail, selectedUserIds, sendToAll} → batched campaign send.
    Exactly one send mode must apply; per-recipient failures are reported in results.
- /api/launch/reset-stats [GET] (admin)
- /api/launch/mark-completed [POST]
  • {email, action: password_reset|terms_accepted|both}; called by the reset page.
"""

from datetime import datetime

from flask import Blueprint, jsonify, current_app

from ..utils.api_utils import get_json_payload
from ..utils.auth_utils import admin_required
from ..utils.launch_reset import send_reset_emails, reset_stats, mark_completed

launch_bp = Blueprint('launch', __name__)


@launch_bp.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'service': 'launch-password-reset',
                    'timestamp': datetime.utcnow().isoformat()})


@launch_bp.route('/send-reset-emails', methods=['POST'])
@admin_required
def send_emails():
    data = get_json_payload()
    test_mode = bool(data.get('testMode'))
    selected = data.get('selectedUserIds') or []
    send_to_all = bool(data.get('sendToAll'))

    results = send_reset_emails(test_mode=test_mode, test_email=data.get('testEmail'),
                                selected_user_ids=selected, send_to_all=send_to_all)
    current_app.logger.info(f"Launch reset campaign: {results['sent']}/{results['total']} sent")
    return jsonify({
        'success': True,
        'message': 'Email campaign completed',
        'results': results,
        'testMode': test_mode,
        'selectedMode': bool(selected),
        'sendToAll': send_to_all,
    })


@launch_bp.route('/reset-stats', methods=['GET'])
@admin_required
def stats():
    return jsonify({'success': True, **reset_stats()})


@launch_bp.route('/mark-completed', methods=['POST'])
def completed():
    data = get_json_payload()
    reset = mark_completed(data.get('email'), data.get('action'))
    return jsonify({'success': True, 'message': 'Status updated successfully', 'reset': reset.to_dict()})
