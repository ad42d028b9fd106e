"""
Statement Routes

FLOW OVERVIEW
- /api/statements [GET]
  • ?start_date=&end_date=[&user_id=][&include_zero_activity=true] → statement JSON plus
    the calculation check. Non-admins always get their own statement.
- /api/statements/download [GET]
  • Same parameters → PDF attachment.
- /api/statements/export [POST]
  • Render and save the PDF server-side with retry; returns the DownloadResult.
"""

from io import BytesIO

from flask import Blueprint, jsonify, request, send_file

from ..utils.api_utils import get_json_payload, parse_date
from ..utils.auth_utils import login_required, get_current_user
from ..utils.download_service import download_service, DownloadError, DownloadOptions
from ..utils.errors import ValidationError, AuthorizationError
from ..utils.statements import StatementRequest, statement_service

statements_bp = Blueprint('statements', __name__)


def _statement_request(params) -> StatementRequest:
    user = get_current_user()
    user_id = params.get('user_id') or user.user_id
    if user_id != user.user_id and not user.is_admin():
        raise AuthorizationError('You can only view your own statements')

    include_zero = params.get('include_zero_activity')
    if isinstance(include_zero, str):
        include_zero = include_zero.lower() == 'true'
    return StatementRequest(
        user_id=user_id,
        start_date=parse_date(params.get('start_date'), 'start_date'),
        end_date=parse_date(params.get('end_date'), 'end_date'),
        include_zero_activity=bool(include_zero),
    )


@statements_bp.route('', methods=['GET'])
@login_required
def get_statement():
    statement_request = _statement_request(request.args)
    response = statement_service.generate_statement_data(statement_request)
    if not response.success:
        raise ValidationError(response.error, 'STATEMENT_ERROR')

    check = statement_service.validate_financial_calculations(response.data)
    return jsonify({
        'success': True,
        'statement': response.data.to_dict(),
        'filename': response.filename,
        'validation': {'is_valid': check.is_valid, 'warnings': check.warnings, 'errors': check.errors},
    })


@statements_bp.route('/download', methods=['GET'])
@login_required
def download():
    statement_request = _statement_request(request.args)
    try:
        content, filename, _ = download_service.build_statement_pdf(statement_request)
    except DownloadError as e:
        raise ValidationError(e.message, e.code)
    return send_file(BytesIO(content), mimetype='application/pdf', as_attachment=True,
                     download_name=filename)


@statements_bp.route('/export', methods=['POST'])
@login_required
def export():
    data = get_json_payload(required=('start_date', 'end_date'))
    statement_request = _statement_request(data)
    result = download_service.download_statement(statement_request, DownloadOptions())
    status = 200 if result.success else 422
    return jsonify(result.to_dict()), status
