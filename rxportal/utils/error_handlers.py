"""
Error Handlers

Registers JSON error responses for service exceptions and common HTTP errors.
"""

from flask import jsonify
from werkzeug.exceptions import HTTPException

from .errors import ServiceError


def error_response(message, status_code, error_code=None, errors=None):
    """Build the standard JSON error payload"""
    payload = {'success': False, 'error': message}
    if error_code:
        payload['error_code'] = error_code
    if errors:
        payload['errors'] = errors
    return jsonify(payload), status_code


def register_error_handlers(app):
    """Register error handlers with the Flask app"""

    @app.errorhandler(ServiceError)
    def service_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{error.error_code}: {error.message}")
        else:
            app.logger.info(f"{error.error_code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return error_response('The requested resource does not exist.', 404, 'NOT_FOUND')

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response('Method not allowed.', 405, 'METHOD_NOT_ALLOWED')

    @app.errorhandler(500)
    def internal_error(error):
        from ..models import db
        db.session.rollback()
        return error_response('Something went wrong on our end. Please try again later.',
                              500, 'INTERNAL_ERROR')

    @app.errorhandler(Exception)
    def unhandled_exception(error):
        if isinstance(error, HTTPException):
            return error_response(error.description, error.code)
        from ..models import db
        db.session.rollback()
        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        return error_response('Something went wrong on our end. Please try again later.',
                              500, 'INTERNAL_ERROR')
