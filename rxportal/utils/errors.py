"""
Service Errors

Exceptions raised by the service layer. Route handlers let them propagate and
`register_error_handlers` turns them into JSON responses of the form
{"success": false, "error": <message>, "error_code": <code>, "errors": {...}}.
"""


class ServiceError(Exception):
    """Base class for errors that map to a user-facing message"""

    status_code = 400
    error_code = 'SERVICE_ERROR'

    def __init__(self, message, error_code=None, status_code=None, errors=None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code
        self.errors = errors or {}

    def to_dict(self):
        payload = {'success': False, 'error': self.message, 'error_code': self.error_code}
        if self.errors:
            payload['errors'] = self.errors
        return payload


class ValidationError(ServiceError):
    """Invalid input; `errors` optionally maps field names to messages"""
    status_code = 400
    error_code = 'VALIDATION_ERROR'


class AuthorizationError(ServiceError):
    status_code = 403
    error_code = 'FORBIDDEN'


class NotFoundError(ServiceError):
    status_code = 404
    error_code = 'NOT_FOUND'


class PaymentError(ServiceError):
    """A processor declined or could not complete a payment"""
    status_code = 402
    error_code = 'PAYMENT_FAILED'


class ConfigurationError(ServiceError):
    """A required integration is not configured"""
    status_code = 503
    error_code = 'NOT_CONFIGURED'
