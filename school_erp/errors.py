"""
Typed API errors and the JSON error envelope.

Services raise these classes; the handlers registered here turn them into
``{"success": false, "error": {"code", "message", "details"}}`` responses, so
no controller ever inspects an exception message to pick a status code.
"""
import logging

from flask import current_app, jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class APIError(Exception):
    status_code = 400
    code = 'BAD_REQUEST'

    def __init__(self, message, details=None, code=None):
        super().__init__(message)
        self.message = message
        self.details = details
        if code:
            self.code = code

    def to_dict(self):
        error = {'code': self.code, 'message': self.message}
        if self.details is not None:
            error['details'] = self.details
        return error


class ValidationError(APIError):
    code = 'VALIDATION_ERROR'


class BusinessRuleError(APIError):
    code = 'BUSINESS_RULE_VIOLATION'


class ConflictError(BusinessRuleError):
    code = 'ALREADY_EXISTS'


class InvalidStateError(BusinessRuleError):
    code = 'INVALID_STATE'


class DomainConfigurationError(APIError):
    code = 'INVALID_DOMAIN'


class NotFoundError(APIError):
    status_code = 404
    code = 'NOT_FOUND'


class TrustNotFoundError(NotFoundError):
    code = 'TRUST_NOT_FOUND'


class AuthenticationError(APIError):
    status_code = 401
    code = 'UNAUTHORIZED'


class InvalidCredentialsError(AuthenticationError):
    code = 'INVALID_CREDENTIALS'


class ForbiddenError(APIError):
    status_code = 403
    code = 'FORBIDDEN'


def error_response(status_code, code, message, details=None):
    error = {'code': code, 'message': message}
    if details is not None:
        error['details'] = details
    return jsonify({'success': False, 'error': error}), status_code


def register_error_handlers(app):
    """Map every failure to the JSON error envelope."""

    @app.errorhandler(APIError)
    def handle_api_error(error):
        return jsonify({'success': False, 'error': error.to_dict()}), error.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        logger.warning('Integrity error: %s', error.orig)
        return error_response(400, 'CONSTRAINT_VIOLATION', 'Record violates a database constraint')

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        code = (error.name or 'HTTP_ERROR').upper().replace(' ', '_')
        return error_response(error.code or 500, code, error.description or error.name)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception('Unhandled error: %s', error)
        if current_app.config.get('ENVIRONMENT') == 'production':
            message = 'Internal server error'
        else:
            message = str(error) or 'Internal server error'
        return error_response(500, 'INTERNAL_ERROR', message)
