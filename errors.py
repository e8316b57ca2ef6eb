from flask import jsonify, request, current_app
from werkzeug.exceptions import HTTPException
from models import db

# ============================================
# 錯誤代碼 (前端只顯示 message,不區分種類)
# ============================================

VALIDATION_ERROR = 'validation_error'
NO_VALID_FIELDS = 'no_valid_fields'
EMAIL_TAKEN = 'email_taken'
INVALID_CREDENTIALS = 'invalid_credentials'
AUTHORIZATION_REQUIRED = 'authorization_required'
INVALID_TOKEN = 'invalid_token'
TOKEN_EXPIRED = 'token_expired'
FORBIDDEN = 'forbidden'
NOT_FOUND = 'not_found'
RATE_LIMIT_EXCEEDED = 'rate_limit_exceeded'
SERVER_ERROR = 'internal_server_error'


def error_response(status, code, message, **extra):
    """統一的錯誤回應格式: {'error': code, 'message': message, ...}"""
    body = {'error': code, 'message': message}
    body.update(extra)
    return jsonify(body), status


def validation_failed(details, message='Validation failed'):
    return error_response(400, VALIDATION_ERROR, message, details=details)


def not_found(message='Resource not found'):
    return error_response(404, NOT_FOUND, message)


def json_body_required():
    return error_response(400, VALIDATION_ERROR, 'Request body must be JSON')


# ============================================
# JWT 錯誤處理
# ============================================

def register_jwt_handlers(jwt):
    """沒帶 token 回 401,token 壞掉或過期回 403"""

    @jwt.unauthorized_loader
    def unauthorized_callback(error):
        current_app.logger.warning(f"Unauthorized access attempt from: {request.remote_addr}, error: {error}")
        return error_response(
            401, AUTHORIZATION_REQUIRED, 'Access denied. No token provided.'
        )

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        current_app.logger.warning(f"Invalid token attempt from: {request.remote_addr}, error: {error}")
        return error_response(403, INVALID_TOKEN, 'Invalid token')

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        current_app.logger.warning(f"Expired token attempt from: {request.remote_addr}")
        return error_response(
            403, TOKEN_EXPIRED, 'The token has expired. Please login again.'
        )


# ============================================
# 全域錯誤處理
# ============================================

def register_error_handlers(app):

    @app.errorhandler(400)
    def bad_request(error):
        return error_response(400, 'bad_request', 'The request is malformed or invalid')

    @app.errorhandler(404)
    def route_not_found(error):
        return error_response(404, NOT_FOUND, 'The requested resource does not exist')

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response(
            405, 'method_not_allowed', 'The HTTP method is not allowed for this endpoint'
        )

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limit exceeded from: {request.remote_addr}")
        return error_response(
            429, RATE_LIMIT_EXCEEDED, 'Too many requests. Please try again later.'
        )

    @app.errorhandler(500)
    def internal_server_error(error):
        db.session.rollback()
        app.logger.error(f"Internal server error: {str(error)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Server error')

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """最後的防線,捕捉所有沒被處理的 exception"""
        if isinstance(error, HTTPException):
            return error_response(error.code, 'http_error', error.description)

        db.session.rollback()
        app.logger.error(f"Unexpected error: {str(error)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Server error')
