"""
Custom error classes and error handling utilities for the resource planning API
"""

from datetime import date, datetime
from flask import jsonify
import logging

# Set up logger
logger = logging.getLogger(__name__)


class ResourcePlanningError(Exception):
    """Base exception class for the resource planning engine"""

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class ValidationError(ResourcePlanningError):
    """Raised when input validation fails"""

    def __init__(self, message, field=None):
        super().__init__(message, 400, {'field': field} if field else None)


class NotFoundError(ResourcePlanningError):
    """Raised when a requested resource is not found"""

    def __init__(self, resource_type, resource_id=None):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message += f" with id {resource_id}"
        super().__init__(message, 404)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(ResourcePlanningError):
    """
    Raised when an operation would result in a conflict.

    For allocation overbooking the full list of ResourceConflict entries is
    kept on `conflicts` so callers can render them or shrink the request.
    """

    def __init__(self, message, conflicts=None):
        self.conflicts = list(conflicts or [])
        payload = None
        if self.conflicts:
            payload = {'conflicts': [conflict.to_dict() for conflict in self.conflicts]}
        super().__init__(message, 409, payload)


def register_error_handlers(app):
    """Register error handlers with the Flask app"""

    @app.errorhandler(ResourcePlanningError)
    def handle_resource_planning_error(error):
        """Handle custom engine errors"""
        logger.warning(f"Resource planning error: {error.message}", extra={
            'status_code': error.status_code,
            'error_payload': error.payload
        })

        response = {
            'error': {
                'type': error.__class__.__name__,
                'message': error.message
            }
        }

        if error.payload:
            response['error']['details'] = error.payload

        return jsonify(response), error.status_code

    @app.errorhandler(400)
    def handle_bad_request(error):
        """Handle 400 Bad Request errors"""
        logger.warning(f"Bad Request: {error.description}")
        return jsonify({
            'error': {
                'type': 'BadRequest',
                'message': error.description or 'Bad request'
            }
        }), 400

    @app.errorhandler(404)
    def handle_not_found(error):
        """Handle 404 Not Found errors"""
        logger.info(f"Not Found: {error.description}")
        return jsonify({
            'error': {
                'type': 'NotFound',
                'message': error.description or 'Resource not found'
            }
        }), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        """Handle 405 Method Not Allowed errors"""
        logger.warning(f"Method Not Allowed: {error.description}")
        return jsonify({
            'error': {
                'type': 'MethodNotAllowed',
                'message': 'Method not allowed for this endpoint'
            }
        }), 405

    @app.errorhandler(429)
    def handle_rate_limited(error):
        """Handle 429 Too Many Requests errors"""
        logger.warning(f"Rate limit exceeded: {error.description}")
        return jsonify({
            'error': {
                'type': 'TooManyRequests',
                'message': 'Rate limit exceeded'
            }
        }), 429

    @app.errorhandler(500)
    def handle_internal_server_error(error):
        """Handle 500 Internal Server Error"""
        logger.error(f"Internal Server Error: {error}", exc_info=True)
        return jsonify({
            'error': {
                'type': 'InternalServerError',
                'message': 'An unexpected error occurred. Please try again later.'
            }
        }), 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """Handle unexpected errors"""
        logger.error(f"Unexpected Error: {str(error)}", exc_info=True)
        return jsonify({
            'error': {
                'type': 'UnexpectedError',
                'message': 'An unexpected error occurred. Please contact support if this persists.'
            }
        }), 500


def validate_required(data, fields):
    """Validate that required fields are present in data"""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    missing = []
    for field in fields:
        if field not in data or data[field] is None or (isinstance(data[field], str) and data[field].strip() == ''):
            missing.append(field)

    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def parse_date(value, field_name):
    """Parse an ISO date string (or pass through a date) for field_name"""
    if value is None:
        raise ValidationError(f"{field_name} is required", field=field_name)
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        raise ValidationError(f"Invalid date format for {field_name}. Use YYYY-MM-DD", field=field_name)


def validate_date_range(start_date, end_date, start_field="start_date", end_field="end_date"):
    """Validate date range logic; a single-day range is allowed"""
    if start_date and end_date:
        if end_date < start_date:
            raise ValidationError(f"{end_field} must not be before {start_field}")


def _to_number(value, field_name):
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a valid number", field=field_name)
    try:
        return float(value)
    except (ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a valid number", field=field_name)


def validate_positive_number(value, field_name):
    """Validate that a value is a positive number"""
    num = _to_number(value, field_name)
    if num <= 0:
        raise ValidationError(f"{field_name} must be a positive number", field=field_name)
    return num


def validate_non_negative_number(value, field_name):
    """Validate that a value is zero or a positive number"""
    num = _to_number(value, field_name)
    if num < 0:
        raise ValidationError(f"{field_name} must be a non-negative number", field=field_name)
    return num


def validate_enum(value, allowed_values, field_name):
    """Validate that a value is in an allowed set"""
    if value not in allowed_values:
        raise ValidationError(f"{field_name} must be one of: {', '.join(allowed_values)}", field=field_name)


def log_api_request(endpoint, method, **kwargs):
    """Log API requests for auditing"""
    logger.info(f"API Request: {method} {endpoint}", extra={
        'method': method,
        'endpoint': endpoint,
        **kwargs
    })


def log_api_response(endpoint, method, status_code, response_time=None, **kwargs):
    """Log API responses for monitoring"""
    level = logging.INFO if status_code < 400 else logging.WARNING
    logger.log(level, f"API Response: {method} {endpoint} - {status_code}", extra={
        'status_code': status_code,
        'response_time': response_time,
        'method': method,
        'endpoint': endpoint,
        **kwargs
    })
