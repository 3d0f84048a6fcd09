"""
Resource Planning API - Flask application for team resource allocation

This is the main entry point for the resource planning service. It exposes
the allocation engine (conflict detection, capacity reports, workload
distribution and project timelines) as RESTful JSON endpoints.

Features:
- Team member registry with per-date availability overrides
- Allocation create/update/delete guarded by per-member overallocation checks
- Capacity, workload distribution and phase workload reports
- Rate limiting and CORS for the dashboard UI

Environment Variables:
- FLASK_ENV: development/production
- SECRET_KEY: Flask secret key
- CORS_ORIGINS: Allowed CORS origins
- LOG_LEVEL: Override the log level
- SEED_SAMPLE_DATA: Load the sample team in development

Usage:
    python app.py

Or with Gunicorn (production):
    gunicorn "app:create_app('production')" --bind 0.0.0.0:8000
"""

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from config import config
import logging
from errors import register_error_handlers, log_api_request, log_api_response
from database import ResourceStore, STORE_EXTENSION, seed_database


def configure_logging(app, config_name='development'):
    """Configure logging for the application"""
    # Clear existing handlers
    for handler in app.logger.handlers[:]:
        app.logger.removeHandler(handler)

    # Set log level
    if app.config.get('LOG_LEVEL'):
        log_level = getattr(logging, app.config['LOG_LEVEL'].upper(), logging.WARNING)
    else:
        log_level = logging.INFO if app.config.get('DEBUG', False) else logging.WARNING
    app.logger.setLevel(log_level)

    # Create console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(formatter)

    # Add handler to the app logger and the engine module loggers
    app.logger.addHandler(console_handler)
    for name in ('engine', 'database', 'errors'):
        module_logger = logging.getLogger(name)
        module_logger.setLevel(log_level)
        if not module_logger.handlers:
            module_logger.addHandler(console_handler)

    # Log application startup
    app.logger.info(f"Resource Planning API starting in {config_name} mode")


def create_app(config_name='development', store=None):
    """
    Application factory pattern.

    Args:
        config_name: Key into the config mapping
        store: Existing ResourceStore to serve; a new one is created if omitted
    """
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config[config_name])
    app.json.sort_keys = app.config.get('JSON_SORT_KEYS', False)

    # Configure logging
    configure_logging(app, config_name)

    # Initialize extensions
    CORS(app, origins=app.config['CORS_ORIGINS'])

    # Initialize rate limiter
    Limiter(
        get_remote_address,
        app=app,
        default_limits=[limit.strip() for limit in app.config['RATELIMIT_DEFAULT'].split(';') if limit.strip()],
        storage_uri=app.config['RATELIMIT_STORAGE_URI']
    )

    # Attach the resource store
    if store is None:
        store = ResourceStore()
    app.extensions[STORE_EXTENSION] = store

    # Register error handlers
    register_error_handlers(app)

    # Request logging middleware
    @app.before_request
    def log_request_info():
        log_api_request(request.path, request.method, remote_addr=request.remote_addr)

    @app.after_request
    def log_response_info(response):
        log_api_response(request.path, request.method, response.status_code)
        return response

    # Health check endpoint
    @app.route('/api/health', methods=['GET'])
    def health_check():
        """Health check endpoint to verify API is running"""
        return jsonify({
            'status': 'healthy',
            'message': 'Resource Planning API is running'
        })

    # Seed sample data on startup
    if app.config.get('SEED_SAMPLE_DATA'):
        seed_database(store)

    # Register blueprints
    from routes import api
    app.register_blueprint(api, url_prefix='/api')

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5002, debug=True)
