from flask import Flask
from flask_cors import CORS
from stkpay.errors import AppError
from stkpay.extensions import redis_client, stk_push
from stkpay.config import config
from stkpay.utils.logger import RequestLogger, configure_app_logging


def create_app(config_name='development', overrides=None):
    """
    Application factory pattern

    Raises:
        ConfigurationError: if any required MPESA_* setting is missing
    """
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config[config_name])
    if overrides:
        app.config.update(overrides)

    configure_app_logging(app)

    # Initialize extensions
    redis_client.init_app(app)
    stk_push.init_app(app)
    CORS(app)
    RequestLogger(app)

    # Register blueprints
    from stkpay.api import register_blueprints
    register_blueprints(app)

    # Error handlers
    register_error_handlers(app)

    return app


def register_error_handlers(app):
    """Register error handlers"""
    from flask import jsonify

    @app.errorhandler(AppError)
    def app_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'success': False, 'error': 'Bad request', 'message': str(error)}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'success': False, 'error': 'Not found', 'message': str(error)}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'success': False, 'error': 'Method not allowed', 'message': str(error)}), 405

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({'success': False, 'error': 'Internal server error', 'message': str(error)}), 500
