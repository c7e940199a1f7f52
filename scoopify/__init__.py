from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
import logging
import os

db = SQLAlchemy()

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Flask application factory"""
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    from config import config
    app.config.from_object(config[config_name])

    from scoopify.middleware.request_id import RequestIdMiddleware, configure_logging
    configure_logging(app)
    _init_sentry(app)

    # Initialize extensions
    db.init_app(app)
    CORS(app, resources={r'/api/*': {'origins': app.config['CORS_ORIGINS']}}, supports_credentials=True)

    from scoopify.extensions import init_limiter
    init_limiter(app)

    app.wsgi_app = RequestIdMiddleware(app.wsgi_app)

    # Models must be imported before create_all / migrations see them
    from scoopify import models  # noqa: F401

    from scoopify.errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from scoopify.routes.auth import auth_bp
    from scoopify.routes.coverage import coverage_bp
    from scoopify.routes.jobs import jobs_bp
    from scoopify.routes.services import services_bp
    from scoopify.routes.payments import payments_bp, earnings_bp
    from scoopify.routes.notifications import notifications_bp
    from scoopify.routes.admin import admin_bp
    from scoopify.routes.cron import cron_bp
    from scoopify.routes.webhooks import webhooks_bp

    api_prefix = app.config['API_PREFIX']
    app.register_blueprint(auth_bp, url_prefix=f'{api_prefix}/auth')
    app.register_blueprint(coverage_bp, url_prefix=f'{api_prefix}/coverage')
    app.register_blueprint(jobs_bp, url_prefix=f'{api_prefix}/jobs')
    app.register_blueprint(services_bp, url_prefix=f'{api_prefix}/services')
    app.register_blueprint(payments_bp, url_prefix=f'{api_prefix}/payments')
    app.register_blueprint(earnings_bp, url_prefix=f'{api_prefix}/earnings')
    app.register_blueprint(notifications_bp, url_prefix=f'{api_prefix}/notifications')
    app.register_blueprint(admin_bp, url_prefix=f'{api_prefix}/admin')
    app.register_blueprint(cron_bp, url_prefix=f'{api_prefix}/cron')
    app.register_blueprint(webhooks_bp, url_prefix=f'{api_prefix}/webhooks')

    from scoopify.cli import register_commands
    register_commands(app)

    @app.after_request
    def set_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        return response

    # Health check endpoint
    @app.route('/health')
    def health():
        return jsonify({'status': 'healthy', 'service': 'scoopify-backend'}), 200

    return app


def _init_sentry(app):
    """Error monitoring is optional; only active when SENTRY_DSN is set."""
    dsn = app.config.get('SENTRY_DSN')
    if not dsn:
        if not app.config.get('TESTING') and not app.config.get('DEBUG'):
            logger.warning('SENTRY_DSN is not set -- error monitoring is disabled.')
        return

    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.1,
    )
