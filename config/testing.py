"""
Testing configuration for the Scoopify backend
"""
import os
from config.settings import Config


class TestingConfig(Config):
    """Testing configuration with isolated database and safe defaults"""

    TESTING = True
    DEBUG = False

    # Use in-memory SQLite for fast tests
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'TEST_DATABASE_URL',
        'sqlite:///:memory:'
    )
    SQLALCHEMY_ENGINE_OPTIONS = {}

    JWT_SECRET = 'test-jwt-secret'
    SESSION_COOKIE_SECURE = False

    # Side effects run in dev mode
    STRIPE_SECRET_KEY = None
    STRIPE_WEBHOOK_SECRET = None
    RESEND_API_KEY = None
    SENDGRID_API_KEY = None
    ZIP_GEOCODER_URL = None
    ADMIN_EMAIL = 'admin@scoopify.test'
    EMAIL_FROM = 'test@scoopify.test'

    CRON_SECRET = 'test-cron-secret'

    # Disable rate limiting in tests
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = None

    # Logging
    LOG_LEVEL = 'WARNING'
    SENTRY_DSN = None

    # CORS
    CORS_ORIGINS = ['http://localhost:5173', 'http://localhost:3000']
