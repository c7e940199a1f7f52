"""
Configuration settings for different environments
"""
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _database_url():
    url = os.environ.get('DATABASE_URL') or 'postgresql://localhost/scoopify_dev'
    # Heroku-style URLs use the deprecated scheme
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    return url


class Config:
    """Base configuration"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    API_PREFIX = '/api'

    # Auth
    JWT_SECRET = os.environ.get('JWT_SECRET') or SECRET_KEY
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRES_DAYS = int(os.environ.get('JWT_EXPIRES_DAYS', 7))

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DB_STATEMENT_TIMEOUT_MS = int(os.environ.get('DB_STATEMENT_TIMEOUT_MS', 5000))
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 10,
        'pool_recycle': 3600,
        'pool_pre_ping': True,
        'pool_timeout': 10,
        'connect_args': {'options': '-c statement_timeout={}'.format(DB_STATEMENT_TIMEOUT_MS)},
    }

    # Security
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)

    # CORS
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

    # Pagination
    ITEMS_PER_PAGE = 20
    MAX_ITEMS_PER_PAGE = 100

    # Business rules
    TIMEZONE = os.environ.get('TIMEZONE', 'America/Denver')
    JOB_UNLOCK_HOUR = 8
    CLAIM_WINDOW_END_HOUR = 19
    ARRIVAL_WINDOW_MINUTES = 120
    QUEUE_RATING_THRESHOLD = 4.5
    REFERRAL_FEE_CENTS = 500
    EMPLOYEE_SHARE_BPS = 7500
    MIN_BEFORE_PHOTOS = 4
    MIN_AFTER_PHOTOS = 4
    PHOTO_RETENTION_DAYS = 90

    # External services
    ZIP_GEOCODER_URL = os.environ.get('ZIP_GEOCODER_URL')
    EXTERNAL_TIMEOUT_SECONDS = float(os.environ.get('EXTERNAL_TIMEOUT_SECONDS', 5))
    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET')

    # Email
    RESEND_API_KEY = os.environ.get('RESEND_API_KEY')
    SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY')
    EMAIL_FROM = os.environ.get('EMAIL_FROM', 'noreply@scoopifyclub.com')
    EMAIL_FROM_NAME = os.environ.get('EMAIL_FROM_NAME', 'Scoopify Club')
    ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL', 'admin@scoopifyclub.com')

    # Rate limiting (shared store; disabled with a warning when unset)
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL')
    RATELIMIT_DEFAULT = '300 per hour'
    RATELIMIT_SWALLOW_ERRORS = True
    RATELIMIT_HEADERS_ENABLED = True

    # External timer
    CRON_SECRET = os.environ.get('CRON_SECRET')

    # Observability
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    SENTRY_DSN = os.environ.get('SENTRY_DSN')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False
    SESSION_COOKIE_SECURE = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
    }


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    # Enforce HTTPS
    SESSION_COOKIE_SECURE = True

    # Production-specific settings
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 20,
        'max_overflow': 40,
        'pool_recycle': 3600,
        'pool_pre_ping': True,
        'pool_timeout': 10,
        'connect_args': {'options': '-c statement_timeout={}'.format(Config.DB_STATEMENT_TIMEOUT_MS)},
    }
