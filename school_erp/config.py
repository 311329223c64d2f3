"""
Configuration for the School ERP backend
"""
import os
from urllib.parse import quote_plus


def _env(name, default=None):
    value = os.environ.get(name)
    return value if value not in (None, '') else default


def build_mysql_url(user, password, host, port, database):
    """Assemble a mysql-connector SQLAlchemy URL."""
    return (
        f"mysql+mysqlconnector://{quote_plus(user or '')}:{quote_plus(password or '')}"
        f"@{host}:{port}/{database}"
    )


class Config:
    # Flask
    DEBUG = False
    TESTING = False
    ENVIRONMENT = _env('FLASK_ENV', 'development')
    SECRET_KEY = _env('SESSION_SECRET', 'dev-session-secret')
    PORT = int(_env('PORT', 5000))
    BACKEND_URL = _env('BACKEND_URL', 'http://localhost:5000')
    JSON_SORT_KEYS = False

    # Session cookie
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_LIFETIME_HOURS = 24
    REMEMBER_ME_DAYS = 30

    # Master database
    MASTER_DB_HOST = _env('MASTER_DB_HOST', 'localhost')
    MASTER_DB_PORT = int(_env('MASTER_DB_PORT', 3306))
    MASTER_DB_USER = _env('MASTER_DB_USER', 'root')
    MASTER_DB_PASS = _env('MASTER_DB_PASS', '')
    MASTER_DB_NAME = _env('MASTER_DB_NAME', 'school_erp_master')
    SQLALCHEMY_DATABASE_URI = _env('DATABASE_URL') or build_mysql_url(
        MASTER_DB_USER, MASTER_DB_PASS, MASTER_DB_HOST, MASTER_DB_PORT, MASTER_DB_NAME
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 1800,  # Recycle connections after 30 minutes
    }

    # Trust databases fall back to the master credentials
    TRUST_DB_HOST = _env('TRUST_DB_HOST', MASTER_DB_HOST)
    TRUST_DB_PORT = int(_env('TRUST_DB_PORT', MASTER_DB_PORT))
    TRUST_DB_USER = _env('TRUST_DB_USER', MASTER_DB_USER)
    TRUST_DB_PASS = _env('TRUST_DB_PASS', MASTER_DB_PASS)
    TRUST_DATABASE_URL_TEMPLATE = _env(
        'TRUST_DATABASE_URL_TEMPLATE',
        'mysql+mysqlconnector://{user}:{password}@{host}:{port}/{schema}',
    )
    TRUST_SCHEMA_PREFIX = 'school_erp_trust_'
    TRUST_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 1800,
    }

    # Tenant resolution
    TRUST_CACHE_TTL_SECONDS = 15 * 60
    TRUST_SLUG_HEADER = 'X-Trust-Slug'
    DEFAULT_TRUST_SLUG = 'dev-trust'
    UPLOAD_BASE_PATH = '/uploads'

    # Auth
    JWT_SECRET = _env('JWT_SECRET', 'dev-jwt-secret')
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRES_SECONDS = 24 * 60 * 60
    DEFAULT_ADMIN_EMAIL = _env('DEFAULT_ADMIN_EMAIL', 'admin@school-erp.org')
    DEFAULT_ADMIN_PASSWORD = _env('DEFAULT_ADMIN_PASSWORD')

    # Rate limiting (Flask-Limiter)
    RATELIMIT_ENABLED = True
    RATELIMIT_DEFAULT = '300 per minute'
    RATELIMIT_STORAGE_URI = _env('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_HEADERS_ENABLED = True
    AUTH_RATE_LIMIT = '5 per minute'

    # Logging
    LOG_LEVEL = _env('LOG_LEVEL', 'INFO')
    LOG_DIR = _env('LOG_DIR')

    # Files
    EXPORT_DIR = _env('EXPORT_DIR')
    EXPORT_TTL_DAYS = 7
    MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'migrations')

    # Communications
    MESSAGE_HOURLY_LIMIT = 100

    # Wizards (callable returning the current naive UTC datetime)
    WIZARD_CLOCK = None

    @staticmethod
    def init_app(app):
        pass


class DevelopmentConfig(Config):
    DEBUG = True
    ENVIRONMENT = 'development'
    LOG_LEVEL = _env('LOG_LEVEL', 'DEBUG')


class TestingConfig(Config):
    TESTING = True
    ENVIRONMENT = 'development'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TRUST_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    JWT_SECRET = 'test-jwt-secret'
    SECRET_KEY = 'test-session-secret'
    LOG_LEVEL = 'WARNING'
    LOG_DIR = None


class ProductionConfig(Config):
    # Flask
    DEBUG = False
    TESTING = False
    ENVIRONMENT = 'production'
    PREFERRED_URL_SCHEME = 'https'

    # Security
    SESSION_COOKIE_SECURE = True
    PERMANENT_SESSION_LIFETIME = 3600  # 1 hour

    # Database
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 10,
        'pool_timeout': 30,
        'pool_recycle': 1800,  # Recycle connections after 30 minutes
        'max_overflow': 2,
        'pool_pre_ping': True,
    }
    TRUST_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_timeout': 30,
        'pool_recycle': 1800,
        'max_overflow': 2,
        'pool_pre_ping': True,
    }

    @staticmethod
    def init_app(app):
        # Secrets must come from the environment in production
        app.config['SECRET_KEY'] = os.environ.get('SESSION_SECRET', os.urandom(24))
        app.config['PREFERRED_URL_SCHEME'] = 'https'
        if not os.environ.get('JWT_SECRET'):
            app.logger.warning('JWT_SECRET is not set; using the development secret')


config_by_name = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
