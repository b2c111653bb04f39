"""
Configuration for the School Management Dashboard
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
INSTANCE_DIR = os.path.join(BASE_DIR, 'instance')


def database_url_from_env(default):
    database_url = os.environ.get('DATABASE_URL')
    if database_url and database_url.startswith("postgres://"):
        # SQLAlchemy only understands the postgresql:// scheme
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url or default


class Config:
    # Flask
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-this-secret-key')

    SCHOOL_NAME = os.environ.get('SCHOOL_NAME', 'School Management Dashboard')
    SOFTWARE_NAME = 'School Management Dashboard'
    CURRENCY = os.environ.get('CURRENCY', 'R')

    # Authentication
    JWT_SECRET = os.environ.get('JWT_SECRET', 'change-this-jwt-secret')
    JWT_ALGORITHM = 'HS256'
    AUTH_TOKEN_LIFETIME_DAYS = int(os.environ.get('AUTH_TOKEN_LIFETIME_DAYS', 7))
    AUTH_COOKIE_NAME = 'auth_token'
    AUTH_COOKIE_SECURE = False
    BCRYPT_ROUNDS = int(os.environ.get('BCRYPT_ROUNDS', 10))
    DEFAULT_ADMIN_EMAIL = os.environ.get('DEFAULT_ADMIN_EMAIL')
    DEFAULT_ADMIN_PASSWORD = os.environ.get('DEFAULT_ADMIN_PASSWORD')

    # Session (used for flash messages and the registration wizard)
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Database
    SQLALCHEMY_DATABASE_URI = database_url_from_env(
        f"sqlite:///{os.path.join(INSTANCE_DIR, 'school.db')}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_TO_FILE = False
    LOG_DIR = os.path.join(BASE_DIR, 'logs')

    SECURITY_HEADERS = True

    @staticmethod
    def init_app(app):
        pass


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    WTF_CSRF_ENABLED = False
    BCRYPT_ROUNDS = 4
    SECRET_KEY = 'testing-secret-key'
    JWT_SECRET = 'testing-jwt-secret'
    SECURITY_HEADERS = False


class ProductionConfig(Config):
    PREFERRED_URL_SCHEME = 'https'

    # Security
    SESSION_COOKIE_SECURE = True
    AUTH_COOKIE_SECURE = True
    PERMANENT_SESSION_LIFETIME = 3600  # 1 hour

    # Database
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 10,
        'pool_timeout': 30,
        'pool_recycle': 1800,  # Recycle connections after 30 minutes
        'max_overflow': 2
    }

    LOG_TO_FILE = True

    @staticmethod
    def init_app(app):
        if not os.environ.get('SECRET_KEY') or not os.environ.get('JWT_SECRET'):
            app.logger.warning("SECRET_KEY and/or JWT_SECRET are not set; using insecure defaults")


config_by_name = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def get_config(name=None):
    name = name or os.environ.get('APP_ENV', 'development')
    return config_by_name.get(name, DevelopmentConfig)
