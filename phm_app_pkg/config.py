# phm_app_pkg/config.py
import os

# .env is loaded by run.py and the app factory before this module is read.

_DEFAULT_SECRET_KEY = 'you_REALLY_should_set_a_secret_key_in_env'
_DEFAULT_JWT_SECRET_KEY = 'you_REALLY_should_set_a_JWT_secret_key_in_env'


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration settings."""
    # Application Security
    SECRET_KEY = os.environ.get('SECRET_KEY') or _DEFAULT_SECRET_KEY
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or _DEFAULT_JWT_SECRET_KEY
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRATION_MINUTES = int(os.environ.get('JWT_EXPIRATION_MINUTES', 60))

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///phm_default.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Worklist
    WORKLIST_DEFAULT_ENTRIES = int(os.environ.get('WORKLIST_DEFAULT_ENTRIES', 15))
    WORKLIST_MAX_ASSIGNED_USER = int(os.environ.get('WORKLIST_MAX_ASSIGNED_USER', 9999))

    # Monitoring rules used by the tab classifier and the linelist
    REPORTING_PERIOD_MINUTES = int(os.environ.get('REPORTING_PERIOD_MINUTES', 1440))
    MONITORING_PERIOD_DAYS = int(os.environ.get('MONITORING_PERIOD_DAYS', 14))
    PURGEABLE_AFTER_MINUTES = int(os.environ.get('PURGEABLE_AFTER_MINUTES', 20160))
    ISOLATION_SYMPTOM_ONSET_DAYS = int(os.environ.get('ISOLATION_SYMPTOM_ONSET_DAYS', 10))
    ISOLATION_FEVER_FREE_HOURS = int(os.environ.get('ISOLATION_FEVER_FREE_HOURS', 24))
    # Whether purged records drop out of the transferred in/out tabs too.
    TRANSFER_TABS_EXCLUDE_PURGED = _env_bool('TRANSFER_TABS_EXCLUDE_PURGED', True)

    # Saved advanced filters
    MAX_USER_FILTERS = int(os.environ.get('MAX_USER_FILTERS', 25))

    # Assessment reminders
    REMINDER_RESEND_HOURS = int(os.environ.get('REMINDER_RESEND_HOURS', 12))


class DevelopmentConfig(Config):
    """Development-specific configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or os.environ.get('DATABASE_URL') or 'sqlite:///phm_dev.db'


class TestingConfig(Config):
    """Testing-specific configuration."""
    TESTING = True
    DEBUG = True
    # In-memory SQLite unless a dedicated test database is provided
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL') or 'sqlite://'
    JWT_EXPIRATION_MINUTES = 5


class ProductionConfig(Config):
    """Production-specific configuration."""
    DEBUG = False
    TESTING = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///prod_fallback.db'

    @classmethod
    def validate(cls):
        if cls.SECRET_KEY == _DEFAULT_SECRET_KEY:
            raise ValueError("SECRET_KEY not set via environment variable for production")
        if cls.JWT_SECRET_KEY == _DEFAULT_JWT_SECRET_KEY:
            raise ValueError("JWT_SECRET_KEY not set via environment variable for production")


def get_config(env=None):
    """Helper function to get the correct config class based on FLASK_ENV."""
    env = (env or os.environ.get('FLASK_ENV', 'development')).lower()
    if env == 'production':
        return ProductionConfig
    elif env == 'testing':
        return TestingConfig
    return DevelopmentConfig
