import os

basedir = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name, default):
    return os.environ.get(name, str(default)).lower() == 'true'


class Config:
    """Base configuration for the application."""

    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-key-please-change-in-production'
    DEBUG = False
    TESTING = False

    # Local record store
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///ridesync.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Cloud API settings
    CLOUD_API_URL = os.environ.get('CLOUD_API_URL', 'https://api.kpedal.com')
    CLOUD_TIMEOUT = int(os.environ.get('CLOUD_TIMEOUT', 30))
    DEVICE_NAME = os.environ.get('DEVICE_NAME', 'Karoo')

    # Fernet key for tokens at rest; generated into the instance folder when unset
    CREDENTIAL_ENCRYPTION_KEY = os.environ.get('CREDENTIAL_ENCRYPTION_KEY')

    # Sync settings
    SYNC_INTERVAL_MINUTES = int(os.environ.get('SYNC_INTERVAL_MINUTES', 30))
    SYNC_COOLDOWN_MS = int(os.environ.get('SYNC_COOLDOWN_MS', 60000))
    AUTO_SYNC_ENABLED = _env_bool('AUTO_SYNC_ENABLED', True)
    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', True)
    # Dashboard sync-request check, also pulls settings
    HEARTBEAT_INTERVAL_MINUTES = int(os.environ.get('HEARTBEAT_INTERVAL_MINUTES', 5))

    # Crash recovery
    CHECKPOINT_INTERVAL_MS = int(os.environ.get('CHECKPOINT_INTERVAL_MS', 60000))

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = os.environ.get('LOG_FORMAT', 'json')
    LOG_DIR = os.environ.get('LOG_DIR', os.path.join(basedir, '..', 'logs'))

    VERSION = '1.0.0'


class DevelopmentConfig(Config):
    """Development configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or 'sqlite:///ridesync-dev.db'
    LOG_FORMAT = os.environ.get('LOG_FORMAT', 'standard')


class TestingConfig(Config):
    """Testing configuration."""

    TESTING = True
    DEBUG = True

    # Use in-memory SQLite for testing
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    CLOUD_API_URL = 'https://cloud.test'
    SCHEDULER_ENABLED = False
    AUTO_SYNC_ENABLED = False


class ProductionConfig(Config):
    """Production configuration."""

    # Ensure proper secret key is set
    SECRET_KEY = os.environ.get('SECRET_KEY')


# Configuration dictionary
config_dict = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration class based on environment."""
    if not config_name:
        config_name = os.environ.get('FLASK_ENV', 'default')
    return config_dict.get(config_name, config_dict['default'])
