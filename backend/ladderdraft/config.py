"""
Configuration settings for the LadderDraft engine.
"""
import os
from typing import Dict, Any


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration class."""

    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    TESTING = False

    # Storage backend: 'firestore' or 'memory'
    STORE_BACKEND = os.environ.get('STORE_BACKEND', 'firestore')

    # Firebase settings
    FIREBASE_PROJECT_ID = os.environ.get('FIREBASE_PROJECT_ID', 'ffladder-app')
    GOOGLE_APPLICATION_CREDENTIALS = os.environ.get('GOOGLE_APPLICATION_CREDENTIALS')
    FIRESTORE_EMULATOR_HOST = os.environ.get('FIRESTORE_EMULATOR_HOST')

    # CORS settings
    CORS_ORIGINS = [
        'http://localhost:3000',
        'http://frontend:3000',
        'http://127.0.0.1:3000'
    ]

    # SocketIO settings
    SOCKETIO_CORS_ALLOWED_ORIGINS = CORS_ORIGINS
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE') or None

    # Draft defaults
    DEFAULT_TIMER_SECONDS = int(os.environ.get('DEFAULT_TIMER_SECONDS', 90))
    DEFAULT_ROUNDS = int(os.environ.get('DEFAULT_ROUNDS', 14))
    DEFAULT_AUTO_PICK_ENABLED = _env_bool('DEFAULT_AUTO_PICK_ENABLED', True)

    # Rate limits (rolling windows, per actor and session)
    PICK_RATE_LIMIT_SECONDS = 2
    QUEUE_RATE_LIMIT_WINDOW_SECONDS = 60
    QUEUE_RATE_LIMIT_MAX = 10
    CONTROL_RATE_LIMIT_SECONDS = 5

    # Expiration sweep trigger
    SWEEP_SECRET = os.environ.get('DRAFT_SWEEP_SECRET')

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    @staticmethod
    def get_firebase_config() -> Dict[str, Any]:
        """Get Firebase service account configuration."""
        return {
            'type': 'service_account',
            'project_id': Config.FIREBASE_PROJECT_ID,
            'private_key_id': os.environ.get('FIREBASE_PRIVATE_KEY_ID'),
            'private_key': os.environ.get('FIREBASE_PRIVATE_KEY', '').replace('\\n', '\n'),
            'client_email': os.environ.get('FIREBASE_CLIENT_EMAIL'),
            'client_id': os.environ.get('FIREBASE_CLIENT_ID'),
            'auth_uri': 'https://accounts.google.com/o/oauth2/auth',
            'token_uri': 'https://oauth2.googleapis.com/token',
            'auth_provider_x509_cert_url': 'https://www.googleapis.com/oauth2/v1/certs',
            'client_x509_cert_url': os.environ.get('FIREBASE_CLIENT_CERT_URL')
        }


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    STORE_BACKEND = os.environ.get('STORE_BACKEND', 'memory')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class TestingConfig(Config):
    """Configuration used by the test suite."""
    TESTING = True
    STORE_BACKEND = 'memory'
    SOCKETIO_ASYNC_MODE = 'threading'
    SWEEP_SECRET = None
    LOG_LEVEL = 'WARNING'


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    SECRET_KEY = os.environ.get('SECRET_KEY')

    @staticmethod
    def validate_production_config():
        """Validate required production environment variables."""
        required_vars = [
            'SECRET_KEY',
            'FIREBASE_PROJECT_ID',
            'DRAFT_SWEEP_SECRET'
        ]

        missing = [var for var in required_vars if not os.environ.get(var)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")


# Configuration mapping
config_map = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(env: str = None):
    """Get configuration based on environment."""
    env = env or os.environ.get('FLASK_ENV', 'development')
    return config_map.get(env, DevelopmentConfig)
