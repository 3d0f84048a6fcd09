import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'http://localhost:3000,http://localhost:5173').split(',')
    JSON_SORT_KEYS = False

    # Rate limiting
    RATELIMIT_ENABLED = True
    RATELIMIT_DEFAULT = os.environ.get('RATELIMIT_DEFAULT', '200 per day;50 per hour')
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL')

    # Engine settings
    DEFAULT_WORKLOAD_INTERVAL = os.environ.get('DEFAULT_WORKLOAD_INTERVAL', 'week')
    SEED_SAMPLE_DATA = False


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SEED_SAMPLE_DATA = os.environ.get('SEED_SAMPLE_DATA', 'true').lower() == 'true'


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    # Security settings for production
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Rate limiting for production
    RATELIMIT_DEFAULT = os.environ.get('RATELIMIT_DEFAULT', '100 per hour')
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL', 'memory://')

    # Logging configuration for production
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'WARNING')

    # CORS settings for production
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '').split(',') if os.environ.get('CORS_ORIGINS') else []


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    RATELIMIT_ENABLED = False
    SEED_SAMPLE_DATA = False


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
