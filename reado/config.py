import os
from dotenv import load_dotenv

load_dotenv()

def _fix_db_url(url):
    """Fix common DATABASE_URL issues for SQLAlchemy compatibility."""
    if not url:
        return 'sqlite:///reado.db'
    # Heroku/Render use postgres:// but SQLAlchemy requires postgresql://
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    return url

def _int_env(key, default):
    try:
        return int(os.environ.get(key, default))
    except (TypeError, ValueError):
        return default

class Config:
    SQLALCHEMY_DATABASE_URI = _fix_db_url(os.environ.get('DATABASE_URL', ''))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'http://localhost:3000')

    # Request pipeline
    MAX_CONCURRENT = _int_env('MAX_CONCURRENT', 20)
    REQUEST_TIMEOUT_MS = _int_env('REQUEST_TIMEOUT_MS', 3000)

    # Moderation (missing keys disable the provider, posting still works)
    NSFW_THRESHOLD = 0.7
    PERSPECTIVE_API_KEY = os.environ.get('PERSPECTIVE_API_KEY', '')
    PERSPECTIVE_TIMEOUT = _int_env('PERSPECTIVE_TIMEOUT', 5)
    OPENROUTER_API_KEY = os.environ.get('OPENROUTER_API_KEY', '')
    OPENROUTER_MODEL = os.environ.get('OPENROUTER_MODEL', 'openai/gpt-3.5-turbo')
    OPENROUTER_TIMEOUT = _int_env('OPENROUTER_TIMEOUT', 20)
    MODERATION_WORKERS = _int_env('MODERATION_WORKERS', 4)

    # Google sign-in
    GOOGLE_CLIENT_ID = os.environ.get('GOOGLE_CLIENT_ID', '')
    GOOGLE_CLIENT_SECRET = os.environ.get('GOOGLE_CLIENT_SECRET', '')
    OAUTH_REDIRECT_URI = os.environ.get(
        'OAUTH_REDIRECT_URI', 'http://localhost:5001/users/auth/google/callback'
    )
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:3000')
    JWT_SECRET = os.environ.get('JWT_SECRET', '')
    JWT_TTL_DAYS = _int_env('JWT_TTL_DAYS', 7)

class DevConfig(Config):
    DEBUG = True

class ProdConfig(Config):
    DEBUG = False

class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    PERSPECTIVE_API_KEY = ''
    OPENROUTER_API_KEY = ''
    GOOGLE_CLIENT_ID = 'test-client-id'
    GOOGLE_CLIENT_SECRET = 'test-client-secret'
    JWT_SECRET = 'test-secret'
