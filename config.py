import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _env_int(name, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name, default):
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {'1', 'true', 'yes', 'on'}


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-change-me')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///database.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Auth
    TOKEN_MAX_AGE = _env_int('TOKEN_MAX_AGE', int(timedelta(days=30).total_seconds()))
    RESET_TOKEN_TTL_MINUTES = _env_int('RESET_TOKEN_TTL_MINUTES', 10)
    FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:3000')

    # Email
    EMAIL_HOST = os.getenv('EMAIL_HOST')
    EMAIL_PORT = _env_int('EMAIL_PORT', 587)
    EMAIL_USERNAME = os.getenv('EMAIL_USERNAME')
    EMAIL_PASSWORD = os.getenv('EMAIL_PASSWORD')
    FROM_EMAIL = os.getenv('FROM_EMAIL', 'no-reply@localhost')
    FROM_NAME = os.getenv('FROM_NAME', 'Task Manager')

    # Notifications
    DUE_SOON_MINUTES = _env_int('DUE_SOON_MINUTES', 60)
    DUE_HORIZON_HOURS = _env_int('DUE_HORIZON_HOURS', 24)
    NOTIFICATION_DEBOUNCE_MINUTES = _env_int('NOTIFICATION_DEBOUNCE_MINUTES', 24 * 60)
    NOTIFICATION_KEEP_PER_USER = _env_int('NOTIFICATION_KEEP_PER_USER', 10)
    NOTIFICATION_RETENTION_DAYS = _env_int('NOTIFICATION_RETENTION_DAYS', 30)

    # Scheduler (crontab expressions)
    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', True)
    DUE_DATE_SCAN_CRON = os.getenv('DUE_DATE_SCAN_CRON', '* * * * *')
    DELIVERY_CRON = os.getenv('DELIVERY_CRON', '* * * * *')
    RETENTION_CRON = os.getenv('RETENTION_CRON', '0 3 * * *')

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_DIR = os.getenv('LOG_DIR')
