from datetime import datetime
import os
import pytz
from flask import current_app, has_app_context

DEFAULT_TIMEZONE = 'Asia/Singapore'


def get_app_timezone():
    """Resolve the operating timezone from the app config, falling back to the environment"""
    name = None
    if has_app_context():
        name = current_app.config.get('APP_TIMEZONE')
    return pytz.timezone(name or os.environ.get('APP_TIMEZONE', DEFAULT_TIMEZONE))


def get_local_time_naive():
    """Get current local time as naive datetime for database storage"""
    return datetime.now(get_app_timezone()).replace(tzinfo=None)


def now():
    """Clock used by trip transitions and invoice dating; patch this in tests"""
    return get_local_time_naive()
