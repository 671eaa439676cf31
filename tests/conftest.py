"""
Test configuration and fixtures for the FleetX manifest engine
"""

import pytest
import os
from datetime import datetime
from unittest.mock import patch

# Set test environment before importing app
os.environ.update({
    'FLASK_ENV': 'testing',
    'TESTING': 'true',
    'SESSION_SECRET': 'test_secret_key_for_testing_only',
    'DATABASE_URL': 'sqlite:///:memory:',
})

from app import create_app, db

FIXED_NOW = datetime(2024, 5, 14, 18, 30)


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'APP_TIMEZONE': 'Asia/Singapore',
        'TRIP_ENFORCE_TRANSITIONS': True,
        'BILLING_REQUIRE_COMPLETED_TRIP': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for testing"""
    yield db.session
    db.session.rollback()


@pytest.fixture
def frozen_now():
    """Pin the application clock used for trip and invoice timestamps"""
    with patch('timezone_utils.now', return_value=FIXED_NOW):
        yield FIXED_NOW
