"""
Laptop Grading System - Test Configuration and Fixtures
"""
import pytest
from flask import g

from grading_app.app import create_app
from grading_app.auth import authenticate
from grading_app.models import db

ADMIN_USER = 'admin'
ADMIN_PASS = 'admin-pass'
TECH_PASS = 'tech-pass'


@pytest.fixture
def app():
    """Fresh app on an in-memory database for each test"""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret-key',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'INITIAL_ADMIN_USER': ADMIN_USER,
        'INITIAL_ADMIN_PASS': ADMIN_PASS,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def store(app):
    return app.extensions['grading_store']


@pytest.fixture
def client(app):
    """Test client. The app context pushed above is shared by every request, so g is too."""
    @app.before_request
    def forget_loaded_user():
        g.pop('_login_user', None)

    return app.test_client()


@pytest.fixture
def admin(store):
    return authenticate(store, ADMIN_USER, ADMIN_PASS)


@pytest.fixture
def tech(store):
    store.create_user('tech1', TECH_PASS, 'TECH')
    return authenticate(store, 'tech1', TECH_PASS)


@pytest.fixture
def project(store, admin):
    return store.create_project(admin, {'name': 'Batch 12', 'deviceType': 'LAPTOP'})


@pytest.fixture
def preset(store, admin):
    return store.create_preset(admin, {
        'deviceType': 'LAPTOP',
        'brand': 'Dell',
        'model': '7420',
        'defaultCpu': 'i7-1185G7',
        'defaultRamGb': '32',
        'defaultSsdGb': '256',
        'touchDefault': 'TOUCH',
        'defaultObservations': 'Minor scratches on lid',
    })


def login(client, user_name, password):
    return client.post('/login', data={'userName': user_name, 'password': password})
