"""
Pytest fixtures for testing
"""
import pytest
from types import SimpleNamespace

from app import create_app
from config import TestingConfig
from models import db as _db


@pytest.fixture
def app():
    """每個測試一個新的 app + 記憶體資料庫"""
    app = create_app(TestingConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(client):
    """註冊並登入一個使用者,回傳 id / email / headers"""

    def _make_user(email='user@example.com', password='password123'):
        response = client.post('/api/register', json={'email': email, 'password': password})
        assert response.status_code == 201, response.get_json()

        response = client.post('/api/login', json={'email': email, 'password': password})
        assert response.status_code == 200, response.get_json()
        body = response.get_json()

        return SimpleNamespace(
            id=body['user']['id'],
            email=email,
            token=body['token'],
            headers={'Authorization': f"Bearer {body['token']}"}
        )

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def project(client, user):
    response = client.post('/api/projects', json={'name': 'Site Revamp'}, headers=user.headers)
    assert response.status_code == 201
    return response.get_json()


@pytest.fixture
def story(client, user, project):
    response = client.post(
        f"/api/projects/{project['id']}/stories",
        json={'title': 'Fix header', 'tags': ['ui']},
        headers=user.headers
    )
    assert response.status_code == 201
    return response.get_json()
