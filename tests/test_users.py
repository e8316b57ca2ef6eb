"""
Tests for profile, preferences and the user list
"""
from models import db, User


class TestProfile:
    def test_profile(self, client, user):
        body = client.get('/api/profile', headers=user.headers).get_json()
        assert body['id'] == user.id
        assert body['email'] == user.email
        assert body['created_at']


class TestPreferences:
    def test_empty_by_default(self, client, user):
        response = client.get('/api/preferences', headers=user.headers)
        assert response.status_code == 200
        assert response.get_json() == {}

    def test_update_and_read_back(self, client, user):
        response = client.put(
            '/api/preferences', json={'darkMode': True, 'language': 'et'}, headers=user.headers
        )
        assert response.status_code == 200
        assert response.get_json()['preferences'] == {'darkMode': True, 'language': 'et'}

        assert client.get('/api/preferences', headers=user.headers).get_json() == {
            'darkMode': True, 'language': 'et'
        }

    def test_partial_update_keeps_other_values(self, client, user):
        client.put('/api/preferences', json={'darkMode': True, 'language': 'ru'}, headers=user.headers)
        client.put('/api/preferences', json={'darkMode': False}, headers=user.headers)

        assert client.get('/api/preferences', headers=user.headers).get_json() == {
            'darkMode': False, 'language': 'ru'
        }

    def test_unknown_language_falls_back_to_english(self, client, user):
        body = client.put('/api/preferences', json={'language': 'xx'}, headers=user.headers).get_json()
        assert body['preferences']['language'] == 'en'

    def test_corrupt_blob_reads_as_empty(self, client, user):
        stored = db.session.get(User, user.id)
        stored.preferences = '{not json'
        db.session.commit()

        response = client.get('/api/preferences', headers=user.headers)
        assert response.status_code == 200
        assert response.get_json() == {}

    def test_update_over_corrupt_blob(self, client, user):
        stored = db.session.get(User, user.id)
        stored.preferences = '{not json'
        db.session.commit()

        body = client.put('/api/preferences', json={'darkMode': True}, headers=user.headers).get_json()
        assert body['preferences'] == {'darkMode': True, 'language': 'en'}

    def test_requires_token(self, client):
        assert client.get('/api/preferences').status_code == 401


class TestUserList:
    def test_lists_all_users_by_email(self, client, make_user):
        viewer = make_user('zed@example.com')
        make_user('amy@example.com')

        body = client.get('/api/users', headers=viewer.headers).get_json()
        assert [u['email'] for u in body] == ['amy@example.com', 'zed@example.com']
        assert set(body[0]) == {'id', 'email'}
