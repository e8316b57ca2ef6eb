"""
Tests for project endpoints
"""
from models import db, Project, Story, Comment


def _create(client, user, name, **fields):
    response = client.post('/api/projects', json=dict(fields, name=name), headers=user.headers)
    assert response.status_code == 201
    return response.get_json()


class TestCreateProject:
    def test_defaults(self, client, user):
        response = client.post('/api/projects', json={'name': 'Site Revamp'}, headers=user.headers)
        assert response.status_code == 201
        body = response.get_json()
        assert body['name'] == 'Site Revamp'
        assert body['status'] == 'in-progress'
        assert body['display_order'] == 0
        assert body['archived'] is False

    def test_invalid_status_is_coerced(self, client, user):
        body = _create(client, user, 'Coerced', status='bogus')
        assert body['status'] == 'in-progress'

    def test_valid_status_is_kept(self, client, user):
        body = _create(client, user, 'Paused', status='on-hold')
        assert body['status'] == 'on-hold'

    def test_empty_name_rejected(self, client, user):
        response = client.post('/api/projects', json={'name': ''}, headers=user.headers)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'validation_error'

    def test_missing_name_rejected(self, client, user):
        response = client.post('/api/projects', json={'description': 'no name'}, headers=user.headers)
        assert response.status_code == 400


class TestListProjects:
    def test_no_cross_user_leakage(self, client, make_user):
        alice = make_user('alice@example.com')
        bob = make_user('bob@example.com')

        _create(client, alice, 'Alice 1')
        _create(client, bob, 'Bob 1')
        _create(client, alice, 'Alice 2')
        _create(client, bob, 'Bob 2')

        alice_names = {p['name'] for p in client.get('/api/projects', headers=alice.headers).get_json()}
        bob_names = {p['name'] for p in client.get('/api/projects', headers=bob.headers).get_json()}

        assert alice_names == {'Alice 1', 'Alice 2'}
        assert bob_names == {'Bob 1', 'Bob 2'}

    def test_archived_projects_are_listed(self, client, user):
        project = _create(client, user, 'Old')
        client.put(f"/api/projects/{project['id']}", json={'archived': True}, headers=user.headers)

        projects = client.get('/api/projects', headers=user.headers).get_json()
        assert [p['archived'] for p in projects] == [True]


class TestReorderProjects:
    def test_listing_follows_given_order(self, client, user):
        ids = [_create(client, user, f'Project {i}')['id'] for i in range(3)]
        new_order = [ids[2], ids[0], ids[1]]

        response = client.put('/api/projects/order', json={'projectOrder': new_order}, headers=user.headers)
        assert response.status_code == 200

        listed = [p['id'] for p in client.get('/api/projects', headers=user.headers).get_json()]
        assert listed == new_order

    def test_foreign_id_rejects_whole_batch(self, client, make_user):
        alice = make_user('alice@example.com')
        bob = make_user('bob@example.com')
        mine = [_create(client, alice, 'A')['id'], _create(client, alice, 'B')['id']]
        theirs = _create(client, bob, 'C')['id']

        response = client.put(
            '/api/projects/order',
            json={'projectOrder': [mine[1], theirs, mine[0]]},
            headers=alice.headers
        )
        assert response.status_code == 403

        orders = [p.display_order for p in Project.query.filter(Project.id.in_(mine)).all()]
        assert orders == [0, 0]

    def test_non_list_rejected(self, client, user):
        response = client.put('/api/projects/order', json={'projectOrder': 'abc'}, headers=user.headers)
        assert response.status_code == 400


class TestUpdateProject:
    def test_update_name_and_status(self, client, user, project):
        response = client.put(
            f"/api/projects/{project['id']}",
            json={'name': 'Renamed', 'status': 'completed'},
            headers=user.headers
        )
        assert response.status_code == 200
        body = response.get_json()
        assert body['name'] == 'Renamed'
        assert body['status'] == 'completed'

    def test_invalid_status_is_dropped_without_write(self, client, user, project):
        before = db.session.get(Project, project['id']).updated_at

        response = client.put(
            f"/api/projects/{project['id']}", json={'status': 'bogus'}, headers=user.headers
        )
        assert response.status_code == 200
        assert response.get_json()['status'] == 'in-progress'

        db.session.expire_all()
        assert db.session.get(Project, project['id']).updated_at == before

    def test_no_recognized_field_is_noop_error(self, client, user, project):
        response = client.put(
            f"/api/projects/{project['id']}", json={'color': 'red'}, headers=user.headers
        )
        assert response.status_code == 400
        assert response.get_json()['error'] == 'no_valid_fields'

    def test_description_is_not_mutable(self, client, user, project):
        response = client.put(
            f"/api/projects/{project['id']}", json={'description': 'changed'}, headers=user.headers
        )
        assert response.status_code == 400

    def test_other_users_project_is_404(self, client, make_user, project):
        bob = make_user('bob@example.com')
        response = client.put(f"/api/projects/{project['id']}", json={'name': 'Mine'}, headers=bob.headers)
        assert response.status_code == 404


class TestDeleteProject:
    def test_delete_cascades_to_stories_and_comments(self, client, user, project, story):
        client.post(f"/api/stories/{story['id']}/comments", json={'content': 'hi'}, headers=user.headers)

        response = client.delete(f"/api/projects/{project['id']}", headers=user.headers)
        assert response.status_code == 200

        assert Story.query.filter_by(project_id=project['id']).count() == 0
        assert Comment.query.filter_by(story_id=story['id']).count() == 0

    def test_missing_project_is_404(self, client, user):
        response = client.delete('/api/projects/9999', headers=user.headers)
        assert response.status_code == 404


class TestUpdateProjectBody:
    def test_empty_object_is_noop_error(self, client, user, project):
        response = client.put(f"/api/projects/{project['id']}", json={}, headers=user.headers)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'no_valid_fields'

    def test_non_object_body_rejected(self, client, user, project):
        response = client.put(f"/api/projects/{project['id']}", json=[1, 2], headers=user.headers)
        assert response.status_code == 400
