"""
Tests for the HTTP client wrapper (requests.Session is mocked)
"""
import pytest
import requests
from unittest.mock import Mock

from api_client import StoryBoardClient, ApiError


def _response(status_code, body=None):
    response = Mock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError('no json')
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def http():
    return Mock(spec=requests.Session)


@pytest.fixture
def api(http):
    return StoryBoardClient(base_url='http://api.test/', session=http)


class TestRequests:
    def test_login_keeps_token_for_later_calls(self, api, http):
        http.request.side_effect = [
            _response(200, {'token': 'abc', 'user': {'id': 1, 'email': 'user@example.com'}}),
            _response(200, []),
        ]

        api.login('user@example.com', 'password123', remember_me=True)
        api.list_projects()

        login_call, list_call = http.request.call_args_list
        assert login_call.args == ('POST', 'http://api.test/api/login')
        assert login_call.kwargs['json'] == {
            'email': 'user@example.com', 'password': 'password123', 'rememberMe': True
        }
        assert 'Authorization' not in login_call.kwargs['headers']
        assert list_call.kwargs['headers']['Authorization'] == 'Bearer abc'

    def test_reorder_sends_project_order(self, api, http):
        http.request.return_value = _response(200, {'message': 'ok'})

        api.reorder_projects((3, 1, 2))

        call = http.request.call_args
        assert call.args == ('PUT', 'http://api.test/api/projects/order')
        assert call.kwargs['json'] == {'projectOrder': [3, 1, 2]}


class TestErrors:
    def test_server_message_is_kept(self, api, http):
        http.request.return_value = _response(404, {
            'error': 'not_found', 'message': 'Project not found or unauthorized'
        })

        with pytest.raises(ApiError) as exc_info:
            api.update_project(5, name='x')

        assert exc_info.value.status == 404
        assert exc_info.value.code == 'not_found'
        assert exc_info.value.message == 'Project not found or unauthorized'

    def test_non_json_error_body(self, api, http):
        http.request.return_value = _response(502)

        with pytest.raises(ApiError) as exc_info:
            api.health()

        assert exc_info.value.status == 502
        assert exc_info.value.code == 'http_error'

    def test_network_failure_has_no_status(self, api, http):
        http.request.side_effect = requests.ConnectionError('refused')

        with pytest.raises(ApiError) as exc_info:
            api.list_projects()

        assert exc_info.value.status is None
        assert exc_info.value.code == 'network_error'

    def test_auth_error_flag(self):
        assert ApiError(401, 'authorization_required', 'x').is_auth_error
        assert ApiError(403, 'invalid_token', 'x').is_auth_error
        assert not ApiError(404, 'not_found', 'x').is_auth_error
