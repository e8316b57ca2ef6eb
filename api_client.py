"""
Story Board API 的 HTTP client

前端 (或腳本) 透過這個類別呼叫所有 REST endpoint,
非 2xx 的回應一律轉成 ApiError,message 是 server 給的訊息
"""
import requests
import logging

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'http://localhost:3001'


class ApiError(Exception):
    """
    API 呼叫失敗

    Attributes:
        status: HTTP status code,網路錯誤時是 None
        code: server 回傳的 error 代碼
        message: 給使用者看的訊息
    """

    def __init__(self, status, code, message):
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message

    @property
    def is_auth_error(self):
        return self.status in (401, 403)


class StoryBoardClient:

    def __init__(self, base_url=DEFAULT_BASE_URL, token=None, timeout=10, session=None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.http = session or requests.Session()

    # ============================================
    # 共用
    # ============================================

    def _request(self, method, path, payload=None):
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'

        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(
                method, url, json=payload, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Network error on {method} {path}: {str(e)}")
            raise ApiError(None, 'network_error', 'Could not reach the server') from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            code, message = 'http_error', f'Request failed with status {response.status_code}'
            if isinstance(body, dict):
                code = body.get('error') or code
                message = body.get('message') or body.get('error') or message
            logger.warning(f"{method} {path} failed: {response.status_code} {code}")
            raise ApiError(response.status_code, code, message)

        return body

    # ============================================
    # 認證
    # ============================================

    def register(self, email, password):
        return self._request('POST', '/api/register', {'email': email, 'password': password})

    def login(self, email, password, remember_me=False):
        """登入成功後 token 會留在 client 上,之後的 request 自動帶"""
        body = self._request('POST', '/api/login', {
            'email': email,
            'password': password,
            'rememberMe': remember_me
        })
        self.token = body['token']
        return body

    def logout(self):
        self.token = None

    # ============================================
    # 使用者 / 偏好設定
    # ============================================

    def get_profile(self):
        return self._request('GET', '/api/profile')

    def get_preferences(self):
        return self._request('GET', '/api/preferences')

    def update_preferences(self, **preferences):
        return self._request('PUT', '/api/preferences', preferences)

    def list_users(self):
        return self._request('GET', '/api/users')

    # ============================================
    # 專案
    # ============================================

    def list_projects(self):
        return self._request('GET', '/api/projects')

    def create_project(self, name, description=None, status=None):
        payload = {'name': name}
        if description is not None:
            payload['description'] = description
        if status is not None:
            payload['status'] = status
        return self._request('POST', '/api/projects', payload)

    def reorder_projects(self, project_ids):
        return self._request('PUT', '/api/projects/order', {'projectOrder': list(project_ids)})

    def update_project(self, project_id, **fields):
        return self._request('PUT', f'/api/projects/{project_id}', fields)

    def delete_project(self, project_id):
        return self._request('DELETE', f'/api/projects/{project_id}')

    # ============================================
    # Stories
    # ============================================

    def list_stories(self, project_id):
        return self._request('GET', f'/api/projects/{project_id}/stories')

    def create_story(self, project_id, title, **fields):
        payload = dict(fields, title=title)
        return self._request('POST', f'/api/projects/{project_id}/stories', payload)

    def get_story(self, story_id):
        return self._request('GET', f'/api/stories/{story_id}')

    def update_story(self, story_id, **fields):
        return self._request('PUT', f'/api/stories/{story_id}', fields)

    def delete_story(self, story_id):
        return self._request('DELETE', f'/api/stories/{story_id}')

    def get_story_history(self, story_id):
        return self._request('GET', f'/api/stories/{story_id}/history')

    # ============================================
    # 留言
    # ============================================

    def add_comment(self, story_id, content):
        return self._request('POST', f'/api/stories/{story_id}/comments', {'content': content})

    def update_comment(self, comment_id, content):
        return self._request('PUT', f'/api/comments/{comment_id}', {'content': content})

    def delete_comment(self, comment_id):
        return self._request('DELETE', f'/api/comments/{comment_id}')

    def health(self):
        return self._request('GET', '/health')
