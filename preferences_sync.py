from api_client import ApiError
from models import LANGUAGES
from validation import coerce_choice
import logging

logger = logging.getLogger(__name__)


class PreferencesSync:
    """
    dark mode / 語言設定

    本地立刻生效;有登入時在背景存到 server,
    存失敗只記 log,不丟錯誤也不重試
    """

    def __init__(self, client, session_store, dark_mode=False, language='en'):
        self.client = client
        self.session_store = session_store
        self.dark_mode = bool(dark_mode)
        self.language = coerce_choice(language, LANGUAGES, 'en')

    def as_dict(self):
        return {'darkMode': self.dark_mode, 'language': self.language}

    def _session(self):
        session = self.session_store.load()
        if session:
            self.client.token = session.token
        return session

    # ============================================
    # 本地變更
    # ============================================

    def toggle_dark_mode(self):
        return self.set_dark_mode(not self.dark_mode)

    def set_dark_mode(self, enabled):
        self.dark_mode = bool(enabled)
        self.save_to_server()
        return self.dark_mode

    def set_language(self, language):
        self.language = coerce_choice(language, LANGUAGES, 'en')
        self.save_to_server()
        return self.language

    # ============================================
    # 和 server 同步
    # ============================================

    def save_to_server(self):
        """best-effort,回傳是否成功"""
        if not self._session():
            return False

        try:
            self.client.update_preferences(**self.as_dict())
        except ApiError as e:
            logger.warning(f"Could not save preferences to server: {e.message}")
            return False

        logger.debug('Preferences saved to server')
        return True

    def load_from_server(self):
        """
        登入後採用 server 上的設定

        token 失效 (401 / 403) 時清掉保存的登入狀態
        """
        if not self._session():
            return False

        try:
            preferences = self.client.get_preferences()
        except ApiError as e:
            if e.is_auth_error:
                logger.info('Saved session is no longer valid, clearing it')
                self.session_store.clear()
                self.client.logout()
            else:
                logger.warning(f"Could not load preferences from server: {e.message}")
            return False

        if not isinstance(preferences, dict):
            return False

        if 'darkMode' in preferences:
            self.dark_mode = bool(preferences['darkMode'])
        if 'language' in preferences:
            self.language = coerce_choice(preferences['language'], LANGUAGES, self.language)

        return True
