from collections import namedtuple
import json
import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_SESSION_PATH = os.path.join(os.path.expanduser('~'), '.story_board', 'session.json')

# persistent=True 代表「記住我」,會寫到磁碟
Session = namedtuple('Session', ['token', 'user', 'persistent'])


class SessionStore:
    """
    登入狀態的保存

    - 記住我: 寫成 JSON 檔,下次啟動還在
    - 沒勾記住我: 只放在記憶體,process 結束就消失
    記憶體裡的 session 優先
    """

    def __init__(self, path=DEFAULT_SESSION_PATH):
        self.path = path
        self._memory = None

    def load(self):
        if self._memory is not None:
            return self._memory

        if not os.path.exists(self.path):
            return None

        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read saved session from {self.path}: {str(e)}")
            return None

        if not isinstance(data, dict) or not data.get('token'):
            return None

        self._memory = Session(token=data['token'], user=data.get('user'), persistent=True)
        return self._memory

    def save(self, session):
        self._memory = session

        if not session.persistent:
            # 之前記住的登入不能留著
            self._remove_file()
            return

        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump({'token': session.token, 'user': session.user}, f)

        logger.info(f"Session saved to {self.path}")

    def clear(self):
        self._memory = None
        self._remove_file()

    def _remove_file(self):
        if os.path.exists(self.path):
            os.remove(self.path)
