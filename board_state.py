"""
看板的前端狀態 (optimistic update)

拖拉之後先改本地的列表,再打 API:
- 成功 -> 這個版本變成 server 確認過的狀態
- 失敗 -> 回到上一個 server 確認過的狀態,錯誤訊息放在 error

每個 request 都有遞增的序號,比最後一個已處理序號舊的回應直接丟掉
"""
from api_client import ApiError
from models import STORY_STATUSES
import logging

logger = logging.getLogger(__name__)

IDLE = 'idle'
PENDING = 'pending'
COMMITTED = 'committed'
ROLLED_BACK = 'rolled_back'


class OptimisticList:

    def __init__(self, items=None):
        self.items = list(items or [])
        self.confirmed = list(self.items)
        self.state = IDLE
        self.error = None
        self._sequence = 0
        self._resolved = 0
        self._pending = {}

    def next_sequence(self):
        self._sequence += 1
        return self._sequence

    def is_stale(self, sequence):
        return sequence < self._resolved

    # ============================================
    # 分段操作 (非同步送出時用)
    # ============================================

    def begin(self, mutate):
        """套用本地變更,回傳這次的序號"""
        sequence = self.next_sequence()
        self.items = list(mutate(list(self.items)))
        self._pending[sequence] = list(self.items)
        self.state = PENDING
        self.error = None
        return sequence

    def commit(self, sequence, items=None):
        """
        server 確認了某個序號

        items 有給 (重新載入) 時直接採用 server 的資料
        """
        snapshot = self._pending.pop(sequence, None)
        if self.is_stale(sequence):
            logger.debug(f"Discarding stale response #{sequence} (latest #{self._resolved})")
            return False

        self._resolved = sequence
        if items is not None:
            self.items = list(items)
            self.confirmed = list(items)
        else:
            self.confirmed = snapshot if snapshot is not None else list(self.items)

        self.state = PENDING if self._pending else COMMITTED
        return True

    def rollback(self, sequence, message):
        """server 拒絕了某個序號,回到最後確認的狀態"""
        self._pending.pop(sequence, None)
        if self.is_stale(sequence):
            logger.debug(f"Discarding stale failure #{sequence} (latest #{self._resolved})")
            return False

        self._resolved = sequence
        self.items = list(self.confirmed)
        self.state = ROLLED_BACK
        self.error = message
        return True

    # ============================================
    # 一次完成的操作
    # ============================================

    def apply(self, mutate, request, reconcile=None):
        """
        本地先改,再呼叫 request(items)

        reconcile(items, result) 有給時,用它把 server 回傳的資料併回清單

        Returns:
            bool: server 是否接受這次變更
        """
        sequence = self.begin(mutate)
        try:
            result = request(self.items)
        except ApiError as e:
            logger.error(f"Optimistic update #{sequence} rejected: {e.message}")
            self.rollback(sequence, e.message)
            return False
        if reconcile is not None:
            return self.commit(sequence, reconcile(list(self.items), result))
        return self.commit(sequence)

    def load(self, fetch):
        """重新從 server 載入;比這次更新的變更已經確認時,結果會被丟掉"""
        sequence = self.next_sequence()
        try:
            items = fetch()
        except ApiError as e:
            logger.error(f"Loading #{sequence} failed: {e.message}")
            if not self.is_stale(sequence):
                self.error = e.message
            return False
        return self.commit(sequence, items)


# ============================================
# 專案列表
# ============================================

class ProjectBoard:

    def __init__(self, client):
        self.client = client
        self.projects = OptimisticList()

    @property
    def error(self):
        return self.projects.error

    def refresh(self):
        return self.projects.load(self.client.list_projects)

    def visible_projects(self):
        """封存的專案不顯示"""
        return [p for p in self.projects.items if not p.get('archived')]

    def move_project(self, dragged_id, target_id):
        """把拖拉的專案插到目標專案的位置,然後送出新的順序"""
        if dragged_id == target_id:
            return False

        ids = [p['id'] for p in self.projects.items]
        if dragged_id not in ids or target_id not in ids:
            return False

        def splice(items):
            dragged_index = ids.index(dragged_id)
            target_index = ids.index(target_id)
            dragged = items.pop(dragged_index)
            items.insert(target_index, dragged)
            return items

        return self.projects.apply(
            splice,
            lambda items: self.client.reorder_projects([p['id'] for p in items])
        )


# ============================================
# Story 看板 (todo / in-progress / done)
# ============================================

class StoryBoard:

    def __init__(self, client, project_id):
        self.client = client
        self.project_id = project_id
        self.stories = OptimisticList()

    @property
    def error(self):
        return self.stories.error

    def refresh(self):
        return self.stories.load(lambda: self.client.list_stories(self.project_id))

    def columns(self):
        columns = {status: [] for status in STORY_STATUSES}
        for story in self.stories.items:
            columns.setdefault(story.get('status'), []).append(story)
        return columns

    def move_story(self, story_id, status):
        """把 story 拖到另一個欄位"""
        if status not in STORY_STATUSES:
            return False

        current = next((s for s in self.stories.items if s['id'] == story_id), None)
        if current is None or current.get('status') == status:
            return False

        def change_status(items):
            return [dict(s, status=status) if s['id'] == story_id else s for s in items]

        def merge_saved(items, saved):
            # server 正規化過的欄位 (updated_at 等) 蓋掉本地快照
            if not isinstance(saved, dict):
                return items
            return [
                dict(s, **saved) if s['id'] == story_id else s
                for s in items
            ]

        return self.stories.apply(
            change_status,
            lambda items: self.client.update_story(story_id, status=status),
            reconcile=merge_saved
        )
