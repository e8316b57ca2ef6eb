"""
Tests for optimistic updates on the project list and story board
"""
import pytest
from unittest.mock import Mock

from api_client import ApiError
from board_state import OptimisticList, ProjectBoard, StoryBoard, COMMITTED, ROLLED_BACK, PENDING


def _projects(*ids):
    return [{'id': i, 'name': f'P{i}', 'archived': False} for i in ids]


@pytest.fixture
def api():
    return Mock()


class TestOptimisticList:
    def test_apply_commits_on_success(self):
        items = OptimisticList([1, 2, 3])
        request = Mock()

        assert items.apply(lambda xs: xs[::-1], request) is True

        request.assert_called_once_with([3, 2, 1])
        assert items.items == [3, 2, 1]
        assert items.confirmed == [3, 2, 1]
        assert items.state == COMMITTED

    def test_apply_rolls_back_on_failure(self):
        items = OptimisticList([1, 2, 3])
        request = Mock(side_effect=ApiError(500, 'internal_server_error', 'Server error'))

        assert items.apply(lambda xs: xs[::-1], request) is False

        assert items.items == [1, 2, 3]
        assert items.state == ROLLED_BACK
        assert items.error == 'Server error'

    def test_stale_response_is_discarded(self):
        items = OptimisticList(['a'])
        first = items.begin(lambda xs: xs + ['b'])
        second = items.begin(lambda xs: xs + ['c'])

        assert items.commit(second) is True
        assert items.commit(first) is False
        assert items.rollback(first, 'late failure') is False

        assert items.items == ['a', 'b', 'c']
        assert items.confirmed == ['a', 'b', 'c']
        assert items.error is None

    def test_state_stays_pending_until_all_resolved(self):
        items = OptimisticList([])
        first = items.begin(lambda xs: xs + [1])
        items.begin(lambda xs: xs + [2])

        items.commit(first)

        assert items.state == PENDING
        assert items.confirmed == [1]

    def test_rollback_returns_to_last_confirmed(self):
        items = OptimisticList([])
        first = items.begin(lambda xs: xs + [1])
        second = items.begin(lambda xs: xs + [2])

        items.commit(first)
        items.rollback(second, 'rejected')

        assert items.items == [1]

    def test_stale_load_does_not_overwrite_newer_change(self):
        items = OptimisticList([1, 2])

        def slow_fetch():
            # 載入途中另一個變更已經被確認
            items.apply(lambda xs: [2, 1], Mock())
            return [1, 2]

        assert items.load(slow_fetch) is False
        assert items.items == [2, 1]


class TestProjectBoard:
    def test_refresh_loads_projects(self, api):
        api.list_projects.return_value = _projects(1, 2)
        board = ProjectBoard(api)

        assert board.refresh() is True
        assert [p['id'] for p in board.projects.items] == [1, 2]

    def test_move_project_splices_and_sends_order(self, api):
        api.list_projects.return_value = _projects(1, 2, 3, 4)
        board = ProjectBoard(api)
        board.refresh()

        assert board.move_project(4, 2) is True

        assert [p['id'] for p in board.projects.items] == [1, 4, 2, 3]
        api.reorder_projects.assert_called_once_with([1, 4, 2, 3])

    def test_failed_move_reverts_to_confirmed_order(self, api):
        api.list_projects.return_value = _projects(1, 2, 3)
        api.reorder_projects.side_effect = ApiError(403, 'forbidden', 'Unauthorized access to one or more projects')
        board = ProjectBoard(api)
        board.refresh()

        assert board.move_project(1, 3) is False

        assert [p['id'] for p in board.projects.items] == [1, 2, 3]
        assert board.error == 'Unauthorized access to one or more projects'

    def test_drop_on_itself_does_nothing(self, api):
        api.list_projects.return_value = _projects(1, 2)
        board = ProjectBoard(api)
        board.refresh()

        assert board.move_project(1, 1) is False
        api.reorder_projects.assert_not_called()

    def test_archived_projects_are_hidden(self, api):
        api.list_projects.return_value = _projects(1, 2)
        api.list_projects.return_value[1]['archived'] = True
        board = ProjectBoard(api)
        board.refresh()

        assert [p['id'] for p in board.visible_projects()] == [1]

    def test_failed_refresh_keeps_items(self, api):
        api.list_projects.side_effect = [_projects(1), ApiError(None, 'network_error', 'Could not reach the server')]
        board = ProjectBoard(api)
        board.refresh()

        assert board.refresh() is False
        assert [p['id'] for p in board.projects.items] == [1]
        assert board.error == 'Could not reach the server'


class TestStoryBoard:
    def _board(self, api):
        api.list_stories.return_value = [
            {'id': 1, 'title': 'A', 'status': 'todo'},
            {'id': 2, 'title': 'B', 'status': 'done'},
        ]
        board = StoryBoard(api, project_id=7)
        board.refresh()
        return board

    def test_columns(self, api):
        board = self._board(api)
        columns = board.columns()

        api.list_stories.assert_called_once_with(7)
        assert [s['id'] for s in columns['todo']] == [1]
        assert columns['in-progress'] == []
        assert [s['id'] for s in columns['done']] == [2]

    def test_move_story_updates_status(self, api):
        board = self._board(api)

        assert board.move_story(1, 'in-progress') is True

        api.update_story.assert_called_once_with(1, status='in-progress')
        assert [s['id'] for s in board.columns()['in-progress']] == [1]

    def test_move_story_keeps_server_fields(self, api):
        board = self._board(api)
        api.update_story.return_value = {
            'id': 1, 'title': 'A (trimmed)', 'status': 'in-progress',
            'updated_at': '2026-10-19T10:00:00', 'comments': []
        }

        assert board.move_story(1, 'in-progress') is True

        moved = board.columns()['in-progress'][0]
        assert moved['title'] == 'A (trimmed)'
        assert moved['updated_at'] == '2026-10-19T10:00:00'
        assert board.stories.confirmed[0] == moved
        assert board.stories.confirmed[1] == {'id': 2, 'title': 'B', 'status': 'done'}

    def test_failed_move_reverts_column(self, api):
        board = self._board(api)
        api.update_story.side_effect = ApiError(404, 'not_found', 'Story not found or unauthorized')

        assert board.move_story(1, 'done') is False

        assert [s['id'] for s in board.columns()['todo']] == [1]
        assert board.error == 'Story not found or unauthorized'

    def test_unknown_column_is_ignored(self, api):
        board = self._board(api)

        assert board.move_story(1, 'blocked') is False
        api.update_story.assert_not_called()
