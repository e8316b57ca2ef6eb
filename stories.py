from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy import func
from sqlalchemy.orm import joinedload
from marshmallow import fields, validate
from models import (
    db, Story, Project, Comment, StoryVersion, User,
    STORY_STATUSES, STORY_PRIORITIES, isoformat_or_none
)
from auth import get_caller
from projects import check_project_access
from validation import (
    BaseSchema, PartialUpdateSchema, CoercedChoice,
    validate_request_data, has_recognized_fields
)
from errors import (
    error_response, validation_failed, json_body_required, not_found,
    AUTHORIZATION_REQUIRED, NO_VALID_FIELDS, SERVER_ERROR
)
import logging

stories_bp = Blueprint('stories', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

class CreateStorySchema(BaseSchema):
    """建立 story 驗證"""
    title = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255, error='Story title is required'),
        error_messages={
            'required': 'Story title is required',
            'null': 'Story title is required'
        }
    )
    description = fields.Str(allow_none=True)
    connextra_format = fields.Str(data_key='connextraFormat', allow_none=True)
    tags = fields.List(fields.Str(), allow_none=True)
    status = CoercedChoice(STORY_STATUSES, fallback='todo', load_default='todo')
    priority = CoercedChoice(STORY_PRIORITIES, fallback='medium', load_default='medium')


class UpdateStorySchema(PartialUpdateSchema):
    """更新 story 驗證,status / priority 不合法時忽略"""
    title = fields.Str(validate=validate.Length(min=1, max=255, error='Story title cannot be empty'))
    description = fields.Str(allow_none=True)
    connextra_format = fields.Str(data_key='connextraFormat', allow_none=True)
    tags = fields.List(fields.Str(), allow_none=True)
    status = CoercedChoice(STORY_STATUSES)
    priority = CoercedChoice(STORY_PRIORITIES)
    assignee_id = fields.Int(allow_none=True, strict=True)


# ============================================
# 輔助函數
# ============================================

def check_story_access(story_id, user_id):
    """
    透過 Story -> Project -> owner 確認 story 屬於該使用者

    Returns:
        Story|None
    """
    return Story.query.join(Project, Story.project_id == Project.id).filter(
        Story.id == story_id,
        Project.user_id == user_id
    ).first()


def serialize_story(story):
    return {
        'id': story.id,
        'project_id': story.project_id,
        'title': story.title,
        'description': story.description,
        'connextraFormat': story.connextra_format,
        'tags': story.tag_list,
        'status': story.status,
        'priority': story.priority,
        'assignee_id': story.assignee_id,
        'created_at': isoformat_or_none(story.created_at),
        'updated_at': isoformat_or_none(story.updated_at)
    }


def serialize_story_detail(story):
    """story 加上 assignee 和依時間排序的留言"""
    from comments import serialize_comment

    comments = Comment.query.filter_by(story_id=story.id).options(
        joinedload(Comment.author)
    ).order_by(Comment.created_at.asc(), Comment.id.asc()).all()

    detail = serialize_story(story)
    detail['assignee'] = {
        'id': story.assignee.id,
        'email': story.assignee.email
    } if story.assignee_id and story.assignee else None
    detail['comments'] = [serialize_comment(c) for c in comments]
    return detail


def record_version(story, user_id):
    """把 story 目前的內容存成新的版本"""
    latest = db.session.query(func.max(StoryVersion.version)).filter(
        StoryVersion.story_id == story.id
    ).scalar() or 0

    version = StoryVersion(
        story_id=story.id,
        version=latest + 1,
        title=story.title,
        description=story.description,
        status=story.status,
        changed_by_id=user_id
    )
    db.session.add(version)
    return version


def _authentication_required():
    return error_response(401, AUTHORIZATION_REQUIRED, 'Authentication required')


# ============================================
# 查詢專案的所有 story
# ============================================

@stories_bp.route('/projects/<int:project_id>/stories', methods=['GET'])
@jwt_required()
def get_project_stories(project_id):
    caller = get_caller()
    if not caller:
        return _authentication_required()

    project = check_project_access(project_id, caller.id)
    if not project:
        return not_found('Project not found or unauthorized')

    try:
        stories = Story.query.filter_by(project_id=project_id).order_by(Story.id.asc()).all()
        return jsonify([serialize_story(s) for s in stories]), 200

    except Exception as e:
        logger.error(f"Error fetching stories: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Failed to fetch stories')


# ============================================
# 建立 story
# ============================================

@stories_bp.route('/projects/<int:project_id>/stories', methods=['POST'])
@jwt_required()
def create_story(project_id):
    """
    在專案中建立 story

    tags 照原本順序存,重複的也保留
    """
    caller = get_caller()
    if not caller:
        return _authentication_required()

    project = check_project_access(project_id, caller.id)
    if not project:
        return not_found('Project not found or unauthorized')

    data = request.get_json(silent=True)
    if not data:
        return json_body_required()

    is_valid, result = validate_request_data(CreateStorySchema, data)
    if not is_valid:
        return validation_failed(result, message='Story title is required')

    story = Story(
        title=result['title'],
        description=result.get('description') or '',
        connextra_format=result.get('connextra_format') or '',
        status=result['status'],
        priority=result['priority'],
        project_id=project_id
    )
    story.tag_list = result.get('tags')

    try:
        db.session.add(story)
        db.session.flush()  # 取得 story.id

        record_version(story, caller.id)

        db.session.commit()

        logger.info(f"Story created: {story.title} in project {project_id} by user {caller.email}")

        return jsonify(serialize_story(story)), 201

    except Exception as e:
        db.session.rollback()
        logger.error(f"Story creation error: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Story creation failed due to server error')


# ============================================
# 查詢單一 story
# ============================================

@stories_bp.route('/stories/<int:story_id>', methods=['GET'])
@jwt_required()
def get_story(story_id):
    caller = get_caller()
    if not caller:
        return _authentication_required()

    story = check_story_access(story_id, caller.id)
    if not story:
        return not_found('Story not found or unauthorized')

    try:
        return jsonify(serialize_story_detail(story)), 200

    except Exception as e:
        logger.error(f"Error fetching story {story_id}: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Failed to fetch story details')


# ============================================
# 更新 story
# ============================================

@stories_bp.route('/stories/<int:story_id>', methods=['PUT'])
@jwt_required()
def update_story(story_id):
    """
    更新 story (看板拖拉也是打這支改 status)

    assignee_id 傳 null 代表取消指派;每次有變更都會多一個版本紀錄
    """
    caller = get_caller()
    if not caller:
        return _authentication_required()

    story = check_story_access(story_id, caller.id)
    if not story:
        return not_found('Story not found or unauthorized')

    data = request.get_json(silent=True)
    if data is None:
        return json_body_required()

    if not has_recognized_fields(UpdateStorySchema, data):
        return error_response(400, NO_VALID_FIELDS, 'No valid fields to update')

    is_valid, result = validate_request_data(UpdateStorySchema, data)
    if not is_valid:
        return validation_failed(result)

    # assignee 0 / null 都是取消指派
    if 'assignee_id' in result:
        result['assignee_id'] = result['assignee_id'] or None
        if result['assignee_id'] and not db.session.get(User, result['assignee_id']):
            return validation_failed(
                {'assignee_id': ['Assignee does not exist']},
                message='Assignee does not exist'
            )

    # 記錄變更
    changes = {}

    for field in ['title', 'description', 'connextra_format', 'status', 'priority', 'assignee_id']:
        if field in result:
            old_value = getattr(story, field)
            new_value = result[field]
            if old_value != new_value:
                changes[field] = {'old': old_value, 'new': new_value}
                setattr(story, field, new_value)

    # 特殊處理: tags 存成 JSON 文字
    if 'tags' in result:
        new_tags = result['tags'] or []
        if story.tag_list != new_tags:
            changes['tags'] = {'old': story.tag_list, 'new': new_tags}
            story.tag_list = new_tags

    try:
        if changes:
            db.session.flush()
            record_version(story, caller.id)
            db.session.commit()
            logger.info(f"Story {story_id} updated by user {caller.email}: {sorted(changes)}")

        # 重新載入 story 取得 assignee 和留言
        db.session.refresh(story)

        return jsonify(serialize_story_detail(story)), 200

    except Exception as e:
        db.session.rollback()
        logger.error(f"Story update error: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Story update failed due to server error')


# ============================================
# 刪除 story
# ============================================

@stories_bp.route('/stories/<int:story_id>', methods=['DELETE'])
@jwt_required()
def delete_story(story_id):
    caller = get_caller()
    if not caller:
        return _authentication_required()

    story = check_story_access(story_id, caller.id)
    if not story:
        return not_found('Story not found or unauthorized')

    try:
        story_title = story.title

        db.session.delete(story)
        db.session.commit()

        logger.info(f"Story deleted: {story_title} by user {caller.email}")

        return jsonify({'message': 'Story deleted successfully'}), 200

    except Exception as e:
        db.session.rollback()
        logger.error(f"Story deletion error: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Story deletion failed due to server error')


# ============================================
# story 修改歷史
# ============================================

@stories_bp.route('/stories/<int:story_id>/history', methods=['GET'])
@jwt_required()
def get_story_history(story_id):
    """版本紀錄,新的在前"""
    caller = get_caller()
    if not caller:
        return _authentication_required()

    story = check_story_access(story_id, caller.id)
    if not story:
        return not_found('Story not found or unauthorized')

    try:
        versions = StoryVersion.query.filter_by(story_id=story_id).options(
            joinedload(StoryVersion.changed_by)
        ).order_by(StoryVersion.version.desc()).all()

        return jsonify([{
            'id': v.id,
            'version': v.version,
            'title': v.title,
            'description': v.description,
            'status': v.status,
            'changed_at': isoformat_or_none(v.changed_at),
            'changed_by': v.changed_by.email if v.changed_by else None
        } for v in versions]), 200

    except Exception as e:
        logger.error(f"Error fetching story history {story_id}: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Failed to fetch story history')
