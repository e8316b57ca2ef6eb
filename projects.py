from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from marshmallow import fields, validate
from models import db, Project, PROJECT_STATUSES, isoformat_or_none
from auth import get_caller
from validation import (
    BaseSchema, PartialUpdateSchema, CoercedChoice,
    validate_request_data, has_recognized_fields
)
from errors import (
    error_response, validation_failed, json_body_required, not_found,
    AUTHORIZATION_REQUIRED, FORBIDDEN, NO_VALID_FIELDS, VALIDATION_ERROR, SERVER_ERROR
)
import logging

projects_bp = Blueprint('projects', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

class CreateProjectSchema(BaseSchema):
    """建立專案驗證"""
    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255, error='Project name is required'),
        error_messages={
            'required': 'Project name is required',
            'null': 'Project name is required'
        }
    )
    description = fields.Str(allow_none=True, validate=validate.Length(max=5000))
    status = CoercedChoice(PROJECT_STATUSES, fallback='in-progress', load_default='in-progress')


class UpdateProjectSchema(PartialUpdateSchema):
    """更新專案驗證 (只有 name / status / archived 可以改)"""
    name = fields.Str(validate=validate.Length(min=1, max=255, error='Project name cannot be empty'))
    status = CoercedChoice(PROJECT_STATUSES)
    archived = fields.Bool()


# ============================================
# 輔助函數
# ============================================

def check_project_access(project_id, user_id):
    """
    取得屬於該使用者的專案

    不存在和不屬於自己都回傳 None,呼叫端一律回 404

    Returns:
        Project|None
    """
    return Project.query.filter_by(id=project_id, user_id=user_id).first()


def serialize_project(project):
    return {
        'id': project.id,
        'name': project.name,
        'description': project.description,
        'status': project.status,
        'archived': bool(project.archived),
        'display_order': project.display_order,
        'created_at': isoformat_or_none(project.created_at),
        'updated_at': isoformat_or_none(project.updated_at),
        'lastUpdated': isoformat_or_none(project.updated_at)
    }


def _authentication_required():
    return error_response(401, AUTHORIZATION_REQUIRED, 'Authentication required')


# ============================================
# 查詢我的所有專案
# ============================================

@projects_bp.route('', methods=['GET'])
@jwt_required()
def get_my_projects():
    """
    查詢我擁有的所有專案

    依 display_order 由小到大,同順序時最近更新的在前;
    封存的專案也會回傳,由前端決定要不要顯示
    """
    caller = get_caller()
    if not caller:
        return _authentication_required()

    try:
        projects = Project.query.filter_by(user_id=caller.id).order_by(
            Project.display_order.asc(),
            Project.updated_at.desc(),
            Project.id.desc()
        ).all()

        return jsonify([serialize_project(p) for p in projects]), 200

    except Exception as e:
        logger.error(f"Error fetching projects: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Failed to fetch projects')


# ============================================
# 建立專案
# ============================================

@projects_bp.route('', methods=['POST'])
@jwt_required()
def create_project():
    """
    建立新專案

    status 不合法時直接用 in-progress,不回錯誤
    """
    caller = get_caller()
    if not caller:
        return _authentication_required()

    data = request.get_json(silent=True)
    if not data:
        return json_body_required()

    is_valid, result = validate_request_data(CreateProjectSchema, data)
    if not is_valid:
        return validation_failed(result, message='Project name is required')

    project = Project(
        name=result['name'],
        description=result.get('description') or None,
        status=result['status'],
        user_id=caller.id
    )

    try:
        db.session.add(project)
        db.session.commit()

        logger.info(f"Project created: {project.name} by user {caller.email}")

        return jsonify(serialize_project(project)), 201

    except Exception as e:
        db.session.rollback()
        logger.error(f"Project creation error: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Project creation failed due to server error')


# ============================================
# 調整專案順序 (拖拉排序)
# ============================================

@projects_bp.route('/order', methods=['PUT'])
@jwt_required()
def update_project_order():
    """
    依照傳進來的 id 順序設定 display_order = index

    所有 id 都必須屬於自己,否則整批拒絕 (403);
    所有更新在同一個 transaction 裡完成
    """
    caller = get_caller()
    if not caller:
        return _authentication_required()

    data = request.get_json(silent=True) or {}
    project_order = data.get('projectOrder')

    if not isinstance(project_order, list) or not all(
        isinstance(pid, int) and not isinstance(pid, bool) for pid in project_order
    ):
        return error_response(
            400, VALIDATION_ERROR, 'Project order must be an array of project IDs'
        )

    owned = {
        p.id: p for p in Project.query.filter_by(user_id=caller.id).all()
    }

    if not all(pid in owned for pid in project_order):
        logger.warning(f"Project reorder rejected for user {caller.email}: foreign project id")
        return error_response(403, FORBIDDEN, 'Unauthorized access to one or more projects')

    try:
        for index, project_id in enumerate(project_order):
            owned[project_id].display_order = index

        db.session.commit()

        logger.info(f"Project order updated by user {caller.email}: {project_order}")

        return jsonify({'message': 'Project order updated successfully'}), 200

    except Exception as e:
        db.session.rollback()
        logger.error(f"Project reorder error: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Project order update failed due to server error')


# ============================================
# 更新專案
# ============================================

@projects_bp.route('/<int:project_id>', methods=['PUT'])
@jwt_required()
def update_project(project_id):
    """
    更新專案 (name / status / archived)

    status 不合法時忽略該欄位;完全沒有可辨識的欄位才回 400
    """
    caller = get_caller()
    if not caller:
        return _authentication_required()

    project = check_project_access(project_id, caller.id)
    if not project:
        return not_found('Project not found or unauthorized')

    data = request.get_json(silent=True)
    if data is None:
        return json_body_required()

    if not has_recognized_fields(UpdateProjectSchema, data):
        return error_response(400, NO_VALID_FIELDS, 'No valid fields to update')

    is_valid, result = validate_request_data(UpdateProjectSchema, data)
    if not is_valid:
        return validation_failed(result)

    # 記錄變更
    changes = {}

    for field in ['name', 'status', 'archived']:
        if field in result:
            old_value = getattr(project, field)
            new_value = result[field]
            if old_value != new_value:
                changes[field] = {'old': old_value, 'new': new_value}
                setattr(project, field, new_value)

    if not changes:
        return jsonify(serialize_project(project)), 200

    try:
        db.session.commit()

        logger.info(f"Project {project_id} updated by user {caller.email}: {changes}")

        return jsonify(serialize_project(project)), 200

    except Exception as e:
        db.session.rollback()
        logger.error(f"Project update error: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Project update failed due to server error')


# ============================================
# 刪除專案
# ============================================

@projects_bp.route('/<int:project_id>', methods=['DELETE'])
@jwt_required()
def delete_project(project_id):
    """刪除專案,stories / comments 由資料庫 CASCADE 一起刪掉"""
    caller = get_caller()
    if not caller:
        return _authentication_required()

    project = check_project_access(project_id, caller.id)
    if not project:
        return not_found('Project not found or unauthorized')

    try:
        project_name = project.name

        db.session.delete(project)
        db.session.commit()

        logger.info(f"Project deleted: {project_name} by user {caller.email}")

        return jsonify({'message': 'Project deleted successfully'}), 200

    except Exception as e:
        db.session.rollback()
        logger.error(f"Project deletion error: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Project deletion failed due to server error')
