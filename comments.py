from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from marshmallow import fields, validate
from models import db, Comment, isoformat_or_none
from auth import get_caller
from stories import check_story_access
from validation import BaseSchema, validate_request_data
from errors import (
    error_response, validation_failed, json_body_required, not_found,
    AUTHORIZATION_REQUIRED, FORBIDDEN, SERVER_ERROR
)
import logging

comments_bp = Blueprint('comments', __name__)
logger = logging.getLogger(__name__)


class CommentSchema(BaseSchema):
    """留言驗證"""
    content = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=5000, error='Comment content is required'),
        error_messages={
            'required': 'Comment content is required',
            'null': 'Comment content is required'
        }
    )


def serialize_comment(comment):
    return {
        'id': comment.id,
        'content': comment.content,
        'createdAt': isoformat_or_none(comment.created_at),
        'updatedAt': isoformat_or_none(comment.updated_at),
        'user': {
            'id': comment.author.id,
            'email': comment.author.email
        } if comment.author else None
    }


def _load_own_comment(comment_id, caller):
    """
    取得留言並確認是作者本人

    Returns:
        tuple: (comment, error_response)
    """
    comment = db.session.get(Comment, comment_id)
    if not comment:
        return None, not_found('Comment not found')

    if comment.user_id != caller.id:
        logger.warning(f"User {caller.email} tried to modify comment {comment_id} of another user")
        return None, error_response(403, FORBIDDEN, 'Only the author can modify this comment')

    return comment, None


# ============================================
# 新增留言
# ============================================

@comments_bp.route('/stories/<int:story_id>/comments', methods=['POST'])
@jwt_required()
def create_comment(story_id):
    caller = get_caller()
    if not caller:
        return error_response(401, AUTHORIZATION_REQUIRED, 'Authentication required')

    story = check_story_access(story_id, caller.id)
    if not story:
        return not_found('Story not found or unauthorized')

    data = request.get_json(silent=True)
    if not data:
        return json_body_required()

    is_valid, result = validate_request_data(CommentSchema, data)
    if not is_valid:
        return validation_failed(result, message='Comment content is required')

    try:
        comment = Comment(
            story_id=story_id,
            user_id=caller.id,
            content=result['content']
        )
        db.session.add(comment)
        db.session.commit()

        logger.info(f"Comment added to story {story_id} by user {caller.email}")

        return jsonify(serialize_comment(comment)), 201

    except Exception as e:
        db.session.rollback()
        logger.error(f"Comment creation error: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Failed to add comment due to server error')


# ============================================
# 修改 / 刪除留言 (只有作者可以)
# ============================================

@comments_bp.route('/comments/<int:comment_id>', methods=['PUT'])
@jwt_required()
def update_comment(comment_id):
    caller = get_caller()
    if not caller:
        return error_response(401, AUTHORIZATION_REQUIRED, 'Authentication required')

    comment, error = _load_own_comment(comment_id, caller)
    if error:
        return error

    data = request.get_json(silent=True)
    if not data:
        return json_body_required()

    is_valid, result = validate_request_data(CommentSchema, data)
    if not is_valid:
        return validation_failed(result, message='Comment content is required')

    try:
        comment.content = result['content']
        db.session.commit()

        logger.info(f"Comment {comment_id} updated by user {caller.email}")

        return jsonify(serialize_comment(comment)), 200

    except Exception as e:
        db.session.rollback()
        logger.error(f"Comment update error: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Failed to update comment due to server error')


@comments_bp.route('/comments/<int:comment_id>', methods=['DELETE'])
@jwt_required()
def delete_comment(comment_id):
    caller = get_caller()
    if not caller:
        return error_response(401, AUTHORIZATION_REQUIRED, 'Authentication required')

    comment, error = _load_own_comment(comment_id, caller)
    if error:
        return error

    try:
        db.session.delete(comment)
        db.session.commit()

        logger.info(f"Comment {comment_id} deleted by user {caller.email}")

        return jsonify({'message': 'Comment deleted successfully'}), 200

    except Exception as e:
        db.session.rollback()
        logger.error(f"Comment deletion error: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Failed to delete comment due to server error')
