from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from marshmallow import fields
from models import db, User, LANGUAGES, isoformat_or_none
from auth import get_caller, get_current_user
from validation import PartialUpdateSchema, CoercedChoice, validate_request_data
from errors import (
    error_response, validation_failed, json_body_required, not_found,
    AUTHORIZATION_REQUIRED, SERVER_ERROR
)
import logging

users_bp = Blueprint('users', __name__)
logger = logging.getLogger(__name__)


class PreferencesSchema(PartialUpdateSchema):
    """偏好設定驗證,不合法的語言換成 en"""
    darkMode = fields.Bool()
    language = CoercedChoice(LANGUAGES, fallback='en')


# ============================================
# 個人資料
# ============================================

@users_bp.route('/profile', methods=['GET'])
@jwt_required()
def get_profile():
    """取得當前登入使用者的資訊"""
    user = get_current_user()

    if not user:
        logger.warning("Token valid but user not found")
        return not_found('User not found')

    return jsonify({
        'id': user.id,
        'email': user.email,
        'created_at': isoformat_or_none(user.created_at)
    }), 200


# ============================================
# 偏好設定 (dark mode / language)
# ============================================

@users_bp.route('/preferences', methods=['GET'])
@jwt_required()
def get_preferences():
    """沒存過偏好設定時回傳空物件"""
    user = get_current_user()

    if not user:
        return not_found('User not found')

    return jsonify(user.preference_dict), 200


@users_bp.route('/preferences', methods=['PUT'])
@jwt_required()
def update_preferences():
    """
    更新偏好設定

    只覆蓋有送來的欄位,沒送的保留原本的值
    """
    user = get_current_user()
    if not user:
        return not_found('User not found')

    data = request.get_json(silent=True)
    if data is None:
        return json_body_required()

    is_valid, result = validate_request_data(PreferencesSchema, data)
    if not is_valid:
        return validation_failed(result)

    preferences = user.preference_dict
    preferences.update(result)
    preferences.setdefault('darkMode', False)
    preferences.setdefault('language', 'en')

    try:
        user.preference_dict = preferences
        db.session.commit()

        logger.info(f"Preferences updated for user {user.email}")

        return jsonify({
            'message': 'Preferences updated successfully',
            'preferences': preferences
        }), 200

    except Exception as e:
        db.session.rollback()
        logger.error(f"Preferences update error for {user.email}: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Server error')


# ============================================
# 使用者列表 (指派 story 用)
# ============================================

@users_bp.route('/users', methods=['GET'])
@jwt_required()
def list_users():
    caller = get_caller()
    if not caller:
        return error_response(401, AUTHORIZATION_REQUIRED, 'Authentication required')

    try:
        users = User.query.order_by(User.email.asc()).all()
        return jsonify([{'id': u.id, 'email': u.email} for u in users]), 200

    except Exception as e:
        logger.error(f"Error fetching users: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Server error')
