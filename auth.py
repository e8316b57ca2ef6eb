from collections import namedtuple
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token, get_jwt_identity, get_jwt
from marshmallow import fields, validate, ValidationError
from sqlalchemy.exc import IntegrityError
from models import db, User
from extensions import bcrypt, limiter
from validation import BaseSchema, validate_request_data
from errors import (
    error_response, validation_failed, json_body_required,
    EMAIL_TAKEN, INVALID_CREDENTIALS, SERVER_ERROR
)
import logging

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

# token 解出來的呼叫者身份
Caller = namedtuple('Caller', ['id', 'email'])


# ============================================
# Input Validation Schemas (用 marshmallow)
# ============================================

def fits_bcrypt(password):
    """bcrypt 只吃 72 bytes,非 ASCII 字元會佔好幾個 byte"""
    if len(password.encode('utf-8')) > 72:
        raise ValidationError('Password must be at most 72 bytes')


class RegisterSchema(BaseSchema):
    """註冊輸入驗證"""
    email = fields.Email(required=True, error_messages={
        'required': 'Email is required',
        'invalid': 'Please enter a valid email address'
    })
    password = fields.Str(
        required=True,
        validate=[
            validate.Length(min=8, max=72, error='Password must be 8-72 characters'),
            fits_bcrypt
        ],
        error_messages={'required': 'Password is required'}
    )


class LoginSchema(BaseSchema):
    """登入輸入驗證"""
    email = fields.Str(required=True)
    password = fields.Str(required=True)
    rememberMe = fields.Bool(load_default=False)


# ============================================
# Helper Functions
# ============================================

def issue_token(user, remember_me=False):
    """
    簽發 JWT

    token 內容: sub = user id, email claim
    有效期限: 記住我 30 天,否則 1 小時
    """
    if remember_me:
        expires = current_app.config['JWT_REMEMBER_ME_EXPIRES']
    else:
        expires = current_app.config['JWT_ACCESS_TOKEN_EXPIRES']

    token = create_access_token(
        identity=str(user.id),
        additional_claims={'email': user.email},
        expires_delta=expires
    )
    return token, expires


def password_matches(user, password):
    """bcrypt 比對密碼 (constant-time),超過 72 bytes 的輸入視為不符"""
    try:
        return bcrypt.check_password_hash(user.password_hash, password)
    except ValueError:
        return False


# ============================================
# 註冊 API
# ============================================

@auth_bp.route('/register', methods=['POST'])
@limiter.limit("5 per hour")
def register():
    """
    使用者註冊

    email 是否重複以資料庫的 unique constraint 為準,
    前面的查詢只是為了早點回錯誤訊息
    """
    data = request.get_json(silent=True)

    if not data:
        return json_body_required()

    is_valid, result = validate_request_data(RegisterSchema, data)
    if not is_valid:
        return validation_failed(result)

    if User.query.filter_by(email=result['email']).first():
        return error_response(400, EMAIL_TAKEN, 'User already exists with this email')

    hashed_password = bcrypt.generate_password_hash(result['password']).decode('utf-8')

    user = User(
        email=result['email'],
        password_hash=hashed_password
    )

    try:
        db.session.add(user)
        db.session.commit()

        logger.info(f"New user registered: {user.email}")

        return jsonify({
            'message': 'User registered successfully',
            'user': {
                'id': user.id,
                'email': user.email
            }
        }), 201

    except IntegrityError:
        # 兩個 request 同時註冊同一個 email
        db.session.rollback()
        logger.warning(f"Duplicate registration rejected by database: {result['email']}")
        return error_response(400, EMAIL_TAKEN, 'User already exists with this email')

    except Exception as e:
        db.session.rollback()
        logger.error(f"Registration error for {result['email']}: {str(e)}", exc_info=True)
        return error_response(500, SERVER_ERROR, 'Server error during registration')


# ============================================
# 登入 API
# ============================================

@auth_bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    """
    使用者登入

    不區分是 email 錯還是 password 錯,避免帳號枚舉攻擊
    """
    data = request.get_json(silent=True)

    if not data:
        return json_body_required()

    is_valid, result = validate_request_data(LoginSchema, data)
    if not is_valid:
        return validation_failed(result)

    user = User.query.filter_by(email=result['email']).first()

    if not user or not password_matches(user, result['password']):
        logger.warning(f"Failed login attempt for email: {result['email']}")
        return error_response(400, INVALID_CREDENTIALS, 'Invalid credentials')

    token, expires = issue_token(user, remember_me=result['rememberMe'])

    logger.info(f"User logged in: {user.email} (remember_me={result['rememberMe']})")

    return jsonify({
        'token': token,
        'expires_in': int(expires.total_seconds()),
        'user': {
            'id': user.id,
            'email': user.email
        }
    }), 200


# ============================================
# 輔助函數 (供其他模組使用)
# ============================================

def get_caller():
    """
    取得當前 request 的呼叫者 (只看 token,不查資料庫)

    必須在 @jwt_required() 保護的 view 裡呼叫
    """
    try:
        user_id = get_jwt_identity()
        if not user_id:
            return None
        return Caller(id=int(user_id), email=get_jwt().get('email'))
    except (TypeError, ValueError) as e:
        logger.error(f"Malformed token identity: {str(e)}")
        return None


def get_current_user():
    """取得當前登入的使用者 (會查資料庫)"""
    caller = get_caller()
    if not caller:
        return None
    return db.session.get(User, caller.id)
