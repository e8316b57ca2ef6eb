
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine
from datetime import datetime
import json
import logging
import sqlite3

db = SQLAlchemy()
logger = logging.getLogger(__name__)

PROJECT_STATUSES = ('in-progress', 'completed', 'on-hold')
STORY_STATUSES = ('todo', 'in-progress', 'done')
STORY_PRIORITIES = ('low', 'medium', 'high')
LANGUAGES = ('en', 'et', 'ru', 'es')


@event.listens_for(Engine, 'connect')
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite 預設不檢查 foreign key,打開才會有 CASCADE / SET NULL"""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


def decode_json_blob(raw, default):
    """
    解析存成文字的 JSON 欄位 (tags / preferences)

    解析失敗或型別不對時回傳 default,不讓讀取流程壞掉
    """
    if raw is None or raw == '':
        return default
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Could not decode stored JSON blob: {raw[:50]!r}")
        return default
    if not isinstance(value, type(default)):
        return default
    return value


def isoformat_or_none(value):
    return value.isoformat() if value else None


# ============================================
# 1. User 模型
# ============================================
class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    # UI 偏好設定 (darkMode / language),JSON 文字
    preferences = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 關聯
    projects = db.relationship(
        'Project', backref='owner', lazy=True,
        cascade='all,delete', passive_deletes=True
    )
    comments = db.relationship(
        'Comment', backref='author', lazy=True,
        cascade='all,delete', passive_deletes=True
    )
    assigned_stories = db.relationship(
        'Story', foreign_keys='Story.assignee_id', backref='assignee',
        lazy=True, passive_deletes=True
    )

    @property
    def preference_dict(self):
        return decode_json_blob(self.preferences, {})

    @preference_dict.setter
    def preference_dict(self, value):
        self.preferences = json.dumps(value)


# ============================================
# 2. Project 模型
# ============================================
class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='in-progress')  # in-progress, completed, on-hold
    user_id = db.Column(
        db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False
    )
    archived = db.Column(db.Boolean, nullable=False, default=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 關聯
    stories = db.relationship(
        'Story', backref='project', lazy=True,
        cascade='all,delete', passive_deletes=True,
        order_by='Story.id'
    )

    # 索引
    __table_args__ = (
        db.Index('idx_project_owner_order', 'user_id', 'display_order'),
    )


# ============================================
# 3. Story 模型
# ============================================
class Story(db.Model):
    __tablename__ = 'stories'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    connextra_format = db.Column(db.Text, nullable=True)  # As a ... I want ... so that ...
    tags = db.Column(db.Text, nullable=True)  # JSON list,保留順序和重複
    status = db.Column(db.String(20), nullable=False, default='todo')  # todo, in-progress, done
    priority = db.Column(db.String(20), nullable=False, default='medium')  # low, medium, high

    # 關聯欄位
    assignee_id = db.Column(
        db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 關聯
    comments = db.relationship(
        'Comment', backref='story', lazy=True,
        cascade='all,delete', passive_deletes=True,
        order_by=lambda: [Comment.created_at, Comment.id]
    )
    versions = db.relationship(
        'StoryVersion', backref='story', lazy=True,
        cascade='all,delete', passive_deletes=True
    )

    __table_args__ = (
        db.Index('idx_story_project_status', 'project_id', 'status'),
    )

    @property
    def tag_list(self):
        return decode_json_blob(self.tags, [])

    @tag_list.setter
    def tag_list(self, value):
        self.tags = json.dumps(list(value)) if value is not None else None


# ============================================
# 4. Comment 模型
# ============================================
class Comment(db.Model):
    __tablename__ = 'comments'

    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.Text, nullable=False)
    story_id = db.Column(
        db.Integer, db.ForeignKey('stories.id', ondelete='CASCADE'), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False
    )
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ============================================
# 5. StoryVersion 模型 (故事的修改歷史)
# ============================================
class StoryVersion(db.Model):
    __tablename__ = 'story_versions'

    id = db.Column(db.Integer, primary_key=True)
    story_id = db.Column(
        db.Integer, db.ForeignKey('stories.id', ondelete='CASCADE'), nullable=False
    )
    version = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False)
    changed_by_id = db.Column(
        db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True
    )
    changed_at = db.Column(db.DateTime, default=datetime.utcnow)

    changed_by = db.relationship('User')

    __table_args__ = (
        db.UniqueConstraint('story_id', 'version', name='unique_story_version'),
    )
