from flask import Flask, request, jsonify
from alembic import command
from sqlalchemy import text
from config import get_config
from models import db
from extensions import jwt, bcrypt, cors, migrate, limiter
from errors import register_jwt_handlers, register_error_handlers
from datetime import datetime
import logging
from logging.handlers import RotatingFileHandler
import os

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'migrations')


# ============================================
# Logging 設定
# ============================================

def setup_logging(app):
    """
    設定 logging

    1. 分開 info 和 error logs
    2. 使用 RotatingFileHandler 避免 log 檔案過大
    3. handler 掛在 root logger,各模組的 logger 都會寫進來
    """
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    app.logger.setLevel(level)

    if app.debug or app.testing:
        return

    log_dir = app.config.get('LOG_DIR', 'logs')
    os.makedirs(log_dir, exist_ok=True)

    # Log format
    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )

    # Info log handler (記錄一般資訊)
    info_handler = RotatingFileHandler(
        os.path.join(log_dir, 'app.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    info_handler.setLevel(logging.INFO)
    info_handler.setFormatter(formatter)

    # Error log handler (只記錄錯誤)
    error_handler = RotatingFileHandler(
        os.path.join(log_dir, 'error.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    root.addHandler(info_handler)
    root.addHandler(error_handler)

    app.logger.info('Application startup')


# ============================================
# 資料庫檢查 / migrations
# ============================================

def check_database(app):
    """啟動時測試資料庫連線,失敗只記錄不結束 process"""
    with app.app_context():
        try:
            db.session.execute(text('SELECT 1'))
            app.logger.info(f"Database connected ({db.engine.url.render_as_string(hide_password=True)})")
            return True
        except Exception as e:
            app.logger.error(f"Database connection failed, continuing without it: {str(e)}")
            return False
        finally:
            db.session.remove()


def run_migrations(app):
    """
    套用尚未執行的 migrations (升到 head)

    不走 flask_migrate.upgrade(),它出錯時會 sys.exit
    """
    with app.app_context():
        try:
            config = migrate.get_config(MIGRATIONS_DIR)
            command.upgrade(config, 'head')
            app.logger.info('Database migrations applied')
            return True
        except Exception as e:
            app.logger.error(f"Database migration failed: {str(e)}", exc_info=True)
            return False


# ============================================
# Application Factory
# ============================================

def create_app(config_class=None):
    """
    建立 Flask app

    Args:
        config_class: 設定類別,沒給就依 FLASK_ENV 選
    """
    config_class = config_class or get_config()
    config_class.validate()

    app = Flask(__name__)
    app.config.from_object(config_class)

    setup_logging(app)

    # ============================================
    # 擴展初始化
    # ============================================

    db.init_app(app)
    jwt.init_app(app)
    bcrypt.init_app(app)
    limiter.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)

    # 不要用 '*',只允許設定的來源
    cors.init_app(
        app,
        supports_credentials=True,
        origins=app.config['CORS_ORIGINS'],
        methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization']
    )

    register_jwt_handlers(jwt)
    register_error_handlers(app)

    # ============================================
    # 註冊 Blueprints
    # ============================================

    from auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/api')

    from users import users_bp
    app.register_blueprint(users_bp, url_prefix='/api')

    from projects import projects_bp
    app.register_blueprint(projects_bp, url_prefix='/api/projects')

    from stories import stories_bp
    app.register_blueprint(stories_bp, url_prefix='/api')

    from comments import comments_bp
    app.register_blueprint(comments_bp, url_prefix='/api')

    # ============================================
    # Request/Response Logging
    # ============================================

    @app.before_request
    def log_request():
        if not app.debug:
            app.logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def log_response(response):
        if not app.debug:
            app.logger.info(f"Response: {response.status_code} for {request.method} {request.path}")

        # 加上 security headers
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'

        return response

    # ============================================
    # Health Check
    # ============================================

    @app.route('/health', methods=['GET'])
    @limiter.exempt
    def health_check():
        """資料庫連不上時回 503"""
        try:
            db.session.execute(text('SELECT 1'))

            return jsonify({
                'status': 'healthy',
                'database': 'connected',
                'timestamp': datetime.utcnow().isoformat()
            }), 200
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Health check failed: {str(e)}")
            return jsonify({
                'status': 'unhealthy',
                'database': 'disconnected',
                'error': 'Database connection failed'
            }), 503

    # ============================================
    # API 首頁
    # ============================================

    @app.route('/')
    @limiter.limit("10 per minute")
    def home():
        return jsonify({
            'message': 'Story Board API',
            'version': app.config['API_VERSION'],
            'endpoints': {
                'health': {'path': '/health', 'methods': ['GET']},
                'auth': {
                    'register': {'path': '/api/register', 'methods': ['POST']},
                    'login': {'path': '/api/login', 'methods': ['POST']}
                },
                'users': {
                    'profile': {'path': '/api/profile', 'methods': ['GET']},
                    'preferences': {'path': '/api/preferences', 'methods': ['GET', 'PUT']},
                    'list': {'path': '/api/users', 'methods': ['GET']}
                },
                'projects': {
                    'list': {'path': '/api/projects', 'methods': ['GET', 'POST']},
                    'order': {'path': '/api/projects/order', 'methods': ['PUT']},
                    'detail': {'path': '/api/projects/:id', 'methods': ['PUT', 'DELETE']}
                },
                'stories': {
                    'list': {'path': '/api/projects/:id/stories', 'methods': ['GET', 'POST']},
                    'detail': {'path': '/api/stories/:id', 'methods': ['GET', 'PUT', 'DELETE']},
                    'history': {'path': '/api/stories/:id/history', 'methods': ['GET']},
                    'comments': {'path': '/api/stories/:id/comments', 'methods': ['POST']}
                },
                'comments': {
                    'detail': {'path': '/api/comments/:id', 'methods': ['PUT', 'DELETE']}
                }
            },
            'rate_limits': {
                'default': '200 per hour, 1000 per day',
                'auth': {
                    'register': '5 per hour',
                    'login': '10 per minute'
                }
            }
        })

    # ============================================
    # 啟動時的資料庫檢查
    # ============================================

    if not app.testing or app.config.get('AUTO_MIGRATE'):
        if check_database(app) and app.config.get('AUTO_MIGRATE'):
            run_migrations(app)

    return app


# ============================================
# 啟動應用
# ============================================

if __name__ == '__main__':
    # production 環境用 gunicorn: gunicorn "app:create_app()"
    app = create_app()

    app.run(
        debug=app.config['DEBUG'],
        port=app.config['PORT'],
        host='0.0.0.0'
    )
