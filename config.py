import os
from datetime import timedelta
from dotenv import load_dotenv

# 載入 .env 檔案
load_dotenv()

DEV_SECRET_KEY = 'dev-secret-key-change-in-production'


def build_database_uri():
    """
    組出 SQLAlchemy 連線字串

    優先順序:
    1. DATABASE_URL (完整 URL)
    2. DB_HOST / DB_USER / DB_PASSWORD / DB_NAME 分開設定
    3. 開發環境預設的 SQLite 檔案
    """
    url = os.getenv('DATABASE_URL')
    if url:
        return url

    host = os.getenv('DB_HOST')
    if host:
        driver = os.getenv('DB_DRIVER', 'postgresql+psycopg')
        user = os.getenv('DB_USER', 'story_board')
        password = os.getenv('DB_PASSWORD', '')
        name = os.getenv('DB_NAME', 'story_board')
        port = os.getenv('DB_PORT')
        netloc = f"{host}:{port}" if port else host
        return f"{driver}://{user}:{password}@{netloc}/{name}"

    return 'sqlite:///story_board.db'


class Config:
    """
    應用程式設定

    所有設定都從環境變數讀取,預設值只適合開發環境。
    create_app() 會把這裡選定的類別傳給 Flask,handler 不直接 import 這個模組。
    """

    # ============================================
    # 基本設定
    # ============================================

    # ⚠️ 在 production 環境必須設定強隨機值
    SECRET_KEY = os.getenv('SECRET_KEY', DEV_SECRET_KEY)

    ENV = os.getenv('FLASK_ENV', 'development')
    DEBUG = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    TESTING = False

    # 監聽 port (前端 proxy 預設打 3001)
    PORT = int(os.getenv('PORT', 3001))

    # ============================================
    # 資料庫設定
    # ============================================

    SQLALCHEMY_DATABASE_URI = build_database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Connection Pool: 每個 request 拿一條連線,結束時歸還
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': int(os.getenv('DB_POOL_SIZE', 10)),
        'pool_recycle': int(os.getenv('DB_POOL_RECYCLE', 3600)),
        'pool_pre_ping': True,
        'max_overflow': int(os.getenv('DB_MAX_OVERFLOW', 0))
    }

    # 啟動時自動套用 migrations
    AUTO_MIGRATE = os.getenv('AUTO_MIGRATE', 'True').lower() == 'true'

    # ============================================
    # JWT 設定
    # ============================================

    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', SECRET_KEY)

    # 一般登入 1 小時,勾選「記住我」30 天
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(
        hours=int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES_HOURS', 1))
    )
    JWT_REMEMBER_ME_EXPIRES = timedelta(
        days=int(os.getenv('JWT_REMEMBER_ME_EXPIRES_DAYS', 30))
    )

    JWT_TOKEN_LOCATION = ['headers']
    JWT_HEADER_NAME = 'Authorization'
    JWT_HEADER_TYPE = 'Bearer'
    JWT_ERROR_MESSAGE_KEY = 'message'

    # ============================================
    # CORS 設定
    # ============================================

    CORS_ORIGINS = os.getenv(
        'CORS_ORIGINS',
        'http://localhost:3000,http://127.0.0.1:3000'
    ).split(',')

    # ============================================
    # Rate Limiting 設定
    # ============================================

    RATELIMIT_ENABLED = os.getenv('RATELIMIT_ENABLED', 'True').lower() == 'true'
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_STRATEGY = 'fixed-window'
    RATELIMIT_HEADERS_ENABLED = True
    RATELIMIT_DEFAULT = '1000 per day;200 per hour'

    # ============================================
    # Logging 設定
    # ============================================

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_DIR = os.getenv('LOG_DIR', 'logs')

    # ============================================
    # 其他設定
    # ============================================

    API_VERSION = '1.0.0'

    @classmethod
    def validate(cls):
        """
        驗證設定是否正確

        production 環境缺少必要設定或仍使用預設 secret 時直接拒絕啟動
        """
        if cls.ENV != 'production':
            return

        required_in_production = ['SECRET_KEY', 'JWT_SECRET_KEY']
        missing = [key for key in required_in_production if not os.getenv(key)]
        if not os.getenv('DATABASE_URL') and not os.getenv('DB_HOST'):
            missing.append('DATABASE_URL or DB_HOST')

        if missing:
            raise ValueError(
                f"Missing required environment variables in production: {', '.join(missing)}"
            )

        if cls.SECRET_KEY == DEV_SECRET_KEY or cls.JWT_SECRET_KEY == DEV_SECRET_KEY:
            raise ValueError("You must set a strong SECRET_KEY and JWT_SECRET_KEY in production!")


class DevelopmentConfig(Config):
    """開發環境設定"""
    DEBUG = True


class ProductionConfig(Config):
    """生產環境設定"""
    ENV = 'production'
    DEBUG = False


class TestingConfig(Config):
    """測試環境設定"""
    TESTING = True
    SECRET_KEY = 'testing-secret-key'
    JWT_SECRET_KEY = 'testing-jwt-secret-key-with-enough-length'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'  # 使用記憶體資料庫
    SQLALCHEMY_ENGINE_OPTIONS = {}
    AUTO_MIGRATE = False
    RATELIMIT_ENABLED = False


# 根據環境變數選擇設定
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """取得當前環境的設定"""
    env = os.getenv('FLASK_ENV', 'development')
    return config.get(env, config['default'])
