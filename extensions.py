from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

# 擴展在這裡建立,由 create_app() 呼叫 init_app 綁到 app
jwt = JWTManager()
bcrypt = Bcrypt()
cors = CORS()
migrate = Migrate()
limiter = Limiter(key_func=get_remote_address)
