# app/__init__.py

# =====================================================================================
# 1. 환경 변수 로드 (가장 먼저 실행)
# =====================================================================================
from dotenv import load_dotenv
load_dotenv()

# =====================================================================================
# 2. 모듈 임포트 (Module Imports)
# =====================================================================================
import os
import logging
from flask import Flask, jsonify
from marshmallow import ValidationError
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException

# - 설정 및 저장소
from app.core.config import config_by_name
from app.core.database import create_db_engine, init_db
from app.core.exceptions import LooConflictError, RetryableWriteError

# - API 블루프린트
from app.api.loos.routes import loos_bp
from app.api.areas.routes import areas_bp

# - 서비스 모듈
from app.api.loos.services import LooService
from app.api.areas.services import AreaService

def create_app(config_name=None, engine=None):
    """
    Flask 애플리케이션 팩토리 함수.

    Args:
        config_name: 'development' | 'testing' | 'production' (기본값: FLASK_ENV)
        engine: 이미 생성된 SQLAlchemy 엔진 (테스트에서 주입). 없으면 DATABASE_URL로 생성합니다.
    """
    # =====================================================================================
    # 3. Flask 앱 생성 및 기본 설정
    # =====================================================================================
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.json.ensure_ascii = False

    if not app.config.get('JWT_SECRET_KEY'):
        raise ValueError("필수 환경 변수가 설정되지 않았습니다: JWT_SECRET_KEY")

    # =====================================================================================
    # 4. 확장 기능 및 저장소 초기화
    # =====================================================================================
    JWTManager(app)

    if engine is None:
        engine = create_db_engine(app.config['DATABASE_URL'], echo=app.config['DATABASE_ECHO'])
    try:
        init_db(engine)
    except Exception as e:
        logging.error(f"Failed to initialize database schema: {e}")
        raise

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {}
    app.services['loos'] = LooService(engine, cache_size=app.config['LOO_CACHE_SIZE'])
    app.services['areas'] = AreaService(engine)
    logging.info("Loo and area services initialized successfully")

    # =====================================================================================
    # 6. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(loos_bp, url_prefix='/api/loos')
    app.register_blueprint(areas_bp, url_prefix='/api/areas')

    @app.route('/api/health', methods=['GET'])
    def health_check():
        """저장소 연결 상태 확인."""
        try:
            app.services['loos'].health_check()
            return jsonify({"status": "ok"}), 200
        except Exception as e:
            logging.error(f"Health check failed: {e}", exc_info=True)
            return jsonify({"status": "error", "error_code": "DATABASE_UNAVAILABLE"}), 503

    # =====================================================================================
    # 7. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err):
        response = {"error_code": "VALIDATION_ERROR", "details": err.messages}
        return jsonify(response), 400

    @app.errorhandler(LooConflictError)
    def handle_loo_conflict(err):
        return jsonify({"error_code": "LOO_ALREADY_EXISTS", "message": str(err)}), 409

    @app.errorhandler(RetryableWriteError)
    def handle_retryable_write(err):
        return jsonify({"error_code": "WRITE_CONFLICT_RETRY", "message": str(err)}), 503

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        # 라우팅 오류(404, 405 등)는 원래 응답을 유지
        if isinstance(err, HTTPException):
            return err
        # 다른 핸들러에서 처리되지 않은 모든 예외를 여기서 처리
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        response = {"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부에서 예상치 못한 오류가 발생했습니다."}
        return jsonify(response), 500

    # =====================================================================================
    # 8. 로깅 및 앱 반환
    # =====================================================================================
    if not app.debug:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    logging.info(f"Flask app created for '{config_name}' environment.")

    return app
