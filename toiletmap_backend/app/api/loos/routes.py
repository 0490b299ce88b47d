# app/api/loos/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity, get_jwt
from marshmallow import ValidationError

from app.core.exceptions import LooConflictError, RetryableWriteError
from app.core.security import extract_contributor
from app.models.loo import generate_loo_id
from .schemas import (
    LooMutationSchema,
    LooCreateSchema,
    SearchQuerySchema,
    MetricsQuerySchema,
    ProximityQuerySchema,
    GeohashQuerySchema,
    ReportsQuerySchema,
    UpdatesQuerySchema,
    parse_ids,
)

logger = logging.getLogger(__name__)

loos_bp = Blueprint('loos_bp', __name__)


def _current_contributor():
    return extract_contributor(get_jwt(), current_app.config.get('AUTH_PROFILE_KEY'))


@loos_bp.route('', methods=['GET'])
def get_loos_by_ids():
    """ids 쿼리 파라미터(쉼표 구분 또는 반복)로 여러 화장실을 입력 순서대로 조회합니다."""
    loo_service = current_app.services['loos']
    try:
        ids = parse_ids(request.args.getlist('ids'))
        loos = loo_service.get_by_ids(ids)
        return jsonify({"data": [loo.to_dict() for loo in loos], "count": len(loos)}), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except Exception as e:
        logger.error(f"Get loos by ids API error: {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "화장실 목록 조회 중 오류가 발생했습니다."}), 500

@loos_bp.route('/search', methods=['GET'])
def search_loos():
    """필터/정렬/페이지 조건으로 화장실을 검색합니다."""
    loo_service = current_app.services['loos']
    try:
        params = SearchQuerySchema().load(request.args.to_dict())
        result = loo_service.search(params)
        data = [loo.to_dict() for loo in result['data']]
        offset = (params.page - 1) * params.limit
        return jsonify({
            "data": data,
            "count": len(data),
            "total": result['total'],
            "page": params.page,
            "pageSize": params.limit,
            "hasMore": offset + len(data) < result['total'],
        }), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except Exception as e:
        logger.error(f"Search loos API error: {e}", exc_info=True)
        return jsonify({"error_code": "SEARCH_FAILED", "message": "화장실 검색 중 오류가 발생했습니다."}), 500

@loos_bp.route('/metrics', methods=['GET'])
def get_search_metrics():
    """검색 조건과 동일한 필터 위에서 집계 지표를 계산합니다."""
    loo_service = current_app.services['loos']
    try:
        query = MetricsQuerySchema().load(request.args.to_dict())
        metrics = loo_service.get_search_metrics(query['params'], query['recent_window_days'])
        return jsonify(metrics), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except Exception as e:
        logger.error(f"Search metrics API error: {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "지표 조회 중 오류가 발생했습니다."}), 500

@loos_bp.route('/proximity', methods=['GET'])
def get_loos_by_proximity():
    """좌표와 반경(미터)으로 주변 화장실을 가까운 순으로 조회합니다."""
    loo_service = current_app.services['loos']
    try:
        query = ProximityQuerySchema().load(request.args.to_dict())
        loos = loo_service.get_by_proximity(query['lat'], query['lng'], query['radius'])
        return jsonify({"data": [loo.to_dict() for loo in loos], "count": len(loos)}), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except Exception as e:
        logger.error(f"Proximity API error: {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "주변 화장실 조회 중 오류가 발생했습니다."}), 500

@loos_bp.route('/geohash/<string:geohash>', methods=['GET'])
def get_loos_within_geohash(geohash: str):
    """geohash 접두사로 화장실을 조회합니다. compressed/summary 쿼리로 응답 형태를 고릅니다."""
    loo_service = current_app.services['loos']
    try:
        query = GeohashQuerySchema().load({**request.args.to_dict(), 'geohash': geohash})
        if query['compressed']:
            data = [list(item) for item in loo_service.get_within_geohash_compressed(query['geohash'], query['active'])]
        elif query['summary']:
            data = [item.to_dict() for item in loo_service.get_within_geohash_summary(query['geohash'], query['active'])]
        else:
            data = [item.to_dict() for item in loo_service.get_within_geohash(query['geohash'], query['active'])]
        return jsonify({"data": data, "count": len(data)}), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except Exception as e:
        logger.error(f"Geohash API error (geohash: {geohash}): {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "화장실 조회 중 오류가 발생했습니다."}), 500

@loos_bp.route('/dump', methods=['GET'])
def dump_loos():
    """지도 렌더링용으로 모든 활성 화장실을 압축 형태로 반환합니다."""
    loo_service = current_app.services['loos']
    try:
        data = [list(item) for item in loo_service.get_all_compressed()]
        return jsonify({"data": data, "count": len(data)}), 200
    except Exception as e:
        logger.error(f"Dump API error: {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "화장실 목록 조회 중 오류가 발생했습니다."}), 500

@loos_bp.route('/updates', methods=['GET'])
def get_loo_updates():
    """since 이후 변경분을 upserted(압축)/deleted(ID) 두 묶음으로 반환합니다."""
    loo_service = current_app.services['loos']
    try:
        query = UpdatesQuerySchema().load(request.args.to_dict())
        updates = loo_service.get_updates(query['since'])
        return jsonify({
            "upserted": [list(item) for item in updates['upserted']],
            "deleted": updates['deleted'],
        }), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except Exception as e:
        logger.error(f"Updates API error: {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "변경분 조회 중 오류가 발생했습니다."}), 500

@loos_bp.route('/<string:loo_id>/reports', methods=['GET'])
@jwt_required(optional=True)
def get_loo_reports(loo_id: str):
    """변경 이력(리포트)을 조회합니다. 기여자 이름은 인증된 요청에만 노출됩니다."""
    loo_service = current_app.services['loos']
    try:
        query = ReportsQuerySchema().load(request.args.to_dict())
        include_contributors = get_jwt_identity() is not None
        reports = loo_service.get_reports(loo_id, hydrate=query['hydrate'],
                                          include_contributors=include_contributors)
        return jsonify({"data": reports, "count": len(reports)}), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except Exception as e:
        logger.error(f"Get reports API error (loo_id: {loo_id}): {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "변경 이력 조회 중 오류가 발생했습니다."}), 500

@loos_bp.route('/<string:loo_id>', methods=['GET'])
def get_loo(loo_id: str):
    """화장실 한 곳의 정보를 조회합니다."""
    loo_service = current_app.services['loos']
    try:
        loo = loo_service.get_by_id(loo_id)
        if loo is None:
            return jsonify({"error_code": "LOO_NOT_FOUND", "message": "화장실을 찾을 수 없습니다."}), 404
        return jsonify(loo.to_dict()), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except Exception as e:
        logger.error(f"Get loo API error (loo_id: {loo_id}): {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "화장실 조회 중 오류가 발생했습니다."}), 500

@loos_bp.route('', methods=['POST'])
@jwt_required()
def create_loo():
    """새 화장실을 등록합니다. id를 생략하면 서버가 생성합니다."""
    loo_service = current_app.services['loos']
    try:
        payload = LooCreateSchema().load(request.get_json(silent=True) or {})
        loo_id = payload['id'] or generate_loo_id()
        created = loo_service.create(loo_id, payload['mutation'], _current_contributor())
        return jsonify(created.to_dict()), 201
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except LooConflictError as e:
        return jsonify({"error_code": "LOO_ALREADY_EXISTS", "message": str(e)}), 409
    except RetryableWriteError as e:
        return jsonify({"error_code": "WRITE_CONFLICT_RETRY", "message": str(e)}), 503
    except Exception as e:
        logger.error(f"Create loo API error: {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "화장실 등록 중 오류가 발생했습니다."}), 500

@loos_bp.route('/<string:loo_id>', methods=['PUT'])
@jwt_required()
def upsert_loo(loo_id: str):
    """화장실 정보를 부분 수정합니다. 없는 ID라면 새로 생성합니다 (생성 201, 수정 200)."""
    loo_service = current_app.services['loos']
    try:
        mutation = LooMutationSchema().load(request.get_json(silent=True) or {})
        saved, created = loo_service.upsert(loo_id, mutation, _current_contributor())
        return jsonify(saved.to_dict()), 201 if created else 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except RetryableWriteError as e:
        return jsonify({"error_code": "WRITE_CONFLICT_RETRY", "message": str(e)}), 503
    except Exception as e:
        logger.error(f"Upsert loo API error (loo_id: {loo_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "화장실 수정 중 오류가 발생했습니다."}), 500
