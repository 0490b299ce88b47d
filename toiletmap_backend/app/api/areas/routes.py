# app/api/areas/routes.py
import logging
from flask import Blueprint, jsonify, current_app

from .schemas import AreaListSchema

logger = logging.getLogger(__name__)

areas_bp = Blueprint('areas_bp', __name__)

@areas_bp.route('', methods=['GET'])
def get_all_areas():
    """모든 구역의 이름과 유형을 조회합니다."""
    area_service = current_app.services['areas']
    try:
        area_list = area_service.get_all_areas()
        return jsonify(AreaListSchema().dump({'data': area_list, 'count': len(area_list)})), 200
    except Exception as e:
        logger.error(f"Get areas API error: {e}", exc_info=True)
        return jsonify({"error_code": "FETCH_FAILED", "message": "구역 목록 조회 중 오류가 발생했습니다."}), 500
