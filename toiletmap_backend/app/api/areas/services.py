# app/api/areas/services.py
import logging
from typing import List, Dict, Any

from sqlalchemy import select
from sqlalchemy.engine import Engine

from app.models.tables import areas

logger = logging.getLogger(__name__)

class AreaService:
    """
    행정 구역(area) 조회를 처리하는 서비스 클래스
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def get_all_areas(self) -> List[Dict[str, Any]]:
        """
        모든 구역의 이름과 유형을 이름순으로 조회합니다.

        Returns:
            [{'name': ..., 'type': ...}, ...]
        """
        stmt = select(areas.c.name, areas.c.type).order_by(areas.c.name.asc().nulls_last(), areas.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()

        logger.info(f"Area list fetched: {len(rows)} areas")
        return [{'name': row['name'], 'type': row['type']} for row in rows]
