# app/models/report.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any

from app.utils.datetime_utils import to_iso


@dataclass
class Report:
    """
    감사 로그의 한 버전 전이(old_record -> record)를 읽기 전용으로 표현한 모델.
    저장되지 않고, 조회할 때마다 버전 로그로부터 다시 계산됩니다.

    - diff: {필드: {previous, current}} 또는 최초 생성 이벤트라면 None
    - snapshot: 해당 버전 시점의 공통 필드 스냅샷 (hydrated 응답용)
    """
    id: str
    version_id: int
    contributor: Optional[str]
    created_at: Optional[datetime]
    verified_at: Optional[datetime]
    diff: Optional[Dict[str, Dict[str, Any]]]
    is_system_report: bool = False
    snapshot: Dict[str, Any] = field(default_factory=dict)

    def to_summary_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'contributor': self.contributor,
            'createdAt': to_iso(self.created_at),
            'diff': self.diff,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.snapshot)
        data.update({
            'id': self.id,
            'contributor': self.contributor,
            'createdAt': to_iso(self.created_at),
            'verifiedAt': to_iso(self.verified_at),
            'diff': self.diff,
            'isSystemReport': self.is_system_report,
        })
        return data
