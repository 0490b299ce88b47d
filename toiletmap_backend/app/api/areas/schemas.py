# app/api/areas/schemas.py
from marshmallow import Schema, fields


class AreaSchema(Schema):
    """구역 정보 응답 스키마"""
    name = fields.Str(allow_none=True)
    type = fields.Str(allow_none=True)


class AreaListSchema(Schema):
    """구역 목록 응답 스키마"""
    data = fields.List(fields.Nested(AreaSchema))
    count = fields.Int()
