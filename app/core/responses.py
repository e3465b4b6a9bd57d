"""
Response envelope shared by all REST endpoints.

Success: {"success": true, "data": ..., "message": "..."} (+ "warning")
Failure: {"success": false, "error": "...", "message": "..."}
"""
from decimal import Decimal
from typing import Annotated, Optional
import math

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

# Decimal in Python, plain number in JSON
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class Pagination(BaseModel):
    """Serialized as currentPage / totalPages / total / limit"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_page: int
    total_pages: int
    total: int
    limit: int


def paginate(page: int, limit: int, total: int) -> Pagination:
    return Pagination(
        current_page=page,
        total_pages=math.ceil(total / limit) if limit else 0,
        total=total,
        limit=limit
    )


def ok(data=None, message: str = "", warning: Optional[str] = None) -> dict:
    """Build a success envelope"""
    body = {"success": True, "data": data, "message": message}
    if warning:
        body["warning"] = warning
    return body


def error_body(error: str, message: str) -> dict:
    return {"success": False, "error": error, "message": message}
