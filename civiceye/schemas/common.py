# File: civiceye/schemas/common.py
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True, mode="json")
    if isinstance(data, (list, tuple)):
        return [_dump(d) for d in data]
    if isinstance(data, dict):
        return {k: _dump(v) for k, v in data.items()}
    return data


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    """Success envelope: ``{success, message?, data?}``."""
    body: dict = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = _dump(data)
    return body


def fail(code: str, message: str, field: Optional[str] = None,
         correlation_id: Optional[str] = None) -> dict:
    error: dict = {"code": code}
    if field:
        error["field"] = field
    if correlation_id:
        error["correlationId"] = correlation_id
    return {"success": False, "message": message, "error": error}
