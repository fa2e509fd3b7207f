# File: civiceye/services/validation.py
"""Explicit input validation for every mutating and querying entry point.

Each function returns the normalised value or raises ValidationError naming the
offending field (InvalidLocationError for coordinate problems). Nothing here
touches the database, so a request is fully checked before any write starts.
"""
import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence, Type, TypeVar, Union

from civiceye.core.errors import InvalidLocationError, ValidationError
from civiceye.models.issue import IssueCategory, IssuePriority, IssueStatus, Visibility

TITLE_MAX = 100
DESCRIPTION_MAX = 1000
COMMENT_MAX = 500
TAG_MAX = 50
MAX_TAGS = 20
ADDRESS_LIMITS = {"address": 300, "city": 120, "state": 120, "pincode": 20}

E = TypeVar("E", bound=Enum)


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    content_type: str
    data: bytes


def _required_text(field: str, value, limit: int, label: str) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(field, f"{label} is required")
    value = value.strip()
    if len(value) > limit:
        raise ValidationError(field, f"{label} cannot exceed {limit} characters")
    return value


def validate_title(value) -> str:
    return _required_text("title", value, TITLE_MAX, "Title")


def validate_description(value) -> str:
    return _required_text("description", value, DESCRIPTION_MAX, "Description")


def validate_comment(value) -> str:
    return _required_text("comment", value, COMMENT_MAX, "Comment")


def _enum_value(field: str, enum_cls: Type[E], value, default: Optional[E] = None) -> E:
    if isinstance(value, enum_cls):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise ValidationError(field, f"{field} is required")
    if not isinstance(value, str):
        raise ValidationError(field, f"Invalid {field}")
    try:
        return enum_cls(value.strip().upper())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(field, f"Invalid {field} '{value}'. Allowed: {allowed}")


def validate_category(value) -> IssueCategory:
    return _enum_value("category", IssueCategory, value)


def validate_priority(value) -> IssuePriority:
    return _enum_value("priority", IssuePriority, value, default=IssuePriority.MEDIUM)


def validate_visibility(value) -> Visibility:
    return _enum_value("visibility", Visibility, value, default=Visibility.PUBLIC)


def validate_status(value) -> IssueStatus:
    return _enum_value("status", IssueStatus, value)


def _coordinate(field: str, value, low: float, high: float) -> float:
    if value is None or isinstance(value, bool):
        raise InvalidLocationError(f"{field} is required", field=field)
    if isinstance(value, str):
        if not value.strip():
            raise InvalidLocationError(f"{field} is required", field=field)
        try:
            value = float(value)
        except ValueError:
            raise InvalidLocationError(f"{field} must be a number", field=field)
    if not isinstance(value, (int, float)):
        raise InvalidLocationError(f"{field} must be a number", field=field)
    value = float(value)
    if not math.isfinite(value) or value < low or value > high:
        raise InvalidLocationError(
            "Coordinates out of valid range. Longitude must be between -180 and 180, "
            "latitude between -90 and 90.",
            field=field,
        )
    return value


def validate_location(latitude, longitude) -> GeoPoint:
    return GeoPoint(
        latitude=_coordinate("latitude", latitude, -90.0, 90.0),
        longitude=_coordinate("longitude", longitude, -180.0, 180.0),
    )


def parse_location(raw) -> GeoPoint:
    """Accepts ``{"latitude": .., "longitude": ..}`` as a dict or JSON string."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise InvalidLocationError("Invalid coordinates provided. Please ensure location data is valid.")
    if not isinstance(raw, dict):
        raise InvalidLocationError("Location coordinates are required")
    return validate_location(raw.get("latitude"), raw.get("longitude"))


def validate_address_fields(**fields) -> dict:
    cleaned = {}
    for name, value in fields.items():
        if value is None:
            cleaned[name] = None
            continue
        if not isinstance(value, str):
            raise ValidationError(name, f"{name} must be text")
        value = value.strip()
        if len(value) > ADDRESS_LIMITS[name]:
            raise ValidationError(name, f"{name} cannot exceed {ADDRESS_LIMITS[name]} characters")
        cleaned[name] = value or None
    return cleaned


def parse_tags(value: Union[None, str, Sequence[str]]) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        raw = value.split(",")
    elif isinstance(value, (list, tuple)):
        raw = list(value)
    else:
        raise ValidationError("tags", "tags must be a comma-separated string or a list")
    tags: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            raise ValidationError("tags", "tags must be text")
        tag = item.strip()
        if not tag or tag in tags:
            continue
        if len(tag) > TAG_MAX:
            raise ValidationError("tags", f"Tag cannot exceed {TAG_MAX} characters")
        tags.append(tag)
    if len(tags) > MAX_TAGS:
        raise ValidationError("tags", f"Max {MAX_TAGS} tags")
    return tags


def validate_images(uploads: Iterable[ImageUpload], max_files: int, max_bytes: int) -> list[ImageUpload]:
    uploads = list(uploads)
    if len(uploads) > max_files:
        raise ValidationError("images", f"Max {max_files} images")
    for upload in uploads:
        if not (upload.content_type or "").startswith("image/"):
            raise ValidationError("images", "Only image files are allowed")
        if len(upload.data) > max_bytes:
            raise ValidationError("images", f"Image exceeds {max_bytes // (1024 * 1024)}MB")
    return uploads


def _positive_int(field: str, value, default: int) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise ValidationError(field, f"{field} must be a positive integer")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError(field, f"{field} must be a positive integer")
    if not isinstance(value, int) or value < 1:
        raise ValidationError(field, f"{field} must be a positive integer")
    return value


def parse_page(value) -> int:
    return _positive_int("page", value, 1)


def parse_limit(value, default: int, maximum: int) -> int:
    return min(_positive_int("limit", value, default), maximum)


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_center(latitude, longitude) -> Optional[GeoPoint]:
    if _blank(latitude) and _blank(longitude):
        return None
    if _blank(latitude) or _blank(longitude):
        raise InvalidLocationError("Both latitude and longitude are required for a radius query")
    return validate_location(latitude, longitude)


def parse_radius(value, default: float) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise InvalidLocationError("radius must be a positive number", field="radius")
    try:
        radius = float(value)
    except (TypeError, ValueError):
        raise InvalidLocationError("radius must be a positive number", field="radius")
    if not math.isfinite(radius) or radius <= 0:
        raise InvalidLocationError("radius must be a positive number", field="radius")
    return radius


TRUE_FLAGS = ("1", "true", "yes", "on")
FALSE_FLAGS = ("0", "false", "no", "off")


def parse_flag(value, default: bool = False, field: str = "flag") -> bool:
    if _blank(value):
        return default
    if isinstance(value, bool):
        return value
    flag = str(value).strip().lower()
    if flag in TRUE_FLAGS:
        return True
    if flag in FALSE_FLAGS:
        return False
    raise ValidationError(field, f"{field} must be true or false")


def parse_enum_filter(field: str, enum_cls: Type[E], value) -> Optional[E]:
    """``None``, blank and ``all`` mean no filter."""
    if value is None or (isinstance(value, str) and value.strip().lower() in ("", "all")):
        return None
    return _enum_value(field, enum_cls, value)
