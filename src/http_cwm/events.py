"""Webhook payload parsing, validation and API classification.

Inbound bodies are object-storage audit events. Only a handful of fields are
used:

    {
        "deploymentid": "d1",
        "api": {"name": "PutObject", ...},
        "requestHeader": {"Content-Length": "10", ...},
        "responseHeader": {"Content-Length": "20", "X-Cache": "HIT", ...},
        ...
    }

Sizes are derived from the headers: the declared ``Content-Length`` plus the
length of the serialized header map. The header overhead is counted on purpose
so that totals stay comparable with historical metrics.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


class ParseError(ValueError):
    """Raised when a payload is not a JSON object."""


class RequestType(StrEnum):
    """Traffic direction of an object-storage API call."""

    IN = "in"
    OUT = "out"
    MISC = "misc"


IN_APIS = frozenset({"WebUpload", "PutObject", "DeleteObject"})
OUT_APIS = frozenset({"WebDownload", "GetObject"})

# Required fields in validation order. Nested paths are dotted.
REQUIRED_FIELDS: tuple[tuple[str, type], ...] = (
    ("deploymentid", str),
    ("api.name", str),
    ("responseHeader", dict),
    ("requestHeader", dict),
)


@dataclass(frozen=True)
class ApiEvent:
    """One validated API call, ready to be aggregated."""

    deployment_id: str
    api_name: str
    request_content_length: int
    response_content_length: int
    response_cached: bool

    @property
    def request_type(self) -> RequestType:
        return classify_api(self.api_name)


def parse_payload(raw: bytes | str) -> dict[str, Any]:
    """Decode a request body into a JSON object."""
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ParseError(f"malformed payload: {exc}") from exc
    except RecursionError as exc:
        raise ParseError("malformed payload: nested too deeply") from exc

    if not isinstance(data, dict):
        raise ParseError(f"payload must be a JSON object, got {type(data).__name__}")
    return data


def classify_api(api_name: str) -> RequestType:
    if api_name in IN_APIS:
        return RequestType.IN
    if api_name in OUT_APIS:
        return RequestType.OUT
    return RequestType.MISC


def content_length(value: object) -> int:
    """Lenient ``Content-Length`` conversion: unknown or garbage values count as 0."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        return max(int(value), 0)
    if isinstance(value, str):
        match = _LEADING_INT_RE.match(value)
        if match is None:
            return 0
        return max(int(match.group(1)), 0)
    return 0


def stringify_header(header: dict[str, Any]) -> str:
    return json.dumps(header, ensure_ascii=False, default=str)


def derived_length(header: dict[str, Any]) -> int:
    """Declared body size plus the serialized header overhead."""
    return content_length(header.get("Content-Length")) + len(stringify_header(header))


def _lookup(data: dict[str, Any], path: str) -> Any:
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def find_missing_field(data: dict[str, Any]) -> str | None:
    """Return the first required field that is absent or has the wrong type."""
    for path, expected in REQUIRED_FIELDS:
        value = _lookup(data, path)
        if not isinstance(value, expected) or (expected is str and not value):
            return path
    return None


def build_event(data: dict[str, Any]) -> ApiEvent:
    """Build an ``ApiEvent`` from a payload that passed ``find_missing_field``."""
    response_header = data["responseHeader"]
    request_header = data["requestHeader"]
    return ApiEvent(
        deployment_id=data["deploymentid"],
        api_name=data["api"]["name"],
        request_content_length=derived_length(request_header),
        response_content_length=derived_length(response_header),
        response_cached=response_header.get("X-Cache") == "HIT",
    )
