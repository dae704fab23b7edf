"""Response-format helpers shared by the text adapters."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from pydantic import BaseModel

from conduit.errors import ValidationError

_FORMAT_TYPES = frozenset({"text", "json_object", "json_schema"})
_DEFAULT_SCHEMA_NAME = "conduit_structured_output"


def to_strict_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Normalize a JSON schema for strict structured-output requirements.

    For every object node: ``additionalProperties`` becomes False and every
    declared property is listed in ``required``.
    """
    normalized = deepcopy(schema)

    def walk(node: Any) -> Any:
        if isinstance(node, list):
            return [walk(item) for item in node]
        if not isinstance(node, dict):
            return node

        updated = {key: walk(value) for key, value in node.items()}
        if updated.get("type") == "object" or "properties" in updated:
            properties = updated.get("properties", {})
            if isinstance(properties, dict):
                updated["additionalProperties"] = False
                updated["required"] = list(properties.keys())
        return updated

    result = walk(normalized)
    if not isinstance(result, dict):
        raise ValidationError(
            "Invalid response_format schema: expected an object schema",
            field="response_format",
        )
    return result


def resolve_format(response_format: Any) -> dict[str, Any] | None:
    """Turn a caller response_format into a flat ``{type, ...}`` format dict.

    Accepts ``"text"``/``"json"``/``"json_object"``, an explicit format dict,
    a raw JSON schema dict, or a Pydantic model class.
    """
    if response_format is None:
        return None
    if isinstance(response_format, str):
        kind = response_format.strip().lower()
        if kind in ("json", "json_object"):
            return {"type": "json_object"}
        if kind == "text":
            return {"type": "text"}
        raise ValidationError(
            f"Unknown response_format: {response_format!r}",
            hint="Use 'text', 'json', a JSON schema dict, or a Pydantic model class.",
            field="response_format",
        )
    if isinstance(response_format, type) and issubclass(response_format, BaseModel):
        return {
            "type": "json_schema",
            "name": response_format.__name__,
            "schema": to_strict_schema(response_format.model_json_schema()),
            "strict": True,
        }
    if isinstance(response_format, dict):
        if response_format.get("type") in _FORMAT_TYPES:
            return dict(response_format)
        return {
            "type": "json_schema",
            "name": _DEFAULT_SCHEMA_NAME,
            "schema": to_strict_schema(response_format),
            "strict": True,
        }
    raise ValidationError(
        "response_format must be a string, a dict, or a Pydantic model class",
        field="response_format",
    )


def chat_response_format(response_format: Any) -> dict[str, Any] | None:
    """Chat Completions nests json_schema details under ``json_schema``."""
    fmt = resolve_format(response_format)
    if fmt is None or fmt["type"] != "json_schema" or "json_schema" in fmt:
        return fmt
    return {
        "type": "json_schema",
        "json_schema": {k: v for k, v in fmt.items() if k != "type"},
    }
