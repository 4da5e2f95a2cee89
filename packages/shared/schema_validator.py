"""
Validate notification event payloads against the per-kind JSON schema.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema

from packages.shared.models.enums import NotificationKind

_SCHEMA_PATH = Path(__file__).resolve().parent.parent.parent / "schemas" / "event-payloads.schema.json"
_schema_cache: dict | None = None
_validator_cache: dict[NotificationKind, jsonschema.Draft202012Validator] = {}


def _load_schema() -> dict:
    global _schema_cache
    if _schema_cache is None:
        with open(_SCHEMA_PATH, "r", encoding="utf-8") as f:
            _schema_cache = json.load(f)
    return _schema_cache


def _validator_for(kind: NotificationKind) -> jsonschema.Draft202012Validator:
    validator = _validator_cache.get(kind)
    if validator is None:
        schema = dict(_load_schema())
        schema["$ref"] = f"#/$defs/{kind.value}"
        validator = jsonschema.Draft202012Validator(schema)
        _validator_cache[kind] = validator
    return validator


def missing_payload_schemas() -> list[NotificationKind]:
    defs = _load_schema().get("$defs", {})
    return [kind for kind in NotificationKind if kind.value not in defs]


def validate_payload(kind: NotificationKind, payload: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate *payload* for *kind*.
    Returns (is_valid, list_of_error_messages).
    """
    validator = _validator_for(kind)
    errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.absolute_path))
    messages = []
    for e in errors:
        where = ".".join(str(p) for p in e.absolute_path)
        messages.append(f"payload.{where}: {e.message}" if where else f"payload: {e.message}")
    return (len(messages) == 0, messages)
