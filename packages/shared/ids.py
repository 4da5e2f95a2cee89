"""
Identifier helpers. Ids sort by creation time (millisecond prefix) and stay unique via a random suffix.
"""
from __future__ import annotations

import time
import uuid


def new_id(prefix: str = "") -> str:
    millis = time.time_ns() // 1_000_000
    token = f"{millis:012x}{uuid.uuid4().hex[:20]}"
    return f"{prefix}-{token}" if prefix else token


def new_event_id() -> str:
    return new_id("evt")


def new_record_id() -> str:
    return new_id("ntf")


def new_artifact_id() -> str:
    return new_id("doc")
