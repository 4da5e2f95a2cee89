"""
Fake gateways and sample events shared by the notifier tests.
"""
from __future__ import annotations

import threading
import time

class RecordingSmsGateway:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def send(self, phone: str, text: str) -> None:
        with self._lock:
            self.sent.append((phone, text))

class RecordingEmailGateway:
    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []
        self._lock = threading.Lock()

    def send(self, address: str, subject: str, body: str) -> None:
        with self._lock:
            self.sent.append((address, subject, body))

class FailingGateway:
    """Raises on every call, whatever the channel."""

    def __init__(self, message: str = "gateway refused"):
        self.message = message
        self.calls = 0

    def send(self, *args) -> None:
        self.calls += 1
        raise ConnectionError(self.message)

class SlowGateway:
    """Blocks until released or until *delay* passes."""

    def __init__(self, delay: float = 5.0):
        self.delay = delay
        self.release = threading.Event()
        self.started = threading.Event()

    def send(self, *args) -> None:
        self.started.set()
        self.release.wait(self.delay)

def make_event(kind: str = "appointment_created", **overrides) -> dict:
    payloads = {
        "appointment_created": {
            "doctor": "Dr. Somchai",
            "date": "2025-03-14",
            "time": "09:30",
            "department": "Internal Medicine",
            "queue_number": "A012",
            "estimated_wait_minutes": 25,
            "visit_id": "V-1001",
        },
        "record_updated": {
            "record_type": "vital_signs",
            "message": "Blood pressure and pulse recorded.",
            "record_id": "R-2002",
            "vitals": {"blood_pressure": "120/80", "pulse": 72, "temperature_c": 36.8},
        },
        "patient_registered": {"department": "Outpatient"},
        "queue_status_changed": {"queue_number": "A012", "status": "in_progress"},
    }
    event = {
        "kind": kind,
        "patient": {
            "hospital_number": "HN000123",
            "display_name": "Malee Jaidee",
            "national_id": "1103700000001",
            "phone": "0812345678",
            "email": "malee@example.com",
        },
        "payload": payloads[kind],
        "actor": {"id": "staff-7", "display_name": "Nurse Ploy"},
    }
    event.update(overrides)
    return event


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
