"""
Error taxonomy for the notification and document pipeline.

Only InvalidEvent and StorageUnavailable ever reach the caller of notify();
channel-level problems are reported as DispatchOutcome values instead.
"""
from __future__ import annotations


class NotifierError(Exception):
    """Base class for all pipeline errors."""


class InvalidEvent(NotifierError):
    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid notification event")


class StorageUnavailable(NotifierError):
    """The artifact store or notification log cannot persist."""


class ArtifactNotFound(NotifierError):
    def __init__(self, artifact_id: str):
        self.artifact_id = artifact_id
        super().__init__(f"Document artifact {artifact_id} not found")


class RecordNotFound(NotifierError):
    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Notification record {record_id} not found")


class RenderFailure(NotifierError):
    pass


class TemplateMissing(NotifierError):
    """A (kind, channel) pair or document layout has no registered template."""
