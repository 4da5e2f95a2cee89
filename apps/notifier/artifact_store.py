"""
Artifact store: immutable generated documents addressed by id, patient HN, or visit/record id.

The SQL store keeps metadata in `document_artifacts` and the bytes on local disk under
DATA_DIR; get_by_id returns both together.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from packages.db.database import Database
from packages.db.models import DocumentArtifactRow
from packages.shared.artifacts import ARTIFACT_EXTENSION
from packages.shared.errors import ArtifactNotFound, StorageUnavailable
from packages.shared.ids import new_artifact_id
from packages.shared.models import (
    ArtifactMetadata,
    DocumentArtifact,
    NotificationKind,
    StoredDocument,
    as_utc,
    utcnow,
)
from packages.shared.storage import delete_artifact, read_artifact, save_artifact, sha256_bytes

logger = logging.getLogger("emrnotify.artifacts")


def _newest_first(artifacts: list[DocumentArtifact]) -> list[DocumentArtifact]:
    return sorted(artifacts, key=lambda a: (as_utc(a.created_at), a.id), reverse=True)


class ArtifactStore(ABC):

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    @abstractmethod
    def store(self, content: bytes, metadata: ArtifactMetadata) -> DocumentArtifact:
        """Persist new bytes under a freshly generated id. Raises StorageUnavailable."""

    @abstractmethod
    def get_by_id(self, artifact_id: str) -> StoredDocument:
        ...

    @abstractmethod
    def list_by_patient(self, hospital_number: str) -> list[DocumentArtifact]:
        ...

    @abstractmethod
    def list_by_visit_or_record(self, visit_or_record_id: str) -> list[DocumentArtifact]:
        ...

    @abstractmethod
    def delete(self, artifact_id: str) -> None:
        ...


def _build_artifact(artifact_id: str, content: bytes, metadata: ArtifactMetadata, content_ref: str) -> DocumentArtifact:
    return DocumentArtifact(
        id=artifact_id,
        event_id=metadata.event_id,
        patient_hospital_number=metadata.patient_hospital_number,
        visit_or_record_id=metadata.visit_or_record_id,
        kind=metadata.kind,
        created_at=as_utc(metadata.created_at or utcnow()),
        created_by_actor_id=metadata.created_by_actor_id,
        byte_size=len(content),
        sha256=sha256_bytes(content),
        content_ref=content_ref,
    )


class InMemoryArtifactStore(ArtifactStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._artifacts: dict[str, DocumentArtifact] = {}
        self._blobs: dict[str, bytes] = {}

    def store(self, content: bytes, metadata: ArtifactMetadata) -> DocumentArtifact:
        artifact_id = new_artifact_id()
        artifact = _build_artifact(artifact_id, bytes(content), metadata, f"memory://{artifact_id}")
        with self._lock:
            if artifact_id in self._artifacts:
                raise StorageUnavailable(f"Artifact id collision: {artifact_id}")
            self._artifacts[artifact_id] = artifact
            self._blobs[artifact_id] = bytes(content)
        return artifact

    def get_by_id(self, artifact_id: str) -> StoredDocument:
        with self._lock:
            artifact = self._artifacts.get(artifact_id)
            content = self._blobs.get(artifact_id)
        if artifact is None or content is None:
            raise ArtifactNotFound(artifact_id)
        return StoredDocument(artifact=artifact, content=content)

    def list_by_patient(self, hospital_number: str) -> list[DocumentArtifact]:
        with self._lock:
            matches = [a for a in self._artifacts.values() if a.patient_hospital_number == hospital_number]
        return _newest_first(matches)

    def list_by_visit_or_record(self, visit_or_record_id: str) -> list[DocumentArtifact]:
        with self._lock:
            matches = [a for a in self._artifacts.values() if a.visit_or_record_id == visit_or_record_id]
        return _newest_first(matches)

    def delete(self, artifact_id: str) -> None:
        with self._lock:
            if artifact_id not in self._artifacts:
                raise ArtifactNotFound(artifact_id)
            del self._artifacts[artifact_id]
            self._blobs.pop(artifact_id, None)


def _row_to_artifact(row: DocumentArtifactRow) -> DocumentArtifact:
    return DocumentArtifact(
        id=row.id,
        event_id=row.event_id,
        patient_hospital_number=row.patient_hospital_number,
        visit_or_record_id=row.visit_or_record_id,
        kind=NotificationKind(row.kind),
        created_at=as_utc(row.created_at),
        created_by_actor_id=row.created_by_actor_id,
        byte_size=row.byte_size,
        sha256=row.sha256,
        content_ref=row.content_ref,
    )


class SqlArtifactStore(ArtifactStore):
    def __init__(self, database: Database, data_dir: Path):
        self.database = database
        self.data_dir = Path(data_dir)

    def open(self) -> None:
        self.database.open()

    def store(self, content: bytes, metadata: ArtifactMetadata) -> DocumentArtifact:
        artifact_id = new_artifact_id()
        try:
            path = save_artifact(
                self.data_dir, metadata.patient_hospital_number, artifact_id, content, ARTIFACT_EXTENSION
            )
        except OSError as exc:
            raise StorageUnavailable(f"Cannot write artifact bytes: {exc}") from exc

        artifact = _build_artifact(artifact_id, content, metadata, str(path))
        try:
            with self.database.session() as session:
                session.add(DocumentArtifactRow(
                    id=artifact.id,
                    event_id=artifact.event_id,
                    patient_hospital_number=artifact.patient_hospital_number,
                    visit_or_record_id=artifact.visit_or_record_id,
                    kind=artifact.kind.value,
                    created_at=artifact.created_at,
                    created_by_actor_id=artifact.created_by_actor_id,
                    byte_size=artifact.byte_size,
                    sha256=artifact.sha256,
                    content_ref=artifact.content_ref,
                ))
        except StorageUnavailable:
            # Metadata never landed, so the blob is unreachable; remove it.
            delete_artifact(path)
            raise
        logger.info("Stored artifact %s (%d bytes) for HN %s", artifact.id, artifact.byte_size,
                    artifact.patient_hospital_number)
        return artifact

    def get_by_id(self, artifact_id: str) -> StoredDocument:
        with self.database.session() as session:
            row = session.get(DocumentArtifactRow, artifact_id)
            if row is None:
                raise ArtifactNotFound(artifact_id)
            artifact = _row_to_artifact(row)
        try:
            content = read_artifact(Path(artifact.content_ref))
        except FileNotFoundError as exc:
            raise ArtifactNotFound(artifact_id) from exc
        except OSError as exc:
            raise StorageUnavailable(f"Cannot read artifact bytes: {exc}") from exc
        return StoredDocument(artifact=artifact, content=content)

    def list_by_patient(self, hospital_number: str) -> list[DocumentArtifact]:
        with self.database.session() as session:
            rows = (
                session.query(DocumentArtifactRow)
                .filter(DocumentArtifactRow.patient_hospital_number == hospital_number)
                .order_by(DocumentArtifactRow.created_at.desc(), DocumentArtifactRow.id.desc())
                .all()
            )
            return [_row_to_artifact(r) for r in rows]

    def list_by_visit_or_record(self, visit_or_record_id: str) -> list[DocumentArtifact]:
        with self.database.session() as session:
            rows = (
                session.query(DocumentArtifactRow)
                .filter(DocumentArtifactRow.visit_or_record_id == visit_or_record_id)
                .order_by(DocumentArtifactRow.created_at.desc(), DocumentArtifactRow.id.desc())
                .all()
            )
            return [_row_to_artifact(r) for r in rows]

    def delete(self, artifact_id: str) -> None:
        with self.database.session() as session:
            row = session.get(DocumentArtifactRow, artifact_id)
            if row is None:
                raise ArtifactNotFound(artifact_id)
            content_ref = row.content_ref
            session.delete(row)
        if not delete_artifact(Path(content_ref)):
            logger.warning("Artifact %s had no blob at %s", artifact_id, content_ref)
        logger.info("Deleted artifact %s", artifact_id)
