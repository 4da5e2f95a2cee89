"""
API route: Documents (generated clinical PDFs)
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response

from apps.api.deps import get_service
from apps.notifier.service import NotifierService
from packages.shared.artifacts import ARTIFACT_EXTENSION, ARTIFACT_MIME_TYPE
from packages.shared.errors import ArtifactNotFound, StorageUnavailable
from packages.shared.models import DocumentArtifact

router = APIRouter(tags=["documents"])


@router.get("/patients/{hospital_number}/documents", response_model=list[DocumentArtifact])
def list_patient_documents(hospital_number: str, service: NotifierService = Depends(get_service)):
    """List documents for a patient, newest first."""
    try:
        return service.list_documents_by_patient(hospital_number)
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")


@router.get("/visits/{visit_or_record_id}/documents", response_model=list[DocumentArtifact])
def list_visit_documents(visit_or_record_id: str, service: NotifierService = Depends(get_service)):
    try:
        return service.list_documents_by_visit(visit_or_record_id)
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")


@router.get("/documents/{document_id}", response_model=DocumentArtifact)
def get_document(document_id: str, service: NotifierService = Depends(get_service)):
    try:
        return service.get_document(document_id).artifact
    except ArtifactNotFound:
        raise HTTPException(status_code=404, detail="Document not found")
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")


@router.get("/documents/{document_id}/content")
def download_document(document_id: str, service: NotifierService = Depends(get_service)):
    """Download the stored PDF bytes."""
    try:
        stored = service.get_document(document_id)
    except ArtifactNotFound:
        raise HTTPException(status_code=404, detail="Document not found")
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")

    filename = f"{stored.artifact.kind.value}-{stored.artifact.id}.{ARTIFACT_EXTENSION}"
    return Response(
        content=stored.content,
        media_type=ARTIFACT_MIME_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Content-SHA256": stored.artifact.sha256,
        },
    )


@router.delete("/documents/{document_id}", status_code=204)
def delete_document(document_id: str, service: NotifierService = Depends(get_service)):
    try:
        service.delete_document(document_id)
    except ArtifactNotFound:
        raise HTTPException(status_code=404, detail="Document not found")
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")
    return Response(status_code=204)
