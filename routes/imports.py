"""
Bulk import API routes.

Upload a spreadsheet, adjust the proposed column mapping, enrich,
reconcile against existing items and commit. Each upload is a session
addressed by its id.

Error responses use the AppError envelope (see exceptions/errors.py).
"""

from io import BytesIO
from typing import Optional

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
import structlog

from exceptions import AppError
from models.bulk_import import (
    CommitRequest,
    ImportSessionResponse,
    MappingUpdateRequest,
    ReconcileRequest,
    SelectedImagesRequest,
)
from services.import_session_service import get_import_service
from services.template_export_service import TEMPLATE_FILENAME, get_template_export_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/imports", tags=["Imports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# TEMPLATE
# ===================

@router.get("/template")
async def download_template():
    """
    Download the import template (.xlsx).

    Header row lists every importable field; two example rows follow.
    """
    try:
        output = get_template_export_service().generate_template()
        return StreamingResponse(
            output,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_FILENAME}"'},
        )
    except Exception as e:
        return handle_error(e)


# ===================
# SESSION ROUTES
# ===================

@router.post("", response_model=ImportSessionResponse, status_code=201)
async def start_import(
    file: UploadFile = File(...),
    department_id: str = Form(..., description="Department the items belong to"),
    created_by: Optional[str] = Form(None, description="Importing user id"),
):
    """
    Upload a spreadsheet (.xlsx, .xls or .csv) and open an import session.

    Returns the detected headers, the proposed mapping and the first
    validation pass.

    Raises:
        422: File unreadable or has no data rows
    """
    logger.info(
        "import_upload_started",
        filename=file.filename,
        content_type=file.content_type,
    )

    try:
        content = await file.read()
        service = get_import_service()
        session = service.start_import(
            BytesIO(content),
            file.filename,
            department_id=department_id,
            created_by=created_by,
        )
        return JSONResponse(
            status_code=201,
            content=service.summarize(session).model_dump(mode="json"),
        )
    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}", response_model=ImportSessionResponse)
async def get_import(session_id: str):
    """Current state of an import session."""
    try:
        service = get_import_service()
        return service.summarize(service.get_session(session_id))
    except Exception as e:
        return handle_error(e)


@router.put("/{session_id}/mapping", response_model=ImportSessionResponse)
async def update_mapping(session_id: str, data: MappingUpdateRequest):
    """
    Replace the column mapping and re-validate.

    Raises:
        409: Field mapped twice, or session already committed
        422: Unknown header
    """
    try:
        service = get_import_service()
        return service.summarize(service.update_mapping(session_id, data.mapping))
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/validate", response_model=ImportSessionResponse)
async def validate_import(session_id: str):
    """Re-run row validation."""
    try:
        service = get_import_service()
        return service.summarize(service.validate(session_id))
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/enrich", response_model=ImportSessionResponse)
async def enrich_import(session_id: str):
    """
    Enrich rows lacking a description or item code.

    Falls back to local heuristics when the lookup service is down;
    `enrichment.online_available` reports which happened.
    """
    try:
        service = get_import_service()
        return service.summarize(await service.enrich(session_id))
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/rows/{row_index}/enrich", response_model=ImportSessionResponse)
async def enrich_import_row(session_id: str, row_index: int):
    """Re-enrich a single row (0-based index)."""
    try:
        service = get_import_service()
        return service.summarize(await service.enrich_row(session_id, row_index))
    except Exception as e:
        return handle_error(e)


@router.put("/{session_id}/rows/{row_index}/images", response_model=ImportSessionResponse)
async def set_row_images(session_id: str, row_index: int, data: SelectedImagesRequest):
    """Replace a row's selected images; the first one is the primary image."""
    try:
        service = get_import_service()
        return service.summarize(service.set_selected_images(session_id, row_index, data.images))
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/reconcile", response_model=ImportSessionResponse)
async def reconcile_import(session_id: str, data: Optional[ReconcileRequest] = None):
    """Classify rows as new / update / duplicate / error against existing items."""
    try:
        data = data or ReconcileRequest()
        service = get_import_service()
        return service.summarize(await service.reconcile(session_id, data.mode))
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/commit", response_model=ImportSessionResponse)
async def commit_import(session_id: str, data: Optional[CommitRequest] = None):
    """
    Commit the session's rows.

    Raises:
        409: Already committed, or cancelled mid-way
        422: No column mapped to the item name
    """
    def log_progress(percent: int) -> None:
        logger.debug("import_commit_progress", session_id=session_id, percent=percent)

    try:
        data = data or CommitRequest()
        service = get_import_service()
        session = await service.commit(session_id, data.mode, on_progress=log_progress)
        return service.summarize(session)
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/images/persist", response_model=ImportSessionResponse)
async def persist_images(session_id: str):
    """Copy selected images of committed rows into storage (retries failed jobs)."""
    try:
        service = get_import_service()
        return service.summarize(await service.persist_images(session_id))
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/cancel", response_model=ImportSessionResponse)
async def cancel_import(session_id: str):
    """Stop the running phase at its next chunk or wave."""
    try:
        service = get_import_service()
        return service.summarize(service.cancel(session_id))
    except Exception as e:
        return handle_error(e)


@router.delete("/{session_id}", status_code=204)
async def discard_import(session_id: str):
    """Cancel any running phase and discard the session."""
    try:
        get_import_service().discard(session_id)
        return None
    except Exception as e:
        return handle_error(e)
