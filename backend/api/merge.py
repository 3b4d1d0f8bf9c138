"""
GeoJSON merge endpoints.

The drop surface posts file batches to ``/files``, the reorderable list posts
moves to ``/files/reorder`` and the merge button fetches ``/merge``, which
answers with the merged FeatureCollection as a ``result.txt`` attachment.
Every browser session owns one working set, keyed by the ``session_id`` cookie.
"""
import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status

import core.config as core_config
from api.deps import get_session_id, set_session_cookie
from models.merge import (
    InputFile,
    KeyMappingEntry,
    KeyMappingResponse,
    ReorderRequest,
    WorkingSet,
    WorkingSetResponse,
    to_file_entry,
)
from services.merge.engine import (
    CategoryValidationError,
    DocumentParseError,
    ReorderError,
    ingest,
    merge_working_set,
    reorder,
    serialize_document,
)
from services.merge.key_mapping import get_key_mapping
from services.storage.working_set_store import commit_working_set, get_working_set

router = APIRouter(tags=["merge"])

logger = logging.getLogger(__name__)


# Helper function for formatting file size
def format_file_size(bytes_size):
    for unit in ["B", "KB", "MB", "GB"]:
        if bytes_size < 1024 or unit == "GB":
            return f"{bytes_size:.2f} {unit}" if unit != "B" else f"{bytes_size} {unit}"
        bytes_size /= 1024.0


def _working_set_response(working_set: WorkingSet) -> WorkingSetResponse:
    return WorkingSetResponse(
        files=[to_file_entry(entry) for entry in working_set.entries],
    )


def _check_size(name: str, size: int) -> None:
    if size > core_config.MAX_FILE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=(
                f"File '{name}' ({format_file_size(size)}) exceeds the limit of "
                f"{format_file_size(core_config.MAX_FILE_SIZE)}."
            ),
        )


async def _read_upload(upload: UploadFile) -> InputFile:
    name = upload.filename or ""
    # Prefer server-provided size (if multipart header contains it) for a fast pre-check
    content_length = getattr(upload, "size", None)
    if content_length is not None:
        _check_size(name, content_length)
    content = await upload.read()
    _check_size(name, len(content))
    return InputFile(name=name, raw_content=content)


@router.post("/files", response_model=WorkingSetResponse)
async def upload_files(
    response: Response,
    files: Optional[List[UploadFile]] = File(None),
    session_id: str = Depends(get_session_id),
) -> WorkingSetResponse:
    """Add a dropped batch of GeoJSON files to the end of the working set.

    The batch is committed as a whole or not at all.
    """
    set_session_cookie(response, session_id)
    # A drop without files gets the category message, like an uncategorized one
    files = files or []
    try:
        # Read the whole batch before touching the working set
        results = await asyncio.gather(
            *(_read_upload(upload) for upload in files), return_exceptions=True
        )
    finally:
        for upload in files:
            await upload.close()

    for result in results:
        if isinstance(result, Exception):
            raise result
    batch = list(results)

    try:
        # Parse in a thread pool to not block the event loop
        loop = asyncio.get_running_loop()
        _, accepted = await loop.run_in_executor(
            None,
            ingest,
            WorkingSet(),
            batch,
            core_config.GEOJSON_SUFFIX_CASE_SENSITIVE,
        )
    except CategoryValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DocumentParseError as e:
        logger.error(f"Aborted batch for session {session_id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    # No await between reading and committing, so concurrent batches of one
    # session cannot overwrite each other
    working_set = WorkingSet(entries=get_working_set(session_id).entries + accepted)
    commit_working_set(session_id, working_set)
    logger.info(f"Session {session_id}: added {len(accepted)} file(s), {len(working_set)} in total")
    return _working_set_response(working_set)


@router.get("/files", response_model=WorkingSetResponse)
async def list_files(
    response: Response, session_id: str = Depends(get_session_id)
) -> WorkingSetResponse:
    set_session_cookie(response, session_id)
    return _working_set_response(get_working_set(session_id))


@router.post("/files/reorder", response_model=WorkingSetResponse)
async def reorder_files(
    payload: ReorderRequest,
    response: Response,
    session_id: str = Depends(get_session_id),
) -> WorkingSetResponse:
    """Move one file to a new position, shifting the files in between."""
    set_session_cookie(response, session_id)
    try:
        working_set = reorder(
            get_working_set(session_id), payload.source_index, payload.destination_index
        )
    except ReorderError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    commit_working_set(session_id, working_set)
    return _working_set_response(working_set)


@router.post("/merge")
async def merge_files(session_id: str = Depends(get_session_id)) -> Response:
    """
    Merge the working set into one FeatureCollection.

    Returns:
    - 204 with an empty body when there is nothing to merge
    - 200 with the merged document as a text/plain ``result.txt`` attachment
    """
    working_set = get_working_set(session_id)
    key_mapping = get_key_mapping(core_config.get_key_mapping_variant())
    try:
        document = merge_working_set(working_set, key_mapping)
    except CategoryValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if document is None:
        result = Response(status_code=status.HTTP_204_NO_CONTENT)
    else:
        result = Response(
            content=serialize_document(document),
            media_type="text/plain; charset=utf-8",
            headers={
                "Content-Disposition": (
                    f'attachment; filename="{core_config.RESULT_FILENAME}"'
                )
            },
        )
    set_session_cookie(result, session_id)
    return result


@router.get("/merge/key-mappings", response_model=KeyMappingResponse)
async def get_key_mappings() -> KeyMappingResponse:
    """Return the property key renames applied by ``/merge``, in match order."""
    variant = core_config.get_key_mapping_variant()
    return KeyMappingResponse(
        variant=variant,
        mappings=[
            KeyMappingEntry(prefix=prefix, canonical=canonical)
            for prefix, canonical in get_key_mapping(variant)
        ],
    )
