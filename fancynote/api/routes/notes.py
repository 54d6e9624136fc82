"""Notes endpoints: processing triggers, CRUD and attachment retrieval."""

import json
import logging
import mimetypes
from collections.abc import AsyncIterator
from typing import Annotated, cast

from fastapi import (
    APIRouter,
    BackgroundTasks,
    File,
    Form,
    HTTPException,
    Query,
    Response,
    UploadFile,
    status,
)
from fastapi.responses import StreamingResponse

from fancynote.api.deps import (
    CurrentUserDep,
    IntakeDep,
    LinkUserDep,
    PipelineDep,
    SessionDep,
    StoreDep,
)
from fancynote.schemas.note import (
    AttachmentAdded,
    AttachmentDelete,
    NoteBatchDelete,
    NoteBatchDeleted,
    NoteListResponse,
    NoteResponse,
    NoteSavedResponse,
    ProcessNoteAccepted,
    ProcessNoteRequest,
    ProcessType,
)
from fancynote.services.attachment_service import attachment_category, store_upload
from fancynote.services.intake_service import NewUpload
from fancynote.services.note_service import NoteService
from fancynote.services.profile_service import ProfileService
from fancynote.services.storage_service import AttachmentStore, is_safe_relative_path
from fancynote.tasks.processing_tasks import run_enrichment
from fancynote.utils.events import event_manager
from fancynote.utils.exceptions import FancyNoteException, NotFoundError, ServiceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["notes"])


def _json_list(raw: str | None, field: str) -> list:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = None
    if not isinstance(value, list):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{field} must be a JSON list",
        )
    return value


async def _collect_uploads(
    voice_recordings: list[UploadFile] | None,
    attachments: list[UploadFile] | None,
    context_flags: list,
) -> list[NewUpload]:
    """Read uploaded files; attachment N takes context flag N (default included)."""
    uploads = []
    for recording in voice_recordings or []:
        data = await recording.read()
        if data:
            uploads.append(
                NewUpload(
                    filename=recording.filename or "recording.webm",
                    data=data,
                    content_type=recording.content_type,
                    is_recording=True,
                )
            )
    for index, attachment in enumerate(attachments or []):
        data = await attachment.read()
        if not data:
            continue
        flag = context_flags[index] if index < len(context_flags) else True
        uploads.append(
            NewUpload(
                filename=attachment.filename or "attachment",
                data=data,
                content_type=attachment.content_type,
                include_in_context=bool(flag),
            )
        )
    return uploads


@router.post("/process-async", response_model=ProcessNoteAccepted)
async def process_note_async(
    request: ProcessNoteRequest,
    session: SessionDep,
    current_user: CurrentUserDep,
    background_tasks: BackgroundTasks,
    pipeline: PipelineDep,
) -> ProcessNoteAccepted:
    """
    Start processing a saved note in the background.

    Returns immediately; the outcome is reported through the note's status
    fields, a notification and the event stream.
    """
    user_id = cast(int, current_user.id)
    if request.note_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Bad Request: Missing noteId",
        )

    try:
        note_service = NoteService(session)
        note = note_service.get_note(request.note_id, user_id)
        ai_settings_raw = ProfileService(session).get_ai_settings_raw(user_id)
    except NotFoundError as e:
        logger.error(f"Error fetching note {request.note_id} for processing: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch note data: {e.detail}",
        )

    note_service.set_status(note, "processing")
    note_id = cast(int, note.id)
    background_tasks.add_task(
        run_enrichment,
        pipeline,
        note_id,
        user_id,
        ai_settings_raw,
        request.process_type,
    )
    await event_manager.publish_status(user_id, note_id, "processing")

    return ProcessNoteAccepted(note_id=note_id)


@router.post("", response_model=NoteSavedResponse, status_code=status.HTTP_201_CREATED)
async def create_note(
    session: SessionDep,
    current_user: CurrentUserDep,
    background_tasks: BackgroundTasks,
    intake: IntakeDep,
    pipeline: PipelineDep,
    title: Annotated[str | None, Form()] = None,
    manual_text: Annotated[str, Form()] = "",
    process_type: Annotated[ProcessType, Form()] = ProcessType.FULL,
    attachment_context_flags: Annotated[str | None, Form()] = None,
    web_urls: Annotated[str | None, Form()] = None,
    voice_recordings: Annotated[list[UploadFile] | None, File()] = None,
    attachments: Annotated[list[UploadFile] | None, File()] = None,
) -> NoteSavedResponse:
    """
    Create a note from text, recordings, attachments and web pages.

    Everything is uploaded to the attachment store, then the note is
    processed in the background.
    """
    user_id = cast(int, current_user.id)
    flags = _json_list(attachment_context_flags, "attachment_context_flags")
    urls = _json_list(web_urls, "web_urls")
    uploads = await _collect_uploads(voice_recordings, attachments, flags)

    try:
        result = await intake.create(session, user_id, title, manual_text, uploads, urls)
        ai_settings_raw = ProfileService(session).get_ai_settings_raw(user_id)
    except ServiceError as e:
        raise e.to_http_exception()
    except FancyNoteException as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    note_id = cast(int, result.note.id)
    background_tasks.add_task(
        run_enrichment, pipeline, note_id, user_id, ai_settings_raw, process_type
    )

    return NoteSavedResponse(
        message="Note created, processing started",
        note_id=note_id,
        scraping_errors=result.scraping_errors,
    )


@router.get("", response_model=NoteListResponse)
def list_notes(
    session: SessionDep,
    current_user: CurrentUserDep,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> NoteListResponse:
    """
    List all notes for the current user with pagination.
    """
    user_id = cast(int, current_user.id)
    notes, total = NoteService(session).list_notes(user_id, skip, limit)
    return NoteListResponse(
        notes=[NoteResponse.model_validate(note) for note in notes],
        total=total,
    )


@router.post("/delete-batch", response_model=NoteBatchDeleted)
async def delete_notes_batch(
    request: NoteBatchDelete,
    session: SessionDep,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> NoteBatchDeleted:
    """
    Delete several notes and their stored files.

    IDs that are not the caller's are ignored. File deletion failures are
    reported in ``storageErrors`` and do not keep the notes alive.
    """
    user_id = cast(int, current_user.id)
    if not request.note_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="noteIds must be a non-empty list",
        )

    note_service = NoteService(session)
    owned, paths = note_service.find_notes(request.note_ids, user_id)
    if not owned:
        return NoteBatchDeleted(message="No matching notes found to delete")

    storage_errors: list[str] = []
    if paths:
        try:
            async with store:
                for path in paths:
                    if not path.startswith(f"{user_id}/"):
                        logger.warning(f"Skipping deletion of foreign path {path} for user {user_id}")
                        storage_errors.append(f"Skipped invalid path: {path}")
                        continue
                    try:
                        await store.delete(path)
                    except FancyNoteException as e:
                        logger.error(f"Failed to delete stored file {path}: {e}")
                        storage_errors.append(f"Failed to delete {path}: {e}")
        except ServiceError as e:
            raise e.to_http_exception()

    deleted = note_service.delete_notes(owned)
    logger.info(f"Deleted {len(deleted)} notes for user {user_id}")
    return NoteBatchDeleted(
        message=f"Deleted {len(deleted)} notes and their files",
        deleted_note_ids=deleted,
        storage_errors=storage_errors,
    )


async def _stream_and_close(store: AttachmentStore, path: str) -> AsyncIterator[bytes]:
    try:
        async for chunk in store.iter_bytes(path):
            yield chunk
    finally:
        await store.close()


@router.get("/attachment/{path:path}")
async def get_attachment(path: str, current_user: LinkUserDep, store: StoreDep):
    """
    Stream a stored attachment.

    Links carry their token in the query string so that external services
    (the chat provider fetching images) can open them.
    """
    user_id = cast(int, current_user.id)
    if not is_safe_relative_path(path) or not path.startswith(f"{user_id}/"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    try:
        await store.connect()
        size = await store.size(path)
    except NotFoundError as e:
        await store.close()
        raise e.to_http_exception()
    except ServiceError as e:
        await store.close()
        raise e.to_http_exception()

    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return StreamingResponse(
        _stream_and_close(store, path),
        media_type=media_type,
        headers={"Content-Length": str(size)},
    )


@router.get("/{note_id}", response_model=NoteResponse)
def get_note(note_id: int, session: SessionDep, current_user: CurrentUserDep) -> NoteResponse:
    """
    Get a single note by ID.
    """
    user_id = cast(int, current_user.id)
    try:
        note = NoteService(session).get_note(note_id, user_id)
    except NotFoundError as e:
        raise e.to_http_exception()
    return NoteResponse.model_validate(note)


@router.post("/{note_id}/update", response_model=NoteSavedResponse)
async def update_note_content(
    note_id: int,
    session: SessionDep,
    current_user: CurrentUserDep,
    intake: IntakeDep,
    manual_text: Annotated[str, Form()] = "",
    attachment_context_flags: Annotated[str | None, Form()] = None,
    web_urls: Annotated[str | None, Form()] = None,
    voice_recordings: Annotated[list[UploadFile] | None, File()] = None,
    attachments: Annotated[list[UploadFile] | None, File()] = None,
) -> NoteSavedResponse:
    """
    Merge new text, recordings, attachments and web pages into a note.

    Runs synchronously; the previous text is kept as a backup attachment.
    """
    user_id = cast(int, current_user.id)
    flags = _json_list(attachment_context_flags, "attachment_context_flags")
    urls = _json_list(web_urls, "web_urls")
    uploads = await _collect_uploads(voice_recordings, attachments, flags)

    try:
        ai_settings_raw = ProfileService(session).get_ai_settings_raw(user_id)
        result = await intake.update(
            session, note_id, user_id, ai_settings_raw, manual_text, uploads, urls
        )
    except NotFoundError as e:
        raise e.to_http_exception()
    except FancyNoteException as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return NoteSavedResponse(
        message="Note updated successfully",
        note_id=note_id,
        scraping_errors=result.scraping_errors,
    )


async def _attach_uploads(
    store: AttachmentStore, user_id: int, uploads: list[NewUpload]
) -> dict[str, list[dict]]:
    added: dict[str, list[dict]] = {"files": [], "images": []}
    async with store:
        for upload in uploads:
            category, record = await store_upload(
                store,
                user_id,
                upload.filename,
                upload.data,
                content_type=upload.content_type,
                include_in_context=upload.include_in_context,
                category=attachment_category(upload.content_type),
            )
            added[category].append(record)
    return added


@router.patch("/{note_id}", response_model=NoteResponse)
async def edit_note(
    note_id: int,
    session: SessionDep,
    current_user: CurrentUserDep,
    store: StoreDep,
    text: Annotated[str | None, Form()] = None,
    attachment_context_flags: Annotated[str | None, Form()] = None,
    attachments: Annotated[list[UploadFile] | None, File()] = None,
) -> NoteResponse:
    """
    Edit a note by hand: replace its text and attach files, without any AI
    processing. An omitted ``text`` leaves the current text as it is.
    """
    user_id = cast(int, current_user.id)
    flags = _json_list(attachment_context_flags, "attachment_context_flags")
    note_service = NoteService(session)
    try:
        note = note_service.get_note(note_id, user_id)
    except NotFoundError as e:
        raise e.to_http_exception()

    uploads = await _collect_uploads(None, attachments, flags)
    added: dict[str, list[dict]] = {}
    if uploads:
        try:
            added = await _attach_uploads(store, user_id, uploads)
        except ServiceError as e:
            raise e.to_http_exception()

    if note_service.edit_note(note, text=text, added=added):
        logger.info(f"Note {note_id} edited by user {user_id}")
    return NoteResponse.model_validate(note)


@router.post("/{note_id}/attachments", response_model=AttachmentAdded)
async def add_attachment(
    note_id: int,
    session: SessionDep,
    current_user: CurrentUserDep,
    store: StoreDep,
    attachment: Annotated[UploadFile | None, File()] = None,
    include_in_context: Annotated[bool, Form()] = True,
) -> AttachmentAdded:
    """
    Attach one file to an existing note. The note is not reprocessed.
    """
    user_id = cast(int, current_user.id)
    data = await attachment.read() if attachment is not None else b""
    if attachment is None or not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A non-empty attachment file is required",
        )

    note_service = NoteService(session)
    try:
        note = note_service.get_note(note_id, user_id)
    except NotFoundError as e:
        raise e.to_http_exception()

    upload = NewUpload(
        filename=attachment.filename or "attachment",
        data=data,
        content_type=attachment.content_type,
        include_in_context=include_in_context,
    )
    try:
        added = await _attach_uploads(store, user_id, [upload])
    except ServiceError as e:
        raise e.to_http_exception()

    note_service.edit_note(note, added=added)
    record = next(records[0] for records in added.values() if records)
    return AttachmentAdded(attachment=record, note=NoteResponse.model_validate(note))


@router.delete("/{note_id}/attachments", status_code=status.HTTP_204_NO_CONTENT)
async def delete_attachment(
    note_id: int,
    attachment: AttachmentDelete,
    session: SessionDep,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> Response:
    """
    Remove one attachment from a note and from the attachment store.
    """
    user_id = cast(int, current_user.id)
    try:
        NoteService(session).remove_attachment(note_id, user_id, attachment.path)
    except NotFoundError as e:
        raise e.to_http_exception()

    try:
        async with store:
            await store.delete(attachment.path)
    except FancyNoteException as e:
        logger.error(f"Failed to delete stored attachment {attachment.path}: {e}")

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_note(
    note_id: int,
    session: SessionDep,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> Response:
    """
    Delete a note and, best effort, its stored attachments.
    """
    user_id = cast(int, current_user.id)
    try:
        paths = NoteService(session).delete_note(note_id, user_id)
    except NotFoundError as e:
        raise e.to_http_exception()

    if paths:
        try:
            async with store:
                for path in paths:
                    await store.delete(path)
        except FancyNoteException as e:
            logger.error(f"Failed to delete stored files of note {note_id}: {e}")

    return Response(status_code=status.HTTP_204_NO_CONTENT)
