"""Tests for notes endpoints."""

import json

from fastapi.testclient import TestClient
from sqlmodel import Session

from fancynote.models import Note
from fancynote.schemas.note import ProcessType
from fancynote.services.auth_service import create_attachment_token
from fancynote.services.scraping_service import ScrapeResult


def test_process_async_accepts_and_schedules(
    client: TestClient, session: Session, auth_headers, test_user, test_note, recording_pipeline
):
    """Test that the trigger marks the note processing and schedules the pipeline."""
    response = client.post(
        "/api/notes/process-async",
        headers=auth_headers,
        json={"noteId": test_note.id},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["noteId"] == test_note.id
    assert data["message"] == "Note processing started"

    session.refresh(test_note)
    assert test_note.processing_status == "processing"

    assert len(recording_pipeline.runs) == 1
    note_id, user_id, ai_settings_raw, process_type = recording_pipeline.runs[0]
    assert (note_id, user_id) == (test_note.id, test_user.id)
    assert json.loads(ai_settings_raw)["model"] == "anthropic/some-model"
    assert process_type == ProcessType.FULL


def test_process_async_no_ai_mode(client: TestClient, auth_headers, test_note, recording_pipeline):
    response = client.post(
        "/api/notes/process-async",
        headers=auth_headers,
        json={"noteId": test_note.id, "processType": "no_ai_content_structuring"},
    )

    assert response.status_code == 200
    assert recording_pipeline.runs[0][3] == ProcessType.NO_AI_CONTENT_STRUCTURING


def test_process_async_requires_auth(client: TestClient, test_note, recording_pipeline):
    response = client.post("/api/notes/process-async", json={"noteId": test_note.id})

    assert response.status_code == 401
    assert recording_pipeline.runs == []


def test_process_async_missing_note_id(client: TestClient, auth_headers, recording_pipeline):
    response = client.post("/api/notes/process-async", headers=auth_headers, json={})

    assert response.status_code == 400
    assert response.json()["detail"] == "Bad Request: Missing noteId"
    assert recording_pipeline.runs == []


def test_process_async_other_users_note(
    client: TestClient, session: Session, auth_headers, other_user, recording_pipeline
):
    """Test that a note owned by someone else cannot be fetched for processing."""
    foreign = Note(user_id=other_user.id, text="private")
    session.add(foreign)
    session.commit()
    session.refresh(foreign)

    response = client.post(
        "/api/notes/process-async", headers=auth_headers, json={"noteId": foreign.id}
    )

    assert response.status_code == 500
    assert response.json()["detail"].startswith("Failed to fetch note data")
    assert recording_pipeline.runs == []
    session.refresh(foreign)
    assert foreign.processing_status == "idle"


def test_create_note_with_uploads(
    client: TestClient,
    session: Session,
    auth_headers,
    test_user,
    store_root,
    scraper,
    recording_pipeline,
):
    """Test note creation from text, a recording, an attachment and web pages."""
    scraper.results["https://good.example/article"] = ScrapeResult(
        success=True, content="Article body", title="Good_Article"
    )

    response = client.post(
        "/api/notes",
        headers=auth_headers,
        data={
            "manual_text": "Typed text",
            "attachment_context_flags": json.dumps([False]),
            "web_urls": json.dumps(["https://good.example/article", "https://bad.example"]),
        },
        files=[
            ("voice_recordings", ("memo.webm", b"audio bytes", "audio/webm")),
            ("attachments", ("doc.txt", b"document body", "text/plain")),
        ],
    )

    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "Note created, processing started"
    assert data["scrapingErrors"] == [{"url": "https://bad.example", "error": "Unreachable"}]

    note = session.get(Note, data["noteId"])
    assert note is not None
    assert note.title == "New Note"
    assert note.text == "Typed text"
    assert note.processing_status == "processing"

    assert len(note.voice) == 1
    assert note.voice[0]["path"].startswith(f"{test_user.id}/voice/")
    assert (store_root / note.voice[0]["path"]).read_bytes() == b"audio bytes"

    by_name = {record["name"]: record for record in note.files}
    assert by_name["doc.txt"]["includeInContext"] is False
    assert by_name["Good_Article.txt"]["originalUrl"] == "https://good.example/article"

    assert [run[0] for run in recording_pipeline.runs] == [note.id]


def test_create_note_keeps_custom_title(client: TestClient, session: Session, auth_headers):
    response = client.post(
        "/api/notes",
        headers=auth_headers,
        data={"title": "Groceries", "manual_text": "milk"},
    )

    assert response.status_code == 201
    note = session.get(Note, response.json()["noteId"])
    assert note is not None
    assert note.title == "Groceries"


def test_create_note_rejects_bad_url_list(client: TestClient, auth_headers, recording_pipeline):
    response = client.post(
        "/api/notes",
        headers=auth_headers,
        data={"manual_text": "x", "web_urls": "https://not-a-list.example"},
    )

    assert response.status_code == 400
    assert recording_pipeline.runs == []


def test_list_notes_empty(client: TestClient, auth_headers):
    """Test listing notes when empty."""
    response = client.get("/api/notes", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["notes"] == []
    assert data["total"] == 0


def test_list_notes_with_notes(client: TestClient, auth_headers, test_note):
    """Test listing notes with existing notes."""
    response = client.get("/api/notes", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert len(data["notes"]) == 1
    assert data["total"] == 1
    assert data["notes"][0]["text"] == test_note.text


def test_get_note(client: TestClient, auth_headers, test_note):
    """Test getting a single note."""
    response = client.get(f"/api/notes/{test_note.id}", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == test_note.id
    assert data["title"] == "New Note"
    assert data["processing_status"] == "idle"


def test_get_note_not_found(client: TestClient, auth_headers):
    """Test getting a non-existent note."""
    response = client.get("/api/notes/99999", headers=auth_headers)
    assert response.status_code == 404


def test_get_note_no_auth(client: TestClient, test_note):
    """Test getting a note without authentication."""
    response = client.get(f"/api/notes/{test_note.id}")
    assert response.status_code == 401


def test_delete_note_removes_stored_files(
    client: TestClient, session: Session, auth_headers, test_user, put_file, store_root
):
    path = put_file(f"{test_user.id}/files/a.txt", b"content")
    note = Note(user_id=test_user.id, files=[{"path": path, "name": "a.txt"}])
    session.add(note)
    session.commit()
    session.refresh(note)
    note_id = note.id

    response = client.delete(f"/api/notes/{note_id}", headers=auth_headers)

    assert response.status_code == 204
    assert session.get(Note, note_id) is None
    assert not (store_root / path).exists()


def test_delete_note_not_found(client: TestClient, auth_headers):
    response = client.delete("/api/notes/99999", headers=auth_headers)
    assert response.status_code == 404


def test_delete_attachment(
    client: TestClient, session: Session, auth_headers, test_user, put_file, store_root
):
    keep = put_file(f"{test_user.id}/images/keep.png", b"k")
    drop = put_file(f"{test_user.id}/images/drop.png", b"d")
    note = Note(
        user_id=test_user.id,
        images=[{"path": keep, "name": "keep.png"}, {"path": drop, "name": "drop.png"}],
    )
    session.add(note)
    session.commit()
    session.refresh(note)

    response = client.request(
        "DELETE",
        f"/api/notes/{note.id}/attachments",
        headers=auth_headers,
        json={"path": drop},
    )

    assert response.status_code == 204
    session.refresh(note)
    assert [record["path"] for record in note.images] == [keep]
    assert not (store_root / drop).exists()
    assert (store_root / keep).exists()


def test_delete_attachment_unknown_path(client: TestClient, auth_headers, test_note):
    response = client.request(
        "DELETE",
        f"/api/notes/{test_note.id}/attachments",
        headers=auth_headers,
        json={"path": "1/files/missing.txt"},
    )
    assert response.status_code == 404


def test_get_attachment_with_query_token(client: TestClient, test_user, put_file):
    """Test that attachment links authenticate through the query string."""
    path = put_file(f"{test_user.id}/images/pic.png", b"\x89PNG data")
    token = create_attachment_token(test_user.id)

    response = client.get(f"/api/notes/attachment/{path}", params={"token": token})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content == b"\x89PNG data"


def test_get_attachment_with_api_token(client: TestClient, test_user, put_file):
    path = put_file(f"{test_user.id}/files/notes.bin", b"raw")

    response = client.get(
        f"/api/notes/attachment/{path}", params={"token": "integration-token"}
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/octet-stream"


def test_get_attachment_with_header(client: TestClient, auth_headers, test_user, put_file):
    path = put_file(f"{test_user.id}/files/notes.txt", b"plain")

    response = client.get(f"/api/notes/attachment/{path}", headers=auth_headers)

    assert response.status_code == 200
    assert response.text == "plain"


def test_get_attachment_without_token(client: TestClient, test_user, put_file):
    path = put_file(f"{test_user.id}/images/pic.png", b"x")

    response = client.get(f"/api/notes/attachment/{path}")

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or missing access token"


def test_get_attachment_of_other_user(client: TestClient, test_user, other_user, put_file):
    path = put_file(f"{other_user.id}/images/pic.png", b"x")
    token = create_attachment_token(test_user.id)

    response = client.get(f"/api/notes/attachment/{path}", params={"token": token})

    assert response.status_code == 403


def test_get_attachment_missing_file(client: TestClient, test_user):
    token = create_attachment_token(test_user.id)

    response = client.get(
        f"/api/notes/attachment/{test_user.id}/images/nothing.png", params={"token": token}
    )

    assert response.status_code == 404


def test_edit_note_text(client: TestClient, session: Session, auth_headers, test_note, chat):
    """Test that a manual edit replaces the text without any chat call."""
    response = client.patch(
        f"/api/notes/{test_note.id}", headers=auth_headers, data={"text": "Edited by hand"}
    )

    assert response.status_code == 200
    assert response.json()["text"] == "Edited by hand"
    assert chat.calls == []
    session.refresh(test_note)
    assert test_note.text == "Edited by hand"
    assert test_note.processing_status == "idle"


def test_edit_note_with_attachments(
    client: TestClient, session: Session, auth_headers, test_user, test_note, store_root
):
    original = test_note.text
    response = client.patch(
        f"/api/notes/{test_note.id}",
        headers=auth_headers,
        data={"attachment_context_flags": json.dumps([True, False])},
        files=[
            ("attachments", ("board.png", b"\x89PNG", "image/png")),
            ("attachments", ("memo.mp3", b"audio", "audio/mpeg")),
        ],
    )

    assert response.status_code == 200
    session.refresh(test_note)
    assert test_note.text == original
    assert [record["name"] for record in test_note.images] == ["board.png"]
    assert test_note.images[0]["path"].startswith(f"{test_user.id}/images/")
    assert test_note.images[0]["includeInContext"] is True
    # Hand-attached audio is kept as a plain file
    assert [record["name"] for record in test_note.files] == ["memo.mp3"]
    assert test_note.files[0]["includeInContext"] is False
    assert test_note.voice == []
    assert (store_root / test_note.files[0]["path"]).read_bytes() == b"audio"


def test_edit_other_users_note(client: TestClient, session: Session, auth_headers, other_user):
    foreign = Note(user_id=other_user.id, text="private")
    session.add(foreign)
    session.commit()
    session.refresh(foreign)

    response = client.patch(f"/api/notes/{foreign.id}", headers=auth_headers, data={"text": "x"})

    assert response.status_code == 404
    session.refresh(foreign)
    assert foreign.text == "private"


def test_add_attachment(
    client: TestClient, session: Session, auth_headers, test_user, test_note, store_root,
    recording_pipeline,
):
    response = client.post(
        f"/api/notes/{test_note.id}/attachments",
        headers=auth_headers,
        files={"attachment": ("agenda.txt", b"1. budget", "text/plain")},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Attachment added successfully"
    record = data["attachment"]
    assert record["name"] == "agenda.txt"
    assert record["size"] == len(b"1. budget")
    assert record["includeInContext"] is True
    assert record["path"].startswith(f"{test_user.id}/files/")
    assert [f["path"] for f in data["note"]["files"]] == [record["path"]]
    assert (store_root / record["path"]).read_bytes() == b"1. budget"
    # Attaching does not reprocess the note
    assert recording_pipeline.runs == []
    session.refresh(test_note)
    assert test_note.processing_status == "idle"


def test_add_attachment_requires_file(client: TestClient, auth_headers, test_note):
    response = client.post(f"/api/notes/{test_note.id}/attachments", headers=auth_headers)
    assert response.status_code == 400

    response = client.post(
        f"/api/notes/{test_note.id}/attachments",
        headers=auth_headers,
        files={"attachment": ("empty.txt", b"", "text/plain")},
    )
    assert response.status_code == 400


def test_add_attachment_unknown_note(client: TestClient, auth_headers):
    response = client.post(
        "/api/notes/99999/attachments",
        headers=auth_headers,
        files={"attachment": ("a.txt", b"a", "text/plain")},
    )
    assert response.status_code == 404


def test_delete_batch(
    client: TestClient, session: Session, auth_headers, test_user, other_user, put_file, store_root
):
    """Test that owned notes and their files go, other users' notes stay."""
    first_file = put_file(f"{test_user.id}/files/a.txt", b"a")
    voice = put_file(f"{test_user.id}/voice/b.webm", b"b")
    first = Note(user_id=test_user.id, files=[{"path": first_file, "name": "a.txt"}])
    second = Note(user_id=test_user.id, voice=[{"path": voice, "name": "b.webm"}])
    foreign = Note(user_id=other_user.id, text="not mine")
    session.add_all([first, second, foreign])
    session.commit()
    ids = [first.id, second.id, foreign.id]
    foreign_id = foreign.id

    response = client.post("/api/notes/delete-batch", headers=auth_headers, json={"noteIds": ids})

    assert response.status_code == 200
    data = response.json()
    assert sorted(data["deletedNoteIds"]) == sorted(ids[:2])
    assert data["storageErrors"] == []
    session.expire_all()
    assert session.get(Note, ids[0]) is None
    assert session.get(Note, ids[1]) is None
    assert session.get(Note, foreign_id) is not None
    assert not (store_root / first_file).exists()
    assert not (store_root / voice).exists()


def test_delete_batch_reports_foreign_paths(
    client: TestClient, session: Session, auth_headers, test_user, other_user, put_file, store_root
):
    foreign_path = put_file(f"{other_user.id}/files/theirs.txt", b"x")
    note = Note(user_id=test_user.id, files=[{"path": foreign_path, "name": "theirs.txt"}])
    session.add(note)
    session.commit()
    session.refresh(note)

    response = client.post(
        "/api/notes/delete-batch", headers=auth_headers, json={"noteIds": [note.id]}
    )

    assert response.status_code == 200
    assert response.json()["storageErrors"] == [f"Skipped invalid path: {foreign_path}"]
    assert (store_root / foreign_path).exists()


def test_delete_batch_validation(client: TestClient, auth_headers):
    response = client.post("/api/notes/delete-batch", headers=auth_headers, json={"noteIds": []})
    assert response.status_code == 400

    response = client.post(
        "/api/notes/delete-batch", headers=auth_headers, json={"noteIds": [99999]}
    )
    assert response.status_code == 200
    assert response.json()["deletedNoteIds"] == []
