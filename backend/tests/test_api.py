"""
End-to-end tests through the HTTP surface.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeTranscriber, transcript
from meetnotes.main import create_app


@pytest.fixture
def fake():
    return FakeTranscriber(default=transcript((0.0, 2.0, "uploaded words"), (2.0, 3.0, "more words")))


@pytest.fixture
def client(settings, fake):
    app = create_app(settings, transcriber=fake)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def meeting_id(client):
    return client.post("/meetings", json={"title": "Planning"}).json()["id"]


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "external call.mp3"
    path.write_bytes(b"\x00" * 32)
    return path


def add_upload(client, meeting_id, path, speaker=None):
    res = client.post(f"/meetings/{meeting_id}/uploads", json={"source_path": str(path), "speaker_label": speaker})
    assert res.status_code == 200, res.text
    return res.json()


def live(client, meeting_id, speaker, text, start, is_final=False):
    return client.post("/live/events", json={
        "meeting_id": meeting_id,
        "speaker_label": speaker,
        "chunks": [{"start": start, "end": start + 1.0, "text": text}],
        "is_final": is_final,
    })


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_meeting_crud(client, meeting_id):
    assert client.get(f"/meetings/{meeting_id}").json()["meeting"]["title"] == "Planning"
    assert client.put(f"/meetings/{meeting_id}", json={"title": "Retro"}).json()["title"] == "Retro"
    assert [m["id"] for m in client.get("/meetings").json()] == [meeting_id]


def test_opening_a_meeting_marks_it_current(client, meeting_id):
    assert client.get(f"/meetings/{meeting_id}").json()["open"] is False
    assert client.post(f"/meetings/{meeting_id}/open").json()["meeting_id"] == meeting_id
    assert client.get(f"/meetings/{meeting_id}").json()["open"] is True


def test_unknown_meeting_is_404(client):
    assert client.get("/meetings/999").status_code == 404
    assert client.post("/meetings/999/live/start").status_code == 404


class TestUploadsFlow:
    def test_upload_transcribe_and_view(self, client, meeting_id, audio_file):
        upload = add_upload(client, meeting_id, audio_file, speaker="Client")
        assert upload["label"] == "external call.mp3"
        assert upload["transcription_status"] == "pending"

        res = client.post(f"/uploads/{upload['id']}/transcribe")
        assert res.status_code == 200, res.text
        assert res.json()["segment_count"] == 2

        sections = client.get(f"/meetings/{meeting_id}/transcript").json()
        assert len(sections) == 1
        assert sections[0]["key"] == f"upload-{upload['id']}"
        assert sections[0]["runs"][0]["speaker"] == "Client"
        assert sections[0]["runs"][0]["text"] == "uploaded words more words"

        sources = client.get(f"/meetings/{meeting_id}/sources").json()
        assert sources[0]["transcription_status"] == "completed"

    def test_unsupported_format_is_400(self, client, meeting_id, tmp_path):
        doc = tmp_path / "notes.txt"
        doc.write_text("not audio")
        res = client.post(f"/meetings/{meeting_id}/uploads", json={"source_path": str(doc)})
        assert res.status_code == 400
        assert "Unsupported audio format" in res.json()["error"]

    def test_missing_file_is_400(self, client, meeting_id, tmp_path):
        res = client.post(f"/meetings/{meeting_id}/uploads", json={"source_path": str(tmp_path / "gone.mp3")})
        assert res.status_code == 400

    def test_failed_transcription_is_502_and_marks_upload(self, client, fake, meeting_id, audio_file):
        upload = add_upload(client, meeting_id, audio_file)
        fake.default = RuntimeError("model exploded")

        res = client.post(f"/uploads/{upload['id']}/transcribe")

        assert res.status_code == 502
        assert res.json()["source_id"] == upload["id"]
        sources = client.get(f"/meetings/{meeting_id}/sources").json()
        assert sources[0]["transcription_status"] == "failed"

    def test_speaker_label_update(self, client, meeting_id, audio_file):
        upload = add_upload(client, meeting_id, audio_file)
        assert upload["speaker_label"] == "Uploaded"
        res = client.put(f"/uploads/{upload['id']}/speaker", json={"speaker_label": " Board "})
        assert res.json()["speaker_label"] == "Board"
        assert client.put(f"/uploads/{upload['id']}/speaker", json={"speaker_label": "  "}).status_code == 422
        assert client.put("/uploads/999/speaker", json={"speaker_label": "x"}).status_code == 404

    def test_delete_upload_removes_its_section(self, client, meeting_id, audio_file):
        upload = add_upload(client, meeting_id, audio_file)
        client.post(f"/uploads/{upload['id']}/transcribe")

        assert client.delete(f"/uploads/{upload['id']}").status_code == 200
        assert client.get(f"/meetings/{meeting_id}/transcript").json() == []
        assert client.delete(f"/uploads/{upload['id']}").status_code == 404


class TestOrdering:
    def test_move_and_reorder(self, client, meeting_id, audio_file):
        first = add_upload(client, meeting_id, audio_file)
        second = add_upload(client, meeting_id, audio_file)

        res = client.post(f"/meetings/{meeting_id}/sources/move", json={"index": 0, "direction": "down"})
        assert res.status_code == 200, res.text
        assert res.json()["outcome"] == "applied"
        assert [s["id"] for s in res.json()["sources"]] == [second["id"], first["id"]]

        res = client.post(f"/meetings/{meeting_id}/sources/reorder", json={"items": [
            {"kind": "upload", "id": first["id"], "new_index": 0},
            {"kind": "upload", "id": second["id"], "new_index": 1},
        ]})
        assert [s["display_order"] for s in res.json()["sources"]] == [0, 1]
        assert [s["id"] for s in res.json()["sources"]] == [first["id"], second["id"]]

    def test_invalid_orders_are_422_with_code(self, client, meeting_id, audio_file):
        upload = add_upload(client, meeting_id, audio_file)

        res = client.post(f"/meetings/{meeting_id}/sources/move", json={"index": 0, "direction": "up"})
        assert res.status_code == 422
        assert res.json()["code"] == "out_of_range"

        res = client.post(f"/meetings/{meeting_id}/sources/reorder", json={"items": [
            {"kind": "segment", "id": upload["id"], "new_index": 0},
        ]})
        assert res.status_code == 422
        assert res.json()["code"] == "unknown_source"


class TestLive:
    def test_live_session_round_trip(self, client, meeting_id):
        assert client.post(f"/meetings/{meeting_id}/live/start").json()["active_meeting_id"] == meeting_id
        assert live(client, meeting_id, "Me", "good", 0.0).json()["outcome"] == "applied"
        live(client, meeting_id, "Me", "morning", 1.0)
        live(client, meeting_id, "Others", "hi all", 2.0)

        detail = client.get(f"/meetings/{meeting_id}").json()
        assert detail["live"] is True
        assert [s["text"] for s in detail["transcript_segments"]] == ["good morning", "hi all"]

        stopped = client.post(f"/meetings/{meeting_id}/live/stop").json()
        assert stopped == {"outcome": "applied", "active_meeting_id": None}
        assert client.get(f"/meetings/{meeting_id}").json()["meeting"]["ended_at"] is not None

        sections = client.get(f"/meetings/{meeting_id}/transcript", params={"speaker": "others"}).json()
        assert [s["key"] for s in sections] == ["live"]
        assert [r["text"] for r in sections[0]["runs"]] == ["hi all"]

    def test_final_event_persists_the_session(self, client, meeting_id):
        client.post(f"/meetings/{meeting_id}/live/start")
        live(client, meeting_id, "Me", "first words", 0.0)
        res = live(client, meeting_id, "Others", "last words", 1.0, is_final=True)
        assert res.json() == {"outcome": "applied", "active_meeting_id": None}

        client.post(f"/meetings/{meeting_id}/live/start")
        live(client, meeting_id, "Me", "next session", 5.0)
        segments = client.get(f"/meetings/{meeting_id}/segments").json()
        assert [s["text"] for s in segments] == ["first words", "last words", "next session"]
        assert len({s["id"] for s in segments}) == 3

    def test_event_for_inactive_meeting_is_stale(self, client, meeting_id):
        res = live(client, meeting_id, "Me", "nobody listening", 0.0)
        assert res.status_code == 200
        assert res.json()["outcome"] == "stale_discarded"
        assert client.get(f"/meetings/{meeting_id}/segments").json() == []


def test_settings_round_trip(client):
    assert client.get("/settings").json()["profile"]["display_name"] == "Me"
    saved = client.post("/settings", json={"profile": {"display_name": "Dana"}}).json()
    assert saved["profile"]["display_name"] == "Dana"
    assert client.post("/settings", json={"transcription": {"model_id": "gigantic"}}).status_code == 422
