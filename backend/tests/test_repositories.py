"""
Tests for the SQLModel repositories and the SQL storage adapter.
"""

import pytest
from sqlmodel import Session

from conftest import add_recorded, add_upload, seg
from meetnotes.errors import NotFoundError
from meetnotes.models.audio_source import SourceKind, SourceRef, source_ref
from meetnotes.models.meeting import Meeting
from meetnotes.models.uploaded_audio import UploadedAudio
from meetnotes.repositories.audio_sources import AudioSourcesRepository
from meetnotes.repositories.meetings import MeetingsRepository
from meetnotes.repositories.transcripts import TranscriptsRepository


class TestAudioSources:
    def test_new_sources_go_to_the_end_across_kinds(self, session, meeting):
        first = add_upload(session, meeting.id)
        second = add_recorded(session, meeting.id)
        third = add_upload(session, meeting.id, "b.mp3")
        assert [first.display_order, second.display_order, third.display_order] == [0, 1, 2]
        assert AudioSourcesRepository(session).next_display_order(meeting.id) == 3

    def test_orders_are_per_meeting(self, session, meeting):
        other = MeetingsRepository(session).create(Meeting(title="Other"))
        add_upload(session, meeting.id)
        add_upload(session, meeting.id)
        assert add_upload(session, other.id).display_order == 0

    def test_segment_index_increments(self, session, meeting):
        assert [add_recorded(session, meeting.id).segment_index for _ in range(3)] == [0, 1, 2]

    def test_apply_order_rolls_back_on_foreign_ref(self, session, meeting):
        repo = AudioSourcesRepository(session)
        upload = add_upload(session, meeting.id)
        recorded = add_recorded(session, meeting.id)

        with pytest.raises(LookupError):
            repo.apply_order(meeting.id, [
                SourceRef(SourceKind.SEGMENT, recorded.id),
                SourceRef(SourceKind.UPLOAD, upload.id + 50),
            ])

        with Session(session.get_bind()) as fresh:
            orders = {
                s.id: s.display_order for s in AudioSourcesRepository(fresh).list_by_meeting(meeting.id)
            }
        assert orders == {upload.id: 0, recorded.id: 1}

    def test_delete_removes_transcript_of_that_source_only(self, session, meeting):
        upload = add_upload(session, meeting.id)
        recorded = add_recorded(session, meeting.id)
        transcripts = TranscriptsRepository(session)
        transcripts.add_segments([
            seg(0.0, "from upload", source_type="upload", source_id=upload.id, meeting_id=meeting.id),
            seg(0.0, "from recording", source_type="segment", source_id=recorded.id, meeting_id=meeting.id),
            seg(0.0, "legacy", meeting_id=meeting.id),
        ])

        removed = AudioSourcesRepository(session).delete(SourceRef(SourceKind.UPLOAD, upload.id))

        assert removed.id == upload.id
        assert [s.text for s in transcripts.list_by_meeting(meeting.id)] == ["from recording", "legacy"]
        assert AudioSourcesRepository(session).get_upload(upload.id) is None

    def test_unsaved_source_has_no_ref(self):
        with pytest.raises(ValueError):
            source_ref(UploadedAudio(meeting_id=1, file_path="/tmp/a.mp3", original_filename="a.mp3"))

    def test_delete_missing_source(self, session):
        assert AudioSourcesRepository(session).delete(SourceRef(SourceKind.SEGMENT, 404)) is None


class TestLegacyMigration:
    def test_legacy_audio_becomes_first_segment(self, session):
        meeting = MeetingsRepository(session).create(Meeting(title="Old", audio_path="/old/meeting.wav"))
        upload = add_upload(session, meeting.id)
        repo = AudioSourcesRepository(session)

        segment = repo.migrate_legacy_audio(meeting.id, duration_ms=60_000)

        assert segment.segment_index == 0
        assert segment.mic_path == "/old/meeting.wav"
        assert segment.display_order == 0
        assert segment.duration_ms == 60_000
        assert repo.get_upload(upload.id).display_order == 1
        assert MeetingsRepository(session).get(meeting.id).audio_path is None

    def test_migration_is_a_noop_without_legacy_path(self, session, meeting):
        assert AudioSourcesRepository(session).migrate_legacy_audio(meeting.id) is None

    def test_migration_skips_meetings_with_segments(self, session):
        meeting = MeetingsRepository(session).create(Meeting(title="Mixed", audio_path="/old/a.wav"))
        add_recorded(session, meeting.id)
        assert AudioSourcesRepository(session).migrate_legacy_audio(meeting.id) is None


class TestSqlStorage:
    def test_append_strips_synthetic_ids(self, storage, meeting):
        saved = storage.append_segments(meeting.id, [seg(0.0, "a", seg_id=1, source_type="live")])
        assert saved[0].id is not None
        assert [s.text for s in storage.get_segments(meeting.id)] == ["a"]

    def test_segments_come_back_in_start_order(self, storage, meeting):
        storage.append_segments(meeting.id, [seg(4.0, "late"), seg(1.0, "early")])
        assert [s.text for s in storage.get_segments(meeting.id)] == ["early", "late"]

    def test_replace_source_keeps_other_sources(self, storage, session, meeting):
        upload = add_upload(session, meeting.id)
        ref = SourceRef(SourceKind.UPLOAD, upload.id)
        storage.append_segments(meeting.id, [
            seg(0.0, "old", source_type="upload", source_id=upload.id),
            seg(0.5, "live", source_type="live"),
        ])

        storage.replace_source_segments(meeting.id, ref, [seg(1.0, "new", source_type="upload", source_id=upload.id)])

        assert [s.text for s in storage.get_segments(meeting.id)] == ["live", "new"]

    def test_missing_rows_raise_not_found(self, storage):
        with pytest.raises(NotFoundError):
            storage.get_meeting(999)
        with pytest.raises(NotFoundError):
            storage.get_upload(999)
        with pytest.raises(NotFoundError):
            storage.get_recorded_segment(999)
        with pytest.raises(NotFoundError):
            storage.set_upload_status(999, "failed")


class TestMeetings:
    def test_require_unknown_meeting(self, session):
        with pytest.raises(NotFoundError):
            MeetingsRepository(session).require(999)

    def test_rename_ignores_blank_title(self, session, meeting):
        repo = MeetingsRepository(session)
        assert repo.rename(meeting.id, "  Kickoff ").title == "Kickoff"
        assert repo.rename(meeting.id, "   ").title == "Kickoff"

    def test_mark_ended_keeps_first_timestamp(self, session, meeting):
        repo = MeetingsRepository(session)
        first = repo.mark_ended(meeting.id).ended_at
        assert first is not None
        assert repo.mark_ended(meeting.id).ended_at == first
