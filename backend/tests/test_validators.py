"""Tests for input validation."""

import pytest

from ladderdraft.exceptions import InvalidArgument, InvalidDraftStatus, InvalidIdentifier
from ladderdraft.models.draft_model import DraftSession, DraftStatus
from ladderdraft.utils.validators import (
    validate_draft_status, validate_identifier, validate_player_ids, validate_rounds,
    validate_team_ids, validate_timer_extension, validate_timer_seconds
)


class TestIdentifier:
    @pytest.mark.parametrize("value", ["abc", "A-1_b", "5f0c2a4e-6d7b-4b8e-9a43-1c2d3e4f5a6b", "x" * 128])
    def test_valid(self, value):
        assert validate_identifier(value) == value

    @pytest.mark.parametrize("value", ["", None, 42, "x" * 129, "has space", "slash/id", "drop;table"])
    def test_invalid(self, value):
        with pytest.raises(InvalidIdentifier):
            validate_identifier(value)


class TestDraftStatus:
    def test_converts_value(self):
        assert validate_draft_status("live") == DraftStatus.LIVE

    def test_rejects_unknown(self):
        with pytest.raises(InvalidDraftStatus):
            validate_draft_status("drafting")

    def test_rejects_empty(self):
        with pytest.raises(InvalidDraftStatus):
            validate_draft_status("")


class TestStoredStatus:
    def test_bad_stored_status_is_typed(self):
        with pytest.raises(InvalidDraftStatus):
            DraftSession.from_dict({"id": "draft1", "status": "drafting"})

    def test_missing_status_defaults_to_not_started(self):
        assert DraftSession.from_dict({"id": "draft1"}).status == DraftStatus.NOT_STARTED

    def test_list_sessions_accepts_status_values(self, store, live):
        assert [s.id for s in store.list_sessions("live")] == ["draft1"]
        assert store.list_sessions(DraftStatus.PAUSED) == []

    def test_list_sessions_rejects_unknown_status(self, store):
        with pytest.raises(InvalidDraftStatus):
            store.list_sessions("drafting")


class TestNumericRanges:
    @pytest.mark.parametrize("seconds", [1, 30, 300])
    def test_timer_extension_bounds(self, seconds):
        assert validate_timer_extension(seconds) == seconds

    @pytest.mark.parametrize("seconds", [0, -5, 301, 400, "30", True, 1.5])
    def test_timer_extension_rejected(self, seconds):
        with pytest.raises(InvalidArgument):
            validate_timer_extension(seconds)

    def test_rounds(self):
        assert validate_rounds(1) == 1
        assert validate_rounds(20) == 20
        for bad in (0, 21):
            with pytest.raises(InvalidArgument):
                validate_rounds(bad)

    def test_timer_seconds(self):
        assert validate_timer_seconds(0) == 0
        assert validate_timer_seconds(90) == 90
        for bad in (10, 601):
            with pytest.raises(InvalidArgument):
                validate_timer_seconds(bad)


class TestLists:
    def test_player_ids_rejects_duplicates(self):
        with pytest.raises(InvalidArgument):
            validate_player_ids(["p1", "p1"])

    def test_player_ids_must_be_list(self):
        with pytest.raises(InvalidArgument):
            validate_player_ids("p1")

    def test_team_ids_validates_each(self):
        with pytest.raises(InvalidIdentifier):
            validate_team_ids(["team_a", "bad team"])
