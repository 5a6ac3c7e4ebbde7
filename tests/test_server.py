"""Tests for the MCP tool layer, with the portal client patched out."""

import json

import pytest
from sqlalchemy.exc import SQLAlchemyError

from tnea_choice_filling import server
from tnea_choice_filling.core.clients.portal import NotLoggedInError, PortalLogin
from tnea_choice_filling.core.datasets import DatasetError
from tnea_choice_filling.core.ranking import PreconditionError
from tnea_choice_filling.session import ChoiceSession

from conftest import make_seat

SEATS = [
    make_seat("s1", college_code="100", college_name="Chennai Inst", course_code="CS", MBC=5),
    make_seat("s2", college_code="100", college_name="Chennai Inst", course_code="EC", MBC=3),
    make_seat("s3", college_code="300", college_name="Chennai Polytechnic", course_code="CS", MBC=1),
]
CUTOFFS = [{"coc": 100, "con": "Chennai Inst", "brc": "CS", "brn": "CSE", "MBC": "90.5"}]
COURSES = [{"branCode": "CS", "branName": "CSE"}, {"branCode": "EC", "branName": "ECE"}]


@pytest.fixture
def session(monkeypatch):
    fresh = ChoiceSession()
    monkeypatch.setattr(server, "session", fresh)
    return fresh


@pytest.fixture
def fake_portal(monkeypatch):
    calls = {"submitted": []}

    async def login(email, password):
        calls["login"] = (email, password)
        return PortalLogin(sessionId="tok", userId="7", name="Priya")

    async def fetch_seat_matrix(session_id):
        calls["fetch"] = session_id
        return list(SEATS)

    async def submit_selections(session_id, selections):
        calls["submitted"].append(list(selections))
        return {"status": "saved"}

    monkeypatch.setattr(server.portal, "login", login)
    monkeypatch.setattr(server.portal, "fetch_seat_matrix", fetch_seat_matrix)
    monkeypatch.setattr(server.portal, "submit_selections", submit_selections)
    return calls


@pytest.fixture
def dataset_files(tmp_path):
    cutoff_path = tmp_path / "2024cutoff.json"
    courses_path = tmp_path / "preferred_courses.json"
    cutoff_path.write_text(json.dumps(CUTOFFS), encoding="utf-8")
    courses_path.write_text(json.dumps(COURSES), encoding="utf-8")
    return cutoff_path, courses_path


class TestLoginTool:
    async def test_login_starts_session(self, session, fake_portal):
        result = await server.login("p@example.com", "pw")
        assert session.session_id == "tok"
        assert "Welcome Priya" in result["summary"]

    async def test_credentials_from_environment(self, session, fake_portal, monkeypatch):
        monkeypatch.setenv("TNEA_EMAIL", "env@example.com")
        monkeypatch.setenv("TNEA_PASSWORD", "envpw")
        await server.login()
        assert fake_portal["login"] == ("env@example.com", "envpw")

    async def test_missing_credentials(self, session, fake_portal, monkeypatch):
        monkeypatch.delenv("TNEA_EMAIL", raising=False)
        monkeypatch.delenv("TNEA_PASSWORD", raising=False)
        with pytest.raises(ValueError, match="email and password"):
            await server.login()


class TestSeatTools:
    async def test_fetch_requires_login(self, session, fake_portal, data_dir):
        with pytest.raises(NotLoggedInError):
            await server.get_available_seats()

    async def test_fetch_replaces_seats_and_stores_snapshot(self, session, fake_portal, data_dir):
        await server.login("p@example.com", "pw")
        result = await server.get_available_seats()

        assert fake_portal["fetch"] == "tok"
        assert result["total_records"] == 3
        assert result["available_records"] == 3
        assert result["snapshot_id"] is not None
        assert len(session.seats) == 3

    async def test_load_latest_snapshot(self, session, fake_portal, data_dir):
        await server.login("p@example.com", "pw")
        await server.get_available_seats()
        session.replace_seats([])

        result = await server.load_seat_snapshot()
        assert result["total_records"] == 3
        assert [s.seat_id for s in session.seats] == ["s1", "s2", "s3"]

    async def test_load_snapshot_when_none_stored(self, session, data_dir):
        with pytest.raises(LookupError):
            await server.load_seat_snapshot()


class TestDatasetTools:
    async def test_load_from_explicit_paths(self, session, dataset_files):
        cutoff_path, courses_path = dataset_files
        cutoffs = await server.load_cutoff_data(str(cutoff_path))
        courses = await server.load_course_preferences(str(courses_path))

        assert cutoffs["record_count"] == 1
        assert courses["courses"] == ["CS", "EC"]
        assert len(session.cutoffs) == 1
        assert len(session.courses) == 2

    async def test_default_paths_from_environment(self, session, dataset_files, monkeypatch):
        cutoff_path, _ = dataset_files
        monkeypatch.setenv("TNEA_CUTOFF_FILE", str(cutoff_path))
        result = await server.load_cutoff_data()
        assert result["path"] == str(cutoff_path)

    async def test_missing_file_raises(self, session, tmp_path):
        with pytest.raises(DatasetError):
            await server.load_cutoff_data(str(tmp_path / "missing.json"))


class TestGenerateAndSubmit:
    async def _prepare(self, dataset_files):
        cutoff_path, courses_path = dataset_files
        await server.login("p@example.com", "pw")
        await server.get_available_seats()
        await server.load_cutoff_data(str(cutoff_path))
        await server.load_course_preferences(str(courses_path))

    async def test_generate_before_loading_is_precondition_error(self, session):
        with pytest.raises(PreconditionError, match="Seat matrix not loaded"):
            await server.generate_choices(["Chennai"])

    async def test_generate_with_fallback_and_drop(self, session, fake_portal, data_dir, dataset_files):
        await self._prepare(dataset_files)
        result = await server.generate_choices(["Chennai"], min_cutoff=85, category="MBC")

        assert result["selections"] == ["s1", "s2"]
        assert [r["cutoff"] for r in result["references"]] == [90.5, 90.5]
        assert result["diagnostics"]["unmatched_count"] == 1
        assert result["diagnostics"]["course_fallback_count"] == 1
        assert result["summary"].startswith("Generated 2 choices")
        assert "1. Chennai Inst" in result["summary"]
        assert "(Cutoff: 90.5)" in result["summary"]

    async def test_generate_empty_districts_rejected(self, session, fake_portal, data_dir, dataset_files):
        await self._prepare(dataset_files)
        with pytest.raises(PreconditionError):
            await server.generate_choices([])

    async def test_preview_truncated(self, session, fake_portal, data_dir, dataset_files, monkeypatch):
        await self._prepare(dataset_files)
        monkeypatch.setattr(server, "PREVIEW_SIZE", 1)
        result = await server.generate_choices(["Chennai"])
        assert "... and 1 more" in result["summary"]

    async def test_submit_defaults_to_generated_list(self, session, fake_portal, data_dir, dataset_files):
        await self._prepare(dataset_files)
        await server.generate_choices(["Chennai"])
        result = await server.submit_choices()

        assert fake_portal["submitted"] == [["s1", "s2"]]
        assert result["submitted"] == 2
        assert result["response"] == {"status": "saved"}
        assert result["submission_id"] is not None

    async def test_submit_explicit_selections(self, session, fake_portal, data_dir):
        await server.login("p@example.com", "pw")
        await server.submit_choices(["s9", "s8"])
        assert fake_portal["submitted"] == [["s9", "s8"]]

    async def test_submit_without_list_or_result(self, session, fake_portal, data_dir):
        await server.login("p@example.com", "pw")
        with pytest.raises(ValueError, match="selections"):
            await server.submit_choices()

    async def test_submit_empty_generated_list_rejected(self, session, fake_portal, data_dir, dataset_files):
        await self._prepare(dataset_files)
        result = await server.generate_choices(["Madurai"])
        assert result["choice_count"] == 0

        with pytest.raises(ValueError, match="empty"):
            await server.submit_choices()
        assert fake_portal["submitted"] == []

    async def test_submit_explicit_empty_list_allowed(self, session, fake_portal, data_dir):
        await server.login("p@example.com", "pw")
        result = await server.submit_choices([])
        assert fake_portal["submitted"] == [[]]
        assert result["submitted"] == 0

    async def test_submit_requires_login(self, session, fake_portal, data_dir):
        with pytest.raises(NotLoggedInError):
            await server.submit_choices(["s1"])

    async def test_refetch_clears_stale_result(self, session, fake_portal, data_dir, dataset_files):
        await self._prepare(dataset_files)
        await server.generate_choices(["Chennai"])
        await server.get_available_seats()
        assert session.last_result is None


class TestStatusTool:
    async def test_fresh_session(self, session, data_dir):
        result = await server.get_session_status()
        assert result["logged_in"] is False
        assert result["last_seat_snapshot"] is None
        assert "Not logged in" in result["summary"]

    async def test_after_workflow(self, session, fake_portal, data_dir, dataset_files):
        cutoff_path, courses_path = dataset_files
        await server.login("p@example.com", "pw")
        await server.get_available_seats()
        await server.load_cutoff_data(str(cutoff_path))
        await server.load_course_preferences(str(courses_path))
        await server.generate_choices(["Chennai"])
        await server.submit_choices()

        result = await server.get_session_status()
        assert result["logged_in"] is True
        assert result["seat_records"] == 3
        assert result["cutoff_records"] == 1
        assert result["preferred_courses"] == 2
        assert result["generated_choices"] == 2
        assert result["last_submission"]["selection_count"] == 2
        assert "Seat Matrix: 3 records loaded" in result["summary"]

    async def test_history_failure_reported_as_missing(self, session, data_dir, monkeypatch):
        async def broken(*args, **kwargs):
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(server.history, "latest_seat_snapshot", broken)
        result = await server.get_session_status()
        assert result["last_seat_snapshot"] is None
        assert result["last_submission"] is None
        assert "Session Status" in result["summary"]


class TestToolAnnotations:
    def test_state_changing_tools_not_read_only(self):
        assert server.PORTAL_SESSION.readOnlyHint is False
        assert server.SESSION_WRITE.readOnlyHint is False
        assert server.PORTAL_WRITE.destructiveHint is True

    async def test_registered_annotations(self):
        tools = {tool.name: tool for tool in await server.mcp.list_tools()}
        assert tools["login"].annotations.readOnlyHint is False
        assert tools["generate_choices"].annotations.readOnlyHint is False
        assert tools["get_session_status"].annotations.readOnlyHint is True
