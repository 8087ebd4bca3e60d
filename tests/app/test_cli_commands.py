from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

from typer.testing import CliRunner

from listing_importer.app import AppState, app
from listing_importer.errors import JobNotFound, ListNotFound
from listing_importer.models import JobSnapshot, JobState


def _snapshot(state: JobState, message: str, error: str | None = None) -> JobSnapshot:
    now = datetime.now(timezone.utc)
    return JobSnapshot(
        id="job_1",
        state=state,
        search_term="plumbers",
        location="Springfield, IL",
        destination_list_id="list-1",
        max_results=10,
        progress_count=4,
        saved_count=4,
        total_to_save=4,
        imported_count=3,
        message=message,
        error=error,
        started_at=now,
        ended_at=now,
    )


class StubOrchestrator:
    def __init__(self, final: JobSnapshot, start_error: Exception | None = None) -> None:
        self.final = final
        self.start_error = start_error
        self.calls: list[tuple] = []
        self.shut_down = False

    def start(self, search_term, location, list_id, max_results=None) -> str:
        self.calls.append((search_term, location, list_id, max_results))
        if self.start_error is not None:
            raise self.start_error
        return "job_1"

    def get_status(self, job_id: str) -> JobSnapshot:
        return self.final

    def wait(self, job_id: str, timeout=None) -> JobSnapshot:
        return self.final

    def cancel(self, job_id: str) -> JobSnapshot:
        return self.final

    def shutdown(self, cancel_running: bool = True) -> None:
        self.shut_down = True


def make_state(store, orchestrator=None) -> AppState:
    return AppState(
        repository=SimpleNamespace(),
        store=store,
        orchestrator=orchestrator or StubOrchestrator(_snapshot(JobState.COMPLETED, "done")),
    )


def test_cli_list_create_and_show(monkeypatch, listing_store, make_listing) -> None:
    state = make_state(listing_store)
    monkeypatch.setattr("listing_importer.app.build_state", lambda verbose: state)
    runner = CliRunner()

    result = runner.invoke(app, ["list", "create", "Springfield plumbers"])
    assert result.exit_code == 0, result.stdout
    assert "Springfield plumbers" in result.stdout

    [list_id] = [
        row["id"] for row in listing_store._conn.execute("SELECT id FROM listing_lists").fetchall()
    ]
    listing_store.insert(list_id, make_listing("Acme Plumbing"))

    shown = runner.invoke(app, ["list", "show", list_id])
    assert shown.exit_code == 0, shown.stdout
    assert "Acme Plumbing" in shown.stdout
    assert "1 businesses" in shown.stdout


def test_cli_list_show_unknown(monkeypatch, listing_store) -> None:
    monkeypatch.setattr("listing_importer.app.build_state", lambda verbose: make_state(listing_store))
    result = CliRunner().invoke(app, ["list", "show", "missing"])
    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_cli_run_reports_completed_job(monkeypatch, listing_store) -> None:
    orchestrator = StubOrchestrator(
        _snapshot(JobState.COMPLETED, "Successfully imported 3 businesses")
    )
    state = make_state(listing_store, orchestrator)
    monkeypatch.setattr("listing_importer.app.build_state", lambda verbose: state)

    result = CliRunner().invoke(
        app,
        ["run", "plumbers", "Springfield, IL", "--list-id", "list-1", "--max-results", "10"],
    )

    assert result.exit_code == 0, result.stdout
    assert orchestrator.calls == [("plumbers", "Springfield, IL", "list-1", 10)]
    assert orchestrator.shut_down
    assert "Successfully imported 3 businesses" in result.stdout
    assert "completed" in result.stdout


def test_cli_run_exits_non_zero_on_failure(monkeypatch, listing_store) -> None:
    orchestrator = StubOrchestrator(
        _snapshot(JobState.FAILED, "Scraping failed: boom", error="boom")
    )
    monkeypatch.setattr(
        "listing_importer.app.build_state", lambda verbose: make_state(listing_store, orchestrator)
    )

    result = CliRunner().invoke(app, ["run", "plumbers", "Springfield, IL", "--list-id", "list-1"])

    assert result.exit_code == 1
    assert "boom" in result.stdout


def test_cli_run_rejects_unknown_list(monkeypatch, listing_store) -> None:
    orchestrator = StubOrchestrator(
        _snapshot(JobState.COMPLETED, "unused"), start_error=ListNotFound("nope")
    )
    monkeypatch.setattr(
        "listing_importer.app.build_state", lambda verbose: make_state(listing_store, orchestrator)
    )

    result = CliRunner().invoke(app, ["run", "plumbers", "Springfield, IL", "--list-id", "nope"])

    assert result.exit_code == 1
    assert "Destination list not found: nope" in result.stdout


class EvictedOrchestrator(StubOrchestrator):
    """Reports one in-progress status, then forgets the job."""

    def __init__(self, last: JobSnapshot) -> None:
        super().__init__(last)
        self.status_calls = 0

    def get_status(self, job_id: str) -> JobSnapshot:
        self.status_calls += 1
        if self.status_calls > 1:
            raise JobNotFound(job_id)
        return self.final

    def wait(self, job_id: str, timeout=None) -> JobSnapshot:
        raise JobNotFound(job_id)


def test_cli_run_shows_last_status_when_job_is_evicted(monkeypatch, listing_store) -> None:
    orchestrator = EvictedOrchestrator(_snapshot(JobState.SAVING, "Saving 4 businesses"))
    monkeypatch.setattr(
        "listing_importer.app.build_state", lambda verbose: make_state(listing_store, orchestrator)
    )

    result = CliRunner().invoke(
        app, ["run", "plumbers", "Springfield, IL", "--list-id", "list-1", "--poll-interval", "0"]
    )

    assert result.exit_code == 0, result.stdout
    assert "no longer tracked" in result.stdout
    assert "Saving 4 businesses" in result.stdout
    assert orchestrator.shut_down

def test_cli_parse_address(monkeypatch, listing_store) -> None:
    monkeypatch.setattr("listing_importer.app.build_state", lambda verbose: make_state(listing_store))
    result = CliRunner().invoke(
        app, ["parse-address", "123 Main St Apt 4B, Springfield, IL 62704"]
    )
    assert result.exit_code == 0, result.stdout
    for part in ("123 Main St", "Apt 4B", "Springfield", "IL", "62704"):
        assert part in result.stdout


def test_cli_log_tail(monkeypatch, tmp_path, listing_store) -> None:
    importer_log = tmp_path / "importer.log"
    error_log = tmp_path / "error.log"
    importer_log.write_text("first\nsecond\nthird\n", encoding="utf-8")
    monkeypatch.setattr("listing_importer.app.build_state", lambda verbose: make_state(listing_store))
    monkeypatch.setattr(
        "listing_importer.app.default_log_files", lambda: [importer_log, error_log]
    )
    runner = CliRunner()

    result = runner.invoke(app, ["log", "tail", "-n", "2"])
    assert result.exit_code == 0, result.stdout
    assert "first" not in result.stdout
    assert "second" in result.stdout and "third" in result.stdout

    errors = runner.invoke(app, ["log", "tail", "--errors"])
    assert errors.exit_code == 0
    assert "No log entries" in errors.stdout
