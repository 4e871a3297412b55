"""
Tests for the background refresh jobs (unread badge, import progress).

Covers:
  - refresh_unread_count only runs for an authenticated session
  - poll_watched_imports drops finished imports and marks affected lists stale
  - start_refresh_worker honours the enable flag and can be cancelled
"""

from __future__ import annotations

import asyncio

import pytest

from expense_console.schemas.importing import ImportRecord
from expense_console.services import query_keys
from expense_console.services.refresh_jobs import (
    poll_watched_imports,
    refresh_unread_count,
    start_refresh_worker,
)
from tests.conftest import ACCOUNTANT, build_settings, login_as


@pytest.mark.asyncio
async def test_unread_count_skipped_when_logged_out(state, backend):
    assert await refresh_unread_count(state) is None
    assert backend.calls == []
    assert state.cache.get(query_keys.unread_count()) is None


@pytest.mark.asyncio
async def test_unread_count_is_cached(state, backend):
    login_as(state, ACCOUNTANT)
    backend.unread_count = 5

    assert await refresh_unread_count(state) == 5
    assert state.cache.get(query_keys.unread_count()) == 5


@pytest.mark.asyncio
async def test_finished_imports_stop_being_watched(state, backend):
    backend.imports = {
        "imp-1": {"id": "imp-1", "status": "processing", "progress": 40},
        "imp-2": {"id": "imp-2", "status": "completed", "successfulRows": 5, "totalRows": 5},
    }
    state.watched_imports.update({"imp-1", "imp-2"})
    state.cache.set(query_keys.import_history(), [])
    state.cache.set(query_keys.expense_list({}), None)

    records = await poll_watched_imports(state)

    assert [(r.id, r.status) for r in records] == [("imp-1", "processing"), ("imp-2", "completed")]
    assert state.watched_imports == {"imp-1"}
    assert state.cache.get(query_keys.import_status("imp-1")).progress == 40
    assert state.cache.is_fresh(query_keys.import_history()) is False
    assert state.cache.is_fresh(query_keys.expense_list({})) is False


@pytest.mark.asyncio
async def test_active_imports_leave_lists_alone(state, backend):
    backend.imports = {"imp-1": {"id": "imp-1", "status": "pending"}}
    state.watched_imports.add("imp-1")
    state.cache.set(query_keys.import_history(), [])

    await poll_watched_imports(state)

    assert state.watched_imports == {"imp-1"}
    assert state.cache.is_fresh(query_keys.import_history()) is True


def test_import_summary_messages():
    clean = ImportRecord(id="imp-1", status="completed", successful_rows=5)
    partial = ImportRecord(id="imp-2", status="completed", successful_rows=3, error_rows=2)
    running = ImportRecord(id="imp-3", status="processing")

    assert clean.summary == "Import completed successfully! All 5 records were imported."
    assert partial.summary == "Import completed with 2 errors. 3 records were imported successfully."
    assert running.summary is None
    assert running.is_active is True


@pytest.mark.asyncio
async def test_worker_disabled_by_setting(state):
    assert start_refresh_worker(state) is None


@pytest.mark.asyncio
async def test_worker_refreshes_and_cancels(state, backend):
    state.settings = build_settings(enable_background_refresh=True)
    login_as(state, ACCOUNTANT)
    backend.unread_count = 9

    task = start_refresh_worker(state)
    assert task is not None
    try:
        for _ in range(200):
            if state.cache.get(query_keys.unread_count()) == 9:
                break
            await asyncio.sleep(0)
        assert state.cache.get(query_keys.unread_count()) == 9
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
