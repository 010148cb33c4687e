"""Tests for active run tracking."""

import asyncio

import pytest

from parley.orchestrator.runs import RunTracker


@pytest.mark.asyncio
async def test_start_records_thinking_run(store):
    runs = RunTracker(store)

    run, cancel = await runs.start("s1", model="m1")

    saved = await store.get_run("s1")
    assert saved.id == run.id
    assert saved.status == "thinking"
    assert saved.model == "m1"
    assert cancel.cancelled is False


@pytest.mark.asyncio
async def test_partial_text_writes_are_throttled(store):
    """Only the first update inside the interval is persisted unless forced."""
    runs = RunTracker(store, persist_interval=60)
    run, _ = await runs.start("s1")

    await runs.stream_text(run, "Hel", force=True)
    await runs.stream_text(run, "Hello")
    assert (await store.get_run("s1")).partial_text == "Hel"

    await runs.stream_text(run, "Hello world", force=True)
    assert (await store.get_run("s1")).partial_text == "Hello world"


@pytest.mark.asyncio
async def test_complete_removes_run_after_delay(store):
    runs = RunTracker(store, cleanup_delay=0)
    run, _ = await runs.start("s1")

    await runs.complete(run, "final")
    assert (await store.get_run("s1")).status == "complete"

    await runs.drain()
    assert await store.get_run("s1") is None


@pytest.mark.asyncio
async def test_cleanup_keeps_newer_run(store):
    """Removing a finished run never deletes a run started after it."""
    runs = RunTracker(store, cleanup_delay=0)
    first, _ = await runs.start("s1")
    await runs.complete(first)
    second, _ = await runs.start("s1")

    await runs.drain()

    assert (await store.get_run("s1")).id == second.id


@pytest.mark.asyncio
async def test_failed_run_stays_visible(store):
    runs = RunTracker(store, cleanup_delay=0)
    run, _ = await runs.start("s1")

    await runs.fail(run, "provider exploded")
    await runs.drain()

    saved = await store.get_run("s1")
    assert saved.status == "error"
    assert saved.error == "provider exploded"
    assert runs.stop("s1") is False


@pytest.mark.asyncio
async def test_stop_cancels_in_flight_run(store):
    runs = RunTracker(store)
    _, cancel = await runs.start("s1")

    assert runs.stop("s1", reason="user") is True
    assert cancel.cancelled is True
    assert cancel.reason == "user"
    assert runs.stop("s1") is False
    assert runs.stop("unknown") is False


@pytest.mark.asyncio
async def test_spawn_tracks_background_task(store):
    runs = RunTracker(store)
    release = asyncio.Event()

    async def work():
        await release.wait()
        return "done"

    background = runs.spawn("s1", work())
    assert runs.background(background.id) is background
    assert background.status == "running"

    release.set()
    await runs.drain()

    assert background.status == "done"
    assert runs.background(background.id) is None


@pytest.mark.asyncio
async def test_spawn_failure_is_contained(store):
    runs = RunTracker(store)

    async def boom():
        raise RuntimeError("background failure")

    background = runs.spawn("s1", boom())
    await runs.drain()

    assert background.status == "failed"
