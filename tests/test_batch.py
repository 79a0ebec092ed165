"""Tests for the bounded-concurrency batch runner."""

import asyncio

import pytest

from usage_monitor.batch import run_batched


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _run(items, concurrency, delay=0.1):
    events: list[tuple[str, int]] = []
    in_flight = 0
    peak = 0

    async def worker(item: int) -> int:
        nonlocal in_flight, peak
        events.append(("start", item))
        in_flight += 1
        peak = max(peak, in_flight)
        # later items finish first to show ordering comes from input, not completion
        for _ in range(10 - item % 10):
            await asyncio.sleep(0)
        in_flight -= 1
        events.append(("end", item))
        return item * 2

    sleeps = SleepRecorder()
    results = asyncio.run(run_batched(items, worker, concurrency=concurrency, delay=delay, sleep=sleeps))
    return results, events, peak, sleeps.calls


class TestRunBatched:
    def test_preserves_input_order(self):
        results, _, _, _ = _run(list(range(25)), concurrency=10)
        assert results == [i * 2 for i in range(25)]

    def test_chunks_run_concurrently_up_to_limit(self):
        _, _, peak, _ = _run(list(range(25)), concurrency=10)
        assert peak == 10

    def test_next_chunk_waits_for_previous(self):
        _, events, _, _ = _run(list(range(7)), concurrency=3)
        position = {e: i for i, e in enumerate(events)}
        chunks = [[0, 1, 2], [3, 4, 5], [6]]
        for prev, nxt in zip(chunks, chunks[1:]):
            last_end = max(position[("end", i)] for i in prev)
            first_start = min(position[("start", i)] for i in nxt)
            assert last_end < first_start

    def test_delay_between_chunks_not_after_last(self):
        _, _, _, sleeps = _run(list(range(25)), concurrency=10, delay=0.25)
        assert sleeps == [0.25, 0.25]

    def test_single_chunk_no_delay(self):
        _, _, _, sleeps = _run(list(range(4)), concurrency=10)
        assert sleeps == []

    def test_empty_input(self):
        results, events, _, sleeps = _run([], concurrency=10)
        assert results == []
        assert events == []
        assert sleeps == []

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError, match="concurrency"):
            _run([1], concurrency=0)
