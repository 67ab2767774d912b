"""Tests for value streams and the serial executor."""

import asyncio

import pytest

from propsync.reactive import SerialExecutor, ValueStream


class TestValueStream:
    """Tests for publish/subscribe semantics."""

    def test_replays_current_value(self) -> None:
        stream = ValueStream(1)
        seen = []
        stream.subscribe(seen.append)
        stream.publish(2)
        assert seen == [1, 2]
        assert stream.value == 2

    def test_pending_stream_has_no_value(self) -> None:
        stream = ValueStream()
        seen = []
        stream.subscribe(seen.append)
        assert not stream.has_value
        assert seen == []
        stream.publish(None)
        assert stream.has_value
        assert seen == [None]

    def test_subscribe_without_replay(self) -> None:
        stream = ValueStream("a")
        seen = []
        stream.subscribe(seen.append, replay=False)
        stream.publish("b")
        assert seen == ["b"]

    def test_cancel_is_idempotent(self) -> None:
        stream = ValueStream(0)
        seen = []
        subscription = stream.subscribe(seen.append)
        subscription.cancel()
        subscription.cancel()
        stream.publish(1)
        assert seen == [0]
        assert stream.subscriber_count == 0

    def test_subscription_context_manager(self) -> None:
        stream = ValueStream(0)
        seen = []
        with stream.subscribe(seen.append):
            stream.publish(1)
        stream.publish(2)
        assert seen == [0, 1]

    def test_failing_subscriber_does_not_block_others(self) -> None:
        stream = ValueStream(0)
        seen = []

        def boom(value: int) -> None:
            if value:
                raise RuntimeError("boom")

        stream.subscribe(boom)
        stream.subscribe(seen.append)
        stream.publish(1)
        assert seen == [0, 1]

    def test_map_publishes_distinct_values(self) -> None:
        stream = ValueStream(1)
        parity = stream.map(lambda v: v % 2)
        seen = []
        parity.subscribe(seen.append)
        for value in (3, 5, 6, 8, 9):
            stream.publish(value)
        assert seen == [1, 0, 1]

    def test_close_stops_delivery_and_closes_derived(self) -> None:
        stream = ValueStream(0)
        derived = stream.map(lambda v: v + 1)
        seen = []
        stream.subscribe(seen.append)
        stream.close()
        stream.publish(5)
        assert seen == [0]
        assert stream.closed
        assert derived.closed
        assert not stream.subscribe(seen.append).active

    @pytest.mark.asyncio
    async def test_wait_for_current_value(self) -> None:
        stream = ValueStream(3)
        assert await stream.wait_for(lambda v: v > 2) == 3

    @pytest.mark.asyncio
    async def test_wait_for_later_value(self) -> None:
        stream = ValueStream(0)
        loop = asyncio.get_running_loop()
        loop.call_soon(stream.publish, 1)
        loop.call_soon(stream.publish, 7)
        assert await stream.wait_for(lambda v: v > 5, timeout=1.0) == 7
        assert stream.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_wait_for_timeout(self) -> None:
        stream = ValueStream(0)
        with pytest.raises(asyncio.TimeoutError):
            await stream.wait_for(lambda v: v > 0, timeout=0.01)
        assert stream.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_values_iterates_until_close(self) -> None:
        stream = ValueStream(1)
        seen = []

        async def consume() -> None:
            async for value in stream.values():
                seen.append(value)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        stream.publish(2)
        stream.close()
        await asyncio.wait_for(task, 1.0)
        assert seen == [1, 2]


class TestSerialExecutor:
    """Tests for the single-consumer job queue."""

    @pytest.mark.asyncio
    async def test_runs_jobs_in_order(self) -> None:
        executor = SerialExecutor("test")
        order = []

        async def job(n: int) -> None:
            await asyncio.sleep(0)
            order.append(n)

        for n in range(5):
            executor.submit(lambda n=n: job(n))
        await executor.drain()
        assert order == [0, 1, 2, 3, 4]
        assert executor.processed == 5
        await executor.stop()

    @pytest.mark.asyncio
    async def test_jobs_never_overlap(self) -> None:
        executor = SerialExecutor("test")
        active = []
        overlaps = []

        async def job() -> None:
            active.append(1)
            if len(active) > 1:
                overlaps.append(len(active))
            await asyncio.sleep(0)
            active.pop()

        for _ in range(10):
            executor.submit(job)
        await executor.drain()
        assert overlaps == []
        await executor.stop()

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_loop(self) -> None:
        executor = SerialExecutor("test")
        order = []

        async def failing() -> None:
            raise RuntimeError("boom")

        async def ok() -> None:
            order.append("ok")

        executor.submit(failing)
        executor.submit(ok)
        await executor.drain()
        assert order == ["ok"]
        assert executor.failed == 1
        assert executor.processed == 2
        await executor.stop()

    @pytest.mark.asyncio
    async def test_stop_drops_later_jobs(self) -> None:
        executor = SerialExecutor("test")
        order = []

        async def job() -> None:
            order.append(1)

        executor.submit(job)
        await executor.drain()
        await executor.stop()
        executor.submit(job)
        await asyncio.sleep(0)
        assert order == [1]
        assert not executor.running

    @pytest.mark.asyncio
    async def test_drain_without_jobs(self) -> None:
        executor = SerialExecutor("test")
        await executor.drain()
        assert not executor.running
