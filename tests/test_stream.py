"""Tests for perch.stream — lazily pulled route content."""

import asyncio
import io
import time

import pytest

from perch.config import RouterConfig
from perch.content import Content, Convention
from perch.errors import ProducerFailure
from perch.stream import RouteStream, StreamState


async def _drain(stream: RouteStream) -> list[bytes]:
    chunks: list[bytes] = []
    while (chunk := await stream.read()) is not None:
        chunks.append(chunk)
    return chunks


class TestStaticPayloads:
    @pytest.mark.asyncio
    async def test_text_single_chunk(self) -> None:
        stream = RouteStream(Content("hi"))
        assert await stream.read() == b"hi"
        assert await stream.read() is None

    @pytest.mark.asyncio
    async def test_bytes_single_chunk(self) -> None:
        stream = RouteStream(Content(b"\x89PNG"))
        assert await _drain(stream) == [b"\x89PNG"]

    @pytest.mark.asyncio
    async def test_object_json_chunk(self) -> None:
        stream = RouteStream(Content({"a": 1}))
        assert await _drain(stream) == [b'{"a":1}']

    @pytest.mark.asyncio
    async def test_unsupported_yields_only_end(self) -> None:
        stream = RouteStream(Content(42))
        assert await stream.read() is None
        assert stream.state is StreamState.DONE
        assert stream.error is None

    @pytest.mark.asyncio
    async def test_reads_after_end_stay_ended(self) -> None:
        stream = RouteStream(Content("hi"))
        await _drain(stream)
        for _ in range(3):
            assert await stream.read() is None

    @pytest.mark.asyncio
    async def test_unserializable_object_fails(self) -> None:
        stream = RouteStream(Content({"when": object()}), path="bad.json")
        with pytest.raises(ProducerFailure, match="bad.json"):
            await stream.read()
        assert stream.state is StreamState.FAILED
        assert await stream.read() is None

    @pytest.mark.asyncio
    async def test_sort_keys_config(self) -> None:
        stream = RouteStream(Content({"b": 1, "a": 2}), config=RouterConfig(json_sort_keys=True))
        assert await stream.read_all() == b'{"a":2,"b":1}'


class TestLifecycle:
    def test_nothing_happens_at_construction(self) -> None:
        calls = 0

        def producer() -> str:
            nonlocal calls
            calls += 1
            return "x"

        stream = RouteStream(Content(producer))
        assert calls == 0
        assert stream.state is StreamState.NOT_STARTED
        assert stream.started is False

    def test_modified_fixed_at_construction(self) -> None:
        assert RouteStream(Content("x", modified=False)).modified is False
        assert RouteStream(Content("x")).modified is True

    @pytest.mark.asyncio
    async def test_state_after_deferred(self) -> None:
        stream = RouteStream(Content(lambda: "x"))
        assert await stream.read() == b"x"
        assert stream.started is True
        assert await stream.read() is None
        assert stream.state is StreamState.DONE

    @pytest.mark.asyncio
    async def test_in_flight_while_pending(self) -> None:
        release = asyncio.Event()

        async def producer() -> str:
            await release.wait()
            return "late"

        stream = RouteStream(Content(producer))
        reader = asyncio.create_task(stream.read())
        await asyncio.sleep(0.01)
        assert stream.state is StreamState.IN_FLIGHT

        release.set()
        assert await asyncio.wait_for(reader, timeout=2.0) == b"late"

    def test_repr(self) -> None:
        stream = RouteStream(Content("x"), path="a.html")
        assert "a.html" in repr(stream)
        assert "not_started" in repr(stream)


class TestDeferredProducers:
    @pytest.mark.asyncio
    async def test_sync_function(self) -> None:
        stream = RouteStream(Content(lambda: "from sync"))
        assert await _drain(stream) == [b"from sync"]

    @pytest.mark.asyncio
    async def test_async_function_object(self) -> None:
        async def producer() -> dict:
            return {"a": 1}

        stream = RouteStream(Content(producer, modified=False))
        assert await _drain(stream) == [b'{"a":1}']
        assert stream.modified is False

    @pytest.mark.asyncio
    async def test_callback_convention(self) -> None:
        def producer(done) -> None:
            done(None, "via callback")

        stream = RouteStream(Content(producer, convention=Convention.CALLBACK))
        assert await stream.read_all() == b"via callback"

    @pytest.mark.asyncio
    async def test_callback_from_thread(self) -> None:
        loop = asyncio.get_running_loop()

        def producer(done) -> None:
            loop.run_in_executor(None, done, None, b"threaded")

        stream = RouteStream(Content(producer, convention=Convention.CALLBACK))
        assert await asyncio.wait_for(stream.read_all(), timeout=2.0) == b"threaded"

    @pytest.mark.asyncio
    async def test_callback_only_first_result_counts(self) -> None:
        def producer(done) -> None:
            done(None, "first")
            done(None, "second")

        stream = RouteStream(Content(producer, convention=Convention.CALLBACK))
        assert await stream.read_all() == b"first"

    @pytest.mark.asyncio
    async def test_resolves_to_unsupported(self) -> None:
        stream = RouteStream(Content(lambda: 42))
        assert await stream.read() is None
        assert stream.state is StreamState.DONE

    @pytest.mark.asyncio
    async def test_resolves_to_function_not_invoked(self) -> None:
        called = False

        def inner() -> str:
            nonlocal called
            called = True
            return "x"

        stream = RouteStream(Content(lambda: inner))
        assert await stream.read() is None
        assert called is False

    @pytest.mark.asyncio
    async def test_invoked_once_under_concurrent_reads(self) -> None:
        calls = 0
        release = asyncio.Event()

        async def producer() -> str:
            nonlocal calls
            calls += 1
            await release.wait()
            return "once"

        stream = RouteStream(Content(producer))
        readers = [asyncio.create_task(stream.read()) for _ in range(5)]
        await asyncio.sleep(0.01)
        release.set()
        results = await asyncio.wait_for(asyncio.gather(*readers), timeout=2.0)

        assert calls == 1
        assert results.count(b"once") == 1
        assert results.count(None) == 4

    @pytest.mark.asyncio
    async def test_consumer_stops_pulling(self) -> None:
        finished = asyncio.Event()

        async def producer() -> str:
            finished.set()
            return "ignored"

        stream = RouteStream(Content(producer))
        task = asyncio.create_task(stream.read())
        await asyncio.wait_for(finished.wait(), timeout=2.0)
        assert await task == b"ignored"


class TestStreamingSources:
    @pytest.mark.asyncio
    async def test_async_generator_in_order(self) -> None:
        async def source():
            for part in (b"a", b"b", b"c"):
                await asyncio.sleep(0)
                yield part

        stream = RouteStream(Content(lambda: source()))
        assert await _drain(stream) == [b"a", b"b", b"c"]
        assert stream.state is StreamState.DONE

    @pytest.mark.asyncio
    async def test_async_producer_returning_stream(self) -> None:
        async def source():
            yield "text chunk"
            yield {"k": 1}

        async def producer():
            return source()

        stream = RouteStream(Content(producer))
        assert await _drain(stream) == [b"text chunk", b'{"k":1}']

    @pytest.mark.asyncio
    async def test_sync_generator(self) -> None:
        def producer():
            return (f"line {i}\n" for i in range(3))

        stream = RouteStream(Content(producer))
        assert await stream.read_all() == b"line 0\nline 1\nline 2\n"

    @pytest.mark.asyncio
    async def test_blocking_iterator_delivers_first_chunk_early(self) -> None:
        produced: list[int] = []

        def slow():
            for i in range(5):
                time.sleep(0.05)
                produced.append(i)
                yield str(i)

        stream = RouteStream(Content(lambda: slow()))
        assert await asyncio.wait_for(stream.read(), timeout=2.0) == b"0"
        assert len(produced) < 5
        assert await asyncio.wait_for(stream.read_all(), timeout=2.0) == b"1234"

    @pytest.mark.asyncio
    async def test_unsupported_chunks_skipped(self) -> None:
        async def source():
            yield b"a"
            yield 5
            yield b"b"

        stream = RouteStream(Content(lambda: source()))
        assert await _drain(stream) == [b"a", b"b"]

    @pytest.mark.asyncio
    async def test_binary_reader_chunked(self) -> None:
        reader = io.BytesIO(b"abcdefghij")
        stream = RouteStream(Content(lambda: reader), config=RouterConfig(chunk_size=4))
        assert await _drain(stream) == [b"abcd", b"efgh", b"ij"]

    @pytest.mark.asyncio
    async def test_async_reader(self) -> None:
        class AsyncReader:
            def __init__(self) -> None:
                self._parts = [b"xy", b"z"]

            async def read(self, size: int) -> bytes:
                return self._parts.pop(0) if self._parts else b""

        stream = RouteStream(Content(lambda: AsyncReader()))
        assert await _drain(stream) == [b"xy", b"z"]

    @pytest.mark.asyncio
    async def test_direct_source_registration(self) -> None:
        async def source():
            yield b"direct"

        stream = RouteStream(Content(source()))
        assert stream.state is StreamState.NOT_STARTED
        assert await _drain(stream) == [b"direct"]

    @pytest.mark.asyncio
    async def test_async_iteration(self) -> None:
        async def source():
            yield b"1"
            yield b"2"

        stream = RouteStream(Content(lambda: source()))
        assert [chunk async for chunk in stream] == [b"1", b"2"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_cancelled_upstream_is_failure(self) -> None:
        upstream = asyncio.get_running_loop().create_future()
        upstream.cancel()

        async def producer() -> str:
            return await upstream

        stream = RouteStream(Content(producer))
        with pytest.raises(ProducerFailure, match="CancelledError"):
            await asyncio.wait_for(stream.read(), timeout=2.0)
        assert stream.state is StreamState.FAILED
        assert await asyncio.wait_for(stream.read(), timeout=2.0) is None

    @pytest.mark.asyncio
    async def test_pump_cancel_still_ends_stream(self) -> None:
        release = asyncio.Event()

        async def producer() -> str:
            await release.wait()
            return "never"

        stream = RouteStream(Content(producer))
        reader = asyncio.create_task(stream.read())
        await asyncio.sleep(0.01)
        stream._pump.cancel()

        with pytest.raises(ProducerFailure):
            await asyncio.wait_for(reader, timeout=2.0)
        assert await asyncio.wait_for(stream.read(), timeout=2.0) is None

    @pytest.mark.asyncio
    async def test_rejected_producer(self) -> None:
        async def producer() -> str:
            raise RuntimeError("boom")

        stream = RouteStream(Content(producer), path="x.html")
        with pytest.raises(ProducerFailure, match="boom") as exc_info:
            await asyncio.wait_for(stream.read(), timeout=2.0)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.path == "x.html"
        assert stream.error is exc_info.value
        assert stream.state is StreamState.FAILED
        # Terminates after the error event
        assert await asyncio.wait_for(stream.read(), timeout=2.0) is None

    @pytest.mark.asyncio
    async def test_sync_producer_raises(self) -> None:
        def producer() -> str:
            raise ValueError("bad input")

        stream = RouteStream(Content(producer))
        with pytest.raises(ProducerFailure, match="bad input"):
            await stream.read()
        assert await stream.read() is None

    @pytest.mark.asyncio
    async def test_callback_error(self) -> None:
        def producer(done) -> None:
            done(OSError("disk gone"))

        stream = RouteStream(Content(producer, convention=Convention.CALLBACK))
        with pytest.raises(ProducerFailure, match="disk gone"):
            await stream.read()

    @pytest.mark.asyncio
    async def test_callback_non_exception_error(self) -> None:
        def producer(done) -> None:
            done("ENOENT")

        stream = RouteStream(Content(producer, convention=Convention.CALLBACK))
        with pytest.raises(ProducerFailure, match="ENOENT"):
            await stream.read()

    @pytest.mark.asyncio
    async def test_source_error_mid_stream(self) -> None:
        async def source():
            yield b"first"
            raise ConnectionError("upstream closed")

        stream = RouteStream(Content(lambda: source()))
        assert await stream.read() == b"first"
        with pytest.raises(ProducerFailure, match="upstream closed"):
            await stream.read()
        assert await stream.read() is None
        assert stream.state is StreamState.FAILED

    @pytest.mark.asyncio
    async def test_async_iteration_raises_failure(self) -> None:
        async def producer() -> str:
            raise RuntimeError("nope")

        stream = RouteStream(Content(producer))
        with pytest.raises(ProducerFailure):
            async for _chunk in stream:
                pass

    @pytest.mark.asyncio
    async def test_concurrent_readers_on_failure_do_not_hang(self) -> None:
        async def producer() -> str:
            await asyncio.sleep(0)
            raise RuntimeError("shared failure")

        stream = RouteStream(Content(producer))
        results = await asyncio.wait_for(
            asyncio.gather(*(stream.read() for _ in range(3)), return_exceptions=True),
            timeout=2.0,
        )
        failures = [r for r in results if isinstance(r, ProducerFailure)]
        assert len(failures) == 1
        assert results.count(None) == 2

    @pytest.mark.asyncio
    async def test_failure_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        async def producer() -> str:
            raise RuntimeError("logged")

        stream = RouteStream(Content(producer), path="log.html")
        with caplog.at_level("WARNING", logger="perch.stream"), pytest.raises(ProducerFailure):
            await stream.read()
        assert "log.html" in caplog.text
