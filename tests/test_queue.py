import asyncio

from frontierlib.errors import JobTimeoutError
from frontierlib.queue import JobQueue


class Recorder:
    def __init__(self):
        self.calls = []

    def callback(self, item):
        def cb(err, result):
            self.calls.append((item, err, result))
        return cb


def test_jobs_within_concurrency_start_without_queueing():
    async def scenario():
        loop = asyncio.get_running_loop()
        started = {}
        release = asyncio.Event()

        async def worker(item):
            started[item] = loop.time()
            await release.wait()
            return item * 10

        rec = Recorder()
        q = JobQueue(worker, concurrency=3)
        t0 = loop.time()
        for i in range(3):
            assert q.submit(i, rec.callback(i))
        await asyncio.sleep(0.01)
        assert sorted(started) == [0, 1, 2]
        assert q.running == 3
        assert q.waiting == 0
        assert all(t - t0 < 0.05 for t in started.values())
        release.set()
        await asyncio.sleep(0.01)
        return rec.calls

    calls = asyncio.run(scenario())
    assert sorted((item, err, result) for item, err, result in calls) == [
        (0, None, 0),
        (1, None, 10),
        (2, None, 20),
    ]


def test_waiting_jobs_start_in_fifo_order_as_slots_free():
    async def scenario():
        loop = asyncio.get_running_loop()
        gates = {name: loop.create_future() for name in "abcde"}
        order = []

        async def worker(item):
            order.append(item)
            return await gates[item]

        rec = Recorder()
        q = JobQueue(worker, concurrency=2)
        for name in "abcde":
            assert q.submit(name, rec.callback(name))
        await asyncio.sleep(0.01)
        assert order == ["a", "b"]
        assert q.waiting == 3

        gates["b"].set_result("B")
        await asyncio.sleep(0.01)
        assert order == ["a", "b", "c"]

        gates["a"].set_result("A")
        await asyncio.sleep(0.01)
        assert order == ["a", "b", "c", "d"]

        for name in "cde":
            if not gates[name].done():
                gates[name].set_result(name.upper())
            await asyncio.sleep(0.01)
        return order, rec.calls, q

    order, calls, q = asyncio.run(scenario())
    assert order == ["a", "b", "c", "d", "e"]
    assert [item for item, _, _ in calls] == ["b", "a", "c", "d", "e"]
    assert q.running == 0 and q.waiting == 0


def test_limit_rejects_synchronously_without_callback():
    async def scenario():
        async def worker(item):
            return item

        rec = Recorder()
        q = JobQueue(worker, concurrency=1, limit=2)
        accepted = [q.submit(i, rec.callback(i)) for i in range(4)]
        await asyncio.sleep(0.02)
        return accepted, rec.calls, q

    accepted, calls, q = asyncio.run(scenario())
    assert accepted == [True, True, False, False]
    assert q.accepted == 2
    assert sorted(item for item, _, _ in calls) == [0, 1]


def test_worker_error_reaches_callback():
    async def scenario():
        async def worker(item):
            raise ValueError(f"boom {item}")

        rec = Recorder()
        q = JobQueue(worker)
        q.submit("x", rec.callback("x"))
        await asyncio.sleep(0.01)
        return rec.calls

    calls = asyncio.run(scenario())
    assert len(calls) == 1
    item, err, result = calls[0]
    assert isinstance(err, ValueError)
    assert result is None


def test_timeout_fires_once_and_frees_the_slot():
    async def scenario():
        loop = asyncio.get_running_loop()
        never = loop.create_future()

        async def worker(item):
            if item == "hang":
                await never
            return item

        rec = Recorder()
        q = JobQueue(worker, concurrency=1, timeout_ms=30)
        q.submit("hang", rec.callback("hang"))
        q.submit("quick", rec.callback("quick"))
        await asyncio.sleep(0.15)
        return rec.calls

    calls = asyncio.run(scenario())
    assert [item for item, _, _ in calls] == ["hang", "quick"]
    _, err, result = calls[0]
    assert isinstance(err, JobTimeoutError)
    assert isinstance(err, TimeoutError)
    assert err.url == "hang"
    assert result is None
    assert calls[1] == ("quick", None, "quick")


def test_late_completion_after_timeout_is_discarded():
    async def scenario():
        async def slow():
            await asyncio.sleep(0.05)
            return "late"

        async def worker(item):
            # the inner task outlives the timeout
            return await asyncio.shield(asyncio.ensure_future(slow()))

        rec = Recorder()
        q = JobQueue(worker, timeout_ms=10)
        q.submit("job", rec.callback("job"))
        await asyncio.sleep(0.12)
        return rec.calls

    calls = asyncio.run(scenario())
    assert len(calls) == 1
    assert isinstance(calls[0][1], JobTimeoutError)


def test_waiting_job_starts_before_work_submitted_from_callback():
    async def scenario():
        order = []

        async def worker(item):
            order.append(item)
            await asyncio.sleep(0)
            return item

        q = JobQueue(worker, concurrency=1)

        def on_a(err, result):
            q.submit("from-callback", lambda err, result: None)

        q.submit("a", on_a)
        q.submit("b", lambda err, result: None)
        await asyncio.sleep(0.05)
        return order

    assert asyncio.run(scenario()) == ["a", "b", "from-callback"]


def test_timeout_cancels_worker_even_if_callback_raises():
    async def scenario():
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(lambda loop, context: None)
        never = loop.create_future()

        async def worker(item):
            await never

        def explode(err, result):
            raise RuntimeError("listener failed")

        q = JobQueue(worker, timeout_ms=20)
        q.submit("hang", explode)
        await asyncio.sleep(0.1)
        # checked before asyncio.run cancels leftover tasks on shutdown
        return never.cancelled()

    assert asyncio.run(scenario())
