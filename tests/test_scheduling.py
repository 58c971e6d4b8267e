import asyncio

from app.frontdesk.scheduling import AsyncioScheduler, cancel_quietly


def test_call_later_fires_and_cancelled_timer_does_not():
    fired = []

    async def main():
        scheduler = AsyncioScheduler()
        scheduler.call_later(0.01, lambda: fired.append("kept"))
        dropped = scheduler.call_later(0.01, lambda: fired.append("dropped"))
        cancel_quietly(dropped)
        await asyncio.sleep(0.05)

    asyncio.run(main())

    assert fired == ["kept"]


def test_submit_reports_result_and_error():
    outcomes = []

    async def ok():
        return "APT-1"

    async def broken():
        raise OSError("connection reset")

    async def main():
        scheduler = AsyncioScheduler()
        scheduler.submit(ok, lambda result, error: outcomes.append((result, error)))
        scheduler.submit(broken, lambda result, error: outcomes.append((result, type(error))))
        await asyncio.sleep(0.01)

    asyncio.run(main())

    assert outcomes == [("APT-1", None), (None, OSError)]


def test_cancelled_job_never_calls_back():
    outcomes = []

    async def slow():
        await asyncio.sleep(1)
        return "late"

    async def main():
        scheduler = AsyncioScheduler()
        task = scheduler.submit(slow, lambda result, error: outcomes.append(result))
        await asyncio.sleep(0)
        cancel_quietly(task)
        await asyncio.sleep(0.01)

    asyncio.run(main())

    assert outcomes == []
