"""Tests for SessionWorker."""

import asyncio
import threading

import pytest

from app.realtime.worker import SessionWorker


def run_with_worker(scenario):
    async def main():
        worker = SessionWorker(asyncio.get_running_loop())
        task = asyncio.create_task(worker.run())
        try:
            return await scenario(worker)
        finally:
            task.cancel()

    return asyncio.run(main())


def test_jobs_run_off_the_event_loop_thread():
    async def scenario(worker):
        loop_thread = threading.get_ident()
        job_thread = await worker.call(threading.get_ident)
        return loop_thread, job_thread

    loop_thread, job_thread = run_with_worker(scenario)
    assert job_thread != loop_thread


def test_jobs_run_in_submission_order():
    seen = []

    async def scenario(worker):
        sender = threading.Thread(
            target=lambda: [worker.dispatch(lambda i=i: seen.append(i)) for i in range(5)]
        )
        sender.start()
        sender.join()
        await asyncio.sleep(0)
        return await worker.call(lambda: list(seen))

    assert run_with_worker(scenario) == [0, 1, 2, 3, 4]


def test_failures_do_not_stop_the_worker():
    def boom():
        raise ValueError("bad job")

    async def scenario(worker):
        worker.dispatch(boom)
        with pytest.raises(ValueError):
            await worker.call(boom)
        return await worker.call(lambda: "still running")

    assert run_with_worker(scenario) == "still running"
