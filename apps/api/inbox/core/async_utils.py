from __future__ import annotations

import asyncio
from typing import Coroutine, TypeVar

import anyio

T = TypeVar("T")


def run_async(coro: Coroutine[object, object, T], *, timeout: float | None = None) -> T:
    """
    Run a sync coroutine (provider fetch, broker lookup) from synchronous code.

    - From a FastAPI worker thread, runs on the main loop via anyio.from_thread.run.
    - From the CLI or a plain thread, starts a fresh loop with anyio.run.
    - Refuses to run from inside a running loop in the same thread.
    """

    async def _runner() -> T:
        if timeout is None:
            return await coro
        with anyio.fail_after(timeout):
            return await coro

    try:
        return anyio.from_thread.run(_runner)
    except RuntimeError:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return anyio.run(_runner)
        coro.close()
        raise RuntimeError("run_async called from a running event loop; await the coroutine instead")
