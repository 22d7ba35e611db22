"""Helpers shared by the dashboard pages."""

import asyncio
import concurrent.futures

from gearflow.integrations.backend_client import BackendClient


def run_async(coro):
    """Run an async coroutine in Streamlit context."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            with concurrent.futures.ThreadPoolExecutor() as pool:
                future = pool.submit(asyncio.run, coro)
                return future.result()
        else:
            return loop.run_until_complete(coro)
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()


def backend_call(fn):
    """Open a backend client, await ``fn(client)`` and close it again."""

    async def _call():
        async with BackendClient.from_env() as client:
            return await fn(client)

    return run_async(_call())
