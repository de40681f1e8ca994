from __future__ import annotations

import asyncio
import unittest

from portalclient.dedup import RequestDeduplicator, cache_key, hashed_cache_key


class RequestDeduplicatorTests(unittest.IsolatedAsyncioTestCase):
    async def test_concurrent_callers_share_one_operation(self) -> None:
        dedup = RequestDeduplicator()
        release = asyncio.Event()
        calls = 0

        async def operation() -> dict[str, int]:
            nonlocal calls
            calls += 1
            await release.wait()
            return {"value": 42}

        waiters = [asyncio.create_task(dedup.run("op:1", operation)) for _ in range(5)]
        await asyncio.sleep(0)
        self.assertEqual(dedup.in_flight, 1)
        self.assertTrue(dedup.is_pending("op:1"))

        release.set()
        results = await asyncio.gather(*waiters)

        self.assertEqual(calls, 1)
        for result in results:
            self.assertIs(result, results[0])
        self.assertEqual(dedup.in_flight, 0)

    async def test_rejection_reaches_every_waiter(self) -> None:
        dedup = RequestDeduplicator()
        error = RuntimeError("backend down")
        calls = 0

        async def failing() -> None:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0)
            raise error

        results = await asyncio.gather(
            *(dedup.run("op:fail", failing) for _ in range(3)),
            return_exceptions=True,
        )

        self.assertEqual(calls, 1)
        for result in results:
            self.assertIs(result, error)
        self.assertFalse(dedup.is_pending("op:fail"))

    async def test_different_keys_never_share(self) -> None:
        dedup = RequestDeduplicator()
        started: list[str] = []

        def factory(name: str):
            async def operation() -> str:
                started.append(name)
                await asyncio.sleep(0.01)
                return name

            return operation

        first, second = await asyncio.gather(
            dedup.run("op:a", factory("a")),
            dedup.run("op:b", factory("b")),
        )

        self.assertEqual((first, second), ("a", "b"))
        self.assertEqual(sorted(started), ["a", "b"])

    async def test_settled_operation_is_not_reused(self) -> None:
        dedup = RequestDeduplicator()
        calls: list[int] = []

        async def operation() -> int:
            calls.append(1)
            return len(calls)

        first = await dedup.run("op:again", operation)
        second = await dedup.run("op:again", operation)

        self.assertEqual((first, second), (1, 2))

    async def test_entry_is_evicted_before_waiters_resume(self) -> None:
        dedup = RequestDeduplicator()
        calls: list[int] = []

        async def operation() -> int:
            calls.append(1)
            return len(calls)

        try:
            first = await dedup.run("op:finally", operation)
            self.assertFalse(dedup.is_pending("op:finally"))
        finally:
            second = await dedup.run("op:finally", operation)

        self.assertEqual((first, second), (1, 2))

    async def test_failure_does_not_block_next_call(self) -> None:
        dedup = RequestDeduplicator()
        outcomes = iter([ValueError("first attempt"), "second attempt"])

        async def operation() -> str:
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        with self.assertRaises(ValueError):
            await dedup.run("op:retry", operation)
        self.assertEqual(await dedup.run("op:retry", operation), "second attempt")

    async def test_cancelled_waiter_does_not_cancel_shared_operation(self) -> None:
        dedup = RequestDeduplicator()
        release = asyncio.Event()

        async def operation() -> str:
            await release.wait()
            return "done"

        cancelled = asyncio.create_task(dedup.run("op:cancel", operation))
        survivor = asyncio.create_task(dedup.run("op:cancel", operation))
        await asyncio.sleep(0)

        cancelled.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await cancelled

        release.set()
        self.assertEqual(await survivor, "done")

    async def test_factory_raising_synchronously_registers_nothing(self) -> None:
        dedup = RequestDeduplicator()

        def broken():
            raise RuntimeError("could not build request")

        with self.assertRaises(RuntimeError):
            await dedup.run("op:broken", broken)
        self.assertEqual(dedup.in_flight, 0)

    async def test_rejects_empty_key(self) -> None:
        dedup = RequestDeduplicator()

        async def operation() -> None:
            return None

        with self.assertRaises(ValueError):
            await dedup.run("", operation)


class CacheKeyTests(unittest.TestCase):
    def test_equal_arguments_build_equal_keys(self) -> None:
        self.assertEqual(
            cache_key("users.get_all", {"skip": 0, "limit": 13}),
            cache_key("users.get_all", {"limit": 13, "skip": 0}),
        )

    def test_different_arguments_build_different_keys(self) -> None:
        self.assertNotEqual(cache_key("brands.get_by_id", "1"), cache_key("brands.get_by_id", "2"))
        self.assertNotEqual(cache_key("brands.get_by_id", "1"), cache_key("users.get_by_id", "1"))

    def test_hashed_key_hides_secrets(self) -> None:
        key = hashed_cache_key("credentials.login", "a@x.com", "hunter2")

        self.assertTrue(key.startswith("credentials.login:"))
        self.assertNotIn("hunter2", key)
        self.assertNotEqual(key, hashed_cache_key("credentials.login", "a@x.com", "hunter3"))
