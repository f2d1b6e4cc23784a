"""Tests for per-key locking."""

import asyncio

import pytest

from src.heal_bot.services.keyed_lock import KeyedLock

pytestmark = pytest.mark.unit


async def test_same_key_is_serialized():
    locks = KeyedLock()
    order = []

    async def work(name: str):
        async with locks.hold("session"):
            order.append(f"{name}-start")
            await asyncio.sleep(0.01)
            order.append(f"{name}-end")

    await asyncio.gather(work("a"), work("b"))

    assert order == ["a-start", "a-end", "b-start", "b-end"]


async def test_different_keys_run_in_parallel():
    locks = KeyedLock()
    inside = asyncio.Event()

    async def first():
        async with locks.hold("one"):
            await asyncio.wait_for(inside.wait(), timeout=1.0)

    async def second():
        async with locks.hold("two"):
            inside.set()

    await asyncio.gather(first(), second())


async def test_unused_locks_are_dropped():
    locks = KeyedLock()

    async with locks.hold("session"):
        assert locks.locked("session")
        assert len(locks) == 1

    assert len(locks) == 0
    assert not locks.locked("session")
