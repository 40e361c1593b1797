"""Tests for the per-key lock arena."""

import asyncio
import gc

import pytest

from api.shared.locks import KeyedLocks


@pytest.mark.asyncio
async def test_same_key_is_mutually_exclusive() -> None:
    locks = KeyedLocks()
    order: list[str] = []

    async def worker(name: str) -> None:
        async with locks.hold("c1"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]


@pytest.mark.asyncio
async def test_different_keys_do_not_contend() -> None:
    locks = KeyedLocks()

    async with locks.hold("c1"):
        await asyncio.wait_for(_enter(locks, "c2"), timeout=1)


async def _enter(locks: KeyedLocks, key: str) -> None:
    async with locks.hold(key):
        pass


@pytest.mark.asyncio
async def test_idle_locks_are_released() -> None:
    locks = KeyedLocks()

    async with locks.hold("c1"):
        assert len(locks) == 1

    gc.collect()
    assert len(locks) == 0
