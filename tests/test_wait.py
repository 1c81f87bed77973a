from __future__ import annotations

import asyncio

import pytest

from cloudrift.wait import PollTimer, Trigger

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit"), pytest.mark.timeout(10)]


async def test_ticks_on_interval():
    timer = PollTimer(0.01)
    assert [await timer.next() for _ in range(3)] == [Trigger.TICK] * 3


async def test_deadline_fires():
    timer = PollTimer(0.01, timeout=0.05)
    triggers = []
    while (trigger := await timer.next()) is Trigger.TICK:
        triggers.append(trigger)
    assert trigger is Trigger.DEADLINE
    assert 1 <= len(triggers) <= 5


async def test_deadline_shorter_than_interval_never_ticks():
    timer = PollTimer(10.0, timeout=0.02)
    assert await timer.next() is Trigger.DEADLINE


async def test_cancel_interrupts_wait():
    cancel = asyncio.Event()
    timer = PollTimer(10.0, cancel=cancel)
    asyncio.get_running_loop().call_later(0.01, cancel.set)
    assert await asyncio.wait_for(timer.next(), timeout=1) is Trigger.CANCELED


async def test_already_canceled():
    cancel = asyncio.Event()
    cancel.set()
    assert await PollTimer(0.01, cancel=cancel).next() is Trigger.CANCELED


async def test_deadline_wins_over_cancel():
    cancel = asyncio.Event()
    cancel.set()
    timer = PollTimer(0.01, timeout=0, cancel=cancel)
    assert await timer.next() is Trigger.DEADLINE


async def test_remaining():
    assert PollTimer(1.0).remaining is None
    remaining = PollTimer(1.0, timeout=5.0).remaining
    assert remaining is not None
    assert 4.0 < remaining <= 5.0
