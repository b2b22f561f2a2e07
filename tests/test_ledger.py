"""
Tests for the entitlement ledger: daily look quota and per-session coach questions.
"""

import asyncio
from datetime import date, datetime, timezone

from conftest import TODAY, make_policy

from mirror.core.device_store import MemoryDeviceStore
from mirror.orchestrator.ledger import EntitlementLedger, device_today, looks_key


def run(coro):
    return asyncio.run(coro)


def _ledger(store, today=TODAY, **policy_kwargs):
    return EntitlementLedger(store, make_policy(**policy_kwargs), today=lambda: today)


class TestLooksKey:
    def test_key_uses_iso_date(self):
        assert looks_key(date(2025, 1, 5)) == "mirror_looks_2025-01-05"

    def test_unknown_timezone_falls_back_to_utc(self):
        assert device_today("Not/AZone") == datetime.now(timezone.utc).date()

    def test_missing_timezone_uses_utc(self):
        assert device_today(None) == datetime.now(timezone.utc).date()

    def test_known_timezone(self):
        assert isinstance(device_today("America/Sao_Paulo"), date)


class TestDailyQuota:
    """canGenerateLookToday / markLookUsed."""

    def test_fresh_device_can_generate(self, store):
        ledger = _ledger(store)
        assert run(ledger.can_generate_look_today(False)) is True

    def test_denies_at_limit(self, store):
        ledger = _ledger(store)

        async def scenario():
            for _ in range(3):
                await ledger.mark_look_used()
            return await ledger.can_generate_look_today(False)

        assert run(scenario()) is False

    def test_allows_below_limit(self, store):
        ledger = _ledger(store)

        async def scenario():
            await ledger.mark_look_used()
            await ledger.mark_look_used()
            return await ledger.can_generate_look_today(False)

        assert run(scenario()) is True

    def test_zero_limit_always_denies(self, store):
        ledger = _ledger(store, config={"limits": {"maxLooksPerDay": 0}})
        assert run(ledger.can_generate_look_today(False)) is False

    def test_negative_limit_denies(self, store):
        ledger = _ledger(store, config={"limits": {"maxLooksPerDay": -1}})
        assert run(ledger.can_generate_look_today(False)) is False

    def test_premium_uses_premium_limit(self, store):
        ledger = _ledger(store, config={"billing": {"premiumLooksPerDay": 5}})

        async def scenario():
            for _ in range(4):
                await ledger.mark_look_used()
            free = await ledger.can_generate_look_today(False)
            premium = await ledger.can_generate_look_today(True)
            await ledger.mark_look_used()
            premium_after = await ledger.can_generate_look_today(True)
            return free, premium, premium_after

        assert run(scenario()) == (False, True, False)

    def test_mark_look_used_increments_by_one(self, store):
        ledger = _ledger(store)

        async def scenario():
            first = await ledger.mark_look_used()
            second = await ledger.mark_look_used()
            return first, second, await store.get(looks_key(TODAY))

        assert run(scenario()) == (1, 2, "2")

    def test_new_day_rolls_over(self, store):
        yesterday = _ledger(store, today=date(2025, 3, 13))
        today = _ledger(store)

        async def scenario():
            for _ in range(3):
                await yesterday.mark_look_used()
            return await yesterday.can_generate_look_today(False), await today.can_generate_look_today(False)

        assert run(scenario()) == (False, True)

    def test_garbage_counter_reads_as_zero(self, store):
        ledger = _ledger(store)

        async def scenario():
            await store.set(looks_key(TODAY), "lots")
            return await ledger.looks_used_today()

        assert run(scenario()) == 0

    def test_counters_are_per_device(self):
        a = _ledger(MemoryDeviceStore("a"))
        b = _ledger(MemoryDeviceStore("b"))

        async def scenario():
            for _ in range(3):
                await a.mark_look_used()
            return await b.looks_used_today()

        assert run(scenario()) == 0


class TestCoachQuestions:
    def test_first_question_is_free(self, store):
        ledger = _ledger(store)
        assert ledger.can_ask_coach_question(False) is True

    def test_second_question_denied(self, store):
        ledger = _ledger(store)
        ledger.record_coach_question_used()
        assert ledger.can_ask_coach_question(False) is False
        assert ledger.coach_questions_used == 1

    def test_premium_bypasses(self, store):
        ledger = _ledger(store)
        for _ in range(10):
            ledger.record_coach_question_used()
        assert ledger.can_ask_coach_question(True) is True

    def test_reset_session_zeroes(self, store):
        ledger = _ledger(store)
        ledger.record_coach_question_used()
        ledger.reset_session()
        assert ledger.coach_questions_used == 0
        assert ledger.can_ask_coach_question(False) is True

    def test_configured_free_questions(self, store):
        ledger = _ledger(store, config={"billing": {"freeCoachQuestionsPerSession": 2}})
        ledger.record_coach_question_used()
        assert ledger.can_ask_coach_question(False) is True
        ledger.record_coach_question_used()
        assert ledger.can_ask_coach_question(False) is False
