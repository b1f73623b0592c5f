import asyncio
from app.governance.store import InMemoryRateLimitStore
from app.jobs.counter_sweep import CounterSweeper


def test_run_once_evicts_expired_counters():
    store = InMemoryRateLimitStore()
    asyncio.run(store.upsert_and_check("expired", 0, 1_000, 5))
    asyncio.run(store.upsert_and_check("live", 0, 60_000, 5))

    sweeper = CounterSweeper(store, clock=lambda: 5_000)
    assert sweeper.run_once() == 1
    assert store.get("expired") is None
    assert store.get("live") is not None


def test_background_loop_sweeps_and_stops():
    store = InMemoryRateLimitStore()

    async def scenario():
        await store.upsert_and_check("k", 0, 1, 5)
        sweeper = CounterSweeper(store, interval_seconds=0.01, clock=lambda: 10)
        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.05)
        await sweeper.stop()
        return sweeper.running

    assert asyncio.run(scenario()) is False
    assert len(store) == 0


def test_sweep_errors_do_not_kill_loop():
    class FlakyStore(InMemoryRateLimitStore):
        calls = 0

        def sweep(self, now_ms):
            FlakyStore.calls += 1
            if FlakyStore.calls == 1:
                raise RuntimeError("transient")
            return super().sweep(now_ms)

    store = FlakyStore()

    async def scenario():
        sweeper = CounterSweeper(store, interval_seconds=0.01)
        sweeper.start()
        await asyncio.sleep(0.06)
        await sweeper.stop()

    asyncio.run(scenario())
    assert FlakyStore.calls >= 2
