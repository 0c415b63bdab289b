import asyncio

import pytest

from resume_mind_sync.cache import ResourceCache
from resume_mind_sync.errors import ApiError
from resume_mind_sync.models.cache import CacheOptions, EntryState
from resume_mind_sync.signals import FOCUS, RECONNECT, SignalHub

from conftest import DummyFetcher


@pytest.mark.asyncio
async def test_get_starts_loading_and_fetches(scheduler) -> None:
    fetcher = DummyFetcher({"v": 1})
    cache = ResourceCache(fetcher, scheduler=scheduler)

    sub = cache.get("/x")
    assert sub.is_loading is True
    assert sub.is_validating is True
    assert sub.data is None
    assert sub.error is None

    await scheduler.drain()

    assert fetcher.calls == ["/x"]
    assert sub.data == {"v": 1}
    assert sub.is_loading is False
    assert sub.is_validating is False
    assert cache.peek("/x").state is EntryState.READY


@pytest.mark.asyncio
async def test_none_key_does_not_fetch(scheduler) -> None:
    fetcher = DummyFetcher("unused")
    cache = ResourceCache(fetcher, scheduler=scheduler)

    sub = cache.get(None)
    await scheduler.drain()

    assert sub.is_loading is True
    assert sub.is_validating is False
    assert sub.data is None
    assert fetcher.calls == []
    assert await sub.mutate("ignored") is None


@pytest.mark.asyncio
async def test_concurrent_gets_share_one_request(scheduler) -> None:
    fetcher = DummyFetcher(["a"])
    cache = ResourceCache(fetcher, scheduler=scheduler)

    first = cache.get("/x")
    second = cache.get("/x")
    assert second.is_validating is True
    await scheduler.drain()

    assert fetcher.calls == ["/x"]
    assert first.data == ["a"]
    assert second.data == ["a"]


@pytest.mark.asyncio
async def test_fresh_entry_is_served_without_fetch(scheduler) -> None:
    fetcher = DummyFetcher("cached")
    cache = ResourceCache(fetcher, scheduler=scheduler)
    first = cache.get("/shared")
    await scheduler.drain()
    first.close()

    await scheduler.advance(10.0)
    second = cache.get("/shared")

    assert second.data == "cached"
    assert second.is_loading is False
    assert second.is_validating is False
    assert fetcher.calls == ["/shared"]


@pytest.mark.asyncio
async def test_stale_entry_returns_old_value_while_revalidating(scheduler) -> None:
    fetcher = DummyFetcher({"v": 1}, {"v": 2})
    cache = ResourceCache(fetcher, scheduler=scheduler)
    opts = CacheOptions(ttl_s=30.0)

    first = cache.get("/x", opts)
    await scheduler.drain()

    await scheduler.advance(31.0)
    second = cache.get("/x", opts)
    assert second.data == {"v": 1}
    assert second.is_loading is False
    assert second.is_validating is True

    await scheduler.drain()
    assert len(fetcher.calls) == 2
    assert first.data == {"v": 2}
    assert second.data == {"v": 2}

    await scheduler.advance(29.0)
    third = cache.get("/x", opts)
    await scheduler.drain()
    assert third.data == {"v": 2}
    assert len(fetcher.calls) == 2


@pytest.mark.asyncio
async def test_failed_fetch_keeps_previous_data(scheduler) -> None:
    fetcher = DummyFetcher(["a"], ApiError(500, "Test error"))
    cache = ResourceCache(fetcher, scheduler=scheduler)
    sub = cache.get("/x")
    await scheduler.drain()

    await scheduler.advance(5.0)
    result = await sub.mutate()

    assert result == ["a"]
    assert sub.data == ["a"]
    assert sub.error.status == 500
    assert sub.error.message == "Test error"
    assert sub.is_loading is False
    assert sub.is_validating is False
    entry = cache.peek("/x")
    assert entry.state is EntryState.FAILED
    assert entry.fetched_at == 0.0


@pytest.mark.asyncio
async def test_failed_fetch_is_not_retried(scheduler) -> None:
    fetcher = DummyFetcher(ApiError(503, "down"))
    cache = ResourceCache(fetcher, scheduler=scheduler)
    sub = cache.get("/x")
    await scheduler.drain()

    assert sub.is_loading is False
    assert sub.error.status == 503

    await scheduler.advance(120.0)
    assert fetcher.calls == ["/x"]


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_api_error(scheduler) -> None:
    fetcher = DummyFetcher(RuntimeError("socket closed"))
    cache = ResourceCache(fetcher, scheduler=scheduler)
    sub = cache.get("/x")
    await scheduler.drain()

    assert isinstance(sub.error, ApiError)
    assert sub.error.status == 0
    assert sub.error.message == "socket closed"


@pytest.mark.asyncio
async def test_result_after_close_is_discarded(scheduler) -> None:
    gate = asyncio.Event()

    async def fetcher(key: str):
        await gate.wait()
        raise ApiError(500, "late")

    cache = ResourceCache(fetcher, scheduler=scheduler)
    sub = cache.get("/x")
    await scheduler.drain()
    sub.close()

    gate.set()
    await scheduler.drain()

    assert sub.error is None
    entry = cache.peek("/x")
    assert entry.error is None
    assert entry.flight is None
    assert entry.state is EntryState.IDLE


@pytest.mark.asyncio
async def test_mutate_with_function_builds_on_latest_value(scheduler) -> None:
    fetcher = DummyFetcher([])
    cache = ResourceCache(fetcher, scheduler=scheduler)
    sub = cache.get("/list")
    await scheduler.drain()

    await cache.mutate("/list", lambda cur: [*(cur or []), "a"])
    await sub.mutate(lambda cur: [*(cur or []), "b"])

    assert sub.data == ["a", "b"]
    assert fetcher.calls == ["/list"]


@pytest.mark.asyncio
async def test_mutate_with_function_on_missing_entry_gets_none(scheduler) -> None:
    cache = ResourceCache(DummyFetcher(), scheduler=scheduler)
    seen = []

    def update(current):
        seen.append(current)
        return ["new-item"]

    assert await cache.mutate("/empty", update) == ["new-item"]
    assert seen == [None]


@pytest.mark.asyncio
async def test_mutate_with_awaitable_and_plain_value(scheduler) -> None:
    fetcher = DummyFetcher("initial")
    cache = ResourceCache(fetcher, scheduler=scheduler)
    sub = cache.get("/x")
    await scheduler.drain()

    async def later() -> str:
        return "promise-result"

    await sub.mutate(later())
    assert sub.data == "promise-result"

    await sub.mutate("direct-data")
    assert sub.data == "direct-data"
    assert cache.peek("/x").fetched_at == scheduler.now()
    assert fetcher.calls == ["/x"]


@pytest.mark.asyncio
async def test_mutate_without_argument_bypasses_deduping(scheduler) -> None:
    fetcher = DummyFetcher("first", "second")
    cache = ResourceCache(fetcher, scheduler=scheduler)
    sub = cache.get("/x", CacheOptions(deduping_interval_s=5.0))
    await scheduler.drain()

    await sub.mutate()

    assert fetcher.calls == ["/x", "/x"]
    assert sub.data == "second"


@pytest.mark.asyncio
async def test_revalidate_respects_deduping_window(scheduler) -> None:
    fetcher = DummyFetcher("first", "second")
    cache = ResourceCache(fetcher, scheduler=scheduler)
    cache.get("/x")
    await scheduler.drain()

    assert await cache.revalidate("/x") == "first"
    assert len(fetcher.calls) == 1

    await scheduler.advance(2.5)
    assert await cache.revalidate("/x") == "second"
    assert len(fetcher.calls) == 2


@pytest.mark.asyncio
async def test_mutation_during_fetch_wins(scheduler) -> None:
    gate = asyncio.Event()

    async def fetcher(key: str) -> str:
        await gate.wait()
        return "server"

    cache = ResourceCache(fetcher, scheduler=scheduler)
    sub = cache.get("/x")
    await scheduler.drain()

    await cache.mutate("/x", "local")
    assert sub.data == "local"
    assert sub.is_validating is True

    gate.set()
    await scheduler.drain()

    assert sub.data == "local"
    assert sub.is_validating is False


@pytest.mark.asyncio
async def test_later_mutation_is_not_overwritten_by_slower_one(scheduler) -> None:
    cache = ResourceCache(DummyFetcher(), scheduler=scheduler)
    slow = asyncio.get_running_loop().create_future()

    pending = asyncio.create_task(cache.mutate("/x", slow))
    await asyncio.sleep(0)
    await cache.mutate("/x", "second")

    slow.set_result("first")
    assert await pending == "second"
    assert cache.peek("/x").value == "second"


@pytest.mark.asyncio
async def test_invalidate_forces_refetch_on_next_get(scheduler) -> None:
    fetcher = DummyFetcher("old", "new")
    cache = ResourceCache(fetcher, scheduler=scheduler)
    cache.get("/x")
    await scheduler.drain()

    cache.invalidate("/x")
    sub = cache.get("/x")
    assert sub.data == "old"
    assert sub.is_validating is True

    await scheduler.drain()
    assert sub.data == "new"
    assert len(fetcher.calls) == 2


@pytest.mark.asyncio
async def test_clear_all_drops_entries(scheduler) -> None:
    fetcher = DummyFetcher("a", "b")
    cache = ResourceCache(fetcher, scheduler=scheduler)
    cache.get("/x")
    await scheduler.drain()

    cache.clear_all()
    assert cache.peek("/x") is None

    sub = cache.get("/x")
    assert sub.is_loading is True
    await scheduler.drain()
    assert sub.data == "b"


@pytest.mark.asyncio
async def test_refresh_interval_revalidates_until_closed(scheduler) -> None:
    fetcher = DummyFetcher()
    fetcher.default = "data"
    cache = ResourceCache(fetcher, scheduler=scheduler)
    sub = cache.get("/x", CacheOptions(refresh_interval_s=5.0))
    await scheduler.drain()

    await scheduler.advance(5.0)
    assert len(fetcher.calls) == 2

    sub.close()
    await scheduler.advance(10.0)
    assert len(fetcher.calls) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("interval", [0.0, -1.0])
async def test_non_positive_refresh_interval_disables_timer(scheduler, interval) -> None:
    fetcher = DummyFetcher()
    cache = ResourceCache(fetcher, scheduler=scheduler)
    cache.get("/x", CacheOptions(refresh_interval_s=interval))

    await scheduler.advance(10.0)
    assert len(fetcher.calls) == 1


@pytest.mark.asyncio
async def test_focus_signal_revalidates_subscribers(scheduler) -> None:
    hub = SignalHub()
    fetcher = DummyFetcher("a", "b")
    cache = ResourceCache(fetcher, scheduler=scheduler, signals=hub)
    sub = cache.get("/x", CacheOptions(revalidate_on_focus=True))
    await scheduler.drain()

    await scheduler.advance(3.0)
    assert hub.emit(FOCUS) == 1
    await scheduler.drain()
    assert sub.data == "b"
    assert hub.emit(RECONNECT) == 0

    sub.close()
    assert hub.listener_count(FOCUS) == 0


@pytest.mark.asyncio
async def test_reconnect_signal_refetches_once_within_window(scheduler) -> None:
    hub = SignalHub()
    fetcher = DummyFetcher("a", "b", "c")
    cache = ResourceCache(fetcher, scheduler=scheduler, signals=hub)
    sub = cache.get("/x", CacheOptions(revalidate_on_reconnect=True))
    await scheduler.drain()

    await scheduler.advance(3.0)
    assert hub.emit(RECONNECT) == 1
    await scheduler.drain()
    assert sub.data == "b"

    await scheduler.advance(1.0)
    assert hub.emit(RECONNECT) == 1
    await scheduler.drain()

    assert fetcher.calls == ["/x", "/x"]
    assert sub.data == "b"
    assert hub.listener_count(FOCUS) == 0


@pytest.mark.asyncio
async def test_remount_after_discarded_fetch_loads_again(scheduler) -> None:
    fetcher = DummyFetcher("first", "second")
    cache = ResourceCache(fetcher, scheduler=scheduler)

    first = cache.get("/x")
    first.close()
    await scheduler.drain()
    assert not cache.peek("/x").has_value

    await scheduler.advance(0.5)
    second = cache.get("/x")
    assert second.is_validating is True
    await scheduler.advance(20.0)

    assert fetcher.calls == ["/x", "/x"]
    assert second.data == "second"
    assert second.is_loading is False


@pytest.mark.asyncio
async def test_on_change_receives_updates(scheduler) -> None:
    seen = []
    cache = ResourceCache(DummyFetcher("a"), scheduler=scheduler)
    cache.get("/x", on_change=lambda s: seen.append((s.data, s.is_validating)))
    await scheduler.drain()

    await cache.mutate("/x", "b")

    assert seen[-2:] == [("a", False), ("b", False)]


@pytest.mark.asyncio
async def test_closed_subscription_mutate_is_noop(scheduler) -> None:
    cache = ResourceCache(DummyFetcher("a"), scheduler=scheduler)
    sub = cache.get("/x")
    await scheduler.drain()
    sub.close()

    await sub.mutate("b")

    assert cache.peek("/x").value == "a"
    assert cache.subscriber_count("/x") == 0


@pytest.mark.asyncio
async def test_direct_mutate_fetches_without_subscribers(scheduler) -> None:
    fetcher = DummyFetcher({"nodes": []})
    cache = ResourceCache(fetcher, scheduler=scheduler)

    assert await cache.mutate("/user/graph") == {"nodes": []}
    assert cache.peek("/user/graph").state is EntryState.READY
