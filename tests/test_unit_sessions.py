import asyncio

from async_request.sessions import SessionHandle, SessionStore


def test_unknown_session_gets_noop_handle():
    store = SessionStore()

    async def scenario():
        handle = await store.acquire("missing")
        assert handle.held is False
        handle.release()
        return handle

    assert asyncio.run(scenario()).session_id is None


def test_release_is_idempotent():
    store = SessionStore()
    session = store.create("administrator")

    async def scenario():
        handle = await store.acquire(session.id)
        handle.release()
        handle.release()
        again = await asyncio.wait_for(store.acquire(session.id), timeout=1)
        again.release()

    asyncio.run(scenario())


def test_second_request_waits_for_release():
    store = SessionStore()
    session = store.create("administrator")
    order: list[str] = []

    async def scenario():
        first = await store.acquire(session.id)

        async def second():
            handle = await store.acquire(session.id)
            order.append("second acquired")
            handle.release()

        task = asyncio.create_task(second())
        await asyncio.sleep(0.01)
        order.append("first releasing")
        first.release()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(scenario())
    assert order == ["first releasing", "second acquired"]


def test_create_get_delete():
    store = SessionStore()
    session = store.create("subscriber")
    assert store.get(session.id).role == "subscriber"
    assert store.get(None) is None
    assert store.delete(session.id) is True
    assert store.get(session.id) is None
    assert len(store) == 0


def test_empty_handle_is_released():
    assert SessionHandle().held is False


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_idle_session_expires():
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock)
    session = store.create("administrator")

    clock.now += 50
    assert store.get(session.id) is not None  # use keeps it alive
    clock.now += 50
    assert store.get(session.id) is not None
    clock.now += 61
    assert store.get(session.id) is None
    assert len(store) == 0


def test_expired_session_gets_noop_handle():
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock)
    session = store.create("administrator")
    clock.now += 61

    handle = asyncio.run(store.acquire(session.id))
    assert handle.held is False
    assert handle.session_id is None


def test_login_purges_expired_sessions_and_locks():
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock)
    old = [store.create("subscriber") for _ in range(3)]
    asyncio.run(store.acquire(old[0].id)).release()
    assert len(store._locks) == 1

    clock.now += 61
    fresh = store.create("administrator")
    assert len(store) == 1
    assert store._locks == {}
    assert store.get(fresh.id).role == "administrator"
    assert store.purge_expired() == 0
