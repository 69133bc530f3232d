import asyncio
import threading
import time
from pathlib import Path

from compliance_qa.models import ChatMessage
from compliance_qa.session import SessionLockRegistry, SessionStore
from compliance_qa.storage import SQLiteKeyValueStore


def _turn(n: int) -> list[ChatMessage]:
    return [ChatMessage(role="user", content=f"question {n}"), ChatMessage(role="assistant", content=f"answer {n}")]


def test_history_is_trimmed_to_cap(kv_store):
    store = SessionStore(kv_store, max_messages=10)
    for n in range(8):
        stored = store.append("s1", _turn(n))
        assert len(stored) <= 10

    history = store.history("s1")
    assert len(history) == 10
    assert [m.content for m in history[:2]] == ["question 3", "answer 3"]
    assert [(m.role, m.content) for m in store.read_tail("s1", 2)] == [("user", "question 7"), ("assistant", "answer 7")]


def test_sessions_are_isolated(kv_store):
    store = SessionStore(kv_store)
    store.append("s1", _turn(1))
    assert store.history("s2") == []
    assert store.read_tail("s2", 2) == []
    assert store.read_tail("s1", 0) == []


def test_history_survives_reopen(tmp_path: Path):
    db_path = tmp_path / "sessions.sqlite3"
    first = SQLiteKeyValueStore(db_path)
    original = _turn(1)
    SessionStore(first).append("s1", original)
    first.close()

    reloaded = SessionStore(SQLiteKeyValueStore(db_path)).history("s1")

    assert reloaded == original


def test_lock_serialises_same_session():
    registry = SessionLockRegistry()
    active = 0
    peak = 0
    counter_lock = threading.Lock()

    def worker():
        nonlocal active, peak
        with registry.hold("shared"):
            with counter_lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.02)
            with counter_lock:
                active -= 1

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert peak == 1


def test_lock_allows_different_sessions_in_parallel():
    registry = SessionLockRegistry()
    barrier = threading.Barrier(2, timeout=5)
    errors: list[BaseException] = []

    def worker(session_id: str):
        with registry.hold(session_id):
            try:
                barrier.wait()
            except threading.BrokenBarrierError as exc:
                errors.append(exc)

    threads = [threading.Thread(target=worker, args=(sid,)) for sid in ("a", "b")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []


def test_idle_session_locks_are_released():
    registry = SessionLockRegistry()
    with registry.hold("temporary"):
        assert len(registry) == 1
    assert len(registry) == 0


def test_async_hold_serialises_same_session_without_blocking_others():
    registry = SessionLockRegistry()
    events: list[str] = []

    async def turn(session_id: str, label: str, delay: float) -> None:
        async with registry.hold_async(session_id):
            events.append(f"{label}-start")
            await asyncio.sleep(delay)
            events.append(f"{label}-end")

    async def scenario() -> None:
        first = asyncio.create_task(turn("hot", "a", 0.05))
        second = asyncio.create_task(turn("hot", "b", 0))
        await asyncio.sleep(0.01)
        await turn("cold", "c", 0)
        await asyncio.gather(first, second)

    asyncio.run(scenario())

    assert events.index("c-end") < events.index("a-end")
    assert events.index("a-end") < events.index("b-start")
