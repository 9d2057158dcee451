from __future__ import annotations

import threading

from galtrans.ui.bridge import EventBroadcaster, SubscriberQueue


def test_publish_reaches_every_subscriber_in_order() -> None:
    bus = EventBroadcaster()
    seen_a: list[int] = []
    seen_b: list[int] = []
    bus.subscribe("t", seen_a.append)
    bus.subscribe("t", seen_b.append)
    for i in range(3):
        assert bus.publish("t", i) == 2
    assert seen_a == [0, 1, 2]
    assert seen_b == [0, 1, 2]


def test_publish_without_subscribers_is_noop() -> None:
    bus = EventBroadcaster()
    assert bus.publish("nobody", "x") == 0


def test_topics_are_independent() -> None:
    bus = EventBroadcaster()
    seen: list[str] = []
    bus.subscribe("a", seen.append)
    bus.publish("b", "ignored")
    bus.publish("a", "kept")
    assert seen == ["kept"]


def test_closed_subscription_stops_delivery() -> None:
    bus = EventBroadcaster()
    seen: list[int] = []
    sub = bus.subscribe("t", seen.append)
    bus.publish("t", 1)
    sub.close()
    sub.close()
    bus.publish("t", 2)
    assert seen == [1]
    assert sub.closed
    assert bus.listener_count("t") == 0


def test_subscription_context_manager() -> None:
    bus = EventBroadcaster()
    seen: list[int] = []
    with bus.subscribe("t", seen.append):
        bus.publish("t", 1)
    bus.publish("t", 2)
    assert seen == [1]


def test_failing_listener_does_not_block_others() -> None:
    bus = EventBroadcaster()
    seen: list[str] = []

    def _boom(_payload) -> None:
        raise RuntimeError("listener broke")

    bus.subscribe("t", _boom)
    bus.subscribe("t", seen.append)
    assert bus.publish("t", "x") == 1
    assert seen == ["x"]


def test_listener_closed_mid_publish_is_skipped() -> None:
    bus = EventBroadcaster()
    seen: list[str] = []
    holder: dict[str, object] = {}

    def _first(_payload) -> None:
        holder["second"].close()  # type: ignore[union-attr]

    bus.subscribe("t", _first)
    holder["second"] = bus.subscribe("t", seen.append)
    bus.publish("t", "x")
    assert seen == []


def test_concurrent_publishers_deliver_everything() -> None:
    bus = EventBroadcaster()
    seen: list[int] = []
    lock = threading.Lock()

    def _record(v: int) -> None:
        with lock:
            seen.append(v)

    bus.subscribe("t", _record)
    threads = [
        threading.Thread(target=lambda base=base: [bus.publish("t", base + i) for i in range(50)])
        for base in (0, 100, 200, 300)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(seen) == sorted(b + i for b in (0, 100, 200, 300) for i in range(50))


def test_subscriber_queue_drops_oldest_when_full() -> None:
    q: SubscriberQueue[str] = SubscriberQueue(maxsize=2)
    q.push("one")
    q.push("two")
    q.push("three")
    assert q.pop() == "two"
    assert q.pop() == "three"
    assert q.pop() is None
