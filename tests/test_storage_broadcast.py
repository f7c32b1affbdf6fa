import itertools

import pytest

from alchemist.services.broadcast import SIGNED_IN, SIGNED_OUT, CrossTabAuthBroadcaster, CrossTabAuthEvent
from alchemist.services.storage import AUTH_EVENT_KEY, SharedStorage


def test_writer_is_not_notified_but_other_views_are():
    storage = SharedStorage()
    a, b, c = storage.view(), storage.view(), storage.view()
    seen = {"a": [], "b": [], "c": []}
    a.on_change(seen["a"].append)
    b.on_change(seen["b"].append)
    c.on_change(seen["c"].append)

    a.set_item("language", '"ja"')

    assert seen["a"] == []
    assert [ch.new_value for ch in seen["b"]] == ['"ja"']
    assert [ch.new_value for ch in seen["c"]] == ['"ja"']
    assert b.get_item("language") == '"ja"'


def test_unchanged_write_raises_no_event():
    storage = SharedStorage()
    a, b = storage.view(), storage.view()
    events = []
    b.on_change(events.append)
    a.set_item("k", "1")
    a.set_item("k", "1")
    assert len(events) == 1


def test_failing_listener_does_not_block_other_tabs():
    storage = SharedStorage()
    a, b, c = storage.view(), storage.view(), storage.view()

    def boom(_):
        raise RuntimeError("listener bug")

    got = []
    b.on_change(boom)
    c.on_change(got.append)
    a.set_item("k", "v")
    assert len(got) == 1


def test_closed_view_stops_receiving():
    storage = SharedStorage()
    a, b = storage.view(), storage.view()
    got = []
    b.on_change(got.append)
    b.close()
    a.set_item("k", "v")
    assert got == []


def test_broadcast_reaches_other_tab_only():
    storage = SharedStorage()
    clock = itertools.count(1000).__next__
    tab_a = CrossTabAuthBroadcaster(storage.view(), clock=clock)
    tab_b = CrossTabAuthBroadcaster(storage.view(), clock=clock)
    got_a, got_b = [], []
    tab_a.subscribe(got_a.append)
    tab_b.subscribe(got_b.append)

    sent = tab_a.publish(SIGNED_IN)

    assert got_a == []
    assert got_b == [sent]
    assert sent.type == SIGNED_IN and sent.timestamp == 1000


def test_publish_rejects_other_event_types():
    b = CrossTabAuthBroadcaster(SharedStorage().view())
    with pytest.raises(ValueError):
        b.publish("TOKEN_REFRESHED")


def test_malformed_envelopes_are_ignored():
    storage = SharedStorage()
    writer = storage.view()
    got = []
    CrossTabAuthBroadcaster(storage.view()).subscribe(got.append)

    writer.set_item(AUTH_EVENT_KEY, "not json")
    writer.set_item(AUTH_EVENT_KEY, '{"type": "SIGNED_IN"}')
    writer.set_item(AUTH_EVENT_KEY, '{"type": "HACKED", "timestamp": 5}')
    writer.set_item(AUTH_EVENT_KEY, CrossTabAuthEvent(SIGNED_OUT, 7).to_json())

    assert got == [CrossTabAuthEvent(SIGNED_OUT, 7)]
