from progression.services.veto_realtime import VetoStateHub


def test_publish_reaches_only_session_subscribers():
    hub = VetoStateHub()
    seen_a, seen_b = [], []
    hub.subscribe(1, seen_a.append)
    hub.subscribe(2, seen_b.append)

    assert hub.publish(1, "action", map_id="bind") == 1
    assert seen_a == [{"session_id": 1, "event": "action", "map_id": "bind"}]
    assert seen_b == []


def test_unsubscribe_stops_delivery():
    hub = VetoStateHub()
    seen = []
    sub = hub.subscribe(4, seen.append)
    assert hub.subscriber_count(4) == 1

    hub.unsubscribe(sub)
    hub.unsubscribe(sub)
    assert hub.subscriber_count(4) == 0
    assert hub.publish(4, "reset") == 0
    assert seen == []


def test_failing_subscriber_does_not_block_others():
    hub = VetoStateHub()
    seen = []

    def closed_loop(message):
        raise RuntimeError("Event loop is closed")

    hub.subscribe(7, closed_loop)
    hub.subscribe(7, seen.append)

    assert hub.publish(7, "completed", side="attack") == 1
    assert seen == [{"session_id": 7, "event": "completed", "side": "attack"}]
