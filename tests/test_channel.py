from apps.assignments.channel import ASSIGNMENT_REQUEST, ASSIGNMENT_TIMEOUT, EventPushChannel


def test_deliver_reaches_handlers_in_subscription_order():
    channel = EventPushChannel()
    calls = []
    channel.subscribe_assignment_request(lambda p: calls.append(("first", p)))
    channel.subscribe_assignment_request(lambda p: calls.append(("second", p)))

    delivered = channel.deliver(ASSIGNMENT_REQUEST, {"assignmentId": "1"})

    assert delivered == 2
    assert calls == [("first", {"assignmentId": "1"}), ("second", {"assignmentId": "1"})]


def test_events_only_reach_their_own_handlers():
    channel = EventPushChannel()
    requests, timeouts = [], []
    channel.subscribe_assignment_request(requests.append)
    channel.subscribe_assignment_timeout(timeouts.append)

    channel.deliver(ASSIGNMENT_TIMEOUT, {"assignmentId": "1"})

    assert requests == []
    assert timeouts == [{"assignmentId": "1"}]


def test_unknown_event_is_ignored():
    channel = EventPushChannel()
    assert channel.deliver("order:something-else", {}) == 0


def test_unsubscribe_is_idempotent():
    channel = EventPushChannel()
    received = []
    subscription = channel.subscribe_assignment_request(received.append)

    subscription.unsubscribe()
    subscription.unsubscribe()
    channel.deliver(ASSIGNMENT_REQUEST, {"assignmentId": "1"})

    assert received == []
    assert not subscription.active
    assert channel.handler_count() == 0


def test_subscription_released_when_block_exits():
    channel = EventPushChannel()
    with channel.subscribe_assignment_timeout(lambda p: None):
        assert channel.handler_count(ASSIGNMENT_TIMEOUT) == 1
    assert channel.handler_count(ASSIGNMENT_TIMEOUT) == 0


def test_same_handler_twice_releases_one_registration():
    channel = EventPushChannel()
    received = []
    first = channel.subscribe_assignment_request(received.append)
    channel.subscribe_assignment_request(received.append)

    first.unsubscribe()
    channel.deliver(ASSIGNMENT_REQUEST, "x")

    assert received == ["x"]


def test_connection_handlers_fire_only_on_change():
    channel = EventPushChannel()
    states = []
    channel.subscribe_connection(states.append)

    channel.set_connected(True)
    channel.set_connected(True)
    channel.set_connected(False)

    assert states == [True, False]
    assert channel.is_connected is False
