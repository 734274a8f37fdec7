import asyncio
from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.infra.db import DeviceRecord
from app.infra.notification_store import list_user_notifications
from app.services.notification_handler import NotificationDispatcher


@pytest.fixture
def pubsub():
    mock = MagicMock()
    mock.publish = AsyncMock(return_value=1)
    return mock


@pytest.fixture
def push_sender():
    mock = MagicMock()
    mock.send = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def sms_sender():
    mock = MagicMock()
    mock.send = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def email_sender():
    mock = MagicMock()
    mock.send = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def dispatcher(pubsub, push_sender, sms_sender, email_sender):
    return NotificationDispatcher(pubsub, push_sender, sms_sender, email_sender, delivery_timeout=1)


def _tokens(session):
    return sorted(session.execute(select(DeviceRecord.expo_push_token)).scalars())


@pytest.mark.asyncio
async def test_all_channels_dispatched(session, add_user, make_notification, dispatcher, pubsub, push_sender, sms_sender, email_sender):
    add_user(session, "user-1", phone="+100", email="a@example.com", tokens=["t1", "t2"])
    n = make_notification("ORDER_SHIPPED", orderType="SAMPLE", message="Your sample shipped", id="n1")

    report = await dispatcher.send_notifications(session, [n])

    pubsub.publish.assert_awaited_once_with(n)
    push_sender.send.assert_awaited_once_with(["t1", "t2"], "Sample shipped", "Your sample shipped")
    sms_sender.send.assert_awaited_once_with(["+100"], n)
    email_sender.send.assert_awaited_once_with(["a@example.com"], n)
    assert report.attempts == 4
    assert report.failures == []


@pytest.mark.asyncio
async def test_only_in_app_without_contacts(session, make_notification, dispatcher, pubsub, push_sender, sms_sender, email_sender):
    n = make_notification(userId="nobody")

    report = await dispatcher.send_notifications(session, [n])

    pubsub.publish.assert_awaited_once_with(n)
    push_sender.send.assert_not_called()
    sms_sender.send.assert_not_called()
    email_sender.send.assert_not_called()
    assert report.attempts == 1


@pytest.mark.asyncio
async def test_empty_batch(session, dispatcher, pubsub):
    report = await dispatcher.send_notifications(session, [])

    assert report.attempts == 0
    pubsub.publish.assert_not_called()


@pytest.mark.asyncio
async def test_invalid_tokens_are_removed(session, add_user, make_notification, dispatcher, push_sender):
    add_user(session, "user-1", tokens=["good-1", "bad-1", "good-2", "bad-2"])
    add_user(session, "user-2", tokens=["other"])
    push_sender.send.return_value = ["bad-1", "bad-2"]

    report = await dispatcher.send_notifications(session, [make_notification()])

    assert report.removed_tokens == ["bad-1", "bad-2"]
    assert _tokens(session) == ["good-1", "good-2", "other"]


@pytest.mark.asyncio
async def test_invalid_tokens_merged_across_batch(session, add_user, make_notification, dispatcher, push_sender):
    add_user(session, "a", tokens=["a-1", "a-2"])
    add_user(session, "b", tokens=["b-1"])

    async def reject_first(tokens, title, body):
        return [tokens[0]]

    push_sender.send.side_effect = reject_first

    report = await dispatcher.send_notifications(
        session,
        [make_notification(userId="a"), make_notification(userId="a"), make_notification(userId="b")],
    )

    assert report.removed_tokens == ["a-1", "b-1"]
    assert _tokens(session) == ["a-2"]


@pytest.mark.asyncio
async def test_channel_failure_is_isolated(session, add_user, make_notification, dispatcher, pubsub, email_sender, sms_sender):
    add_user(session, "a", email="a@example.com")
    add_user(session, "b", phone="+200", email="b@example.com")
    n_a = make_notification(userId="a", id="na")
    n_b = make_notification(userId="b", id="nb")

    async def flaky(destinations, notification):
        if notification.userId == "a":
            raise RuntimeError("provider down")

    email_sender.send.side_effect = flaky

    report = await dispatcher.send_notifications(session, [n_a, n_b])

    assert len(report.failures) == 1
    failure = report.failures[0]
    assert (failure.notification_id, failure.channel) == ("na", "email")
    assert "provider down" in failure.error
    email_sender.send.assert_has_awaits([call(["a@example.com"], n_a), call(["b@example.com"], n_b)], any_order=True)
    sms_sender.send.assert_awaited_once_with(["+200"], n_b)
    assert pubsub.publish.await_count == 2


@pytest.mark.asyncio
async def test_push_failure_skips_cleanup(session, add_user, make_notification, dispatcher, push_sender):
    add_user(session, "user-1", tokens=["t1"])
    push_sender.send.side_effect = ConnectionError("boom")

    report = await dispatcher.send_notifications(session, [make_notification()])

    assert [f.channel for f in report.failures] == ["push"]
    assert report.removed_tokens == []
    assert _tokens(session) == ["t1"]


@pytest.mark.asyncio
async def test_in_app_failure_does_not_block_push(session, add_user, make_notification, dispatcher, pubsub, push_sender):
    add_user(session, "user-1", tokens=["t1"])
    pubsub.publish.side_effect = ConnectionError("redis down")

    report = await dispatcher.send_notifications(session, [make_notification()])

    push_sender.send.assert_awaited_once()
    assert [f.channel for f in report.failures] == ["in_app"]


@pytest.mark.asyncio
async def test_hung_sender_times_out(session, add_user, make_notification, pubsub, push_sender, sms_sender, email_sender):
    add_user(session, "user-1", phone="+100", tokens=["t1"])

    async def hang(destinations, notification):
        await asyncio.sleep(10)

    sms_sender.send.side_effect = hang
    dispatcher = NotificationDispatcher(pubsub, push_sender, sms_sender, email_sender, delivery_timeout=0.05)

    report = await dispatcher.send_notifications(session, [make_notification()])

    assert [f.channel for f in report.failures] == ["whatsapp"]
    assert "timeout" in report.failures[0].error
    push_sender.send.assert_awaited_once()


@pytest.mark.asyncio
async def test_process_notifications_persists_then_sends(session, make_notification, dispatcher, pubsub):
    created, report = await dispatcher.process_notifications(
        session, [make_notification(), make_notification("QUOTE_ACCEPTED")]
    )

    assert len(created) == 2
    assert all(n.id for n in created)
    assert pubsub.publish.await_count == 2
    stored = list_user_notifications(session, "user-1", limit=10)
    assert {n.id for n in stored} == {n.id for n in created}


@pytest.mark.asyncio
async def test_process_notifications_skips_silent_noop(session, make_notification, dispatcher, pubsub):
    with patch("app.services.notification_handler.create_notification", return_value=None):
        created, report = await dispatcher.process_notifications(session, [make_notification()])

    assert created == []
    pubsub.publish.assert_not_called()


@pytest.mark.asyncio
async def test_process_notifications_propagates_persistence_errors(session, make_notification, dispatcher, pubsub):
    error = OperationalError("INSERT", {}, Exception("db gone"))
    with patch("app.services.notification_handler.create_notification", side_effect=error):
        with pytest.raises(OperationalError):
            await dispatcher.process_notifications(session, [make_notification()])

    pubsub.publish.assert_not_called()


@pytest.mark.asyncio
async def test_sender_raising_on_call_is_isolated(session, add_user, make_notification, dispatcher, pubsub, email_sender):
    add_user(session, "user-1", phone="+100", email="a@example.com")
    broken = MagicMock()
    broken.send = MagicMock(side_effect=RuntimeError("bad client"))
    dispatcher.sms_sender = broken

    report = await dispatcher.send_notifications(session, [make_notification()])

    assert [f.channel for f in report.failures] == ["whatsapp"]
    pubsub.publish.assert_awaited_once()
    email_sender.send.assert_awaited_once()


@pytest.mark.asyncio
async def test_no_delivery_starts_when_building_attempts_fails(session, add_user, make_notification, dispatcher, pubsub, push_sender):
    add_user(session, "user-1", tokens=["t1"])

    with patch("app.services.notification_handler.notification_title", side_effect=KeyError("title")):
        with pytest.raises(KeyError):
            await dispatcher.send_notifications(session, [make_notification()])

    pubsub.publish.assert_not_called()
    push_sender.send.assert_not_called()
