"""
Tests for Expo push delivery and dispatch
"""
import httpx
import pytest
from tenacity import wait_none

from treasure_hunt.config import settings
from treasure_hunt.exceptions import NotificationError
from treasure_hunt.services.notification_service import (
    ExpoPushClient, chunk, expo_push_client, notification_service
)
from treasure_hunt.worker import tasks


def message(i):
    return {"to": f"ExponentPushToken[{i}]", "title": "Hi", "body": "There"}


@pytest.fixture
def expo(monkeypatch):
    """Route the push client through a mock transport; returns the request log"""
    requests = []
    responses = []
    real_client = httpx.Client

    def handler(request):
        requests.append(request)
        status, body = responses.pop(0) if responses else (200, {"data": []})
        return httpx.Response(status, json=body)

    def client_factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "Client", client_factory)
    monkeypatch.setattr(ExpoPushClient._post_batch.retry, "wait", wait_none())
    return requests, responses


def test_chunk():
    assert chunk([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunk([], 100) == []


def test_send_batches_messages(expo):
    requests, responses = expo
    responses.extend([
        (200, {"data": [{"status": "ok", "id": "a"}, {"status": "ok", "id": "b"}]}),
        (200, {"data": [{"status": "ok", "id": "c"}]}),
    ])
    client = ExpoPushClient(url="https://push.test/send", batch_size=2)

    result = client.send([message(i) for i in range(3)])

    assert result["sent"] == 3
    assert [t["id"] for t in result["tickets"]] == ["a", "b", "c"]
    assert len(requests) == 2
    assert str(requests[0].url) == "https://push.test/send"


def test_rejected_request_raises_with_first_error(expo):
    requests, responses = expo
    responses.append((400, {"errors": [{"code": "VALIDATION_ERROR", "message": "bad token"}]}))
    client = ExpoPushClient(url="https://push.test/send")

    with pytest.raises(NotificationError, match="bad token"):
        client.send([message(1)])
    # Client errors are not retried
    assert len(requests) == 1


def test_server_errors_are_retried(expo):
    requests, responses = expo
    responses.extend([(502, {}), (200, {"data": [{"status": "ok"}]})])
    client = ExpoPushClient(url="https://push.test/send")

    assert client.send([message(1)])["sent"] == 1
    assert len(requests) == 2


def test_unreachable_gateway(expo):
    requests, responses = expo
    responses.extend([(503, {})] * 3)
    client = ExpoPushClient(url="https://push.test/send")

    with pytest.raises(NotificationError) as excinfo:
        client.send([message(1)])
    assert isinstance(excinfo.value.__cause__, httpx.HTTPError)
    assert len(requests) == 3


def test_dispatch_disabled(monkeypatch):
    monkeypatch.setattr(settings, "PUSH_NOTIFICATIONS_ENABLED", False)
    assert notification_service.dispatch([message(1)]) is False


def test_dispatch_enqueues(monkeypatch):
    monkeypatch.setattr(settings, "PUSH_NOTIFICATIONS_ENABLED", True)
    queued = []
    monkeypatch.setattr(tasks.send_push_notifications, "delay", lambda messages: queued.append(messages))

    assert notification_service.dispatch([message(1)]) is True
    assert queued == [[message(1)]]


def test_dispatch_swallows_broker_errors(monkeypatch):
    monkeypatch.setattr(settings, "PUSH_NOTIFICATIONS_ENABLED", True)

    def broker_down(messages):
        raise ConnectionError("redis unavailable")

    monkeypatch.setattr(tasks.send_push_notifications, "delay", broker_down)

    assert notification_service.dispatch([message(1)]) is False


def test_dispatch_nothing_to_send():
    assert notification_service.dispatch([]) is False


def test_task_gives_up_on_rejected_messages(monkeypatch):
    def rejected(messages):
        raise NotificationError("DeviceNotRegistered")

    monkeypatch.setattr(expo_push_client, "send", rejected)

    result = tasks.send_push_notifications.apply(args=[[message(1)]]).get()

    assert result == {"sent": 0, "error": "DeviceNotRegistered"}
