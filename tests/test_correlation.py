from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from typing import Any

import pytest

from pyalmond._correlation import CorrelationEngine
from pyalmond.exceptions import AlmondTransportError
from pyalmond.models.command import CommandResult, CommandStatus


class _FakeTransport:
    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = fail

    async def send(self, text: str) -> None:
        if self.fail:
            raise AlmondTransportError("WebSocket is not connected")
        self.sent.append(json.loads(text))

    def token(self, n: int = -1) -> str:
        return self.sent[n]["MobileInternalIndex"]


def _reply(token: str, **fields: Any) -> str:
    return json.dumps({"MobileInternalIndex": token, **fields})


async def _settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_out_of_order_responses_reach_their_own_callers() -> None:
    transport = _FakeTransport()
    engine = CorrelationEngine(transport, send_timeout=5.0)

    first = engine.send({"CommandType": "DeviceList"})
    second = engine.send({"CommandType": "UpdateDeviceIndex", "ID": 7, "Index": 1, "Value": True})
    await _settle()

    assert len(transport.sent) == 2
    token_a, token_b = transport.token(0), transport.token(1)
    assert token_a != token_b
    # values go out as strings
    assert transport.sent[1]["ID"] == "7"
    assert transport.sent[1]["Value"] == "true"

    engine.handle_message(_reply(token_b, CommandType="UpdateDeviceIndex", Success="true"))
    engine.handle_message(_reply(token_a, CommandType="DeviceList", Devices={}))

    result_a = await first
    result_b = await second
    assert result_a.status is CommandStatus.OK
    assert result_a.command_type == "DeviceList"
    assert result_a.response["Devices"] == {}
    assert result_b.status is CommandStatus.OK
    assert result_b.response["Success"] is True
    assert engine.pending_count == 0


@pytest.mark.asyncio
async def test_unanswered_request_is_resent_then_exhausted_once() -> None:
    transport = _FakeTransport()
    engine = CorrelationEngine(transport, send_timeout=0.01, max_retries=2)
    calls: list[CommandResult] = []

    future = engine.send({"CommandType": "DeviceList"}, calls.append)
    result = await asyncio.wait_for(future, 1.0)
    await asyncio.sleep(0.05)

    assert result.status is CommandStatus.RETRIES_EXHAUSTED
    assert not result.success
    assert calls == [result]
    # initial send plus two retries, each under a fresh token
    assert len(transport.sent) == 3
    assert len({transport.token(i) for i in range(3)}) == 3
    assert engine.pending_count == 0

    # late answers are dropped without a second completion
    engine.handle_message(_reply(transport.token(0), Success="true"))
    engine.handle_message(_reply(transport.token(2), Success="true"))
    assert calls == [result]


@pytest.mark.asyncio
async def test_response_to_retry_completes_request() -> None:
    transport = _FakeTransport()
    engine = CorrelationEngine(transport, send_timeout=0.02, max_retries=5)

    future = engine.send({"CommandType": "DeviceList"})
    while len(transport.sent) < 2:
        await asyncio.sleep(0.005)

    stale = transport.token(0)
    assert not engine.is_pending(stale)
    engine.handle_message(_reply(transport.token(1), Devices={}))

    result = await asyncio.wait_for(future, 1.0)
    assert result.status is CommandStatus.OK
    await asyncio.sleep(0.05)
    assert len(transport.sent) == 2


@pytest.mark.asyncio
async def test_success_false_fails_without_retry() -> None:
    transport = _FakeTransport()
    engine = CorrelationEngine(transport, send_timeout=0.01, max_retries=3)

    future = engine.send({"CommandType": "UpdateDeviceIndex", "ID": "7", "Index": "1", "Value": "x"})
    await _settle()
    engine.handle_message(_reply(transport.token(), Success="false", Reason="bad value"))

    result = await future
    assert result.status is CommandStatus.FAILED
    assert result.response["Reason"] == "bad value"
    await asyncio.sleep(0.05)
    assert len(transport.sent) == 1


@pytest.mark.asyncio
async def test_transport_error_resolves_without_retry() -> None:
    transport = _FakeTransport(fail=True)
    engine = CorrelationEngine(transport, send_timeout=0.01, max_retries=3)
    calls: list[CommandResult] = []

    result = await asyncio.wait_for(engine.send({"CommandType": "DeviceList"}, calls.append), 1.0)
    await asyncio.sleep(0.05)

    assert result.status is CommandStatus.TRANSPORT_ERROR
    assert "not connected" in (result.error or "")
    assert calls == [result]
    assert engine.pending_count == 0


@pytest.mark.asyncio
async def test_untagged_messages_go_to_push_handler() -> None:
    pushed: list[dict[str, Any]] = []
    engine = CorrelationEngine(_FakeTransport(), on_push=pushed.append)

    engine.handle_message(json.dumps({"CommandType": "DynamicIndexUpdated", "Devices": {"7": {}}}))
    engine.handle_message("not json")
    engine.handle_message("[1, 2]")

    assert pushed == [{"CommandType": "DynamicIndexUpdated", "Devices": {"7": {}}}]


@pytest.mark.asyncio
async def test_all_digit_token_still_matches(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("pyalmond._correlation.secrets.token_hex", lambda _n: "12345")
    transport = _FakeTransport()
    engine = CorrelationEngine(transport, send_timeout=5.0)

    future = engine.send({"CommandType": "DeviceList"})
    await _settle()
    assert transport.token() == "12345"

    engine.handle_message(_reply("12345", Devices={}))
    result = await asyncio.wait_for(future, 1.0)
    assert result.status is CommandStatus.OK
    # matching uses the raw token; the response itself is still decoded
    assert result.response["MobileInternalIndex"] == 12345


@pytest.mark.asyncio
async def test_token_collision_is_redrawn(monkeypatch: pytest.MonkeyPatch) -> None:
    draws: Iterator[str] = iter(["aaaa", "aaaa", "bbbb"])
    monkeypatch.setattr("pyalmond._correlation.secrets.token_hex", lambda _n: next(draws))
    transport = _FakeTransport()
    engine = CorrelationEngine(transport, send_timeout=5.0)

    engine.send({"CommandType": "DeviceList"})
    await _settle()
    engine.send({"CommandType": "DeviceList"})
    await _settle()

    assert [transport.token(0), transport.token(1)] == ["aaaa", "bbbb"]
    engine.cancel_all()


@pytest.mark.asyncio
async def test_request_mapping_is_not_mutated() -> None:
    transport = _FakeTransport()
    engine = CorrelationEngine(transport, send_timeout=5.0)
    request = {"CommandType": "DeviceList", "MobileInternalIndex": "caller-supplied", "Flag": True}

    engine.send(request)
    await _settle()

    assert request == {"CommandType": "DeviceList", "MobileInternalIndex": "caller-supplied", "Flag": True}
    assert transport.token() != "caller-supplied"
    engine.cancel_all()


@pytest.mark.asyncio
async def test_cancel_all_resolves_outstanding_requests() -> None:
    transport = _FakeTransport()
    engine = CorrelationEngine(transport, send_timeout=5.0)
    calls: list[CommandResult] = []

    first = engine.send({"CommandType": "DeviceList"}, calls.append)
    await _settle()
    second = engine.send({"CommandType": "DeviceList"}, calls.append)

    engine.cancel_all("Client closed")

    assert (await first).status is CommandStatus.TRANSPORT_ERROR
    assert (await second).error == "Client closed"
    assert len(calls) == 2
    assert engine.pending_count == 0
