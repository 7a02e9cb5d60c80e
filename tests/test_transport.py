from __future__ import annotations

import asyncio

import pytest

from pyalmond._transport import AlmondWebSocket, SessionState
from pyalmond.config import AlmondConfig
from pyalmond.exceptions import AlmondTransportError


def _session(events: list[str], *, hysteresis: float = 0.05) -> AlmondWebSocket:
    config = AlmondConfig(host="127.0.0.1", password="secret", hysteresis=hysteresis)
    ws = AlmondWebSocket(
        config,
        None,  # type: ignore[arg-type]
        on_open=lambda: events.append("open"),
        on_connected=lambda: events.append("connected"),
        on_disconnected=lambda: events.append("disconnected"),
    )
    # Drive the up/down bookkeeping directly, without a socket.
    ws._stopped = False  # type: ignore[attr-defined]
    return ws


@pytest.mark.asyncio
async def test_outage_shorter_than_hysteresis_is_not_reported() -> None:
    events: list[str] = []
    ws = _session(events)

    ws._mark_open()  # type: ignore[attr-defined]
    ws._mark_closed()  # type: ignore[attr-defined]
    await asyncio.sleep(0.01)
    ws._mark_open()  # type: ignore[attr-defined]
    await asyncio.sleep(0.1)

    assert events == ["connected", "open", "open"]
    assert ws.state is SessionState.OPEN


@pytest.mark.asyncio
async def test_long_outage_reports_disconnect_once_then_reconnect() -> None:
    events: list[str] = []
    ws = _session(events)

    ws._mark_open()  # type: ignore[attr-defined]
    ws._mark_closed()  # type: ignore[attr-defined]
    await asyncio.sleep(0.02)
    # failed reconnect attempts inside the window do not restart it
    ws._mark_closed()  # type: ignore[attr-defined]
    await asyncio.sleep(0.1)
    ws._mark_closed()  # type: ignore[attr-defined]
    await asyncio.sleep(0.1)

    assert events == ["connected", "open", "disconnected"]
    assert ws.state is SessionState.CONNECTING

    ws._mark_open()  # type: ignore[attr-defined]
    assert events == ["connected", "open", "disconnected", "connected", "open"]


@pytest.mark.asyncio
async def test_never_connecting_reports_disconnect() -> None:
    events: list[str] = []
    ws = _session(events)

    ws._mark_closed()  # type: ignore[attr-defined]
    await asyncio.sleep(0.1)

    assert events == ["disconnected"]


@pytest.mark.asyncio
async def test_stop_suppresses_pending_disconnect() -> None:
    events: list[str] = []
    ws = _session(events)

    ws._mark_open()  # type: ignore[attr-defined]
    ws._mark_closed()  # type: ignore[attr-defined]
    await ws.stop()
    await asyncio.sleep(0.1)

    assert events == ["connected", "open"]
    assert ws.state is SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_send_without_socket_raises_transport_error() -> None:
    ws = _session([])

    with pytest.raises(AlmondTransportError) as exc_info:
        await ws.send("{}")

    assert "secret" not in exc_info.value.url
    assert exc_info.value.url.endswith("<redacted>")
