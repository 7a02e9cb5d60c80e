"""Request/response correlation over the hub WebSocket.

Owns:
- tagging each outgoing request with a fresh ``MobileInternalIndex`` token
- one timeout timer and retry budget per outstanding request
- routing inbound frames to the pending request they answer, or to the
  push handler when they carry no token
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pyalmond._codec import decode_tree, encode_tree
from pyalmond._constants import COMMAND_TYPE_KEY, CORRELATION_KEY, MAX_SEND_RETRIES, SEND_TIMEOUT_S, SUCCESS_KEY
from pyalmond._redact import redact_for_log
from pyalmond._transport import Transport
from pyalmond.exceptions import AlmondTransportError
from pyalmond.models.command import CommandResult, CommandStatus

_logger = logging.getLogger(__name__)

CompletionCallback = Callable[[CommandResult], None]


@dataclass(slots=True)
class PendingRequest:
    """A request waiting for its response.

    One entry spans all retries of a request; only ``token`` and
    ``retries`` change when it is re-sent.
    """

    payload: dict[str, Any]
    command_type: str
    retries: int
    future: asyncio.Future[CommandResult]
    on_complete: CompletionCallback | None = None
    token: str = ""
    timer: asyncio.TimerHandle | None = None


class CorrelationEngine:
    """Turns the fire-and-forget socket into request/response calls.

    Parameters
    ----------
    transport
        Anything with an ``async send(text)`` that raises
        :class:`AlmondTransportError` on local failure.
    send_timeout
        Seconds to wait for a response before re-sending.
    max_retries
        Default retry budget for :meth:`send`.
    on_push
        Receives every decoded inbound message without a token.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        send_timeout: float = SEND_TIMEOUT_S,
        max_retries: int = MAX_SEND_RETRIES,
        on_push: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self._transport = transport
        self._send_timeout = send_timeout
        self._max_retries = max_retries
        self._on_push = on_push
        self._pending: dict[str, PendingRequest] = {}
        self._tasks: dict[asyncio.Task[None], PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, token: str) -> bool:
        return token in self._pending

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def send(
        self,
        request: Mapping[str, Any],
        on_complete: CompletionCallback | None = None,
        *,
        retries: int | None = None,
    ) -> asyncio.Future[CommandResult]:
        """Send *request* and return a future for its :class:`CommandResult`.

        The future never raises: transport errors, exhausted retries and
        ``Success: false`` answers all resolve it with a non-OK status.
        *on_complete*, when given, is called exactly once with the same
        result.  *request* itself is not modified.
        """
        loop = asyncio.get_running_loop()
        payload = encode_tree(request)
        if not isinstance(payload, dict):
            raise TypeError("request must be a mapping")
        payload.pop(CORRELATION_KEY, None)
        entry = PendingRequest(
            payload=payload,
            command_type=payload.get(COMMAND_TYPE_KEY, ""),
            retries=self._max_retries if retries is None else retries,
            future=loop.create_future(),
            on_complete=on_complete,
        )
        self._spawn(entry)
        return entry.future

    async def request(self, request: Mapping[str, Any], *, retries: int | None = None) -> CommandResult:
        """Send *request* and wait for its result."""
        return await self.send(request, retries=retries)

    def _spawn(self, entry: PendingRequest) -> None:
        task = asyncio.get_running_loop().create_task(self._transmit(entry))
        self._tasks[task] = entry
        task.add_done_callback(self._forget_task)

    def _forget_task(self, task: asyncio.Task[None]) -> None:
        self._tasks.pop(task, None)

    def _new_token(self) -> str:
        token = secrets.token_hex(16)
        while token in self._pending:
            token = secrets.token_hex(16)
        return token

    async def _transmit(self, entry: PendingRequest) -> None:
        token = self._new_token()
        entry.token = token
        self._pending[token] = entry
        entry.timer = asyncio.get_running_loop().call_later(self._send_timeout, self._on_timeout, token)

        message = {**entry.payload, CORRELATION_KEY: token}
        try:
            await self._transport.send(json.dumps(message, separators=(",", ":")))
        except AlmondTransportError as exc:
            _logger.debug("Couldn't send %s: %s", entry.command_type, exc)
            if self._pending.get(token) is entry:
                del self._pending[token]
                self._cancel_timer(entry)
                self._finish(entry, CommandStatus.TRANSPORT_ERROR, error=str(exc))
            return
        _logger.debug("Sent message %s", redact_for_log(message))

    def _on_timeout(self, token: str) -> None:
        entry = self._pending.pop(token, None)
        if entry is None:
            return
        entry.timer = None
        if entry.retries > 0:
            entry.retries -= 1
            _logger.debug(
                "No response to %s (%s); retrying, %d retries left",
                entry.command_type,
                token,
                entry.retries,
            )
            self._spawn(entry)
            return
        _logger.debug("Exhausted send retries for %s; aborting", entry.command_type)
        self._finish(
            entry,
            CommandStatus.RETRIES_EXHAUSTED,
            error=f"No response to {entry.command_type or 'request'} after all retries",
        )

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, text: str) -> None:
        """Route one inbound frame."""
        try:
            parsed = json.loads(text)
        except (json.JSONDecodeError, TypeError):
            _logger.debug("Dropping malformed frame: %s", redact_for_log(text, max_string=128))
            return
        if not isinstance(parsed, dict):
            _logger.debug("Dropping non-object frame: %s", redact_for_log(parsed))
            return

        # Read the token before decoding: an all-digit token would decode
        # to a number and never match.
        token = parsed.get(CORRELATION_KEY)
        message = decode_tree(parsed)
        _logger.debug("Received message %s", redact_for_log(message))

        if token is None:
            if self._on_push is not None:
                self._on_push(message)
            return

        entry = self._pending.pop(str(token), None)
        if entry is None:
            _logger.debug("Dropping response for unknown token %s", token)
            return
        self._cancel_timer(entry)
        if message.get(SUCCESS_KEY) is False:
            self._finish(entry, CommandStatus.FAILED, response=message)
        else:
            self._finish(entry, CommandStatus.OK, response=message)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _finish(
        self,
        entry: PendingRequest,
        status: CommandStatus,
        *,
        response: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        if entry.future.done():
            return
        result = CommandResult(
            status=status,
            command_type=entry.command_type,
            response=response or {},
            error=error,
        )
        entry.future.set_result(result)
        if entry.on_complete is not None:
            try:
                entry.on_complete(result)
            except Exception:
                _logger.warning("Completion callback for %s failed", entry.command_type, exc_info=True)

    @staticmethod
    def _cancel_timer(entry: PendingRequest) -> None:
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None

    def cancel_all(self, reason: str = "Client closed") -> None:
        """Resolve every outstanding request with a transport error."""
        pending = list(self._pending.values())
        self._pending.clear()
        # Retries waiting to be re-sent are in neither table until their
        # task runs.
        for task, entry in list(self._tasks.items()):
            task.cancel()
            pending.append(entry)
        self._tasks.clear()
        for entry in pending:
            self._cancel_timer(entry)
            self._finish(entry, CommandStatus.TRANSPORT_ERROR, error=reason)
