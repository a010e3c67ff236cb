"""Streaming chat completion client for OpenAI-compatible endpoints."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping
from urllib.parse import urlparse

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..chat.message_model import ChatMessage
from . import sse
from .errors import ConfigurationError, NetworkError, ProtocolError, RequestTimeoutError
from .prompts import Clock, resolve_placeholders

if TYPE_CHECKING:  # pragma: no cover
    from ..services.settings import Settings

LOGGER = logging.getLogger(__name__)

DeltaCallback = Callable[[str], Any]
_RETRYABLE_TRANSPORT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


def check_endpoint(api_key: str, base_url: str) -> None:
    """Raise :class:`ConfigurationError` unless the key is set and the URL is http(s)."""

    if not (api_key or "").strip():
        raise ConfigurationError(message="No API key is configured")
    parsed = urlparse((base_url or "").strip())
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigurationError(
            message=f"Invalid base URL: {base_url!r}",
            details={"base_url": base_url},
        )


@dataclass(frozen=True, slots=True)
class ClientSettings:
    """Subset of settings required to talk to the completion endpoint."""

    base_url: str
    api_key: str
    model: str
    temperature: float = 0.7
    max_output_tokens: int = 0
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] = field(default_factory=dict)
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ClientSettings":
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            default_headers=dict(settings.default_headers),
            debug_logging=settings.debug_logging,
        )

    @property
    def chat_completions_url(self) -> str:
        return f"{self.base_url.strip().rstrip('/')}/chat/completions"


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """One chat completion call; built per request and never persisted."""

    model: str
    messages: tuple[ChatMessage, ...]
    temperature: float = 0.7
    max_output_tokens: int | None = None
    stream: bool = True

    def __post_init__(self) -> None:
        if not self.messages:
            raise ValueError("At least one message is required to start a chat")
        if self.max_output_tokens is not None and self.max_output_tokens < 0:
            raise ValueError("max_output_tokens must be positive, zero or None")

    def to_payload(self, *, clock: Clock | None = None) -> Dict[str, Any]:
        """Return the JSON body, resolving system-prompt placeholders at call time.

        ``max_tokens`` is omitted entirely when no positive bound is set.
        """

        messages: List[ChatCompletionMessageParam] = []
        for message in self.messages:
            entry = message.to_payload()
            if message.role == "system":
                entry["content"] = resolve_placeholders(message.content, clock=clock)
            messages.append(entry)  # type: ignore[arg-type]
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "stream": self.stream,
        }
        if self.max_output_tokens:
            payload["max_tokens"] = self.max_output_tokens
        return payload


class CompletionClient:
    """Issue chat completions and surface deltas or the aggregated text.

    ``send`` supports both consumption modes: pass ``on_delta`` to receive each
    fragment as it arrives, or omit it and only await the final string.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        models_client: AsyncOpenAI | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(transport=transport)
        self._models_client = models_client
        self._owns_models_client = models_client is None
        self._models_cache: List[str] | None = None
        self._models_lock = asyncio.Lock()
        self._clock = clock
        self._closing: set[asyncio.Task[None]] = set()

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    def update_settings(self, settings: ClientSettings) -> None:
        """Swap the settings snapshot; requests already in flight keep theirs."""

        previous = self._settings
        self._settings = settings
        if (previous.base_url, previous.api_key) != (settings.base_url, settings.api_key):
            self._models_cache = None
            if self._owns_models_client:
                stale, self._models_client = self._models_client, None
                if stale is not None:
                    LOGGER.debug("Discarding model listing client after endpoint change")
                    self._schedule_close(stale)

    def build_request(
        self,
        messages: Iterable[ChatMessage],
        *,
        stream: bool = True,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> CompletionRequest:
        settings = self._settings
        bound = settings.max_output_tokens if max_output_tokens is None else max_output_tokens
        return CompletionRequest(
            model=settings.model,
            messages=tuple(messages),
            temperature=settings.temperature if temperature is None else temperature,
            max_output_tokens=bound or None,
            stream=stream,
        )

    async def send(self, request: CompletionRequest, on_delta: DeltaCallback | None = None) -> str:
        """Send ``request`` and return the full completion text.

        Raises:
            ConfigurationError: no API key or an unusable base URL; checked before any I/O.
            ProtocolError: non-2xx status, or no content across the whole response.
            RequestTimeoutError: the request exceeded ``request_timeout``.
            NetworkError: the transport failed.
        """

        settings = self._settings
        check_endpoint(settings.api_key, settings.base_url)
        payload = request.to_payload(clock=self._clock)
        LOGGER.debug(
            "Starting chat completion via %s with %s message(s), stream=%s",
            request.model,
            len(payload["messages"]),
            request.stream,
        )
        if settings.debug_logging:
            self._log_payload(payload)

        timeout = settings.request_timeout
        try:
            if timeout and timeout > 0:
                return await asyncio.wait_for(self._send(settings, payload, on_delta), timeout)
            return await self._send(settings, payload, on_delta)
        except asyncio.TimeoutError as exc:
            raise RequestTimeoutError(
                message=f"The completion request timed out after {timeout:g} seconds",
                timeout_seconds=timeout,
            ) from exc

    async def list_models(self, *, force_refresh: bool = False) -> List[str]:
        """Return model identifiers offered by the endpoint, cached per endpoint."""

        if self._models_cache is not None and not force_refresh:
            return list(self._models_cache)

        async with self._models_lock:
            if self._models_cache is not None and not force_refresh:
                return list(self._models_cache)
            settings = self._settings
            check_endpoint(settings.api_key, settings.base_url)
            client = self._get_models_client(settings)
            try:
                response = await client.models.list()
            except APITimeoutError as exc:
                raise RequestTimeoutError(timeout_seconds=settings.request_timeout) from exc
            except APIConnectionError as exc:
                raise NetworkError(details={"reason": str(exc)}) from exc
            except APIStatusError as exc:
                raise ProtocolError(
                    message="Listing models failed",
                    status_code=exc.status_code,
                    body=exc.response.text if exc.response is not None else "",
                ) from exc
            models = [item.id for item in response.data if getattr(item, "id", None)]
            self._models_cache = models
            return list(models)

    async def aclose(self) -> None:
        """Release network resources owned by this client."""

        if self._owns_http:
            await self._http.aclose()
        if self._owns_models_client and self._models_client is not None:
            client, self._models_client = self._models_client, None
            result = client.close()
            if inspect.isawaitable(result):
                await result
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _send(
        self,
        settings: ClientSettings,
        payload: Mapping[str, Any],
        on_delta: DeltaCallback | None,
    ) -> str:
        collected: list[str] = []

        def deliver(text: str) -> None:
            collected.append(text)
            if on_delta is not None:
                on_delta(text)

        try:
            async for attempt in self._retrying(settings):
                with attempt:
                    async with self._http.stream(
                        "POST",
                        settings.chat_completions_url,
                        json=payload,
                        headers=self._headers(settings),
                        timeout=httpx.Timeout(settings.request_timeout or None),
                    ) as response:
                        await self._consume(response, deliver)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(timeout_seconds=settings.request_timeout) from exc
        except httpx.TransportError as exc:
            raise NetworkError(details={"reason": str(exc) or type(exc).__name__}) from exc

        text = "".join(collected)
        if not text:
            raise ProtocolError(message="The completion endpoint returned no content")
        LOGGER.debug("Chat completion finished with %s delta(s), %s char(s)", len(collected), len(text))
        return text

    async def _consume(self, response: httpx.Response, deliver: Callable[[str], None]) -> None:
        if not response.is_success:
            await response.aread()
            body = response.text
            LOGGER.warning("Completion request failed with HTTP %s", response.status_code)
            raise ProtocolError(
                message="The completion request failed",
                status_code=response.status_code,
                body=body,
            )

        content_type = response.headers.get("content-type", "").lower()
        if "json" in content_type and "event-stream" not in content_type:
            await response.aread()
            self._deliver_document(response.text, deliver)
            return

        decoder = sse.SSELineDecoder()
        preamble: list[str] = []
        saw_event_line = False
        delivered = False
        async for chunk in response.aiter_text():
            if not saw_event_line:
                preamble.append(chunk)
            lines = decoder.feed(chunk)
            if lines and not saw_event_line:
                saw_event_line = any(line.lstrip().startswith("data:") for line in lines)
            deltas, done = sse.iter_line_deltas(lines)
            for text in deltas:
                delivered = True
                deliver(text)
            if done:
                return

        deltas, done = sse.iter_line_deltas(decoder.flush())
        for text in deltas:
            delivered = True
            deliver(text)
        if done:
            return
        if not delivered and not saw_event_line:
            # Body was a plain JSON document rather than an event stream.
            self._deliver_document("".join(preamble), deliver)
            return
        LOGGER.debug("Stream closed without the [DONE] sentinel; keeping accumulated text")

    @staticmethod
    def _deliver_document(body: str, deliver: Callable[[str], None]) -> None:
        document = sse.parse_payload(body.strip())
        if document is None:
            return
        text = sse.extract_delta_text(document)
        if text:
            deliver(text)

    def _retrying(self, settings: ClientSettings) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, settings.max_retries)),
            wait=wait_exponential(
                multiplier=settings.retry_min_seconds,
                max=settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(_RETRYABLE_TRANSPORT_ERRORS),
        )

    @staticmethod
    def _headers(settings: ClientSettings) -> Dict[str, str]:
        headers = dict(settings.default_headers or {})
        headers["Content-Type"] = "application/json"
        headers["Authorization"] = f"Bearer {settings.api_key.strip()}"
        return headers

    def _get_models_client(self, settings: ClientSettings) -> AsyncOpenAI:
        if self._models_client is None:
            self._models_client = AsyncOpenAI(
                api_key=settings.api_key,
                base_url=settings.base_url,
                timeout=settings.request_timeout,
                max_retries=0,
                default_headers=dict(settings.default_headers) or None,
            )
        return self._models_client

    def _schedule_close(self, client: AsyncOpenAI) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.debug("No running loop; stale model listing client left to garbage collection")
            return
        task = loop.create_task(client.close())
        self._closing.add(task)
        task.add_done_callback(self._on_close_done)

    def _on_close_done(self, task: asyncio.Task[None]) -> None:
        self._closing.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning("Closing a stale model listing client failed: %s", exc)

    @staticmethod
    def _log_payload(payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Completion payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Completion payload:\n%s", serialized)


__all__ = [
    "ClientSettings",
    "CompletionRequest",
    "CompletionClient",
    "DeltaCallback",
    "check_endpoint",
]
