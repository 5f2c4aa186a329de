"""Model gateway: one send() over an OpenAI-compatible chat endpoint (default) or Anthropic.

The gateway owns the retry policy. Provider adapters perform the wire call and
classify failures into RateLimitedError, MalformedReplyError or FatalError; only
rate limiting is retried, with exponential backoff (base * 2**n). SDK-level
retries are switched off so attempts are never doubled up.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Protocol

import anthropic
import openai
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from evergreen.config import Settings
from evergreen.errors import ConfigError, FatalError, MalformedReplyError, RateLimitedError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class FinishReason(str, Enum):
    NORMAL = "normal"
    CONTENT_FILTERED = "content_filtered"
    LENGTH = "length"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RequestOptions:
    force_json: bool = True
    max_output_tokens: int = 8192
    temperature: float | None = None
    reasoning: bool = False


@dataclass(frozen=True)
class ChatRequest:
    messages: list[dict]
    model: str
    options: RequestOptions = field(default_factory=RequestOptions)


@dataclass(frozen=True)
class RawReply:
    text: str
    finish_reason: FinishReason = FinishReason.NORMAL


class ChatAdapter(Protocol):
    async def send(self, request: ChatRequest) -> RawReply: ...


def _status_message(exc) -> str:
    """Pull the provider's own error message out of an SDK status error."""
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        err = body.get("error", body)
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return getattr(exc, "message", None) or str(exc)


def _payload_error(error) -> tuple[int | None, str]:
    if isinstance(error, dict):
        code, message = error.get("code"), error.get("message")
    else:
        code, message = getattr(error, "code", None), getattr(error, "message", None)
    try:
        code = int(code) if code is not None else None
    except (TypeError, ValueError):
        code = None
    return code, str(message or error)


class OpenAIAdapter:
    """Chat completions through the openai SDK: OpenAI itself, OpenRouter, or any compatible base URL."""

    _FINISH_REASONS = {
        "stop": FinishReason.NORMAL,
        "length": FinishReason.LENGTH,
        "content_filter": FinishReason.CONTENT_FILTERED,
    }

    def __init__(self, api_key: str | None = None, base_url: str | None = None, timeout: float = 120.0, client=None):
        self.client = client or openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    async def send(self, request: ChatRequest) -> RawReply:
        opts = request.options
        kwargs = {
            "model": request.model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in request.messages],
            "max_tokens": opts.max_output_tokens,
        }
        if opts.force_json:
            kwargs["response_format"] = {"type": "json_object"}
        if opts.temperature is not None:
            kwargs["temperature"] = opts.temperature
        if opts.reasoning:
            kwargs["extra_body"] = {"reasoning": {"enabled": True}}
        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.RateLimitError as exc:
            raise RateLimitedError(_status_message(exc), status=exc.status_code) from exc
        except openai.APIStatusError as exc:
            raise FatalError(_status_message(exc), status=exc.status_code) from exc
        except openai.APIResponseValidationError as exc:
            raise MalformedReplyError(f"Unexpected reply structure: {exc.message}") from exc
        except openai.APIError as exc:
            raise FatalError(str(exc)) from exc
        return self._to_reply(response)

    def _to_reply(self, response) -> RawReply:
        # OpenRouter reports upstream failures inside a 200 body
        error = getattr(response, "error", None)
        if error:
            code, message = _payload_error(error)
            if code == 429:
                raise RateLimitedError(message, status=code)
            raise FatalError(message, status=code)
        choices = getattr(response, "choices", None)
        if not choices:
            raise MalformedReplyError("Reply contained no choices")
        choice = choices[0]
        message = getattr(choice, "message", None)
        if message is None:
            raise MalformedReplyError("Reply choice has no message")
        if getattr(message, "refusal", None):
            logger.warning("Model refused: %s", message.refusal)
            return RawReply(text="", finish_reason=FinishReason.CONTENT_FILTERED)
        finish = self._FINISH_REASONS.get(getattr(choice, "finish_reason", None), FinishReason.UNKNOWN)
        return RawReply(text=message.content or "", finish_reason=finish)


class AnthropicAdapter:
    """Messages API through the anthropic SDK. System messages are joined into the system prompt."""

    _FINISH_REASONS = {
        "end_turn": FinishReason.NORMAL,
        "stop_sequence": FinishReason.NORMAL,
        "max_tokens": FinishReason.LENGTH,
        "refusal": FinishReason.CONTENT_FILTERED,
    }

    def __init__(self, api_key: str | None = None, timeout: float = 120.0, client=None):
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)

    async def send(self, request: ChatRequest) -> RawReply:
        opts = request.options
        kwargs = {
            "model": request.model,
            "max_tokens": opts.max_output_tokens,
            "messages": [
                {"role": m["role"], "content": m["content"]}
                for m in request.messages
                if m.get("role") in ("user", "assistant")
            ],
        }
        system = "\n".join(m["content"] for m in request.messages if m.get("role") == "system")
        if system:
            kwargs["system"] = system
        if opts.temperature is not None:
            kwargs["temperature"] = opts.temperature
        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.RateLimitError as exc:
            raise RateLimitedError(_status_message(exc), status=exc.status_code) from exc
        except anthropic.APIStatusError as exc:
            raise FatalError(_status_message(exc), status=exc.status_code) from exc
        except anthropic.APIResponseValidationError as exc:
            raise MalformedReplyError(f"Unexpected reply structure: {exc.message}") from exc
        except anthropic.APIError as exc:
            raise FatalError(str(exc)) from exc
        content = getattr(response, "content", None)
        if content is None:
            raise MalformedReplyError("Reply contained no content blocks")
        text = "".join(block.text for block in content if getattr(block, "type", None) == "text")
        finish = self._FINISH_REASONS.get(getattr(response, "stop_reason", None), FinishReason.UNKNOWN)
        return RawReply(text=text, finish_reason=finish)


class ModelGateway:
    """Sends chat requests through an adapter, retrying rate limits with exponential backoff.

    Args:
        adapter: Provider adapter implementing ``send(request)``.
        model: Model identifier placed on every request built by ``request()``.
        options: Default request options (max tokens, temperature, reasoning).
        max_retries: Retries after the first attempt, rate limiting only.
        base_delay: Backoff base in seconds; retry n (0-based) waits base * 2**n.
        sleep: Awaitable sleep used between attempts.
    """

    def __init__(
        self,
        adapter: ChatAdapter,
        model: str,
        options: RequestOptions | None = None,
        *,
        max_retries: int = 3,
        base_delay: float = 2.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.adapter = adapter
        self.model = model
        self.options = options or RequestOptions()
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep

    def request(self, messages: list[dict], *, force_json: bool = True) -> ChatRequest:
        return ChatRequest(
            messages=messages,
            model=self.model,
            options=RequestOptions(
                force_json=force_json,
                max_output_tokens=self.options.max_output_tokens,
                temperature=self.options.temperature,
                reasoning=self.options.reasoning,
            ),
        )

    async def send(self, request: ChatRequest) -> RawReply:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2, min=0),
            retry=retry_if_exception_type(RateLimitedError),
            before_sleep=self._log_backoff,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return await retrying(self._attempt, request)
        except RateLimitedError:
            logger.error("Rate limit persisted after %d attempts", self.max_retries + 1)
            raise

    async def _attempt(self, request: ChatRequest) -> RawReply:
        logger.debug(
            "Sending %d messages to %s (force_json=%s)", len(request.messages), request.model, request.options.force_json
        )
        reply = await self.adapter.send(request)
        logger.debug("Reply: %d chars, finish_reason=%s", len(reply.text), reply.finish_reason.value)
        return reply

    def _log_backoff(self, retry_state) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "Rate limit hit. Retrying in %.1fs... (attempt %d/%d)",
            delay,
            retry_state.attempt_number,
            self.max_retries + 1,
        )


def build_gateway(settings: Settings, sleep: Sleep = asyncio.sleep) -> ModelGateway:
    """Build the gateway for settings.provider. Raises ConfigError when no API key is configured."""
    if not settings.api_key:
        env_name = "ANTHROPIC_API_KEY" if settings.provider == "anthropic" else "OPENAI_API_KEY"
        raise ConfigError(f"No API key configured; set {env_name}")
    if settings.provider == "anthropic":
        adapter = AnthropicAdapter(api_key=settings.api_key, timeout=settings.timeout)
    else:
        adapter = OpenAIAdapter(api_key=settings.api_key, base_url=settings.base_url, timeout=settings.timeout)
    return ModelGateway(
        adapter,
        settings.model,
        RequestOptions(
            max_output_tokens=settings.max_output_tokens,
            temperature=settings.temperature,
            reasoning=settings.reasoning,
        ),
        max_retries=settings.max_retries,
        base_delay=settings.retry_base_delay,
        sleep=sleep,
    )
