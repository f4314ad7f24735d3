"""
OpenAI gateways for speech-to-text and chat completion.

Both gateways talk to the OpenAI REST API through ``httpx.AsyncClient`` and
expose a narrow contract to the Turn Orchestrator:

- ``TranscriptionGateway.transcribe(audio_bytes) -> str``
- ``ChatCompletionGateway.complete(messages) -> str``

Missing credentials and transport failures raise GatewayUnavailable;
non-success responses raise TranscriptionFailed / CompletionFailed.
"""

from contextlib import contextmanager
from typing import IO, Any, Dict, Iterator, List, Optional
import logging
import os
import tempfile

import httpx

from atom_assistant.config import (
    CHAT_MAX_TOKENS,
    CHAT_MODEL,
    CHAT_TEMPERATURE,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    OPENAI_TIMEOUT_SECONDS,
    TRANSCRIPTION_MODEL,
)
from atom_assistant.exceptions import (
    REASON_UNCONFIGURED,
    REASON_UNREACHABLE,
    CompletionFailed,
    GatewayUnavailable,
    TranscriptionFailed,
)

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    400: "Request rejected by OpenAI (unsupported input)",
    401: "OpenAI API authentication failed",
    403: "OpenAI API access denied",
    413: "Payload too large for OpenAI",
    429: "OpenAI API rate limit exceeded",
}


def describe_status(service: str, status_code: int) -> str:
    """Human readable reason for a non-success provider response"""
    reason = _STATUS_MESSAGES.get(status_code)
    if reason:
        return f"{service}: {reason}"
    return f"{service} API error: {status_code}"


class OpenAIGateway:
    """Shared configuration and HTTP plumbing for OpenAI gateways"""

    service_name = "OpenAI"

    def __init__(
        self,
        api_key: Optional[str] = OPENAI_API_KEY,
        base_url: str = OPENAI_BASE_URL,
        timeout: float = OPENAI_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _require_credentials(self) -> None:
        if not self.configured:
            logger.warning(f"{self.service_name} called without OPENAI_API_KEY")
            raise GatewayUnavailable(
                "OpenAI API key not configured",
                details={"service": self.service_name, "reason": REASON_UNCONFIGURED}
            )

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _client(self) -> httpx.AsyncClient:
        """Shared client, created on first use so connections are pooled across calls."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)
        return self._http

    async def aclose(self) -> None:
        """Close the shared client (called on application shutdown)."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _json_or_reject(self, response: httpx.Response, error_cls: type) -> Dict[str, Any]:
        if response.status_code >= 400:
            logger.error(
                f"{self.service_name} error: status={response.status_code} body={response.text[:500]}"
            )
            raise error_cls(
                describe_status(self.service_name, response.status_code),
                details={"status": response.status_code}
            )
        try:
            return response.json()
        except ValueError as e:
            raise error_cls(
                f"{self.service_name} returned a malformed response",
                details={"status": response.status_code}
            ) from e


class TranscriptionGateway(OpenAIGateway):
    """Speech-to-text via the audio transcriptions endpoint"""

    service_name = "Whisper"

    def __init__(self, model: str = TRANSCRIPTION_MODEL, **kwargs: Any):
        super().__init__(**kwargs)
        self.model = model

    @contextmanager
    def _stage_audio(self, audio_bytes: bytes, suffix: str) -> Iterator[IO[bytes]]:
        """Stage audio in a temporary file that is removed on every exit path."""
        with tempfile.NamedTemporaryFile(prefix="atom_audio_", suffix=suffix) as handle:
            handle.write(audio_bytes)
            handle.flush()
            handle.seek(0)
            yield handle

    async def transcribe(
        self,
        audio_bytes: bytes,
        filename: str = "speech.webm",
        content_type: str = "audio/webm",
    ) -> str:
        """
        Transcribe raw audio bytes to text.

        Raises:
            GatewayUnavailable: No credentials or provider unreachable
            TranscriptionFailed: Provider answered with a non-success status
        """
        self._require_credentials()
        suffix = os.path.splitext(filename)[1] or ".webm"

        with self._stage_audio(audio_bytes, suffix) as audio_file:
            try:
                response = await self._client().post(
                    "/v1/audio/transcriptions",
                    data={"model": self.model},
                    files={"file": (filename, audio_file, content_type)},
                    headers=self._headers(),
                )
            except httpx.TransportError as e:
                logger.error(f"Whisper request failed: {str(e)}")
                raise GatewayUnavailable(
                    "Transcription service unreachable",
                    details={"service": self.service_name, "reason": REASON_UNREACHABLE}
                ) from e

        payload = self._json_or_reject(response, TranscriptionFailed)
        text = payload.get("text") or ""
        logger.info(f"Transcription successful: {text[:50]!r}")
        return text


class ChatCompletionGateway(OpenAIGateway):
    """Chat completion over an ordered role/content message list"""

    service_name = "GPT"

    def __init__(
        self,
        model: str = CHAT_MODEL,
        max_tokens: int = CHAT_MAX_TOKENS,
        temperature: float = CHAT_TEMPERATURE,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        """
        Return the assistant reply for the given messages ("" when absent).

        Raises:
            GatewayUnavailable: No credentials or provider unreachable
            CompletionFailed: Provider answered with a non-success status
        """
        self._require_credentials()
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        try:
            response = await self._client().post("/v1/chat/completions", json=payload, headers=self._headers())
        except httpx.TransportError as e:
            logger.error(f"Chat completion request failed: {str(e)}")
            raise GatewayUnavailable(
                "Chat completion service unreachable",
                details={"service": self.service_name, "reason": REASON_UNREACHABLE}
            ) from e

        data = self._json_or_reject(response, CompletionFailed)
        choices = data.get("choices") or []
        if not choices:
            return ""
        return ((choices[0] or {}).get("message") or {}).get("content") or ""


# Global instances
transcription_gateway = TranscriptionGateway()
chat_gateway = ChatCompletionGateway()


def get_transcription_gateway() -> TranscriptionGateway:
    """Dependency for the transcription gateway."""
    return transcription_gateway


def get_chat_gateway() -> ChatCompletionGateway:
    """Dependency for the chat completion gateway."""
    return chat_gateway
