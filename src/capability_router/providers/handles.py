"""Concrete provider handles backed by httpx.

Each handle implements one capability kind for one external service and a
kind-appropriate liveness probe. Handles do not retry; retry, backoff and
fallback are the broker's job.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, ClassVar
from urllib.parse import urlparse

import httpx
from duckduckgo_search import DDGS
from pydantic import BaseModel, Field

from ..core.config import ProviderSettings
from ..core.exceptions import ConfigurationError, UnsupportedOperation
from ..core.logger import get_logger
from .base import CapabilityKind, CompletionResponse, ProviderHandle

logger = get_logger("providers.handles")

OPENAI_API_BASE = "https://api.openai.com/v1"
LOCAL_API_BASE = "http://localhost:11434/v1"
ELEVENLABS_API_BASE = "https://api.elevenlabs.io/v1"
TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
TELEGRAM_API_BASE = "https://api.telegram.org"
BRAVE_API_BASE = "https://api.search.brave.com/res/v1"

DEFAULT_VOICE_ID = "EXAVITQu4vr4xnSDxMaL"


class SearchResult(BaseModel):
    """Standardized web search result.

    Attributes:
        title: Result title
        url: Result URL
        snippet: Text snippet/description
        position: Position in search results (1-indexed)
        source: Source domain
    """

    title: str = Field(description="Result title")
    url: str = Field(description="Result URL")
    snippet: str = Field(default="", description="Text snippet or description")
    position: int = Field(default=1, ge=1, description="Position in results")
    source: str | None = Field(default=None, description="Source domain")


class VectorMatch(BaseModel):
    """One vector store match."""

    id: str
    score: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)


def _domain(url: str) -> str | None:
    return urlparse(url).netloc or None


class HTTPProviderHandle(ProviderHandle):
    """Base for handles talking to a JSON HTTP API through one AsyncClient."""

    default_base_url: ClassVar[str] = ""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        **options: Any,
    ) -> None:
        self.api_key = api_key
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout
        self.options = options
        self._client: httpx.AsyncClient | None = None

    def _headers(self) -> dict[str, str]:
        return {}

    def _auth(self) -> httpx.Auth | tuple[str, str] | None:
        return None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                auth=self._auth(),
                timeout=self.timeout,
            )
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self.client.request(method, path, **kwargs)
        response.raise_for_status()
        return response

    def _unsupported(self, operation: str) -> UnsupportedOperation:
        return UnsupportedOperation(None, self.kind.value, operation)

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


class OpenAICompletionHandle(HTTPProviderHandle):
    """OpenAI-compatible chat completions (also serves local Ollama endpoints)."""

    kind = CapabilityKind.COMPLETION
    operations = frozenset({"chat"})
    default_base_url = OPENAI_API_BASE

    def __init__(self, *args: Any, default_model: str = "gpt-4", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.default_model = default_model

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def call(self, operation: str, params: dict[str, Any]) -> CompletionResponse:
        if operation != "chat":
            raise self._unsupported(operation)

        payload: dict[str, Any] = {
            "model": params.get("model") or self.default_model,
            "messages": params["messages"],
            "max_tokens": params.get("max_tokens", 1000),
            "temperature": params.get("temperature", 0.7),
            **params.get("options", {}),
        }
        response = await self._request("POST", "/chat/completions", json=payload)
        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            raise ValueError("Completion response contained no choices")
        return CompletionResponse(
            text=choices[0].get("message", {}).get("content") or "",
            model=data.get("model"),
            tokens_used=(data.get("usage") or {}).get("total_tokens", 0),
            raw=data,
        )

    async def _ping(self) -> bool:
        response = await self._request(
            "POST",
            "/chat/completions",
            json={
                "model": self.default_model,
                "messages": [{"role": "user", "content": "ping"}],
                "max_tokens": 1,
            },
        )
        return bool(response.json().get("choices"))


class LocalCompletionHandle(OpenAICompletionHandle):
    """Completion against a local OpenAI-compatible server."""

    default_base_url = LOCAL_API_BASE

    def __init__(self, *args: Any, default_model: str = "llama3", **kwargs: Any) -> None:
        super().__init__(*args, default_model=default_model, **kwargs)


class OpenAITranscriptionHandle(HTTPProviderHandle):
    """Speech-to-text via the OpenAI audio transcription endpoint."""

    kind = CapabilityKind.TRANSCRIPTION
    operations = frozenset({"transcribe"})
    default_base_url = OPENAI_API_BASE

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    async def call(self, operation: str, params: dict[str, Any]) -> str:
        if operation != "transcribe":
            raise self._unsupported(operation)

        files = {"file": (params.get("filename", "audio.wav"), params["file"])}
        data = {"model": params.get("model", "whisper-1")}
        response = await self._request("POST", "/audio/transcriptions", files=files, data=data)
        return response.json().get("text", "")

    async def _ping(self) -> bool:
        response = await self._request("GET", "/models")
        return bool(response.json().get("data"))


class ElevenLabsSynthesisHandle(HTTPProviderHandle):
    """Text-to-speech via ElevenLabs."""

    kind = CapabilityKind.SYNTHESIS
    operations = frozenset({"synthesize", "voices"})
    default_base_url = ELEVENLABS_API_BASE

    def _headers(self) -> dict[str, str]:
        return {"xi-api-key": self.api_key or ""}

    async def call(self, operation: str, params: dict[str, Any]) -> Any:
        if operation == "synthesize":
            voice_id = params.get("voice_id", self.options.get("voice_id", DEFAULT_VOICE_ID))
            response = await self._request(
                "POST",
                f"/text-to-speech/{voice_id}",
                json={
                    "text": params["text"],
                    "model_id": params.get("model_id", "eleven_monolingual_v1"),
                },
                headers={"Accept": "audio/mpeg"},
            )
            return response.content
        if operation == "voices":
            response = await self._request("GET", "/voices")
            return response.json().get("voices", [])
        raise self._unsupported(operation)

    async def _ping(self) -> bool:
        response = await self._request("GET", "/voices")
        return "voices" in response.json()


class TwilioTelephonyHandle(HTTPProviderHandle):
    """Outbound calls and SMS via the Twilio REST API."""

    kind = CapabilityKind.TELEPHONY
    operations = frozenset({"call", "sms"})
    default_base_url = TWILIO_API_BASE

    def __init__(self, *args: Any, account_sid: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        if not account_sid:
            raise ConfigurationError("Twilio provider requires options.account_sid", "account_sid")
        self.account_sid = account_sid

    def _auth(self) -> tuple[str, str]:
        return (self.account_sid, self.api_key or "")

    async def call(self, operation: str, params: dict[str, Any]) -> dict[str, Any]:
        if operation == "call":
            form = {"Url": params["twiml_url"], "To": params["to"], "From": params["from_"]}
            path = f"/Accounts/{self.account_sid}/Calls.json"
        elif operation == "sms":
            form = {"Body": params["body"], "To": params["to"], "From": params["from_"]}
            path = f"/Accounts/{self.account_sid}/Messages.json"
        else:
            raise self._unsupported(operation)
        response = await self._request("POST", path, data=form)
        return response.json()

    async def _ping(self) -> bool:
        response = await self._request("GET", "/Accounts.json", params={"PageSize": 1})
        return len(response.json().get("accounts", [])) > 0


class TelegramMessagingHandle(HTTPProviderHandle):
    """Bot messages via the Telegram Bot API."""

    kind = CapabilityKind.MESSAGING
    operations = frozenset({"send_message", "send_photo"})
    default_base_url = TELEGRAM_API_BASE

    async def _bot_call(self, method: str, payload: dict[str, Any] | None = None) -> Any:
        response = await self._request("POST", f"/bot{self.api_key}/{method}", json=payload or {})
        data = response.json()
        if not data.get("ok"):
            raise RuntimeError(data.get("description", f"Telegram {method} failed"))
        return data.get("result")

    async def call(self, operation: str, params: dict[str, Any]) -> Any:
        options = params.get("options", {})
        if operation == "send_message":
            return await self._bot_call(
                "sendMessage",
                {"chat_id": params["chat_id"], "text": params["text"], **options},
            )
        if operation == "send_photo":
            return await self._bot_call(
                "sendPhoto",
                {"chat_id": params["chat_id"], "photo": params["photo"], **options},
            )
        raise self._unsupported(operation)

    async def _ping(self) -> bool:
        return bool(await self._bot_call("getMe"))


class PineconeVectorHandle(HTTPProviderHandle):
    """Vector upsert and similarity query against a Pinecone index host.

    ``query`` accepts either a raw ``vector`` or a ``text`` for indexes with
    integrated embedding.
    """

    kind = CapabilityKind.VECTOR_STORE
    operations = frozenset({"upsert", "query"})

    def __init__(self, *args: Any, namespace: str = "", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        if not self.base_url:
            raise ConfigurationError("Pinecone provider requires base_url (index host)", "base_url")
        self.namespace = namespace

    def _headers(self) -> dict[str, str]:
        return {"Api-Key": self.api_key or "", "Content-Type": "application/json"}

    async def call(self, operation: str, params: dict[str, Any]) -> Any:
        namespace = params.get("namespace", self.namespace)
        if operation == "upsert":
            response = await self._request(
                "POST",
                "/vectors/upsert",
                json={"vectors": params["vectors"], "namespace": namespace},
            )
            return response.json()
        if operation != "query":
            raise self._unsupported(operation)

        top_k = params.get("top_k", 10)
        if "vector" in params:
            response = await self._request(
                "POST",
                "/query",
                json={
                    "vector": params["vector"],
                    "topK": top_k,
                    "includeMetadata": True,
                    "namespace": namespace,
                },
            )
            return [
                VectorMatch(id=m["id"], score=m.get("score", 0.0), metadata=m.get("metadata") or {})
                for m in response.json().get("matches", [])
            ]

        response = await self._request(
            "POST",
            f"/records/namespaces/{namespace or '__default__'}/search",
            json={"query": {"inputs": {"text": params["text"]}, "top_k": top_k}},
        )
        hits = (response.json().get("result") or {}).get("hits", [])
        return [
            VectorMatch(id=h["_id"], score=h.get("_score", 0.0), metadata=h.get("fields") or {})
            for h in hits
        ]

    async def _ping(self) -> bool:
        response = await self._request("POST", "/describe_index_stats", json={})
        return "dimension" in response.json() or "namespaces" in response.json()


class SupabaseStoreHandle(HTTPProviderHandle):
    """Table access through a Supabase PostgREST endpoint."""

    kind = CapabilityKind.STRUCTURED_STORE
    operations = frozenset({"insert", "select", "update", "delete"})

    def __init__(self, *args: Any, health_table: str = "health_check", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        if not self.base_url:
            raise ConfigurationError("Supabase provider requires base_url", "base_url")
        if not self.base_url.endswith("/rest/v1"):
            self.base_url = f"{self.base_url}/rest/v1"
        self.health_table = health_table

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key or "",
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    async def call(self, operation: str, params: dict[str, Any]) -> Any:
        table = params["table"]
        if operation == "insert":
            response = await self._request("POST", f"/{table}", json=params["data"])
        elif operation == "select":
            query: dict[str, Any] = {"select": params.get("columns", "*")}
            if "limit" in params:
                query["limit"] = params["limit"]
            response = await self._request("GET", f"/{table}", params=query)
        elif operation == "update":
            response = await self._request(
                "PATCH", f"/{table}", params={"id": f"eq.{params['id']}"}, json=params["data"]
            )
        elif operation == "delete":
            response = await self._request(
                "DELETE", f"/{table}", params={"id": f"eq.{params['id']}"}
            )
        else:
            raise self._unsupported(operation)
        return response.json() if response.content else []

    async def _ping(self) -> bool:
        await self._request("GET", f"/{self.health_table}", params={"select": "*", "limit": 1})
        return True


class BraveSearchHandle(HTTPProviderHandle):
    """Web search via the Brave Search API."""

    kind = CapabilityKind.WEB_SEARCH
    operations = frozenset({"search"})
    default_base_url = BRAVE_API_BASE

    def _headers(self) -> dict[str, str]:
        return {"X-Subscription-Token": self.api_key or "", "Accept": "application/json"}

    async def _search(self, query: str, count: int, offset: int = 0) -> httpx.Response:
        return await self._request(
            "GET",
            "/web/search",
            params={"q": query, "count": count, "offset": offset},
        )

    async def call(self, operation: str, params: dict[str, Any]) -> list[SearchResult]:
        if operation != "search":
            raise self._unsupported(operation)

        response = await self._search(
            params["query"], params.get("count", 10), params.get("offset", 0)
        )
        items = (response.json().get("web") or {}).get("results", [])
        return [
            SearchResult(
                title=item.get("title", ""),
                url=item.get("url", ""),
                snippet=item.get("description", ""),
                position=idx,
                source=_domain(item.get("url", "")),
            )
            for idx, item in enumerate(items, 1)
        ]

    async def _ping(self) -> bool:
        response = await self._search("test", 1)
        return response.status_code == 200


class DuckDuckGoSearchHandle(ProviderHandle):
    """Web search via DuckDuckGo, no API key required."""

    kind = CapabilityKind.WEB_SEARCH
    operations = frozenset({"search"})

    def __init__(self, region: str = "wt-wt", safesearch: str = "moderate", **_: Any) -> None:
        self.region = region
        self.safesearch = safesearch

    async def _text(self, query: str, max_results: int) -> list[dict[str, Any]]:
        # DDGS is blocking
        results = await asyncio.to_thread(
            lambda: DDGS().text(
                query,
                max_results=max_results,
                region=self.region,
                safesearch=self.safesearch,
            )
        )
        return list(results or [])

    async def call(self, operation: str, params: dict[str, Any]) -> list[SearchResult]:
        if operation != "search":
            raise UnsupportedOperation(None, self.kind.value, operation)

        items = await self._text(params["query"], params.get("count", 10))
        results = []
        for idx, item in enumerate(items, 1):
            url = item.get("href", "").strip()
            results.append(
                SearchResult(
                    title=item.get("title", "").strip(),
                    url=url,
                    snippet=re.sub(r"\s+", " ", item.get("body", "")).strip(),
                    position=idx,
                    source=_domain(url),
                )
            )
        return results

    async def _ping(self) -> bool:
        await self._text("test", 1)
        return True


HANDLE_TYPES: dict[str, type[ProviderHandle]] = {
    "openai": OpenAICompletionHandle,
    "local": LocalCompletionHandle,
    "openai_transcription": OpenAITranscriptionHandle,
    "elevenlabs": ElevenLabsSynthesisHandle,
    "twilio": TwilioTelephonyHandle,
    "telegram": TelegramMessagingHandle,
    "pinecone": PineconeVectorHandle,
    "supabase": SupabaseStoreHandle,
    "brave": BraveSearchHandle,
    "duckduckgo": DuckDuckGoSearchHandle,
}


def build_handle(settings: ProviderSettings) -> ProviderHandle:
    """Create the handle for a configured provider.

    Raises:
        ConfigurationError: If the handle type is unknown or misconfigured
    """
    handle_cls = HANDLE_TYPES.get(settings.type)
    if handle_cls is None:
        raise ConfigurationError(
            f"Unknown provider type '{settings.type}' for provider '{settings.id}'",
            config_key="type",
        )

    if issubclass(handle_cls, HTTPProviderHandle):
        return handle_cls(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.timeout,
            **settings.options,
        )
    return handle_cls(**settings.options)
