"""Chat model client and normalisation of its response shapes."""
from __future__ import annotations

import codecs
import json
import logging
import os
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar

from langchain_community.cache import SQLiteCache
from langchain_core.globals import set_llm_cache
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from .config import AppSettings
from .errors import GenerationError
from .models import ChatMessage

logger = logging.getLogger(__name__)

_MESSAGE_TYPES: dict[str, type[BaseMessage]] = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}
_MAX_TOKEN_FIELDS = ("max_tokens", "num_predict", "max_output_tokens")


@dataclass(frozen=True, slots=True)
class PlainText:
    text: str
    kind: ClassVar[str] = "plain"


@dataclass(frozen=True, slots=True)
class ChunkedText:
    text: str
    chunks: int
    kind: ClassVar[str] = "chunked"


@dataclass(frozen=True, slots=True)
class StructuredText:
    text: str
    kind: ClassVar[str] = "structured"


@dataclass(frozen=True, slots=True)
class UnrecognizedOutput:
    text: str
    kind: ClassVar[str] = "unrecognized"


GenerationResult = PlainText | ChunkedText | StructuredText | UnrecognizedOutput


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    # LangChain >=0.2 may return a list of parts
    return "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in content)


def _drain(chunks: Iterable[Any]) -> ChunkedText:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    parts: list[str] = []
    count = 0
    for chunk in chunks:
        count += 1
        if isinstance(chunk, (bytes, bytearray)):
            parts.append(decoder.decode(bytes(chunk)))
        elif isinstance(chunk, BaseMessage):
            parts.append(_content_text(chunk.content))
        else:
            parts.append(str(chunk))
    parts.append(decoder.decode(b"", final=True))
    return ChunkedText(text="".join(parts), chunks=count)


def normalize_generation(raw: Any) -> GenerationResult:
    """Resolve whatever the model returned into one of the known result shapes."""

    if isinstance(raw, str):
        return PlainText(raw)
    if isinstance(raw, (bytes, bytearray)):
        return PlainText(bytes(raw).decode("utf-8", errors="replace"))
    if isinstance(raw, BaseMessage):
        return PlainText(_content_text(raw.content))
    if isinstance(raw, Mapping):
        if "response" in raw:
            return StructuredText(str(raw["response"]))
    elif getattr(raw, "response", None) is not None:
        return StructuredText(str(raw.response))
    elif isinstance(raw, (Iterator, list, tuple)):
        return _drain(raw)
    return UnrecognizedOutput(json.dumps(raw, default=str))


def build_chat_model(settings: AppSettings) -> BaseChatModel:
    if settings.model.llm_provider == "openai":
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY is not set but llm_provider=openai")
        openai_kwargs: dict[str, Any] = {
            "model": settings.model.llm_model,
            "temperature": settings.model.temperature,
            "max_retries": 2,
            "max_tokens": settings.model.max_output_tokens,
            "api_key": api_key,
        }
        if settings.model.openai_api_base:
            openai_kwargs["base_url"] = settings.model.openai_api_base
        return ChatOpenAI(**openai_kwargs)

    return ChatOllama(
        model=settings.model.llm_model,
        base_url=settings.model.llm_base_url,
        temperature=settings.model.temperature,
        num_predict=settings.model.max_output_tokens,
    )


def configure_llm_cache(settings: AppSettings) -> None:
    if not settings.cache.enabled:
        return
    cache_path = settings.cache.path
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    set_llm_cache(SQLiteCache(database_path=str(cache_path)))
    logger.info("LangChain cache enabled at %s", cache_path)


class LLMService:
    """Wraps the chat model used to answer compliance questions."""

    def __init__(self, llm: BaseChatModel, stream: bool = False) -> None:
        self.llm = llm
        self.stream = stream

    def _configured(self, temperature: float, max_tokens: int) -> BaseChatModel:
        fields = type(self.llm).model_fields
        update: dict[str, Any] = {}
        if "temperature" in fields:
            update["temperature"] = temperature
        token_field = next((name for name in _MAX_TOKEN_FIELDS if name in fields), None)
        if token_field:
            update[token_field] = max_tokens
        return self.llm.model_copy(update=update) if update else self.llm

    @staticmethod
    def to_langchain(messages: Sequence[ChatMessage]) -> list[BaseMessage]:
        return [_MESSAGE_TYPES[message.role](content=message.content) for message in messages]

    def generate(self, messages: Sequence[ChatMessage], *, temperature: float, max_tokens: int) -> Any:
        model = self._configured(temperature, max_tokens)
        lc_messages = self.to_langchain(messages)
        try:
            if self.stream:
                return model.stream(lc_messages)
            return model.invoke(lc_messages)
        except Exception as exc:
            raise GenerationError(f"Chat model call failed: {exc}") from exc
