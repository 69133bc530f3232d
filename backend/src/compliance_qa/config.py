"""Centralized configuration for the compliance Q&A service."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DOTENV_PATH = Path(__file__).resolve().parents[2] / ".env"
if DOTENV_PATH.exists():
    load_dotenv(dotenv_path=DOTENV_PATH, override=False)
else:
    load_dotenv()


class Paths(BaseModel):
    project_root: Path = Field(default=Path(__file__).resolve().parents[2])
    data_dir: Path = Field(default=Path("data"))
    blob_dir: Path = Field(default=Path("data/blobs"))
    vector_dir: Path = Field(default=Path("data/vectorstore"))
    kv_path: Path = Field(default=Path("data/compliance_kv.sqlite3"))


class ModelSettings(BaseModel):
    embed_model: str = Field(default="BAAI/bge-base-en-v1.5")
    llm_model: str = Field(default="gpt-4o-mini")
    llm_base_url: str = Field(default="http://localhost:11434")
    llm_provider: Literal["ollama", "openai"] = Field(default="openai")
    openai_api_base: str | None = Field(default="https://api.openai.com/v1")
    temperature: float = Field(default=0.01)
    max_output_tokens: int = Field(default=1500)
    stream: bool = Field(default=False)


class RetrievalSettings(BaseModel):
    similarity_top_k: int = Field(default=3)
    lexical_top_k: int = Field(default=2)
    lexical_workers: int = Field(default=4)
    full_text_limit: int = Field(default=8000)
    excerpt_limit: int = Field(default=6000)
    window_lines: int = Field(default=10)
    dedupe_prefix_chars: int = Field(default=200)
    history_window: int = Field(default=2)
    history_cap: int = Field(default=10)


class StorageSettings(BaseModel):
    use_blob_store: bool = Field(default=True)
    use_vector_index: bool = Field(default=True)
    collection_name: str = Field(default="compliance_documents")


class ObservabilitySettings(BaseModel):
    log_level: str = Field(default="INFO")
    enable_tracing: bool = Field(default=False)
    otlp_endpoint: str = Field(default="http://localhost:4318/v1/traces")
    enable_prometheus: bool = Field(default=True)


class CacheSettings(BaseModel):
    enabled: bool = Field(default=False)
    path: Path = Field(default=Path("data/cache/lc_cache.db"))


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COMPLIANCE_QA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    environment: str = Field(default="local")
    debug: bool = Field(default=False)
    paths: Paths = Paths()
    model: ModelSettings = ModelSettings()
    retrieval: RetrievalSettings = RetrievalSettings()
    storage: StorageSettings = StorageSettings()
    observability: ObservabilitySettings = ObservabilitySettings()
    cache: CacheSettings = CacheSettings()


@lru_cache
def get_settings() -> AppSettings:
    """Return cached settings instance."""

    settings = AppSettings()
    settings.paths.data_dir.mkdir(parents=True, exist_ok=True)
    cache_path = settings.cache.path
    if not cache_path.is_absolute():
        cache_path = settings.paths.project_root / cache_path
    settings.cache.path = cache_path
    return settings


settings = get_settings()
