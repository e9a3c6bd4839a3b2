from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator


ChatRoute = Literal["writer", "planner", "extract", "assistant"]


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    data_dir: Path = Field(default=Path("./data"))
    output_dir: Path = Field(default=Path("./output"))
    log_level: str = Field(default="INFO")


class HeadingFamilyConfig(BaseModel):
    """One keyword family recognised as a chapter heading, e.g. ``Chapter``/``Bab``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    keywords: tuple[str, ...]

    @field_validator("keywords")
    @classmethod
    def _non_empty_keywords(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(keyword.strip() for keyword in value if keyword.strip())
        if not cleaned:
            raise ValueError("heading family keywords cannot be empty")
        return cleaned


DEFAULT_HEADING_FAMILIES: tuple[HeadingFamilyConfig, ...] = (
    HeadingFamilyConfig(name="chapter", keywords=("Chapter", "Bab", "Episode")),
    HeadingFamilyConfig(name="part", keywords=("Part", "Bagian", "Book", "Volume", "Vol")),
    HeadingFamilyConfig(
        name="frame",
        keywords=("Prologue", "Epilogue", "Prolog", "Epilog", "Permulaan", "Akhiran"),
    ),
    HeadingFamilyConfig(
        name="spelled",
        keywords=("Satu", "Dua", "Tiga", "Empat", "Lima", "Enam", "Tujuh", "Delapan", "Sembilan", "Sepuluh"),
    ),
)

DEFAULT_NUMERAL_WORDS: tuple[str, ...] = (
    "One",
    "Two",
    "Three",
    "Four",
    "Five",
    "Six",
    "Seven",
    "Eight",
    "Nine",
    "Ten",
    "Satu",
    "Dua",
    "Tiga",
    "Empat",
    "Lima",
    "Enam",
    "Tujuh",
    "Delapan",
    "Sembilan",
    "Sepuluh",
)


class SegmenterConfig(BaseModel):
    """Heuristics used to split a pasted manuscript into chapters.

    front_matter_threshold: the first heading must start after this index for the
        text before it to become a "Front Matter / Intro" chapter. The index is
        the start of the heading's line, so blank lines above it count as intro.
    heading_max_chars / heading_min_chars: a candidate heading line is rejected when
        its trimmed length is >= max or <= min.
    fallback_trigger_chars: headingless input longer than this is cut into
        ``fallback_chunk_chars`` sized parts instead of one chapter.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    front_matter_threshold: int = 100
    heading_max_chars: int = 100
    heading_min_chars: int = 2
    fallback_trigger_chars: int = 20_000
    fallback_chunk_chars: int = 15_000
    families: tuple[HeadingFamilyConfig, ...] = DEFAULT_HEADING_FAMILIES
    numeral_words: tuple[str, ...] = DEFAULT_NUMERAL_WORDS
    detect_bare_numerals: bool = True

    @field_validator("front_matter_threshold", "heading_min_chars")
    @classmethod
    def _non_negative_int(cls, value: int) -> int:
        if value < 0:
            raise ValueError("segmenter thresholds must be non-negative")
        return value

    @field_validator("heading_max_chars", "fallback_trigger_chars", "fallback_chunk_chars")
    @classmethod
    def _positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("segmenter sizes must be positive")
        return value

    @model_validator(mode="after")
    def _validate_bounds(self) -> "SegmenterConfig":
        if self.heading_min_chars >= self.heading_max_chars:
            raise ValueError("heading_min_chars must be less than heading_max_chars")
        return self


class ImportConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    encoding: str = "utf-8-sig"
    language: Literal["en", "id"] = "id"
    extract_max_chars: int = 2_000_000
    style_reference_chars: int = 2000
    segmenter: SegmenterConfig = SegmenterConfig()

    @field_validator("extract_max_chars", "style_reference_chars")
    @classmethod
    def _positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("import limits must be positive")
        return value


class WriterConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    context_chars: int = 3000
    beats_context_chars: int = 1000
    style_sample_chars: int = 1500
    style_analysis_chars: int = 1000
    length_presets: dict[str, str] = Field(
        default_factory=lambda: {
            "short": "Write about 150-200 words.",
            "medium": "Write about 400-500 words.",
            "long": "Write about 800-1000 words. Be very detailed.",
        }
    )

    @field_validator("context_chars", "beats_context_chars", "style_sample_chars", "style_analysis_chars")
    @classmethod
    def _positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("writer window sizes must be positive")
        return value


class LLMProviderConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["openai_compatible"] = "openai_compatible"
    base_url: str | None = None
    api_key_env: str | None = None


class ChatEndpointConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provider: str
    model: str
    temperature: float = 0.7
    timeout_s: int = 120
    max_concurrency: int = 4
    retries: int = 2
    max_tokens: int | None = None

    @field_validator("temperature")
    @classmethod
    def _temperature_range(cls, value: float) -> float:
        if not 0 <= value <= 2:
            raise ValueError("temperature must be between 0 and 2")
        return value

    @field_validator("timeout_s", "max_concurrency", "retries")
    @classmethod
    def _non_negative_int(cls, value: int) -> int:
        if value < 0:
            raise ValueError("endpoint integer settings must be non-negative")
        return value

    @field_validator("max_tokens")
    @classmethod
    def _positive_optional_max_tokens(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError("max_tokens must be positive when provided")
        return value


class ImageEndpointConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provider: str
    model: str
    size: str = "1024x1024"
    timeout_s: int = 120
    retries: int = 1

    @field_validator("timeout_s", "retries")
    @classmethod
    def _non_negative_int(cls, value: int) -> int:
        if value < 0:
            raise ValueError("endpoint integer settings must be non-negative")
        return value


class LLMRoutesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_chat: str = "default_chat"
    writer_chat: str | None = None
    planner_chat: str | None = None
    extract_chat: str | None = None
    assistant_chat: str | None = None
    image: str = "default_image"


class LLMConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    providers: dict[str, LLMProviderConfig]
    chat_endpoints: dict[str, ChatEndpointConfig]
    image_endpoints: dict[str, ImageEndpointConfig]
    routes: LLMRoutesConfig = LLMRoutesConfig()

    @model_validator(mode="after")
    def _validate_references(self) -> "LLMConfig":
        if not self.providers:
            raise ValueError("llm.providers cannot be empty")
        if not self.chat_endpoints:
            raise ValueError("llm.chat_endpoints cannot be empty")
        if not self.image_endpoints:
            raise ValueError("llm.image_endpoints cannot be empty")

        for endpoint_name, endpoint in self.chat_endpoints.items():
            if endpoint.provider not in self.providers:
                raise ValueError(
                    f"chat endpoint '{endpoint_name}' references unknown provider '{endpoint.provider}'"
                )

        for endpoint_name, endpoint in self.image_endpoints.items():
            if endpoint.provider not in self.providers:
                raise ValueError(
                    f"image endpoint '{endpoint_name}' references unknown provider '{endpoint.provider}'"
                )

        if self.routes.default_chat not in self.chat_endpoints:
            raise ValueError(f"llm.routes.default_chat not found: {self.routes.default_chat}")
        for route_field in ("writer_chat", "planner_chat", "extract_chat", "assistant_chat"):
            endpoint_name = getattr(self.routes, route_field)
            if endpoint_name and endpoint_name not in self.chat_endpoints:
                raise ValueError(f"llm.routes.{route_field} not found: {endpoint_name}")
        if self.routes.image not in self.image_endpoints:
            raise ValueError(f"llm.routes.image not found: {self.routes.image}")

        return self

    def resolve_chat_route(self, route: ChatRoute) -> tuple[str, ChatEndpointConfig, LLMProviderConfig]:
        if route == "writer":
            endpoint_name = self.routes.writer_chat or self.routes.default_chat
        elif route == "planner":
            endpoint_name = self.routes.planner_chat or self.routes.default_chat
        elif route == "extract":
            # Whole-manuscript extraction wants the planner model when no dedicated one is set.
            endpoint_name = self.routes.extract_chat or self.routes.planner_chat or self.routes.default_chat
        else:
            endpoint_name = self.routes.assistant_chat or self.routes.default_chat

        endpoint = self.chat_endpoints[endpoint_name]
        provider = self.providers[endpoint.provider]
        return endpoint_name, endpoint, provider

    def resolve_image_route(self) -> tuple[str, ImageEndpointConfig, LLMProviderConfig]:
        endpoint_name = self.routes.image
        endpoint = self.image_endpoints[endpoint_name]
        provider = self.providers[endpoint.provider]
        return endpoint_name, endpoint, provider


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    backend: Literal["sqlite", "file", "memory"] = "sqlite"
    sqlite_path: Path = Field(default=Path("./data/novella.db"))
    json_path: Path = Field(default=Path("./data/novella_stories.json"))
    storage_key: str = "novella_stories"

    @field_validator("storage_key")
    @classmethod
    def _non_empty_key(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("storage_key cannot be empty")
        return value


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    backend: str = "sqlite"
    ttl_seconds: int = 2_592_000


class ObservabilityConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    log_json_error_payload: bool = True
    json_error_payload_max_chars: int = 2000
    log_retry_attempts: bool = True

    @field_validator("json_error_payload_max_chars")
    @classmethod
    def _non_negative_chars(cls, value: int) -> int:
        if value < 0:
            raise ValueError("json_error_payload_max_chars must be non-negative")
        return value


def default_llm_config() -> LLMConfig:
    return LLMConfig.model_validate(
        {
            "providers": {
                "default": {
                    "kind": "openai_compatible",
                    "base_url": None,
                    "api_key_env": "OPENAI_API_KEY",
                }
            },
            "chat_endpoints": {
                "default_chat": {
                    "provider": "default",
                    "model": "gpt-4.1-mini",
                    "temperature": 0.8,
                    "timeout_s": 120,
                    "max_concurrency": 4,
                    "retries": 2,
                },
                "extract_chat": {
                    "provider": "default",
                    "model": "gpt-4.1-mini",
                    "temperature": 0.2,
                    "timeout_s": 300,
                    "max_concurrency": 1,
                    "retries": 1,
                },
            },
            "image_endpoints": {
                "default_image": {
                    "provider": "default",
                    "model": "gpt-image-1",
                    "size": "1024x1024",
                    "timeout_s": 120,
                    "retries": 1,
                }
            },
            "routes": {
                "default_chat": "default_chat",
                "extract_chat": "extract_chat",
                "image": "default_image",
            },
        }
    )


class AppConfigRoot(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    app: AppConfig = AppConfig()
    import_: ImportConfig = Field(default=ImportConfig(), alias="import")
    writer: WriterConfig = WriterConfig()
    llm: LLMConfig = Field(default_factory=default_llm_config)
    storage: StorageConfig = StorageConfig()
    cache: CacheConfig = CacheConfig()
    observability: ObservabilityConfig = ObservabilityConfig()


def resolve_paths(config: AppConfigRoot, base_dir: Path) -> AppConfigRoot:
    def _resolve(path_value: Path) -> Path:
        return path_value if path_value.is_absolute() else (base_dir / path_value).resolve()

    config.app.data_dir = _resolve(config.app.data_dir)
    config.app.output_dir = _resolve(config.app.output_dir)
    config.storage.sqlite_path = _resolve(config.storage.sqlite_path)
    config.storage.json_path = _resolve(config.storage.json_path)
    return config
