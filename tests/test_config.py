from __future__ import annotations

import os
from pathlib import Path
import textwrap

import pytest
from pydantic import ValidationError

from novella.config.loader import load_config, masked_env_snapshot
from novella.config.schema import AppConfigRoot, ChatEndpointConfig, LLMConfig, SegmenterConfig, resolve_paths


_LLM_YAML = """
llm:
  providers:
    openai:
      kind: "openai_compatible"
      base_url: "https://default-llm.example/v1"
      api_key_env: "OPENAI_API_KEY"
  chat_endpoints:
    default_chat:
      provider: "openai"
      model: "gpt-default"
    planner_fast:
      provider: "openai"
      model: "gpt-planner"
  image_endpoints:
    default_image:
      provider: "openai"
      model: "img-default"
  routes:
    default_chat: "default_chat"
    image: "default_image"
"""


def test_resolve_paths_makes_absolute(tmp_path: Path) -> None:
    config = AppConfigRoot()
    config.app.data_dir = Path("data")
    config.app.output_dir = Path("output")
    config.storage.sqlite_path = Path("data/novella.db")
    config.storage.json_path = Path("data/stories.json")

    resolved = resolve_paths(config, tmp_path)

    assert resolved.app.data_dir == (tmp_path / "data").resolve()
    assert resolved.app.output_dir == (tmp_path / "output").resolve()
    assert resolved.storage.sqlite_path == (tmp_path / "data/novella.db").resolve()
    assert resolved.storage.json_path == (tmp_path / "data/stories.json").resolve()


def test_segmenter_defaults_match_documented_thresholds() -> None:
    rules = AppConfigRoot().import_.segmenter

    assert rules.front_matter_threshold == 100
    assert rules.heading_max_chars == 100
    assert rules.heading_min_chars == 2
    assert rules.fallback_trigger_chars == 20_000
    assert rules.fallback_chunk_chars == 15_000


def test_segmenter_config_validates_bounds() -> None:
    with pytest.raises(ValidationError):
        SegmenterConfig(heading_min_chars=10, heading_max_chars=5)

    with pytest.raises(ValidationError):
        SegmenterConfig(fallback_chunk_chars=0)

    with pytest.raises(ValidationError):
        SegmenterConfig(families=({"name": "empty", "keywords": ("  ",)},))


def test_segmenter_config_is_hashable() -> None:
    assert hash(SegmenterConfig()) == hash(SegmenterConfig())


def test_import_section_uses_alias() -> None:
    config = AppConfigRoot.model_validate({"import": {"language": "en", "segmenter": {"front_matter_threshold": 50}}})

    assert config.import_.language == "en"
    assert config.import_.segmenter.front_matter_threshold == 50
    assert "import" in config.model_dump(by_alias=True)


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ValidationError):
        AppConfigRoot.model_validate({"writer": {"context_size": 10}})


def test_chat_endpoint_validates_temperature() -> None:
    with pytest.raises(ValidationError):
        ChatEndpointConfig(provider="p", model="m", temperature=2.5)


def test_llm_config_validates_endpoint_provider_reference() -> None:
    with pytest.raises(ValidationError):
        LLMConfig.model_validate(
            {
                "providers": {"p1": {"kind": "openai_compatible", "api_key_env": "KEY"}},
                "chat_endpoints": {"default_chat": {"provider": "missing_provider", "model": "m"}},
                "image_endpoints": {"default_image": {"provider": "p1", "model": "i"}},
            }
        )


def test_llm_config_validates_route_reference() -> None:
    with pytest.raises(ValidationError):
        LLMConfig.model_validate(
            {
                "providers": {"p1": {"kind": "openai_compatible"}},
                "chat_endpoints": {"default_chat": {"provider": "p1", "model": "m"}},
                "image_endpoints": {"default_image": {"provider": "p1", "model": "i"}},
                "routes": {"writer_chat": "nope"},
            }
        )


def test_chat_routes_fall_back_to_default() -> None:
    config = AppConfigRoot()

    writer, _, _ = config.llm.resolve_chat_route("writer")
    assistant, _, _ = config.llm.resolve_chat_route("assistant")
    extract, endpoint, _ = config.llm.resolve_chat_route("extract")

    assert writer == "default_chat"
    assert assistant == "default_chat"
    assert extract == "extract_chat"
    assert endpoint.temperature == 0.2


def test_extract_route_prefers_planner_when_unset() -> None:
    llm = AppConfigRoot.model_validate(
        {
            "llm": {
                "providers": {"p": {"kind": "openai_compatible"}},
                "chat_endpoints": {
                    "default_chat": {"provider": "p", "model": "d"},
                    "planner_big": {"provider": "p", "model": "big"},
                },
                "image_endpoints": {"default_image": {"provider": "p", "model": "i"}},
                "routes": {"planner_chat": "planner_big"},
            }
        }
    ).llm

    assert llm.resolve_chat_route("extract")[0] == "planner_big"
    assert llm.resolve_chat_route("planner")[0] == "planner_big"
    assert llm.resolve_chat_route("writer")[0] == "default_chat"


def test_load_config_merge_order(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    configs_dir = tmp_path / "configs"
    profiles_dir = configs_dir / "profiles"
    profiles_dir.mkdir(parents=True)

    (configs_dir / "default.yaml").write_text(
        textwrap.dedent(
            """
            app:
              data_dir: "./data-default"
              output_dir: "./out-default"
            """
        ).strip()
        + "\n"
        + _LLM_YAML.strip(),
        encoding="utf-8",
    )
    (profiles_dir / "fast.yaml").write_text(
        textwrap.dedent(
            """
            app:
              output_dir: "./out-profile"
            llm:
              routes:
                planner_chat: "planner_fast"
            """
        ).strip(),
        encoding="utf-8",
    )
    (configs_dir / "custom.yaml").write_text('app:\n  output_dir: "./out-custom"\n', encoding="utf-8")

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NOVELLA_DATA_DIR", str(tmp_path / "env-data"))
    monkeypatch.setenv("NOVELLA_LLM_PROVIDER_OPENAI_BASE_URL", "https://env-llm.example/v1")
    monkeypatch.setenv("NOVELLA_STORAGE_BACKEND", "file")

    config = load_config(
        config_path=configs_dir / "custom.yaml",
        profile="fast",
        overrides={"app": {"output_dir": "./out-override"}},
    )

    assert config.app.data_dir == (tmp_path / "env-data").resolve()
    assert config.app.output_dir == (tmp_path / "out-override").resolve()
    assert config.llm.resolve_chat_route("planner")[0] == "planner_fast"
    assert config.llm.providers["openai"].base_url == "https://env-llm.example/v1"
    assert config.storage.backend == "file"


def test_load_config_reads_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".env").write_text('NOVELLA_TEST_DOTENV="from-dotenv"\n', encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    # Registered first so teardown removes the value the loader sets.
    monkeypatch.setenv("NOVELLA_TEST_DOTENV", "placeholder")
    monkeypatch.delenv("NOVELLA_TEST_DOTENV")

    load_config()

    assert os.environ.get("NOVELLA_TEST_DOTENV") == "from-dotenv"


def test_masked_env_snapshot_hides_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-secret")

    snapshot = masked_env_snapshot(AppConfigRoot())

    assert snapshot["OPENAI_API_KEY"] == "***"
    assert "sk-secret" not in str(snapshot)


def test_observability_config_validation() -> None:
    config = AppConfigRoot()
    assert config.observability.json_error_payload_max_chars == 2000

    with pytest.raises(ValidationError):
        AppConfigRoot.model_validate({"observability": {"json_error_payload_max_chars": -1}})


def test_env_overrides_reach_workbench_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NOVELLA_SEGMENTER_FRONT_MATTER_THRESHOLD", "250")
    monkeypatch.setenv("NOVELLA_SEGMENTER_FALLBACK_CHUNK_CHARS", "5000")
    monkeypatch.setenv("NOVELLA_IMPORT_LANGUAGE", "en")
    monkeypatch.setenv("NOVELLA_STORAGE_KEY", "drafts")
    monkeypatch.setenv("NOVELLA_CACHE_ENABLED", "false")

    config = load_config()

    assert config.import_.segmenter.front_matter_threshold == 250
    assert config.import_.segmenter.fallback_chunk_chars == 5000
    assert config.import_.language == "en"
    assert config.storage.storage_key == "drafts"
    assert config.cache.enabled is False


def test_env_override_is_validated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NOVELLA_STORAGE_BACKEND", "redis")

    with pytest.raises(ValidationError):
        load_config()


def test_route_env_override_selects_endpoint(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    configs_dir = tmp_path / "configs"
    configs_dir.mkdir()
    (configs_dir / "default.yaml").write_text(_LLM_YAML.strip(), encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NOVELLA_ROUTE_WRITER", "planner_fast")

    config = load_config()

    assert config.llm.resolve_chat_route("writer")[0] == "planner_fast"
    assert config.llm.resolve_chat_route("assistant")[0] == "default_chat"


def test_dotenv_accepts_export_and_single_quotes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".env").write_text("export NOVELLA_LOG_LEVEL='DEBUG'\n# comment\nnot a pair\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NOVELLA_LOG_LEVEL", "placeholder")
    monkeypatch.delenv("NOVELLA_LOG_LEVEL")

    config = load_config()

    assert config.app.log_level == "DEBUG"


def test_config_file_must_be_a_mapping(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    custom = tmp_path / "list.yaml"
    custom.write_text("- a\n- b\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ValueError, match="mapping"):
        load_config(config_path=custom)


def test_masked_env_snapshot_reports_resolved_routes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NOVELLA_STORAGE_KEY", "drafts")

    snapshot = masked_env_snapshot(AppConfigRoot())

    assert snapshot["NOVELLA_STORAGE_KEY"] == "drafts"
    assert snapshot["route.writer"] == "default_chat (gpt-4.1-mini)"
    assert snapshot["route.extract"] == "extract_chat (gpt-4.1-mini)"
    assert snapshot["route.image"] == "default_image (gpt-image-1)"
    assert "NOVELLA_SEGMENTER_FRONT_MATTER_THRESHOLD" in snapshot
