import json

from app.config import (
    PatchEngineConfig,
    get_engine_config,
    load_engine_config,
    reset_engine_config_cache,
)


def test_default_config_matches_bundled_resource() -> None:
    reset_engine_config_cache()
    config = load_engine_config()
    assert isinstance(config, PatchEngineConfig)
    assert config.fetch_timeout_seconds == 45.0
    assert config.head_timeout_seconds == 45.0
    assert config.chunk_size == 65536
    assert config.workspace_dirname == ".online-patch"
    assert config.state_filename == "state.json"
    assert config.cache_buster_param == "cb"
    assert config.log_verbosity == "info"


def test_load_engine_config_from_custom_path(tmp_path) -> None:
    custom_config = {
        "network": {
            "fetch_timeout_seconds": 12.5,
            "head_timeout_seconds": "3",
            "chunk_size": 1024,
            "cache_buster_param": "bust",
        },
        "workspace": {"dirname": ".patches", "state_filename": "patch-state.json"},
        "logging": {"file_verbosity": "Verbose"},
    }
    config_path = tmp_path / "engine.json"
    config_path.write_text(json.dumps(custom_config), encoding="utf-8")

    config = load_engine_config(config_path)
    assert config == PatchEngineConfig(
        fetch_timeout_seconds=12.5,
        head_timeout_seconds=3.0,
        chunk_size=1024,
        workspace_dirname=".patches",
        state_filename="patch-state.json",
        cache_buster_param="bust",
        log_verbosity="verbose",
    )


def test_invalid_config_values_fall_back_to_defaults(tmp_path) -> None:
    invalid_config = {
        "network": {
            "fetch_timeout_seconds": "forever",
            "head_timeout_seconds": -1,
            "chunk_size": True,
            "cache_buster_param": "",
        },
        "workspace": {"dirname": "../escape", "state_filename": ".."},
        "logging": {"file_verbosity": "chatty"},
    }
    config_path = tmp_path / "engine.json"
    config_path.write_text(json.dumps(invalid_config), encoding="utf-8")

    assert load_engine_config(config_path) == PatchEngineConfig()


def test_unreadable_config_file_uses_defaults(tmp_path) -> None:
    broken = tmp_path / "engine.json"
    broken.write_text("{not json", encoding="utf-8")

    assert load_engine_config(broken) == PatchEngineConfig()
    assert load_engine_config(tmp_path / "missing.json") == PatchEngineConfig()


def test_get_engine_config_honours_environment_and_caches(monkeypatch, tmp_path) -> None:
    config_path = tmp_path / "engine.json"
    config_path.write_text(json.dumps({"network": {"chunk_size": 2048}}), encoding="utf-8")
    monkeypatch.setenv("PATCH_ENGINE_CONFIG", str(config_path))
    reset_engine_config_cache()

    first = get_engine_config()
    assert first.chunk_size == 2048

    config_path.write_text(json.dumps({"network": {"chunk_size": 4096}}), encoding="utf-8")
    second = get_engine_config()
    assert second is first

    reset_engine_config_cache()
    assert get_engine_config().chunk_size == 4096
