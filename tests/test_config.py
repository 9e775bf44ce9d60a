import pytest
import yaml

from grapho.config import Config, ENGINE_DEFAULTS
from grapho.exceptions import ConfigurationError
from grapho.graph import Graph


def test_defaults_for_unknown_type_are_empty():
    assert Config().defaults("Box") == {}
    assert Config({"engine": {"validate": False}}).defaults("engine") == {}


def test_scalar_interpolation():
    config = Config({"base": {"value": 3.0}, "Const": {"value": "${base.value}"}})
    assert config.defaults("Const") == {"value": 3.0}


def test_presets_apply_overrides():
    config = Config(
        {
            "Box": {
                "size": [1, 1, 1],
                "_use_": "tall",
                "_presets_": {
                    "tall": {"size": [1, 4, 1]},
                    "wide": {"size": [4, 1, 1]},
                },
            }
        }
    )
    assert config.defaults("Box") == {"size": [1, 4, 1]}
    config.Box["_use_"] = "wide"
    assert config.defaults("Box") == {"size": [4, 1, 1]}


def test_presets_without_selection_use_base():
    config = Config({"Const": {"value": 2.0, "_presets_": {"big": {"value": 100.0}}}})
    assert config.defaults("Const") == {"value": 2.0}


def test_unknown_preset_raises():
    config = Config({"Const": {"_use_": "nope", "_presets_": {"big": {"value": 1.0}}}})
    with pytest.raises(ConfigurationError, match="nope"):
        config.defaults("Const")


def test_preset_can_reference_other_sections():
    config = Config(
        {
            "sizes": {"large": [3, 3, 3]},
            "Box": {"_use_": "large", "_presets_": {"large": {"size": "${sizes.large}"}}},
        }
    )
    assert config.defaults("Box") == {"size": [3, 3, 3]}


def test_engine_settings_fall_back_to_defaults():
    config = Config({"engine": {"cache_max_bytes": 1024}})
    assert config.setting("cache_max_bytes") == 1024
    assert config.setting("validate") is ENGINE_DEFAULTS["validate"]
    assert config.setting("base_color") == [0.7, 0.72, 0.75]
    with pytest.raises(ConfigurationError):
        config.setting("threads")


def test_unknown_engine_setting_is_rejected():
    with pytest.raises(ConfigurationError, match="workers"):
        Config({"engine": {"workers": 4}})


def test_attribute_access():
    config = Config({"Const": {"value": 1.0}})
    assert config.Const.value == 1.0
    config.Box = {"size": [2, 2, 2]}
    assert config.defaults("Box") == {"size": [2, 2, 2]}
    assert "Box" in config
    with pytest.raises(AttributeError):
        config.missing


def test_load_yaml(tmp_path, registry):
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "engine": {"validate": False, "base_color": [0.1, 0.2, 0.3]},
                "Transform": {"translate": [0, 1, 0]},
            }
        )
    )
    config = Config(path)
    assert config.setting("validate") is False
    graph = Graph(registry, config=config)
    transform = graph.add_node("Transform")
    assert graph.node(transform).params["translate"] == (0.0, 1.0, 0.0)


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        Config(tmp_path / "missing.yaml")


def test_copy_from_keeps_identity():
    config = Config({"Const": {"value": 1.0}})
    other = Config({"Box": {"size": [2, 2, 2]}, "engine": {"validate": False}})
    before = id(config)
    config.copy_from(other)
    assert id(config) == before
    assert config.defaults("Const") == {}
    assert config.defaults("Box") == {"size": [2, 2, 2]}
    assert config.setting("validate") is False
