"""Configuration management for node parameter defaults and engine settings."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

from .exceptions import ConfigurationError

__all__ = ["Config", "ENGINE_DEFAULTS"]

ENGINE_SECTION = "engine"

ENGINE_DEFAULTS: dict[str, Any] = {
    "validate": True,
    "cache_max_bytes": None,
    "base_color": [0.7, 0.72, 0.75],
    "log_level": None,
}


class Config:
    """Store default parameters for node types using OmegaConf.

    Top-level keys name node types; their values become the default
    parameters of new nodes of that type. The reserved ``engine`` section
    holds evaluation settings (see :data:`ENGINE_DEFAULTS`). Values may use
    ``${...}`` interpolation anywhere in the document.
    """

    def __init__(
        self,
        mapping: Mapping[str, Any] | DictConfig | str | Path | None = None,
    ) -> None:
        """Create a configuration mapping.

        Parameters
        ----------
        mapping:
            Initial configuration data, or the path of a YAML file.
        """
        if isinstance(mapping, (str, Path)):
            try:
                object.__setattr__(self, "_conf", OmegaConf.load(str(mapping)))
            except Exception as e:
                raise ConfigurationError(f"Failed to load config from {mapping}: {e}") from e
        else:
            object.__setattr__(self, "_conf", OmegaConf.create(mapping or {}))
        self._check_engine()

    def __getattr__(self, name: str) -> Any:
        """Allow attribute-style access to config values."""
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")
        try:
            return self._conf[name]
        except (KeyError, TypeError):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        """Allow attribute-style setting of config values."""
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self._conf[name] = value
            if name == ENGINE_SECTION:
                self._check_engine()

    def __contains__(self, name: object) -> bool:
        return name in self._conf

    def _check_engine(self) -> None:
        section = self._conf.get(ENGINE_SECTION)
        if section is None:
            return
        if not OmegaConf.is_dict(section):
            raise ConfigurationError("the 'engine' section must be a mapping")
        unknown = sorted(set(section.keys()) - set(ENGINE_DEFAULTS))
        if unknown:
            raise ConfigurationError(f"unknown engine settings: {', '.join(map(str, unknown))}")

    def _resolve_with_presets(self, cfg: DictConfig) -> DictConfig:
        """Resolve a config that may contain _presets_.

        If the config has a ``_presets_`` key, merge the base config
        (all keys except ``_use_`` and ``_presets_``) with the selected
        preset from ``_presets_[_use_]``.

        Parameters
        ----------
        cfg : DictConfig
            The configuration to resolve.

        Returns
        -------
        DictConfig
            The merged configuration, or the original if no presets.
        """
        if not OmegaConf.is_dict(cfg) or "_presets_" not in cfg:
            return cfg

        base = {k: v for k, v in cfg.items() if k not in ("_use_", "_presets_")}

        preset_name = cfg.get("_use_")
        if preset_name is None:
            return OmegaConf.create(base)

        presets = cfg.get("_presets_", {})
        preset = presets.get(preset_name)
        if preset is None:
            raise ConfigurationError(f"unknown preset {preset_name!r}")

        # preset overrides base
        preset_dict = OmegaConf.to_container(preset, resolve=False) if OmegaConf.is_dict(preset) else {}
        return OmegaConf.create({**base, **preset_dict})

    def defaults(self, type_name: str) -> dict[str, Any]:
        """Return the default parameters configured for ``type_name``.

        Interpolations are resolved against the whole document before
        presets are applied, so ``${engine.base_color}`` or
        ``${Box.size}`` work from inside a node section.
        """
        if type_name == ENGINE_SECTION:
            return {}
        node_cfg = self._conf.get(type_name)
        if node_cfg is None:
            return {}
        if not OmegaConf.is_dict(node_cfg):
            raise ConfigurationError(f"defaults for {type_name!r} must be a mapping")
        try:
            resolved = OmegaConf.create(OmegaConf.to_container(node_cfg, resolve=True))
        except OmegaConfBaseException as e:
            raise ConfigurationError(f"cannot resolve defaults for {type_name!r}: {e}") from e
        node_cfg = self._resolve_with_presets(resolved)
        return cast(dict[str, Any], OmegaConf.to_container(node_cfg, resolve=True))

    def setting(self, key: str) -> Any:
        """Return an engine setting, falling back to :data:`ENGINE_DEFAULTS`."""
        if key not in ENGINE_DEFAULTS:
            raise ConfigurationError(f"unknown engine setting {key!r}")
        section = self._conf.get(ENGINE_SECTION)
        if section is None or key not in section:
            return ENGINE_DEFAULTS[key]
        value = OmegaConf.select(self._conf, f"{ENGINE_SECTION}.{key}")
        if OmegaConf.is_config(value):
            return OmegaConf.to_container(value, resolve=True)
        return value

    def to_dict(self) -> dict[str, Any]:
        return cast(dict[str, Any], OmegaConf.to_container(self._conf, resolve=False) or {})

    def copy_from(self, other: "Config") -> None:
        """Copy ``other`` into this config without changing object identity."""
        for key in list(self._conf.keys()):
            del self._conf[key]
        data = OmegaConf.to_container(other._conf, resolve=False) or {}
        for key, value in data.items():
            self._conf[key] = value
        self._check_engine()
