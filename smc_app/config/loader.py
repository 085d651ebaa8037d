"""Configuration loader with 3-tier parameter precedence."""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from .defaults import DefaultConfig, get_default_config


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with 3-tier precedence."""

    config_dir: Path
    defaults: DefaultConfig

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
        )

    def _load_instruments_file(self) -> dict[str, Any]:
        instruments_file = self.config_dir / "instruments.yaml"

        if not instruments_file.exists():
            return {}

        with open(instruments_file) as f:
            instruments_config = yaml.safe_load(f) or {}

        return instruments_config.get("instruments", {}) or {}

    def load_instrument_config(self, instrument: str) -> dict[str, Any]:
        """Load instrument-specific parameter overrides."""
        entry = self._load_instruments_file().get(instrument.upper(), {}) or {}
        return entry.get("params", {}) or {}

    def load_instrument_profile(self, instrument: str) -> dict[str, Any]:
        """Load instrument profile overrides (type, session filter, rule flags)."""
        entry = self._load_instruments_file().get(instrument.upper(), {}) or {}
        return entry.get("profile", {}) or {}

    def merge_config(
        self,
        instrument: str,
        overrides: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Merge configuration with 3-tier precedence.

        Priority order:
        1. Per-call overrides (highest priority)
        2. Instrument-specific overrides
        3. Global defaults (lowest priority)
        """
        config = self._dataclass_to_dict(self.defaults)

        instrument_config = self.load_instrument_config(instrument)
        config = self._deep_merge(config, instrument_config)

        if overrides:
            config = self._deep_merge(config, overrides)

        return config

    def load(
        self,
        instrument: str,
        overrides: Optional[dict[str, Any]] = None
    ) -> DefaultConfig:
        """Merge configuration and rebuild it as typed parameter dataclasses."""
        return build_config(self.merge_config(instrument, overrides))

    def _dataclass_to_dict(self, obj: Any) -> dict[str, Any]:
        """Convert nested dataclasses to dictionary."""
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for field_name, _field in obj.__dataclass_fields__.items():
                value = getattr(obj, field_name)
                if hasattr(value, '__dataclass_fields__'):
                    result[field_name] = self._dataclass_to_dict(value)
                else:
                    result[field_name] = value
            return result
        return obj  # type: ignore[no-any-return]

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


def build_config(config: dict[str, Any]) -> DefaultConfig:
    """Rebuild a DefaultConfig from a merged dictionary, ignoring unknown keys."""
    defaults = get_default_config()
    sections = {}

    for section in fields(DefaultConfig):
        default_section = getattr(defaults, section.name)
        values = config.get(section.name, {}) or {}
        known = {f.name for f in fields(default_section)}
        params = {k: v for k, v in values.items() if k in known}
        sections[section.name] = type(default_section)(**params)

    return DefaultConfig(**sections)
