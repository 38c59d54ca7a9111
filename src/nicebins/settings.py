"""
Binning defaults and their per-user JSON file.

``BinningSettings`` carries the values a grouping or dimension falls back to
when the caller does not pass one: the bin count of new groupings, the label
precision used when no digit count separates two bounds, the strftime pattern
for date/time groups and the largest group count a dimension may produce.

``SettingsStore`` reads and writes them under the platformdirs config
directory. Reading never fails: an absent, unreadable or non-object file
yields defaults, and a file written under another ``schema_version`` is reset
(or, on request, kept with its version bumped). Unknown keys are dropped with
a warning.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from platformdirs import user_config_dir

from nicebins.utils.logging import get_logger

logger = get_logger(__name__)

# Increment on breaking changes of the on-disk JSON schema.
SCHEMA_VERSION: int = 1

DEFAULT_BIN_COUNT: int = 10
DEFAULT_FALLBACK_PRECISION: int = 3
DEFAULT_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_GROUP_COUNT: int = 1000


@dataclass
class BinningSettings:
    """
    JSON-serializable binning defaults.

    Keep fields JSON-friendly (primitives only).
    """
    schema_version: int = SCHEMA_VERSION
    default_bin_count: int = DEFAULT_BIN_COUNT
    fallback_precision: int = DEFAULT_FALLBACK_PRECISION
    date_format: str = DEFAULT_DATE_FORMAT
    max_group_count: int = DEFAULT_MAX_GROUP_COUNT

    def to_json_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "schema_version": self.schema_version,
            "default_bin_count": self.default_bin_count,
            "fallback_precision": self.fallback_precision,
            "date_format": self.date_format,
            "max_group_count": self.max_group_count,
        }

    @classmethod
    def from_json_dict(cls, d: Dict[str, Any]) -> "BinningSettings":
        """
        Tolerant loader:
        - ignores unknown keys
        - tolerates missing or malformed values (defaults are kept)
        - clamps counts to at least 1 and precision to at least 0
        """
        schema_version = int(d.get("schema_version", -1))

        default_bin_count = _int_or_default(d, "default_bin_count", DEFAULT_BIN_COUNT, minimum=1)
        fallback_precision = _int_or_default(d, "fallback_precision", DEFAULT_FALLBACK_PRECISION, minimum=0)
        max_group_count = _int_or_default(d, "max_group_count", DEFAULT_MAX_GROUP_COUNT, minimum=1)

        date_format = d.get("date_format", DEFAULT_DATE_FORMAT)
        if not isinstance(date_format, str) or not date_format:
            logger.warning(f"date_format {date_format!r} is not a non-empty string, using default")
            date_format = DEFAULT_DATE_FORMAT

        known_keys = {
            "schema_version",
            "default_bin_count",
            "fallback_precision",
            "date_format",
            "max_group_count",
        }
        for key in d.keys():
            if key not in known_keys:
                logger.warning(f"Unknown key '{key}' in nicebins settings, ignoring")

        return cls(
            schema_version=schema_version,
            default_bin_count=default_bin_count,
            fallback_precision=fallback_precision,
            date_format=date_format,
            max_group_count=max_group_count,
        )


def _int_or_default(d: Dict[str, Any], key: str, default: int, *, minimum: int) -> int:
    if key not in d:
        return default
    try:
        value = int(d[key])
    except (TypeError, ValueError):
        logger.warning(f"{key}={d[key]!r} is not an integer, using default {default}")
        return default
    return max(minimum, value)


class SettingsStore:
    """
    Manager for loading/saving BinningSettings to disk.
    """

    def __init__(self, *, path: Path, data: Optional[BinningSettings] = None):
        self.path = path
        self.data = data if data is not None else BinningSettings()

    # -----------------------------
    # Construction / persistence
    # -----------------------------
    @staticmethod
    def default_config_path(
        app_name: str = "nicebins",
        filename: str = "binning_settings.json",
        app_author: str | None = None,
    ) -> Path:
        """
        Determine OS-appropriate per-user settings path.

        macOS:   ~/Library/Application Support/nicebins/binning_settings.json
        Linux:   ~/.config/nicebins/binning_settings.json
        Windows: %APPDATA%\\nicebins\\binning_settings.json
        """
        d = Path(user_config_dir(app_name, app_author))
        d.mkdir(parents=True, exist_ok=True)
        return d / filename

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        app_name: str = "nicebins",
        filename: str = "binning_settings.json",
        app_author: str | None = None,
        schema_version: int = SCHEMA_VERSION,
        reset_on_version_mismatch: bool = True,
        create_if_missing: bool = False,
    ) -> "SettingsStore":
        """Read the settings file, falling back to library defaults.

        Args:
            config_path: Explicit file; the per-user path is used when omitted.
            schema_version: Version the caller understands.
            reset_on_version_mismatch: Replace settings written under another
                version with defaults. When False the stored values are kept
                and only their version is bumped.
            create_if_missing: Write the defaults back when the file is absent
                or was reset because of a version change.
        """
        path = config_path or cls.default_config_path(app_name=app_name, filename=filename, app_author=app_author)

        if not path.is_file():
            logger.debug(f"No settings file at {path}, using defaults")
            return cls._defaults(path, schema_version, write=create_if_missing)

        stored = _read_json_object(path)
        if stored is None:
            return cls._defaults(path, schema_version, write=False)

        loaded = BinningSettings.from_json_dict(stored)
        if int(loaded.schema_version) == int(schema_version):
            return cls(path=path, data=loaded)

        if reset_on_version_mismatch:
            logger.warning(
                f"Settings at {path} use schema {loaded.schema_version}, expected {schema_version}; "
                f"resetting to defaults"
            )
            return cls._defaults(path, schema_version, write=create_if_missing)

        logger.info(f"Upgrading settings at {path} from schema {loaded.schema_version} to {schema_version}")
        return cls(path=path, data=replace(loaded, schema_version=int(schema_version)))

    @classmethod
    def _defaults(cls, path: Path, schema_version: int, *, write: bool) -> "SettingsStore":
        store = cls(path=path, data=BinningSettings(schema_version=schema_version))
        if write:
            store.save()
        return store

    def save(self) -> None:
        """Write settings to disk."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            json_str = json.dumps(self.data.to_json_dict(), indent=2)
            self.path.write_text(json_str, encoding="utf-8")
            logger.info(f"Saved nicebins settings to {self.path}")
        except Exception as e:
            logger.error(f"Error saving nicebins settings to {self.path}: {e}")
            raise

    @property
    def settings(self) -> BinningSettings:
        return self.data


def resolve_settings(settings: Optional[BinningSettings]) -> BinningSettings:
    """Return ``settings`` or library defaults when None."""
    return settings if settings is not None else BinningSettings()


def _read_json_object(path: Path) -> Optional[Dict[str, Any]]:
    """Parsed JSON object stored at ``path``, or None if it cannot be used."""
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read settings from {path}: {e}; using defaults")
        return None
    if not isinstance(parsed, dict):
        logger.warning(f"Settings file {path} holds {type(parsed).__name__}, not an object; using defaults")
        return None
    return parsed
