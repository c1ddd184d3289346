"""Load and save shader stripping settings.

Settings live in a YAML file. Paths inside it are resolved relative to the file.

Example `stripping_settings.yaml`:

    mode: strip_with_blacklist
    generate_report: true
    player_log: Player.log
    report: report.txt
    collections:
      compiled: svc_compiled.yaml
      whitelist: svc_whitelist.yaml
      blacklist: svc_blacklist.yaml
    strict_local_keywords: true
    strict_global_keywords: true
    global_keywords: [FOG_LINEAR]
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

import yaml

from variantstrip.player_log import CompiledVariantIndex
from variantstrip.variant_collections import PassType, VariantCollection, parse_pass_type


class StripMode(Enum):
    """What the build-time stripper does with each variant."""

    COLLECT = "collect"
    STRIP_WITH_WHITELIST = "strip_with_whitelist"
    STRIP_WITH_BLACKLIST = "strip_with_blacklist"


MODE_ALIASES = {"collectvariants": StripMode.COLLECT}


def parse_strip_mode(value) -> StripMode | None:
    """Convert a mode name to `StripMode`.

    Accepts snake_case values and CamelCase names, e.g. 'strip_with_blacklist' or 'StripWithBlacklist'.

    Args:
        value: Mode from the settings file.

    Returns:
        StripMode | None: The mode, or None if it is not recognized.
    """
    if isinstance(value, StripMode):
        return value
    if not isinstance(value, str):
        return None
    key = value.replace("_", "").replace("-", "").lower()
    for mode in StripMode:
        if mode.value.replace("_", "") == key:
            return mode
    return MODE_ALIASES.get(key)


DEFAULT_COLLECTION_PATHS = {
    "compiled": "svc_compiled.yaml",
    "whitelist": "svc_whitelist.yaml",
    "blacklist": "svc_blacklist.yaml",
}


@dataclass
class StrippingSettings:
    """Shader stripping configuration plus the state collected across builds.

    Attributes:
        mode (StripMode | None): Build-time behavior; None when the configured mode is unknown.
        generate_report (bool): Whether the report is written out.
        player_log (str | None): Path to the player log with compiled shader lines.
        report (str): Path of the report file.
        collection_paths (dict[str, str]): Paths of the compiled, whitelist and blacklist collections.
        strict_local_keywords (bool): Match only the material's full set of enabled local keywords.
        strict_global_keywords (bool): Match only the full set of global keywords.
        global_keywords (list[str]): Known global keywords, extended by analysis.
        pass_types (list[PassType]): Pass types seen while collecting.
        compiled_keywords (list[str]): Keywords seen while collecting.
        base_dir (str): Directory relative paths are resolved against.
    """

    mode: StripMode | None = StripMode.COLLECT
    generate_report: bool = True
    player_log: str | None = None
    report: str = "report.txt"
    collection_paths: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLLECTION_PATHS))
    strict_local_keywords: bool = True
    strict_global_keywords: bool = True
    global_keywords: list[str] = field(default_factory=list)
    pass_types: list[PassType] = field(default_factory=list)
    compiled_keywords: list[str] = field(default_factory=list)
    base_dir: str = "."

    def resolve(self, path: str) -> str:
        return path if os.path.isabs(path) else os.path.join(self.base_dir, path)

    @property
    def player_log_path(self) -> str | None:
        return self.resolve(self.player_log) if self.player_log else None

    @property
    def report_path(self) -> str:
        return self.resolve(self.report)

    def collection_path(self, name: str) -> str:
        return self.resolve(self.collection_paths.get(name, DEFAULT_COLLECTION_PATHS[name]))


@dataclass
class VariantCollections:
    """The three persisted collections a stripping run works with."""

    compiled: VariantCollection = field(default_factory=lambda: VariantCollection("compiled"))
    whitelist: VariantCollection = field(default_factory=lambda: VariantCollection("whitelist"))
    blacklist: VariantCollection = field(default_factory=lambda: VariantCollection("blacklist"))


def _as_string_list(data: dict, key: str, settings_file: str) -> list[str]:
    value = data.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list):
        logging.warning(f"{key} is not a list in settings: {settings_file}")
        return []
    return [str(v) for v in value]


def settings_from_yaml_data(data: dict | None, base_dir: str = ".", settings_file: str = "") -> StrippingSettings:
    """Build settings from parsed YAML, falling back to defaults for missing or invalid values.

    Args:
        data (dict | None): Parsed YAML data.
        base_dir (str): Directory relative paths are resolved against.
        settings_file (str): Settings file name, used in log messages.

    Returns:
        StrippingSettings: The settings.
    """
    settings = StrippingSettings(base_dir=base_dir)
    if not data:
        return settings
    if not isinstance(data, dict):
        logging.warning(f"Invalid settings {settings_file}: expected a mapping, using defaults")
        return settings

    if "mode" in data:
        settings.mode = parse_strip_mode(data["mode"])
        if settings.mode is None:
            logging.warning(f"Unknown mode '{data['mode']}' in settings {settings_file}, stripping is disabled")

    settings.generate_report = bool(data.get("generate_report", True))
    player_log = data.get("player_log") or None
    if player_log is not None and not isinstance(player_log, str):
        logging.warning(f"player_log is not a path in settings: {settings_file}")
        player_log = None
    settings.player_log = player_log
    report = data.get("report", settings.report)
    if isinstance(report, str) and report:
        settings.report = report
    else:
        logging.warning(f"report is not a path in settings: {settings_file}")
    collections = data.get("collections") or {}
    if isinstance(collections, dict):
        settings.collection_paths.update(
            {k: v for k, v in collections.items() if k in DEFAULT_COLLECTION_PATHS and isinstance(v, str) and v}
        )
    else:
        logging.warning(f"collections is not a mapping in settings: {settings_file}")
    settings.strict_local_keywords = bool(data.get("strict_local_keywords", True))
    settings.strict_global_keywords = bool(data.get("strict_global_keywords", True))
    settings.global_keywords = _as_string_list(data, "global_keywords", settings_file)
    settings.compiled_keywords = _as_string_list(data, "compiled_keywords", settings_file)
    for name in _as_string_list(data, "pass_types", settings_file):
        pass_type = parse_pass_type(name)
        if pass_type is None:
            logging.warning(f"Skipping unknown pass type '{name}' in settings {settings_file}")
        elif pass_type not in settings.pass_types:
            settings.pass_types.append(pass_type)
    return settings


def settings_to_yaml_data(settings: StrippingSettings) -> dict:
    """Build the YAML-compatible representation of the settings."""
    return {
        "mode": settings.mode.value if settings.mode is not None else None,
        "generate_report": settings.generate_report,
        "player_log": settings.player_log,
        "report": settings.report,
        "collections": dict(settings.collection_paths),
        "strict_local_keywords": settings.strict_local_keywords,
        "strict_global_keywords": settings.strict_global_keywords,
        "global_keywords": list(settings.global_keywords),
        "pass_types": [pass_type.name for pass_type in settings.pass_types],
        "compiled_keywords": list(settings.compiled_keywords),
    }


def load_settings(settings_file: str) -> StrippingSettings:
    """Load settings from a YAML file.

    Args:
        settings_file (str): Path to the settings file.

    Returns:
        StrippingSettings: The settings.

    Raises:
        FileNotFoundError: If the settings file does not exist.
    """
    with open(settings_file, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logging.warning(f"Failed to parse settings from {settings_file}: {e}")
            data = None
    base_dir = os.path.dirname(os.path.abspath(settings_file))
    return settings_from_yaml_data(data, base_dir, settings_file)


def save_settings(settings: StrippingSettings, settings_file: str) -> None:
    """Write settings, including collected pass types and keywords, to a YAML file."""
    with open(settings_file, "w", encoding="utf-8") as f:
        yaml.safe_dump(settings_to_yaml_data(settings), f, sort_keys=False, allow_unicode=True)


def load_collections(settings: StrippingSettings) -> VariantCollections:
    """Load the compiled, whitelist and blacklist collections named by the settings."""
    return VariantCollections(
        compiled=VariantCollection.load(settings.collection_path("compiled"), "compiled"),
        whitelist=VariantCollection.load(settings.collection_path("whitelist"), "whitelist"),
        blacklist=VariantCollection.load(settings.collection_path("blacklist"), "blacklist"),
    )


def save_collections(settings: StrippingSettings, collections: VariantCollections) -> None:
    """Write the three collections back to the paths named by the settings."""
    collections.compiled.save(settings.collection_path("compiled"))
    collections.whitelist.save(settings.collection_path("whitelist"))
    collections.blacklist.save(settings.collection_path("blacklist"))


def load_compiled_index(settings: StrippingSettings) -> CompiledVariantIndex | None:
    """Parse the player log named by the settings.

    Returns:
        CompiledVariantIndex | None: The index, or None if no log is configured or the file is missing.

    Raises:
        ParseError: If the log contains a malformed compiled-shader line.
    """
    log_path = settings.player_log_path
    if not log_path:
        return None
    if not os.path.exists(log_path):
        logging.warning(f"Player log not found: {log_path}")
        return None
    return CompiledVariantIndex.from_file(log_path)
