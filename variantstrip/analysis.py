"""Find blacklisted shader variants that materials still use.

After a blacklist has been collected, some variants in it may still be reachable at
runtime: a material enables a keyword combination the player log never exercised.
This module expands each material's keywords into the combinations it can hit and
checks them against the blacklist, so the offending entries can be removed before a
stripped build ships.

Example:
    ```bash
    python analysis.py --settings stripping_settings.yaml --materials materials.yaml --fix-all
    ```

The materials manifest is YAML:

    active_global_keywords: [FOG_LINEAR]
    materials:
      - name: Rock
        shader: Standard
        keywords:
          - {name: _NORMALMAP}
          - {name: FOG_LINEAR, overridable: true}
        enabled: [_NORMALMAP]

Dependencies:
    - `yaml`: For reading settings, collections and the materials manifest.
    - `tqdm`: For progress bars.
"""

import argparse
import logging
import os
import sys
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field

import yaml
from tqdm import tqdm

from variantstrip.combinations import local_combinations
from variantstrip.keywords import GlobalKeywords, MaterialInfo, ShaderKeyword, classify_keywords
from variantstrip.settings import (
    StripMode,
    StrippingSettings,
    VariantCollections,
    load_collections,
    load_settings,
    save_settings,
)
from variantstrip.stripping import INTERNAL_SHADER_MARKER
from variantstrip.variant_collections import ShaderVariant


def _add_candidate(candidates: list[str], keywords: list[str]) -> None:
    candidate = " ".join(keywords)
    if candidate not in candidates:
        candidates.append(candidate)


def find_combinations(
    global_keywords: GlobalKeywords,
    enabled_keywords: list[str],
    strict_local: bool = True,
    strict_global: bool = True,
) -> list[str]:
    """Build the keyword strings a material can be rendered with.

    Strict matching uses a keyword list as is; non-strict matching expands it into all
    of its subsets. Global keywords always come before local ones.

    Args:
        global_keywords (GlobalKeywords): Known global keywords.
        enabled_keywords (list[str]): The material's enabled local keywords.
        strict_local (bool): Use only the full list of enabled local keywords.
        strict_global (bool): Use only the full list of global keywords.

    Returns:
        list[str]: Unique space-joined keyword strings, in generation order.

    Example:
        >>> find_combinations(GlobalKeywords(["G1"]), ["L1", "L2"])
        ['G1 L1 L2']
    """
    candidates: list[str] = []
    if strict_global:
        if strict_local:
            _add_candidate(candidates, global_keywords.keywords + list(enabled_keywords))
        else:
            for local in local_combinations(enabled_keywords):
                _add_candidate(candidates, global_keywords.keywords + local)
    else:
        for global_combination in global_keywords.combinations:
            if strict_local:
                _add_candidate(candidates, global_combination + list(enabled_keywords))
            else:
                for local in local_combinations(enabled_keywords):
                    _add_candidate(candidates, global_combination + local)
    return candidates


@dataclass
class MaterialReport:
    """Analysis result for one material.

    Attributes:
        material (str): Material name.
        shader_name (str): Shader used by the material.
        enabled (list[str]): Enabled local keywords.
        disabled (list[str]): Disabled local keywords.
        to_remove (list[ShaderVariant]): Blacklisted variants the material can reach.
        compiled (list[ShaderVariant]): Reachable variants that were compiled and are not blacklisted.
    """

    material: str
    shader_name: str
    enabled: list[str] = field(default_factory=list)
    disabled: list[str] = field(default_factory=list)
    to_remove: list[ShaderVariant] = field(default_factory=list)
    compiled: list[ShaderVariant] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.to_remove)


def can_analyze(settings: StrippingSettings | None, collections: VariantCollections | None) -> bool:
    """Analysis only makes sense when stripping with a non-empty blacklist."""
    return (
        settings is not None
        and settings.mode == StripMode.STRIP_WITH_BLACKLIST
        and collections is not None
        and collections.blacklist.shader_count > 0
    )


def select_materials(
    materials: Iterable[MaterialInfo], shader_name: str | None = None, material_name: str | None = None
) -> list[MaterialInfo]:
    """Pick the materials to analyze.

    Args:
        materials (Iterable[MaterialInfo]): All known materials.
        shader_name (str | None): Keep only materials using this shader.
        material_name (str | None): Keep only the material with this name.

    Returns:
        list[MaterialInfo]: Materials to analyze. Without filters, materials using internal shaders are skipped.
    """
    if material_name:
        return [m for m in materials if m.name == material_name]
    if shader_name:
        return [m for m in materials if m.shader_name == shader_name]
    return [m for m in materials if INTERNAL_SHADER_MARKER not in m.shader_name]


class MaterialAnalyzer:
    """Check materials against the blacklist and fix the conflicts found.

    Args:
        settings (StrippingSettings): Settings with the collected pass types, keywords and strictness flags.
        collections (VariantCollections): The compiled and blacklist collections.
        active_global_keywords (Iterable[str]): Keywords currently enabled by the rendering context.
        strict_local (bool | None): Strict local matching for this analyzer; None uses the settings.
        strict_global (bool | None): Strict global matching for this analyzer; None uses the settings.
    """

    def __init__(
        self,
        settings: StrippingSettings,
        collections: VariantCollections,
        active_global_keywords: Iterable[str] = (),
        strict_local: bool | None = None,
        strict_global: bool | None = None,
    ):
        self.settings = settings
        self.collections = collections
        self.active_global_keywords = set(active_global_keywords)
        self.strict_local = settings.strict_local_keywords if strict_local is None else strict_local
        self.strict_global = settings.strict_global_keywords if strict_global is None else strict_global
        self.global_keywords = GlobalKeywords(settings.global_keywords)

    def analyze_material(self, material: MaterialInfo) -> MaterialReport:
        """Classify a material's keywords and check its reachable variants."""
        classified = classify_keywords(
            material, self.settings.compiled_keywords, self.active_global_keywords, self.global_keywords
        )
        report = MaterialReport(material.name, material.shader_name, classified.enabled, classified.disabled)
        candidates = find_combinations(
            self.global_keywords,
            classified.enabled,
            self.strict_local,
            self.strict_global,
        )
        self.check_collections(report, candidates)
        return report

    def check_collections(self, report: MaterialReport, candidates: list[str]) -> None:
        """Sort each candidate variant of the material into blacklisted or compiled."""
        for candidate in candidates:
            keywords = tuple(candidate.split(" "))
            for pass_type in self.settings.pass_types:
                variant = ShaderVariant(report.shader_name, pass_type, keywords)
                if self.collections.blacklist.contains(variant):
                    report.to_remove.append(variant)
                elif self.collections.compiled.contains(variant):
                    report.compiled.append(variant)

    def remove_from_blacklist(self, report: MaterialReport, variant: ShaderVariant) -> bool:
        """Remove one flagged variant from the blacklist and from the report.

        Returns:
            bool: True if the variant was in the blacklist.
        """
        removed = self.collections.blacklist.remove(variant)
        report.to_remove = [v for v in report.to_remove if v != variant]
        if removed:
            logging.debug(f"Removed from blacklist: {variant.shader} {variant}")
        return removed

    def fix_warnings(self, report: MaterialReport) -> int:
        """Remove every flagged variant of one material from the blacklist."""
        count = 0
        for variant in list(report.to_remove):
            if self.remove_from_blacklist(report, variant):
                count += 1
        return count

    def fix_all_warnings(self, reports: Iterable[MaterialReport]) -> int:
        """Remove every flagged variant of all materials from the blacklist."""
        return sum(self.fix_warnings(report) for report in reports)

    def analyze_materials(
        self, materials: list[MaterialInfo], stop_event: threading.Event | None = None
    ) -> list[MaterialReport]:
        """Analyze materials one at a time.

        Args:
            materials (list[MaterialInfo]): Materials to analyze.
            stop_event (threading.Event | None): When set, analysis stops before the next material.

        Returns:
            list[MaterialReport]: Reports for the materials analyzed before stopping.
        """
        reports = []
        with tqdm(total=len(materials), desc="Analyzing materials", unit="material") as pbar:
            for material in materials:
                if stop_event is not None and stop_event.is_set():
                    logging.warning(f"Analysis stopped after {len(reports)} of {len(materials)} materials")
                    break
                reports.append(self.analyze_material(material))
                pbar.update(1)
        return reports


def format_material_report(report: MaterialReport) -> list[str]:
    """Render a material report as text lines."""
    lines = [f"{report.material} ({report.shader_name})"]
    if report.has_warnings:
        lines.append("  Warning: variants exist in blacklist")
        lines.extend(f"    {variant}" for variant in report.to_remove)
    lines.append("  variants:")
    lines.extend(f"    {variant}" for variant in report.compiled)
    lines.append("  Enabled local keywords: " + (" ".join(report.enabled) or "<no keywords>"))
    lines.append("  Disabled local keywords: " + (" ".join(report.disabled) or "<no keywords>"))
    return lines


def load_materials(manifest_file: str) -> tuple[list[MaterialInfo], list[str]]:
    """Load material keyword metadata from a YAML manifest.

    Args:
        manifest_file (str): Path to the manifest.

    Returns:
        tuple[list[MaterialInfo], list[str]]: Materials and the active global keywords.
    """
    with open(manifest_file, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict) or "materials" not in data:
        logging.error("Invalid materials manifest: missing 'materials' section")
        return [], []
    if not isinstance(data["materials"], list):
        logging.error(f"materials is not a list in manifest: {manifest_file}")
        return [], []

    active = data.get("active_global_keywords") or []
    if not isinstance(active, list):
        logging.warning(f"active_global_keywords is not a list in manifest: {manifest_file}")
        active = []

    materials = []
    for entry in data["materials"]:
        if not isinstance(entry, dict) or "name" not in entry or "shader" not in entry:
            logging.warning(f"Skipping material without name or shader: {entry}")
            continue
        keywords = entry.get("keywords", []) or []
        if not isinstance(keywords, list):
            logging.warning(f"keywords is not a list for material {entry['name']}")
            keywords = []
        keyword_space = []
        for keyword in keywords:
            if isinstance(keyword, str):
                keyword_space.append(ShaderKeyword(keyword))
            elif isinstance(keyword, dict) and "name" in keyword:
                keyword_space.append(ShaderKeyword(str(keyword["name"]), bool(keyword.get("overridable", False))))
            else:
                logging.warning(f"Skipping keyword without name for material {entry['name']}: {keyword}")
        enabled = entry.get("enabled", []) or []
        if not isinstance(enabled, list):
            logging.warning(f"enabled is not a list for material {entry['name']}")
            enabled = []
        materials.append(MaterialInfo(entry["name"], entry["shader"], keyword_space, {str(k) for k in enabled}))
    return materials, [str(k) for k in active]


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments for the blacklist analyzer.

    Returns:
        argparse.Namespace: Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(description="Find blacklisted shader variants still used by materials.")
    parser.add_argument("--settings", default="stripping_settings.yaml", help="Shader stripping settings YAML file")
    parser.add_argument("--materials", default="materials.yaml", help="Materials manifest YAML file")
    parser.add_argument("--shader", default=None, help="Only analyze materials using this shader")
    parser.add_argument("--material", default=None, help="Only analyze the material with this name")
    parser.add_argument("--warnings-only", action="store_true", help="Only show materials with warnings")
    parser.add_argument("--fix-all", action="store_true", help="Remove all flagged variants from the blacklist")
    parser.add_argument(
        "--strict-local",
        choices=["true", "false"],
        default=None,
        help="Override strict local keyword matching from the settings",
    )
    parser.add_argument(
        "--strict-global",
        choices=["true", "false"],
        default=None,
        help="Override strict global keyword matching from the settings",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def main() -> int:
    """Main entry point for analyzing materials against the blacklist.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    args = parse_arguments()
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    if not os.path.exists(args.settings):
        logging.error(f"Settings file not found: {args.settings}")
        return 1
    if not os.path.exists(args.materials):
        logging.error(f"Materials manifest not found: {args.materials}")
        return 1

    settings = load_settings(args.settings)
    strict_local = None if args.strict_local is None else args.strict_local == "true"
    strict_global = None if args.strict_global is None else args.strict_global == "true"
    collections = load_collections(settings)
    if not can_analyze(settings, collections):
        logging.error("Analysis requires strip_with_blacklist mode and a non-empty blacklist")
        return 1

    all_materials, active_global_keywords = load_materials(args.materials)
    materials = select_materials(all_materials, args.shader, args.material)
    analyzer = MaterialAnalyzer(settings, collections, active_global_keywords, strict_local, strict_global)
    reports = analyzer.analyze_materials(materials)

    for report in reports:
        if args.warnings_only and not report.has_warnings:
            continue
        for line in format_material_report(report):
            print(line)

    warning_count = sum(len(report.to_remove) for report in reports)
    if args.fix_all and warning_count:
        removed = analyzer.fix_all_warnings(reports)
        collections.blacklist.save(settings.collection_path("blacklist"))
        logging.info(f"Removed {removed} variants from the blacklist")
    save_settings(settings, args.settings)
    logging.info(
        f"Analyzed {len(reports)} materials: {sum(1 for r in reports if r.has_warnings)} with warnings, "
        f"{warning_count} blacklisted variants in use"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
