"""Build-time shader variant stripping.

The build pipeline calls `ShaderStripper.process_shader` once per shader snippet with
the list of variants it is about to compile. Depending on the configured mode the
stripper either records every variant into the compiled/whitelist/blacklist
collections or removes variants from the list in place.
"""

import logging
import os
from dataclasses import dataclass, field

from variantstrip.player_log import CompiledVariantIndex, PlayerLogDetector, VariantDetector, any_passed
from variantstrip.settings import StripMode, StrippingSettings, VariantCollections
from variantstrip.variant_collections import PassType, ShaderVariant

INTERNAL_SHADER_MARKER = "Hidden"


@dataclass(frozen=True)
class ShaderSnippet:
    """The pass and stage a batch of variants is compiled for.

    Attributes:
        pass_name (str): Name of the pass, possibly empty for unnamed passes.
        pass_type (PassType): Pass type.
        stage (str): Shader stage, e.g. 'vertex' or 'fragment'.
    """

    pass_name: str
    pass_type: PassType
    stage: str = "vertex"


@dataclass
class StripStats:
    """Counters for one stripping run."""

    internal: int = 0
    collected: int = 0
    stripped: int = 0
    kept: int = 0
    skipped: int = 0
    shaders: set[str] = field(default_factory=set)


def format_report_line(action: str, shader_name: str, snippet: ShaderSnippet, keywords: list[str]) -> str:
    """Format one report line, e.g. 'stripped with blacklist: Standard, pass: ForwardBase, ...'."""
    return (
        f"{action}: {shader_name}, pass: {snippet.pass_type.name}, stage: {snippet.stage}, "
        f"keywords: {' '.join(keywords)}"
    )


class ShaderStripper:
    """Decide per variant whether to collect, keep or strip it.

    Args:
        settings (StrippingSettings | None): Stripping settings. None disables the stripper.
        collections (VariantCollections | None): Compiled, whitelist and blacklist collections.
        index (CompiledVariantIndex | None): Variants found in the player log.
        detectors (list[VariantDetector] | None): Extra detectors combined with the player log detector.
    """

    def __init__(
        self,
        settings: StrippingSettings | None,
        collections: VariantCollections | None = None,
        index: CompiledVariantIndex | None = None,
        detectors: list[VariantDetector] | None = None,
    ):
        self.settings = settings
        self.collections = collections or VariantCollections()
        self.detectors: list[VariantDetector] = []
        if index is not None:
            self.detectors.append(PlayerLogDetector(index))
        self.detectors.extend(detectors or [])
        self.report_lines: list[str] = []
        self.stats = StripStats()
        self._warned_disabled = False

    @property
    def enabled(self) -> bool:
        return self.settings is not None and self.settings.mode is not None and bool(self.detectors)

    def is_passed(self, shader_name: str, pass_name: str, keywords: list[str]) -> bool:
        """Return True if any detector vouches for the variant."""
        return any_passed(self.detectors, shader_name, pass_name, keywords)

    def process_shader(self, shader_name: str, snippet: ShaderSnippet, variants: list[list[str]]) -> None:
        """Collect or strip the variants of one shader snippet.

        Args:
            shader_name (str): Name of the shader being compiled.
            snippet (ShaderSnippet): Pass and stage the variants belong to.
            variants (list[list[str]]): Keyword lists of the candidate variants; stripped
                entries are removed in place.
        """
        if not self.enabled:
            if not self._warned_disabled:
                logging.warning("Shader stripping settings, mode or player log missing, keeping all variants")
                self._warned_disabled = True
            self.stats.skipped += len(variants)
            return

        if INTERNAL_SHADER_MARKER in shader_name:
            self.report_lines.append(f"internal shader: {shader_name}")
            self.stats.internal += 1
            return

        self.stats.shaders.add(shader_name)
        for i in range(len(variants) - 1, -1, -1):
            keywords = list(variants[i])
            variant = ShaderVariant(shader_name, snippet.pass_type, tuple(keywords))
            mode = self.settings.mode

            if mode == StripMode.COLLECT:
                self._collect(shader_name, snippet, variant, keywords)
            elif mode == StripMode.STRIP_WITH_WHITELIST and not self.collections.whitelist.contains(variant):
                del variants[i]
                self._record("stripped with whitelist", shader_name, snippet, keywords)
            elif mode == StripMode.STRIP_WITH_BLACKLIST and self.collections.blacklist.contains(variant):
                del variants[i]
                self._record("stripped with blacklist", shader_name, snippet, keywords)
            else:
                self.stats.kept += 1

    def _collect(self, shader_name: str, snippet: ShaderSnippet, variant: ShaderVariant, keywords: list[str]) -> None:
        passed = self.is_passed(shader_name, snippet.pass_name, keywords)
        if snippet.pass_type not in self.settings.pass_types:
            self.settings.pass_types.append(snippet.pass_type)
        for keyword in keywords:
            if keyword and keyword not in self.settings.compiled_keywords:
                self.settings.compiled_keywords.append(keyword)
        self.collections.compiled.add(variant)
        if passed:
            self.collections.whitelist.add(variant)
        else:
            self.collections.blacklist.add(variant)
        self.stats.collected += 1
        self.report_lines.append(format_report_line("collected shader", shader_name, snippet, keywords))

    def _record(self, action: str, shader_name: str, snippet: ShaderSnippet, keywords: list[str]) -> None:
        self.stats.stripped += 1
        self.report_lines.append(format_report_line(action, shader_name, snippet, keywords))
        logging.debug(f"{action}: {shader_name} {snippet.pass_type.name} {' '.join(keywords)}")

    @property
    def report(self) -> str:
        return "\n".join(self.report_lines)

    def flush_report(self, path: str | None = None) -> bool:
        """Write the report if report generation is enabled.

        Args:
            path (str | None): Output path; defaults to the report path from the settings.

        Returns:
            bool: True if the report was written.
        """
        if self.settings is None or not self.settings.generate_report:
            return False
        path = path or self.settings.report_path
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.report + ("\n" if self.report_lines else ""))
        logging.debug(f"Wrote stripping report to {path}")
        return True

    def log_summary(self) -> None:
        """Log the counters of this run."""
        logging.info(
            f"Processed {len(self.stats.shaders)} shaders: {self.stats.collected} collected, "
            f"{self.stats.stripped} stripped, {self.stats.kept} kept, {self.stats.internal} internal"
        )
