"""Persisted shader variant collections (compiled, whitelist, blacklist).

A collection is a set of (shader, pass type, keywords) triples. Unlike `VariantKey`,
membership is exact: shader names and pass types must match and keyword sets must be
equal, with no case folding and no unnamed-pass leniency.

The YAML layout groups variants by shader:

    shaders:
      Standard:
        - pass: ForwardBase
          keywords: [DIRECTIONAL, SHADOWS_SCREEN]
"""

import logging
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum

import yaml


class PassType(Enum):
    """Pass types a shader snippet can belong to."""

    Normal = 0
    Vertex = 1
    VertexLM = 2
    ForwardBase = 4
    ForwardAdd = 5
    ShadowCaster = 8
    Deferred = 10
    Meta = 11
    MotionVectors = 12
    ScriptableRenderPipeline = 13
    ScriptableRenderPipelineDefaultUnlit = 14
    GrabPass = 15


def parse_pass_type(value: str | int | PassType) -> PassType | None:
    """Convert a pass type name or value to `PassType`.

    Args:
        value (str | int | PassType): Pass type name (case-insensitive), numeric value, or enum member.

    Returns:
        PassType | None: The pass type, or None if unknown.
    """
    if isinstance(value, PassType):
        return value
    if isinstance(value, int):
        try:
            return PassType(value)
        except ValueError:
            return None
    for pass_type in PassType:
        if pass_type.name.lower() == str(value).lower():
            return pass_type
    return None


@dataclass(frozen=True, eq=False)
class ShaderVariant:
    """One entry of a variant collection.

    Attributes:
        shader (str): Shader name, compared exactly.
        pass_type (PassType): Pass type of the variant.
        keywords (tuple[str, ...]): Keywords in the order given; empty tokens are dropped.
    """

    shader: str
    pass_type: PassType
    keywords: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "keywords", tuple(k for k in self.keywords if k))

    @property
    def keyword_set(self) -> frozenset[str]:
        return frozenset(self.keywords)

    def __eq__(self, other):
        if not isinstance(other, ShaderVariant):
            return NotImplemented
        return (
            self.shader == other.shader and self.pass_type == other.pass_type and self.keyword_set == other.keyword_set
        )

    def __hash__(self):
        return hash((self.shader, self.pass_type, self.keyword_set))

    def __str__(self):
        return f"{self.pass_type.name} {' '.join(self.keywords)}".rstrip()


class VariantCollection:
    """Set of shader variants with add/remove/contains semantics."""

    def __init__(self, name: str = "", variants: Iterable[ShaderVariant] = ()):
        self.name = name
        self._variants: dict[ShaderVariant, None] = {}
        for variant in variants:
            self.add(variant)

    def add(self, variant: ShaderVariant) -> bool:
        """Add a variant; return False if an equal one is already present."""
        if variant in self._variants:
            return False
        self._variants[variant] = None
        return True

    def remove(self, variant: ShaderVariant) -> bool:
        """Remove a variant; return False if it was not present."""
        if variant not in self._variants:
            return False
        del self._variants[variant]
        return True

    def contains(self, variant: ShaderVariant) -> bool:
        return variant in self._variants

    def clear(self) -> None:
        self._variants.clear()

    def __contains__(self, variant: ShaderVariant) -> bool:
        return self.contains(variant)

    def __iter__(self) -> Iterator[ShaderVariant]:
        return iter(list(self._variants))

    def __len__(self) -> int:
        return len(self._variants)

    @property
    def shader_count(self) -> int:
        return len({variant.shader for variant in self._variants})

    def to_yaml_data(self) -> dict:
        """Build the YAML-compatible representation of the collection."""
        shaders: dict[str, list[dict]] = {}
        for variant in self._variants:
            shaders.setdefault(variant.shader, []).append(
                {"pass": variant.pass_type.name, "keywords": list(variant.keywords)}
            )
        return {"shaders": shaders}

    @classmethod
    def from_yaml_data(cls, data: dict | None, name: str = "") -> "VariantCollection":
        """Build a collection from its YAML representation.

        Args:
            data (dict | None): Parsed YAML data.
            name (str): Collection name, used in log messages.

        Returns:
            VariantCollection: The collection. Malformed entries are skipped with a warning.
        """
        collection = cls(name)
        label = name or "collection"
        if not data:
            return collection
        if not isinstance(data, dict) or not isinstance(data.get("shaders") or {}, dict):
            logging.warning(f"Invalid {label}: 'shaders' is not a mapping, starting empty")
            return collection
        for shader, entries in (data.get("shaders") or {}).items():
            if not isinstance(entries, list):
                logging.warning(f"Skipping {shader} in {label}: variants are not a list")
                continue
            for entry in entries:
                if not isinstance(entry, dict):
                    logging.warning(f"Skipping variant of {shader} in {label}: not a mapping")
                    continue
                pass_type = parse_pass_type(entry.get("pass", ""))
                if pass_type is None:
                    logging.warning(f"Skipping variant of {shader} in {label}: unknown pass {entry.get('pass')}")
                    continue
                keywords = entry.get("keywords", [])
                if not isinstance(keywords, list):
                    logging.warning(f"keywords is not a list for {shader} in {label}")
                    keywords = []
                collection.add(ShaderVariant(shader, pass_type, tuple(str(k) for k in keywords)))
        return collection

    @classmethod
    def load(cls, path: str, name: str = "") -> "VariantCollection":
        """Load a collection from a YAML file; a missing file yields an empty collection."""
        name = name or os.path.splitext(os.path.basename(path))[0]
        if not os.path.exists(path):
            logging.debug(f"Collection file not found, starting empty: {path}")
            return cls(name)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logging.warning(f"Failed to load collection from {path}: {e}")
            return cls(name)
        return cls.from_yaml_data(data, name)

    def save(self, path: str) -> None:
        """Write the collection to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_yaml_data(), f, sort_keys=False, allow_unicode=True)
        logging.debug(f"Saved {len(self)} variants to {path}")
