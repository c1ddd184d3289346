"""Classify a material's keywords into local enabled, local disabled and global."""

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from variantstrip.combinations import global_combinations


@dataclass(frozen=True)
class ShaderKeyword:
    """A keyword declared by a shader.

    Attributes:
        name (str): Keyword name as declared.
        overridable (bool): Whether a global keyword of the same name can override it.
    """

    name: str
    overridable: bool = False


@dataclass
class MaterialInfo:
    """Keyword metadata for one material, supplied by the host.

    Attributes:
        name (str): Material name.
        shader_name (str): Name of the shader the material uses.
        keyword_space (list[ShaderKeyword]): The shader's keywords, in declaration order.
        enabled_keywords (set[str]): Keywords enabled on the material.
    """

    name: str
    shader_name: str
    keyword_space: list[ShaderKeyword] = field(default_factory=list)
    enabled_keywords: set[str] = field(default_factory=set)

    def is_keyword_enabled(self, keyword: ShaderKeyword) -> bool:
        return keyword.name in self.enabled_keywords


class GlobalKeywords:
    """Ordered, duplicate-free accumulator of discovered global keywords.

    The list passed in is updated in place so callers holding it (the settings) see
    discoveries without copying back.
    """

    def __init__(self, keywords: list[str] | None = None):
        self._keywords = keywords if keywords is not None else []
        self._combinations: list[list[str]] | None = None

    def add(self, keyword: str) -> bool:
        """Record a keyword; return False if it was already known."""
        if keyword in self._keywords:
            return False
        self._keywords.append(keyword)
        self._combinations = None
        logging.debug(f"Discovered global keyword: {keyword}")
        return True

    @property
    def keywords(self) -> list[str]:
        return list(self._keywords)

    @property
    def combinations(self) -> list[list[str]]:
        """All global keyword subsets, empty and full lists included."""
        if self._combinations is None:
            self._combinations = global_combinations(self._keywords)
        return self._combinations

    def __contains__(self, keyword: str) -> bool:
        return keyword in self._keywords

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._keywords))

    def __len__(self) -> int:
        return len(self._keywords)


@dataclass
class ClassifiedKeywords:
    """Local keyword state of one material.

    Attributes:
        enabled (list[str]): Compiled keywords enabled on the material.
        disabled (list[str]): Compiled keywords disabled on the material.
    """

    enabled: list[str] = field(default_factory=list)
    disabled: list[str] = field(default_factory=list)


def classify_keywords(
    material: MaterialInfo,
    compiled_keywords: Iterable[str],
    active_global_keywords: Iterable[str],
    global_keywords: GlobalKeywords,
) -> ClassifiedKeywords:
    """Split a material's compiled keywords into local enabled/disabled lists.

    Keywords that no build ever compiled are ignored. An overridable keyword that is
    enabled globally is recorded in `global_keywords` instead of the local lists, and
    so is one that is already a known global keyword.

    Args:
        material (MaterialInfo): The material to classify.
        compiled_keywords (Iterable[str]): Keywords seen in collected builds.
        active_global_keywords (Iterable[str]): Keywords currently enabled by the rendering context.
        global_keywords (GlobalKeywords): Accumulator of global keywords, updated in place.

    Returns:
        ClassifiedKeywords: The material's enabled and disabled local keywords.
    """
    compiled = set(compiled_keywords)
    active = set(active_global_keywords)
    result = ClassifiedKeywords()
    for keyword in material.keyword_space:
        if keyword.name not in compiled:
            continue
        if keyword.overridable and (keyword.name in active or keyword.name in global_keywords):
            if keyword.name in active:
                global_keywords.add(keyword.name)
            continue
        if material.is_keyword_enabled(keyword):
            result.enabled.append(keyword.name)
        else:
            result.disabled.append(keyword.name)
    return result
