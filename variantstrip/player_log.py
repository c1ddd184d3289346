"""Parse a player log into the set of shader variants that were actually compiled.

A development player build with shader compilation logging enabled writes one
line per variant it compiles at runtime:

    Compiled shader: Standard, pass: FORWARD, stage: vertex, keywords DIRECTIONAL SHADOWS_SCREEN

This module turns those lines into comparable `VariantKey` values, indexes them by
shader name, and exposes the index as a detector that the build-time stripper asks
"was this variant ever used?".

Example:
    ```bash
    python player_log.py --log Player.log --filter --output compiled_index.yaml
    ```

Dependencies:
    - `yaml`: For dumping the compiled variant index.
"""

import argparse
import logging
import os
import re
import sys
from collections.abc import Iterable
from dataclasses import dataclass, field

import yaml

LINE_PREFIX = "Compiled shader: "
NO_KEYWORDS = "no keywords"
LINE_REGEX = re.compile(r"^(.*?), pass: (.*?), stage: (.*?), keywords (.*)$")
UNNAMED = "unnamed"
PASS_INDEX_REGEX = re.compile(r"pass\s+\d+")
LINE_BREAK_REGEX = re.compile(r"\r\n|\r|\n")


class ParseError(ValueError):
    """Raised when a compiled-shader line cannot be split into its four fields.

    Attributes:
        line_number (int): 1-based line number of the offending line.
        line (str): The offending line.
    """

    def __init__(self, line_number: int, line: str):
        super().__init__(f"Can't parse line {line_number}: {line}")
        self.line_number = line_number
        self.line = line


def is_unnamed_pass(pass_name: str) -> bool:
    """Check whether a pass name is empty or auto-generated.

    Args:
        pass_name (str): Pass name, any case.

    Returns:
        bool: True for '', names containing 'unnamed', or auto-numbered names like 'Pass 2'.

    Example:
        >>> is_unnamed_pass("<Unnamed Pass 1>")
        True
    """
    pass_name = pass_name.lower()
    return not pass_name or UNNAMED in pass_name or PASS_INDEX_REGEX.search(pass_name) is not None


@dataclass(frozen=True, eq=False)
class VariantKey:
    """One observed shader variant, normalized for comparison.

    Shader name, pass name and keywords are lowercased; empty keywords are dropped.
    Two keys are equal when shader names and keyword sets match and the passes are
    either both unnamed or have the same name.

    Attributes:
        shader_name (str): Lowercased shader name.
        pass_name (str): Lowercased pass name.
        keywords (frozenset[str]): Lowercased, non-empty keywords.
    """

    shader_name: str
    pass_name: str
    keywords: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "shader_name", self.shader_name.lower())
        object.__setattr__(self, "pass_name", self.pass_name.lower())
        object.__setattr__(self, "keywords", frozenset(k.lower() for k in self.keywords if k))

    @property
    def is_unnamed_pass(self) -> bool:
        return is_unnamed_pass(self.pass_name)

    def __eq__(self, other):
        if not isinstance(other, VariantKey):
            return NotImplemented
        if self.shader_name != other.shader_name or self.keywords != other.keywords:
            return False
        if self.is_unnamed_pass and other.is_unnamed_pass:
            return True
        return self.pass_name == other.pass_name

    def __hash__(self):
        # every unnamed pass hashes alike so set lookups agree with __eq__
        pass_token = "" if self.is_unnamed_pass else self.pass_name
        return hash((self.shader_name, pass_token, self.keywords))

    def __str__(self):
        keywords = " ".join(sorted(self.keywords)) if self.keywords else NO_KEYWORDS
        return f"{self.shader_name} pass: {self.pass_name} keywords: {keywords}"


def split_keywords(keywords_text: str) -> list[str]:
    """Split the keyword field of a log line.

    Args:
        keywords_text (str): Text following 'keywords ' on a log line.

    Returns:
        list[str]: Keyword tokens, or an empty list for 'no keywords'.
    """
    if NO_KEYWORDS in keywords_text:
        return []
    return keywords_text.split(" ")


def split_log_lines(text: str) -> list[str]:
    """Split log text on \\r\\n, \\r and \\n only, so form feeds and other separators stay inside a line."""
    return LINE_BREAK_REGEX.split(text)


def parse_line(line: str, line_number: int) -> tuple[str, str, str, list[str]] | None:
    """Parse a single log line.

    Args:
        line (str): The log line.
        line_number (int): 1-based line number, used for error reporting.

    Returns:
        tuple[str, str, str, list[str]] | None: (shader, pass, stage, keywords), or None
        if the line is not a compiled-shader line.

    Raises:
        ParseError: If the line has the compiled-shader prefix but is malformed.
    """
    if not line.startswith(LINE_PREFIX):
        return None
    match = LINE_REGEX.match(line[len(LINE_PREFIX) :])
    if not match:
        logging.error(f"Can't parse line: {line_number}")
        raise ParseError(line_number, line)
    shader_name, pass_name, stage_name, keywords_text = match.groups()
    return shader_name, pass_name, stage_name, split_keywords(keywords_text)


def parse_log_text(text: str | None) -> dict[str, set[VariantKey]]:
    """Parse player log text into compiled variants grouped by shader.

    Args:
        text (str | None): Full log text. Empty or None yields an empty mapping.

    Returns:
        dict[str, set[VariantKey]]: Lowercased shader name to the variants compiled for it.

    Raises:
        ParseError: On the first malformed compiled-shader line. No partial result is returned.

    Example:
        >>> parse_log_text("Compiled shader: S, pass: P, stage: vertex, keywords FOO BAR")["s"]
        {VariantKey(shader_name='s', pass_name='p', keywords=frozenset({...}))}
    """
    result: dict[str, set[VariantKey]] = {}
    if not text:
        return result
    for line_number, line in enumerate(split_log_lines(text), 1):
        parsed = parse_line(line, line_number)
        if parsed is None:
            continue
        shader_name, pass_name, _stage_name, keywords = parsed
        key = VariantKey(shader_name, pass_name, keywords)
        result.setdefault(key.shader_name, set()).add(key)
    return result


def parse_log(log_file: str) -> dict[str, set[VariantKey]]:
    """Parse a player log file.

    Args:
        log_file (str): Path to the log file.

    Returns:
        dict[str, set[VariantKey]]: Compiled variants grouped by shader.
    """
    with open(log_file, encoding="utf-8") as f:
        return parse_log_text(f.read())


def filter_log_lines(text: str) -> list[str]:
    """Keep only the lines that mention a compiled shader."""
    return [line for line in split_log_lines(text) if LINE_PREFIX in line]


def validate_log(log_file: str, rewrite: bool = False) -> dict[str, set[VariantKey]]:
    """Validate a player log, optionally stripping it down to compiled-shader lines first.

    Args:
        log_file (str): Path to the log file.
        rewrite (bool): Rewrite the file in place with only compiled-shader lines.

    Returns:
        dict[str, set[VariantKey]]: The parsed compiled variants.

    Raises:
        ParseError: If the log contains a malformed compiled-shader line.
    """
    with open(log_file, encoding="utf-8") as f:
        text = f.read()
    if rewrite:
        lines = filter_log_lines(text)
        with open(log_file, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + ("\n" if lines else ""))
        logging.debug(f"Filtered {log_file} down to {len(lines)} compiled shader lines")
        text = "\n".join(lines)
    compiled = parse_log_text(text)
    logging.info("Player log is valid")
    return compiled


class CompiledVariantIndex:
    """Read-only index of compiled variants keyed by lowercased shader name."""

    def __init__(self, compiled: dict[str, set[VariantKey]] | None = None):
        self._compiled = {name.lower(): frozenset(keys) for name, keys in (compiled or {}).items()}

    @classmethod
    def from_text(cls, text: str | None) -> "CompiledVariantIndex":
        return cls(parse_log_text(text))

    @classmethod
    def from_file(cls, log_file: str) -> "CompiledVariantIndex":
        return cls(parse_log(log_file))

    def variants_for(self, shader_name: str) -> frozenset[VariantKey]:
        return self._compiled.get(shader_name.lower(), frozenset())

    def contains(self, key: VariantKey) -> bool:
        return key in self.variants_for(key.shader_name)

    def __contains__(self, key: VariantKey) -> bool:
        return self.contains(key)

    def __len__(self) -> int:
        return sum(len(keys) for keys in self._compiled.values())

    @property
    def shader_names(self) -> list[str]:
        return sorted(self._compiled)

    def to_yaml_data(self) -> dict:
        """Build a YAML-compatible summary of the index."""
        return {
            "shaders": {
                name: [
                    {"pass": key.pass_name, "keywords": sorted(key.keywords)}
                    for key in sorted(keys, key=lambda k: (k.pass_name, sorted(k.keywords)))
                ]
                for name, keys in sorted(self._compiled.items())
            }
        }


class VariantDetector:
    """Base class for anything that can vouch for a variant being in use."""

    def is_passed(self, shader_name: str, pass_name: str, keywords: Iterable[str]) -> bool:
        raise NotImplementedError


class PlayerLogDetector(VariantDetector):
    """Passes variants that appear in a parsed player log."""

    def __init__(self, index: CompiledVariantIndex):
        self.index = index

    def is_passed(self, shader_name: str, pass_name: str, keywords: Iterable[str]) -> bool:
        return self.index.contains(VariantKey(shader_name, pass_name, frozenset(keywords)))


def any_passed(detectors: Iterable[VariantDetector], shader_name: str, pass_name: str, keywords: list[str]) -> bool:
    """Return True if any detector passes the variant."""
    return any(detector.is_passed(shader_name, pass_name, keywords) for detector in detectors)


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments for the log validator.

    Returns:
        argparse.Namespace: Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(description="Validate a player log of compiled shader variants.")
    parser.add_argument("--log", default="Player.log", help="Path to the player log file")
    parser.add_argument(
        "--filter",
        action="store_true",
        help="Rewrite the log in place keeping only 'Compiled shader:' lines",
    )
    parser.add_argument("--output", default=None, help="Optional YAML file to dump the compiled variant index to")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def main() -> int:
    """Main entry point for validating a player log.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    args = parse_arguments()
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    if not os.path.exists(args.log):
        logging.error(f"Log file not found: {args.log}")
        return 1

    try:
        compiled = validate_log(args.log, rewrite=args.filter)
    except ParseError as e:
        logging.error(str(e))
        return 1

    index = CompiledVariantIndex(compiled)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            yaml.safe_dump(index.to_yaml_data(), f, sort_keys=False, allow_unicode=True)
    logging.info(f"Found {len(index)} compiled variants across {len(index.shader_names)} shaders")
    return 0


if __name__ == "__main__":
    sys.exit(main())
