"""Prefix detection data models."""

import re
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator

from ftmi.config import (
    DEFAULT_DELIMITERS,
    DEFAULT_FILTER_PATTERN,
    DEFAULT_LONGEST_MATCH_PATTERN,
    DEFAULT_MIN_OCCURRENCES,
)
from ftmi.errors import FilterError


# Characters removed from the start of a name once its prefix is stripped.
# Dashes and dots are kept so "[Artist] - Song.mp3" becomes "- Song.mp3".
STRIP_CHARS = " _"


class DelimiterOnly(BaseModel):
    """Detect only tokens enclosed in a delimiter pair at the start of a filename."""

    kind: Literal["delimiter_only"] = "delimiter_only"
    delimiters: list[tuple[str, str]] = Field(
        default_factory=lambda: list(DEFAULT_DELIMITERS),
        min_length=1,
        description="(open, close) pairs, e.g. ('[', ']')",
    )

    @field_validator("delimiters")
    @classmethod
    def _non_empty_delimiters(cls, value: list[tuple[str, str]]) -> list[tuple[str, str]]:
        for open_, close in value:
            if not open_ or not close:
                raise ValueError("delimiters must be non-empty strings")
        return value


class SpecificPrefixes(BaseModel):
    """Detect only the given literal prefixes."""

    kind: Literal["specific_prefixes"] = "specific_prefixes"
    prefixes: list[str] = Field(min_length=1, description="Literal prefixes such as 'IMG_'")

    @field_validator("prefixes")
    @classmethod
    def _non_empty_prefixes(cls, value: list[str]) -> list[str]:
        if any(not prefix for prefix in value):
            raise ValueError("prefixes must be non-empty strings")
        return value


class DetectAll(BaseModel):
    """Detect every common leading substring shared by filenames."""

    kind: Literal["detect_all"] = "detect_all"


class LongestMatch(BaseModel):
    """Like DetectAll, keeping only candidates that fully match `pattern`."""

    kind: Literal["longest_match"] = "longest_match"
    pattern: str = DEFAULT_LONGEST_MATCH_PATTERN


DetectionMode = Annotated[
    DelimiterOnly | SpecificPrefixes | DetectAll | LongestMatch,
    Field(discriminator="kind"),
]


class PrefixOptions(BaseModel):
    """Options controlling prefix detection and group selection."""

    mode: DetectionMode = Field(default_factory=DetectAll)
    min_occurrences: int = Field(default=DEFAULT_MIN_OCCURRENCES, ge=1)
    filter_pattern: str | None = Field(
        default=DEFAULT_FILTER_PATTERN,
        description="Regex a prefix must match to be selected; None accepts every prefix",
    )


class PrefixedPath(BaseModel):
    """A group of files in one directory that share a prefix."""

    prefix: str
    paths: list[Path] = Field(default_factory=list)

    @property
    def occurrences(self) -> int:
        return len(self.paths)

    @property
    def directory(self) -> Path | None:
        return self.paths[0].parent if self.paths else None

    def rename_targets(self) -> list[tuple[Path, Path]]:
        """Pair each path with its name after the prefix is removed.

        Paths whose stripped name would be empty, hidden or unchanged are left out.
        """
        targets: list[tuple[Path, Path]] = []
        for path in self.paths:
            new_name = strip_prefix(path.name, self.prefix)
            if not new_name or new_name.startswith(".") or new_name == path.name:
                continue
            targets.append((path, path.with_name(new_name)))
        return targets

    def __str__(self) -> str:
        return f"PrefixedPath(prefix='{self.prefix}', occurrences={self.occurrences})"


def strip_prefix(filename: str, prefix: str) -> str:
    """Remove `prefix` and the separators right after it from `filename`.

    Returns the filename unchanged if it does not start with `prefix`.
    """
    if not prefix or not filename.startswith(prefix):
        return filename
    return filename[len(prefix) :].lstrip(STRIP_CHARS)


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a user-supplied regex, raising FilterError if it is invalid."""
    try:
        return re.compile(pattern)
    except re.error as e:
        raise FilterError(pattern, str(e)) from e
