"""Detection of shared filename prefixes in a directory."""

import logging
import os
from collections import defaultdict
from collections.abc import Iterable
from itertools import combinations
from pathlib import Path

from ftmi.errors import ScanError
from ftmi.models.prefix import (
    DelimiterOnly,
    DetectAll,
    LongestMatch,
    PrefixedPath,
    PrefixOptions,
    SpecificPrefixes,
    compile_pattern,
    strip_prefix,
)


logger = logging.getLogger(__name__)

# Characters that end a word inside a filename
SEPARATORS = " _-."

BRACKETS = {"(": ")", "[": "]", "{": "}"}
CLOSERS = set(BRACKETS.values())
QUOTES = "\"'"


def delimited_token(filename: str, open_: str, close: str) -> str | None:
    """Return the leading `open_ ... close` token of `filename`, delimiters included.

    The filename must start with `open_`; the token ends at the first `close`
    after it. Returns None when there is no such token or it is empty.
    """
    if not filename.startswith(open_):
        return None
    end = filename.find(close, len(open_))
    if end <= len(open_):
        return None
    return filename[: end + len(close)]


def is_on_boundary(text: str, length: int) -> bool:
    """Whether cutting `text` at `length` falls between two words."""
    if length <= 0:
        return False
    if length >= len(text):
        return True
    return text[length] in SEPARATORS or text[length - 1] in SEPARATORS or text[length - 1] in CLOSERS


def is_balanced(candidate: str) -> bool:
    """Reject candidates that open a bracket or a leading quote without closing it."""
    depth = dict.fromkeys(BRACKETS, 0)
    closer_to_opener = {close: open_ for open_, close in BRACKETS.items()}
    for char in candidate:
        if char in depth:
            depth[char] += 1
        elif char in closer_to_opener and depth[closer_to_opener[char]] > 0:
            depth[closer_to_opener[char]] -= 1
    if any(depth.values()):
        return False
    if candidate[0] in QUOTES and candidate.count(candidate[0]) < 2:
        return False
    return True


def common_boundary_prefix(first: str, second: str) -> str:
    """Longest common leading substring of two names, cut back to a word boundary.

    Trailing separators are dropped, so "[Artist] A" and "[Artist] B" give "[Artist]"
    and "IMG_001" and "IMG_002" give "IMG".
    """
    common = os.path.commonprefix([first, second])
    length = len(common)
    if not (is_on_boundary(first, length) and is_on_boundary(second, length)):
        cuts = [i for i, char in enumerate(common) if char in SEPARATORS]
        cuts += [i + 1 for i, char in enumerate(common) if char in CLOSERS]
        length = max(cuts, default=0)
    return common[:length].rstrip(SEPARATORS)


def _stem(filename: str) -> str:
    stem, _ = os.path.splitext(filename)
    return stem or filename


def _is_member(stem: str, candidate: str) -> bool:
    """A file belongs to a candidate group if the candidate prefixes its stem on a
    word boundary and something is left once the prefix is stripped."""
    return (
        stem.startswith(candidate)
        and is_on_boundary(stem, len(candidate))
        and bool(strip_prefix(stem, candidate).strip(SEPARATORS))
    )


class PrefixScanner:
    """Lists a directory (non-recursively) and groups its files by shared prefix."""

    def __init__(self, options: PrefixOptions | None = None) -> None:
        """Initialize the scanner.

        Args:
            options: Detection options. Defaults to DetectAll with the default filter.

        Raises:
            FilterError: If a LongestMatch pattern does not compile.
        """
        self.options = options or PrefixOptions()
        self._longest_pattern = None
        if isinstance(self.options.mode, LongestMatch):
            self._longest_pattern = compile_pattern(self.options.mode.pattern)

    def scan(self, directory: Path) -> list[PrefixedPath]:
        """Detect candidate prefix groups in a directory.

        Args:
            directory: Directory to list. Only regular files directly inside it are considered.

        Returns:
            One PrefixedPath per distinct prefix with at least `min_occurrences` files,
            ordered by prefix text. Paths within a group are ordered by filename.

        Raises:
            ScanError: If the directory does not exist, is not a directory, or cannot be read.
        """
        directory = Path(directory)
        names = self._list_files(directory)
        groups = self._group(names)

        results = [
            PrefixedPath(prefix=prefix, paths=[directory / name for name in sorted(members)])
            for prefix, members in groups.items()
            if len(members) >= self.options.min_occurrences
        ]
        results.sort(key=lambda group: group.prefix)
        logger.debug("Scanned %s: %d file(s), %d candidate group(s)", directory, len(names), len(results))
        return results

    def _list_files(self, directory: Path) -> list[str]:
        if not directory.exists():
            raise ScanError(directory, "directory does not exist")
        if not directory.is_dir():
            raise ScanError(directory, "not a directory")
        try:
            return sorted(entry.name for entry in directory.iterdir() if entry.is_file())
        except OSError as e:
            raise ScanError(directory, e.strerror or str(e)) from e

    def _group(self, names: list[str]) -> dict[str, list[str]]:
        mode = self.options.mode
        if isinstance(mode, SpecificPrefixes):
            return self._group_specific(names, mode.prefixes)
        if isinstance(mode, DelimiterOnly):
            return self._group_delimited(names, mode.delimiters)
        if isinstance(mode, (DetectAll, LongestMatch)):
            return self._group_common(names)
        raise TypeError(f"Unsupported detection mode: {mode!r}")

    def _group_specific(self, names: list[str], prefixes: Iterable[str]) -> dict[str, list[str]]:
        groups: dict[str, list[str]] = {}
        for prefix in prefixes:
            members = [name for name in names if name.startswith(prefix)]
            if members:
                groups[prefix] = members
        return groups

    def _group_delimited(self, names: list[str], delimiters: Iterable[tuple[str, str]]) -> dict[str, list[str]]:
        groups: dict[str, list[str]] = defaultdict(list)
        for name in names:
            for open_, close in delimiters:
                token = delimited_token(name, open_, close)
                if token is not None and name not in groups[token]:
                    groups[token].append(name)
        return dict(groups)

    def _group_common(self, names: list[str]) -> dict[str, list[str]]:
        """Group names by the common leading substrings found between every pair.

        Pairwise comparison is quadratic in the number of files.
        """
        stems = {name: _stem(name) for name in names}

        candidates: set[str] = set()
        for first, second in combinations(names, 2):
            candidate = common_boundary_prefix(stems[first], stems[second])
            if candidate and is_balanced(candidate):
                candidates.add(candidate)

        if self._longest_pattern is not None:
            candidates = {c for c in candidates if self._longest_pattern.fullmatch(c)}

        # Of candidates grouping exactly the same files, keep the longest
        by_members: dict[frozenset[str], str] = {}
        for candidate in candidates:
            members = frozenset(name for name in names if _is_member(stems[name], candidate))
            if len(members) < self.options.min_occurrences:
                continue
            current = by_members.get(members)
            if current is None or len(candidate) > len(current):
                by_members[members] = candidate

        return {candidate: sorted(members) for members, candidate in by_members.items()}
