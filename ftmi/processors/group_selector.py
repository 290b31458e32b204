"""Filtering and tie resolution over detected prefix groups."""

import logging
from collections.abc import Iterable

from ftmi.models.prefix import PrefixedPath, PrefixOptions, compile_pattern


logger = logging.getLogger(__name__)


def _drop_overlapping(groups: Iterable[PrefixedPath]) -> list[PrefixedPath]:
    """Keep one group per set of files, preferring the longest prefix, sorted by prefix."""
    kept: dict[frozenset, PrefixedPath] = {}
    for group in sorted(groups, key=lambda group: (-len(group.prefix), group.prefix)):
        kept.setdefault(frozenset(group.paths), group)
    return sorted(kept.values(), key=lambda group: group.prefix)


class GroupSelector:
    """Selects the groups worth offering for renaming.

    Groups whose prefix does not match the filter pattern are discarded, then every
    group sharing the highest remaining occurrence count is kept. Tied groups are all
    offered, except that groups covering exactly the same files collapse into the one
    with the longest prefix.
    """

    def __init__(
        self,
        options: PrefixOptions | None = None,
        pattern: str | None = None,
        no_filter: bool = False,
    ) -> None:
        """Initialize the selector.

        Args:
            options: Options providing `min_occurrences` and the default filter pattern.
            pattern: Override for `options.filter_pattern`.
            no_filter: Skip pattern filtering entirely.

        Raises:
            FilterError: If the effective pattern does not compile.
        """
        self.options = options or PrefixOptions()
        source = pattern if pattern is not None else self.options.filter_pattern
        self.pattern = None if no_filter or source is None else compile_pattern(source)

    def select(self, candidates: list[PrefixedPath]) -> list[PrefixedPath]:
        """Return all groups at the maximum occurrence count, in prefix order.

        Args:
            candidates: Scanner output for one directory.

        Returns:
            The selected groups; empty when nothing passes the filter and the minimum.
        """
        groups = candidates
        if self.pattern is not None:
            groups = [group for group in groups if self.pattern.search(group.prefix)]
        groups = [group for group in groups if group.occurrences >= self.options.min_occurrences]

        if not groups:
            logger.debug("No group passed the filter (%d candidate(s))", len(candidates))
            return []

        top = max(group.occurrences for group in groups)
        selected = _drop_overlapping(group for group in groups if group.occurrences == top)
        logger.debug("Selected %d group(s) with %d occurrence(s)", len(selected), top)
        return selected
