"""Per-run translation state.

Everything the translator mutates lives here: the stack of currently open
region instances, the fresh-label counters and the error backtranslator. One
context serves exactly one translation run.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from atomica import ivl
from atomica.ast_nodes import Region
from atomica.backtranslator import ErrorBacktranslator
from atomica.errors import InternalError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class OpenRegionEntry:
    """A region instance opened by use-atomic or open-region."""
    region: Region
    arguments: tuple[ivl.Exp, ...]
    label: ivl.Label


class TranslationContext:
    def __init__(
        self,
        backtranslator: Optional[ErrorBacktranslator] = None,
        section_comments: bool = True,
    ):
        self.backtranslator = backtranslator or ErrorBacktranslator()
        self.section_comments = section_comments
        self._open_regions: list[OpenRegionEntry] = []
        self._label_counters: dict[str, int] = {}

    # -- labels ------------------------------------------------------------

    def fresh_label(self, prefix: str) -> ivl.Label:
        count = self._label_counters.get(prefix, 0) + 1
        self._label_counters[prefix] = count
        return ivl.Label(f"{prefix}_{count}")

    # -- open regions ------------------------------------------------------

    @property
    def open_regions(self) -> list[OpenRegionEntry]:
        """Currently open instances, innermost first."""
        return list(reversed(self._open_regions))

    @property
    def open_region_depth(self) -> int:
        return len(self._open_regions)

    def push_open_region(self, entry: OpenRegionEntry) -> None:
        self._open_regions.append(entry)

    def pop_open_region(self, expected: OpenRegionEntry) -> OpenRegionEntry:
        if not self._open_regions:
            raise InternalError(
                f"Cannot close region {expected.region.id.name}: no region is open",
                expected.region.location)
        popped = self._open_regions.pop()
        if popped is not expected:
            raise InternalError(
                f"Open-region stack mismatch: expected {expected.region.id.name} "
                f"({expected.label.name}), found {popped.region.id.name} ({popped.label.name})",
                expected.region.location)
        return popped

    @contextmanager
    def opened(
        self, region: Region, arguments: tuple[ivl.Exp, ...], label: ivl.Label,
    ) -> Iterator[OpenRegionEntry]:
        """Keep a region instance on the open-region stack for the duration of a block."""
        entry = OpenRegionEntry(region, arguments, label)
        self.push_open_region(entry)
        logger.debug("Opened %s at %s (depth %d)", region.id.name, label.name, self.open_region_depth)
        try:
            yield entry
        finally:
            self.pop_open_region(entry)
