"""Shared state of one import run."""

from __future__ import annotations

from collections.abc import Iterable

from src.mappings.journal import IdentifierJournal
from src.models.revision import WiItem


class MigrationContext:
    """Exported histories indexed by origin ID, plus the journal."""

    def __init__(self, items: Iterable[WiItem], journal: IdentifierJournal) -> None:
        self.items: dict[str, WiItem] = {item.origin_id: item for item in items}
        self.journal = journal

    def get_item(self, origin_id: str) -> WiItem:
        """Return the full revision history of a source work item.

        Raises:
            KeyError: If no history was loaded for ``origin_id``

        """
        return self.items[origin_id]

    def __len__(self) -> int:
        return len(self.items)

    @property
    def revision_count(self) -> int:
        return sum(len(item.revisions) for item in self.items.values())
