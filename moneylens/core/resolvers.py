"""Entity resolution helpers for pots.

Pure functions that look up pots by id or by user-friendly name keywords
(partial, case-insensitive). No I/O; they operate on already-fetched data.
"""

from __future__ import annotations

from typing import Iterable

from moneylens.models.schemas import Pot


class ResolverError(Exception):
    """Raised when an entity cannot be resolved."""

    def __init__(
        self,
        entity_type: str,
        query: str,
        available: list[str] | None = None,
    ):
        self.entity_type = entity_type
        self.query = query
        self.available = available or []
        detail = f"No {entity_type} found matching '{query}'."
        if self.available:
            detail += f" Available: {', '.join(self.available)}"
        super().__init__(detail)


def resolve_pot(pots: list[Pot], pot_id: str) -> Pot:
    """Find a pot by id.

    Raises :class:`ResolverError` listing the known pot names if nothing matches.
    """
    for pot in pots:
        if pot.id == pot_id:
            return pot
    raise ResolverError("pot", pot_id, available=[p.name for p in pots])


def find_pot_by_keywords(pots: list[Pot], keywords: Iterable[str]) -> Pot | None:
    """Return the first pot (by priority) whose name contains any keyword.

    Matching is a case-insensitive substring test, so ``"bill"`` matches
    "Monthly Bills".
    """
    lowered = [k.lower() for k in keywords]
    for pot in sorted(pots, key=lambda p: p.priority):
        name = pot.name.lower()
        if any(k in name for k in lowered):
            return pot
    return None
