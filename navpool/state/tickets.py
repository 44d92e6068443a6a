"""
Claim-ticket registry.

Each queued request is represented by a unique ticket id issued to its owner.
Tickets are indexed per owner in issue order (FIFO); inserting and revoking a
ticket are O(1).

Enumeration via `ticket_at()` is only stable while no ticket of that owner is
revoked. Callers that revoke during a pass should iterate over `tickets_of()`,
which returns a snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from ..core.errors import UnknownTicketError
from .shares import Account


TicketId = int


@dataclass
class TicketRegistry:
    """
    Mutable arena `ticket_id -> owner` plus a per-owner ordered index.

    Ticket ids are never reused, even after revocation.
    """

    _owner_of: Dict[TicketId, Account] = field(default_factory=dict)
    _by_owner: Dict[Account, Dict[TicketId, None]] = field(default_factory=dict)
    _next_id: TicketId = 1

    def issue(self, owner: Account) -> TicketId:
        if not isinstance(owner, str) or not owner:
            raise TypeError("owner must be a non-empty string")
        ticket_id = self._next_id
        self._next_id += 1
        self._owner_of[ticket_id] = owner
        self._by_owner.setdefault(owner, {})[ticket_id] = None
        return ticket_id

    def revoke(self, ticket_id: TicketId) -> None:
        owner = self._owner_of.pop(ticket_id, None)
        if owner is None:
            raise UnknownTicketError(f"ticket {ticket_id} is not live")
        owned = self._by_owner[owner]
        del owned[ticket_id]
        if not owned:
            del self._by_owner[owner]

    def owner_of(self, ticket_id: TicketId) -> Account:
        try:
            return self._owner_of[ticket_id]
        except KeyError as exc:
            raise UnknownTicketError(f"ticket {ticket_id} is not live") from exc

    def ticket_count_of(self, owner: Account) -> int:
        return len(self._by_owner.get(owner, ()))

    def ticket_at(self, owner: Account, index: int) -> TicketId:
        owned = self._by_owner.get(owner, {})
        if not 0 <= index < len(owned):
            raise IndexError(f"ticket index {index} out of range for {owner}")
        return list(owned)[index]

    def tickets_of(self, owner: Account) -> tuple[TicketId, ...]:
        return tuple(self._by_owner.get(owner, ()))

    def snapshot(self) -> tuple[Dict[TicketId, Account], TicketId]:
        return dict(self._owner_of), self._next_id

    def restore(self, snap: tuple[Dict[TicketId, Account], TicketId]) -> None:
        owner_of, next_id = snap
        self._owner_of = {}
        self._by_owner = {}
        # Ticket ids grow monotonically, so sorting restores issue order.
        for ticket_id in sorted(owner_of):
            owner = owner_of[ticket_id]
            self._owner_of[ticket_id] = owner
            self._by_owner.setdefault(owner, {})[ticket_id] = None
        self._next_id = next_id
