"""
Pool share balance tracking.

Implements ShareTable[Account] -> Amount with a running total supply.
"""

from __future__ import annotations

from typing import Dict

from ..core.errors import InsufficientFundsError


# Type aliases
Account = str
Amount = int


class ShareTable:
    """
    Fungible share ledger: mint, burn, transfer, balances and total supply.

    Notes:
    - Balances are always non-negative.
    - Zero balances are omitted to keep the table sparse.
    """

    def __init__(self) -> None:
        self._balances: Dict[Account, Amount] = {}
        self._total_supply: Amount = 0

    def balance_of(self, account: Account) -> Amount:
        """Get share balance for `account`. Returns 0 if not found."""
        return self._balances.get(account, 0)

    def total_supply(self) -> Amount:
        return self._total_supply

    def _set(self, account: Account, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"Share balance cannot be negative: {amount}")
        if amount == 0:
            self._balances.pop(account, None)
        else:
            self._balances[account] = amount

    def mint(self, account: Account, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"Mint amount must be non-negative: {amount}")
        self._set(account, self.balance_of(account) + amount)
        self._total_supply += amount

    def burn(self, account: Account, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"Burn amount must be non-negative: {amount}")
        current = self.balance_of(account)
        if amount > current:
            raise InsufficientFundsError(
                f"Insufficient shares for {account}: {current} < {amount}",
                reason="insufficient_shares",
            )
        self._set(account, current - amount)
        self._total_supply -= amount

    def transfer(self, sender: Account, recipient: Account, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"Transfer amount must be non-negative: {amount}")
        current = self.balance_of(sender)
        if amount > current:
            raise InsufficientFundsError(
                f"Insufficient shares for {sender}: {current} < {amount}",
                reason="insufficient_shares",
            )
        self._set(sender, current - amount)
        self._set(recipient, self.balance_of(recipient) + amount)

    def snapshot(self) -> tuple[Dict[Account, Amount], Amount]:
        return dict(self._balances), self._total_supply

    def restore(self, snap: tuple[Dict[Account, Amount], Amount]) -> None:
        balances, total = snap
        self._balances = dict(balances)
        self._total_supply = total

    def verify_supply(self) -> bool:
        """Verify the running total matches the sum of balances."""
        return self._total_supply == sum(self._balances.values())

    def __repr__(self) -> str:
        return f"ShareTable({len(self._balances)} holders, supply={self._total_supply})"
