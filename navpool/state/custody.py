"""
Underlying-asset custody.

Tracks the asset balances of external accounts and of the pool itself. The
engine only moves assets through `transfer_in()` / `transfer_out()`; test
fixtures and the scenario runner fund accounts with `credit()`.

An optional `on_transfer` hook is invoked after every pool transfer, the way a
token with receive hooks would call back into the recipient.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

from ..core.errors import InsufficientFundsError, MisconfiguredError
from ..core.fixed_point import MAX_DECIMALS
from .shares import Account, Amount


TransferHook = Callable[[str, Account, Amount], None]


class AssetCustody:
    """Asset balance table with the pool as a distinguished account."""

    def __init__(
        self,
        *,
        symbol: str,
        decimals: int,
        on_transfer: Optional[TransferHook] = None,
    ) -> None:
        if not isinstance(symbol, str) or not symbol:
            raise MisconfiguredError("asset symbol must be a non-empty string", reason="misconfigured:asset")
        if not isinstance(decimals, int) or isinstance(decimals, bool):
            raise MisconfiguredError("asset decimals must be an int", reason="misconfigured:decimals")
        if decimals < 0 or decimals > MAX_DECIMALS:
            raise MisconfiguredError(
                f"asset decimals must be in [0, {MAX_DECIMALS}]: {decimals}",
                reason="misconfigured:decimals",
            )
        self.symbol = symbol
        self.decimals = decimals
        self.on_transfer = on_transfer
        self._accounts: Dict[Account, Amount] = {}
        self._pool_balance: Amount = 0

    def balance(self) -> Amount:
        """Assets held by the pool."""
        return self._pool_balance

    def balance_of(self, account: Account) -> Amount:
        return self._accounts.get(account, 0)

    def credit(self, account: Account, amount: Amount) -> None:
        """Fund an external account (faucet)."""
        if amount < 0:
            raise ValueError(f"credit amount must be non-negative: {amount}")
        self._set(account, self.balance_of(account) + amount)

    def _set(self, account: Account, amount: Amount) -> None:
        if amount == 0:
            self._accounts.pop(account, None)
        else:
            self._accounts[account] = amount

    def transfer_in(self, sender: Account, amount: Amount) -> None:
        """Pull `amount` from `sender` into the pool."""
        if amount < 0:
            raise ValueError(f"transfer amount must be non-negative: {amount}")
        current = self.balance_of(sender)
        if amount > current:
            raise InsufficientFundsError(
                f"{sender} holds {current} {self.symbol}, needs {amount}",
                reason="insufficient_assets",
            )
        self._set(sender, current - amount)
        self._pool_balance += amount
        if self.on_transfer is not None:
            self.on_transfer("in", sender, amount)

    def transfer_out(self, recipient: Account, amount: Amount) -> None:
        """Push `amount` from the pool to `recipient`."""
        if amount < 0:
            raise ValueError(f"transfer amount must be non-negative: {amount}")
        if amount > self._pool_balance:
            raise InsufficientFundsError(
                f"pool holds {self._pool_balance} {self.symbol}, needs {amount}",
                reason="insufficient_pool_assets",
            )
        self._pool_balance -= amount
        self._set(recipient, self.balance_of(recipient) + amount)
        if self.on_transfer is not None:
            self.on_transfer("out", recipient, amount)

    def snapshot(self) -> tuple[Dict[Account, Amount], Amount]:
        return dict(self._accounts), self._pool_balance

    def restore(self, snap: tuple[Dict[Account, Amount], Amount]) -> None:
        accounts, pool_balance = snap
        self._accounts = dict(accounts)
        self._pool_balance = pool_balance

    def __repr__(self) -> str:
        return f"AssetCustody({self.symbol}, decimals={self.decimals}, pool={self._pool_balance})"
