"""
Value transfer collaborator.

The ledger never holds tokens itself; it asks a `ValueTransfer` to collect
collateral/liquidity from an account before a step is committed and to pay
out after it is committed.

`BalanceBook` implements the protocol over an in-memory account -> amount
table. The market's own custody is tracked implicitly by the ledger state
(pool, insurance fund, locked collateral).
"""

from __future__ import annotations

from typing import Dict, Protocol, runtime_checkable

from .errors import PerpPoolError


Account = str
Amount = int  # Non-negative integer collateral units


class InsufficientBalance(PerpPoolError):
    code = "insufficient_balance"


@runtime_checkable
class ValueTransfer(Protocol):
    def collect(self, account: Account, amount: Amount) -> None:
        """Debit *amount* from *account*; raise if it cannot be covered."""
        ...

    def pay(self, account: Account, amount: Amount) -> None:
        """Credit *amount* to *account*."""
        ...


class BalanceBook:
    """
    Balance table mapping account -> amount.

    Note: balances are stored in a plain dict. Callers that need a stable
    order (snapshots, reports) should sort keys explicitly.
    """

    def __init__(self, initial: Dict[Account, Amount] | None = None):
        self._balances: Dict[Account, Amount] = {}
        for account, amount in (initial or {}).items():
            self.set(account, amount)

    def get(self, account: Account) -> Amount:
        """Get balance for *account*. Returns 0 if not found."""
        return self._balances.get(account, 0)

    def set(self, account: Account, amount: Amount) -> None:
        """
        Set balance for *account*.

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        if amount == 0:
            # Remove zero balances to keep table sparse
            self._balances.pop(account, None)
        else:
            self._balances[account] = amount

    def collect(self, account: Account, amount: Amount) -> None:
        """
        Debit *amount* from *account*.

        Raises:
            ValueError: If amount is negative
            InsufficientBalance: If the account cannot cover it
        """
        if amount < 0:
            raise ValueError(f"Amount must be non-negative: {amount}")
        current = self.get(account)
        if amount > current:
            raise InsufficientBalance(f"{account}: balance {current} < {amount}")
        self.set(account, current - amount)

    def pay(self, account: Account, amount: Amount) -> None:
        """Credit *amount* to *account*."""
        if amount < 0:
            raise ValueError(f"Amount must be non-negative: {amount}")
        self.set(account, self.get(account) + amount)

    def total(self) -> Amount:
        return sum(self._balances.values())

    def get_all_balances(self) -> Dict[Account, Amount]:
        return dict(self._balances)

    def __repr__(self) -> str:
        return f"BalanceBook({len(self._balances)} entries)"
