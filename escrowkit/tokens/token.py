"""
In-memory fungible token.

Stands in for the payment assets on the registry allow-list. Balances and
allowances are journaled so a failed escrow operation also undoes any
transfer it already made.
"""

import logging
from typing import Dict, Tuple

from escrowkit.core.exceptions import InsufficientAllowance, InsufficientBalance, ZeroAddress
from escrowkit.core.transaction import Journaled


logger = logging.getLogger("escrowkit.token")


class Token(Journaled):
    """A fungible asset with ERC-20 style transfer semantics."""

    _journaled = ("_balances", "_allowances", "total_supply")

    def __init__(self, symbol: str, decimals: int = 6):
        if not symbol:
            raise ZeroAddress("token symbol must be non-empty")
        self.symbol = symbol
        self.decimals = decimals
        self.total_supply = 0
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def mint(self, to: str, amount: int) -> None:
        if not to:
            raise ZeroAddress("cannot mint to the zero address")
        self._balances[to] = self.balance_of(to) + amount
        self.total_supply += amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        if not owner or not spender:
            raise ZeroAddress("approve requires owner and spender")
        self._allowances[(owner, spender)] = amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        self._move(sender, to, amount)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise InsufficientAllowance(
                f"{spender} may not move {amount} {self.symbol} from {owner}",
                {"allowance": allowed, "requested": amount},
            )
        self._move(owner, to, amount)
        self._allowances[(owner, spender)] = allowed - amount

    def _move(self, sender: str, to: str, amount: int) -> None:
        if not sender or not to:
            raise ZeroAddress("transfer requires sender and recipient")
        if amount < 0:
            raise ValueError(f"negative transfer amount {amount}")
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalance(
                f"{sender} holds {balance} {self.symbol}, needs {amount}",
                {"balance": balance, "requested": amount},
            )
        self._balances[sender] = balance - amount
        self._balances[to] = self.balance_of(to) + amount
        logger.debug("%s: %d from %s to %s", self.symbol, amount, sender, to)

    def __repr__(self) -> str:
        return f"Token({self.symbol!r}, supply={self.total_supply})"
