"""
Escrow registry: where engines look up the treasury, the recovery
module, and the payment tokens they may accept.
"""

import logging
from typing import Dict, Optional, Set

from escrowkit.core.exceptions import UnauthorizedAccount, UnsupportedPaymentToken, ZeroAddress
from escrowkit.core.transaction import Journal, Journaled, atomic
from escrowkit.tokens.token import Token


logger = logging.getLogger("escrowkit.registry")


class EscrowRegistry(Journaled):

    _journaled = ("owner", "treasury", "recovery_module", "_allowed")

    def __init__(
        self,
        owner: str,
        treasury: str,
        journal: Journal,
        recovery_module: Optional[str] = None,
    ):
        if not owner or not treasury:
            raise ZeroAddress("registry owner and treasury must be set")
        self.owner = owner
        self.treasury = treasury
        self.recovery_module = recovery_module
        self.journal = journal
        self._tokens: Dict[str, Token] = {}
        self._allowed: Set[str] = set()
        journal.register(self)

    def snapshot(self):
        # Tokens are participants of their own; keep the same objects.
        state = super().snapshot()
        state["_tokens"] = dict(self._tokens)
        return state

    @atomic
    def set_treasury(self, caller: str, treasury: str) -> None:
        self._only_owner(caller)
        if not treasury:
            raise ZeroAddress("treasury must be set")
        logger.info("treasury %s -> %s", self.treasury, treasury)
        self.treasury = treasury

    @atomic
    def set_recovery_module(self, caller: str, module: str) -> None:
        self._only_owner(caller)
        if not module:
            raise ZeroAddress("recovery module must be set")
        self.recovery_module = module

    @atomic
    def add_payment_token(self, caller: str, token: Token) -> None:
        self._only_owner(caller)
        self._tokens[token.symbol] = token
        self._allowed.add(token.symbol)
        self.journal.register(token)
        logger.info("payment token %s allowed", token.symbol)

    @atomic
    def remove_payment_token(self, caller: str, symbol: str) -> None:
        self._only_owner(caller)
        self._allowed.discard(symbol)
        logger.info("payment token %s removed from allow-list", symbol)

    def is_payment_token_allowed(self, symbol: str) -> bool:
        return symbol in self._allowed

    def get_token(self, symbol: str) -> Token:
        """
        Any token ever allowed. Removing a token from the allow-list stops
        new deposits in it; units already holding it still pay out.
        """
        try:
            return self._tokens[symbol]
        except KeyError:
            raise UnsupportedPaymentToken(
                "unknown payment token", {"token": symbol}
            ) from None

    def _only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise UnauthorizedAccount(
                "only the registry owner may change the registry", {"caller": caller}
            )
