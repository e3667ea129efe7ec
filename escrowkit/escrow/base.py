"""
Shared plumbing for the three escrow shapes.

Order of work inside every public operation:
    1. Authorize the caller
    2. Check every precondition
    3. Update unit state
    4. Move tokens (pull from client / push to contractor, client, treasury)
    5. Emit the event

Steps 1-5 run in one journal transaction. A failure at any step, including
a token transfer, restores every participant to its state before step 1.
"""

import logging
from dataclasses import dataclass
from typing import Any, Tuple

from escrowkit.authorization.verifier import DepositAuthorizationVerifier
from escrowkit.core.clock import Clock
from escrowkit.core.config import EscrowConfig
from escrowkit.core.exceptions import (
    AuthorizationError,
    NotAdmin,
    NotRecoveryModule,
    UnauthorizedAccount,
    UnsupportedPaymentToken,
    ZeroAddress,
)
from escrowkit.core.models import EscrowType, FeeRates
from escrowkit.core.transaction import Journal, Journaled
from escrowkit.fees.fee_manager import ClaimBreakdown, FeeManager, compute_deposit_amount_and_fee
from escrowkit.registry.registry import EscrowRegistry
from escrowkit.registry.roles import RoleRegistry
from escrowkit.tokens.token import Token


@dataclass(frozen=True)
class EscrowDependencies:
    """Collaborators every escrow instance is wired to."""
    roles:       RoleRegistry
    registry:    EscrowRegistry
    fee_manager: FeeManager
    verifier:    DepositAuthorizationVerifier
    journal:     Journal
    config:      EscrowConfig
    clock:       Clock


class EscrowBase(Journaled):

    escrow_type: EscrowType

    def __init__(self, identity: str, deps: EscrowDependencies):
        if not identity:
            raise ZeroAddress("escrow identity must be set")
        self.identity = identity
        self.deps = deps
        self.journal = deps.journal
        self.logger = logging.getLogger(f"escrowkit.escrow.{self.escrow_type.value}")
        self._next_contract_id = 1
        deps.journal.register(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.identity!r})"

    # ── Caller checks ─────────────────────────────────────────

    def _only_admin(self, caller: str) -> None:
        if not self.deps.roles.is_admin(caller):
            raise NotAdmin("admin only", {"caller": caller})

    def _only_recovery(self, caller: str) -> None:
        module = self.deps.registry.recovery_module
        if not module or caller != module:
            raise NotRecoveryModule(
                "ownership transfers come from the recovery module", {"caller": caller}
            )

    def _only(self, caller: str, expected: str, role: str) -> None:
        if caller != expected:
            raise UnauthorizedAccount(f"only the {role} may do this", {"caller": caller})

    def _client_or_admin(self, caller: str, client: str) -> None:
        if caller != client and not self.deps.roles.is_admin(caller):
            raise UnauthorizedAccount(
                "only the client or an admin may do this", {"caller": caller}
            )

    def _either_party(self, caller: str, client: str, contractor: str) -> None:
        if caller not in (client, contractor):
            raise UnauthorizedAccount(
                "only the client or contractor may do this", {"caller": caller}
            )

    def _contractor_or_admin(self, caller: str, contractor: str) -> None:
        if caller != contractor and not self.deps.roles.is_admin(caller):
            raise AuthorizationError(
                "only the contractor or an admin may do this", {"caller": caller}
            )

    @staticmethod
    def _require_address(value: str, what: str) -> None:
        if not value:
            raise ZeroAddress(f"{what} must not be the zero address")

    # ── Fees ──────────────────────────────────────────────────

    def _resolve_rates(self, contract_id: int, client: str) -> FeeRates:
        return self.deps.fee_manager.resolve_rates(self.identity, contract_id, client)

    # ── Tokens ────────────────────────────────────────────────

    def _allowed_token(self, symbol: str) -> Token:
        if not self.deps.registry.is_payment_token_allowed(symbol):
            raise UnsupportedPaymentToken(
                "payment token is not on the allow-list", {"token": symbol}
            )
        return self.deps.registry.get_token(symbol)

    def _pull(self, symbol: str, source: str, amount: int) -> None:
        if amount:
            token = self.deps.registry.get_token(symbol)
            token.transfer_from(self.identity, source, self.identity, amount)

    def _push(self, symbol: str, to: str, amount: int) -> None:
        if amount:
            self.deps.registry.get_token(symbol).transfer(self.identity, to, amount)

    def _charge(self, symbol: str, client: str, amount: int, unit) -> Tuple[int, int]:
        """
        Pull principal plus client-side fee for unit, holding the fee on it.
        Returns (total, fee).
        """
        total, fee = compute_deposit_amount_and_fee(unit.fee_rates, amount, unit.fee_config)
        unit.fee_held += fee
        self._pull(symbol, client, total)
        return total, fee

    def _pay_claim(self, symbol: str, contractor: str, breakdown: ClaimBreakdown) -> int:
        """Pay the contractor and the treasury. Returns the treasury's cut."""
        platform_fee = breakdown.fee_deducted + breakdown.client_fee
        self._push(symbol, contractor, breakdown.claimable)
        self._push(symbol, self.deps.registry.treasury, platform_fee)
        return platform_fee

    def _refund(self, symbol: str, client: str, amount: int, fee: int) -> None:
        self._push(symbol, client, amount)
        self._push(symbol, self.deps.registry.treasury, fee)

    # ── Events ────────────────────────────────────────────────

    def _emit(self, name: str, **payload: Any) -> None:
        self.journal.emit(name, self.identity, payload)
        self.logger.info("%s %s", name, payload)

    def _new_contract_id(self, taken) -> int:
        """Next auto-assigned id not already in taken."""
        while self._next_contract_id in taken:
            self._next_contract_id += 1
        contract_id = self._next_contract_id
        self._next_contract_id += 1
        return contract_id
