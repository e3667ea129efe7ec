"""
Runtime context: one fully wired escrow platform.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from escrowkit.authorization.verifier import DepositAuthorizationVerifier
from escrowkit.core.clock import Clock, SystemClock
from escrowkit.core.config import EscrowConfig
from escrowkit.core.crypto import Ed25519KeyManager
from escrowkit.core.events import EventLedger
from escrowkit.core.models import EscrowType, FeeRates
from escrowkit.core.transaction import Journal
from escrowkit.escrow.base import EscrowBase, EscrowDependencies
from escrowkit.escrow.factory import EscrowFactory
from escrowkit.fees.fee_manager import FeeManager
from escrowkit.recovery.recovery import AccountRecovery
from escrowkit.registry.registry import EscrowRegistry
from escrowkit.registry.roles import Role, RoleRegistry
from escrowkit.tokens.token import Token


@dataclass
class EscrowRuntime:
    """Every collaborator of one platform deployment, sharing one journal."""

    config: EscrowConfig
    clock: Clock
    journal: Journal
    ledger: EventLedger
    roles: RoleRegistry
    registry: EscrowRegistry
    fee_manager: FeeManager
    verifier: DepositAuthorizationVerifier
    factory: EscrowFactory
    recovery: AccountRecovery
    owner: str

    @classmethod
    def from_config(
        cls,
        config: Optional[EscrowConfig] = None,
        clock: Optional[Clock] = None,
        key_manager: Optional[Ed25519KeyManager] = None,
        owner: str = "owner",
    ) -> "EscrowRuntime":
        """
        Build a runtime. The owner holds the ADMIN role and owns both
        registries. Events are signed with key_manager (generated if
        omitted) and appended to config.ledger_path when set.
        """
        config = config or EscrowConfig.load()
        clock = clock or SystemClock()
        key_manager = key_manager or Ed25519KeyManager.generate()

        ledger = EventLedger(
            key_manager,
            Path(config.ledger_path) if config.ledger_path else None,
        )
        journal = Journal(sink=ledger)

        roles = RoleRegistry(owner, journal)
        roles.grant_role(owner, owner, Role.ADMIN)
        registry = EscrowRegistry(owner, config.treasury, journal)
        fee_manager = FeeManager(
            roles,
            journal,
            FeeRates(config.default_coverage_bps, config.default_claim_bps),
            config.max_bps,
        )
        verifier = DepositAuthorizationVerifier(roles, clock, journal)
        deps = EscrowDependencies(
            roles=      roles,
            registry=   registry,
            fee_manager=fee_manager,
            verifier=   verifier,
            journal=    journal,
            config=     config,
            clock=      clock,
        )
        factory = EscrowFactory(deps)
        recovery = AccountRecovery(roles, factory, journal, clock, config)
        registry.set_recovery_module(owner, recovery.identity)

        return cls(
            config=     config,
            clock=      clock,
            journal=    journal,
            ledger=     ledger,
            roles=      roles,
            registry=   registry,
            fee_manager=fee_manager,
            verifier=   verifier,
            factory=    factory,
            recovery=   recovery,
            owner=      owner,
        )

    def deploy(self, escrow_type: EscrowType) -> EscrowBase:
        return self.factory.deploy(escrow_type, self.owner)

    def add_token(self, symbol: str, decimals: int = 6) -> Token:
        token = Token(symbol, decimals)
        self.registry.add_payment_token(self.owner, token)
        return token

    def __repr__(self) -> str:
        return (
            f"EscrowRuntime("
            f"owner={self.owner!r}, "
            f"escrows={len(self.factory.deployed())}, "
            f"events={len(self.ledger.records)})"
        )
