"""
Account Recovery Module

Two-phase, guardian-initiated replacement of a lost client or contractor
identity:

    initiate_recovery   guardian records a request, unlock = now + period
    execute_recovery    the NEW identity claims it once now >= unlock
    cancel_recovery     the OLD identity blocks it at any time before

A request is keyed by the canonical hash of
(escrow, contract_id, milestone_id, old account, new account, account type),
so the same parameters always address the same request and an executed
or canceled request can never be replayed. Requests are never deleted.
"""

import logging
from typing import Dict, Optional

from escrowkit.core.canonical import canonical_hash
from escrowkit.core.clock import Clock
from escrowkit.core.config import EscrowConfig
from escrowkit.core.exceptions import (
    InvalidRecoveryPeriod,
    NotAdmin,
    NotGuardian,
    RecoveryAlreadyExecuted,
    RecoveryLocked,
    RecoveryNotFound,
    UnauthorizedAccount,
    ZeroAddress,
)
from escrowkit.core.models import AccountType, EscrowType, RecoveryData
from escrowkit.core.transaction import Journal, Journaled, atomic
from escrowkit.escrow.factory import EscrowFactory
from escrowkit.registry.roles import RoleRegistry


logger = logging.getLogger("escrowkit.recovery")

RECOVERY_MODULE_IDENTITY = "recovery-module"


def recovery_hash(
    escrow: str,
    contract_id: int,
    milestone_id: int,
    old_account: str,
    new_account: str,
    account_type: AccountType,
) -> str:
    return canonical_hash({
        "escrow":       escrow,
        "contract_id":  contract_id,
        "milestone_id": milestone_id,
        "old_account":  old_account,
        "new_account":  new_account,
        "account_type": account_type.value,
    })


class AccountRecovery(Journaled):

    _journaled = ("_requests", "recovery_period")

    def __init__(
        self,
        roles: RoleRegistry,
        factory: EscrowFactory,
        journal: Journal,
        clock: Clock,
        config: EscrowConfig,
        identity: str = RECOVERY_MODULE_IDENTITY,
    ):
        self.identity = identity
        self.roles = roles
        self.factory = factory
        self.journal = journal
        self.clock = clock
        self.min_period = config.min_recovery_period
        self.max_period = config.max_recovery_period
        self.recovery_period = config.recovery_period
        self._requests: Dict[str, RecoveryData] = {}
        journal.register(self)

    # ── Views ─────────────────────────────────────────────────

    def get_request(self, request_hash: str) -> Optional[RecoveryData]:
        return self._requests.get(request_hash)

    # ── Admin ─────────────────────────────────────────────────

    @atomic
    def set_recovery_period(self, caller: str, period: int) -> None:
        if not self.roles.is_admin(caller):
            raise NotAdmin("admin only", {"caller": caller})
        if not self.min_period <= period <= self.max_period:
            raise InvalidRecoveryPeriod(
                "recovery period out of bounds",
                {"period": period, "min": self.min_period, "max": self.max_period},
            )
        logger.info("recovery period %d -> %d", self.recovery_period, period)
        self.recovery_period = period

    # ── Lifecycle ─────────────────────────────────────────────

    @atomic
    def initiate_recovery(
        self,
        caller: str,
        escrow: str,
        contract_id: int,
        milestone_id: int,
        old_account: str,
        new_account: str,
        account_type: AccountType,
        escrow_type: EscrowType,
    ) -> str:
        """
        Record a recovery request and return its hash. Initiating a
        request that is still pending restarts its timelock.
        """
        if not self.roles.is_guardian(caller):
            raise NotGuardian("guardian only", {"caller": caller})
        if not escrow or not old_account or not new_account:
            raise ZeroAddress("escrow, old and new account must be set")
        if old_account == new_account:
            raise UnauthorizedAccount("new account must differ from the old one")
        engine = self.factory.get(escrow)
        if engine.escrow_type is not escrow_type:
            raise RecoveryNotFound(
                "escrow type does not match the deployed escrow",
                {"escrow": escrow, "escrow_type": escrow_type.value},
            )

        key = recovery_hash(escrow, contract_id, milestone_id, old_account, new_account, account_type)
        existing = self._requests.get(key)
        if existing is not None and existing.executed:
            raise RecoveryAlreadyExecuted("recovery request already used", {"hash": key})

        unlock_time = self.clock.now() + self.recovery_period
        self._requests[key] = RecoveryData(
            escrow=      escrow,
            account=     old_account,
            contract_id= contract_id,
            milestone_id=milestone_id,
            escrow_type= escrow_type,
            account_type=account_type,
            unlock_time= unlock_time,
        )
        self.journal.emit("RecoveryInitiated", self.identity, {
            "hash":         key,
            "guardian":     caller,
            "escrow":       escrow,
            "contract_id":  contract_id,
            "milestone_id": milestone_id,
            "old_account":  old_account,
            "new_account":  new_account,
            "account_type": account_type,
            "escrow_type":  escrow_type,
            "unlock_time":  unlock_time,
        })
        logger.info("recovery %s initiated by %s, unlocks at %d", key[:12], caller, unlock_time)
        return key

    @atomic
    def execute_recovery(
        self,
        caller: str,
        escrow: str,
        contract_id: int,
        milestone_id: int,
        old_account: str,
        account_type: AccountType,
    ) -> str:
        """Self-claim: caller is the new identity named at initiation."""
        key = recovery_hash(escrow, contract_id, milestone_id, old_account, caller, account_type)
        data = self._requests.get(key)
        if data is None:
            raise RecoveryNotFound("no recovery request for these parameters", {"hash": key})
        if data.executed:
            raise RecoveryAlreadyExecuted("recovery request already used", {"hash": key})
        now = self.clock.now()
        if now < data.unlock_time:
            raise RecoveryLocked(
                "recovery is still timelocked", {"now": now, "unlock_time": data.unlock_time}
            )

        data.executed = True
        engine = self.factory.get(escrow)
        self._transfer(engine, data, caller)

        self.journal.emit("RecoveryExecuted", self.identity, {
            "hash":         key,
            "escrow":       escrow,
            "contract_id":  contract_id,
            "milestone_id": milestone_id,
            "old_account":  old_account,
            "new_account":  caller,
            "account_type": account_type,
        })
        logger.info("recovery %s executed, %s -> %s", key[:12], old_account, caller)
        return key

    @atomic
    def cancel_recovery(self, caller: str, request_hash: str) -> None:
        data = self._requests.get(request_hash)
        if data is None:
            raise RecoveryNotFound("no such recovery request", {"hash": request_hash})
        if caller != data.account:
            raise UnauthorizedAccount(
                "only the account being recovered may cancel", {"caller": caller}
            )
        if data.executed:
            raise RecoveryAlreadyExecuted("recovery request already used", {"hash": request_hash})
        data.executed = True
        self.journal.emit("RecoveryCanceled", self.identity, {
            "hash":    request_hash,
            "account": caller,
        })
        logger.info("recovery %s canceled by %s", request_hash[:12], caller)

    # ── Internal ──────────────────────────────────────────────

    def _transfer(self, engine, data: RecoveryData, new_account: str) -> None:
        """Hand the unit to new_account through the escrow's ownership entry points."""
        cid, mid = data.contract_id, data.milestone_id
        if data.account_type is AccountType.CLIENT:
            current = self._current_client(engine, data)
            if current != data.account:
                raise UnauthorizedAccount(
                    "old account is no longer the client", {"client": current}
                )
            engine.transfer_client_ownership(self.identity, cid, new_account)
            return

        current = self._current_contractor(engine, data)
        if current != data.account:
            raise UnauthorizedAccount(
                "old account is no longer the contractor", {"contractor": current}
            )
        if data.escrow_type is EscrowType.MILESTONE:
            engine.transfer_contractor_ownership(self.identity, cid, mid, new_account)
        else:
            engine.transfer_contractor_ownership(self.identity, cid, new_account)

    @staticmethod
    def _current_client(engine, data: RecoveryData) -> str:
        if data.escrow_type is EscrowType.FIXED_PRICE:
            return engine.get_deposit(data.contract_id).client
        return engine.get_contract(data.contract_id).client

    @staticmethod
    def _current_contractor(engine, data: RecoveryData) -> Optional[str]:
        if data.escrow_type is EscrowType.FIXED_PRICE:
            return engine.get_deposit(data.contract_id).contractor
        if data.escrow_type is EscrowType.MILESTONE:
            return engine.get_milestone(data.contract_id, data.milestone_id).contractor
        return engine.get_contract(data.contract_id).contractor
