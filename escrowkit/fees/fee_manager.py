"""
Fee Computation Engine

Two pure computations plus a four-tier rate table:

    contract (instance, contract_id)  >  instance  >  user  >  default

A tier that was never set (or was reset) falls through to the next one.
An explicitly stored FeeRates(0, 0) is a real zero-fee override.

Rounding always floors, per charge. A fee recomputed on a sum of charges
can therefore exceed the fees actually collected on them, so payouts cap
at the fee a unit holds (see escrow/lifecycle.release_fee).
"""

import logging
from typing import Dict, NamedTuple, Optional, Tuple

from escrowkit.core.exceptions import FeeRateTooHigh, InvalidFeeConfig, NotAdmin, ZeroAddress
from escrowkit.core.models import BPS_DENOMINATOR, FeeConfig, FeeRates
from escrowkit.core.transaction import Journal, Journaled, atomic
from escrowkit.registry.roles import RoleRegistry


logger = logging.getLogger("escrowkit.fees")


class ClaimBreakdown(NamedTuple):
    claimable:    int   # paid to the contractor
    fee_deducted: int   # taken out of the claimed principal
    client_fee:   int   # prefunded by the client at deposit


def _bps(amount: int, rate: int) -> int:
    return amount * rate // BPS_DENOMINATOR


def compute_deposit_amount_and_fee(
    rates: FeeRates,
    deposit_amount: int,
    fee_config: FeeConfig,
) -> Tuple[int, int]:
    """
    Returns (total pulled from the client, fee included in that total).

    CONTRACTOR_COVERS_CLAIM is rejected: the contractor's fee is taken at
    claim time and nothing is added on deposit.
    """
    if fee_config is FeeConfig.CLIENT_COVERS_ALL:
        fee = _bps(deposit_amount, rates.coverage + rates.claim)
    elif fee_config is FeeConfig.CLIENT_COVERS_ONLY:
        fee = _bps(deposit_amount, rates.coverage)
    elif fee_config is FeeConfig.NO_FEES:
        fee = 0
    else:
        raise InvalidFeeConfig(
            "fee config is not valid for deposits", {"fee_config": fee_config.value}
        )
    return deposit_amount + fee, fee


def compute_claimable_amount_and_fee(
    rates: FeeRates,
    claimed_amount: int,
    fee_config: FeeConfig,
) -> ClaimBreakdown:
    if fee_config is FeeConfig.CLIENT_COVERS_ALL:
        return ClaimBreakdown(
            claimable=    claimed_amount,
            fee_deducted= 0,
            client_fee=   _bps(claimed_amount, rates.coverage + rates.claim),
        )
    if fee_config is FeeConfig.CONTRACTOR_COVERS_CLAIM:
        fee = _bps(claimed_amount, rates.claim)
        return ClaimBreakdown(claimed_amount - fee, fee, 0)
    if fee_config is FeeConfig.CLIENT_COVERS_ONLY:
        fee = _bps(claimed_amount, rates.claim)
        return ClaimBreakdown(
            claimable=    claimed_amount - fee,
            fee_deducted= fee,
            client_fee=   _bps(claimed_amount, rates.coverage),
        )
    if fee_config is FeeConfig.NO_FEES:
        return ClaimBreakdown(claimed_amount, 0, 0)
    raise InvalidFeeConfig("unknown fee config", {"fee_config": fee_config})


class FeeManager(Journaled):
    """
    Admin-maintained fee rate table.

    Only the mutators have side effects. resolve_rates() and the compute_*
    methods read the table and never change it.
    """

    _journaled = ("default_rates", "_user_rates", "_instance_rates", "_contract_rates")

    identity = "fee-manager"

    def __init__(
        self,
        roles: RoleRegistry,
        journal: Journal,
        default_rates: FeeRates,
        max_bps: int,
    ):
        self.roles = roles
        self.journal = journal
        self.max_bps = max_bps
        self._check_rates(default_rates)
        self.default_rates = default_rates
        self._user_rates: Dict[str, FeeRates] = {}
        self._instance_rates: Dict[str, FeeRates] = {}
        self._contract_rates: Dict[Tuple[str, int], FeeRates] = {}
        journal.register(self)

    # ── Resolution ────────────────────────────────────────────

    def resolve_rates(self, instance: str, contract_id: int, user: str) -> FeeRates:
        """Highest-priority tier that has an entry wins."""
        for tier, rates in (
            ("contract", self._contract_rates.get((instance, contract_id))),
            ("instance", self._instance_rates.get(instance)),
            ("user",     self._user_rates.get(user)),
        ):
            if rates is not None:
                logger.debug(
                    "fees for %s/%s (%s): %s tier %s", instance, contract_id, user, tier, rates
                )
                return rates
        return self.default_rates

    def compute_deposit_amount_and_fee(
        self,
        instance: str,
        contract_id: int,
        user: str,
        deposit_amount: int,
        fee_config: FeeConfig,
    ) -> Tuple[int, int]:
        rates = self.resolve_rates(instance, contract_id, user)
        return compute_deposit_amount_and_fee(rates, deposit_amount, fee_config)

    def compute_claimable_amount_and_fee(
        self,
        instance: str,
        contract_id: int,
        user: str,
        claimed_amount: int,
        fee_config: FeeConfig,
    ) -> ClaimBreakdown:
        rates = self.resolve_rates(instance, contract_id, user)
        return compute_claimable_amount_and_fee(rates, claimed_amount, fee_config)

    # ── Mutators ──────────────────────────────────────────────

    @atomic
    def set_default_fees(self, caller: str, coverage: int, claim: int) -> None:
        rates = self._admin_rates(caller, coverage, claim)
        self.default_rates = rates
        self._emit_set("default", None, rates)

    @atomic
    def set_user_fees(self, caller: str, user: str, coverage: int, claim: int) -> None:
        rates = self._admin_rates(caller, coverage, claim)
        if not user:
            raise ZeroAddress("user must be set")
        self._user_rates[user] = rates
        self._emit_set("user", user, rates)

    @atomic
    def set_instance_fees(self, caller: str, instance: str, coverage: int, claim: int) -> None:
        rates = self._admin_rates(caller, coverage, claim)
        if not instance:
            raise ZeroAddress("instance must be set")
        self._instance_rates[instance] = rates
        self._emit_set("instance", instance, rates)

    @atomic
    def set_contract_fees(
        self, caller: str, instance: str, contract_id: int, coverage: int, claim: int
    ) -> None:
        rates = self._admin_rates(caller, coverage, claim)
        if not instance:
            raise ZeroAddress("instance must be set")
        self._contract_rates[(instance, contract_id)] = rates
        self._emit_set("contract", f"{instance}/{contract_id}", rates)

    @atomic
    def reset_user_fees(self, caller: str, user: str) -> None:
        self._only_admin(caller)
        self._user_rates.pop(user, None)
        self._emit_reset("user", user)

    @atomic
    def reset_instance_fees(self, caller: str, instance: str) -> None:
        self._only_admin(caller)
        self._instance_rates.pop(instance, None)
        self._emit_reset("instance", instance)

    @atomic
    def reset_contract_fees(self, caller: str, instance: str, contract_id: int) -> None:
        self._only_admin(caller)
        self._contract_rates.pop((instance, contract_id), None)
        self._emit_reset("contract", f"{instance}/{contract_id}")

    # ── Internal ──────────────────────────────────────────────

    def _only_admin(self, caller: str) -> None:
        if not self.roles.is_admin(caller):
            raise NotAdmin("only an admin may change fee rates", {"caller": caller})

    def _admin_rates(self, caller: str, coverage: int, claim: int) -> FeeRates:
        self._only_admin(caller)
        rates = FeeRates(coverage=coverage, claim=claim)
        self._check_rates(rates)
        return rates

    def _check_rates(self, rates: FeeRates) -> None:
        for name, value in (("coverage", rates.coverage), ("claim", rates.claim)):
            if value < 0 or value > self.max_bps:
                raise FeeRateTooHigh(
                    f"{name} rate out of range",
                    {name: value, "max_bps": self.max_bps},
                )

    def _emit_set(self, tier: str, key: Optional[str], rates: FeeRates) -> None:
        logger.info("fees set: %s tier %s -> %s", tier, key or "-", rates)
        self.journal.emit(
            "FeesSet", self.identity, {"tier": tier, "key": key, **rates.to_dict()}
        )

    def _emit_reset(self, tier: str, key: str) -> None:
        logger.info("fees reset: %s tier %s", tier, key)
        self.journal.emit("FeesReset", self.identity, {"tier": tier, "key": key})
