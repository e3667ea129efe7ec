"""
Unit state machine shared by fixed-price deposits and milestones.

    NONE → ACTIVE → SUBMITTED → APPROVED → COMPLETED
    ACTIVE | SUBMITTED → RETURN_REQUESTED → REFUND_APPROVED | CANCELED | DISPUTED
    RETURN_REQUESTED → (previous status)          cancel_return
    SUBMITTED → DISPUTED → RESOLVED → CANCELED | COMPLETED

Every function checks all of its preconditions before writing anything,
and none of them move tokens. The calling engine moves funds after the
unit has been updated.
"""

from typing import Iterable, Tuple

from escrowkit.core.canonical import commitment_hash
from escrowkit.core.exceptions import (
    AmountExceedsPrincipal,
    CommitmentMismatch,
    InvalidRange,
    InvalidStatus,
    InvalidWinner,
    NothingToClaim,
    NothingToWithdraw,
    ResolutionExceedsPrincipal,
    UnauthorizedAccount,
    UnauthorizedReceiver,
    ZeroAmount,
)
from escrowkit.core.models import WITHDRAWABLE, FeeConfig, FeeRates, Status, Winner
from escrowkit.fees.fee_manager import (
    ClaimBreakdown,
    compute_claimable_amount_and_fee,
    compute_deposit_amount_and_fee,
)


def require_status(unit, allowed: Iterable[Status], operation: str) -> None:
    allowed = frozenset(allowed)
    if unit.status not in allowed:
        raise InvalidStatus(
            f"{operation} not allowed in status {unit.status.value}",
            {"allowed": ",".join(sorted(s.value for s in allowed))},
        )


def require_positive(amount: int, what: str = "amount") -> None:
    if amount <= 0:
        raise ZeroAmount(f"{what} must be positive", {what: amount})


def withdraw_fee(rates: FeeRates, amount: int, fee_config: FeeConfig) -> int:
    """Fee the client paid on amount at deposit time."""
    if fee_config is FeeConfig.CONTRACTOR_COVERS_CLAIM:
        return 0
    return compute_deposit_amount_and_fee(rates, amount, fee_config)[1]


def release_fee(unit, computed: int) -> int:
    """
    Take up to computed out of the fee the unit actually collected. Per-charge
    flooring means a fee recomputed on a sum can exceed what was collected.
    """
    released = min(computed, unit.fee_held)
    unit.fee_held -= released
    return released


def sweep_fee(unit) -> int:
    """Everything still held, once nothing is left to pay out against it."""
    swept, unit.fee_held = unit.fee_held, 0
    return swept


def submit(unit, caller: str, data: str, salt: str) -> None:
    require_status(unit, (Status.ACTIVE,), "submit")
    if unit.contractor and caller != unit.contractor:
        raise UnauthorizedAccount("only the contractor may submit", {"caller": caller})
    if commitment_hash(data, salt) != unit.contractor_data:
        raise CommitmentMismatch("submitted data does not match the commitment")
    if not unit.contractor:
        unit.contractor = caller
    unit.status = Status.SUBMITTED


def approve(unit, amount: int, receiver: str) -> None:
    require_status(unit, (Status.SUBMITTED, Status.APPROVED), "approve")
    require_positive(amount)
    if receiver != unit.contractor:
        raise UnauthorizedReceiver(
            "receiver is not the contractor", {"receiver": receiver}
        )
    committed = unit.amount_to_claim + unit.amount_to_withdraw + amount
    if committed > unit.amount:
        raise AmountExceedsPrincipal(
            "approval exceeds remaining principal",
            {"requested": amount, "available": unit.amount - unit.amount_to_claim - unit.amount_to_withdraw},
        )
    unit.amount_to_claim += amount
    unit.status = Status.APPROVED


def refill(unit, amount: int, refillable: Iterable[Status]) -> None:
    require_status(unit, refillable, "refill")
    require_positive(amount)
    unit.amount += amount


def claim(unit) -> Tuple[int, ClaimBreakdown]:
    """Release amount_to_claim. A claim that empties the unit completes it."""
    claimed = unit.amount_to_claim
    if claimed == 0:
        raise NothingToClaim("nothing approved to claim")
    breakdown = compute_claimable_amount_and_fee(unit.fee_rates, claimed, unit.fee_config)
    client_fee = release_fee(unit, breakdown.client_fee)
    unit.amount -= claimed
    unit.amount_to_claim = 0
    if unit.amount == 0:
        unit.status = Status.COMPLETED
        client_fee += sweep_fee(unit)
    return claimed, breakdown._replace(client_fee=client_fee)


def withdraw(unit) -> Tuple[int, int]:
    """Release amount_to_withdraw. Returns (principal, fee for treasury)."""
    require_status(unit, WITHDRAWABLE, "withdraw")
    amount = unit.amount_to_withdraw
    if amount == 0:
        raise NothingToWithdraw("nothing approved to withdraw")
    fee = release_fee(unit, withdraw_fee(unit.fee_rates, amount, unit.fee_config))
    unit.amount -= amount
    unit.amount_to_withdraw = 0
    if unit.amount == 0:
        unit.status = Status.CANCELED
        fee += sweep_fee(unit)
    return amount, fee


def request_return(unit) -> None:
    require_status(unit, (Status.ACTIVE, Status.SUBMITTED), "request_return")
    unit.previous_status = unit.status
    unit.status = Status.RETURN_REQUESTED


def approve_return(unit) -> None:
    """Return everything not already approved for the contractor."""
    require_status(unit, (Status.RETURN_REQUESTED,), "approve_return")
    unit.amount_to_withdraw = unit.amount - unit.amount_to_claim
    # Nothing was ever submitted: the agreement is simply called off.
    if unit.previous_status is Status.ACTIVE:
        unit.status = Status.CANCELED
    else:
        unit.status = Status.REFUND_APPROVED


def cancel_return(unit) -> None:
    require_status(unit, (Status.RETURN_REQUESTED,), "cancel_return")
    unit.status = unit.previous_status
    unit.previous_status = Status.NONE


def create_dispute(unit) -> None:
    require_status(unit, (Status.RETURN_REQUESTED, Status.SUBMITTED), "create_dispute")
    unit.status = Status.DISPUTED


def check_resolution(
    winner: Winner, client_amount: int, contractor_amount: int, principal: int
) -> None:
    if winner is Winner.NONE:
        raise InvalidWinner("a dispute must be resolved in someone's favour")
    if client_amount < 0 or contractor_amount < 0:
        raise ResolutionExceedsPrincipal("resolution amounts must not be negative")
    if winner is Winner.CLIENT and contractor_amount:
        raise InvalidWinner("client win cannot award the contractor")
    if winner is Winner.CONTRACTOR and client_amount:
        raise InvalidWinner("contractor win cannot refund the client")
    if client_amount + contractor_amount > principal:
        raise ResolutionExceedsPrincipal(
            "resolution exceeds remaining principal",
            {"client": client_amount, "contractor": contractor_amount, "principal": principal},
        )


def resolve_dispute(
    unit, winner: Winner, client_amount: int, contractor_amount: int
) -> None:
    require_status(unit, (Status.DISPUTED,), "resolve_dispute")
    check_resolution(winner, client_amount, contractor_amount, unit.amount)
    unit.amount_to_withdraw = client_amount
    unit.amount_to_claim = contractor_amount
    unit.winner = winner
    unit.status = Status.RESOLVED


def check_claim_range(start: int, end: int, count: int, max_range: int) -> None:
    """Inclusive [start, end] must address existing sub-units and stay bounded."""
    if start < 0 or end < start or end >= count:
        raise InvalidRange(
            "claim range out of bounds", {"start": start, "end": end, "count": count}
        )
    if end - start + 1 > max_range:
        raise InvalidRange(
            "claim range too wide", {"width": end - start + 1, "max": max_range}
        )
