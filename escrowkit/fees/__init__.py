from escrowkit.fees.fee_manager import (
    ClaimBreakdown,
    FeeManager,
    compute_claimable_amount_and_fee,
    compute_deposit_amount_and_fee,
)

__all__ = [
    "ClaimBreakdown",
    "FeeManager",
    "compute_claimable_amount_and_fee",
    "compute_deposit_amount_and_fee",
]
