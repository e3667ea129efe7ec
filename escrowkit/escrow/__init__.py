from escrowkit.escrow.base import EscrowBase, EscrowDependencies
from escrowkit.escrow.factory import EscrowFactory
from escrowkit.escrow.fixed_price import FixedPriceEscrow
from escrowkit.escrow.hourly import HourlyEscrow
from escrowkit.escrow.milestone import MilestoneEscrow

__all__ = [
    "EscrowBase",
    "EscrowDependencies",
    "EscrowFactory",
    "FixedPriceEscrow",
    "HourlyEscrow",
    "MilestoneEscrow",
]
