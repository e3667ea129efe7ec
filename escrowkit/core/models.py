"""
escrowkit/core/models.py

Escrow data model shared by the three contract shapes.

UNIT INVARIANTS
    amount_to_claim + amount_to_withdraw <= amount   (remaining principal)
    fee_config and fee_rates are fixed when the unit is created
    contractor_data only changes when a new unit is created; submit() reads it

Amounts are integers in the payment token's smallest unit.
Rates are integers in basis points (1 bp = 0.01%).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


BPS_DENOMINATOR = 10_000


# ─────────────────────────────────────────────────────────────
# Vocabulary
# ─────────────────────────────────────────────────────────────

class Status(Enum):
    NONE             = "none"
    ACTIVE           = "active"
    SUBMITTED        = "submitted"
    APPROVED         = "approved"
    COMPLETED        = "completed"
    RETURN_REQUESTED = "return_requested"
    DISPUTED         = "disputed"
    REFUND_APPROVED  = "refund_approved"
    RESOLVED         = "resolved"
    CANCELED         = "canceled"


class FeeConfig(Enum):
    CLIENT_COVERS_ALL       = "client_covers_all"
    CLIENT_COVERS_ONLY      = "client_covers_only"
    CONTRACTOR_COVERS_CLAIM = "contractor_covers_claim"
    NO_FEES                 = "no_fees"


class Winner(Enum):
    NONE       = "none"
    CLIENT     = "client"
    CONTRACTOR = "contractor"
    SPLIT      = "split"


class EscrowType(Enum):
    FIXED_PRICE = "fixed_price"
    MILESTONE   = "milestone"
    HOURLY      = "hourly"


class AccountType(Enum):
    CLIENT     = "client"
    CONTRACTOR = "contractor"


class RefillType(Enum):
    PREPAYMENT   = "prepayment"
    WEEK_PAYMENT = "week_payment"


# Statuses from which a client may withdraw approved returns.
WITHDRAWABLE = frozenset({Status.REFUND_APPROVED, Status.CANCELED, Status.RESOLVED})

# Statuses a unit can still take new principal in.
REFILLABLE = frozenset({Status.ACTIVE, Status.SUBMITTED, Status.APPROVED})


# ─────────────────────────────────────────────────────────────
# Fees
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FeeRates:
    """Coverage and claim rates in basis points."""
    coverage: int
    claim:    int

    @property
    def total(self) -> int:
        return self.coverage + self.claim

    def to_dict(self) -> Dict[str, int]:
        return {"coverage": self.coverage, "claim": self.claim}


ZERO_RATES = FeeRates(coverage=0, claim=0)


# ─────────────────────────────────────────────────────────────
# Units
# ─────────────────────────────────────────────────────────────

@dataclass
class Deposit:
    """
    A fixed-price contract: one unit per contract id.

    fee_held is the client-side fee pulled at deposit and refill that has
    not reached the treasury yet. Payouts release at most this much, and the
    remainder is swept to the treasury once the principal is paid out.
    """
    client:             str
    contractor:         Optional[str]
    payment_token:      str
    amount:             int
    contractor_data:    str
    fee_config:         FeeConfig
    fee_rates:          FeeRates
    amount_to_claim:    int = 0
    amount_to_withdraw: int = 0
    status:             Status = Status.ACTIVE
    previous_status:    Status = Status.NONE
    winner:             Winner = Winner.NONE
    fee_held:           int = 0


@dataclass
class Milestone:
    """One milestone of a milestone contract. Same lifecycle as Deposit."""
    contractor:         Optional[str]
    amount:             int
    contractor_data:    str
    fee_config:         FeeConfig
    fee_rates:          FeeRates
    amount_to_claim:    int = 0
    amount_to_withdraw: int = 0
    status:             Status = Status.ACTIVE
    previous_status:    Status = Status.NONE
    winner:             Winner = Winner.NONE
    fee_held:           int = 0


@dataclass
class MilestoneContract:
    client:        str
    payment_token: str
    milestones:    List[Milestone] = field(default_factory=list)


@dataclass
class WeeklyEntry:
    amount_to_claim: int
    status:          Status = Status.APPROVED


@dataclass
class HourlyContract:
    """
    An hourly contract. prepayment_amount is the contract-level principal
    pool; approved hours move out of it into WeeklyEntry records. One
    fee_held covers the pool and every week.
    """
    client:             str
    contractor:         str
    payment_token:      str
    prepayment_amount:  int
    fee_config:         FeeConfig
    fee_rates:          FeeRates
    amount_to_withdraw: int = 0
    status:             Status = Status.ACTIVE
    previous_status:    Status = Status.NONE
    winner:             Winner = Winner.NONE
    fee_held:           int = 0
    weeks:              List[WeeklyEntry] = field(default_factory=list)

    def outstanding(self) -> int:
        """Principal still held: the pool plus everything approved but unclaimed."""
        return self.prepayment_amount + sum(w.amount_to_claim for w in self.weeks)


# ─────────────────────────────────────────────────────────────
# Requests
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DepositRequest:
    """Fixed-price deposit. contract_id == 0 creates a new contract."""
    contract_id:     int
    contractor:      Optional[str]
    payment_token:   str
    amount:          int
    contractor_data: str
    fee_config:      FeeConfig

    def hash_fields(self) -> Dict[str, Any]:
        return {
            "contract_id":     self.contract_id,
            "contractor":      self.contractor or "",
            "payment_token":   self.payment_token,
            "amount":          self.amount,
            "contractor_data": self.contractor_data,
            "fee_config":      self.fee_config.value,
        }


@dataclass(frozen=True)
class MilestoneRequest:
    contractor:      Optional[str]
    amount:          int
    contractor_data: str
    fee_config:      FeeConfig

    def hash_fields(self) -> Dict[str, Any]:
        return {
            "contractor":      self.contractor or "",
            "amount":          self.amount,
            "contractor_data": self.contractor_data,
            "fee_config":      self.fee_config.value,
        }


@dataclass(frozen=True)
class MilestoneDepositRequest:
    """A batch of milestones. contract_id == 0 creates a new contract."""
    contract_id:   int
    payment_token: str
    milestones:    tuple

    def hash_fields(self) -> Dict[str, Any]:
        return {
            "contract_id":   self.contract_id,
            "payment_token": self.payment_token,
            "milestones":    [m.hash_fields() for m in self.milestones],
        }


@dataclass(frozen=True)
class HourlyDepositRequest:
    """
    Hourly deposit. prepayment_amount funds the contract pool; a non-zero
    amount_to_claim opens an already-approved week.
    """
    contract_id:       int
    contractor:        str
    payment_token:     str
    prepayment_amount: int
    amount_to_claim:   int
    fee_config:        FeeConfig


# ─────────────────────────────────────────────────────────────
# Recovery
# ─────────────────────────────────────────────────────────────

@dataclass
class RecoveryData:
    """
    A pending or finished recovery request. Never removed; executed is
    set on both execution and cancellation.
    """
    escrow:       str
    account:      str
    contract_id:  int
    milestone_id: int
    escrow_type:  EscrowType
    account_type: AccountType
    unlock_time:  int
    executed:     bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "escrow":       self.escrow,
            "account":      self.account,
            "contract_id":  self.contract_id,
            "milestone_id": self.milestone_id,
            "escrow_type":  self.escrow_type.value,
            "account_type": self.account_type.value,
            "unlock_time":  self.unlock_time,
            "executed":     self.executed,
        }
