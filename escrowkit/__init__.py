"""
escrowkit/__init__.py

escrowkit: client/contractor escrow engine.

Three contract shapes (fixed-price, milestone, hourly) share one lifecycle
state machine, one fee engine, one admin-cosigned deposit authorization
check and one guardian-driven account recovery path. Every operation is
atomic and leaves a signed, hash-chained event record.
"""

__version__ = "0.3.0"

from escrowkit.core.config import EscrowConfig
from escrowkit.core.clock import ManualClock, SystemClock
from escrowkit.core.crypto import Ed25519KeyManager
from escrowkit.core.events import EventLedger, EventRecord, verify_ledger
from escrowkit.core.exceptions import EscrowError
from escrowkit.core.models import (
    AccountType,
    EscrowType,
    FeeConfig,
    FeeRates,
    RefillType,
    Status,
    Winner,
)
from escrowkit.runtime.context import EscrowRuntime

__all__ = [
    # Runtime
    "EscrowRuntime",
    "EscrowConfig",
    # Vocabulary
    "AccountType",
    "EscrowType",
    "FeeConfig",
    "FeeRates",
    "RefillType",
    "Status",
    "Winner",
    # Ledger
    "EventLedger",
    "EventRecord",
    "verify_ledger",
    # Support
    "Ed25519KeyManager",
    "EscrowError",
    "ManualClock",
    "SystemClock",
]
