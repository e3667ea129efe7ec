"""
escrowkit Exception Hierarchy

All exceptions inherit from EscrowError for easy catching.
Every rejected operation raises exactly one of the leaf classes below,
so callers can tell the failure apart without parsing messages.
"""


class EscrowError(Exception):
    """Base exception for all escrowkit errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# ── Authorization ─────────────────────────────────────────────

class AuthorizationError(EscrowError):
    """Raised when the caller is not allowed to perform an operation"""
    pass


class UnauthorizedAccount(AuthorizationError):
    """Raised when the caller is not the client/contractor the unit expects"""
    pass


class NotAdmin(AuthorizationError):
    pass


class NotGuardian(AuthorizationError):
    pass


class NotRecoveryModule(AuthorizationError):
    """Raised when an ownership transfer does not come from the recovery module"""
    pass


class AuthorizationExpired(AuthorizationError):
    """Raised when a signed deposit authorization is past its expiration"""
    pass


class AuthorizationReused(AuthorizationError):
    """Raised when a deposit authorization has already funded a deposit"""
    pass


class InvalidSignature(AuthorizationError):
    pass


class UnauthorizedReceiver(AuthorizationError):
    """Raised when an approval names someone other than the unit's contractor"""
    pass


# ── State ─────────────────────────────────────────────────────

class StateError(EscrowError):
    """Raised when the current status does not permit the operation"""
    pass


class InvalidStatus(StateError):
    pass


class NothingToClaim(StateError):
    pass


class NothingToWithdraw(StateError):
    pass


class ContractNotFound(StateError):
    pass


class RecoveryAlreadyExecuted(StateError):
    pass


class RecoveryLocked(StateError):
    """Raised when a recovery is executed before its unlock time"""
    pass


# ── Bounds ────────────────────────────────────────────────────

class BoundsError(EscrowError):
    """Raised when an amount, rate, or batch size is out of range"""
    pass


class ZeroAmount(BoundsError):
    pass


class AmountExceedsPrincipal(BoundsError):
    pass


class ResolutionExceedsPrincipal(BoundsError):
    pass


class FeeRateTooHigh(BoundsError):
    pass


class EmptyBatch(BoundsError):
    pass


class BatchTooLarge(BoundsError):
    pass


class InvalidRange(BoundsError):
    pass


class InvalidRecoveryPeriod(BoundsError):
    pass


# ── Integrity ─────────────────────────────────────────────────

class IntegrityError(EscrowError):
    """Raised when a hash, address, or reference does not check out"""
    pass


class CommitmentMismatch(IntegrityError):
    """Raised when hash(data, salt) does not equal the stored commitment"""
    pass


class ZeroAddress(IntegrityError):
    pass


class RequestHashMismatch(IntegrityError):
    """Raised when a signed authorization covers different business fields"""
    pass


class RecoveryNotFound(IntegrityError):
    pass


class InvalidFeeConfig(IntegrityError):
    pass


class InvalidWinner(IntegrityError):
    pass


class UnsupportedPaymentToken(IntegrityError):
    pass


class PaymentTokenMismatch(IntegrityError):
    pass


# ── Token movement ────────────────────────────────────────────

class TransferError(EscrowError):
    """Raised when a token transfer cannot be completed"""
    pass


class InsufficientBalance(TransferError):
    pass


class InsufficientAllowance(TransferError):
    pass


# ── Event ledger ──────────────────────────────────────────────

class LedgerError(EscrowError):
    """Raised when event ledger operations fail"""
    pass
