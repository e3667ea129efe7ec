from escrowkit.recovery.recovery import AccountRecovery, RECOVERY_MODULE_IDENTITY, recovery_hash

__all__ = ["AccountRecovery", "RECOVERY_MODULE_IDENTITY", "recovery_hash"]
