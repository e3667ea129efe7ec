from escrowkit.runtime.context import EscrowRuntime

__all__ = ["EscrowRuntime"]
