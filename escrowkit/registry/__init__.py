from escrowkit.registry.registry import EscrowRegistry
from escrowkit.registry.roles import Role, RoleRegistry

__all__ = ["EscrowRegistry", "Role", "RoleRegistry"]
