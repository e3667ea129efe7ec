"""
Role registry.

Each identity holds a set of roles. The four-role vocabulary is fixed;
only the registry owner may grant or revoke. Grants and ownership take
part in the runtime journal, so a rolled-back operation undoes them.
"""

import logging
from enum import Enum
from typing import Dict, Set

from escrowkit.core.exceptions import UnauthorizedAccount, ZeroAddress
from escrowkit.core.transaction import Journal, Journaled, atomic


logger = logging.getLogger("escrowkit.roles")


class Role(Enum):
    ADMIN      = "admin"
    GUARDIAN   = "guardian"
    STRATEGIST = "strategist"
    DAO        = "dao"


class RoleRegistry(Journaled):

    _journaled = ("_owner", "_roles")

    def __init__(self, owner: str, journal: Journal):
        if not owner:
            raise ZeroAddress("registry owner must be set")
        self._owner = owner
        self._roles: Dict[str, Set[Role]] = {}
        self.journal = journal
        journal.register(self)

    def owner(self) -> str:
        return self._owner

    @atomic
    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._only_owner(caller)
        if not new_owner:
            raise ZeroAddress("new owner must be set")
        logger.info("role registry ownership %s -> %s", self._owner, new_owner)
        self._owner = new_owner

    @atomic
    def grant_role(self, caller: str, account: str, role: Role) -> None:
        self._only_owner(caller)
        if not account:
            raise ZeroAddress("cannot grant a role to the zero address")
        self._roles.setdefault(account, set()).add(role)
        logger.info("granted %s to %s", role.value, account)

    @atomic
    def revoke_role(self, caller: str, account: str, role: Role) -> None:
        self._only_owner(caller)
        self._roles.get(account, set()).discard(role)
        logger.info("revoked %s from %s", role.value, account)

    def roles_of(self, account: str) -> Set[Role]:
        return set(self._roles.get(account, set()))

    def has_role(self, account: str, role: Role) -> bool:
        return role in self._roles.get(account, ())

    def is_admin(self, account: str) -> bool:
        return self.has_role(account, Role.ADMIN)

    def is_guardian(self, account: str) -> bool:
        return self.has_role(account, Role.GUARDIAN)

    def is_strategist(self, account: str) -> bool:
        return self.has_role(account, Role.STRATEGIST)

    def is_dao(self, account: str) -> bool:
        return self.has_role(account, Role.DAO)

    def _only_owner(self, caller: str) -> None:
        if caller != self._owner:
            raise UnauthorizedAccount(
                "only the registry owner may change roles", {"caller": caller}
            )
