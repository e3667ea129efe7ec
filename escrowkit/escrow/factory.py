"""
Escrow factory: deploys escrow instances and remembers which identities
it created, so the recovery module can tell real escrows from impostors.
"""

import logging
from typing import Dict, Type

from escrowkit.core.exceptions import ContractNotFound, NotAdmin
from escrowkit.core.models import EscrowType
from escrowkit.escrow.base import EscrowBase, EscrowDependencies
from escrowkit.escrow.fixed_price import FixedPriceEscrow
from escrowkit.escrow.hourly import HourlyEscrow
from escrowkit.escrow.milestone import MilestoneEscrow


logger = logging.getLogger("escrowkit.factory")

ENGINES: Dict[EscrowType, Type[EscrowBase]] = {
    EscrowType.FIXED_PRICE: FixedPriceEscrow,
    EscrowType.MILESTONE:   MilestoneEscrow,
    EscrowType.HOURLY:      HourlyEscrow,
}


class EscrowFactory:

    def __init__(self, deps: EscrowDependencies):
        self.deps = deps
        self._deployed: Dict[str, EscrowBase] = {}
        self._counter = 0

    def deploy(self, escrow_type: EscrowType, admin: str) -> EscrowBase:
        """Deploy a new escrow instance. Identities look like escrow:<type>:<n>."""
        if not self.deps.roles.is_admin(admin):
            raise NotAdmin("only an admin may deploy escrows", {"caller": admin})
        self._counter += 1
        identity = f"escrow:{escrow_type.value}:{self._counter}"
        escrow = ENGINES[escrow_type](identity, self.deps)
        self._deployed[identity] = escrow
        logger.info("deployed %s by %s", identity, admin)
        return escrow

    def get(self, identity: str) -> EscrowBase:
        try:
            return self._deployed[identity]
        except KeyError:
            raise ContractNotFound(
                "escrow was not deployed by this factory", {"escrow": identity}
            ) from None

    def is_deployed(self, identity: str) -> bool:
        return identity in self._deployed

    def deployed(self):
        return list(self._deployed.values())
