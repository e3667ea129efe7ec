"""
Deposit Authorization Verifier

A deposit (or an augmentation of one) only goes through with an admin
co-signature over the request.

What gets signed:
    request_hash = SHA-256(JCS({"escrow", "client", "request": <business fields>}))
    payload      = {"request_hash": request_hash, "expiration": <unix seconds>,
                    "nonce": <32 hex chars>}
    signature    = Ed25519(JCS(payload))                       externally-owned signer
                 = whatever the signer's validator accepts     contract signer

Validation order (fastest to slowest, clearest to most opaque):
    Signer role → Expiration → Request hash → Signature → Not yet used

An accepted authorization is consumed: its digest is recorded and any
later deposit presenting it raises AuthorizationReused. Consumption is
journaled, so a deposit that fails after verification leaves the
authorization usable. A rejected authorization raises before the calling
engine touches any state.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, Dict, Protocol, Set

from escrowkit.core.canonical import canonical_hash, canonicalize
from escrowkit.core.clock import Clock
from escrowkit.core.crypto import Ed25519KeyManager, is_public_key_hex
from escrowkit.core.exceptions import (
    AuthorizationExpired,
    AuthorizationReused,
    InvalidSignature,
    NotAdmin,
    RequestHashMismatch,
    UnauthorizedAccount,
    ZeroAddress,
)
from escrowkit.core.transaction import Journal, Journaled
from escrowkit.registry.roles import RoleRegistry


logger = logging.getLogger("escrowkit.authorization")

# Return value a contract signer's validator gives for an accepted signature.
SIGNATURE_MAGIC = "1626ba7e"


class SignatureValidator(Protocol):
    def is_valid_signature(self, digest: str, signature: str) -> Any:
        """Return SIGNATURE_MAGIC to accept; anything else rejects."""
        ...


@dataclass(frozen=True)
class DepositAuthorization:
    signer:       str
    expiration:   int
    request_hash: str
    signature:    str
    nonce:        str = ""

    def signed_payload(self) -> Dict[str, Any]:
        return {
            "request_hash": self.request_hash,
            "expiration":   self.expiration,
            "nonce":        self.nonce,
        }

    def digest(self) -> str:
        return canonical_hash(self.signed_payload())


def deposit_request_hash(escrow: str, client: str, request) -> str:
    """Hash of the business fields, bound to one escrow instance and client."""
    return canonical_hash({
        "escrow":  escrow,
        "client":  client,
        "request": request.hash_fields(),
    })


def sign_deposit_authorization(
    key_manager: Ed25519KeyManager,
    escrow: str,
    client: str,
    request,
    expiration: int,
) -> DepositAuthorization:
    """Produce an admin co-signature for a deposit request."""
    unsigned = DepositAuthorization(
        signer=       key_manager.public_key_hex,
        expiration=   expiration,
        request_hash= deposit_request_hash(escrow, client, request),
        signature=    "",
        nonce=        uuid.uuid4().hex,
    )
    return replace(
        unsigned, signature=key_manager.sign(canonicalize(unsigned.signed_payload()))
    )


class DepositAuthorizationVerifier(Journaled):

    _journaled = ("_consumed",)

    def __init__(self, roles: RoleRegistry, clock: Clock, journal: Journal):
        self.roles = roles
        self.clock = clock
        self.journal = journal
        self._contract_signers: Dict[str, SignatureValidator] = {}
        self._consumed: Set[str] = set()
        journal.register(self)

    def is_consumed(self, authorization: DepositAuthorization) -> bool:
        return authorization.digest() in self._consumed

    def register_contract_signer(
        self, caller: str, identity: str, validator: SignatureValidator
    ) -> None:
        if caller != self.roles.owner():
            raise UnauthorizedAccount(
                "only the owner may register contract signers", {"caller": caller}
            )
        if not identity:
            raise ZeroAddress("contract signer identity must be set")
        self._contract_signers[identity] = validator
        logger.info("registered contract signer %s", identity)

    def verify(
        self,
        escrow: str,
        client: str,
        request,
        authorization: DepositAuthorization,
    ) -> None:
        """Raise unless authorization covers exactly this request and is still live."""
        if authorization is None:
            raise InvalidSignature("deposit requires an admin authorization")

        if not self.roles.is_admin(authorization.signer):
            raise NotAdmin(
                "authorization signer is not an admin",
                {"signer": authorization.signer[:16]},
            )

        now = self.clock.now()
        if authorization.expiration < now:
            raise AuthorizationExpired(
                "deposit authorization has expired",
                {"expiration": authorization.expiration, "now": now},
            )

        expected = deposit_request_hash(escrow, client, request)
        if authorization.request_hash != expected:
            raise RequestHashMismatch(
                "authorization covers a different request",
                {"expected": expected[:16], "got": authorization.request_hash[:16]},
            )

        if not self._signature_ok(authorization):
            raise InvalidSignature(
                "authorization signature rejected", {"signer": authorization.signer[:16]}
            )

        digest = authorization.digest()
        if digest in self._consumed:
            raise AuthorizationReused(
                "deposit authorization was already used", {"digest": digest[:16]}
            )
        self._consumed.add(digest)
        logger.debug("deposit authorization accepted for %s on %s", client, escrow)

    def _signature_ok(self, authorization: DepositAuthorization) -> bool:
        validator = self._contract_signers.get(authorization.signer)
        if validator is not None:
            result = validator.is_valid_signature(
                authorization.digest(), authorization.signature
            )
            return result == SIGNATURE_MAGIC
        if is_public_key_hex(authorization.signer):
            return Ed25519KeyManager.verify_detached(
                canonicalize(authorization.signed_payload()),
                authorization.signature,
                authorization.signer,
            )
        return False
