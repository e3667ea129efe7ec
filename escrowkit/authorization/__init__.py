from escrowkit.authorization.verifier import (
    SIGNATURE_MAGIC,
    DepositAuthorization,
    DepositAuthorizationVerifier,
    SignatureValidator,
    deposit_request_hash,
    sign_deposit_authorization,
)

__all__ = [
    "SIGNATURE_MAGIC",
    "DepositAuthorization",
    "DepositAuthorizationVerifier",
    "SignatureValidator",
    "deposit_request_hash",
    "sign_deposit_authorization",
]
