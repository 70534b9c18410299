"""SyRA user-key issuer: proof-gated derivation with a standalone or threshold issuer key."""

from .core import (
    IKGen,
    IssuerKeyPair,
    IssuerVerificationKey,
    Params,
    UKGen,
    UKVerify,
    UserKey,
    parse_ivk,
    serialize_ivk,
    verify_user_key_bytes,
)
from .dkg import DKGCoordinator, DKGResult, DKGRound, RoundState
from .errors import (
    AlreadyInitialized,
    DerivationFailure,
    JwkUnavailable,
    PeerAborted,
    PreconditionFailed,
    ProtocolFault,
    SyraError,
    Unauthorized,
)
from .groth16 import ProofVerifier, load_verifying_key
from .keystore import IssuerKeyStore
from .statement import ProofGate

__all__ = [
    "AlreadyInitialized",
    "DKGCoordinator",
    "DKGResult",
    "DKGRound",
    "DerivationFailure",
    "IKGen",
    "IssuerKeyPair",
    "IssuerKeyStore",
    "IssuerVerificationKey",
    "JwkUnavailable",
    "Params",
    "PeerAborted",
    "PreconditionFailed",
    "ProofGate",
    "ProofVerifier",
    "ProtocolFault",
    "RoundState",
    "SyraError",
    "UKGen",
    "UKVerify",
    "Unauthorized",
    "UserKey",
    "load_verifying_key",
    "parse_ivk",
    "serialize_ivk",
    "verify_user_key_bytes",
]
