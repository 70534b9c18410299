"""Process-lifetime owner of the issuer secret.

Standalone mode holds isk itself. Threshold mode holds only this issuer's DKG
share together with the joint ivk; isk is never reconstructed.
"""

from __future__ import annotations

import logging
import threading
from typing import Generic, Optional, TypeVar

from .codec import IVK_W_DST, hash_to_field, normalize_identifier
from .core import (
    IKGen,
    Identifier,
    IssuerVerificationKey,
    Params,
    UKGen,
    UserKey,
    serialize_ivk,
)
from .dkg import DKGResult
from .errors import AlreadyInitialized, PreconditionFailed

logger = logging.getLogger(__name__)

P1 = TypeVar("P1")
P2 = TypeVar("P2")

STANDALONE = "standalone"
THRESHOLD = "threshold"


def threshold_ivk(params: Params[P1, P2], ivk_hat: P2, session_id: str) -> IssuerVerificationKey[P1, P2]:
    """Joint ivk of a DKG session.

    ω is derived from the session id, so every issuer of the session
    publishes the same (W, W_hat) next to the joint ivk_hat.
    """
    G = params.group
    omega = hash_to_field(normalize_identifier(session_id), G.order, IVK_W_DST)
    return IssuerVerificationKey(
        ivk_hat=ivk_hat,
        w=G.g1_mul(G.g1(), omega),
        w_hat=G.g2_mul(G.g2(), omega),
    )


class IssuerKeyStore(Generic[P1, P2]):
    def __init__(self, params: Params[P1, P2]) -> None:
        self.params = params
        self._lock = threading.Lock()
        self._mode: Optional[str] = None
        self._isk: Optional[int] = None
        self._share: Optional[DKGResult] = None
        self._ivk: Optional[IssuerVerificationKey[P1, P2]] = None
        self._ivk_bytes: Optional[bytes] = None

    def __repr__(self) -> str:
        return f"IssuerKeyStore(mode={self._mode!r}, ready={self.ready})"

    @property
    def mode(self) -> Optional[str]:
        return self._mode

    @property
    def ready(self) -> bool:
        return self._ivk is not None

    @property
    def share(self) -> Optional[DKGResult]:
        return self._share

    def initialize(self, isk: Optional[int] = None) -> IssuerVerificationKey[P1, P2]:
        """Sample (or accept) isk and publish ivk. Callable once per process."""
        with self._lock:
            if self._mode is not None:
                raise AlreadyInitialized(f"issuer key store already initialized ({self._mode})")
            pair = IKGen(self.params, isk)
            self._isk = pair.isk
            self._publish(STANDALONE, pair.ivk)
        logger.info("[KEYSTORE] standalone issuer key initialized")
        return pair.ivk

    def install_threshold(self, result: DKGResult, ivk: IssuerVerificationKey[P1, P2]) -> None:
        with self._lock:
            if self._mode is not None:
                raise AlreadyInitialized(f"issuer key store already initialized ({self._mode})")
            self._share = result
            self._publish(THRESHOLD, ivk)
        logger.info(
            f"[KEYSTORE] threshold share installed (round {result.round_id}, "
            f"participant {result.index}, qualified {sorted(result.qualified)})"
        )

    def _publish(self, mode: str, ivk: IssuerVerificationKey[P1, P2]) -> None:
        self._ivk_bytes = serialize_ivk(self.params, ivk)
        self._ivk = ivk
        self._mode = mode

    @property
    def ivk(self) -> IssuerVerificationKey[P1, P2]:
        if self._ivk is None:
            raise PreconditionFailed("issuer key not initialized")
        return self._ivk

    def ivk_bytes(self) -> bytes:
        if self._ivk_bytes is None:
            raise PreconditionFailed("issuer key not initialized")
        return self._ivk_bytes

    def derive(self, user_identifier: Identifier) -> UserKey[P1, P2]:
        if self._mode is None:
            raise PreconditionFailed("issuer key not initialized")
        if self._isk is None:
            raise PreconditionFailed("key derivation needs the full issuer secret; this issuer holds a share")
        return UKGen(self.params, self._isk, user_identifier)
