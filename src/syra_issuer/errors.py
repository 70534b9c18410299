"""Error taxonomy for the issuer.

Client-visible failures are deliberately coarse: every verification problem is
an ``Unauthorized``, whatever check actually failed.
"""

from __future__ import annotations

from typing import FrozenSet, Iterable


class SyraError(Exception):
    """Base class for all issuer errors."""


class Unauthorized(SyraError):
    """The proof gate rejected the request."""


class PreconditionFailed(SyraError):
    """Issuer key material is not available yet (or not in this mode)."""


class DerivationFailure(SyraError):
    """s + isk == 0 for the requested identity, so no inverse exists."""


class ProtocolFault(SyraError):
    """A DKG round failed: bad shares, too few honest peers, or a timeout."""

    def __init__(self, message: str, faulty: Iterable[int] = ()) -> None:
        super().__init__(message)
        self.faulty: FrozenSet[int] = frozenset(faulty)


class PeerAborted(ProtocolFault):
    """A peer broadcast an abort for the current DKG round."""


class JwkUnavailable(SyraError):
    """The identity provider's signing key could not be resolved."""


class AlreadyInitialized(RuntimeError):
    """Issuer key material was initialized twice."""
