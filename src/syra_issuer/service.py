"""Issuer operations behind the HTTP surface.

The service never talks HTTP itself; ``syra_issuer.app`` adapts requests to
these calls and maps the errors to status codes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Generic, Mapping, Optional, Tuple, TypeVar

from .codec import to_hex
from .core import Params, serialize_user_key
from .dkg import DKGCoordinator, DKGResult, ShareOffer
from .errors import PreconditionFailed, ProtocolFault, Unauthorized
from .interfaces import CommitmentGroup
from .keystore import IssuerKeyStore, threshold_ivk
from .statement import ProofGate
from .transport import HttpTransport, abort_from_payload, ack_from_payload, offer_from_payload
from .vss import verify_share

logger = logging.getLogger(__name__)

P1 = TypeVar("P1")
P2 = TypeVar("P2")


class IssuerService(Generic[P1, P2]):
    def __init__(
        self,
        params: Params[P1, P2],
        keystore: IssuerKeyStore[P1, P2],
        gate: ProofGate,
        coordinator: Optional[DKGCoordinator] = None,
        transport: Optional[HttpTransport] = None,
        commitment_group: Optional[CommitmentGroup] = None,
        session_id: str = "",
    ) -> None:
        self.params = params
        self.keystore = keystore
        self.gate = gate
        self.coordinator = coordinator
        self.transport = transport
        self.commitment_group = commitment_group
        self.session_id = session_id

    # ----------------------------
    # Key issuance
    # ----------------------------

    def authorize_and_derive(self, user_id: str, kid: str, proof_b64: str) -> Dict[str, str]:
        """Verify the proof, then derive (usk, usk_hat). Hex-encoded, ivk included."""
        if not self.keystore.ready:
            raise PreconditionFailed("issuer key not initialized")
        if not self.gate.authorize(user_id, kid, proof_b64):
            raise Unauthorized("verification failed")
        key = self.keystore.derive(user_id)
        usk, usk_hat = serialize_user_key(self.params, key)
        logger.info(f"[API] issued user key (kid={kid})")
        return {
            "ivk": to_hex(self.keystore.ivk_bytes()),
            "usk": to_hex(usk),
            "usk_hat": to_hex(usk_hat),
        }

    def published_ivk(self) -> str:
        return to_hex(self.keystore.ivk_bytes())

    # ----------------------------
    # Threshold DKG
    # ----------------------------

    def _require_threshold(self) -> DKGCoordinator:
        if self.coordinator is None or self.transport is None or self.commitment_group is None:
            raise PreconditionFailed("issuer is not running in threshold mode")
        return self.coordinator

    def dkg_status(self) -> Dict[str, Any]:
        """Round state; once a share is installed, also g2^share and the joint commitments.

        Any observer holding t public shares recovers the joint ivk_hat by
        Lagrange interpolation in the exponent.
        """
        coordinator = self._require_threshold()
        status: Dict[str, Any] = {"state": coordinator.state.value, "round_id": coordinator.round_id}
        result = self.keystore.share
        if result is not None:
            group = self.commitment_group
            status["public_share"] = to_hex(group.encode(result.share.commitment))
            status["joint_commitments"] = [to_hex(group.encode(c)) for c in result.joint_commitments]
        return status

    def start_dkg(self, round_id: str) -> "asyncio.Task[DKGResult]":
        """Explicitly launch a fresh round; its result is installed on success.

        Every issuer must be given the same, previously unused round id.
        """
        coordinator = self._require_threshold()
        if self.keystore.ready:
            raise PreconditionFailed("issuer key already installed")
        if coordinator.running:
            raise PreconditionFailed("a DKG round is already running")
        if not round_id:
            raise PreconditionFailed("a round id is required")
        if coordinator.has_run(round_id):
            raise PreconditionFailed(f"round id {round_id} was already used; start a retry under a new id")
        try:
            task = coordinator.start_round(round_id)
        except (RuntimeError, ValueError) as e:
            # a round scheduled but not yet started
            raise PreconditionFailed(str(e)) from e
        task.add_done_callback(self._on_round_done)
        logger.info(f"[DKG] participant {coordinator.index} started round {round_id}")
        return task

    def _on_round_done(self, task: "asyncio.Task[DKGResult]") -> None:
        if task.cancelled():
            logger.warning("[DKG] round abandoned")
            return
        exc = task.exception()
        if exc is not None:
            faulty = sorted(getattr(exc, "faulty", ()))
            logger.error(f"[DKG] round failed: {exc} (faulty peers: {faulty})")
            return
        result = task.result()
        ivk = threshold_ivk(self.params, result.joint_public_key, self.session_id)
        self.keystore.install_threshold(result, ivk)

    def precheck_share(self, payload: Mapping[str, Any]) -> Tuple[ShareOffer, bool]:
        """Decode an inbound offer and run the Feldman check on it.

        CPU-bound; the HTTP handler runs it in the thread pool.
        """
        coordinator = self._require_threshold()
        try:
            offer = offer_from_payload(payload, self.commitment_group, coordinator.index, coordinator.round_id)
        except (KeyError, ValueError) as e:
            raise ProtocolFault(f"malformed share from peer {payload.get('peer_index')}: {e}") from e
        ok = len(offer.commitments) == coordinator.t and verify_share(
            self.commitment_group, offer.commitments, coordinator.index, offer.share
        )
        return offer, ok

    def _drop_inbound(self, kind: str, sender: int, round_id: str) -> bool:
        # Nothing drains the inbox once a key is installed, and a finished
        # round never reads its messages again.
        coordinator = self._require_threshold()
        if self.keystore.ready or coordinator.is_stale(round_id):
            logger.info(f"[DKG] ignoring {kind} from peer {sender} for round {round_id or '?'}")
            return True
        return False

    def accept_share(self, offer: ShareOffer, ok: bool) -> None:
        # A share that failed the check is still forwarded so the round
        # records the dealer as faulty and broadcasts the complaint.
        if self._drop_inbound("share", offer.sender, offer.round_id):
            return
        self.transport.deliver(offer)
        if not ok:
            raise ProtocolFault(f"share from peer {offer.sender} failed Feldman check", faulty=[offer.sender])

    def receive_share(self, payload: Mapping[str, Any]) -> None:
        offer, ok = self.precheck_share(payload)
        self.accept_share(offer, ok)

    def receive_ack(self, payload: Mapping[str, Any]) -> None:
        ack = ack_from_payload(payload)
        if not self._drop_inbound("ack", ack.sender, ack.round_id):
            self.transport.deliver(ack)

    def receive_abort(self, payload: Mapping[str, Any]) -> None:
        abort = abort_from_payload(payload)
        if self._drop_inbound("abort", abort.sender, abort.round_id):
            return
        logger.warning(f"[DKG] peer {abort.sender} aborted round {abort.round_id}: {abort.reason}")
        self.transport.deliver(abort)
