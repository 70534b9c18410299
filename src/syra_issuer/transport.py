"""DKG message transports.

``InMemoryNetwork`` wires n participants together through asyncio queues.
``HttpTransport`` posts JSON to the peers' admin endpoints; inbound messages
reach it through ``deliver`` from the HTTP handlers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Generic, Mapping, Optional, Set, TypeVar

import requests

from .codec import from_hex, scalar_from_bytes, scalar_to_bytes, to_hex
from .dkg import Abort, Message, ShareAck, ShareOffer
from .interfaces import CommitmentGroup

logger = logging.getLogger(__name__)

C = TypeVar("C")

OFFER_PATH = "/admin/receive_dkg"
ACK_PATH = "/admin/receive_dkg_ack"
ABORT_PATH = "/admin/receive_dkg_abort"

# Shared secret of the issuer group, sent with every peer-to-peer post.
PEER_TOKEN_HEADER = "X-Syra-Dkg-Token"


# ----------------------------
# Payload codecs (JSON bodies of the admin endpoints)
# ----------------------------

def offer_to_payload(offer: ShareOffer[C], group: CommitmentGroup[C]) -> Dict[str, Any]:
    return {
        "peer_index": offer.sender,
        "round_id": offer.round_id,
        "share": to_hex(scalar_to_bytes(offer.share)),
        "commitments": [to_hex(group.encode(c)) for c in offer.commitments],
    }


def offer_from_payload(
    payload: Mapping[str, Any],
    group: CommitmentGroup[C],
    recipient: int,
    round_id: Optional[str] = None,
) -> ShareOffer[C]:
    """Raises ValueError if the share or a commitment does not decode."""
    raw_share = from_hex(str(payload["share"]))
    share = scalar_from_bytes(raw_share, group.order) if raw_share is not None else None
    if share is None:
        raise ValueError("share is not a canonical scalar")
    commitments = []
    for text in payload["commitments"]:
        raw = from_hex(str(text))
        elem = group.decode(raw) if raw is not None else None
        if elem is None:
            raise ValueError("commitment is not a group element")
        commitments.append(elem)
    return ShareOffer(
        round_id=payload.get("round_id") or round_id or "",
        sender=int(payload["peer_index"]),
        recipient=recipient,
        share=share,
        commitments=tuple(commitments),
    )


def ack_to_payload(ack: ShareAck) -> Dict[str, Any]:
    return {
        "peer_index": ack.sender,
        "round_id": ack.round_id,
        "dealer": ack.dealer,
        "accepted": ack.accepted,
    }


def ack_from_payload(payload: Mapping[str, Any]) -> ShareAck:
    return ShareAck(
        round_id=str(payload["round_id"]),
        sender=int(payload["peer_index"]),
        dealer=int(payload["dealer"]),
        accepted=bool(payload["accepted"]),
    )


def abort_to_payload(abort: Abort) -> Dict[str, Any]:
    return {"peer_index": abort.sender, "round_id": abort.round_id, "reason": abort.reason}


def abort_from_payload(payload: Mapping[str, Any]) -> Abort:
    return Abort(
        round_id=str(payload["round_id"]),
        sender=int(payload["peer_index"]),
        reason=str(payload.get("reason", "")),
    )


# ----------------------------
# In-process network
# ----------------------------

class InMemoryNetwork:
    """Queues for participants 1..n. ``disconnect(i)`` silently drops i's traffic."""

    def __init__(self, n: int) -> None:
        self.n = n
        self._queues: Dict[int, asyncio.Queue] = {i: asyncio.Queue() for i in range(1, n + 1)}
        self._down: Set[int] = set()

    def disconnect(self, index: int) -> None:
        self._down.add(index)

    def endpoint(self, index: int) -> "InMemoryTransport":
        if index not in self._queues:
            raise ValueError(f"participant index {index} outside [1, {self.n}]")
        return InMemoryTransport(self, index)

    def _put(self, sender: int, recipient: int, message: Message) -> None:
        if sender in self._down or recipient in self._down:
            return
        queue = self._queues.get(recipient)
        if queue is None:
            logger.warning(f"[TRANSPORT] no participant {recipient}")
            return
        queue.put_nowait(message)


class InMemoryTransport:
    def __init__(self, network: InMemoryNetwork, index: int) -> None:
        self._network = network
        self.index = index

    async def send(self, recipient: int, message: Message) -> None:
        self._network._put(self.index, recipient, message)

    async def receive(self) -> Message:
        return await self._network._queues[self.index].get()


# ----------------------------
# HTTP
# ----------------------------

class HttpTransport(Generic[C]):
    def __init__(
        self,
        index: int,
        peers: Mapping[int, str],
        group: CommitmentGroup[C],
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        auth_token: Optional[str] = None,
        retries: int = 3,
        backoff: float = 0.5,
        max_pending: int = 1024,
    ) -> None:
        if retries < 1:
            raise ValueError("retries must be at least 1")
        self.index = index
        self.peers = {int(k): v.rstrip("/") for k, v in peers.items()}
        self.group = group
        self.timeout = timeout
        self.retries = retries
        self.backoff = backoff
        self._session = session or requests.Session()
        self._headers = {PEER_TOKEN_HEADER: auth_token} if auth_token else {}
        self._inbox: asyncio.Queue = asyncio.Queue(maxsize=max_pending)

    @property
    def pending(self) -> int:
        return self._inbox.qsize()

    def deliver(self, message: Message) -> bool:
        """Hand an inbound message (decoded by an HTTP handler) to the round.

        Returns False if the inbox is full and the message was dropped.
        """
        try:
            self._inbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"[TRANSPORT] inbox full; dropped message from peer {message.sender}")
            return False
        return True

    async def receive(self) -> Message:
        return await self._inbox.get()

    async def send(self, recipient: int, message: Message) -> None:
        base = self.peers.get(recipient)
        if base is None:
            logger.warning(f"[TRANSPORT] no address for peer {recipient}; message dropped")
            return
        if isinstance(message, ShareOffer):
            path, payload = OFFER_PATH, offer_to_payload(message, self.group)
        elif isinstance(message, ShareAck):
            path, payload = ACK_PATH, ack_to_payload(message)
        else:
            path, payload = ABORT_PATH, abort_to_payload(message)
        await asyncio.to_thread(self._post, recipient, base + path, payload)

    def _post(self, recipient: int, url: str, payload: Dict[str, Any]) -> bool:
        for attempt in range(1, self.retries + 1):
            try:
                resp = self._session.post(url, json=payload, headers=self._headers, timeout=self.timeout)
                resp.raise_for_status()
                return True
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                # A 4xx is the peer's answer (e.g. a rejected share), not a lost message.
                if status is not None and status < 500:
                    logger.warning(f"[TRANSPORT] peer {recipient} refused {url}: {e}")
                    return False
                error: Exception = e
            except requests.RequestException as e:
                error = e
            if attempt < self.retries:
                time.sleep(self.backoff * attempt)
        logger.warning(f"[TRANSPORT] peer {recipient} unreachable after {self.retries} attempts ({url}): {error}")
        return False
