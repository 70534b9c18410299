"""Threshold distributed key generation (Pedersen DKG with Feldman VSS).

Every participant deals a fresh random degree-(t-1) polynomial, sends f_j(i) to
each peer i together with commitments to its coefficients, and broadcasts an
ack (or a complaint) for every share it receives. A dealer is qualified if its
share verified locally and no peer complained about it. Each participant's
final share is the sum of the qualified dealers' shares; the joint public key
is the product of their constant-term commitments.

``DKGRound`` is the pure state machine for one round. ``DKGCoordinator`` drives
a round over a ``Transport`` with a round-level deadline.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, Generic, List, Optional, Set, Tuple, TypeVar, Union

from .errors import PeerAborted, ProtocolFault
from .interfaces import CommitmentGroup, Transport
from .vss import combine_commitments, commit, evaluate, expected_commitment, sample_polynomial, verify_share

logger = logging.getLogger(__name__)

C = TypeVar("C")


class RoundState(str, Enum):
    UNINITIALIZED = "uninitialized"
    SHARES_DISTRIBUTING = "shares_distributing"
    SHARES_VERIFYING = "shares_verifying"
    COMMITTED = "committed"
    READY = "ready"
    ABORTED = "aborted"


# ----------------------------
# Messages
# ----------------------------

@dataclass(frozen=True)
class ShareOffer(Generic[C]):
    round_id: str
    sender: int
    recipient: int
    share: int = field(repr=False)
    commitments: Tuple[C, ...] = field(repr=False)


@dataclass(frozen=True)
class ShareAck:
    round_id: str
    sender: int
    dealer: int
    accepted: bool


@dataclass(frozen=True)
class Abort:
    round_id: str
    sender: int
    reason: str


Message = Union[ShareOffer, ShareAck, Abort]


# ----------------------------
# Results
# ----------------------------

@dataclass(frozen=True)
class DKGShare(Generic[C]):
    index: int
    value: int = field(repr=False)
    commitment: C = field(repr=False)


@dataclass(frozen=True)
class DKGResult(Generic[C]):
    round_id: str
    index: int
    n: int
    t: int
    share: DKGShare[C]
    qualified: FrozenSet[int]
    joint_commitments: Tuple[C, ...] = field(repr=False)

    @property
    def joint_public_key(self) -> C:
        return self.joint_commitments[0]

    def public_share(self, group: CommitmentGroup[C], index: int) -> C:
        """g^{x_index} for any participant, computed from public data only."""
        return expected_commitment(group, self.joint_commitments, index)


def _check_parameters(index: int, n: int, t: int) -> None:
    if not 1 <= t <= n:
        raise ValueError(f"threshold must satisfy 1 <= t <= n (t={t}, n={n})")
    if not 1 <= index <= n:
        raise ValueError(f"participant index {index} outside [1, {n}]")


# ----------------------------
# One round, no I/O
# ----------------------------

class DKGRound(Generic[C]):
    def __init__(
        self,
        group: CommitmentGroup[C],
        index: int,
        n: int,
        t: int,
        round_id: str,
        sample: Optional[Callable[[], int]] = None,
    ) -> None:
        _check_parameters(index, n, t)
        self.group = group
        self.index = index
        self.n = n
        self.t = t
        self.round_id = round_id
        self.state = RoundState.UNINITIALIZED
        self.abort_reason: Optional[str] = None
        self.faulty: Set[int] = set()

        self._sample = sample or (lambda: secrets.randbelow(group.order))
        self._coeffs: Optional[Tuple[int, ...]] = None
        self._verified: Dict[int, Tuple[int, Tuple[C, ...]]] = {}
        self._seen: Set[int] = set()
        self._acks: Dict[int, Set[int]] = {}
        self._share_phase_closed = False
        self._share: Optional[DKGShare[C]] = None
        self._joint: Optional[Tuple[C, ...]] = None
        self._qualified: FrozenSet[int] = frozenset()

    def __repr__(self) -> str:
        return f"DKGRound(round_id={self.round_id!r}, index={self.index}, state={self.state.value})"

    def _require(self, *states: RoundState) -> None:
        if self.state not in states:
            raise RuntimeError(f"DKG round {self.round_id} is {self.state.value}")

    @property
    def peers(self) -> List[int]:
        return [j for j in range(1, self.n + 1) if j != self.index]

    @property
    def qualified(self) -> FrozenSet[int]:
        if self.state in (RoundState.COMMITTED, RoundState.READY):
            return self._qualified
        return frozenset(d for d in self._verified if d not in self.faulty)

    def missing_dealers(self) -> List[int]:
        return [j for j in self.peers if j not in self._seen]

    def acks_complete(self) -> bool:
        """Every peer that dealt to us has acked every dealer other than itself."""
        alive = [j for j in self.peers if j in self._seen]
        return all(len(self._acks.get(j, ())) >= self.n - 1 for j in alive)

    def start(self) -> List[ShareOffer[C]]:
        self._require(RoundState.UNINITIALIZED)
        order = self.group.order
        self._coeffs = sample_polynomial(self.t - 1, order, self._sample)
        commitments = commit(self.group, self._coeffs)

        self._verified[self.index] = (evaluate(self._coeffs, self.index, order), commitments)
        self._seen.add(self.index)

        offers = [
            ShareOffer(
                round_id=self.round_id,
                sender=self.index,
                recipient=j,
                share=evaluate(self._coeffs, j, order),
                commitments=commitments,
            )
            for j in self.peers
        ]
        self.state = RoundState.SHARES_DISTRIBUTING
        logger.info(f"[DKG] round {self.round_id}: participant {self.index} dealt {len(offers)} shares")
        return offers

    def receive_offer(self, offer: ShareOffer[C]) -> Optional[ShareAck]:
        """Verify a peer's share. Returns the ack to broadcast, or None if ignored."""
        self._require(RoundState.SHARES_DISTRIBUTING, RoundState.SHARES_VERIFYING)
        if offer.round_id != self.round_id or offer.recipient != self.index:
            logger.debug(f"[DKG] dropping offer for round {offer.round_id} / recipient {offer.recipient}")
            return None
        if offer.sender not in self.peers:
            logger.warning(f"[DKG] round {self.round_id}: offer from unknown sender {offer.sender}")
            return None
        if offer.sender in self._seen:
            logger.warning(f"[DKG] round {self.round_id}: duplicate offer from {offer.sender} ignored")
            return None
        if self._share_phase_closed:
            logger.warning(f"[DKG] round {self.round_id}: late offer from {offer.sender} ignored")
            return None

        self._seen.add(offer.sender)
        self.state = RoundState.SHARES_VERIFYING
        ok = len(offer.commitments) == self.t and verify_share(
            self.group, offer.commitments, self.index, offer.share
        )
        if ok:
            self._verified[offer.sender] = (offer.share, tuple(offer.commitments))
        else:
            self.faulty.add(offer.sender)
            logger.warning(f"[DKG] round {self.round_id}: share from {offer.sender} failed Feldman check")
        return ShareAck(round_id=self.round_id, sender=self.index, dealer=offer.sender, accepted=ok)

    def close_share_phase(self) -> List[ShareAck]:
        """Stop accepting offers; complain about every dealer we never heard from."""
        self._require(RoundState.SHARES_DISTRIBUTING, RoundState.SHARES_VERIFYING)
        self._share_phase_closed = True
        complaints = []
        for j in self.missing_dealers():
            self.faulty.add(j)
            complaints.append(ShareAck(round_id=self.round_id, sender=self.index, dealer=j, accepted=False))
        if complaints:
            logger.warning(
                f"[DKG] round {self.round_id}: no share from {[a.dealer for a in complaints]}"
            )
        return complaints

    def receive_ack(self, ack: ShareAck) -> None:
        self._require(RoundState.SHARES_DISTRIBUTING, RoundState.SHARES_VERIFYING)
        if ack.round_id != self.round_id or ack.sender not in self.peers:
            return
        if not 1 <= ack.dealer <= self.n or ack.dealer == ack.sender:
            return
        self._acks.setdefault(ack.sender, set()).add(ack.dealer)
        if not ack.accepted and ack.dealer not in self.faulty:
            self.faulty.add(ack.dealer)
            logger.warning(f"[DKG] round {self.round_id}: {ack.sender} complained about dealer {ack.dealer}")

    def commit(self) -> DKGShare[C]:
        self._require(RoundState.SHARES_DISTRIBUTING, RoundState.SHARES_VERIFYING)
        qualified = self.qualified
        if len(qualified) < self.t:
            faulty = sorted(self.faulty)
            self.abort(f"only {len(qualified)} qualified dealers, need {self.t}")
            raise ProtocolFault(
                f"DKG round {self.round_id} aborted: {len(qualified)} of {self.t} required dealers qualified",
                faulty=faulty,
            )

        order = self.group.order
        dealers = sorted(qualified)
        value = sum(self._verified[d][0] for d in dealers) % order
        self._joint = combine_commitments(self.group, [self._verified[d][1] for d in dealers])
        self._share = DKGShare(
            index=self.index,
            value=value,
            commitment=self.group.exp(self.group.generator(), value),
        )
        self._qualified = qualified
        self._discard_buffers()
        self.state = RoundState.COMMITTED
        logger.info(f"[DKG] round {self.round_id}: committed with dealers {dealers}")
        return self._share

    def finalize(self) -> DKGResult[C]:
        self._require(RoundState.COMMITTED)
        assert self._share is not None and self._joint is not None
        self.state = RoundState.READY
        logger.info(f"[DKG] round {self.round_id}: participant {self.index} ready")
        return DKGResult(
            round_id=self.round_id,
            index=self.index,
            n=self.n,
            t=self.t,
            share=self._share,
            qualified=self._qualified,
            joint_commitments=self._joint,
        )

    def abort(self, reason: str) -> None:
        if self.state is RoundState.ABORTED:
            return
        if self.state in (RoundState.COMMITTED, RoundState.READY):
            raise RuntimeError(f"DKG round {self.round_id} is already {self.state.value}")
        self._discard_buffers()
        self.abort_reason = reason
        self.state = RoundState.ABORTED
        logger.warning(f"[DKG] round {self.round_id}: aborted ({reason})")

    def _discard_buffers(self) -> None:
        # Coefficients and received shares of a round are never reused.
        self._coeffs = None
        self._verified = {}


# ----------------------------
# Async driver
# ----------------------------

class DKGCoordinator(Generic[C]):
    """Runs DKG rounds for one participant over a transport."""

    def __init__(
        self,
        group: CommitmentGroup[C],
        index: int,
        n: int,
        t: int,
        transport: Transport[Message],
        timeout: float = 30.0,
        sample: Optional[Callable[[], int]] = None,
    ) -> None:
        _check_parameters(index, n, t)
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.group = group
        self.index = index
        self.n = n
        self.t = t
        self.timeout = timeout
        self._transport = transport
        self._sample = sample
        self._round: Optional[DKGRound[C]] = None
        self._task: Optional[asyncio.Task] = None
        self._used_round_ids: Set[str] = set()
        self.last_result: Optional[DKGResult[C]] = None

    @property
    def state(self) -> RoundState:
        return self._round.state if self._round is not None else RoundState.UNINITIALIZED

    @property
    def round_id(self) -> Optional[str]:
        return self._round.round_id if self._round is not None else None

    @property
    def running(self) -> bool:
        return self._round is not None and self._round.state in (
            RoundState.SHARES_DISTRIBUTING,
            RoundState.SHARES_VERIFYING,
        )

    def has_run(self, round_id: str) -> bool:
        """True once a round with this id has been started here, finished or not."""
        return round_id in self._used_round_ids

    def is_stale(self, round_id: str) -> bool:
        """Messages for this round can no longer reach a running round."""
        return self.has_run(round_id) and not (self.running and round_id == self.round_id)

    def start_round(self, round_id: Optional[str] = None) -> "asyncio.Task[DKGResult[C]]":
        """Launch run_round as a task so it can be abandoned later."""
        if self.running or (self._task is not None and not self._task.done()):
            raise RuntimeError("a DKG round is already running")
        if round_id is not None and self.has_run(round_id):
            raise ValueError(f"DKG round id {round_id!r} was already used")
        self._task = asyncio.get_running_loop().create_task(self.run_round(round_id))
        return self._task

    def abandon(self, reason: str = "abandoned") -> None:
        """Abort the current round (if not yet committed) and cancel its task."""
        if self.running:
            self._round.abort(reason)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _broadcast(self, message: Message) -> None:
        for j in range(1, self.n + 1):
            if j != self.index:
                await self._transport.send(j, message)

    async def _pump(self, rnd: DKGRound[C], done: Callable[[], bool], deadline: float) -> None:
        loop = asyncio.get_running_loop()
        while not done():
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            try:
                msg = await asyncio.wait_for(self._transport.receive(), timeout=remaining)
            except asyncio.TimeoutError:
                return
            await self._handle(rnd, msg)

    async def _handle(self, rnd: DKGRound[C], msg: Message) -> None:
        if isinstance(msg, ShareOffer):
            ack = rnd.receive_offer(msg)
            if ack is not None:
                await self._broadcast(ack)
        elif isinstance(msg, ShareAck):
            rnd.receive_ack(msg)
        elif isinstance(msg, Abort):
            if msg.round_id == rnd.round_id and msg.sender in rnd.peers:
                rnd.abort(f"peer {msg.sender} aborted: {msg.reason}")
                raise PeerAborted(f"DKG round {rnd.round_id} aborted by peer {msg.sender}")

    async def run_round(self, round_id: Optional[str] = None) -> DKGResult[C]:
        """Run one complete round with fresh polynomials. Raises ProtocolFault on failure."""
        if self.running:
            raise RuntimeError("a DKG round is already running")
        round_id = round_id or secrets.token_hex(8)
        if self.has_run(round_id):
            raise ValueError(f"DKG round id {round_id!r} was already used")
        self._used_round_ids.add(round_id)
        rnd = DKGRound(self.group, self.index, self.n, self.t, round_id, sample=self._sample)
        self._round = rnd

        loop = asyncio.get_running_loop()
        started = loop.time()
        share_deadline = started + self.timeout / 2
        deadline = started + self.timeout

        try:
            for offer in rnd.start():
                await self._transport.send(offer.recipient, offer)

            await self._pump(rnd, lambda: not rnd.missing_dealers(), share_deadline)
            for complaint in rnd.close_share_phase():
                await self._broadcast(complaint)

            await self._pump(rnd, rnd.acks_complete, deadline)
            rnd.commit()
        except PeerAborted:
            raise
        except ProtocolFault as e:
            await self._broadcast(Abort(round_id=round_id, sender=self.index, reason=str(e)))
            raise
        except BaseException:
            # Cancellation or transport failure: the round did not happen.
            if rnd.state not in (RoundState.COMMITTED, RoundState.READY):
                rnd.abort("interrupted")
            raise

        result = rnd.finalize()
        self.last_result = result
        return result
