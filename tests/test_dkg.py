from __future__ import annotations

import asyncio
import itertools
from dataclasses import replace

import pytest

from syra_issuer.core import UKGen, UKVerify, ivk_is_well_formed
from syra_issuer.dkg import Abort, DKGCoordinator, DKGResult, DKGRound, RoundState, ShareOffer
from syra_issuer.errors import PeerAborted, ProtocolFault
from syra_issuer.keystore import threshold_ivk
from syra_issuer.transport import InMemoryNetwork
from syra_issuer.vss import interpolate_at_zero

from toy_groups import Q_SCHNORR, ToySchnorrGroup


class TamperingTransport:
    """Adds 1 to every share this participant deals to ``victim`` (everyone if None)."""

    def __init__(self, inner, victim=None) -> None:
        self.inner = inner
        self.victim = victim

    async def send(self, recipient, message):
        if isinstance(message, ShareOffer) and self.victim in (None, recipient):
            message = replace(message, share=(message.share + 1) % Q_SCHNORR)
        await self.inner.send(recipient, message)

    async def receive(self):
        return await self.inner.receive()


def run_dkg(n, t, timeout=5.0, down=(), wrap=None, group=None, round_ids=("round-1",), samplers=None):
    group = group or ToySchnorrGroup()

    async def main():
        net = InMemoryNetwork(n)
        for i in down:
            net.disconnect(i)
        coordinators = []
        for i in range(1, n + 1):
            transport = net.endpoint(i)
            if wrap is not None:
                transport = wrap(i, transport)
            sample = samplers[i] if samplers is not None else None
            coordinators.append(DKGCoordinator(group, i, n, t, transport, timeout=timeout, sample=sample))
        rounds = []
        for round_id in round_ids:
            rounds.append(
                await asyncio.gather(*(c.run_round(round_id) for c in coordinators), return_exceptions=True)
            )
        return coordinators, rounds

    return asyncio.run(main())


def assert_consistent(group, results, t):
    keys = {r.joint_public_key for r in results}
    assert len(keys) == 1
    assert len({r.qualified for r in results}) == 1
    for r in results:
        assert group.eq(group.exp(group.generator(), r.share.value), r.public_share(group, r.index))
    secret = interpolate_at_zero([(r.index, r.share.value) for r in results[:t]], group.order)
    assert group.eq(group.exp(group.generator(), secret), results[0].joint_public_key)
    return secret


def test_dkg_all_honest_reach_ready():
    group = ToySchnorrGroup()
    coordinators, (results,) = run_dkg(5, 3, group=group)

    assert all(isinstance(r, DKGResult) for r in results)
    assert all(c.state is RoundState.READY for c in coordinators)
    assert results[0].qualified == frozenset(range(1, 6))
    secret = assert_consistent(group, results, 3)
    assert secret == interpolate_at_zero([(r.index, r.share.value) for r in results[2:]], group.order)


def test_dkg_disqualifies_dealer_with_bad_share():
    group = ToySchnorrGroup()

    def wrap(i, transport):
        return TamperingTransport(transport, victim=1) if i == 2 else transport

    _, (results,) = run_dkg(5, 3, wrap=wrap, group=group)

    assert all(isinstance(r, DKGResult) for r in results)
    assert results[0].qualified == frozenset({1, 3, 4, 5})
    assert_consistent(group, results, 3)


def test_dkg_survives_n_minus_t_dealers_with_bad_shares():
    group = ToySchnorrGroup()

    def wrap(i, transport):
        return TamperingTransport(transport) if i in (4, 5) else transport

    coordinators, (results,) = run_dkg(5, 3, wrap=wrap, group=group)

    assert all(isinstance(r, DKGResult) for r in results)
    assert all(c.state is RoundState.READY for c in coordinators)
    assert results[0].qualified == frozenset({1, 2, 3})
    assert_consistent(group, results, 3)


def test_dkg_aborts_when_more_than_n_minus_t_dealers_cheat():
    def wrap(i, transport):
        return TamperingTransport(transport) if i in (3, 4, 5) else transport

    coordinators, (results,) = run_dkg(5, 3, wrap=wrap)

    assert all(isinstance(r, ProtocolFault) for r in results)
    assert all(c.state is RoundState.ABORTED for c in coordinators)
    assert all(c.last_result is None for c in coordinators)


def test_dkg_tolerates_n_minus_t_unreachable_peers():
    group = ToySchnorrGroup()
    coordinators, (results,) = run_dkg(5, 3, timeout=0.6, down=(4, 5), group=group)

    honest = results[:3]
    assert all(isinstance(r, DKGResult) for r in honest)
    assert honest[0].qualified == frozenset({1, 2, 3})
    assert_consistent(group, honest, 3)

    for r in results[3:]:
        assert isinstance(r, ProtocolFault)
    assert coordinators[3].state is RoundState.ABORTED


def test_dkg_aborts_with_fewer_than_t_honest():
    coordinators, (results,) = run_dkg(5, 3, timeout=0.6, down=(3, 4, 5))

    assert all(isinstance(r, ProtocolFault) for r in results)
    assert all(c.state is RoundState.ABORTED for c in coordinators)
    assert all(c.last_result is None for c in coordinators)


def test_dkg_retry_uses_fresh_polynomials():
    group = ToySchnorrGroup()
    samplers = {i: itertools.count(1).__next__ for i in range(1, 4)}
    coordinators, (first, second) = run_dkg(3, 2, group=group, round_ids=("r1", "r2"), samplers=samplers)

    assert all(isinstance(r, DKGResult) for r in first + second)
    assert first[0].round_id == "r1" and second[0].round_id == "r2"
    assert not group.eq(first[0].joint_public_key, second[0].joint_public_key)
    assert coordinators[0].last_result == second[0]


def test_coordinator_refuses_a_used_round_id():
    group = ToySchnorrGroup()

    async def main():
        net = InMemoryNetwork(2)
        coordinator = DKGCoordinator(group, 1, 2, 2, net.endpoint(1), timeout=0.2)
        with pytest.raises(ProtocolFault):
            await coordinator.run_round("r")

        assert coordinator.has_run("r") and coordinator.is_stale("r")
        assert not coordinator.has_run("r2") and not coordinator.is_stale("r2")
        with pytest.raises(ValueError):
            await coordinator.run_round("r")
        with pytest.raises(ValueError):
            coordinator.start_round("r")
        return coordinator

    assert asyncio.run(main()).state is RoundState.ABORTED


def test_peer_abort_aborts_local_round():
    group = ToySchnorrGroup()

    async def main():
        net = InMemoryNetwork(3)
        coordinator = DKGCoordinator(group, 1, 3, 2, net.endpoint(1), timeout=5.0)
        task = coordinator.start_round("r")
        await net.endpoint(2).send(1, Abort(round_id="r", sender=2, reason="bad share"))
        with pytest.raises(PeerAborted):
            await task
        return coordinator

    assert asyncio.run(main()).state is RoundState.ABORTED


def test_abandon_cancels_running_round():
    group = ToySchnorrGroup()

    async def main():
        net = InMemoryNetwork(3)
        coordinator = DKGCoordinator(group, 1, 3, 2, net.endpoint(1), timeout=30.0)
        task = coordinator.start_round("r")
        await asyncio.sleep(0.05)
        assert coordinator.running
        coordinator.abandon("operator")
        with pytest.raises(asyncio.CancelledError):
            await task
        return coordinator

    assert asyncio.run(main()).state is RoundState.ABORTED


# ----------------------------
# DKGRound without a transport
# ----------------------------

def test_round_ignores_duplicate_and_foreign_offers():
    group = ToySchnorrGroup()
    r1 = DKGRound(group, 1, 3, 2, "r")
    r2 = DKGRound(group, 2, 3, 2, "r")
    r1.start()
    offer = next(o for o in r2.start() if o.recipient == 1)

    assert r1.receive_offer(replace(offer, round_id="other")) is None
    ack = r1.receive_offer(offer)
    assert ack is not None and ack.accepted and ack.dealer == 2
    assert r1.receive_offer(replace(offer, share=(offer.share + 1) % Q_SCHNORR)) is None
    assert 2 not in r1.faulty


def test_round_commit_with_too_few_dealers():
    r1 = DKGRound(ToySchnorrGroup(), 1, 3, 2, "r")
    r1.start()
    complaints = r1.close_share_phase()

    assert {c.dealer for c in complaints} == {2, 3}
    with pytest.raises(ProtocolFault) as excinfo:
        r1.commit()
    assert excinfo.value.faulty == frozenset({2, 3})
    assert r1.state is RoundState.ABORTED
    with pytest.raises(RuntimeError):
        r1.start()


def test_round_two_party_exchange():
    group = ToySchnorrGroup()
    r1 = DKGRound(group, 1, 2, 2, "r")
    r2 = DKGRound(group, 2, 2, 2, "r")
    (o12,) = r1.start()
    (o21,) = r2.start()

    r2.receive_ack(r1.receive_offer(o21))
    r1.receive_ack(r2.receive_offer(o12))
    assert r1.acks_complete() and r2.acks_complete()

    r1.commit()
    r2.commit()
    a, b = r1.finalize(), r2.finalize()
    assert r1.state is RoundState.READY
    assert_consistent(group, [a, b], 2)
    with pytest.raises(RuntimeError):
        r1.abort("too late")


def test_repr_hides_secrets():
    r1 = DKGRound(ToySchnorrGroup(), 1, 2, 2, "r", sample=lambda: 1000)
    (offer,) = r1.start()
    assert "1000" not in repr(r1)
    assert "share=" not in repr(offer)
    assert "commitments=" not in repr(offer)


# ----------------------------
# BLS12-381: commitments in G2, joint key is the joint ivk_hat
# ----------------------------

def test_bls_threshold_round_yields_working_ivk():
    from instantiations.bls import G2CommitmentGroup, make_bls_params

    params = make_bls_params()
    group = G2CommitmentGroup()
    _, (results,) = run_dkg(3, 2, timeout=60.0, group=group)
    assert all(isinstance(r, DKGResult) for r in results)

    isk = interpolate_at_zero([(r.index, r.share.value) for r in results[1:]], group.order)
    assert group.eq(results[0].joint_public_key, group.exp(group.generator(), isk))

    ivks = [threshold_ivk(params, r.joint_public_key, "syra-session-001") for r in results]
    assert all(params.group.g2_eq(ivks[0].ivk_hat, v.ivk_hat) for v in ivks[1:])
    assert ivk_is_well_formed(params, ivks[0])
    assert UKVerify(params, ivks[0], "alice", UKGen(params, isk, "alice"))
