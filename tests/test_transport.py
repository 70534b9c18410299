from __future__ import annotations

import asyncio

import pytest
import requests

from syra_issuer.dkg import Abort, ShareAck, ShareOffer
from syra_issuer.transport import (
    ABORT_PATH,
    ACK_PATH,
    OFFER_PATH,
    PEER_TOKEN_HEADER,
    HttpTransport,
    InMemoryNetwork,
    offer_from_payload,
    offer_to_payload,
)
from syra_issuer.vss import commit

from toy_groups import ToySchnorrGroup


def _offer(group):
    return ShareOffer(round_id="r", sender=2, recipient=1, share=17, commitments=commit(group, (5, 6)))


def test_offer_payload_is_hex_json():
    group = ToySchnorrGroup()
    payload = offer_to_payload(_offer(group), group)

    assert payload["peer_index"] == 2
    assert len(payload["share"]) == 64
    assert offer_from_payload(payload, group, recipient=1) == _offer(group)


def test_offer_payload_rejects_bad_elements():
    group = ToySchnorrGroup()
    payload = offer_to_payload(_offer(group), group)

    with pytest.raises(ValueError):
        offer_from_payload(dict(payload, commitments=["0000"]), group, recipient=1)
    with pytest.raises(ValueError):
        offer_from_payload(dict(payload, share="ff" * 32), group, recipient=1)
    with pytest.raises(ValueError):
        offer_from_payload(dict(payload, share="not hex"), group, recipient=1)


def test_in_memory_network_drops_disconnected_traffic():
    async def main():
        net = InMemoryNetwork(3)
        net.disconnect(3)
        a, b = net.endpoint(1), net.endpoint(2)
        await a.send(3, Abort(round_id="r", sender=1, reason="x"))
        await a.send(2, Abort(round_id="r", sender=1, reason="y"))
        return await asyncio.wait_for(b.receive(), timeout=1.0)

    assert asyncio.run(main()).reason == "y"
    with pytest.raises(ValueError):
        InMemoryNetwork(2).endpoint(3)


class _RecordingSession:
    def __init__(self, fail_for=(), failures=0, status=None):
        self.posts = []
        self.attempts = []
        self.headers = []
        self.fail_for = fail_for
        self.failures = failures
        self.status = status

    def post(self, url, json=None, headers=None, timeout=None):
        self.attempts.append(url)
        self.headers.append(headers)
        if any(url.startswith(base) for base in self.fail_for):
            raise requests.ConnectionError("refused")
        if self.failures:
            self.failures -= 1
            raise requests.Timeout("slow")
        self.posts.append((url, json))
        return _Response(self.status)


class _Response:
    def __init__(self, status=None):
        self.status_code = status or 200

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}", response=self)


def test_http_transport_routes_by_message_type():
    group = ToySchnorrGroup()
    session = _RecordingSession(fail_for=("http://peer-3",))
    transport = HttpTransport(1, {2: "http://peer-2/", 3: "http://peer-3"}, group, session=session, backoff=0)

    async def main():
        await transport.send(2, _offer(group))
        await transport.send(2, ShareAck(round_id="r", sender=1, dealer=2, accepted=True))
        await transport.send(2, Abort(round_id="r", sender=1, reason="timeout"))
        await transport.send(3, Abort(round_id="r", sender=1, reason="timeout"))
        await transport.send(4, Abort(round_id="r", sender=1, reason="timeout"))

    asyncio.run(main())

    assert [url for url, _ in session.posts] == [
        "http://peer-2" + OFFER_PATH,
        "http://peer-2" + ACK_PATH,
        "http://peer-2" + ABORT_PATH,
    ]
    assert session.posts[1][1] == {"peer_index": 1, "round_id": "r", "dealer": 2, "accepted": True}
    assert session.attempts.count("http://peer-3" + ABORT_PATH) == 3
    assert session.headers[0] == {}


def test_http_transport_delivers_inbound_messages():
    transport = HttpTransport(1, {}, ToySchnorrGroup())

    async def main():
        transport.deliver(Abort(round_id="r", sender=2, reason="x"))
        return await transport.receive()

    assert asyncio.run(main()).sender == 2


def test_http_transport_retries_transient_failures():
    session = _RecordingSession(failures=2)
    transport = HttpTransport(1, {2: "http://peer-2"}, ToySchnorrGroup(), session=session, backoff=0)

    assert transport._post(2, "http://peer-2" + ACK_PATH, {"peer_index": 1})
    assert len(session.attempts) == 3
    assert len(session.posts) == 1


def test_http_transport_does_not_retry_refusals():
    session = _RecordingSession(status=400)
    transport = HttpTransport(1, {2: "http://peer-2"}, ToySchnorrGroup(), session=session, backoff=0)

    assert not transport._post(2, "http://peer-2" + OFFER_PATH, {"peer_index": 1})
    assert len(session.attempts) == 1
    with pytest.raises(ValueError):
        HttpTransport(1, {}, ToySchnorrGroup(), retries=0)


def test_http_transport_sends_peer_token():
    group = ToySchnorrGroup()
    session = _RecordingSession()
    transport = HttpTransport(1, {2: "http://peer-2"}, group, session=session, auth_token="s3cret")

    asyncio.run(transport.send(2, Abort(round_id="r", sender=1, reason="x")))
    assert session.headers == [{PEER_TOKEN_HEADER: "s3cret"}]


def test_http_transport_inbox_is_bounded():
    transport = HttpTransport(1, {}, ToySchnorrGroup(), max_pending=1)

    async def main():
        first = transport.deliver(Abort(round_id="r", sender=2, reason="x"))
        second = transport.deliver(Abort(round_id="r", sender=3, reason="y"))
        assert transport.pending == 1
        return first, second, await transport.receive()

    first, second, message = asyncio.run(main())
    assert (first, second) == (True, False)
    assert message.sender == 2
