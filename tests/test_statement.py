from __future__ import annotations

import base64
import json

import pytest
import requests

from syra_issuer.errors import JwkUnavailable
from syra_issuer.groth16 import ProofVerifier, proof_to_bytes, proof_to_json
from syra_issuer.statement import (
    CHUNK_BITS,
    MAX_PROOF_B64_LEN,
    N_PUBLIC,
    NUM_LIMBS,
    HttpJwkProvider,
    ProofGate,
    StaticJwkProvider,
    build_public_inputs,
    decode_jwk_modulus,
    modulus_limbs,
    subject_to_field,
)
from instantiations.bn254 import make_bn254_curve

from groth16_fixtures import forge_proof, trapdoor_setup

CURVE = make_bn254_curve()
MODULUS = (1 << 2047) + 0x1F2E3D4C5B6A79  # stands in for a 2048-bit RSA modulus
KID = "test-kid"


def _b64url(n: int) -> str:
    return base64.urlsafe_b64encode(n.to_bytes(256, "big")).rstrip(b"=").decode()


JWKS = {
    "keys": [
        {"kty": "RSA", "kid": KID, "n": _b64url(MODULUS), "e": "AQAB"},
        {"kty": "EC", "kid": "ec-key", "crv": "P-256", "x": "", "y": ""},
    ]
}


def test_modulus_limbs_layout():
    limbs = modulus_limbs(MODULUS)

    assert len(limbs) == NUM_LIMBS
    assert all(0 <= limb < 2**CHUNK_BITS for limb in limbs)
    assert sum(limb << (CHUNK_BITS * i) for i, limb in enumerate(limbs)) == MODULUS
    with pytest.raises(ValueError):
        modulus_limbs(1 << (CHUNK_BITS * NUM_LIMBS))


def test_public_input_layout():
    inputs = build_public_inputs("alice", MODULUS, CURVE.order)

    assert len(inputs) == N_PUBLIC
    assert inputs[0] == inputs[-1] == subject_to_field("alice", CURVE.order)
    assert inputs[1:-1] == modulus_limbs(MODULUS)


def test_subject_encodings():
    assert subject_to_field("112233", CURVE.order, "decimal") == 112233
    assert subject_to_field("alice", CURVE.order) != subject_to_field("bob", CURVE.order)
    with pytest.raises(ValueError):
        subject_to_field("alice", CURVE.order, "decimal")
    with pytest.raises(ValueError):
        subject_to_field("alice", CURVE.order, "base64")


def test_static_jwk_provider_keeps_rsa_keys_only():
    provider = StaticJwkProvider.from_jwks(JWKS)

    assert decode_jwk_modulus(JWKS["keys"][0]["n"]) == MODULUS
    assert provider.modulus_for(KID) == MODULUS
    with pytest.raises(JwkUnavailable):
        provider.modulus_for("ec-key")


class _FakeResponse:
    def __init__(self, doc, status=200):
        self._doc = doc
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")

    def json(self):
        return self._doc


class _FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.response


def test_http_jwk_provider():
    session = _FakeSession(_FakeResponse(JWKS))
    provider = HttpJwkProvider("https://idp.example/certs", session=session)

    assert provider.modulus_for(KID) == MODULUS
    assert session.urls == ["https://idp.example/certs"]
    with pytest.raises(JwkUnavailable):
        provider.modulus_for("unknown")
    with pytest.raises(JwkUnavailable):
        HttpJwkProvider(session=_FakeSession(_FakeResponse({}, status=503))).modulus_for(KID)
    with pytest.raises(JwkUnavailable):
        HttpJwkProvider(session=_FakeSession(error=requests.ConnectionError("down"))).modulus_for(KID)


# ----------------------------
# Gate
# ----------------------------

def _gate_and_trapdoor():
    vk, td = trapdoor_setup(N_PUBLIC)
    gate = ProofGate(ProofVerifier(vk, CURVE), StaticJwkProvider.from_jwks(JWKS), CURVE.order)
    return gate, td


def _proof_for(td, user_id: str) -> str:
    inputs = build_public_inputs(user_id, MODULUS, CURVE.order)
    raw = proof_to_bytes(forge_proof(td, inputs), CURVE)
    return base64.b64encode(raw).decode()


def test_gate_accepts_matching_subject():
    gate, td = _gate_and_trapdoor()
    assert gate.authorize("alice", KID, _proof_for(td, "alice"))


def test_gate_rejects_proof_for_another_subject():
    gate, td = _gate_and_trapdoor()
    assert not gate.authorize("alice", KID, _proof_for(td, "bob"))


def test_gate_rejects_unknown_kid_and_bad_encoding():
    gate, td = _gate_and_trapdoor()
    proof = _proof_for(td, "alice")

    assert not gate.authorize("alice", "rotated-away", proof)
    assert not gate.authorize("alice", KID, "%%% not base64 %%%")
    assert not gate.authorize("alice", KID, "")


def test_gate_requires_the_circuit_shape():
    vk, _ = trapdoor_setup(2)
    with pytest.raises(ValueError):
        ProofGate(ProofVerifier(vk, CURVE), StaticJwkProvider(), CURVE.order)
    vk, _ = trapdoor_setup(N_PUBLIC)
    with pytest.raises(ValueError):
        ProofGate(ProofVerifier(vk, CURVE), StaticJwkProvider(), CURVE.order, subject_encoding="raw")


def test_gate_rejects_bit_flipped_json_proof():
    gate, td = _gate_and_trapdoor()
    inputs = build_public_inputs("alice", MODULUS, CURVE.order)
    doc = proof_to_json(forge_proof(td, inputs), CURVE)
    raw = json.dumps(doc).encode()
    assert gate.authorize("alice", KID, base64.b64encode(raw).decode())

    # Flip the low bit of the last digit of C.x; digits stay digits.
    cx = doc["pi_c"][0]
    at = raw.index(cx.encode()) + len(cx) - 1
    flipped = raw[:at] + bytes([raw[at] ^ 0x01]) + raw[at + 1:]
    assert flipped != raw
    assert not gate.authorize("alice", KID, base64.b64encode(flipped).decode())


def test_gate_rejects_oversized_proof():
    gate, td = _gate_and_trapdoor()
    proof = _proof_for(td, "alice")

    assert not gate.authorize("alice", KID, proof + " " * MAX_PROOF_B64_LEN)
    nested = b'{"pi_a": ' + b"[" * 150000 + b"]" * 150000 + b"}"
    assert not gate.authorize("alice", KID, base64.b64encode(nested).decode())
