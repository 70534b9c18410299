from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class GenerateUserKeyRequest(BaseModel):
    user_id: str
    kid: str
    # base64 of snarkjs proof.json or of the 256-byte binary proof
    proof: str = Field(max_length=16 * 1024)


class UserKeyResponse(BaseModel):
    ivk: str
    usk: str
    usk_hat: str


class IvkResponse(BaseModel):
    ivk: str


class DkgShareRequest(BaseModel):
    peer_index: int
    share: str
    commitments: List[str]
    round_id: Optional[str] = None


class DkgAckRequest(BaseModel):
    peer_index: int
    dealer: int
    accepted: bool
    round_id: str


class DkgAbortRequest(BaseModel):
    peer_index: int
    reason: str = ""
    round_id: str


class DkgStartRequest(BaseModel):
    round_id: str = Field(min_length=1)


class DkgStatusResponse(BaseModel):
    state: str
    round_id: Optional[str] = None
    # Threshold mode, once READY: this issuer's g2^share and the joint
    # Feldman commitments, compressed and hex-encoded.
    public_share: Optional[str] = None
    joint_commitments: List[str] = []
