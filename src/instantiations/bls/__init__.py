from .inst import (
    BlsPairingGroup,
    G2CommitmentGroup,
    make_bls_params,
    make_sampler_zq,
    syra_generators,
)

__all__ = [
    "BlsPairingGroup",
    "G2CommitmentGroup",
    "make_bls_params",
    "make_sampler_zq",
    "syra_generators",
]
