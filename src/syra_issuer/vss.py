"""Feldman verifiable secret sharing over an abstract commitment group.

A dealer holding f(x) = a_0 + a_1 x + ... + a_{t-1} x^{t-1} publishes
C_k = g^{a_k}. Participant i checks its share y_i = f(i) with

    g^{y_i} == Π_k C_k^{i^k}

Nothing here depends on the concrete curve; see ``CommitmentGroup``.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Sequence, Tuple, TypeVar

from .interfaces import CommitmentGroup

C = TypeVar("C")


def sample_polynomial(degree: int, order: int, sample: Callable[[], int]) -> Tuple[int, ...]:
    """Fresh random coefficients [a_0, ..., a_degree] in Z_order."""
    if degree < 0:
        raise ValueError("degree must be non-negative")
    return tuple(sample() % order for _ in range(degree + 1))


def evaluate(coeffs: Sequence[int], x: int, order: int) -> int:
    """f(x) by Horner's rule."""
    result = 0
    for coeff in reversed(coeffs):
        result = (result * x + coeff) % order
    return result


def commit(group: CommitmentGroup[C], coeffs: Sequence[int]) -> Tuple[C, ...]:
    g = group.generator()
    return tuple(group.exp(g, a) for a in coeffs)


def expected_commitment(group: CommitmentGroup[C], commitments: Sequence[C], index: int) -> C:
    """Π_k C_k^{index^k}, i.e. g^{f(index)} evaluated in the exponent."""
    acc = group.identity()
    power = 1
    for c in commitments:
        acc = group.combine(acc, group.exp(c, power))
        power = (power * index) % group.order
    return acc


def verify_share(group: CommitmentGroup[C], commitments: Sequence[C], index: int, share: int) -> bool:
    if not commitments or not 0 <= share < group.order:
        return False
    lhs = group.exp(group.generator(), share)
    return group.eq(lhs, expected_commitment(group, commitments, index))


def combine_commitments(group: CommitmentGroup[C], vectors: Iterable[Sequence[C]]) -> Tuple[C, ...]:
    """Coefficient-wise product of several dealers' commitment vectors."""
    vectors = list(vectors)
    if not vectors:
        raise ValueError("no commitment vectors to combine")
    width = len(vectors[0])
    if any(len(v) != width for v in vectors):
        raise ValueError("commitment vectors differ in length")
    out: List[C] = []
    for k in range(width):
        acc = group.identity()
        for v in vectors:
            acc = group.combine(acc, v[k])
        out.append(acc)
    return tuple(out)


def lagrange_coefficient(index: int, indices: Sequence[int], order: int) -> int:
    """λ_index(0) over the interpolation set ``indices``."""
    if len(set(indices)) != len(indices):
        raise ValueError("duplicate interpolation indices")
    num, den = 1, 1
    for m in indices:
        if m == index:
            continue
        num = (num * -m) % order
        den = (den * (index - m)) % order
    return (num * pow(den, -1, order)) % order


def interpolate_at_zero(points: Sequence[Tuple[int, int]], order: int) -> int:
    """f(0) from (index, share) pairs."""
    indices = [i for i, _ in points]
    return sum(y * lagrange_coefficient(i, indices, order) for i, y in points) % order


def interpolate_in_exponent(group: CommitmentGroup[C], points: Sequence[Tuple[int, C]]) -> C:
    """g^{f(0)} from (index, g^{f(index)}) pairs."""
    indices = [i for i, _ in points]
    acc = group.identity()
    for i, elem in points:
        acc = group.combine(acc, group.exp(elem, lagrange_coefficient(i, indices, group.order)))
    return acc
