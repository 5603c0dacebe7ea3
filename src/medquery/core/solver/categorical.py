"""Recover per-label counts of a closed enumeration from a sum and a count.

Given the domain ``[(label, code), ...]``, the decrypted sum of codes ``S``
and the number of summed ciphertexts ``n``, find non-negative integer counts
with ``sum(counts) == n`` and ``sum(count * code) == S``.

Several count vectors usually satisfy both constraints once the domain has
more than two values. The solver picks the one minimising
``sum(count * code**2)``, i.e. the reconstruction whose values sit closest
to the observed mean. Remaining ties go to the lexicographically greatest
count vector in domain order. For contiguous codes the minimiser is unique:
``r`` records at ``q + 1`` and ``n - r`` at ``q`` where ``q, r = divmod(S, n)``.

The chosen vector equals the true counts only when it is the sole feasible
one. ``is_unique`` reports that; callers that need exact counts decrypt
individually otherwise.
"""

from __future__ import annotations

import logging
from typing import Sequence

logger = logging.getLogger(__name__)

# Upper bound on DP table cells for non-contiguous domains
DEFAULT_STATE_BUDGET = 1_000_000

_INF = float("inf")


class CategoricalReconstructionSolver:
    """Deterministic integer reconstruction of categorical counts.

    Usage::

        solver = CategoricalReconstructionSolver()
        solver.solve([("PORTABLE", 1), ("WEARABLE", 2)], total=8, count=5)
        # {"PORTABLE": 2, "WEARABLE": 3}
    """

    def __init__(self, state_budget: int = DEFAULT_STATE_BUDGET) -> None:
        self.state_budget = state_budget

    def solve(
        self,
        domain: Sequence[tuple[str, int]],
        total: int,
        count: int,
    ) -> dict[str, int] | None:
        """Return a count for every label, or ``None`` when infeasible.

        ``None`` is also returned when a non-contiguous domain would exceed
        the state budget; callers fall back to individual decryption.
        """
        labels, codes = _split_domain(domain)

        if count < 0 or total < 0:
            return None
        if count == 0:
            return {label: 0 for label in labels} if total == 0 else None

        if _is_contiguous(codes):
            counts = _solve_contiguous(codes, total, count)
        else:
            counts = self._solve_general(codes, total, count)
        if counts is None:
            return None
        return dict(zip(labels, counts))

    def is_unique(
        self,
        domain: Sequence[tuple[str, int]],
        total: int,
        count: int,
    ) -> bool:
        """True when exactly one count vector explains ``(total, count)``.

        Contiguous codes use the closed form: with ``e = S - min * n`` the
        vectors correspond to partitions of ``e`` into at most ``n`` parts no
        larger than ``k - 1``, which is unique only at the two ends of the
        range. Other domains count solutions with a DP capped at two and
        report ``False`` past the state budget.
        """
        _, codes = _split_domain(domain)
        if count < 0 or total < 0:
            return False
        if count == 0:
            return total == 0

        if _is_contiguous(codes):
            span = count * (len(codes) - 1)
            excess = total - min(codes) * count
            if not 0 <= excess <= span:
                return False
            return count == 1 or len(codes) <= 2 or excess <= 1 or excess >= span - 1

        if len(codes) * (count + 1) * (total + 1) > self.state_budget:
            return False
        return _count_solutions(codes, total, count, cap=2) == 1

    def _solve_general(self, codes: list[int], total: int, count: int) -> list[int] | None:
        k = len(codes)
        if (k + 1) * (count + 1) * (total + 1) > self.state_budget:
            logger.warning(
                "Reconstruction over %d labels with n=%d S=%d exceeds state budget",
                k,
                count,
                total,
            )
            return None

        # cost[i][m][t]: minimal sum(count * code**2) placing m records with
        # code sum t using labels i.. only.
        width = total + 1
        cost = [[[_INF] * width for _ in range(count + 1)] for _ in range(k + 1)]
        cost[k][0][0] = 0
        for i in range(k - 1, -1, -1):
            code = codes[i]
            square = code * code
            here, after = cost[i], cost[i + 1]
            for m in range(count + 1):
                row, below = here[m], after[m]
                prev = here[m - 1] if m else None
                for t in range(width):
                    best = below[t]
                    if prev is not None and t >= code:
                        candidate = prev[t - code] + square
                        if candidate < best:
                            best = candidate
                    row[t] = best

        if cost[0][count][total] == _INF:
            return None

        counts: list[int] = []
        m, t = count, total
        for i, code in enumerate(codes):
            target = cost[i][m][t]
            chosen = 0
            limit = m if code == 0 else min(m, t // code)
            for c in range(limit, -1, -1):
                rest = cost[i + 1][m - c][t - c * code]
                if rest + c * code * code == target:
                    chosen = c
                    break
            counts.append(chosen)
            m -= chosen
            t -= chosen * code
        return counts


def _split_domain(domain: Sequence[tuple[str, int]]) -> tuple[list[str], list[int]]:
    if not domain:
        raise ValueError("domain must not be empty")
    labels = [label for label, _ in domain]
    codes = [code for _, code in domain]
    if len(set(labels)) != len(labels) or len(set(codes)) != len(codes):
        raise ValueError("domain labels and codes must be unique")
    if any(code < 0 for code in codes):
        raise ValueError("domain codes must be non-negative")
    return labels, codes


def _count_solutions(codes: list[int], total: int, count: int, cap: int) -> int:
    # ways[m][t]: multisets of m codes summing to t, saturated at cap
    ways = [[0] * (total + 1) for _ in range(count + 1)]
    ways[0][0] = 1
    for code in codes:
        for m in range(1, count + 1):
            row, prev = ways[m], ways[m - 1]
            for t in range(code, total + 1):
                if prev[t - code]:
                    row[t] = min(cap, row[t] + prev[t - code])
    return ways[count][total]


def _is_contiguous(codes: list[int]) -> bool:
    ordered = sorted(codes)
    return ordered[-1] - ordered[0] == len(ordered) - 1


def _solve_contiguous(codes: list[int], total: int, count: int) -> list[int] | None:
    low, high = min(codes), max(codes)
    if not low * count <= total <= high * count:
        return None
    q, r = divmod(total, count)
    by_code = {code: 0 for code in codes}
    by_code[q] += count - r
    if r:
        by_code[q + 1] += r
    return [by_code[code] for code in codes]
