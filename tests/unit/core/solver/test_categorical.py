"""Tests for the categorical reconstruction solver."""

from __future__ import annotations

import itertools

import pytest

from medquery.core.solver.categorical import CategoricalReconstructionSolver
from medquery.domains.devicedata.models import FieldKind, categorical_domain

BOOL_DOMAIN = [("false", 0), ("true", 1)]
CATEGORY_DOMAIN = [("PORTABLE", 1), ("WEARABLE", 2), ("IMPLANTABLE", 3), ("STATIONARY", 4)]
FULL_CATEGORY_DOMAIN = categorical_domain(FieldKind.DEVICE_CATEGORY)
SPARSE_DOMAIN = [("low", 1), ("mid", 3), ("high", 7)]


@pytest.fixture
def solver() -> CategoricalReconstructionSolver:
    return CategoricalReconstructionSolver()


def _is_valid(domain, solution, total, count) -> bool:
    codes = dict(domain)
    return (
        all(v >= 0 for v in solution.values())
        and sum(solution.values()) == count
        and sum(codes[label] * v for label, v in solution.items()) == total
    )


def _brute_force(domain, total, count):
    """All feasible count vectors in domain order."""
    codes = [c for _, c in domain]
    found = []
    for combo in itertools.combinations_with_replacement(range(len(codes)), count):
        if sum(codes[i] for i in combo) == total:
            found.append(tuple(combo.count(i) for i in range(len(codes))))
    return sorted(set(found))


class TestBasicSolutions:
    def test_bool_domain_is_exact(self, solver: CategoricalReconstructionSolver):
        assert solver.solve(BOOL_DOMAIN, total=3, count=5) == {"false": 2, "true": 3}

    def test_all_wearable(self, solver: CategoricalReconstructionSolver):
        result = solver.solve(CATEGORY_DOMAIN, total=6, count=3)
        assert result == {"PORTABLE": 0, "WEARABLE": 3, "IMPLANTABLE": 0, "STATIONARY": 0}

    def test_empty_input(self, solver: CategoricalReconstructionSolver):
        assert solver.solve(CATEGORY_DOMAIN, total=0, count=0) == {
            "PORTABLE": 0, "WEARABLE": 0, "IMPLANTABLE": 0, "STATIONARY": 0,
        }

    def test_zero_count_with_nonzero_sum_is_infeasible(self, solver):
        assert solver.solve(CATEGORY_DOMAIN, total=4, count=0) is None


class TestInfeasible:
    def test_sum_below_minimum(self, solver: CategoricalReconstructionSolver):
        assert solver.solve(CATEGORY_DOMAIN, total=2, count=3) is None

    def test_sum_above_maximum(self, solver: CategoricalReconstructionSolver):
        assert solver.solve(CATEGORY_DOMAIN, total=13, count=3) is None

    def test_negative_inputs(self, solver: CategoricalReconstructionSolver):
        assert solver.solve(BOOL_DOMAIN, total=-1, count=2) is None
        assert solver.solve(BOOL_DOMAIN, total=1, count=-2) is None

    def test_unreachable_sum_in_sparse_domain(self, solver):
        # Two values from {1, 3, 7} can never sum to 5.
        assert solver.solve(SPARSE_DOMAIN, total=5, count=2) is None

    def test_over_budget_reports_none(self):
        tiny = CategoricalReconstructionSolver(state_budget=10)
        assert tiny.solve(SPARSE_DOMAIN, total=11, count=3) is None


class TestTieBreak:
    def test_contiguous_prefers_values_near_mean(self, solver):
        # 2+2 and 1+3 both give 4; the near-mean reconstruction wins.
        result = solver.solve(CATEGORY_DOMAIN, total=4, count=2)
        assert result == {"PORTABLE": 0, "WEARABLE": 2, "IMPLANTABLE": 0, "STATIONARY": 0}

    def test_contiguous_splits_remainder_upwards(self, solver):
        result = solver.solve(CATEGORY_DOMAIN, total=11, count=4)
        assert result == {"PORTABLE": 0, "WEARABLE": 1, "IMPLANTABLE": 3, "STATIONARY": 0}

    def test_sparse_domain_minimises_squared_codes(self, solver):
        # 1+1+7, 3+3+3 both give 9; 3+3+3 has the smaller sum of squares.
        assert solver.solve(SPARSE_DOMAIN, total=9, count=3) == {"low": 0, "mid": 3, "high": 0}

    def test_same_input_same_output(self, solver):
        first = solver.solve(SPARSE_DOMAIN, total=25, count=7)
        for _ in range(3):
            assert solver.solve(SPARSE_DOMAIN, total=25, count=7) == first


class TestProperties:
    @pytest.mark.parametrize("domain", [BOOL_DOMAIN, CATEGORY_DOMAIN, SPARSE_DOMAIN])
    def test_matches_brute_force_feasibility(self, solver, domain):
        max_code = max(c for _, c in domain)
        for count in range(0, 6):
            for total in range(0, max_code * count + 2):
                feasible = _brute_force(domain, total, count)
                result = solver.solve(domain, total, count)
                if not feasible:
                    assert result is None, (count, total)
                else:
                    assert result is not None, (count, total)
                    assert _is_valid(domain, result, total, count)

    @pytest.mark.parametrize("domain", [CATEGORY_DOMAIN, SPARSE_DOMAIN])
    def test_solution_follows_documented_tie_break(self, solver, domain):
        codes = [c for _, c in domain]
        for count in range(1, 6):
            for total in range(0, max(codes) * count + 1):
                feasible = _brute_force(domain, total, count)
                if not feasible:
                    continue
                best = min(sum(n * c * c for n, c in zip(v, codes)) for v in feasible)
                expected = max(
                    v for v in feasible if sum(n * c * c for n, c in zip(v, codes)) == best
                )
                result = solver.solve(domain, total, count)
                assert tuple(result[label] for label, _ in domain) == expected


class TestUniqueness:
    @pytest.mark.parametrize(
        "domain", [BOOL_DOMAIN, CATEGORY_DOMAIN, FULL_CATEGORY_DOMAIN, SPARSE_DOMAIN]
    )
    def test_matches_brute_force_solution_count(self, solver, domain):
        max_code = max(c for _, c in domain)
        for count in range(0, 6):
            for total in range(0, max_code * count + 2):
                expected = len(_brute_force(domain, total, count)) == 1
                assert solver.is_unique(domain, total, count) is expected, (count, total)

    def test_mixed_categories_are_ambiguous(self, solver):
        # PORTABLE + IMPLANTABLE has the same sum as WEARABLE + WEARABLE.
        assert solver.solve(FULL_CATEGORY_DOMAIN, total=4, count=2) is not None
        assert not solver.is_unique(FULL_CATEGORY_DOMAIN, total=4, count=2)

    def test_extremes_are_unique(self, solver):
        assert solver.is_unique(FULL_CATEGORY_DOMAIN, total=0, count=3)
        assert solver.is_unique(FULL_CATEGORY_DOMAIN, total=1, count=3)
        assert solver.is_unique(FULL_CATEGORY_DOMAIN, total=12, count=3)
        assert solver.is_unique(FULL_CATEGORY_DOMAIN, total=11, count=3)

    def test_single_value_is_unique(self, solver):
        for total in range(5):
            assert solver.is_unique(FULL_CATEGORY_DOMAIN, total=total, count=1)

    def test_bool_domain_always_unique_when_feasible(self, solver):
        for count in range(1, 8):
            for total in range(count + 1):
                assert solver.is_unique(BOOL_DOMAIN, total, count)

    def test_infeasible_is_not_unique(self, solver):
        assert not solver.is_unique(CATEGORY_DOMAIN, total=2, count=3)
        assert not solver.is_unique(SPARSE_DOMAIN, total=5, count=2)

    def test_over_budget_is_not_unique(self):
        tiny = CategoricalReconstructionSolver(state_budget=10)
        assert not tiny.is_unique(SPARSE_DOMAIN, total=21, count=3)


class TestDomainValidation:
    def test_empty_domain_rejected(self, solver):
        with pytest.raises(ValueError):
            solver.solve([], total=0, count=0)

    def test_duplicate_codes_rejected(self, solver):
        with pytest.raises(ValueError):
            solver.solve([("a", 1), ("b", 1)], total=2, count=2)
