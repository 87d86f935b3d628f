"""
Tests for permutation identification and the permutation table.
"""

import pytest

from costengine.domain.permutations import (
    PermutationError,
    PermutationId,
    get_permutation,
    identify,
    list_permutations,
)


def test_table_has_eleven_permutations():
    permutations = list_permutations()
    assert [int(p.id) for p in permutations] == list(range(1, 12))


@pytest.mark.parametrize("level,cool,double,expected", [
    ("Standard", False, False, PermutationId.STANDARD_REGULAR),
    ("standard", False, True, PermutationId.STANDARD_DOUBLE_ENCRYPTED),
    ("Premium", True, False, PermutationId.PREMIUM_COOL_ACCESS),
    ("Ultra", False, True, PermutationId.ULTRA_DOUBLE_ENCRYPTED),
    ("Flexible", False, False, PermutationId.FLEXIBLE_REGULAR),
    ("Flexible", True, False, PermutationId.FLEXIBLE_COOL_ACCESS),
])
def test_identify(level, cool, double, expected):
    assert identify(level, cool, double).id == expected


def test_double_encryption_with_cool_access_is_rejected():
    with pytest.raises(PermutationError, match="Cool Access"):
        identify("Premium", cool_access=True, double_encryption=True)


def test_flexible_double_encryption_is_rejected():
    with pytest.raises(PermutationError):
        identify("Flexible", cool_access=False, double_encryption=True)


def test_unknown_level_and_id_are_rejected():
    with pytest.raises(PermutationError):
        identify("Extreme", False, False)
    with pytest.raises(PermutationError):
        get_permutation(12)


def test_included_throughput():
    """Included throughput is per TiB, reduced for cool access, flat for flexible."""
    assert get_permutation(1).included_throughput(1024) == pytest.approx(16.0)
    assert get_permutation(4).included_throughput(2048) == pytest.approx(128.0)
    assert get_permutation(6).included_throughput(1024) == pytest.approx(36.0)
    assert get_permutation(9).included_throughput(1024) == pytest.approx(68.0)
    assert get_permutation(10).included_throughput(10240) == pytest.approx(128.0)


def test_minimum_capacity():
    assert get_permutation(1).minimum_capacity_gib == 50
    assert get_permutation(3).minimum_capacity_gib == 2400
    assert get_permutation(11).minimum_capacity_gib == 2400
