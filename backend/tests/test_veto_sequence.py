import pytest

from progression.services.errors import InvalidMapPool
from progression.services.veto_sequence import generate_ban_sequence, validate_map_pool

H, A = "home", "away"


def test_seven_map_sequence():
    assert generate_ban_sequence(H, A, 7) == [H, A, A, H, A, H]


@pytest.mark.parametrize(
    "total_maps,expected",
    [
        (2, [H]),
        (3, [H, A]),
        (4, [H, A, A]),
        (5, [H, A, A, H]),
        (9, [H, A, A, H, A, H, A, H]),
    ],
)
def test_sequence_lengths_and_order(total_maps, expected):
    assert generate_ban_sequence(H, A, total_maps) == expected


def test_sequence_needs_two_maps():
    with pytest.raises(InvalidMapPool):
        generate_ban_sequence(H, A, 1)


def test_pool_is_normalized():
    assert validate_map_pool([" bind ", "haven"]) == ["bind", "haven"]


@pytest.mark.parametrize(
    "raw",
    [None, "bind,haven", ["bind"], ["bind", "bind"], ["bind", ""], ["bind", 3], {"a": 1}],
)
def test_unusable_pools_rejected(raw):
    with pytest.raises(InvalidMapPool):
        validate_map_pool(raw)
