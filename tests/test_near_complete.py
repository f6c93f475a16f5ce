# test_near_complete.py
import random

import pytest

from balance_via_rotation import (
    compute_root_t, floor_log2, is_almost_complete, levels, make_almost_complete_bst, p,
)
from rotation_tree import DuplicateKeyError, RotationTree


@pytest.mark.parametrize("n,expected", [
    (1, 0), (2, 1), (3, 1), (4, 2), (5, 3), (6, 3), (7, 3),
    (8, 4), (9, 5), (10, 6), (11, 7), (15, 7), (16, 8),
])
def test_compute_root_t(n, expected):
    assert compute_root_t(n) == expected


@pytest.mark.parametrize("n,expected", [
    (1, -1), (2, 0), (3, -1), (4, 1), (5, 0), (6, -1), (7, -1),
    (8, 1), (10, 1), (11, 0), (12, -1), (15, -1),
])
def test_p(n, expected):
    assert p(n) == expected


def test_root_index_defined_for_every_size():
    for n in range(1, 2049):
        assert 0 <= compute_root_t(n) < n
        assert p(n) in (-1, 0, 1)
        assert levels(n) == floor_log2(n) + 1


def test_seven_keys_build_perfect_tree():
    tree = make_almost_complete_bst([7, 3, 5, 1, 6, 2, 4])
    assert tree.root.key == 4
    assert tree == RotationTree([4, 2, 6, 1, 3, 5, 7])
    assert tree.root.parent is None
    assert tree.search(2).parent is tree.root


@pytest.mark.parametrize("n", range(1, 130))
def test_height_is_floor_log2(n):
    keys = list(range(n))
    random.Random(n).shuffle(keys)
    tree = make_almost_complete_bst(keys)
    assert tree.height() == floor_log2(n)
    assert tree.in_order_keys() == sorted(keys)
    assert tree.size() == n


def test_every_subtree_is_near_complete():
    tree = make_almost_complete_bst(range(100))
    assert is_almost_complete(tree)
    for node in tree.in_order():
        assert is_almost_complete(RotationTree.from_root(node))


def test_sequential_tree_is_not_near_complete():
    assert not is_almost_complete(RotationTree(range(1, 8)))
    assert is_almost_complete(RotationTree([1]))


def test_invalid_keys_rejected():
    with pytest.raises(ValueError):
        make_almost_complete_bst([])
    with pytest.raises(DuplicateKeyError):
        make_almost_complete_bst([1, 2, 2])


def test_builder_accepts_any_ordered_keys():
    tree = make_almost_complete_bst(["pear", "apple", "fig"])
    assert tree.root.key == "fig"
    assert tree.in_order_keys() == ["apple", "fig", "pear"]
