# test_forearms.py
import random

import pytest

from balance_via_rotation import (
    HistoryEntry, Rotation, apply_inverted_rotations, make_almost_complete_bst, make_forearms,
    rotate_node_to_root, size_of_forearms,
)
from rotation_tree import RotationTree, in_order

SEEDS = range(25)


def unique_keys(seed, min_size=2, max_size=60):
    rng = random.Random(seed)
    return rng.sample(range(1000), rng.randint(min_size, max_size))


@pytest.mark.parametrize("seed", SEEDS)
def test_forearms_keep_root_and_in_order(seed):
    keys = unique_keys(seed)
    tree = RotationTree(keys)
    root_key = tree.root.key
    before = tree.in_order_keys()

    make_forearms(tree)

    assert tree.root.key == root_key
    assert tree.in_order_keys() == before
    assert tree.size() == len(keys)


@pytest.mark.parametrize("seed", SEEDS)
def test_forearms_are_chains(seed):
    tree = RotationTree(unique_keys(seed))
    left = tree.root.left
    right = tree.root.right
    left_size = left.size() if left is not None else 0
    right_size = right.size() if right is not None else 0

    make_forearms(tree)

    if tree.root.left is not None:
        assert all(node.left is None for node in in_order(tree.root.left))
        assert tree.root.left.size() == left_size
        assert tree.root.left.height() == left_size - 1
    if tree.root.right is not None:
        assert all(node.right is None for node in in_order(tree.root.right))
        assert tree.root.right.size() == right_size
        assert tree.root.right.height() == right_size - 1
    assert size_of_forearms(tree.root) == len(tree.key_set()) - 1


@pytest.mark.parametrize("seed", SEEDS)
def test_forearms_idempotent(seed):
    tree = RotationTree(unique_keys(seed))
    ignored = set(random.Random(seed).sample(sorted(tree.key_set()), 3)) if tree.size() > 3 else set()
    make_forearms(tree, ignored)
    shape = tree.in_order_keys(), hash(tree)
    assert make_forearms(tree, ignored) == []
    assert (tree.in_order_keys(), hash(tree)) == shape


@pytest.mark.parametrize("seed", SEEDS)
def test_inverted_history_restores_tree(seed):
    keys = unique_keys(seed)
    original = RotationTree(keys)
    tree = RotationTree(keys)

    history = make_forearms(tree)
    assert len(history) == tree.total_rotations
    apply_inverted_rotations(tree, history)

    assert tree == original


def test_history_of_perfect_tree():
    tree = make_almost_complete_bst(range(1, 8))
    history = make_forearms(tree)
    assert history == [HistoryEntry(Rotation.RIGHT, 1), HistoryEntry(Rotation.LEFT, 7)]
    assert tree.root.left.key == 1
    assert tree.root.right.key == 7


def test_ignored_keys_are_not_rotated_up():
    tree = make_almost_complete_bst(range(1, 8))
    history = make_forearms(tree, {1})
    assert history == [HistoryEntry(Rotation.LEFT, 7)]
    assert tree.search(2).left.key == 1
    assert tree.in_order_keys() == list(range(1, 8))


def test_ignored_subtree_root_is_not_rotated_down():
    tree = make_almost_complete_bst(range(1, 8))
    history = make_forearms(tree, {2})
    assert history == [HistoryEntry(Rotation.LEFT, 7)]
    node = tree.search(2)
    assert tree.root.left is node
    assert node.left.key == 1
    assert node.right.key == 3


@pytest.mark.parametrize("seed", SEEDS)
def test_ignored_subtrees_keep_their_shape(seed):
    keys = unique_keys(seed, min_size=5)
    tree = RotationTree(keys)
    rng = random.Random(seed)
    ignored = set(rng.sample([k for k in keys if k != tree.root.key], 2))
    links = [(node, node.left, node.right) for k in ignored for node in in_order(tree.search(k))]

    make_forearms(tree, ignored)

    for node, left, right in links:
        assert node.left is left
        assert node.right is right
    assert tree.in_order_keys() == sorted(keys)


def test_size_of_forearms():
    assert size_of_forearms(make_almost_complete_bst(range(1, 8)).root) == 4
    chain = RotationTree(range(1, 8))
    assert size_of_forearms(chain.search(4)) == 1
    assert size_of_forearms(chain.search(7)) == 0
    assert size_of_forearms(chain.root) == 1


@pytest.mark.parametrize("seed", SEEDS)
def test_rotate_node_to_root(seed):
    keys = unique_keys(seed)
    tree = RotationTree(keys)
    rank = seed % len(keys)
    node = tree.select(rank)
    depth = tree.depth(node)

    rotations = rotate_node_to_root(tree, rank)

    assert tree.root is node
    assert node.parent is None
    assert rotations == depth
    assert tree.in_order_keys() == sorted(keys)


def test_rotate_node_to_root_counts_cs_growth():
    tree = RotationTree(range(1, 8))
    node = tree.select(3)
    cs_before = size_of_forearms(node)
    rotations = rotate_node_to_root(tree, 3)
    assert rotations == 3
    assert size_of_forearms(tree.root) == cs_before + rotations


def test_rotate_node_to_root_out_of_range():
    tree = RotationTree([2, 1, 3])
    with pytest.raises(IndexError):
        rotate_node_to_root(tree, 3)
    with pytest.raises(IndexError):
        rotate_node_to_root(tree, -1)
    assert tree == RotationTree([2, 1, 3])
