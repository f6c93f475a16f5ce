# balance_via_rotation.py
import logging
from collections import namedtuple
from enum import Enum

from rotation_tree import Node, RotationTree, DuplicateKeyError

logger = logging.getLogger('RotationLogger')


class Rotation(Enum):
    """A left or right rotation."""
    LEFT = 'left'
    RIGHT = 'right'

    def inverse(self):
        return Rotation.RIGHT if self is Rotation.LEFT else Rotation.LEFT


class Algorithm(Enum):
    A1 = 'A1'
    A2 = 'A2'
    A3 = 'A3'


# Returned by each algorithm.
Statistic = namedtuple('Statistic', ['rotations_actual', 'rotations_expected'])

# One rotation performed while folding a tree into forearms.
HistoryEntry = namedtuple('HistoryEntry', ['rotation', 'key'])

VertexInterval = namedtuple('VertexInterval', ['min', 'max'])


# ==========================
# Near-complete trees
# ==========================

def floor_log2(n):
    return n.bit_length() - 1


def levels(n):
    """Returns the number of levels in a near-complete binary tree of n nodes."""
    return floor_log2(n) + 1


def _thresholds(n):
    h = levels(n)
    two_h = 1 << h
    two_h_minus_1 = 1 << (h - 1)
    two_h_minus_2 = 1 << (h - 2) if h >= 2 else 0
    return h, two_h, two_h_minus_1, two_h_minus_2


def compute_root_t(n):
    """
    Computes the index (rank) of the root of a near-complete tree with n nodes.

    Parameters:
        n (int): Number of nodes, at least 1.

    Returns:
        int: 0-based rank of the root among the n keys.
    """
    h, two_h, two_h_minus_1, two_h_minus_2 = _thresholds(n)
    if two_h_minus_1 <= n <= two_h_minus_1 + two_h_minus_2 - 2:
        return n - two_h_minus_2
    elif two_h_minus_1 + two_h_minus_2 - 1 <= n <= two_h - 1:
        return two_h_minus_1 - 1
    raise RuntimeError(f"root index undefined for n={n}, h={h}")


def p(n):
    """Classifies n into +1, 0 or -1 for the rotation count formulas."""
    h, two_h, two_h_minus_1, two_h_minus_2 = _thresholds(n)
    v = two_h_minus_1 + two_h_minus_2
    if two_h_minus_1 <= n <= v - 2:
        return +1
    elif n == v - 1:
        return 0
    elif v <= n <= two_h - 1:
        return -1
    raise RuntimeError(f"p undefined for n={n}, h={h}")


def make_almost_complete_bst(keys):
    """
    Creates a near-complete binary search tree from a non-empty collection of keys.

    Parameters:
        keys (Iterable): Distinct, mutually comparable keys in any order.

    Returns:
        RotationTree: The tree whose every subtree is rooted at compute_root_t of its keys.
    """
    keys = sorted(keys)
    if not keys:
        raise ValueError("keys cannot be empty")
    for a, b in zip(keys, keys[1:]):
        if a == b:
            raise DuplicateKeyError(f"key {a!r} appears more than once")

    # Explicit stack of (parent, is_left_child, lo, hi) ranges into the sorted keys.
    root = None
    stack = [(None, False, 0, len(keys))]
    while stack:
        parent, is_left, lo, hi = stack.pop()
        if lo == hi:
            continue
        mid = lo + compute_root_t(hi - lo)
        node = Node(keys[mid])
        node.parent = parent
        if parent is None:
            root = node
        elif is_left:
            parent.left = node
        else:
            parent.right = node
        stack.append((node, True, lo, mid))
        stack.append((node, False, mid + 1, hi))
    return RotationTree.from_root(root)


def is_almost_complete(tree):
    return make_almost_complete_bst(tree.key_set()) == tree


# ==========================
# Forearms
# ==========================

def size_of_forearms(node):
    """Returns the combined number of nodes in the left and right forearm of the given node."""
    size = 0
    walk = node.left
    while walk is not None:
        size += 1
        walk = walk.right
    walk = node.right
    while walk is not None:
        size += 1
        walk = walk.left
    return size


def _forearm_overlap(node, roots):
    """Counts the forearm nodes of node that lie in a subtree rooted at one of roots."""
    # Once a walk enters such a subtree it stays inside it.
    count = 0
    inside = node.key in roots
    walk = node.left
    while walk is not None:
        inside = inside or walk.key in roots
        if inside:
            count += 1
        walk = walk.right

    inside = node.key in roots
    walk = node.right
    while walk is not None:
        inside = inside or walk.key in roots
        if inside:
            count += 1
        walk = walk.left
    return count


def make_forearms(tree, ignored_keys=()):
    """
    Folds the tree below its root into a left and a right forearm.

    The left subtree becomes a chain of right children and the right subtree a chain
    of left children. A subtree rooted at a key in ignored_keys is left exactly as it
    is: its root is never rotated up, and the walk stops instead of rotating it down.
    The root is not touched.

    Parameters:
        tree (RotationTree): The tree to fold in place.
        ignored_keys (Collection): Roots of subtrees that must not be rotated.

    Returns:
        List[HistoryEntry]: The rotations performed, in order.
    """
    ignored_keys = frozenset(ignored_keys)
    history = []

    current = tree.root.left
    while current is not None and current.key not in ignored_keys:
        child = current.left
        if child is not None and child.key not in ignored_keys:
            current = tree.rotate_right(current)
            history.append(HistoryEntry(Rotation.RIGHT, current.key))
        else:
            # Next node on the right spine
            current = current.right

    current = tree.root.right
    while current is not None and current.key not in ignored_keys:
        child = current.right
        if child is not None and child.key not in ignored_keys:
            current = tree.rotate_left(current)
            history.append(HistoryEntry(Rotation.LEFT, current.key))
        else:
            current = current.left

    logger.debug(f"Folded tree rooted at {tree.root.key!r} into forearms with {len(history)} rotations.")
    return history


def apply_inverted_rotations(tree, history):
    """Replays a rotation history on the tree in reverse, swapping left and right rotations."""
    for entry in reversed(history):
        node = tree.search(entry.key)
        if node is None:
            raise ValueError(f"key {entry.key!r} from the rotation history is not in the tree")
        # Undoing a rotation that lifted `node` means rotating `node` back down.
        if entry.rotation.inverse() is Rotation.LEFT:
            tree.rotate_left(node)
        else:
            tree.rotate_right(node)


# ==========================
# Root alignment
# ==========================

def rotate_node_to_root(tree, rank):
    """
    Moves the node of the given rank to the root of the tree.

    Parameters:
        tree (RotationTree): The tree to rotate in place.
        rank (int): 0-based rank of the node to lift.

    Returns:
        int: Number of rotations performed, which equals the node's original depth.
    """
    node = tree.select(rank)
    if node is None:
        raise IndexError(f"rank {rank} is out of range for a tree of size {tree.size()}")

    num_rotations = 0
    while node is not tree.root:
        parent = node.parent
        if parent.left is node:
            tree.rotate_right(parent)
        else:
            tree.rotate_left(parent)
        num_rotations += 1
    return num_rotations


# ==========================
# Subtree matching
# ==========================

def assert_sanity(S, T):
    """Ensures that S and T can be used together by the matchers and algorithms."""
    if S is None or T is None:
        raise ValueError("S and T must not be None")
    if S is T:
        raise ValueError("S refers to the same object as T")
    if S.key_set() != T.key_set():
        raise ValueError("S and T have different key sets")


def _assert_target(S, T):
    assert_sanity(S, T)
    if not is_almost_complete(T):
        raise ValueError("T is not the near-complete tree over its keys")


def _child_key(node):
    return node.key if node is not None else None


def find_maximal_identical_subtrees(S, T):
    """
    Computes the roots of the maximal identical subtrees of S and T with a bottom-up
    dynamic program over a post-order traversal of S.

    Returns:
        set: Keys of the roots of the maximal subtrees shared in shape and keys.
    """
    assert_sanity(S, T)

    roots = set()
    for node in S.post_order():
        child_keys = [child.key for child in (node.left, node.right) if child is not None]
        if not roots.issuperset(child_keys):
            continue
        # The children (if any) already match their counterparts in T, so the
        # subtrees agree iff the node in T has the same children.
        node_t = T.search(node.key)
        if (_child_key(node.left) == _child_key(node_t.left)
                and _child_key(node.right) == _child_key(node_t.right)):
            roots.add(node.key)
            roots.difference_update(child_keys)
    return roots


def vertex_intervals(tree, ranks=None):
    """
    Computes the vertex interval of every node, bottom-up over a post-order traversal.
    The intervals are only valid until the tree is rotated or modified.

    Parameters:
        tree (RotationTree): The tree.
        ranks (dict): Optional key-to-rank mapping; defaults to the tree's in-order ranks.

    Returns:
        dict: Mapping from key to VertexInterval.
    """
    if ranks is None:
        ranks = {node.key: rank for rank, node in enumerate(tree.in_order())}

    intervals = {}
    for node in tree.post_order():
        low = high = ranks[node.key]
        if node.left is not None:
            low = intervals[node.left.key].min
        if node.right is not None:
            high = intervals[node.right.key].max
        intervals[node.key] = VertexInterval(low, high)
    return intervals


def find_maximal_equivalent_subtrees(S, T):
    """
    Returns the keys of the roots of maximal subtrees holding the same key set in S and T.

    Both trees rank their (shared) keys the same way, so two subtrees hold the same
    keys exactly when their vertex intervals agree. Only the topmost such node on
    every root-to-leaf path of S is kept.
    """
    assert_sanity(S, T)

    ranks = {node.key: rank for rank, node in enumerate(S.in_order())}
    intervals_s = vertex_intervals(S, ranks)
    intervals_t = vertex_intervals(T, ranks)

    roots = set()
    stack = [S.root]
    while stack:
        node = stack.pop()
        if intervals_s[node.key] == intervals_t[node.key]:
            roots.add(node.key)
            continue
        stack.extend(child for child in (node.left, node.right) if child is not None)
    return roots


# ==========================
# Balancing algorithms
# ==========================

def A1(S, T):
    """
    Transforms S into the near-complete tree T by lifting T's root into place, folding
    both trees into forearms and unfolding S along T's inverted folding history.

    Parameters:
        S (RotationTree): Arbitrary tree, rotated in place.
        T (RotationTree): Near-complete tree over the same keys.

    Returns:
        Statistic: Rotations performed and rotations predicted by Theorem 1.
    """
    _assert_target(S, T)
    return _a1(S, T)


def _a1(S, T):
    root_t_rank = compute_root_t(T.size())
    cs_root_t = size_of_forearms(S.select(root_t_rank))

    rotations_root = rotate_node_to_root(S, root_t_rank)
    rotations_forearms = len(make_forearms(S))

    t_prime = make_almost_complete_bst(T.key_set())
    history = make_forearms(t_prime)
    apply_inverted_rotations(S, history)
    _check_result(S, T, 'A1')

    n = S.size()
    stat = Statistic(
        rotations_root + rotations_forearms + len(history),
        2 * n - 2 * floor_log2(n) + p(n) - cs_root_t - 1,
    )
    logger.debug(f"A1 n={n}: root={rotations_root}, forearms={rotations_forearms}, "
                 f"unfold={len(history)}, expected={stat.rotations_expected}")
    return stat


def A2(S, T):
    """
    A1 that leaves the maximal identical subtrees of S and T alone.

    Matched nodes that also lie on a forearm of rootT in S, or of the root of T, are
    credited once by the subtree term and once by the forearm terms; the prediction
    adds them back, so the actual count never exceeds it.

    Returns:
        Statistic: Rotations performed and rotations predicted.
    """
    _assert_target(S, T)

    common_roots = find_maximal_identical_subtrees(S, T)
    if not common_roots:
        # S and T share no common subtrees, so apply A1 normally.
        logger.debug("A2 found no identical subtrees; falling back to A1.")
        return _a1(S, T)
    if S.root.key in common_roots:
        logger.debug("A2 found S identical to T; nothing to rotate.")
        return Statistic(0, 0)

    # Calculate this now before performing any rotations.
    subtree_term = sum(S.search(k).size() for k in common_roots)

    root_t_rank = compute_root_t(T.size())
    root_t = S.select(root_t_rank)
    cs_root_t = size_of_forearms(root_t)
    overlap = _forearm_overlap(root_t, common_roots) + _forearm_overlap(T.root, common_roots)
    rotations_root = rotate_node_to_root(S, root_t_rank)

    rotations_forearms = len(make_forearms(S, common_roots))

    t_prime = make_almost_complete_bst(T.key_set())
    history = make_forearms(t_prime, common_roots)
    apply_inverted_rotations(S, history)
    _check_result(S, T, 'A2')

    n = S.size()
    stat = Statistic(
        rotations_root + rotations_forearms + len(history),
        2 * n - 2 * floor_log2(n) - 2 * subtree_term - cs_root_t + overlap,
    )
    logger.debug(f"A2 n={n}: {len(common_roots)} identical subtrees covering {subtree_term} nodes, "
                 f"overlap={overlap}, actual={stat.rotations_actual}, expected={stat.rotations_expected}")
    return stat


def A3(S, T):
    """
    Makes every maximal equivalent subtree of S identical to its counterpart in T with
    A1, then finishes the whole tree with A2.

    The bound credits equivalent-subtree nodes on the forearms once, as A2 does.

    Returns:
        Statistic: Rotations performed and an upper bound on them.
    """
    _assert_target(S, T)
    equivalent_roots = find_maximal_equivalent_subtrees(S, T)

    # Measure the subtrees and cs(rootT) before performing rotations.
    subtree_term = sum(floor_log2(S.search(k).size()) for k in equivalent_roots)
    root_t_rank = compute_root_t(T.size())
    root_t = S.select(root_t_rank)
    cs_root_t = size_of_forearms(root_t)
    overlap = _forearm_overlap(root_t, equivalent_roots) + _forearm_overlap(T.root, equivalent_roots)

    rotations_a1 = 0
    g = 0
    for k in sorted(equivalent_roots):
        node_s = S.search(k)
        node_t = T.search(k)
        if node_s == node_t:
            continue
        g += 1
        if node_s is S.root:
            # S and T share their root key, so this is the only equivalent subtree.
            rotations_a1 += _a1(S, T).rotations_actual
        else:
            subtree_s = RotationTree.from_root(node_s)
            rotations_a1 += _a1(subtree_s, RotationTree.from_root(node_t)).rotations_actual
            S.total_rotations += subtree_s.total_rotations

    # All maximal equivalent subtrees are identical now, which A2 takes advantage of.
    # A2 returns without rotating once S equals T.
    stat_a2 = A2(S, T)

    n = S.size()
    stat = Statistic(
        rotations_a1 + stat_a2.rotations_actual,
        2 * n - 2 * floor_log2(n) - cs_root_t - 2 * subtree_term + g + 1 + overlap,
    )
    logger.debug(f"A3 n={n}: {len(equivalent_roots)} equivalent subtrees, g={g}, overlap={overlap}, "
                 f"actual={stat.rotations_actual}, bound={stat.rotations_expected}")
    return stat


def _check_result(S, T, name):
    if S != T:
        raise RuntimeError(f"{name} finished without transforming S into T")


ALGORITHMS = {
    Algorithm.A1: A1,
    Algorithm.A2: A2,
    Algorithm.A3: A3,
}


def run_algorithm(algorithm, S, T):
    """Runs the given algorithm (an Algorithm or its name) on S and T."""
    algorithm = Algorithm(algorithm)
    stat = ALGORITHMS[algorithm](S, T)
    if stat.rotations_actual > stat.rotations_expected:
        logger.warning(f"{algorithm.value} used {stat.rotations_actual} rotations, "
                       f"more than the predicted {stat.rotations_expected}.")
    return stat
