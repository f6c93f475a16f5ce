# rotation_tree.py

class DuplicateKeyError(ValueError):
    """Raised when inserting a key that is already present in the tree."""


class RotationError(RuntimeError):
    """Raised when a rotation is requested on a node lacking the required child."""


class Node:
    """
    Represents a node in the rotation tree.
    Each node has a key, left and right children, and a parent.

    Equality and hashing only look at the key and the two subtrees. The parent
    link is left out so that two independently built trees with the same shape
    compare equal, and so the comparison does not loop through parent links.
    """
    __slots__ = ('key', 'left', 'right', 'parent')

    def __init__(self, key):
        self.key = key
        self.left = None
        self.right = None
        self.parent = None

    def __repr__(self):
        return f"Node({self.key!r})"

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, Node):
            return NotImplemented
        stack = [(self, other)]
        while stack:
            a, b = stack.pop()
            if a is None or b is None:
                if a is not b:
                    return False
                continue
            if a.key != b.key:
                return False
            stack.append((a.left, b.left))
            stack.append((a.right, b.right))
        return True

    def __hash__(self):
        hashes = {}
        for node in post_order(self):
            hashes[id(node)] = hash((
                node.key,
                hashes.pop(id(node.left)) if node.left is not None else None,
                hashes.pop(id(node.right)) if node.right is not None else None,
            ))
        return hashes[id(self)]

    def size(self):
        """Returns the number of nodes in the subtree rooted at this node."""
        return sum(1 for _ in post_order(self))

    def height(self):
        """Returns the number of edges on the longest path from this node down to a leaf."""
        heights = {}
        for node in post_order(self):
            h = 0
            if node.left is not None:
                h = max(h, 1 + heights.pop(id(node.left)))
            if node.right is not None:
                h = max(h, 1 + heights.pop(id(node.right)))
            heights[id(node)] = h
        return heights[id(self)]

    def search(self, key):
        """Finds the node with the given key in the subtree rooted at this node."""
        z = self
        while z is not None:
            if key == z.key:
                return z
            elif key < z.key:
                z = z.left
            else:
                z = z.right
        return None

    def select(self, rank):
        """
        Returns the node of the given rank in the subtree rooted at this node, i.e. the
        node that is larger than exactly `rank` other nodes. Returns None for an invalid rank.
        """
        if rank < 0 or rank >= self.size():
            return None
        z = self
        while True:
            r = z.left.size() if z.left is not None else 0
            if rank == r:
                return z
            elif rank < r:
                z = z.left
            else:
                rank -= r + 1
                z = z.right

    def minimum(self):
        """Returns the node with the minimum key in the subtree rooted at this node."""
        z = self
        while z.left is not None:
            z = z.left
        return z

    def maximum(self):
        """Returns the node with the maximum key in the subtree rooted at this node."""
        z = self
        while z.right is not None:
            z = z.right
        return z

    def in_order_keys(self):
        return [node.key for node in in_order(self)]

    def key_set(self):
        return {node.key for node in in_order(self)}


def in_order(node):
    """
    Generator to traverse a subtree in-order.

    Parameters:
        node (Node): Root of the subtree, may be None.

    Yields:
        Node: The next node in the traversal.
    """
    stack = []
    current = node
    while stack or current is not None:
        while current is not None:
            stack.append(current)
            current = current.left
        current = stack.pop()
        yield current
        current = current.right


def post_order(node):
    """
    Generator to traverse a subtree in post-order (children before their parent).

    Parameters:
        node (Node): Root of the subtree, may be None.

    Yields:
        Node: The next node in the traversal.
    """
    if node is None:
        return
    stack = [(node, False)]
    while stack:
        current, children_done = stack.pop()
        if children_done:
            yield current
            continue
        stack.append((current, True))
        if current.right is not None:
            stack.append((current.right, False))
        if current.left is not None:
            stack.append((current.left, False))


class RotationTree:
    """
    A non-empty binary search tree supporting order statistics and rotations.
    Duplicate keys are not permitted.

    A tree may also be a view over a subtree of another tree (see from_root). The view
    treats its own root as the root even though that node may still have a parent, and
    rotations at the view root relink that parent so the enclosing tree stays consistent.
    """
    def __init__(self, keys):
        keys = list(keys)
        if not keys:
            raise ValueError("keys cannot be empty")
        self.root = None
        self.total_rotations = 0  # To track the number of rotations for performance metrics
        for key in keys:
            self.insert(key)

    @classmethod
    def from_root(cls, root):
        """
        Wraps an existing node as the root of a tree without copying it.
        The view counts only its own rotations in total_rotations.
        """
        if root is None:
            raise ValueError("root cannot be None")
        tree = cls.__new__(cls)
        tree.root = root
        tree.total_rotations = 0
        return tree

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, RotationTree):
            return NotImplemented
        return self.root == other.root

    def __hash__(self):
        return hash(self.root)

    def __repr__(self):
        return f"RotationTree(size={self.size()}, root={self.root!r})"

    def size(self):
        return self.root.size()

    def height(self):
        """Returns the number of edges on the longest path from the root to a leaf."""
        return self.root.height()

    def _replace_child(self, old, new):
        """Hangs `new` where `old` used to hang, updating the root reference if needed."""
        parent = old.parent
        new.parent = parent
        if parent is not None:
            if old is parent.left:
                parent.left = new
            else:
                parent.right = new
        if old is self.root:
            self.root = new

    def rotate_left(self, x):
        """Performs a left rotation on the edge between x and x.right; returns the new local root."""
        y = x.right
        if y is None:
            raise RotationError(f"cannot rotate {x!r} left: it has no right child")
        x.right = y.left
        if y.left is not None:
            y.left.parent = x
        self._replace_child(x, y)
        y.left = x
        x.parent = y
        self.total_rotations += 1
        return y

    def rotate_right(self, y):
        """Performs a right rotation on the edge between y and y.left; returns the new local root."""
        x = y.left
        if x is None:
            raise RotationError(f"cannot rotate {y!r} right: it has no left child")
        y.left = x.right
        if x.right is not None:
            x.right.parent = y
        self._replace_child(y, x)
        x.right = y
        y.parent = x
        self.total_rotations += 1
        return x

    def insert(self, key):
        """Inserts a key into the tree; raises DuplicateKeyError if it is already present."""
        z = self.root
        p = None

        while z is not None:
            p = z
            if key < z.key:
                z = z.left
            elif key > z.key:
                z = z.right
            else:
                raise DuplicateKeyError(f"key {key!r} already in tree")

        z = Node(key)
        z.parent = p

        if p is None:  # The tree was empty
            self.root = z
        elif key < p.key:
            p.left = z
        else:
            p.right = z
        return z

    def search(self, key):
        """Returns the node holding the given key, or None if the key is not in the tree."""
        return self.root.search(key)

    def select(self, rank):
        """
        Gets the node of the given rank, which is larger than exactly `rank` other nodes.
        Rank 0 is the smallest key and size() - 1 the largest; anything else yields None.
        """
        return self.root.select(rank)

    def minimum(self):
        return self.root.minimum()

    def maximum(self):
        return self.root.maximum()

    def depth(self, node):
        """Calculates the depth of a node from the root."""
        depth = 0
        current = node
        while current is not self.root:
            current = current.parent
            depth += 1
        return depth

    def in_order(self):
        return in_order(self.root)

    def post_order(self):
        return post_order(self.root)

    def in_order_nodes(self):
        return list(in_order(self.root))

    def in_order_keys(self):
        return self.root.in_order_keys()

    def key_set(self):
        return self.root.key_set()
