# splay_tree.py

import logging

logger = logging.getLogger(__name__)

# Splay steps recorded while descending towards a grandchild
_LEFT_LEFT = 'left-left'
_LEFT_RIGHT = 'left-right'
_RIGHT_LEFT = 'right-left'
_RIGHT_RIGHT = 'right-right'


def _default_cmp(a, b):
    """Three-way comparison using the keys' own ordering."""
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


class Node:
    """
    Represents a node in the splay tree.
    Each node has a key, an optional value and left and right children.
    There is no parent reference; ownership only flows from parent to child.
    """
    def __init__(self, key, value=None):
        self.key = key
        self.value = value
        self.left = None
        self.right = None

    def __repr__(self):
        return f"Node({self.key!r}: {self.value!r})"


class SplayTree:
    """
    Top-down splay tree mapping ordered keys to values.
    Every search, insertion and deletion splays the tree towards the target key,
    so the accessed node (or the last node on the search path) ends up at the root.
    """
    def __init__(self, cmp=None):
        self.root = None
        self.cmp = cmp or _default_cmp
        self.total_rotations = 0  # To track the number of rotations for performance metrics

    def _right_rotate(self, node):
        """Rotates right around node and returns its former left child as the new local root."""
        x = node.left
        node.left = x.right
        x.right = node
        self.total_rotations += 1
        return x

    def _left_rotate(self, node):
        """Rotates left around node and returns its former right child as the new local root."""
        x = node.right
        node.right = x.left
        x.left = node
        self.total_rotations += 1
        return x

    def _splay(self, node, key):
        """
        Splays the subtree rooted at node towards key and returns the new subtree root.
        If key is present its node becomes the root, otherwise the last node
        visited by the search does.

        The descent records one frame per zig-zig or zig-zag step on an explicit
        stack. Frames are unwound innermost first, so the deepest steps rotate
        before the steps above them and tree depth is not bounded by the
        interpreter recursion limit.
        """
        frames = []

        # Walk down two levels at a time until the step that ends the search
        while True:
            if node is None:
                result = None
                break

            cmp1 = self.cmp(key, node.key)

            if cmp1 < 0:
                if node.left is None:
                    # key is not in the tree
                    result = node
                    break
                cmp2 = self.cmp(key, node.left.key)
                if cmp2 < 0:
                    # Zig-Zig (left-left)
                    frames.append((node, _LEFT_LEFT))
                    node = node.left.left
                elif cmp2 > 0:
                    # Zig-Zag (left-right)
                    frames.append((node, _LEFT_RIGHT))
                    node = node.left.right
                else:
                    result = self._right_rotate(node)
                    break
            elif cmp1 > 0:
                if node.right is None:
                    # key is not in the tree
                    result = node
                    break
                cmp2 = self.cmp(key, node.right.key)
                if cmp2 < 0:
                    # Zig-Zag (right-left)
                    frames.append((node, _RIGHT_LEFT))
                    node = node.right.left
                elif cmp2 > 0:
                    # Zig-Zig (right-right)
                    frames.append((node, _RIGHT_RIGHT))
                    node = node.right.right
                else:
                    result = self._left_rotate(node)
                    break
            else:
                result = node
                break

        # Relink each splayed grandchild and finish its step on the way back up
        while frames:
            node, step = frames.pop()
            if step == _LEFT_LEFT:
                node.left.left = result
                node = self._right_rotate(node)
            elif step == _LEFT_RIGHT:
                node.left.right = result
                if result is not None:
                    node.left = self._left_rotate(node.left)
            elif step == _RIGHT_LEFT:
                node.right.left = result
                if result is not None:
                    node.right = self._right_rotate(node.right)
            else:
                node.right.right = result
                node = self._left_rotate(node)

            if step in (_LEFT_LEFT, _LEFT_RIGHT):
                result = node if node.left is None else self._right_rotate(node)
            else:
                result = node if node.right is None else self._left_rotate(node)

        return result

    def search(self, key):
        """Splays the tree towards key and returns the associated value, or None if not found."""
        if self.root is None:
            return None
        self.root = self._splay(self.root, key)
        if self.cmp(key, self.root.key) == 0:
            return self.root.value
        return None

    def exists(self, key):
        """Returns True if key is stored in the tree. Splays like search does."""
        if self.root is None:
            return False
        self.root = self._splay(self.root, key)
        return self.cmp(key, self.root.key) == 0

    def insert(self, key, value=None):
        """Inserts a key-value pair, or overwrites the value if key already exists. The key ends up at the root."""
        if self.root is None:
            self.root = Node(key, value)
            logger.debug("Created root node for key %r.", key)
            return

        self.root = self._splay(self.root, key)

        cmp = self.cmp(key, self.root.key)
        if cmp < 0:
            n = Node(key, value)
            n.left = self.root.left
            n.right = self.root
            self.root.left = None
            self.root = n
        elif cmp > 0:
            n = Node(key, value)
            n.right = self.root.right
            n.left = self.root
            self.root.right = None
            self.root = n
        else:
            # Duplicate key, only the stored value changes
            self.root.value = value
            logger.debug("Overwrote value for key %r.", key)
            return
        logger.debug("Inserted key %r.", key)

    def delete(self, key):
        """
        Deletes the node with the given key, if present.
        The tree is splayed towards key either way. On success the left subtree
        is splayed towards key as well, which brings its maximum to the top so
        the right subtree can be attached as its right child.
        """
        if self.root is None:
            return

        self.root = self._splay(self.root, key)

        if self.cmp(key, self.root.key) != 0:
            logger.debug("Delete of missing key %r ignored.", key)
            return

        if self.root.left is None:
            self.root = self.root.right
        else:
            x = self.root.right
            self.root = self._splay(self.root.left, key)
            self.root.right = x
        logger.debug("Deleted key %r.", key)

    def size(self):
        """Returns the number of nodes in the tree."""
        count = 0
        stack = [self.root] if self.root is not None else []
        while stack:
            node = stack.pop()
            count += 1
            if node.left is not None:
                stack.append(node.left)
            if node.right is not None:
                stack.append(node.right)
        return count

    def height(self):
        """
        Returns the number of edges on the longest root-to-leaf path.
        An empty tree has height -1 and a single node has height 0.
        """
        best = -1
        stack = [(self.root, 0)] if self.root is not None else []
        while stack:
            node, depth = stack.pop()
            best = max(best, depth)
            if node.left is not None:
                stack.append((node.left, depth + 1))
            if node.right is not None:
                stack.append((node.right, depth + 1))
        return best

    def root_key(self):
        """Returns the key currently at the root, or None for an empty tree."""
        return self.root.key if self.root is not None else None

    def reset_stats(self):
        """Resets the rotation counter."""
        self.total_rotations = 0

    def __len__(self):
        return self.size()

    def __contains__(self, key):
        return self.exists(key)
