"""Disjoint-set structure for merging transitively linked items."""

from __future__ import annotations

from collections.abc import Hashable, Iterable


class UnionFind:
    """Union-find with path compression and union by size.

    Elements are created as singletons on first reference. ``groups()`` lists
    members in first-reference order so callers get deterministic output.
    """

    def __init__(self, elements: Iterable[Hashable] = ()) -> None:
        self._parent: dict[Hashable, Hashable] = {}
        self._size: dict[Hashable, int] = {}
        for element in elements:
            self.find(element)

    def __len__(self) -> int:
        return len(self._parent)

    def __contains__(self, element: Hashable) -> bool:
        return element in self._parent

    def find(self, element: Hashable) -> Hashable:
        if element not in self._parent:
            self._parent[element] = element
            self._size[element] = 1
            return element

        root = element
        while self._parent[root] != root:
            root = self._parent[root]

        while self._parent[element] != root:
            self._parent[element], element = root, self._parent[element]

        return root

    def union(self, a: Hashable, b: Hashable) -> bool:
        """Merge the sets containing a and b. Returns False if already joined."""
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return False
        if self._size[root_a] < self._size[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        self._size[root_a] += self._size[root_b]
        return True

    def connected(self, a: Hashable, b: Hashable) -> bool:
        return self.find(a) == self.find(b)

    def groups(self) -> list[list[Hashable]]:
        by_root: dict[Hashable, list[Hashable]] = {}
        for element in self._parent:
            by_root.setdefault(self.find(element), []).append(element)
        # each group appears where its first member was first referenced
        return list(by_root.values())
