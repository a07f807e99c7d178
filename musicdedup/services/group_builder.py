"""
Duplicate grouping.

Duplicate pairs are edges of an undirected graph over record keys; each
connected component with two or more members is a DuplicateGroup.

Similarity is not transitive: A~B and B~C put A, B and C in one group
even when A and C would not match directly. Groups are meant for user
review, so this looser grouping is kept rather than restricting groups
to cliques.
"""

from typing import Dict, Iterable, List

import structlog

from musicdedup.models.dedup import DuplicateGroup, DuplicatePair
from musicdedup.models.record import RecordKey, sort_key
from musicdedup.observability.metrics import GROUP_SIZE

logger = structlog.get_logger()


class _UnionFind:
    def __init__(self) -> None:
        self.parent: Dict[RecordKey, RecordKey] = {}

    def find(self, key: RecordKey) -> RecordKey:
        parent = self.parent.setdefault(key, key)
        if parent == key:
            return key
        # Path halving
        while self.parent[key] != key:
            self.parent[key] = self.parent[self.parent[key]]
            key = self.parent[key]
        return key

    def union(self, a: RecordKey, b: RecordKey) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        # Lower key becomes the root so roots do not depend on edge order
        if sort_key(root_b) < sort_key(root_a):
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a


class DuplicateGroupBuilder:
    """Builds connected-component groups from duplicate pairs."""

    def build(self, pairs: Iterable[DuplicatePair]) -> List[DuplicateGroup]:
        """
        Group records connected by duplicate pairs.

        Args:
            pairs: Pairs in any order; non-duplicate pairs are ignored

        Returns:
            Groups sorted by their lowest member key, ids numbered from 1
        """
        uf = _UnionFind()
        edges = 0
        for pair in pairs:
            if not pair.is_duplicate:
                continue
            uf.union(pair.first_id, pair.second_id)
            edges += 1

        components: Dict[RecordKey, List[RecordKey]] = {}
        for key in list(uf.parent):
            components.setdefault(uf.find(key), []).append(key)

        members = [
            sorted(component, key=sort_key)
            for component in components.values()
            if len(component) >= 2
        ]
        members.sort(key=lambda m: sort_key(m[0]))

        groups = [
            DuplicateGroup(group_id=index, member_ids=member_ids)
            for index, member_ids in enumerate(members, start=1)
        ]
        for group in groups:
            GROUP_SIZE.observe(group.size)

        logger.info(
            "duplicate_groups_built",
            edges=edges,
            groups=len(groups),
            records_grouped=sum(g.size for g in groups),
        )
        return groups
