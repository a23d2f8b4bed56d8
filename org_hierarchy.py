import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from seeded_random import DeterministicStream
from uar_sample_data import ORG_CHART

# Level 6 is not a separate node: an employee's direct manager (level 5) is
# reported again as their level 6 entry.
NUM_LEVELS = 6
LEAF_LEVEL = 5


@dataclass(frozen=True)
class OrgNode:
    """One position in the reporting tree, referenced by arena index."""
    index: int
    name: str
    level: int
    parent: Optional[int]
    children: Tuple[int, ...] = ()


@dataclass(frozen=True)
class OrgChain:
    """Snapshot of an employee's reporting line from the CEO down to their manager."""
    level_1: str
    level_2: str
    level_3: str
    level_4: str
    level_5: str
    level_6: str

    @property
    def manager(self) -> str:
        return self.level_6

    def levels(self) -> Tuple[str, ...]:
        return (self.level_1, self.level_2, self.level_3,
                self.level_4, self.level_5, self.level_6)


class OrgHierarchy:
    """Immutable arena of org nodes with leaf-to-root lookups."""

    def __init__(self, nodes: Sequence[OrgNode]):
        self.nodes: Tuple[OrgNode, ...] = tuple(nodes)
        self.leaf_indices: Tuple[int, ...] = tuple(
            node.index for node in self.nodes if node.level == LEAF_LEVEL
        )
        self._by_name: Dict[str, int] = {node.name: node.index for node in self.nodes}

    def __len__(self) -> int:
        return len(self.nodes)

    def node(self, name: str) -> OrgNode:
        return self.nodes[self._by_name[name]]

    def nodes_at_level(self, level: int) -> List[OrgNode]:
        return [node for node in self.nodes if node.level == level]

    def chain_for(self, index: int) -> OrgChain:
        """Walk parent references from a level-5 node up to the root."""
        node = self.nodes[index]
        if node.level != LEAF_LEVEL:
            raise ValueError(f"Org chains start at level {LEAF_LEVEL}, got level {node.level} ({node.name})")

        names = [node.name]
        while node.parent is not None:
            node = self.nodes[node.parent]
            names.append(node.name)
        names.reverse()

        return OrgChain(*names, names[-1])

    def random_chain(self, stream: DeterministicStream) -> OrgChain:
        return self.chain_for(stream.pick(self.leaf_indices))


class OrgHierarchyBuilder:
    """Builds the fixed six-level reporting tree from a static org chart."""

    def __init__(self, org_chart: Optional[Sequence[Sequence[Tuple[str, Optional[str]]]]] = None):
        self.org_chart = org_chart if org_chart is not None else ORG_CHART
        self.logger = logging.getLogger(self.__class__.__name__)

    def build(self) -> OrgHierarchy:
        """Resolve parent names to indices level by level and freeze the arena."""
        if len(self.org_chart) != LEAF_LEVEL:
            raise ValueError(f"Org chart must define {LEAF_LEVEL} levels, got {len(self.org_chart)}")

        names: List[str] = []
        levels: List[int] = []
        parents: List[Optional[int]] = []
        children: List[List[int]] = []
        index_by_name: Dict[str, int] = {}

        for level, entries in enumerate(self.org_chart, start=1):
            for name, parent_name in entries:
                if name in index_by_name:
                    raise ValueError(f"Duplicate org node name: {name}")

                parent_index = None
                if level > 1:
                    parent_index = index_by_name.get(parent_name)
                    if parent_index is None or levels[parent_index] != level - 1:
                        raise ValueError(f"Node '{name}' at level {level} has no level {level - 1} parent '{parent_name}'")

                index = len(names)
                index_by_name[name] = index
                names.append(name)
                levels.append(level)
                parents.append(parent_index)
                children.append([])
                if parent_index is not None:
                    children[parent_index].append(index)

        nodes = [
            OrgNode(index=i, name=names[i], level=levels[i], parent=parents[i], children=tuple(children[i]))
            for i in range(len(names))
        ]
        hierarchy = OrgHierarchy(nodes)
        self.logger.debug(f"Built org hierarchy with {len(hierarchy)} nodes, {len(hierarchy.leaf_indices)} managers")
        return hierarchy
