from collections import defaultdict
from typing import Dict, List, Set

from timeblock.models.entities import OverlapGroup, TimeBlock
from timeblock.utils.time_utils import ranges_overlap


def build_conflict_graph(blocks: List[TimeBlock]) -> Dict[str, Set[str]]:
    graph: Dict[str, Set[str]] = defaultdict(set)
    for i, b1 in enumerate(blocks):
        for b2 in blocks[i + 1 :]:
            if ranges_overlap(b1.start, b1.end, b2.start, b2.end):
                graph[b1.id].add(b2.id)
                graph[b2.id].add(b1.id)
    return graph


def group_overlaps(blocks: List[TimeBlock]) -> List[OverlapGroup]:
    """
    Group the blocks of one day into connected overlap components.

    Two blocks land in the same group when a chain of pairwise overlaps links
    them; touching blocks (one ends when the next starts) do not overlap.
    Blocks that overlap nothing are not reported. Groups come back ordered by
    start time. Presentation only: placement never consults this.
    """
    ordered = sorted(blocks, key=lambda b: (b.start, b.end, b.id))
    by_id = {b.id: b for b in ordered}
    graph = build_conflict_graph(ordered)

    seen: Set[str] = set()
    groups: List[OverlapGroup] = []
    for block in ordered:
        if block.id in seen or block.id not in graph:
            continue
        component: List[TimeBlock] = []
        stack = [block.id]
        seen.add(block.id)
        while stack:
            current = stack.pop()
            component.append(by_id[current])
            for neighbour in graph[current]:
                if neighbour not in seen:
                    seen.add(neighbour)
                    stack.append(neighbour)
        component.sort(key=lambda b: (b.start, b.end, b.id))
        groups.append(
            OverlapGroup(
                id="overlap-" + "-".join(sorted(b.id for b in component)),
                blocks=tuple(component),
                start=min(b.start for b in component),
                end=max(b.end for b in component),
                total_duration=sum(b.duration for b in component),
            )
        )
    return groups
