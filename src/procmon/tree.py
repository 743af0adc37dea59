# src/procmon/tree.py
"""Parent/child forest of the filtered processes.

The forest is rebuilt from scratch every tick. Only processes in the current
filtered set appear; a process whose parent is not in that set becomes a
root, even when its real parent is alive.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from procmon.collector import ProcessInfo
from procmon.history import ProcessIdentity

TREE_NAME_LENGTH = 55


@dataclass(eq=False)
class TreeNode:
    """One process in the forest. Compared by identity."""

    pid: int
    parent_pid: int | None
    identity: ProcessIdentity
    name: str
    cpu_percent: float
    memory_mb: float
    children: list[TreeNode] = field(default_factory=list)
    depth: int = 0

    @property
    def display_name(self) -> str:
        return self.identity.display_name


def _sort_by_cpu(nodes: list[TreeNode]) -> None:
    # list.sort is stable: equal CPU keeps discovery order
    nodes.sort(key=lambda n: n.cpu_percent, reverse=True)
    for node in nodes:
        _sort_by_cpu(node.children)


def _assign_depths(roots: list[TreeNode]) -> None:
    stack = [(root, 0) for root in roots]
    while stack:
        node, depth = stack.pop()
        node.depth = depth
        stack.extend((child, depth + 1) for child in node.children)


def build_tree(
    processes: Iterable[ProcessInfo],
    parent_lookup: Mapping[int, int | None],
    identities: Mapping[int, ProcessIdentity] | None = None,
) -> list[TreeNode]:
    """Build a CPU-ranked forest from the filtered processes.

    Args:
        processes: The filtered processes for this tick
        parent_lookup: pid -> parent pid for any process (may include
            processes outside the filter); missing means no known parent
        identities: Cached identities by pid; computed from the command
            line when absent

    Returns:
        Root nodes sorted by descending CPU, each with children sorted the same way.
    """
    identities = identities or {}
    nodes: dict[int, TreeNode] = {}

    for proc in processes:
        identity = identities.get(proc.pid) or ProcessIdentity.from_command(
            proc.pid, proc.cmd, proc.name, TREE_NAME_LENGTH
        )
        parent_pid = parent_lookup.get(proc.pid, proc.ppid)
        nodes[proc.pid] = TreeNode(
            pid=proc.pid,
            parent_pid=parent_pid,
            identity=identity,
            name=proc.name,
            cpu_percent=proc.cpu,
            memory_mb=proc.memory_mb,
        )

    roots: list[TreeNode] = []
    for node in nodes.values():
        parent = nodes.get(node.parent_pid) if node.parent_pid is not None else None
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent.children.append(node)

    # Nodes trapped in a parent cycle (PID reuse) are unreachable from any root
    reachable = {n.pid for n in flatten_tree(roots)}
    for node in nodes.values():
        if node.pid not in reachable:
            for other in nodes.values():
                if node in other.children:
                    other.children.remove(node)
            roots.append(node)
            reachable.update(n.pid for n in flatten_tree([node]))

    _sort_by_cpu(roots)
    _assign_depths(roots)
    return roots


def flatten_tree(roots: Iterable[TreeNode]) -> list[TreeNode]:
    """Pre-order depth-first listing of the forest."""
    result: list[TreeNode] = []
    stack = list(reversed(list(roots)))
    while stack:
        node = stack.pop()
        result.append(node)
        stack.extend(reversed(node.children))
    return result


def is_last_sibling(flat: list[TreeNode], index: int) -> bool:
    """Whether flat[index] is the last child of its parent in a flattened forest."""
    depth = flat[index].depth
    for node in flat[index + 1 :]:
        if node.depth < depth:
            return True
        if node.depth == depth:
            return False
    return True


def tree_prefix(node: TreeNode, is_last: bool) -> str:
    """Indentation and connector drawn before a node's name."""
    if node.depth == 0:
        return ""
    connector = "└─ " if is_last else "├─ "
    return "  " * (node.depth - 1) + connector
