# mlm_system/utils/chain_walker.py
"""
Safe tree walking utilities.
Prevents infinite loops and validates structural pointer integrity.
"""
from collections import deque
from decimal import Decimal
from typing import Callable, Iterator, List, Optional, Sequence, Tuple
import logging

from mlm_system.config.plan import Leg, LEFT, RIGHT, ZERO
from mlm_system.tree.node import Node

logger = logging.getLogger(__name__)


class ChainWalker:
    """
    Safe utilities for walking the structural tree upward (to the root)
    and downward (level order). Callers hold the registry lock.
    """

    def __init__(self, registry):
        self.registry = registry

    def walk_upline(
            self,
            start_node: Node,
            callback: Callable[[Node, Leg, int], bool],
            max_depth: Optional[int] = None
    ) -> int:
        """
        Walk from a node's structural parent up to its root.

        Args:
            start_node: Starting node (not passed to callback)
            callback: Function(ancestor, leg_of_start_under_ancestor, level)
                      -> continue_walking (bool)
            max_depth: Safety cap; defaults to start_node.depth

        Returns:
            Number of ancestors processed

        Example:
            def add_sales(ancestor, leg, level):
                ancestor.addLegSales(leg, amount)
                return True

            walker.walk_upline(buyer, add_sales)
        """
        limit = max_depth if max_depth is not None else start_node.depth + 1
        current = start_node
        level = 1
        processed = 0
        visited = {start_node.id}

        while current.parentId and level <= limit:
            parent = self.registry.get(current.parentId)

            if parent is None:
                logger.warning(
                    f"Parent not found: {current.parentId} for node {current.id}"
                )
                break

            if parent.id in visited:
                logger.error(f"Cycle detected at node {parent.id}")
                break
            visited.add(parent.id)

            if parent.leftId == current.id:
                leg = Leg.A
            elif parent.rightId == current.id:
                leg = Leg.B
            else:
                logger.error(
                    f"Broken pointer: {current.id} names parent {parent.id} "
                    f"but is neither of its children"
                )
                break

            processed += 1
            if not callback(parent, leg, level):
                break

            current = parent
            level += 1

        return processed

    def get_upline_chain(self, node: Node) -> List[Tuple[Node, Leg]]:
        """
        Get ancestors from immediate parent to root.

        Returns:
            List of (ancestor, leg the node sits in under that ancestor)
        """
        chain = []

        def collect(ancestor, leg, level):
            chain.append((ancestor, leg))
            return True

        self.walk_upline(node, collect)
        return chain

    def iter_levels(self, roots: Sequence[Node]) -> Iterator[List[Node]]:
        """
        Yield the trees level by level.

        Level 0 is `roots` in the given order; each following level lists,
        for every node of the previous level in order, its left child then
        its right child.
        """
        level = [r for r in roots if r is not None]
        visited = set()

        while level:
            for node in level:
                visited.add(node.id)
            yield level

            next_level = []
            for node in level:
                for side in (LEFT, RIGHT):
                    child_id = node.childId(side)
                    if not child_id:
                        continue
                    if child_id in visited:
                        logger.error(f"Cycle detected in downline at node {child_id}")
                        continue
                    child = self.registry.get(child_id)
                    if child is None:
                        logger.warning(f"Dangling child pointer {node.id}.{side} -> {child_id}")
                        continue
                    next_level.append(child)
            level = next_level

    def iter_subtree(self, node: Optional[Node]) -> Iterator[Node]:
        """Level-order iteration over a node and everything beneath it."""
        if node is None:
            return
        for level in self.iter_levels([node]):
            yield from level

    def leg_root(self, node: Node, leg: Leg) -> Optional[Node]:
        child_id = node.childId(leg.side)
        return self.registry.get(child_id) if child_id else None

    def subtree_purchase_total(self, node: Optional[Node]) -> Decimal:
        """Sum of purchaseValue over a subtree (full walk)."""
        total = ZERO
        for member in self.iter_subtree(node):
            total += member.purchaseValue
        return total

    def count_subtree(self, node: Optional[Node]) -> int:
        return sum(1 for _ in self.iter_subtree(node))

    def contains(self, ancestor: Node, node: Node) -> bool:
        """True if `node` is `ancestor` or lies beneath it."""
        if node.id == ancestor.id:
            return True
        found = [False]

        def check(upline, leg, level):
            if upline.id == ancestor.id:
                found[0] = True
                return False
            return True

        self.walk_upline(node, check)
        return found[0]

    def recompute_depths(self, node: Node, depth: int):
        """Rewrite depth for a subtree after it moved."""
        offset = depth - node.depth
        for member in self.iter_subtree(node):
            member.depth += offset

    def validate_pointers(self) -> List[str]:
        """
        Check parent/child pointer agreement for every node.

        Returns:
            List of problem descriptions (empty when consistent)
        """
        problems = []
        for node in self.registry.all_nodes():
            for side in (LEFT, RIGHT):
                child_id = node.childId(side)
                if not child_id:
                    continue
                child = self.registry.get(child_id)
                if child is None:
                    problems.append(f"{node.id}.{side} -> missing {child_id}")
                elif child.parentId != node.id:
                    problems.append(
                        f"{node.id}.{side} -> {child_id} but its parent is {child.parentId}"
                    )
            if node.parentId:
                parent = self.registry.get(node.parentId)
                if parent is None:
                    problems.append(f"{node.id} parent missing: {node.parentId}")
                elif node.id not in (parent.leftId, parent.rightId):
                    problems.append(f"{node.id} not a child of its parent {parent.id}")
            elif not node.isFounder:
                problems.append(f"{node.id} has no parent and is not a founder")

        if problems:
            logger.warning(f"Found {len(problems)} pointer problems")
        return problems
