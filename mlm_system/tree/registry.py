# mlm_system/tree/registry.py
"""
Node registry - canonical in-memory store of the referral trees.

Holds nodes by id and by contact, allocates ids and owns every structural
pointer write. Constructed once per NetworkManager; never module-global.
"""
import logging
import re
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from mlm_system.config.plan import Role, Leg, ID_PREFIXES, ID_DIGITS, SIDES, LEFT, RIGHT
from mlm_system.errors import DuplicateContact, InvalidSponsor, NotFound
from mlm_system.tree.node import Node
from mlm_system.utils.chain_walker import ChainWalker
from mlm_system.utils.rwlock import ReadWriteLock
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"^([A-Z]+)(\d+)$")


def normalize_contact(contact: str) -> str:
    return (contact or "").strip().lower()


class NodeRegistry:
    """
    Registry of nodes with structural integrity.

    Locking: `lock.writing()` around anything that changes structure,
    `lock.reading()` around multi-node reads. Single lookups (get, byId,
    byContact) are plain dict reads and take no lock.
    """

    def __init__(self):
        self._nodes: Dict[str, Node] = {}
        self._byContact: Dict[str, Node] = {}
        self._rootIds: List[str] = []
        self._counters: Dict[str, int] = {prefix: 0 for prefix in ID_PREFIXES.values()}
        self.lock = ReadWriteLock()
        self.walker = ChainWalker(self)

    # ============================================================
    # LOOKUPS
    # ============================================================

    def get(self, nodeId: Optional[str]) -> Optional[Node]:
        if not nodeId:
            return None
        return self._nodes.get(nodeId)

    def byId(self, nodeId: str) -> Node:
        node = self.get(nodeId)
        if node is None:
            raise NotFound(f"Node {nodeId} not found")
        return node

    def byContact(self, contact: str) -> Node:
        node = self._byContact.get(normalize_contact(contact))
        if node is None:
            raise NotFound(f"No node with contact {contact}")
        return node

    def hasContact(self, contact: str) -> bool:
        return normalize_contact(contact) in self._byContact

    def all_nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def roots(self) -> List[Node]:
        """Founder roots in root-list order."""
        return [self._nodes[rootId] for rootId in self._rootIds]

    def __len__(self):
        return len(self._nodes)

    def __contains__(self, nodeId):
        return nodeId in self._nodes

    # ============================================================
    # CREATION
    # ============================================================

    def _nextId(self, role: Role) -> str:
        """Allocate the next id for a role. Caller holds the write lock."""
        prefix = ID_PREFIXES[role]
        self._counters[prefix] += 1
        return f"{prefix}{self._counters[prefix]:0{ID_DIGITS}d}"

    def _trackId(self, nodeId: str):
        """Keep counters ahead of explicitly supplied or restored ids."""
        match = _ID_PATTERN.match(nodeId)
        if match and match.group(1) in self._counters:
            prefix, number = match.group(1), int(match.group(2))
            self._counters[prefix] = max(self._counters[prefix], number)

    def create(
            self,
            role: Role,
            name: str,
            contact: str,
            sponsorId: Optional[str] = None,
            nodeId: Optional[str] = None
    ) -> Node:
        """
        Create and register a node (not yet attached to the tree).

        Raises:
            DuplicateContact: contact already registered
            InvalidSponsor: sponsorId given but unknown
        """
        with self.lock.writing():
            key = normalize_contact(contact)
            if key in self._byContact:
                raise DuplicateContact(contact)
            if sponsorId and sponsorId not in self._nodes:
                raise InvalidSponsor(sponsorId)
            if nodeId and nodeId in self._nodes:
                raise ValueError(f"Node id {nodeId} already exists")

            if nodeId:
                self._trackId(nodeId)
            else:
                nodeId = self._nextId(role)

            node = Node(
                id=nodeId,
                name=name,
                contact=contact.strip(),
                role=role,
                sponsorId=sponsorId,
                createdAt=timeMachine.now,
            )
            self._nodes[nodeId] = node
            self._byContact[key] = node

            logger.debug(f"Registered node {nodeId} ({role.value})")
            return node

    def addRoot(self, node: Node):
        """Append a founder to the root list."""
        with self.lock.writing():
            if node.id not in self._rootIds:
                node.depth = 0
                self._rootIds.append(node.id)

    # ============================================================
    # STRUCTURE
    # ============================================================

    def attachChild(self, parent: Node, side: str, child: Node):
        """
        Claim an empty slot under parent for child (and its subtree).

        Ancestor leg sums grow by the subtree's purchase total.
        """
        with self.lock.writing():
            if side not in SIDES:
                raise ValueError(f"Unknown side {side}")
            if parent.childId(side):
                raise ValueError(f"Slot {parent.id}.{side} already taken by {parent.childId(side)}")
            if child.parentId:
                raise ValueError(f"Node {child.id} already attached under {child.parentId}")

            parent.setChild(side, child.id)
            child.parentId = parent.id
            self.walker.recompute_depths(child, parent.depth + 1)

            total = self.walker.subtree_purchase_total(child)
            if total:
                self._adjustLegSales(parent, Leg.from_side(side), total)

    def detach(self, node: Node):
        """Remove a subtree from its parent; ancestor leg sums shrink."""
        with self.lock.writing():
            parent = self.get(node.parentId)
            if parent is None:
                raise ValueError(f"Node {node.id} is not attached")

            side = LEFT if parent.leftId == node.id else RIGHT
            total = self.walker.subtree_purchase_total(node)
            if total:
                self._adjustLegSales(parent, Leg.from_side(side), -total)

            parent.setChild(side, None)
            node.parentId = None

    def moveSubtree(self, subtreeRoot: Node, newParent: Node, side: str) -> Node:
        """
        Detach a subtree and re-attach it elsewhere, as one unit.

        Leg sums along both ancestor paths and depths inside the subtree
        are kept exact.

        Returns:
            The old parent
        """
        with self.lock.writing():
            if self.walker.contains(subtreeRoot, newParent):
                raise ValueError(
                    f"Cannot move {subtreeRoot.id} under its own descendant {newParent.id}"
                )
            oldParent = self.get(subtreeRoot.parentId)
            self.detach(subtreeRoot)
            self.attachChild(newParent, side, subtreeRoot)

            logger.info(
                f"Moved subtree {subtreeRoot.id} from "
                f"{oldParent.id if oldParent else None} to {newParent.id}.{side}"
            )
            return oldParent

    def insertAbove(self, occupant: Node, newcomer: Node, side: str = LEFT):
        """
        Put newcomer in occupant's slot and hang occupant's subtree under
        newcomer's `side`. Ancestors above the slot keep their leg sums.
        """
        with self.lock.writing():
            parent = self.get(occupant.parentId)
            if parent is None:
                raise ValueError(f"Node {occupant.id} is not attached")
            slot = LEFT if parent.leftId == occupant.id else RIGHT

            self.detach(occupant)
            self.attachChild(parent, slot, newcomer)
            self.attachChild(newcomer, side, occupant)

            logger.info(f"Inserted {newcomer.id} above {occupant.id} at {parent.id}.{slot}")

    def _adjustLegSales(self, parent: Node, leg: Leg, delta: Decimal):
        parent.addLegSales(leg, delta)

        def apply(ancestor, ancestorLeg, level):
            ancestor.addLegSales(ancestorLeg, delta)
            return True

        self.walker.walk_upline(parent, apply)

    # ============================================================
    # RESTORE
    # ============================================================

    def restore(self, nodes: Iterable[Node]):
        """
        Rebuild the registry from persisted nodes.

        Nodes arrive in creation order; founders without a parent become
        roots in that order. Dangling pointers are dropped with a warning.
        """
        with self.lock.writing():
            nodes = list(nodes)
            for node in nodes:
                self._nodes[node.id] = node
                self._byContact[normalize_contact(node.contact)] = node
                self._trackId(node.id)

            for node in nodes:
                for side in SIDES:
                    childId = node.childId(side)
                    if childId and childId not in self._nodes:
                        logger.warning(f"Dropping dangling pointer {node.id}.{side} -> {childId}")
                        node.setChild(side, None)
                if node.parentId and node.parentId not in self._nodes:
                    logger.warning(f"Dropping dangling parent {node.id} -> {node.parentId}")
                    node.parentId = None
                if node.sponsorId and node.sponsorId not in self._nodes:
                    logger.warning(f"Node {node.id} sponsor {node.sponsorId} not found")

                if node.parentId is None:
                    if node.isFounder:
                        if node.id not in self._rootIds:
                            self._rootIds.append(node.id)
                    else:
                        logger.warning(f"Orphan node {node.id} ({node.role.value}) has no parent")

            logger.info(f"Registry restored: {len(self._nodes)} nodes, {len(self._rootIds)} roots")
