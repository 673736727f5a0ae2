# mlm_system/services/placement_service.py
"""
Placement engine - finds and claims slots in the binary trees.

Customers take the first open slot in level order (left slots across the
whole level before right slots), optionally inside their sponsor's
subtree. Brand owners may only sit under founders or other brand owners
and can take a slot from a customer, who then moves under them.
"""
from typing import Dict, Optional, Tuple
import logging

from config import Config
from mlm_system.config.plan import Role, SIDES, LEFT, BRAND_OWNER_PARENT_ROLES
from mlm_system.errors import DuplicateContact, InvalidSponsor, NoEligibleSlot
from mlm_system.events.event_bus import eventBus, MLMEvents
from mlm_system.tree.node import Node

logger = logging.getLogger(__name__)


class PlacementService:
    """Slot search and registration."""

    def __init__(self, registry, store, bus=None):
        self.registry = registry
        self.store = store
        self.bus = bus or eventBus

    # ============================================================
    # SEARCH
    # ============================================================

    @staticmethod
    def _checkDepth(level):
        maxDepth = Config.max_placement_depth()
        if maxDepth is not None and level[0].depth + 1 > maxDepth:
            raise NoEligibleSlot(f"No open slot within depth {maxDepth}")

    def placeCustomer(self, sponsorId: Optional[str] = None) -> Tuple[Node, str]:
        """
        Find the slot a new customer would take.

        Args:
            sponsorId: Restrict the search to this node's subtree

        Returns:
            (parent, side)

        Raises:
            InvalidSponsor: sponsorId does not resolve
            NoEligibleSlot: no founder yet, or depth limit reached
        """
        with self.registry.lock.reading():
            if sponsorId:
                sponsor = self.registry.get(sponsorId)
                if sponsor is None:
                    raise InvalidSponsor(sponsorId)
                roots = [sponsor]
            else:
                roots = self.registry.roots()

            if not roots:
                raise NoEligibleSlot("No founder in the network")

            for level in self.registry.walker.iter_levels(roots):
                self._checkDepth(level)
                for side in SIDES:
                    for node in level:
                        if not node.childId(side):
                            return node, side

        raise NoEligibleSlot("Search exhausted")

    def placeBrandOwner(self) -> Tuple[Node, str, Optional[Node]]:
        """
        Find the slot a new brand owner would take.

        Customers are walked through but never chosen as parents. A slot
        held by a customer is claimable; that customer is returned as the
        node to displace.

        Returns:
            (parent, side, displaced customer or None)
        """
        with self.registry.lock.reading():
            roots = self.registry.roots()
            if not roots:
                raise NoEligibleSlot("No founder in the network")

            for level in self.registry.walker.iter_levels(roots):
                candidates = [n for n in level if n.role in BRAND_OWNER_PARENT_ROLES]
                if not candidates:
                    continue
                self._checkDepth(level)
                for side in SIDES:
                    for node in candidates:
                        occupant = self.registry.get(node.childId(side))
                        if occupant is None:
                            return node, side, None
                        if occupant.role is Role.CUSTOMER:
                            return node, side, occupant

        raise NoEligibleSlot("No founder or brand owner has a claimable slot")

    def previewCustomerPlacement(self, sponsorId: Optional[str] = None) -> Dict:
        """Where registerCustomer would place someone right now."""
        parent, side = self.placeCustomer(sponsorId)
        return {
            "parentId": parent.id,
            "side": side,
            "depth": parent.depth + 1,
            "sponsorId": sponsorId or parent.id,
        }

    def previewBrandOwnerPlacement(self) -> Dict:
        """Where registerBrandOwner would place someone right now."""
        parent, side, displaced = self.placeBrandOwner()
        return {
            "parentId": parent.id,
            "side": side,
            "depth": parent.depth + 1,
            "displacedId": displaced.id if displaced else None,
        }

    # ============================================================
    # REGISTRATION
    # ============================================================

    def attachFounder(self, nodeId: str, name: str, contact: str) -> Node:
        """Bootstrap a founder root."""
        with self.registry.lock.writing():
            founder = self.registry.create(Role.FOUNDER, name, contact, nodeId=nodeId)
            self.registry.addRoot(founder)
            self.store.saveNode(founder)

        logger.info(f"Founder {founder.id} attached as root")
        self.bus.emit(MLMEvents.NODE_REGISTERED, {
            "nodeId": founder.id,
            "role": founder.role.value,
            "parentId": None,
            "side": None,
        })
        return founder

    def registerCustomer(self, name: str, contact: str, sponsorId: Optional[str] = None) -> Node:
        """
        Create a customer and place them.

        Search, create, attach and the sponsor's referral list update run
        under one write lock. Without a sponsor the structural parent
        becomes the sponsor.

        Raises:
            DuplicateContact, InvalidSponsor, NoEligibleSlot
            DurabilityError: placed in memory but not persisted
        """
        with self.registry.lock.writing():
            if self.registry.hasContact(contact):
                raise DuplicateContact(contact)

            parent, side = self.placeCustomer(sponsorId)
            effectiveSponsorId = sponsorId or parent.id

            node = self.registry.create(Role.CUSTOMER, name, contact, sponsorId=effectiveSponsorId)
            self.registry.attachChild(parent, side, node)

            sponsor = self.registry.byId(effectiveSponsorId)
            sponsor.directReferralIds.append(node.id)

            self.store.saveNodes([node, parent, sponsor])

        logger.info(
            f"Customer {node.id} placed under {parent.id}.{side} "
            f"(depth {node.depth}, sponsor {effectiveSponsorId})"
        )
        self.bus.emit(MLMEvents.NODE_REGISTERED, {
            "nodeId": node.id,
            "role": node.role.value,
            "parentId": parent.id,
            "side": side,
            "sponsorId": effectiveSponsorId,
        })
        return node

    def registerBrandOwner(self, name: str, contact: str) -> Node:
        """
        Create a brand owner and place them, displacing a customer if the
        chosen slot holds one. The found parent is the sponsor.

        Raises:
            DuplicateContact, NoEligibleSlot
            DurabilityError: placed in memory but not persisted
        """
        with self.registry.lock.writing():
            if self.registry.hasContact(contact):
                raise DuplicateContact(contact)

            parent, side, displaced = self.placeBrandOwner()

            node = self.registry.create(Role.BRAND_OWNER, name, contact, sponsorId=parent.id)
            touched = [node, parent]
            if displaced is not None:
                self.registry.insertAbove(displaced, node, LEFT)
                # every node under the displaced customer moved one level down
                touched.extend(self.registry.walker.iter_subtree(displaced))
            else:
                self.registry.attachChild(parent, side, node)

            parent.directReferralIds.append(node.id)

            self.store.saveNodes(touched)

        logger.info(
            f"Brand owner {node.id} placed under {parent.id}.{side} (depth {node.depth})"
        )
        self.bus.emit(MLMEvents.NODE_REGISTERED, {
            "nodeId": node.id,
            "role": node.role.value,
            "parentId": parent.id,
            "side": side,
            "sponsorId": parent.id,
        })

        if displaced is not None:
            logger.info(f"Customer {displaced.id} displaced under brand owner {node.id}")
            self.bus.emit(MLMEvents.BRAND_OWNER_DISPLACED, {
                "brandOwnerId": node.id,
                "displacedId": displaced.id,
                "parentId": parent.id,
                "side": side,
            })

        return node
