#!/usr/bin/env python3
"""
Display the referral network trees.

Shows every founder tree (or one subtree) with roles, leg turnover and
balances, straight from storage.

Usage:
    python scripts/show_tree.py [--root-id NODE_ID] [--max-depth DEPTH] [--stats]
"""

import sys
import os
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import get_session_factory
from mlm_system.config.plan import Role
from mlm_system.errors import NotFound
from mlm_system.services.turnover_service import TurnoverService
from mlm_system.tree.registry import NodeRegistry
from services.node_store import NodeStore

import logging

logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

ROLE_MARKERS = {
    Role.FOUNDER.value: "👑 ",
    Role.BRAND_OWNER.value: "🏷 ",
    Role.CUSTOMER.value: "",
}


def load_registry() -> NodeRegistry:
    """Rebuild the registry from storage without touching it."""
    registry = NodeRegistry()
    registry.restore(NodeStore(get_session_factory()).loadAllNodes())
    return registry


def print_tree(registry, root_id, max_depth=None):
    """Print ASCII tree of one subtree."""
    turnover = TurnoverService(registry, store=None, matching=None)
    hierarchy = turnover.getHierarchy(root_id, max_depth)

    def print_node(entry, prefix="", is_last=True, label=""):
        connector = "└─ " if is_last else "├─ "
        node = registry.byId(entry["id"])
        print(
            f"{prefix}{connector}{label}{ROLE_MARKERS[entry['role']]}{entry['name']} "
            f"({entry['id']}) A={entry['legASales']} B={entry['legBSales']} "
            f"income={node.incomeBalance} credits={node.rewardCredits}"
        )

        children = list(entry["children"].items())
        for i, (side, child) in enumerate(children):
            new_prefix = prefix + ("    " if is_last else "│   ")
            print_node(child, new_prefix, i == len(children) - 1, f"{side[0].upper()}: ")

    print_node(hierarchy)


def print_statistics(registry):
    """Print network statistics."""
    nodes = registry.all_nodes()

    print("\n" + "=" * 80)
    print("NETWORK STATISTICS")
    print("=" * 80 + "\n")

    print(f"Total nodes: {len(nodes)}")
    for role in Role:
        count = sum(1 for n in nodes if n.role is role)
        print(f"  {role.value:12} {count:4}")

    depth = max((n.depth for n in nodes), default=0)
    print(f"\nDeepest level: {depth}")
    print("\n" + "=" * 80 + "\n")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Display referral network trees')
    parser.add_argument('--root-id',
                        help='Node id to start from (default: every founder)')
    parser.add_argument('--max-depth', type=int,
                        help='Maximum depth to display')
    parser.add_argument('--stats', action='store_true',
                        help='Show statistics only')
    args = parser.parse_args()

    Config.initialize_from_env()
    registry = load_registry()

    if args.stats:
        print_statistics(registry)
        return

    print("\n" + "=" * 80)
    print("REFERRAL NETWORK TREE")
    print("=" * 80)
    print("\nLegend:")
    print("  👑 = Founder")
    print("  🏷 = Brand owner")
    print("  L:/R: = left / right slot")
    print("  A/B = Franchise A / B turnover")
    print("\n" + "=" * 80 + "\n")

    if args.root_id:
        try:
            print_tree(registry, args.root_id, args.max_depth)
        except NotFound as e:
            print(f"❌ {e}")
            sys.exit(1)
    else:
        roots = registry.roots()
        if not roots:
            print("❌ No founders in storage")
            sys.exit(1)
        for root in roots:
            print_tree(registry, root.id, args.max_depth)
            print()

    print_statistics(registry)


if __name__ == "__main__":
    main()
