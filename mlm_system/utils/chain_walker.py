# mlm_system/utils/chain_walker.py
"""
Safe binary tree walking utilities.
Prevents infinite loops on malformed (cyclic) trees.
"""
from typing import Callable, Optional
from sqlalchemy.orm import Session
import logging

from models.binary_tree import BinaryTreeNode
from mlm_system.config.plans import get_max_tree_depth

logger = logging.getLogger(__name__)


class ChainWalker:
    """
    Walks the binary placement tree upward from a node.
    Iterative, bounded by MAX_TREE_DEPTH, with a visited set.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_node(self, userId: int) -> Optional[BinaryTreeNode]:
        return self.session.query(BinaryTreeNode).filter_by(userID=userId).first()

    def walk_upline(
            self,
            start_node: BinaryTreeNode,
            callback: Callable[[BinaryTreeNode, str, int], bool],
            max_depth: Optional[int] = None
    ) -> int:
        """
        Walk from start_node to the root, calling callback for each ancestor.

        Args:
            start_node: Node the walk starts from (not passed to callback)
            callback: Function(ancestor, side, level) -> continue_walking (bool);
                side is the ancestor's leg the walk arrived through
            max_depth: Maximum levels, defaults to MAX_TREE_DEPTH

        Returns:
            Number of ancestors processed

        Example:
            def add_volume(ancestor, side, level):
                print(f"Level {level}: node {ancestor.nodeID} via {side}")
                return True

            walker.walk_upline(node, add_volume)
        """
        if max_depth is None:
            max_depth = get_max_tree_depth()

        current = start_node
        level = 1
        processed = 0
        visited = {start_node.nodeID}

        while current.parentID is not None and level <= max_depth:
            if current.position not in ("left", "right"):
                logger.error(
                    f"Node {current.nodeID} has parent {current.parentID} "
                    f"but invalid position {current.position!r}"
                )
                break

            if current.parentID in visited:
                logger.error(f"Cycle detected at node {current.parentID}")
                break

            parent = self.session.query(BinaryTreeNode).filter_by(
                nodeID=current.parentID
            ).first()

            if not parent:
                logger.warning(
                    f"Parent node {current.parentID} not found for node {current.nodeID}"
                )
                break

            visited.add(parent.nodeID)

            should_continue = callback(parent, current.position, level)
            processed += 1

            if not should_continue:
                break

            current = parent
            level += 1

        if level > max_depth and current.parentID is not None:
            logger.error(
                f"Max depth ({max_depth}) exceeded starting from node {start_node.nodeID}"
            )

        return processed
