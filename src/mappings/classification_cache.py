"""Cache of destination classification paths (iterations and areas).

Both trees are read once at start-up. Missing nodes are created on demand,
parents before children, and recorded so every cached path implies that all of
its ancestor paths are cached as well.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from src.clients.work_item_client import ClassificationNode, TreeStructureGroup, WorkItemClient
from src.config import logger

PATH_SEPARATOR = "/"


@dataclass
class ClassificationTree:
    """Path to node ID map of one classification tree.

    The root node is not part of any path; its ID is kept in ``root_id``.
    """

    group: TreeStructureGroup
    root_id: int
    paths: dict[str, int] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def from_root(cls, group: TreeStructureGroup, root: ClassificationNode) -> ClassificationTree:
        """Walk the tree depth-first and record the full path of every node below the root."""
        tree = cls(group=group, root_id=root.id)
        stack: list[tuple[ClassificationNode, str]] = [(child, child.name) for child in reversed(root.children)]
        while stack:
            node, path = stack.pop()
            tree.paths[path] = node.id
            stack.extend((child, f"{path}{PATH_SEPARATOR}{child.name}") for child in reversed(node.children))
        return tree

    def __len__(self) -> int:
        return len(self.paths)


class ClassificationResolver:
    """Resolve classification paths to node IDs, creating missing nodes."""

    def __init__(
        self,
        client: WorkItemClient,
        iterations: ClassificationTree,
        areas: ClassificationTree,
    ) -> None:
        self.client = client
        self._trees = {
            TreeStructureGroup.ITERATIONS: iterations,
            TreeStructureGroup.AREAS: areas,
        }

    @classmethod
    def build(cls, client: WorkItemClient) -> ClassificationResolver | None:
        """Read both destination trees.

        Returns:
            The resolver, or None when either tree could not be read

        """
        trees: dict[TreeStructureGroup, ClassificationTree] = {}
        for group in TreeStructureGroup:
            try:
                root = client.get_classification_tree(group)
            except Exception:
                logger.critical("Unable to read the %s tree from the destination", group.label, exc_info=True)
                return None
            trees[group] = ClassificationTree.from_root(group, root)
            logger.debug("Cached %d %s paths", len(trees[group]), group.label)

        return cls(client, trees[TreeStructureGroup.ITERATIONS], trees[TreeStructureGroup.AREAS])

    def tree(self, group: TreeStructureGroup) -> ClassificationTree:
        return self._trees[group]

    def get_id(self, full_path: str, group: TreeStructureGroup) -> int | None:
        """Return the cached node ID of a path without creating anything."""
        tree = self._trees[group]
        with tree.lock:
            return tree.paths.get(full_path)

    def ensure(self, full_path: str, group: TreeStructureGroup) -> int | None:
        """Return the node ID of ``full_path``, creating missing segments.

        Args:
            full_path: '/'-delimited path below the tree root
            group: Tree the path belongs to

        Returns:
            The node ID, or None when a node could not be created

        Raises:
            ValueError: If the path is blank or has empty segments

        """
        if not full_path or not full_path.strip():
            logger.error("Cannot resolve an empty %s path", group.label)
            msg = f"Empty {group.label} path"
            raise ValueError(msg)

        segments = full_path.split(PATH_SEPARATOR)
        if any(not segment.strip() for segment in segments):
            logger.error("Invalid %s path '%s'", group.label, full_path)
            msg = f"Invalid {group.label} path '{full_path}'"
            raise ValueError(msg)

        cached = self.get_id(full_path, group)
        if cached is not None:
            return cached

        tree = self._trees[group]
        node_id: int | None = None
        for depth in range(1, len(segments) + 1):
            node_id = self._ensure_segment(tree, segments[:depth])
            if node_id is None:
                return None
        return node_id

    def _ensure_segment(self, tree: ClassificationTree, segments: list[str]) -> int | None:
        """Resolve one prefix whose parent prefix is already cached."""
        path = PATH_SEPARATOR.join(segments)
        parent_path = PATH_SEPARATOR.join(segments[:-1])
        leaf = segments[-1]

        with tree.lock:
            cached = tree.paths.get(path)
            if cached is not None:
                return cached

            try:
                node = self.client.create_classification_node(tree.group, leaf, parent_path)
            except Exception:
                logger.error(
                    "Unable to create %s '%s' under '%s'",
                    tree.group.label,
                    leaf,
                    parent_path or "<root>",
                    exc_info=True,
                )
                return None

            tree.paths[path] = node.id
            logger.info("Created %s '%s' (%d)", tree.group.label, path, node.id)

            try:
                self.client.refresh_metadata()
            except Exception:
                logger.warning("Unable to refresh destination metadata after creating '%s'", path, exc_info=True)

            return node.id
