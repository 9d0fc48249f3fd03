"""
Drive folder graph — resolves folders on demand and answers
"is any ancestor of this item owned outside the user's domain?".

One DriveGraph lives for one walk. Resolved nodes and ancestor answers are
memoised for that walk only. Walks are iterative with visited sets, so
cyclic or very deep parent chains terminate. An inaccessible folder is a
dead end, never an error.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import httpx

from ..api.resilience import ExternalAPIError
from ..models import DriveNode, FileCategory

logger = logging.getLogger("drive_audit_engine.drives")

NODE_FIELDS = "id,name,owners,parents"
ROOT_FOLDER_NAME = "My Drive"

_UNKNOWN = object()


def classify_parentless(owner_domains: Iterable[str], user_domain: str) -> FileCategory:
    """A file with no parent is a cross-tenant share when owned elsewhere, else orphaned."""
    if any(d and d != user_domain for d in owner_domains):
        return FileCategory.CROSS_TENANT_SHARE
    return FileCategory.ORPHANED


class DriveGraph:
    def __init__(self, client, user_domain: str):
        self.client = client
        self.user_domain = user_domain.lower()
        self.nodes: dict[str, DriveNode] = {}
        self.cross_tenant_ids: set[str] = set()
        self.lookups = 0
        self._memo: dict[str, Optional[str]] = {}

    def seed(self, folders: Iterable[dict]):
        """Register listed folders and compute the cross-tenant folder set once."""
        for data in folders:
            node = DriveNode.from_api(data)
            if node.id:
                self.nodes[node.id] = node
        self.cross_tenant_ids = {
            node_id for node_id, node in self.nodes.items()
            if node.accessible and node.is_foreign_to(self.user_domain)
        }
        logger.debug(
            f"Seeded {len(self.nodes)} folders, {len(self.cross_tenant_ids)} cross-tenant"
        )

    async def resolve(self, node_id: str) -> DriveNode:
        """Known node, or one files.get lookup whose outcome is memoised."""
        node = self.nodes.get(node_id)
        if node is not None:
            return node
        self.lookups += 1
        try:
            data = await self.client.get_file(node_id, fields=NODE_FIELDS)
            node = DriveNode.from_api(data)
            node.id = node.id or node_id
        except (ExternalAPIError, httpx.HTTPError) as e:
            logger.debug(f"Folder {node_id} inaccessible: {e}")
            node = DriveNode(id=node_id, accessible=False)
        self.nodes[node_id] = node
        return node

    async def foreign_ancestor(self, parent_ids: Iterable[str]) -> Optional[DriveNode]:
        """
        First folder at or above parent_ids owned outside the user's domain.
        Direct parents are checked against the precomputed set before any lookup.
        """
        parent_ids = list(parent_ids)
        for parent_id in parent_ids:
            if parent_id in self.cross_tenant_ids:
                return self.nodes[parent_id]
        for parent_id in parent_ids:
            found = await self._walk_up(parent_id)
            if found is not None:
                return self.nodes[found]
        return None

    async def _walk_up(self, start: str) -> Optional[str]:
        came_from: dict[str, Optional[str]] = {start: None}
        stack = [start]
        found: Optional[str] = None
        hit: Optional[str] = None

        while stack:
            node_id = stack.pop()
            known = self._memo.get(node_id, _UNKNOWN)
            if known is not _UNKNOWN:
                if known is not None:
                    found, hit = known, node_id
                    break
                continue

            node = await self.resolve(node_id)
            if not node.accessible:
                continue
            if node.is_foreign_to(self.user_domain):
                found, hit = node_id, node_id
                break
            for parent_id in node.parents:
                if parent_id not in came_from:
                    came_from[parent_id] = node_id
                    stack.append(parent_id)

        if found is None:
            for node_id in came_from:
                self._memo.setdefault(node_id, None)
            return None

        # Only the chain that actually reaches the foreign folder shares its answer
        current = hit
        while current is not None:
            self._memo[current] = found
            current = came_from.get(current)
        return found

    async def folder_path(self, start: str, max_depth: int = 100) -> tuple[list[str], bool]:
        """
        Folder names from the top down to start, following first parents.
        Returns (path, complete); complete is False when the walk stopped at an
        inaccessible folder, a cycle, or the depth cap.
        """
        path: list[str] = []
        visited: set[str] = set()
        current: Optional[str] = start

        while current is not None:
            if current in visited or len(visited) >= max_depth:
                return path, False
            visited.add(current)
            node = await self.resolve(current)
            if not node.accessible:
                return path, False
            if node.name and node.name != ROOT_FOLDER_NAME:
                path.insert(0, node.name)
            current = node.parents[0] if node.parents else None
        return path, True
