"""In-process node registry scoped to one sync run.

Holds every record and file node created during the run, the set of cached
file nodes that were re-used (touched), and the parent/child edges between
digital assets and their files. A fresh registry is created per run and
discarded after the manifest is written.

File nodes from the previous run's manifest can be loaded with
`load_previous`; only those touched again are carried into this run, the
rest are pruned.
"""
from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set

logger = logging.getLogger(__name__)


class NodeRegistry:
    def __init__(self, namespace: str = "ocesync") -> None:
        self._namespace = uuid.uuid5(uuid.NAMESPACE_DNS, namespace)
        self._nodes: Dict[str, Dict[str, Any]] = {}
        self._touched: Set[str] = set()
        self._previous: Dict[str, Dict[str, Any]] = {}

    def mint_id(self, seed: str) -> str:
        """Return a deterministic node id for `seed` (stable across runs)."""
        return str(uuid.uuid5(self._namespace, seed))

    def register(self, node: Dict[str, Any]) -> None:
        node_id = node.get("id")
        if not node_id:
            raise ValueError("Node must have an 'id'")
        if node_id in self._nodes:
            logger.debug("Replacing node %s", node_id)
        self._nodes[node_id] = node

    def get(self, node_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not node_id:
            return None
        return self._nodes.get(node_id)

    def has(self, node_id: Optional[str]) -> bool:
        return bool(node_id) and node_id in self._nodes

    def load_previous(self, path: Path) -> int:
        """Load the file nodes of an earlier manifest so cached ids can be touched."""
        if not path.exists():
            return 0
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable manifest %s: %s", path, e)
            return 0
        if not isinstance(payload, dict):
            return 0
        for node in payload.get("nodes", []):
            if isinstance(node, dict) and node.get("internal", {}).get("type") == "File":
                self._previous[node["id"]] = node
        return len(self._previous)

    def touch(self, node_id: str) -> bool:
        """Mark a node created by an earlier run as still referenced by this run.

        Returns False when the node is neither in this run nor in the previous
        manifest; the caller has to recreate it.
        """
        previous = self._previous.get(node_id)
        if previous is not None and node_id not in self._nodes:
            self._nodes[node_id] = previous
        if node_id not in self._nodes:
            return False
        self._touched.add(node_id)
        return True

    @property
    def stale(self) -> Set[str]:
        """Ids of previous-run file nodes nobody touched; they are not carried over."""
        return {nid for nid in self._previous if nid not in self._nodes}

    @property
    def touched(self) -> Set[str]:
        return set(self._touched)

    def link(self, parent_id: str, child_id: str) -> bool:
        """Add `child_id` to the parent's children. Returns False if either node is unknown."""
        parent = self._nodes.get(parent_id)
        child = self._nodes.get(child_id)
        if parent is None or child is None:
            return False
        children: List[str] = parent.setdefault("children", [])
        if child_id not in children:
            children.append(child_id)
        return True

    def nodes_of_type(self, node_type: str) -> List[Dict[str, Any]]:
        return [n for n in self._nodes.values() if n.get("internal", {}).get("type") == node_type]

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(list(self._nodes.values()))

    def dump(self, path: Path) -> Path:
        """Write every node plus the touched ids to a JSON manifest."""
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "nodes": list(self._nodes.values()),
            "touched": sorted(self._touched),
        }
        path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        return path

    def clear(self) -> None:
        self._nodes.clear()
        self._touched.clear()
        self._previous.clear()
