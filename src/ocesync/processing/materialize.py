"""Materialize normalized records as registry nodes and link their files."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from ocesync.host.registry import NodeRegistry
from ocesync.processing.media import FILE_NODE_ATTR
from ocesync.processing.normalize import AssetRecord

logger = logging.getLogger(__name__)


@dataclass
class MaterializeResult:
    nodes: int = 0
    links: int = 0


def content_digest(payload: Dict[str, Any]) -> str:
    """md5 hex digest of the record's JSON serialization."""
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.md5(serialized.encode("utf-8")).hexdigest()


def build_node(record: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap a record in the node envelope; its `type` becomes the internal node type."""
    entity = {k: v for k, v in record.items() if k != "type"}
    return {
        **entity,
        "children": [],
        "parent": None,
        "internal": {
            "type": record.get("type"),
            "contentDigest": content_digest(entity),
        },
    }


def rendition_label(file_node: Dict[str, Any]) -> str:
    """Name the rendition a downloaded file came from, based on its URL."""
    url = file_node.get("url") or ""
    if "responsiveimage" in url:
        # Responsive renditions are named "<rendition>-<asset name>"
        return (file_node.get("name") or "").split("-")[0] or "original"
    if "customrendition" in url:
        return "custom"
    return "original"


def label_file_nodes(registry: NodeRegistry, content_server: str) -> None:
    for node in registry.nodes_of_type("File"):
        if content_server and (node.get("url") or "").startswith(content_server):
            node.setdefault("fields", {})["rendition"] = rendition_label(node)


def link_files(record: AssetRecord, registry: NodeRegistry) -> int:
    """Link a digital asset node to its native and rendition file nodes."""
    data = record.data
    file_ids = [data.get(FILE_NODE_ATTR)]
    file_ids.extend(r.get(FILE_NODE_ATTR) for r in data.get("renditions") or [] if isinstance(r, dict))
    links = 0
    for file_id in file_ids:
        if file_id and registry.has(file_id) and registry.link(record.id, file_id):
            links += 1
    return links


def materialize(records: List[AssetRecord], registry: NodeRegistry, *, content_server: str = "") -> MaterializeResult:
    """Register every record, then create the asset-to-file links.

    File nodes must already be registered: media synchronization runs first.
    """
    result = MaterializeResult()
    label_file_nodes(registry, content_server)
    for record in records:
        registry.register(build_node(record.data))
        result.nodes += 1
    for record in records:
        if record.is_digital_asset:
            result.links += link_files(record, registry)
    logger.info("Created %d nodes and %d file links", result.nodes, result.links)
    return result
