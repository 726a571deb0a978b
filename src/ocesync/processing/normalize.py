"""Normalization passes turning raw server items into canonical records.

Each pass takes a list of record dicts and returns a list of the same length
(only `drop_invalid` filters). Passes mutate records in place and are meant
to run in the order used by `normalize_entities`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List

from ocesync.exceptions import FieldCollisionError, ShapeError

logger = logging.getLogger(__name__)

ASSET_NODE_TYPE = "oceAsset"

Record = Dict[str, Any]
MintId = Callable[[str], str]


class AssetKind(str, Enum):
    DIGITAL_ASSET = "DigitalAsset"
    OTHER = "Other"


@dataclass
class AssetRecord:
    """A normalized record tagged with its kind, resolved once."""

    data: Record
    kind: AssetKind

    @property
    def is_digital_asset(self) -> bool:
        return self.kind is AssetKind.DIGITAL_ASSET

    @property
    def id(self) -> str:
        return self.data["id"]


def classify(record: Record) -> AssetKind:
    """Digital assets are flagged by typeCategory, or by oceType on older servers."""
    category = record.get("typeCategory")
    if category == "DigitalAssetType" or (not category and record.get("oceType") == "DigitalAsset"):
        return AssetKind.DIGITAL_ASSET
    return AssetKind.OTHER


def is_date(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and isinstance(value.get("value"), str)
        and isinstance(value.get("timezone"), str)
    )


def unwrap_date(value: Any) -> Any:
    return value["value"] if is_date(value) else value


def is_blank(value: Any) -> bool:
    if value is None or value is False or value == "":
        return True
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0


def drop_invalid(entities: Iterable[Any]) -> List[Record]:
    return [e for e in entities if e is not None and isinstance(e, dict)]


def clean_up(entities: List[Record]) -> List[Record]:
    """Remove transport-only attributes."""
    for item in entities:
        item.pop("links", None)
        item.pop("createdDate", None)
    return entities


def standardize_dates(entities: List[Record]) -> List[Record]:
    """Unwrap {value, timezone} date pairs to their ISO-8601 value.

    Applies to the record's own updatedDate and to every field value,
    element-wise for array fields. Blank scalar field values (null, false,
    "" and 0) are dropped; empty lists and objects are kept.
    """
    for e in entities:
        e["updatedDate"] = unwrap_date(e.get("updatedDate"))
        fields = e.get("fields") or {}
        fixed: Record = {}
        for key, value in fields.items():
            if is_blank(value):
                continue
            if isinstance(value, list):
                fixed[key] = [unwrap_date(v) for v in value]
            else:
                fixed[key] = unwrap_date(value)
        e["fields"] = fixed
    return entities


def fix_type_definitions(entities: List[Record]) -> List[Record]:
    """Index every item under the generic asset type, keeping the server type as oceType."""
    for e in entities:
        e["oceType"] = e.get("type")
        e["oceFields"] = e.get("fields")
        e["type"] = ASSET_NODE_TYPE
    return entities


def native_url(native: Any) -> str:
    """Return the href of the last link with rel "self", or "" if there is none."""
    if isinstance(native, str):
        return native
    try:
        links = native["links"]
    except (KeyError, TypeError) as e:
        raise ShapeError("Digital asset native binary has no links") from e
    url = ""
    for link in links:
        if link.get("rel") == "self":
            url = link.get("href", "")
    return url


def normalize_digital_asset(entities: List[Record]) -> List[Record]:
    """Replace the native binary link list of digital assets with its self URL."""
    for e in entities:
        if classify(e) is AssetKind.DIGITAL_ASSET:
            fields = e.get("fields")
            if not isinstance(fields, dict):
                raise ShapeError(f"Digital asset {e.get('id')} has no fields")
            fields["native"] = native_url(fields.get("native"))
    return entities


def move_fields_up(entities: List[Record], *, strict: bool = False) -> List[Record]:
    """Merge each record's fields into its top level and drop the fields key.

    A field named like an existing attribute overwrites it. With `strict`
    a FieldCollisionError is raised instead.
    """
    result: List[Record] = []
    for e in entities:
        fields = e.pop("fields", None) or {}
        for name in fields:
            if name in e:
                if strict:
                    raise FieldCollisionError(str(e.get("id")), name)
                logger.warning("Field '%s' of item %s overwrites a record attribute", name, e.get("id"))
        result.append({**e, **fields})
    return result


def create_node_ids(entities: List[Record], mint_id: MintId, channel_token: str) -> List[Record]:
    """Keep the server id as oceId and derive a node id stable for (oceId, channel)."""
    for e in entities:
        e["oceId"] = e["id"]
        e["id"] = mint_id(f"oracleoce-{e['oceId']}-{channel_token}")
    return entities


def normalize_entities(
    entities: Iterable[Any],
    *,
    mint_id: MintId,
    channel_token: str,
    strict_fields: bool = False,
) -> List[Record]:
    """Run every normalization pass in order over the raw items."""
    records = drop_invalid(entities)
    records = clean_up(records)
    records = standardize_dates(records)
    records = fix_type_definitions(records)
    records = normalize_digital_asset(records)
    records = move_fields_up(records, strict=strict_fields)
    records = create_node_ids(records, mint_id, channel_token)
    return records


def tag_records(records: Iterable[Record]) -> List[AssetRecord]:
    return [AssetRecord(data=r, kind=classify(r)) for r in records]
