"""
Loading entity and item snapshots from YAML or JSON files.

JSON is a subset of YAML, so both formats go through yaml.safe_load.

An entity file holds one mapping (see EntitySnapshot.from_dict). An items file
holds either a list of item mappings or a mapping with an ``items`` list and an
optional ``entity_id`` applied to items that omit their own. Item order in the
file is the order handed to the rule engine.
"""

from datetime import tzinfo
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml

from receptacle.core.types import EntitySnapshot, ItemSnapshot
from receptacle.exceptions import ReceptacleError, SnapshotError
from receptacle.logging_config import get_logger, log_snapshot_load

logger = get_logger(__name__)


def _read_document(path: Path, kind: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except FileNotFoundError:
        log_snapshot_load(logger, str(path), kind, success=False, reason="not_found")
        raise SnapshotError(f"{kind.capitalize()} file not found: {path}")
    except yaml.YAMLError as e:
        log_snapshot_load(logger, str(path), kind, success=False, reason="parse_error")
        raise SnapshotError(f"Failed to parse {kind} file {path}: {e}") from e


def load_entity(path: Union[str, Path]) -> EntitySnapshot:
    """
    Load an entity snapshot from a YAML or JSON file.

    Args:
        path: Path to the entity file

    Returns:
        EntitySnapshot built from the file

    Raises:
        SnapshotError: If the file is missing, unparsable or incomplete
        InvalidPolicyError: If a policy, rule or pattern is malformed
    """
    path = Path(path)
    data = _read_document(path, "entity")

    try:
        entity = EntitySnapshot.from_dict(data)
    except ReceptacleError as e:
        log_snapshot_load(logger, str(path), "entity", success=False, reason=str(e))
        raise

    log_snapshot_load(
        logger, str(path), "entity", success=True, count=1,
        sub_rule_count=len(entity.sub_rules),
        pattern_count=len(entity.importance_patterns),
    )
    return entity


def load_items(
    path: Union[str, Path],
    entity_id: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> List[ItemSnapshot]:
    """
    Load item snapshots from a YAML or JSON file, preserving file order.

    Args:
        path: Path to the items file
        entity_id: Default owning entity for items without one
        tz: Timezone given to naive item dates

    Returns:
        List of ItemSnapshot in file order

    Raises:
        SnapshotError: If the file is missing, unparsable or an item is malformed
    """
    path = Path(path)
    data = _read_document(path, "items")

    if data is None:
        raw_items: Any = []
    elif isinstance(data, dict):
        entity_id = data.get("entity_id", entity_id)
        raw_items = data.get("items") or []
    else:
        raw_items = data

    if not isinstance(raw_items, list):
        log_snapshot_load(logger, str(path), "items", success=False, reason="not_a_list")
        raise SnapshotError(f"Items file {path} must contain a list of items")

    try:
        items = [ItemSnapshot.from_dict(raw, entity_id=entity_id, tz=tz) for raw in raw_items]
    except SnapshotError as e:
        log_snapshot_load(logger, str(path), "items", success=False, reason=str(e))
        raise

    seen = set()
    for item in items:
        if item.id in seen:
            log_snapshot_load(logger, str(path), "items", success=False, reason="duplicate_id")
            raise SnapshotError(f"Duplicate item id {item.id!r} in {path}")
        seen.add(item.id)

    log_snapshot_load(logger, str(path), "items", success=True, count=len(items))
    return items
