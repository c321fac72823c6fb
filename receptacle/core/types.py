"""
Value types for the retention rule engine.

Every type here is immutable. Snapshots are built fresh by the caller for
each evaluation and discarded afterwards, so the same snapshot may be read
from several threads without locking.

Enumerations serialise as their snake_case value; each dataclass offers
to_dict()/from_dict() for round-tripping through YAML or JSON.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from receptacle.exceptions import InvalidPolicyError, SnapshotError


E = TypeVar("E", bound=Enum)


def _parse_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """Coerce a serialised value (or an existing member) into enum_cls."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(str(member.value) for member in enum_cls)
        raise InvalidPolicyError(
            f"Invalid {field_name} {value!r}. Must be one of: {choices}",
            field=field_name,
        )


# Importance & protection

class ImportanceLevel(IntEnum):
    """Importance of an item or entity. Totally ordered: normal < important < critical."""

    NORMAL = 0
    IMPORTANT = 1
    CRITICAL = 2

    @classmethod
    def parse(cls, value: Any) -> "ImportanceLevel":
        """
        Parse an importance level from its name or integer value.

        Args:
            value: ImportanceLevel, name ("important") or integer (1)

        Returns:
            The matching ImportanceLevel

        Raises:
            InvalidPolicyError: If value names no level
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
        elif isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        raise InvalidPolicyError(
            f"Invalid importance level {value!r}. Must be one of: normal, important, critical",
            field="importance_level",
        )

    @property
    def label(self) -> str:
        return self.name.lower()


class ProtectionLevel(str, Enum):
    """
    Entity-wide deletion safeguard.

    Only PROTECTED changes what the rule engine does. APOCALYPTIC is honoured
    by the user interface, which offers a harder manual delete.
    """

    PROTECTED = "protected"
    NORMAL = "normal"
    APOCALYPTIC = "apocalyptic"


class MatchType(str, Enum):
    """Which part of an item a sub-rule or importance pattern inspects."""

    SUBJECT_CONTAINS = "subject_contains"
    BODY_CONTAINS = "body_contains"
    HEADER_MATCHES = "header_matches"


# Retention policies

class RetentionKind(str, Enum):
    KEEP_ALL = "keep_all"
    KEEP_LATEST = "keep_latest"
    KEEP_DAYS = "keep_days"
    AUTO_ARCHIVE = "auto_archive"
    AUTO_DELETE = "auto_delete"


_COUNTED_KINDS = frozenset({RetentionKind.KEEP_LATEST, RetentionKind.KEEP_DAYS})


@dataclass(frozen=True)
class RetentionPolicy:
    """
    Retention policy for an entity or a matched sub-rule.

    Exactly one variant is active. ``count`` carries the item count for
    KEEP_LATEST and the day count for KEEP_DAYS, and is None for every
    other variant.

    Attributes:
        kind: Active variant
        count: Positive count for KEEP_LATEST / KEEP_DAYS, otherwise None
    """

    kind: RetentionKind
    count: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", _parse_enum(RetentionKind, self.kind, "retention_policy"))

        if self.kind in _COUNTED_KINDS:
            if self.count is None:
                raise InvalidPolicyError(
                    f"Retention policy '{self.kind.value}' requires a count",
                    field="count",
                )
            if isinstance(self.count, bool) or not isinstance(self.count, int):
                raise InvalidPolicyError(
                    f"Retention policy count must be an integer, got {self.count!r}",
                    field="count",
                )
            if self.count <= 0:
                raise InvalidPolicyError(
                    f"Retention policy '{self.kind.value}' requires a positive count, got {self.count}",
                    field="count",
                )
        elif self.count is not None:
            raise InvalidPolicyError(
                f"Retention policy '{self.kind.value}' does not take a count",
                field="count",
            )

    @classmethod
    def keep_all(cls) -> "RetentionPolicy":
        return cls(RetentionKind.KEEP_ALL)

    @classmethod
    def keep_latest(cls, count: int) -> "RetentionPolicy":
        return cls(RetentionKind.KEEP_LATEST, count)

    @classmethod
    def keep_days(cls, days: int) -> "RetentionPolicy":
        return cls(RetentionKind.KEEP_DAYS, days)

    @classmethod
    def auto_archive(cls) -> "RetentionPolicy":
        return cls(RetentionKind.AUTO_ARCHIVE)

    @classmethod
    def auto_delete(cls) -> "RetentionPolicy":
        return cls(RetentionKind.AUTO_DELETE)

    @property
    def display_name(self) -> str:
        """Human-readable label used by settings screens."""
        if self.kind is RetentionKind.KEEP_ALL:
            return "Keep all"
        if self.kind is RetentionKind.KEEP_LATEST:
            return f"Keep latest {self.count}"
        if self.kind is RetentionKind.KEEP_DAYS:
            return f"Keep {self.count} days"
        if self.kind is RetentionKind.AUTO_ARCHIVE:
            return "Auto-archive"
        return "Auto-delete"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value}
        if self.count is not None:
            data["count"] = self.count
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "RetentionPolicy":
        """
        Build a policy from its serialised form.

        Accepts either a bare variant name for count-less policies
        (``"auto_archive"``) or a mapping such as
        ``{"kind": "keep_latest", "count": 5}``.
        """
        if isinstance(data, str):
            return cls(data)
        if isinstance(data, Mapping):
            if "kind" not in data:
                raise InvalidPolicyError("Retention policy is missing 'kind'", field="kind")
            return cls(data["kind"], data.get("count"))
        raise InvalidPolicyError(
            f"Retention policy must be a string or mapping, got {type(data).__name__}",
            field="retention_policy",
        )


# Attachment directives

class SaveDestinationKind(str, Enum):
    CLOUD_DRIVE = "cloud_drive"
    LOCAL_FOLDER = "local_folder"


@dataclass(frozen=True)
class SaveDestination:
    """
    Where an exported attachment should be written.

    Opaque to the rule engine; resolved by the attachment exporter.

    Attributes:
        kind: CLOUD_DRIVE (location is a subfolder) or LOCAL_FOLDER (location is a path)
        location: Subfolder name or folder path
    """

    kind: SaveDestinationKind
    location: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", _parse_enum(SaveDestinationKind, self.kind, "save_destination"))

    @classmethod
    def cloud_drive(cls, subfolder: str) -> "SaveDestination":
        return cls(SaveDestinationKind.CLOUD_DRIVE, subfolder)

    @classmethod
    def local_folder(cls, path: str) -> "SaveDestination":
        return cls(SaveDestinationKind.LOCAL_FOLDER, path)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "location": self.location}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SaveDestination":
        if not isinstance(data, Mapping) or "kind" not in data or "location" not in data:
            raise InvalidPolicyError(
                "Save destination requires 'kind' and 'location'",
                field="save_destination",
            )
        return cls(data["kind"], str(data["location"]))


@dataclass(frozen=True)
class AttachmentAction:
    """
    Attachment export directive carried by a sub-rule.

    Attributes:
        save_destination: Where matching attachments are written
        filename_pattern: Case-insensitive filename substring, None accepts all
        mime_types: Accepted MIME types, empty accepts all
    """

    save_destination: SaveDestination
    filename_pattern: Optional[str] = None
    mime_types: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "mime_types", tuple(self.mime_types))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "save_destination": self.save_destination.to_dict(),
            "filename_pattern": self.filename_pattern,
            "mime_types": list(self.mime_types),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttachmentAction":
        if not isinstance(data, Mapping) or "save_destination" not in data:
            raise InvalidPolicyError(
                "Attachment action requires 'save_destination'",
                field="attachment_action",
            )
        return cls(
            save_destination=SaveDestination.from_dict(data["save_destination"]),
            filename_pattern=data.get("filename_pattern"),
            mime_types=tuple(data.get("mime_types") or ()),
        )


# Rules & patterns

@dataclass(frozen=True)
class SubRule:
    """
    Pattern-matched override of an entity's retention policy.

    Attributes:
        match_type: Part of the item inspected
        pattern: Substring (subject/body) or header name
        action: Policy applied to matching items instead of the entity policy
        attachment_action: Optional export directive for the item's attachments
    """

    match_type: MatchType
    pattern: str
    action: RetentionPolicy
    attachment_action: Optional[AttachmentAction] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "match_type", _parse_enum(MatchType, self.match_type, "match_type"))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "match_type": self.match_type.value,
            "pattern": self.pattern,
            "action": self.action.to_dict(),
        }
        if self.attachment_action is not None:
            data["attachment_action"] = self.attachment_action.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SubRule":
        if not isinstance(data, Mapping):
            raise InvalidPolicyError(
                f"Sub-rule must be a mapping, got {type(data).__name__}", field="sub_rules"
            )
        for key in ("match_type", "pattern", "action"):
            if key not in data:
                raise InvalidPolicyError(f"Sub-rule is missing '{key}'", field=key)
        attachment_action = data.get("attachment_action")
        return cls(
            match_type=data["match_type"],
            pattern=str(data["pattern"]),
            action=RetentionPolicy.from_dict(data["action"]),
            attachment_action=(
                AttachmentAction.from_dict(attachment_action)
                if attachment_action is not None else None
            ),
        )


@dataclass(frozen=True)
class ImportancePattern:
    """
    Pattern-matched elevation of an item's displayed importance.

    Attributes:
        match_type: Part of the item inspected
        pattern: Substring (subject/body) or header name
        elevated_level: Level applied to matching items
    """

    match_type: MatchType
    pattern: str
    elevated_level: ImportanceLevel

    def __post_init__(self) -> None:
        object.__setattr__(self, "match_type", _parse_enum(MatchType, self.match_type, "match_type"))
        object.__setattr__(self, "elevated_level", ImportanceLevel.parse(self.elevated_level))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_type": self.match_type.value,
            "pattern": self.pattern,
            "elevated_level": self.elevated_level.label,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ImportancePattern":
        if not isinstance(data, Mapping):
            raise InvalidPolicyError(
                f"Importance pattern must be a mapping, got {type(data).__name__}",
                field="importance_patterns",
            )
        for key in ("match_type", "pattern", "elevated_level"):
            if key not in data:
                raise InvalidPolicyError(f"Importance pattern is missing '{key}'", field=key)
        return cls(
            match_type=data["match_type"],
            pattern=str(data["pattern"]),
            elevated_level=data["elevated_level"],
        )


# Snapshots

def parse_datetime(value: Any, tz: Optional[tzinfo] = None) -> datetime:
    """
    Parse an ISO-8601 timestamp (or pass a datetime through).

    A trailing "Z" is accepted. Naive results are given ``tz`` when provided.

    Raises:
        SnapshotError: If value is not a datetime or ISO-8601 string
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        # Unquoted YAML dates load as datetime.date
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise SnapshotError(f"Invalid timestamp {value!r}, expected ISO-8601")
    else:
        raise SnapshotError(f"Invalid timestamp {value!r}, expected ISO-8601")

    if parsed.tzinfo is None and tz is not None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def _optional_text(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise SnapshotError(
            f"Item {data['id']!r} {key} must be a string, got {type(value).__name__}"
        )
    return value


@dataclass(frozen=True)
class ItemSnapshot:
    """
    One piece of content (email, article) considered for retention.

    Attributes:
        id: Identifier, unique within one evaluation batch
        entity_id: Owning entity
        date: Item timestamp
        subject: Subject line, if the source has one
        body_preview: Leading body text, if available
        headers: Header name to value, keys case-sensitive
        attachment_filenames: Attachment filenames in source order
        importance_level: Baseline importance before elevation
    """

    id: str
    entity_id: str
    date: datetime
    subject: Optional[str] = None
    body_preview: Optional[str] = None
    # Read-only proxies are unhashable; equality still compares headers.
    headers: Mapping[str, str] = field(default_factory=dict, hash=False)
    attachment_filenames: Tuple[str, ...] = ()
    importance_level: ImportanceLevel = ImportanceLevel.NORMAL

    def __post_init__(self) -> None:
        if isinstance(self.attachment_filenames, str):
            raise SnapshotError(
                f"Item {self.id!r} attachment_filenames must be a list, not a string"
            )
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        object.__setattr__(self, "attachment_filenames", tuple(self.attachment_filenames))
        object.__setattr__(self, "importance_level", ImportanceLevel.parse(self.importance_level))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "entity_id": self.entity_id,
            "date": self.date.isoformat(),
            "subject": self.subject,
            "body_preview": self.body_preview,
            "headers": dict(self.headers),
            "attachment_filenames": list(self.attachment_filenames),
            "importance_level": self.importance_level.label,
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        entity_id: Optional[str] = None,
        tz: Optional[tzinfo] = None,
    ) -> "ItemSnapshot":
        """
        Build an item snapshot from a mapping.

        Args:
            data: Serialised item
            entity_id: Owning entity, used when data has no entity_id
            tz: Timezone given to naive dates

        Raises:
            SnapshotError: If required fields are missing or malformed
        """
        if not isinstance(data, Mapping):
            raise SnapshotError(f"Item must be a mapping, got {type(data).__name__}")
        if "id" not in data or "date" not in data:
            raise SnapshotError("Item requires 'id' and 'date'")

        owner = data.get("entity_id", entity_id)
        if owner is None:
            raise SnapshotError(f"Item {data['id']!r} has no entity_id")

        headers = data.get("headers") or {}
        if not isinstance(headers, Mapping):
            raise SnapshotError(f"Item {data['id']!r} headers must be a mapping")

        filenames = data.get("attachment_filenames") or []
        if not isinstance(filenames, (list, tuple)):
            raise SnapshotError(f"Item {data['id']!r} attachment_filenames must be a list")
        for filename in filenames:
            if not isinstance(filename, str):
                raise SnapshotError(
                    f"Item {data['id']!r} attachment filename {filename!r} must be a string"
                )

        try:
            importance = ImportanceLevel.parse(data.get("importance_level", ImportanceLevel.NORMAL))
        except InvalidPolicyError as e:
            raise SnapshotError(f"Item {data['id']!r}: {e}")

        return cls(
            id=str(data["id"]),
            entity_id=str(owner),
            date=parse_datetime(data["date"], tz),
            subject=_optional_text(data, "subject"),
            body_preview=_optional_text(data, "body_preview"),
            headers={str(k): str(v) for k, v in headers.items()},
            attachment_filenames=tuple(filenames),
            importance_level=importance,
        )


@dataclass(frozen=True)
class EntitySnapshot:
    """
    Retention configuration of one sender or source.

    Attributes:
        id: Entity identifier
        retention_policy: Default policy for items no sub-rule matches
        protection_level: PROTECTED vetoes all automatic deletion
        importance_level: Baseline importance of the entity (informational)
        importance_patterns: Patterns evaluated best-match
        sub_rules: Overrides evaluated first-match, in order
    """

    id: str
    retention_policy: RetentionPolicy
    protection_level: ProtectionLevel = ProtectionLevel.NORMAL
    importance_level: ImportanceLevel = ImportanceLevel.NORMAL
    importance_patterns: Tuple[ImportancePattern, ...] = ()
    sub_rules: Tuple[SubRule, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "protection_level",
            _parse_enum(ProtectionLevel, self.protection_level, "protection_level"),
        )
        object.__setattr__(self, "importance_level", ImportanceLevel.parse(self.importance_level))
        object.__setattr__(self, "importance_patterns", tuple(self.importance_patterns))
        object.__setattr__(self, "sub_rules", tuple(self.sub_rules))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "retention_policy": self.retention_policy.to_dict(),
            "protection_level": self.protection_level.value,
            "importance_level": self.importance_level.label,
            "importance_patterns": [p.to_dict() for p in self.importance_patterns],
            "sub_rules": [r.to_dict() for r in self.sub_rules],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EntitySnapshot":
        """
        Build an entity snapshot from a mapping.

        Raises:
            SnapshotError: If id or retention_policy is missing
            InvalidPolicyError: If any policy, rule or pattern is malformed, or
                the rule and pattern collections are not lists of mappings
        """
        if not isinstance(data, Mapping):
            raise SnapshotError(f"Entity must be a mapping, got {type(data).__name__}")
        if "id" not in data or "retention_policy" not in data:
            raise SnapshotError("Entity requires 'id' and 'retention_policy'")

        patterns: Sequence[Mapping[str, Any]] = data.get("importance_patterns") or []
        sub_rules: Sequence[Mapping[str, Any]] = data.get("sub_rules") or []
        for key, value in (("importance_patterns", patterns), ("sub_rules", sub_rules)):
            if not isinstance(value, (list, tuple)):
                raise InvalidPolicyError(f"Entity {key} must be a list", field=key)

        return cls(
            id=str(data["id"]),
            retention_policy=RetentionPolicy.from_dict(data["retention_policy"]),
            protection_level=data.get("protection_level", ProtectionLevel.NORMAL),
            importance_level=data.get("importance_level", ImportanceLevel.NORMAL),
            importance_patterns=tuple(ImportancePattern.from_dict(p) for p in patterns),
            sub_rules=tuple(SubRule.from_dict(r) for r in sub_rules),
        )
