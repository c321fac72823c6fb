"""
Retention rule engine for Receptacle Rules.

This module provides the RuleEngine, which applies one entity's retention
policy, sub-rules, importance patterns and protection level to a batch of
that entity's items and reports what the caller should do with each item.

The engine is a pure function of its inputs: it reads only the snapshots it is
given and returns a fresh EvaluationResult. Applying the result (deleting rows,
archiving, writing attachments, caching importance) is left to the caller.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, NamedTuple, Optional, Sequence, Set, Tuple

from receptacle.core.types import (
    AttachmentAction,
    EntitySnapshot,
    ImportanceLevel,
    ImportancePattern,
    ItemSnapshot,
    MatchType,
    ProtectionLevel,
    RetentionKind,
    RetentionPolicy,
    SubRule,
)


class AttachmentDirective(NamedTuple):
    """One attachment the caller should hand to the attachment exporter."""

    item_id: str
    filename: str
    action: AttachmentAction


class RetentionOutcome(str, Enum):
    KEEP = "keep"
    DELETE = "delete"
    ARCHIVE = "archive"


@dataclass(frozen=True)
class EvaluationResult:
    """
    Decisions for one entity's batch of items.

    An item id appears in at most one of items_to_delete and items_to_archive.
    elevated_importance has an entry exactly for the items that matched at
    least one importance pattern.

    Attributes:
        items_to_delete: Ids the caller should remove
        items_to_archive: Ids the caller should archive
        attachments_to_save: Export directives in item then filename order
        elevated_importance: Item id to elevated importance level
    """

    items_to_delete: FrozenSet[str] = frozenset()
    items_to_archive: FrozenSet[str] = frozenset()
    attachments_to_save: Tuple[AttachmentDirective, ...] = ()
    elevated_importance: Mapping[str, ImportanceLevel] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        """True when the caller has nothing to apply."""
        return not (
            self.items_to_delete
            or self.items_to_archive
            or self.attachments_to_save
            or self.elevated_importance
        )

    def outcome_for(self, item_id: str) -> RetentionOutcome:
        if item_id in self.items_to_delete:
            return RetentionOutcome.DELETE
        if item_id in self.items_to_archive:
            return RetentionOutcome.ARCHIVE
        return RetentionOutcome.KEEP

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dictionary with deterministic ordering."""
        return {
            "items_to_delete": sorted(self.items_to_delete),
            "items_to_archive": sorted(self.items_to_archive),
            "attachments_to_save": [
                {
                    "item_id": directive.item_id,
                    "filename": directive.filename,
                    "action": directive.action.to_dict(),
                }
                for directive in self.attachments_to_save
            ],
            "elevated_importance": {
                item_id: level.label
                for item_id, level in sorted(self.elevated_importance.items())
            },
        }


def _contains(text: Optional[str], pattern: str) -> bool:
    # An empty pattern never matches.
    if text is None or not pattern:
        return False
    return pattern.casefold() in text.casefold()


def matches(item: ItemSnapshot, match_type: MatchType, pattern: str) -> bool:
    """
    Check whether an item satisfies a match type and pattern.

    SUBJECT_CONTAINS and BODY_CONTAINS are case-insensitive substring searches;
    a missing subject or body never matches. HEADER_MATCHES checks only for
    the presence of a header named exactly ``pattern``.

    Args:
        item: Item to test
        match_type: Part of the item inspected
        pattern: Substring or header name

    Returns:
        True if the item matches, False otherwise
    """
    if match_type is MatchType.SUBJECT_CONTAINS:
        return _contains(item.subject, pattern)
    if match_type is MatchType.BODY_CONTAINS:
        return _contains(item.body_preview, pattern)
    if match_type is MatchType.HEADER_MATCHES:
        return pattern in item.headers
    return False


def _is_before(date: datetime, cutoff: datetime) -> bool:
    # Naive timestamps are read as UTC when compared with aware ones.
    if (date.tzinfo is None) != (cutoff.tzinfo is None):
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        else:
            cutoff = cutoff.replace(tzinfo=timezone.utc)
    return date < cutoff


class RuleEngine:
    """
    Applies entity retention policies and sub-rules to a batch of items.

    Sub-rules are first-match: the first rule in order that matches an item
    decides its retention, and the entity policy is not consulted for that
    item. Importance patterns are best-match: every pattern is checked and the
    highest matching level wins. The two are deliberately different.

    The engine holds no state, so one instance may serve any number of
    threads at once.
    """

    def evaluate(
        self,
        items: Sequence[ItemSnapshot],
        entity: EntitySnapshot,
        now: Optional[datetime] = None,
    ) -> EvaluationResult:
        """
        Evaluate retention and importance rules for one entity's items.

        ``items`` must already be ordered the way rank-based policies should
        see them, conventionally newest first. The engine never re-sorts:
        KEEP_LATEST(n) keeps the first n items of the sequence whatever
        their dates.

        Args:
            items: All items currently stored for the entity, newest first
            entity: The entity whose rules apply
            now: Reference time for KEEP_DAYS (defaults to current UTC time)

        Returns:
            EvaluationResult with delete, archive, attachment and importance decisions
        """
        if now is None:
            now = datetime.now(timezone.utc)

        to_delete: Set[str] = set()
        to_archive: Set[str] = set()
        attachments: List[AttachmentDirective] = []
        elevated: Dict[str, ImportanceLevel] = {}

        for rank, item in enumerate(items):
            level = self._elevated_level(item, entity.importance_patterns)
            if level is not None:
                elevated[item.id] = level

            rule = self._first_matching_rule(item, entity.sub_rules)
            if rule is not None:
                policy = rule.action
                if rule.attachment_action is not None:
                    attachments.extend(
                        AttachmentDirective(item.id, filename, rule.attachment_action)
                        for filename in item.attachment_filenames
                    )
            else:
                policy = entity.retention_policy

            outcome = self.apply_policy(policy, item, rank, now)
            if outcome is RetentionOutcome.DELETE:
                to_delete.add(item.id)
            elif outcome is RetentionOutcome.ARCHIVE:
                to_archive.add(item.id)

        # Protected entities never lose items automatically; archiving still applies.
        if entity.protection_level is ProtectionLevel.PROTECTED:
            to_delete.clear()

        return EvaluationResult(
            items_to_delete=frozenset(to_delete),
            items_to_archive=frozenset(to_archive),
            attachments_to_save=tuple(attachments),
            elevated_importance=elevated,
        )

    def apply_policy(
        self,
        policy: RetentionPolicy,
        item: ItemSnapshot,
        rank: int,
        now: datetime,
    ) -> RetentionOutcome:
        """
        Decide what a single retention policy does to one item.

        Args:
            policy: Policy chosen for the item (sub-rule action or entity default)
            item: The item
            rank: Zero-based position of the item in the full batch
            now: Reference time for KEEP_DAYS

        Returns:
            KEEP, DELETE or ARCHIVE
        """
        kind = policy.kind

        if kind is RetentionKind.KEEP_ALL:
            return RetentionOutcome.KEEP

        if kind is RetentionKind.KEEP_LATEST:
            if rank >= policy.count:
                return RetentionOutcome.DELETE
            return RetentionOutcome.KEEP

        if kind is RetentionKind.KEEP_DAYS:
            # Strictly older than the cutoff; an item exactly at the cutoff is kept.
            cutoff = now - timedelta(days=policy.count)
            if _is_before(item.date, cutoff):
                return RetentionOutcome.DELETE
            return RetentionOutcome.KEEP

        if kind is RetentionKind.AUTO_ARCHIVE:
            return RetentionOutcome.ARCHIVE

        if kind is RetentionKind.AUTO_DELETE:
            return RetentionOutcome.DELETE

        raise AssertionError(f"Unhandled retention kind: {kind!r}")

    def _first_matching_rule(
        self,
        item: ItemSnapshot,
        sub_rules: Sequence[SubRule],
    ) -> Optional[SubRule]:
        for rule in sub_rules:
            if matches(item, rule.match_type, rule.pattern):
                return rule
        return None

    def _elevated_level(
        self,
        item: ItemSnapshot,
        patterns: Sequence[ImportancePattern],
    ) -> Optional[ImportanceLevel]:
        """
        Highest level among matching patterns, floored at the item's baseline.

        Returns None when no pattern matches, so unmatched items get no entry.
        """
        level: Optional[ImportanceLevel] = None
        for pattern in patterns:
            if not matches(item, pattern.match_type, pattern.pattern):
                continue
            current = item.importance_level if level is None else level
            level = max(current, pattern.elevated_level)
        return level
