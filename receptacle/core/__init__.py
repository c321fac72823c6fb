"""
Core components for Receptacle Rules.

This module contains the core primitives:
- Snapshot and policy value types
- Rule engine (retention, sub-rules, importance, protection)
- Attachment filter matching
"""

from receptacle.core.attachments import AttachmentMatcher
from receptacle.core.rules import (
    AttachmentDirective,
    EvaluationResult,
    RetentionOutcome,
    RuleEngine,
)
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
    SaveDestination,
    SaveDestinationKind,
    SubRule,
)

__all__ = [
    "AttachmentAction",
    "AttachmentDirective",
    "AttachmentMatcher",
    "EntitySnapshot",
    "EvaluationResult",
    "ImportanceLevel",
    "ImportancePattern",
    "ItemSnapshot",
    "MatchType",
    "ProtectionLevel",
    "RetentionKind",
    "RetentionOutcome",
    "RetentionPolicy",
    "RuleEngine",
    "SaveDestination",
    "SaveDestinationKind",
    "SubRule",
]
