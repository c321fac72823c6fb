"""
Unit tests for the retention rule engine.

Tests the RuleEngine:
- Retention policies (keep_all, keep_latest, keep_days, auto_archive, auto_delete)
- Sub-rule matching and precedence
- Attachment directives
- Importance elevation
- Protection veto
"""

from datetime import datetime, timedelta, timezone

import pytest

from receptacle.core.rules import (
    AttachmentDirective,
    EvaluationResult,
    RetentionOutcome,
    RuleEngine,
    matches,
)
from receptacle.core.types import (
    AttachmentAction,
    EntitySnapshot,
    ImportanceLevel,
    ImportancePattern,
    ItemSnapshot,
    MatchType,
    ProtectionLevel,
    RetentionPolicy,
    SaveDestination,
    SubRule,
)


@pytest.fixture
def engine():
    return RuleEngine()


def entity_with(policy, **kwargs):
    return EntitySnapshot(id="e1", retention_policy=policy, **kwargs)


class TestKeepLatest:
    """Test rank-based retention."""

    def test_keep_latest_deletes_items_past_rank(self, engine, make_item, now):
        """keep_latest(2) over five items keeps ranks 0 and 1."""
        items = [make_item(f"i{i}", days_ago=i) for i in range(5)]
        result = engine.evaluate(items, entity_with(RetentionPolicy.keep_latest(2)), now=now)

        assert result.items_to_delete == {"i2", "i3", "i4"}
        assert result.items_to_archive == frozenset()

    @pytest.mark.parametrize("n,m", [(1, 1), (3, 5), (5, 5), (10, 4)])
    def test_keep_latest_deletes_exactly_the_tail(self, engine, make_item, now, n, m):
        """Exactly max(0, m - n) items are deleted, at ranks n..m-1."""
        items = [make_item(f"i{i}", days_ago=i) for i in range(m)]
        result = engine.evaluate(items, entity_with(RetentionPolicy.keep_latest(n)), now=now)

        assert len(result.items_to_delete) == max(0, m - n)
        assert result.items_to_delete == {f"i{i}" for i in range(n, m)}

    def test_keep_latest_uses_input_order_not_dates(self, engine, make_item, now):
        """Rank comes from sequence position; the engine never re-sorts."""
        items = [
            make_item("oldest", days_ago=30),
            make_item("middle", days_ago=10),
            make_item("newest", days_ago=0),
        ]
        result = engine.evaluate(items, entity_with(RetentionPolicy.keep_latest(1)), now=now)

        assert result.items_to_delete == {"middle", "newest"}

    def test_sub_rule_keep_latest_ranks_within_full_batch(self, engine, make_item, now):
        """A sub-rule's keep_latest ranks against the whole batch, not matching items only."""
        items = [
            make_item("a", subject="Newsletter"),
            make_item("b", subject="Newsletter"),
            make_item("receipt", subject="Receipt #1"),
        ]
        rule = SubRule(MatchType.SUBJECT_CONTAINS, "receipt", RetentionPolicy.keep_latest(2))
        result = engine.evaluate(
            items, entity_with(RetentionPolicy.keep_all(), sub_rules=[rule]), now=now
        )

        # "receipt" is the only item the rule matches, but it sits at rank 2.
        assert result.items_to_delete == {"receipt"}

    def test_empty_batch(self, engine, now):
        result = engine.evaluate([], entity_with(RetentionPolicy.keep_latest(1)), now=now)

        assert result == EvaluationResult()
        assert result.is_empty


class TestKeepDays:
    """Test age-based retention."""

    def test_keep_days_deletes_expired_items(self, engine, make_item, now):
        expired = make_item("expired", date=now - timedelta(days=8))
        fresh = make_item("fresh", date=now - timedelta(days=3))
        border = make_item("border", date=now - timedelta(days=7) + timedelta(seconds=1))

        result = engine.evaluate(
            [expired, fresh, border], entity_with(RetentionPolicy.keep_days(7)), now=now
        )

        assert result.items_to_delete == {"expired"}

    def test_item_exactly_at_cutoff_is_kept(self, engine, make_item, now):
        exact = make_item("exact", date=now - timedelta(days=7))
        just_older = make_item("older", date=now - timedelta(days=7, microseconds=1))

        result = engine.evaluate(
            [exact, just_older], entity_with(RetentionPolicy.keep_days(7)), now=now
        )

        assert "exact" not in result.items_to_delete
        assert "older" in result.items_to_delete

    def test_naive_item_dates_compare_as_utc(self, engine, now):
        """Naive item dates are read as UTC against an aware reference time."""
        naive_old = ItemSnapshot(
            id="naive", entity_id="e1",
            date=(now - timedelta(days=10)).replace(tzinfo=None),
        )
        result = engine.evaluate([naive_old], entity_with(RetentionPolicy.keep_days(7)), now=now)

        assert result.items_to_delete == {"naive"}

    def test_now_defaults_to_current_time(self, engine):
        recent = ItemSnapshot(id="recent", entity_id="e1", date=datetime.now(timezone.utc))
        ancient = ItemSnapshot(
            id="ancient", entity_id="e1",
            date=datetime.now(timezone.utc) - timedelta(days=400),
        )
        result = engine.evaluate([recent, ancient], entity_with(RetentionPolicy.keep_days(30)))

        assert result.items_to_delete == {"ancient"}


class TestSimplePolicies:
    """Test keep_all, auto_archive and auto_delete."""

    def test_keep_all_keeps_everything(self, engine, make_item, now):
        items = [make_item(f"i{i}", days_ago=i * 100) for i in range(3)]
        result = engine.evaluate(items, entity_with(RetentionPolicy.keep_all()), now=now)

        assert result.is_empty

    def test_auto_archive_archives_everything(self, engine, make_item, now):
        items = [make_item("a"), make_item("b")]
        result = engine.evaluate(items, entity_with(RetentionPolicy.auto_archive()), now=now)

        assert result.items_to_archive == {"a", "b"}
        assert result.items_to_delete == frozenset()
        assert result.outcome_for("a") is RetentionOutcome.ARCHIVE

    def test_auto_delete_deletes_everything(self, engine, make_item, now):
        items = [make_item("a"), make_item("b")]
        result = engine.evaluate(items, entity_with(RetentionPolicy.auto_delete()), now=now)

        assert result.items_to_delete == {"a", "b"}
        assert result.outcome_for("b") is RetentionOutcome.DELETE
        assert result.outcome_for("missing") is RetentionOutcome.KEEP


class TestSubRules:
    """Test sub-rule matching and precedence."""

    def test_sub_rule_overrides_entity_policy(self, engine, make_item, now):
        order = make_item("order", subject="Your Order #1234")
        promo = make_item("promo", subject="Weekend sale")
        rule = SubRule(MatchType.SUBJECT_CONTAINS, "Order", RetentionPolicy.keep_all())
        entity = entity_with(RetentionPolicy.auto_delete(), sub_rules=[rule])

        result = engine.evaluate([order, promo], entity, now=now)

        assert "order" not in result.items_to_delete
        assert "promo" in result.items_to_delete

    def test_first_matching_rule_wins(self, engine, make_item, now):
        item = make_item("x", subject="Invoice and receipt")
        rules = [
            SubRule(MatchType.SUBJECT_CONTAINS, "invoice", RetentionPolicy.auto_archive()),
            SubRule(MatchType.SUBJECT_CONTAINS, "receipt", RetentionPolicy.auto_delete()),
        ]
        result = engine.evaluate(
            [item], entity_with(RetentionPolicy.keep_all(), sub_rules=rules), now=now
        )

        assert result.items_to_archive == {"x"}
        assert result.items_to_delete == frozenset()

    def test_entity_policy_has_no_effect_on_matched_item(self, engine, make_item, now):
        """A matched item never falls through to the entity policy."""
        old = make_item("old", days_ago=90, body_preview="Statement ready")
        rule = SubRule(MatchType.BODY_CONTAINS, "statement", RetentionPolicy.auto_archive())
        entity = entity_with(RetentionPolicy.keep_days(7), sub_rules=[rule])

        result = engine.evaluate([old], entity, now=now)

        assert result.items_to_archive == {"old"}
        assert result.items_to_delete == frozenset()

    def test_header_rule_matches_on_presence(self, engine, make_item, now):
        with_header = make_item("list", headers={"List-Unsubscribe": "<mailto:x@y>"})
        without = make_item("plain", headers={"list-unsubscribe": "case differs"})
        rule = SubRule(MatchType.HEADER_MATCHES, "List-Unsubscribe", RetentionPolicy.auto_delete())

        result = engine.evaluate(
            [with_header, without], entity_with(RetentionPolicy.keep_all(), sub_rules=[rule]), now=now
        )

        assert result.items_to_delete == {"list"}

    def test_missing_subject_never_matches(self, engine, make_item, now):
        item = make_item("nosubject", subject=None)
        rule = SubRule(MatchType.SUBJECT_CONTAINS, "anything", RetentionPolicy.auto_delete())

        result = engine.evaluate(
            [item], entity_with(RetentionPolicy.keep_all(), sub_rules=[rule]), now=now
        )

        assert result.is_empty


class TestAttachmentDirectives:
    """Test attachment export directives from matched sub-rules."""

    @pytest.fixture
    def receipts_action(self):
        return AttachmentAction(
            save_destination=SaveDestination.cloud_drive("Receipts"),
            mime_types=("application/pdf",),
        )

    def test_one_directive_per_attachment(self, engine, make_item, now, receipts_action):
        item = make_item(
            "order", subject="Order shipped",
            attachment_filenames=["invoice.pdf", "label.png"],
        )
        rule = SubRule(
            MatchType.SUBJECT_CONTAINS, "order", RetentionPolicy.keep_all(),
            attachment_action=receipts_action,
        )

        result = engine.evaluate(
            [item], entity_with(RetentionPolicy.keep_all(), sub_rules=[rule]), now=now
        )

        assert result.attachments_to_save == (
            AttachmentDirective("order", "invoice.pdf", receipts_action),
            AttachmentDirective("order", "label.png", receipts_action),
        )

    def test_no_directives_without_match(self, engine, make_item, now, receipts_action):
        item = make_item("promo", subject="Sale", attachment_filenames=["flyer.pdf"])
        rule = SubRule(
            MatchType.SUBJECT_CONTAINS, "order", RetentionPolicy.keep_all(),
            attachment_action=receipts_action,
        )

        result = engine.evaluate(
            [item], entity_with(RetentionPolicy.keep_all(), sub_rules=[rule]), now=now
        )

        assert result.attachments_to_save == ()

    def test_directives_survive_protection_and_deletion(self, engine, make_item, now, receipts_action):
        item = make_item("order", subject="Order", attachment_filenames=["invoice.pdf"])
        rule = SubRule(
            MatchType.SUBJECT_CONTAINS, "order", RetentionPolicy.auto_delete(),
            attachment_action=receipts_action,
        )

        result = engine.evaluate(
            [item], entity_with(RetentionPolicy.keep_all(), sub_rules=[rule]), now=now
        )

        assert result.items_to_delete == {"order"}
        assert len(result.attachments_to_save) == 1


class TestImportanceElevation:
    """Test best-match importance patterns."""

    def test_matching_item_elevated_others_absent(self, engine, make_item, now):
        rate = make_item("rate", subject="Your interest rates have changed")
        normal = make_item("normal", subject="Monthly newsletter digest")
        pattern = ImportancePattern(MatchType.SUBJECT_CONTAINS, "rates", ImportanceLevel.CRITICAL)

        result = engine.evaluate(
            [rate, normal],
            entity_with(RetentionPolicy.keep_all(), importance_patterns=[pattern]),
            now=now,
        )

        assert result.elevated_importance == {"rate": ImportanceLevel.CRITICAL}

    def test_highest_matching_level_wins(self, engine, make_item, now):
        item = make_item("both", subject="Urgent rates security alert")
        patterns = [
            ImportancePattern(MatchType.SUBJECT_CONTAINS, "Urgent", ImportanceLevel.CRITICAL),
            ImportancePattern(MatchType.SUBJECT_CONTAINS, "rates", ImportanceLevel.IMPORTANT),
        ]

        result = engine.evaluate(
            [item], entity_with(RetentionPolicy.keep_all(), importance_patterns=patterns), now=now
        )

        assert result.elevated_importance["both"] is ImportanceLevel.CRITICAL

    def test_match_at_or_below_baseline_still_has_entry(self, engine, make_item, now):
        item = make_item("vip", subject="Board meeting", importance_level=ImportanceLevel.CRITICAL)
        pattern = ImportancePattern(MatchType.SUBJECT_CONTAINS, "meeting", ImportanceLevel.IMPORTANT)

        result = engine.evaluate(
            [item], entity_with(RetentionPolicy.keep_all(), importance_patterns=[pattern]), now=now
        )

        assert result.elevated_importance == {"vip": ImportanceLevel.CRITICAL}

    def test_elevation_independent_of_retention(self, engine, make_item, now):
        item = make_item("alert", body_preview="Security ALERT for your account")
        pattern = ImportancePattern(MatchType.BODY_CONTAINS, "alert", ImportanceLevel.IMPORTANT)
        entity = entity_with(
            RetentionPolicy.auto_delete(),
            protection_level=ProtectionLevel.PROTECTED,
            importance_patterns=[pattern],
        )

        result = engine.evaluate([item], entity, now=now)

        assert result.items_to_delete == frozenset()
        assert result.elevated_importance == {"alert": ImportanceLevel.IMPORTANT}


class TestProtection:
    """Test the protection veto."""

    def test_protected_entity_never_deletes(self, engine, make_item, now):
        stale = make_item("stale", days_ago=30)
        entity = entity_with(RetentionPolicy.keep_days(7), protection_level=ProtectionLevel.PROTECTED)

        result = engine.evaluate([stale], entity, now=now)

        assert result.items_to_delete == frozenset()

    def test_protected_entity_still_archives(self, engine, make_item, now):
        items = [make_item("a"), make_item("b", subject="Order")]
        rule = SubRule(MatchType.SUBJECT_CONTAINS, "order", RetentionPolicy.auto_delete())
        entity = entity_with(
            RetentionPolicy.auto_archive(),
            protection_level=ProtectionLevel.PROTECTED,
            sub_rules=[rule],
        )

        result = engine.evaluate(items, entity, now=now)

        assert result.items_to_archive == {"a"}
        assert result.items_to_delete == frozenset()

    @pytest.mark.parametrize("level", [ProtectionLevel.NORMAL, ProtectionLevel.APOCALYPTIC])
    def test_other_levels_do_not_change_deletion(self, engine, make_item, now, level):
        entity = entity_with(RetentionPolicy.auto_delete(), protection_level=level)

        result = engine.evaluate([make_item("a")], entity, now=now)

        assert result.items_to_delete == {"a"}


class TestMatches:
    """Test match semantics shared by sub-rules and importance patterns."""

    def test_contains_is_case_insensitive(self, make_item):
        item = make_item("x", subject="Weekly DIGEST")
        assert matches(item, MatchType.SUBJECT_CONTAINS, "digest")
        assert not matches(item, MatchType.BODY_CONTAINS, "digest")

    def test_empty_pattern_never_matches_text(self, make_item):
        item = make_item("x", subject="Anything", body_preview="Anything")
        assert not matches(item, MatchType.SUBJECT_CONTAINS, "")
        assert not matches(item, MatchType.BODY_CONTAINS, "")

    def test_header_value_is_ignored(self, make_item):
        item = make_item("x", headers={"X-Priority": ""})
        assert matches(item, MatchType.HEADER_MATCHES, "X-Priority")
        assert not matches(item, MatchType.HEADER_MATCHES, "X-Mailer")


class TestEvaluationResult:
    """Test EvaluationResult serialisation."""

    def test_to_dict_is_sorted(self, engine, make_item, now):
        action = AttachmentAction(save_destination=SaveDestination.local_folder("/tmp/out"))
        items = [
            make_item("b", subject="Order", attachment_filenames=["a.pdf"]),
            make_item("a"),
            make_item("c"),
        ]
        rule = SubRule(
            MatchType.SUBJECT_CONTAINS, "order", RetentionPolicy.keep_all(),
            attachment_action=action,
        )
        pattern = ImportancePattern(MatchType.SUBJECT_CONTAINS, "order", ImportanceLevel.IMPORTANT)
        entity = entity_with(
            RetentionPolicy.auto_delete(), sub_rules=[rule], importance_patterns=[pattern]
        )

        data = engine.evaluate(items, entity, now=now).to_dict()

        assert data["items_to_delete"] == ["a", "c"]
        assert data["items_to_archive"] == []
        assert data["attachments_to_save"] == [
            {"item_id": "b", "filename": "a.pdf", "action": action.to_dict()}
        ]
        assert data["elevated_importance"] == {"b": "important"}
