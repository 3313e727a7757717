"""
Tests for quill_engine/continuity_checker.py -- Deterministic continuity rules.

Validates each of the five checks, their skip conditions, and that
run_deterministic_continuity_checks concatenates them.
"""

import pytest

from quill_engine.continuity_checker import (
    CheckType,
    ContinuityCheckContext,
    detect_broken_mention_references,
    detect_conflicting_timeline_events,
    detect_culture_membership_overlap,
    detect_death_before_appearance,
    detect_duplicate_canonical_names,
    run_deterministic_continuity_checks,
    timeline_event_day_index,
)
from quill_engine.models.canon import CultureMembership, Mention, Severity

UNIVERSE_ID = "universe_test"


def context(entries=(), mentions=(), memberships=()):
    return ContinuityCheckContext(
        universe_id=UNIVERSE_ID,
        entries=list(entries),
        mentions=list(mentions),
        culture_memberships=list(memberships),
    )


def membership(mid, character, culture, start=None, end=None, **extra):
    return CultureMembership(
        id=mid,
        character_entry_id=character,
        culture_entry_id=culture,
        valid_from_event_id=start,
        valid_to_event_id=end,
        **extra,
    )


class TestDayIndex:

    def test_both_day_spellings_resolve(self, timeline_entries):
        assert timeline_event_day_index(timeline_entries) == {"ev_1": 1, "ev_5": 5, "ev_10": 10}

    @pytest.mark.parametrize("raw", [None, "soon", True, float("nan"), float("inf")])
    def test_unusable_days_are_dropped(self, make_entry, raw):
        entry = make_entry("ev_x", "X", "timeline_event", details={"relativeDay": raw})
        assert timeline_event_day_index([entry]) == {}

    def test_numeric_string_is_accepted(self, make_entry):
        entry = make_entry("ev_x", "X", "timeline_event", details={"relativeDay": "7"})
        assert timeline_event_day_index([entry]) == {"ev_x": 7.0}


class TestDuplicateCanonicalNames:

    def test_duplicate_canon_slugs_flagged(self, make_entry):
        entries = [
            make_entry("c1", "Elena Voss", canon_status="canon"),
            make_entry("c2", "Elena  Voss", canon_status="canon"),
        ]
        issues = detect_duplicate_canonical_names(context(entries))

        assert len(issues) == 1
        issue = issues[0]
        assert issue.check_type == CheckType.DUPLICATE_CANONICAL_NAME.value
        assert issue.description == "Duplicate canonical slug detected: elena-voss"
        assert {(e.id, e.excerpt) for e in issue.evidence} == {
            ("c1", "Elena Voss"), ("c2", "Elena  Voss"),
        }
        assert issue.severity == Severity.WARNING
        assert issue.universe_id == UNIVERSE_ID

    def test_drafts_and_other_types_ignored(self, make_entry):
        entries = [
            make_entry("c1", "Elena", canon_status="canon"),
            make_entry("c2", "Elena", canon_status="draft"),
            make_entry("l1", "Elena", "location", canon_status="canon"),
        ]
        assert detect_duplicate_canonical_names(context(entries)) == []


class TestBrokenMentions:

    def test_missing_entry_flagged(self, make_entry):
        entries = [make_entry("c1", "Elena")]
        mentions = [
            Mention(id="m1", scene_id="s1", entry_id="c1"),
            Mention(id="m2", scene_id="s1", entry_id="ghost"),
        ]
        issues = detect_broken_mention_references(context(entries, mentions))

        assert len(issues) == 1
        assert issues[0].description == "Mention m2 references missing entry ghost"
        assert [(e.type, e.id) for e in issues[0].evidence] == [("mention", "m2"), ("entry", "ghost")]


class TestTimelineConflicts:

    def test_same_name_and_day_with_different_text(self, make_entry):
        entries = [
            make_entry("t1", "Battle of Vell", "timeline_event",
                       summary="The north wins.", details={"relativeDay": 3}),
            make_entry("t2", "battle of vell", "timeline_event",
                       summary="The south wins.", details={"relativeDay": 3.0}),
        ]
        issues = detect_conflicting_timeline_events(context(entries))

        assert len(issues) == 1
        assert issues[0].check_type == "timeline-event-conflict"
        assert issues[0].description == (
            'Timeline event "Battle of Vell" has conflicting descriptions for the same date'
        )
        assert [e.excerpt for e in issues[0].evidence] == ["The north wins.", "The south wins."]

    def test_identical_text_is_not_a_conflict(self, make_entry):
        entries = [
            make_entry("t1", "Feast", "timeline_event", summary=" Same. ", details={"relativeDay": 2}),
            make_entry("t2", "Feast", "timeline_event", summary="Same.", details={"relativeDay": 2}),
        ]
        assert detect_conflicting_timeline_events(context(entries)) == []

    def test_different_days_are_not_grouped(self, make_entry):
        entries = [
            make_entry("t1", "Feast", "timeline_event", summary="A", details={"relativeDay": 2}),
            make_entry("t2", "Feast", "timeline_event", summary="B", details={"relativeDay": 3}),
        ]
        assert detect_conflicting_timeline_events(context(entries)) == []

    def test_date_key_used_without_day(self, make_entry):
        entries = [
            make_entry("t1", "Feast", "timeline_event", summary="A", details={"date": "Spring 12"}),
            make_entry("t2", "Feast", "timeline_event", summary="B", details={"date": "Spring 12"}),
        ]
        assert len(detect_conflicting_timeline_events(context(entries))) == 1


class TestCultureOverlap:

    @pytest.fixture
    def base_entries(self, make_entry, timeline_entries):
        return timeline_entries + [
            make_entry("char", "Elena"),
            make_entry("cul_a", "Tidefolk", "culture"),
            make_entry("cul_b", "Ashborn", "culture"),
        ]

    def test_overlapping_primary_cultures_flagged(self, base_entries):
        rows = [
            membership("m1", "char", "cul_a", "ev_1", "ev_10"),
            membership("m2", "char", "cul_b", "ev_5"),
        ]
        issues = detect_culture_membership_overlap(context(base_entries, memberships=rows))

        assert len(issues) == 1
        assert issues[0].description == (
            "Elena has overlapping primary cultures (Tidefolk and Ashborn) without dual_heritage flag"
        )
        assert [(e.type, e.id) for e in issues[0].evidence] == [
            ("entry", "char"), ("culture_membership", "m1"), ("culture_membership", "m2"),
        ]

    def test_touching_ranges_overlap(self, base_entries):
        rows = [
            membership("m1", "char", "cul_a", "ev_1", "ev_5"),
            membership("m2", "char", "cul_b", "ev_5", "ev_10"),
        ]
        assert len(detect_culture_membership_overlap(context(base_entries, memberships=rows))) == 1

    def test_sequential_ranges_pass(self, base_entries):
        rows = [
            membership("m1", "char", "cul_a", "ev_1", "ev_5"),
            membership("m2", "char", "cul_b", "ev_10"),
        ]
        assert detect_culture_membership_overlap(context(base_entries, memberships=rows)) == []

    def test_dual_heritage_suppresses(self, base_entries):
        rows = [
            membership("m1", "char", "cul_a", "ev_1", dual_heritage=True),
            membership("m2", "char", "cul_b", "ev_5"),
        ]
        assert detect_culture_membership_overlap(context(base_entries, memberships=rows)) == []

    def test_secondary_membership_ignored(self, base_entries):
        rows = [
            membership("m1", "char", "cul_a", "ev_1"),
            membership("m2", "char", "cul_b", "ev_5", membership_kind="secondary"),
        ]
        assert detect_culture_membership_overlap(context(base_entries, memberships=rows)) == []

    def test_unresolvable_ranges_skipped(self, base_entries):
        rows = [
            membership("m1", "char", "cul_a", "ev_unknown"),
            membership("m2", "char", "cul_b", "ev_5", "ev_missing"),
            membership("m3", "char", "cul_b"),
        ]
        assert detect_culture_membership_overlap(context(base_entries, memberships=rows)) == []


class TestDeathBeforeAppearance:

    @pytest.fixture
    def entries(self, make_entry, timeline_entries):
        return timeline_entries + [
            make_entry("char", "Elena", details={"deathEventId": "ev_5"}),
            make_entry("alive", "Marco"),
        ]

    def test_scene_after_death_is_blocker(self, make_entry, entries):
        scene = make_entry("scene", "Return", "scene",
                           details={"eventId": "ev_10", "presentCharacters": ["char", "alive"]})
        issues = detect_death_before_appearance(context(entries + [scene]))

        assert len(issues) == 1
        issue = issues[0]
        assert issue.severity == Severity.BLOCKER
        assert issue.description == "Elena appears after recorded death event"
        assert [(e.type, e.id) for e in issue.evidence] == [
            ("scene", "scene"), ("entry", "char"), ("event", "ev_5"),
        ]

    def test_scene_on_death_day_is_flagged(self, make_entry, entries):
        scene = make_entry("scene", "Last stand", "scene",
                           details={"timelineEventId": "ev_5", "presentCharacters": ["char"]})
        assert len(detect_death_before_appearance(context(entries + [scene]))) == 1

    def test_scene_before_death_passes(self, make_entry, entries):
        scene = make_entry("scene", "Youth", "scene",
                           details={"eventId": "ev_1", "presentCharacters": ["char"]})
        assert detect_death_before_appearance(context(entries + [scene])) == []

    def test_unresolvable_scene_day_skipped(self, make_entry, entries):
        scene = make_entry("scene", "Undated", "scene", details={"presentCharacters": ["char"]})
        assert detect_death_before_appearance(context(entries + [scene])) == []

    def test_non_string_participants_are_skipped(self, make_entry, entries):
        scene = make_entry("scene", "Return", "scene",
                           details={"eventId": "ev_10", "presentCharacters": [{"id": "char"}, "char"]})
        issues = detect_death_before_appearance(context(entries + [scene]))
        assert [issue.description for issue in issues] == [
            "Elena appears after recorded death event",
        ]


class TestRunAll:

    def test_concatenates_all_checks(self, make_entry):
        entries = [
            make_entry("c1", "Elena", canon_status="canon"),
            make_entry("c2", "Elena", canon_status="canon"),
        ]
        mentions = [Mention(id="m1", scene_id="s1", entry_id="ghost")]
        issues = run_deterministic_continuity_checks(context(entries, mentions))
        assert [i.check_type for i in issues] == [
            "duplicate-canonical-name", "broken-mention-reference",
        ]

    def test_clean_corpus_has_no_issues(self, make_entry, timeline_entries):
        assert run_deterministic_continuity_checks(context(timeline_entries)) == []
