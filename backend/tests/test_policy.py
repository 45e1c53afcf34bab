"""Tests for confidence-based answer aggregation."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from fakes import make_answer, make_context
from qnabot.config import default_dialog_config
from qnabot.dialog.gateway import SearchResult
from qnabot.dialog.policy import (
    ContextReference,
    Decision,
    decide_followup,
    decide_top_level,
    discovered_contexts_to_merge,
    format_context_reference,
    is_uncertain,
    merge_contexts,
    parse_context_reference,
    resolve_context,
    select_suggestions,
    sort_contexts,
)

CONFIG = default_dialog_config()


def _result(*pairs):
    """SearchResult where each (name, score) pair is a context with one answer."""
    return SearchResult(
        answers=[make_answer(name, score) for name, score in pairs],
        contexts=[make_context(name, score) for name, score in pairs],
        score=max((score for _, score in pairs), default=0.0),
    )


class TestDecideTopLevel:
    """Tests for the top-level rule."""

    def test_single_confident_context_is_answered(self):
        """One clear winner is answered directly."""
        decision = decide_top_level(_result(("Billing", 0.9)), CONFIG)

        assert decision.decision is Decision.ANSWER
        assert decision.answer.name == "Billing"
        assert decision.context.name == "Billing"

    def test_near_tie_offers_both_contexts(self):
        """Scores 0.75 and 0.70 are within the 0.2 delta, so both are offered."""
        decision = decide_top_level(_result(("Billing", 0.75), ("Accounts", 0.70)), CONFIG)

        assert decision.decision is Decision.DISAMBIGUATE
        assert [c.name for c in decision.options] == ["Billing", "Accounts"]

    def test_options_are_ordered_by_score(self):
        decision = decide_top_level(_result(("Accounts", 0.70), ("Billing", 0.75)), CONFIG)

        assert [c.name for c in decision.options] == ["Billing", "Accounts"]

    def test_context_outside_delta_is_not_offered(self):
        decision = decide_top_level(
            _result(("Billing", 0.75), ("Accounts", 0.70), ("Shipping", 0.3)), CONFIG
        )

        assert "Shipping" not in [c.name for c in decision.options]

    def test_clear_winner_over_distant_runner_up_is_answered(self):
        decision = decide_top_level(_result(("Billing", 0.9), ("Accounts", 0.5)), CONFIG)

        assert decision.decision is Decision.ANSWER
        assert decision.context.name == "Billing"

    def test_below_minimum_confidence_is_not_found(self):
        """A best score of 0.3 with a 0.4 minimum is not found."""
        decision = decide_top_level(_result(("Billing", 0.3)), CONFIG)

        assert decision.decision is Decision.NOT_FOUND

    def test_zero_score_is_not_found(self):
        decision = decide_top_level(_result(("Billing", 0.0)), CONFIG)

        assert decision.decision is Decision.NOT_FOUND

    def test_empty_result_is_not_found(self):
        decision = decide_top_level(SearchResult(), CONFIG)

        assert decision.decision is Decision.NOT_FOUND

    def test_answers_without_contexts_are_not_found(self):
        result = SearchResult(answers=[make_answer("Billing", 0.9)], contexts=[], score=0.9)

        assert decide_top_level(result, CONFIG).decision is Decision.NOT_FOUND

    def test_best_answer_comes_from_sorted_answers(self):
        """Answer order from the gateway does not matter."""
        result = SearchResult(
            answers=[make_answer("Billing", 0.5), make_answer("Billing", 0.95, question="Best")],
            contexts=[make_context("Billing", 0.95)],
            score=0.95,
        )

        decision = decide_top_level(result, CONFIG)

        assert decision.decision is Decision.ANSWER
        assert decision.answer.question_matched == "Best"

    @given(score=st.floats(min_value=0.0, max_value=0.4, exclude_max=True))
    @settings(max_examples=50)
    def test_below_minimum_is_never_answered(self, score):
        """Whatever other contexts are present, a best score under the minimum is not found."""
        result = SearchResult(
            answers=[make_answer("Billing", score)],
            contexts=[make_context("Billing", score), make_context("Accounts", 0.99)],
            score=score,
        )

        assert decide_top_level(result, CONFIG).decision is Decision.NOT_FOUND

    @given(
        top=st.floats(min_value=0.5, max_value=1.0),
        gap=st.floats(min_value=0.0, max_value=0.15),
        drop=st.floats(min_value=0.0, max_value=0.5),
    )
    @settings(max_examples=50)
    def test_near_tie_window(self, top, gap, drop):
        """Contexts within the delta are offered, contexts outside it are not."""
        second = top - gap
        third = max(top - CONFIG.choice_confidence_delta - 0.05 - drop, 0.0)

        decision = decide_top_level(
            _result(("Billing", top), ("Accounts", second), ("Shipping", third)), CONFIG
        )

        assert decision.decision is Decision.DISAMBIGUATE
        assert [c.name for c in decision.options] == ["Billing", "Accounts"]


class TestDecideFollowup:
    """Tests for the in-context follow-up rule."""

    def test_confident_answer_is_answered(self):
        decision = decide_followup([make_answer("Billing", 0.9)], CONFIG)

        assert decision.decision is Decision.ANSWER
        assert decision.answer.score == 0.9

    def test_weak_answer_broadens(self):
        """0.5 is not above the 0.6 prompt threshold."""
        decision = decide_followup([make_answer("Billing", 0.5)], CONFIG)

        assert decision.decision is Decision.BROADEN

    def test_score_equal_to_threshold_broadens(self):
        decision = decide_followup([make_answer("Billing", CONFIG.qna_confidence_prompt)], CONFIG)

        assert decision.decision is Decision.BROADEN

    def test_no_answers_broaden(self):
        assert decide_followup([], CONFIG).decision is Decision.BROADEN

    def test_best_of_unsorted_candidates_is_used(self):
        candidates = [make_answer("Billing", 0.3), make_answer("Billing", 0.8, question="Best")]

        decision = decide_followup(candidates, CONFIG)

        assert decision.answer.question_matched == "Best"


def test_is_uncertain_below_warning_threshold():
    assert is_uncertain(make_answer("Billing", 0.7), CONFIG)
    assert not is_uncertain(make_answer("Billing", 0.9), CONFIG)


class TestMergeContexts:
    """Tests for merging tracked and discovered contexts."""

    def test_lone_discovered_context_is_dropped(self):
        assert discovered_contexts_to_merge([make_context("Billing")]) == []
        assert discovered_contexts_to_merge([]) == []
        assert discovered_contexts_to_merge(None) == []

    def test_several_discovered_contexts_are_kept(self):
        discovered = [make_context("Billing"), make_context("Accounts")]

        assert [c.name for c in discovered_contexts_to_merge(discovered)] == [
            "Billing",
            "Accounts",
        ]

    def test_duplicates_are_removed_keeping_first_position(self):
        existing = [make_context("Billing", 0.5), make_context("Accounts", 0.6)]
        discovered = [make_context("Shipping", 0.8), make_context("Billing", 0.9)]

        merged = merge_contexts(existing, discovered, limit=10)

        assert [c.name for c in merged] == ["Billing", "Accounts", "Shipping"]
        assert merged[0].score == 0.9

    def test_lower_duplicate_score_is_ignored(self):
        merged = merge_contexts(
            [make_context("Billing", 0.9)], [make_context("Billing", 0.2)], limit=10
        )

        assert merged[0].score == 0.9

    def test_merged_contexts_are_independent_copies(self):
        existing = [make_context("Billing", 0.5, questions=["How do I pay?"])]

        merged = merge_contexts(existing, [], limit=10)
        merged[0].possible_questions.append("Extra")
        merged[0].score = 1.0

        assert existing[0].possible_questions == ["How do I pay?"]
        assert existing[0].score == 0.5

    def test_limit_evicts_lowest_scores(self):
        contexts = [make_context(f"C{i}", score=i / 10) for i in range(5)]

        merged = merge_contexts(contexts, [], limit=3)

        assert [c.name for c in merged] == ["C2", "C3", "C4"]

    def test_limit_keeps_selected_context(self):
        contexts = [make_context(f"C{i}", score=i / 10) for i in range(5)]

        merged = merge_contexts(contexts, [], limit=3, keep=contexts[0])

        assert len(merged) == 3
        assert "C0" in [c.name for c in merged]
        assert "C4" in [c.name for c in merged]

    @given(
        existing=st.lists(
            st.tuples(st.sampled_from("ABCDEF"), st.floats(min_value=0.0, max_value=1.0)),
            max_size=6,
        ),
        discovered=st.lists(
            st.tuples(st.sampled_from("ABCDEF"), st.floats(min_value=0.0, max_value=1.0)),
            max_size=6,
        ),
    )
    @settings(max_examples=100)
    def test_merge_is_idempotent_without_duplicates(self, existing, discovered):
        """Merging the same discovery twice changes nothing and never duplicates names."""
        existing_contexts = [make_context(name, score) for name, score in existing]
        discovered_contexts = [make_context(name, score) for name, score in discovered]

        once = merge_contexts(existing_contexts, discovered_contexts, limit=10)
        twice = merge_contexts(once, discovered_contexts, limit=10)

        names = [c.name for c in once]
        assert len(names) == len(set(names))
        assert [c.to_dict() for c in twice] == [c.to_dict() for c in once]


class TestSuggestions:
    """Tests for picking low-confidence suggestions."""

    def test_keeps_confident_candidates_in_score_order(self):
        candidates = [
            make_answer("Billing", 0.5),
            make_answer("Accounts", 0.55),
            make_answer("Shipping", 0.2),
        ]

        suggestions = select_suggestions(candidates, CONFIG)

        assert [s.name for s in suggestions] == ["Accounts", "Billing"]

    def test_minimum_confidence_itself_is_excluded(self):
        assert select_suggestions([make_answer("Billing", CONFIG.qna_min_confidence)], CONFIG) == []

    def test_capped_at_max_suggestions(self):
        candidates = [make_answer(f"C{i}", 0.5 + i / 100) for i in range(6)]

        suggestions = select_suggestions(candidates, CONFIG)

        assert len(suggestions) == CONFIG.max_suggestions
        assert suggestions[0].name == "C5"


class TestContextReference:
    """Tests for "@<name>: <question>" replies."""

    def test_parses_name_and_question(self):
        assert parse_context_reference("@Billing: how do I cancel") == ContextReference(
            name="Billing", question="how do I cancel"
        )

    def test_strips_surrounding_whitespace(self):
        assert parse_context_reference("  @Human Resources :  who is my manager?  ") == (
            ContextReference(name="Human Resources", question="who is my manager?")
        )

    @pytest.mark.parametrize(
        "text",
        [None, "", "how do I cancel", "Billing: how do I cancel", "@: question", "@Billing:"],
    )
    def test_rejects_other_shapes(self, text):
        assert parse_context_reference(text) is None

    def test_format_matches_parse(self):
        text = format_context_reference(make_answer("Billing", 0.5, question="How do I pay?"))

        assert text == "@Billing: How do I pay?"
        assert parse_context_reference(text) == ContextReference("Billing", "How do I pay?")

    def test_resolve_prefers_exact_then_case_insensitive(self):
        contexts = [make_context("billing"), make_context("Billing")]

        assert resolve_context("Billing", contexts) is contexts[1]
        assert resolve_context("BILLING", contexts) is contexts[0]
        assert resolve_context("Shipping", contexts) is None


def test_sort_contexts_is_stable_for_ties():
    contexts = [make_context("A", 0.5), make_context("B", 0.9), make_context("C", 0.5)]

    assert [c.name for c in sort_contexts(contexts)] == ["B", "A", "C"]
