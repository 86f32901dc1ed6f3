import math

import pytest

from ui.display import HeadlessDisplay
from ui.renderer import best_index, publish, render_result, score_field, scores_for_labels

from conftest import LABELS


class TestBestIndex:
    def test_ties_pick_first_occurrence(self):
        assert best_index([0.4, 0.4, 0.2]) == 0

    def test_all_equal_picks_zero(self):
        assert best_index([0.3, 0.3, 0.3]) == 0

    def test_negative_logits(self):
        assert best_index([-3.0, -1.5, -2.0]) == 1

    def test_nan_never_wins(self):
        assert best_index([math.nan, 0.1, 0.05]) == 1

    def test_shorter_vector_stays_in_bounds(self):
        # missing entries count as 0.0; a negative score loses to them
        assert best_index([-1.0], n_labels=3) == 1

    def test_empty_vector(self):
        assert best_index([], n_labels=3) == 0

    def test_longer_vector_is_cut_to_labels(self):
        assert best_index([0.1, 0.2, 0.3, 0.9], n_labels=3) == 2


class TestScoresForLabels:
    def test_pads_with_zero(self):
        assert scores_for_labels([0.5], 3) == [0.5, 0.0, 0.0]

    def test_none_is_all_zero(self):
        assert scores_for_labels(None, 2) == [0.0, 0.0]


class TestRenderResult:
    def test_end_to_end_example(self):
        result = render_result([0.12, 0.81, 0.07], LABELS)

        assert result.best_index == 1
        assert result.best.label == "C Press"
        assert result.best.percent_text == "81.0%"
        assert result.text == "C Press (81.0%)"
        assert [item.is_best for item in result.items] == [False, True, False]

    def test_exactly_one_best_under_ties(self):
        result = render_result([0.4, 0.4, 0.2], LABELS)
        assert sum(item.is_best for item in result.items) == 1
        assert result.best.label == "Big Lot"

    def test_short_prediction_renders_zero(self):
        result = render_result([0.9], LABELS)
        assert [item.score for item in result.items] == [0.9, 0.0, 0.0]
        assert result.items[2].percent_text == "0.0%"

    def test_raw_logits_are_shown_unnormalised(self):
        result = render_result([2.5, 0.1, 0.0], LABELS)
        assert result.text == "Big Lot (250.0%)"

    def test_empty_label_set_rejected(self):
        with pytest.raises(ValueError):
            render_result([0.1], [])


class TestPublish:
    def test_writes_semantic_fields(self):
        display = HeadlessDisplay()
        publish(render_result([0.12, 0.81, 0.07], LABELS), display)

        assert display.fields["result"] == "C Press (81.0%)"
        assert display.fields["best"] == "C Press"
        assert display.fields[score_field("Big Lot")] == "12.0%"
        assert display.fields[score_field("C Press")] == "81.0%"
        assert display.fields[score_field("Snyders")] == "7.0%"

    def test_scores_can_be_hidden(self):
        display = HeadlessDisplay()
        publish(render_result([0.12, 0.81, 0.07], LABELS), display, show_all_scores=False)

        assert "result" in display.fields
        assert not any(k.startswith("score:") for k in display.fields)
