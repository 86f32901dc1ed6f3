"""
ui/renderer.py

Prediction + label set -> display fields.

render_result() is a pure function: it pairs every label with its score
(missing scores count as 0.0, extra scores are ignored), picks the best
index (first occurrence wins on ties) and formats the headline.

publish() writes the result to a DisplaySurface under semantic field
names:
  - "result"        : headline, e.g. "C Press (81.0%)"
  - "best"          : best label
  - "score:<label>" : per-class value, e.g. "81.0%"
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence

from core.interfaces import DisplaySurface
from schemas import RenderedResult, ScoreItem

SCORE_FIELD_PREFIX = "score:"


def score_field(label: str) -> str:
    return f"{SCORE_FIELD_PREFIX}{label}"


def scores_for_labels(values: Optional[Sequence[float]], n_labels: int) -> List[float]:
    """
    Align a prediction vector to the label set.

    Shorter vectors are padded with 0.0, longer ones are cut.
    """
    vals = [] if values is None else list(values)
    out: List[float] = []
    for i in range(n_labels):
        out.append(float(vals[i]) if i < len(vals) else 0.0)
    return out


def best_index(values: Optional[Sequence[float]], n_labels: Optional[int] = None) -> int:
    """
    Index of the maximum score; the first occurrence wins on ties.

    NaN never wins. With n_labels given, only indices < n_labels are
    considered and missing entries count as 0.0, so the result is always
    a valid label index.
    """
    if n_labels is None:
        n_labels = 0 if values is None else len(values)
    scores = scores_for_labels(values, n_labels)

    best_i, best_v = 0, -math.inf
    for i, v in enumerate(scores):
        if v > best_v:
            best_i, best_v = i, v
    return best_i


def render_result(values: Optional[Sequence[float]], labels: Sequence[str]) -> RenderedResult:
    if not labels:
        raise ValueError("Label set must not be empty")

    scores = scores_for_labels(values, len(labels))
    k = best_index(scores, len(labels))

    items = [
        ScoreItem(label=str(label), score=score, is_best=(i == k))
        for i, (label, score) in enumerate(zip(labels, scores))
    ]
    text = f"{items[k].label} ({items[k].percent_text})"
    return RenderedResult(items=items, best_index=k, text=text)


def publish(result: RenderedResult, display: DisplaySurface, show_all_scores: bool = True) -> None:
    display.write("result", result.text)
    display.write("best", result.best.label)
    if show_all_scores:
        for item in result.items:
            display.write(score_field(item.label), item.percent_text)
