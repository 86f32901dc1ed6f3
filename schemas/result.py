from dataclasses import dataclass, field
from typing import List


@dataclass
class ScoreItem:
    """One label/score line of a rendered result."""

    label: str
    score: float = 0.0
    is_best: bool = False

    @property
    def percent_text(self) -> str:
        return f"{self.score * 100:.1f}%"


@dataclass
class RenderedResult:
    """
    Display-ready view of a Prediction against the label set.

    Attributes
    ----------
    items      : list[ScoreItem]
        One item per label, in label order. Missing scores are 0.0.
    best_index : int
        Index of the highest score (first occurrence on ties).
    text       : str
        Headline, e.g. "C Press (81.0%)".
    """

    items: List[ScoreItem] = field(default_factory=list)
    best_index: int = 0
    text: str = ""

    @property
    def best(self) -> ScoreItem:
        return self.items[self.best_index]
