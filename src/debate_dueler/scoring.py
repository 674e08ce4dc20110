import math
from abc import ABC, abstractmethod
from typing import List, Optional

from .models import Answer, Question, QuestionStats, ScoringMode


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def card_percentage(stats: Optional[QuestionStats], card_id: str) -> int:
    """Whole-number share of responses that picked ``card_id``."""
    if not stats or stats.total_responses == 0:
        return 0
    count = stats.card_stats.get(card_id, 0)
    return round_half_up(count / stats.total_responses * 100)


def average_position_percentage(stats: QuestionStats, sequence: List[str]) -> float:
    """Mean share of responses that put each card at its 1-based position."""
    if not sequence:
        return 0.0
    position_stats = stats.position_stats or {}
    total_pct = 0.0
    for position, card_id in enumerate(sequence, start=1):
        count = position_stats.get(card_id, {}).get(position, 0)
        if stats.total_responses > 0:
            total_pct += count / stats.total_responses * 100
    return total_pct / len(sequence)


def canonical_sequence(question: Question) -> List[str]:
    ordered = sorted(question.cards, key=lambda c: c.sequence_order or 0)
    return [card.id for card in ordered]


# --- Strategy Pattern: Scoring Modes ---
class ScoringStrategy(ABC):
    """Scores one answer against a statistics snapshot."""

    @abstractmethod
    def score_choice(
        self, question: Question, card_id: str, stats: Optional[QuestionStats], bonus: int
    ) -> int:
        pass

    @abstractmethod
    def score_sequence(
        self,
        question: Question,
        sequence: List[str],
        stats: Optional[QuestionStats],
        bonus: int,
    ) -> int:
        pass


class TriviaScoring(ScoringStrategy):
    """Rewards correctness. A wrong multiple-choice pick earns nothing, not even the bonus."""

    def score_choice(self, question, card_id, stats, bonus):
        card = question.get_card(card_id)
        return 100 + bonus if card and card.is_correct else 0

    def score_sequence(self, question, sequence, stats, bonus):
        correct = canonical_sequence(question)
        if not correct:
            return bonus
        matches = sum(
            1
            for index, card_id in enumerate(sequence)
            if index < len(correct) and correct[index] == card_id
        )
        return round_half_up(matches / len(correct) * 100) + bonus


class ConformistScoring(ScoringStrategy):
    """Rewards agreeing with the community."""

    def score_choice(self, question, card_id, stats, bonus):
        return card_percentage(stats, card_id) + bonus

    def score_sequence(self, question, sequence, stats, bonus):
        if not stats or stats.position_stats is None:
            return 0
        return round_half_up(average_position_percentage(stats, sequence)) + bonus


class ContrarianScoring(ScoringStrategy):
    """Rewards disagreeing with the community."""

    def score_choice(self, question, card_id, stats, bonus):
        return 100 - card_percentage(stats, card_id) + bonus

    def score_sequence(self, question, sequence, stats, bonus):
        if not stats or stats.position_stats is None:
            return 0
        return round_half_up(100 - average_position_percentage(stats, sequence)) + bonus


class ScoringFactory:
    """Factory to select the strategy for a scoring mode."""

    _strategies = {
        "trivia": TriviaScoring,
        "conformist": ConformistScoring,
        "contrarian": ContrarianScoring,
    }

    @staticmethod
    def create(mode: ScoringMode) -> ScoringStrategy:
        try:
            return ScoringFactory._strategies[mode]()
        except KeyError:
            raise ValueError(f"Unknown scoring mode: {mode}")


def calculate_score(
    scoring_mode: ScoringMode,
    question: Question,
    answer: Answer,
    stats: Optional[QuestionStats],
    time_remaining: int,
) -> int:
    """Score one answer. Pure: the snapshot is read, never written.

    ``answer`` is a card id for multiple-choice questions and a list of card
    ids for sequence questions. Each second remaining adds one point.
    """
    strategy = ScoringFactory.create(scoring_mode)
    bonus = max(0, time_remaining)
    if question.question_type == "sequence":
        return strategy.score_sequence(question, list(answer), stats, bonus)
    return strategy.score_choice(question, answer, stats, bonus)
