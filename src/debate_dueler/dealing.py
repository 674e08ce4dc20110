import random
from abc import ABC, abstractmethod
from typing import List

from .models import Question


# --- Strategy Pattern: Question Dealers ---
class QuestionDealer(ABC):
    """Abstract Base Class for picking the questions a session plays."""

    @abstractmethod
    def deal(self, questions: List[Question], count: int) -> List[Question]:
        pass


class ShuffledDealer(QuestionDealer):
    """Randomly selects up to N questions from the deck."""

    def deal(self, questions: List[Question], count: int) -> List[Question]:
        if not questions:
            return []
        return random.sample(questions, min(count, len(questions)))


class OrderedDealer(QuestionDealer):
    """Takes the first N questions in deck order."""

    def deal(self, questions: List[Question], count: int) -> List[Question]:
        return list(questions[:count])


class DealerFactory:
    """Factory to select the appropriate dealer."""

    @staticmethod
    def create(mode: str) -> QuestionDealer:
        if mode == "ordered":
            return OrderedDealer()
        # Fallback for any other mode is shuffled
        return ShuffledDealer()
