import glob
import logging
import os
from typing import Any, Dict, List, Optional

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from .config import settings
from .models import Card, Deck, Question

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"question_id", "prompt", "card_id", "card_text"}

DUMMY_DECK = Deck(
    id="default_dummy",
    title="Hot Takes",
    description="Pick a side and see who agrees.",
    theme="classic",
    created_by="Debate Dueler",
    questions=[
        Question(
            id="q_pineapple",
            prompt="Does pineapple belong on pizza?",
            cards=[
                Card(id="yes", text="Absolutely", is_correct=True),
                Card(id="no", text="Never"),
                Card(id="meh", text="Only on Tuesdays"),
            ],
        ),
        Question(
            id="q_hotdog",
            prompt="Is a hot dog a sandwich?",
            cards=[
                Card(id="sandwich", text="It is a sandwich"),
                Card(id="taco", text="It is a taco", is_correct=True),
                Card(id="own", text="It is its own thing"),
            ],
        ),
        Question(
            id="q_meals",
            prompt="Order these meals through the day",
            question_type="sequence",
            cards=[
                Card(id="breakfast", text="Breakfast", sequence_order=1),
                Card(id="lunch", text="Lunch", sequence_order=2),
                Card(id="dinner", text="Dinner", sequence_order=3),
            ],
        ),
    ],
)


def _is_blank(value) -> bool:
    return value is None or (not isinstance(value, str) and pd.isna(value))


def _parse_flag(value) -> Optional[bool]:
    if _is_blank(value):
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y")
    return bool(value)


def _parse_int(value) -> Optional[int]:
    return None if _is_blank(value) or value == "" else int(value)


# --- Service Layer: Starter Decks ---
class DeckLibrary:
    """Loads starter decks from CSV files, one row per card."""

    def __init__(self, directory: str):
        self.directory = directory
        self.decks: Dict[str, Deck] = {}
        self.load_all()

    def load_all(self):
        self.decks = {}
        if not os.path.isdir(self.directory):
            logger.warning(f"Deck directory {self.directory} not found.")
        else:
            for file_path in sorted(glob.glob(os.path.join(self.directory, "*.csv"))):
                deck_id = os.path.splitext(os.path.basename(file_path))[0]
                try:
                    df = pd.read_csv(file_path, encoding="utf-8", dtype={"card_id": str, "question_id": str})
                except (OSError, ValueError) as e:
                    logger.error(f"Failed to load {file_path}: {e}")
                    continue
                missing = REQUIRED_COLUMNS - set(df.columns)
                if missing:
                    logger.error(f"Skipping {deck_id}: Missing columns {sorted(missing)}.")
                    continue
                try:
                    self.decks[deck_id] = self._build_deck(deck_id, df)
                except PydanticValidationError as e:
                    logger.error(f"Skipping {deck_id}: Invalid question data: {e}")
                    continue
                logger.info(f"Loaded {len(self.decks[deck_id].questions)} questions from {deck_id}")

        if not self.decks:
            logger.warning("No deck files found. Loading dummy deck.")
            self.decks[DUMMY_DECK.id] = DUMMY_DECK

    @staticmethod
    def _build_deck(deck_id: str, df: pd.DataFrame) -> Deck:
        questions = []
        for question_id, rows in df.groupby("question_id", sort=False):
            first = rows.iloc[0]
            question_type = first.get("question_type")
            time_limit = _parse_int(first.get("time_limit"))
            questions.append(
                Question(
                    id=str(question_id),
                    prompt=str(first["prompt"]),
                    question_type="multiple-choice" if _is_blank(question_type) else str(question_type),
                    time_limit=time_limit or settings.DEFAULT_TIME_LIMIT,
                    cards=[
                        Card(
                            id=str(row["card_id"]),
                            text=str(row["card_text"]),
                            is_correct=_parse_flag(row.get("is_correct")),
                            sequence_order=_parse_int(row.get("sequence_order")),
                        )
                        for _, row in rows.iterrows()
                    ],
                )
            )
        return Deck(
            id=deck_id,
            title=deck_id.replace("_", " ").title(),
            description=f"Starter deck: {deck_id.replace('_', ' ')}",
            created_by="Debate Dueler",
            questions=questions,
        )

    def get_deck(self, name: str) -> Optional[Deck]:
        deck = self.decks.get(name)
        return deck.model_copy(deep=True) if deck else None

    def default_deck(self) -> Deck:
        deck = self.get_deck(settings.DEFAULT_DECK)
        if deck is None:
            deck = self.get_deck(sorted(self.decks)[0])
        return deck

    def get_decks(self) -> List[Dict[str, Any]]:
        decks = [
            {"id": key, "title": deck.title, "count": len(deck.questions)}
            for key, deck in self.decks.items()
        ]
        decks.sort(key=lambda x: x["title"])
        return decks
