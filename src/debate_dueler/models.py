from datetime import datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ScoringMode = Literal["trivia", "conformist", "contrarian"]
QuestionType = Literal["multiple-choice", "sequence"]
GameState = Literal["waiting", "playing", "finished"]
Answer = Union[str, List[str]]


class CamelModel(BaseModel):
    """Snake-case in Python, camelCase on the wire and in Redis."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# --- Models ---
class Card(CamelModel):
    id: str
    text: str
    is_correct: Optional[bool] = None
    sequence_order: Optional[int] = None


class Question(CamelModel):
    id: str = ""
    prompt: str
    cards: List[Card]
    time_limit: int = 20
    question_type: QuestionType = "multiple-choice"
    author_username: Optional[str] = None

    @property
    def card_ids(self) -> List[str]:
        return [card.id for card in self.cards]

    def get_card(self, card_id: str) -> Optional[Card]:
        return next((card for card in self.cards if card.id == card_id), None)


class QuestionStats(CamelModel):
    question_id: str
    card_stats: Dict[str, int] = Field(default_factory=dict)
    position_stats: Optional[Dict[str, Dict[int, int]]] = None
    total_responses: int = 0


class PlayerAnswer(CamelModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    answer: Answer
    time_remaining: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)


class PlayerSession(CamelModel):
    user_id: str
    username: str
    scoring_mode: ScoringMode
    question_ids: List[str] = Field(default_factory=list)
    answers: List[PlayerAnswer] = Field(default_factory=list)
    total_score: int = 0
    current_question_index: int = 0
    game_state: GameState = "waiting"
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None


class LeaderboardEntry(CamelModel):
    user_id: str
    username: str
    score: int
    scoring_mode: ScoringMode
    completed_at: datetime = Field(default_factory=datetime.now)


class Deck(CamelModel):
    id: str
    title: str
    description: str = ""
    theme: str = "custom"
    flair_text: Optional[str] = None
    questions: List[Question] = Field(default_factory=list)
    question_stats: Optional[List[QuestionStats]] = None
    created_by: str = "Community"
    creator_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


# --- Request payloads ---
class StartGameRequest(CamelModel):
    scoring_mode: ScoringMode


class SubmitAnswerRequest(CamelModel):
    question_id: str
    answer: Answer
    time_remaining: int = 0


class CompletionSessionData(CamelModel):
    scoring_mode: ScoringMode
    username: Optional[str] = None


class CompleteGameRequest(CamelModel):
    answers: List[PlayerAnswer]
    total_score: int = 0
    session_data: CompletionSessionData


class QuestionPayload(CamelModel):
    question: Question


class DeleteQuestionRequest(CamelModel):
    question_id: str


class CreateDeckRequest(CamelModel):
    deck: Deck
