import logging
from dataclasses import dataclass
from typing import List, Optional

from .decks import find_question
from .errors import NotFoundError, ValidationError
from .leaderboard import LeaderboardManager
from .models import (
    Answer,
    Deck,
    LeaderboardEntry,
    PlayerAnswer,
    PlayerSession,
    Question,
    QuestionStats,
)
from .redis_session import receipt_key
from .scoring import calculate_score
from .sessions import SessionLifecycle
from .stats import StatsStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessedAnswer:
    score: int
    stats: QuestionStats
    session: PlayerSession
    is_game_complete: bool
    next_question_index: Optional[int]
    leaderboard_updated: bool


@dataclass(frozen=True)
class CompletedGame:
    final_score: int
    session: PlayerSession
    leaderboard_updated: bool


def validate_answer(question: Question, answer: Answer) -> None:
    """Reject answers whose shape or cards don't fit the question."""
    card_ids = set(question.card_ids)
    if question.question_type == "sequence":
        if isinstance(answer, str):
            raise ValidationError(f"Question {question.id} expects an ordered list of cards")
        if not answer:
            raise ValidationError("Sequence answer must not be empty")
        if len(set(answer)) != len(answer):
            raise ValidationError("Sequence answer repeats a card")
        unknown = [card_id for card_id in answer if card_id not in card_ids]
        if unknown:
            raise ValidationError(f"Unknown cards for question {question.id}: {unknown}")
    else:
        if not isinstance(answer, str):
            raise ValidationError(f"Question {question.id} expects a single card")
        if answer not in card_ids:
            raise ValidationError(f"Unknown card for question {question.id}: {answer}")


class AnswerProcessor:
    """Turns submitted answers into stats updates and scores.

    Every answer is recorded before it is scored, so a player's popularity
    score counts their own vote. The re-read after the write is not atomic
    with other players' writes; near-simultaneous voters may or may not
    see each other.
    """

    def __init__(
        self,
        stats_store: StatsStore,
        sessions: SessionLifecycle,
        leaderboard: LeaderboardManager,
    ):
        self.stats_store = stats_store
        self.sessions = sessions
        self.leaderboard = leaderboard

    def record_and_score(
        self,
        post_id: str,
        user_id: str,
        scoring_mode: str,
        question: Question,
        answer: Answer,
        time_remaining: int,
    ):
        self.stats_store.record_answer(
            post_id, question.id, answer, receipt=receipt_key(post_id, question.id, user_id)
        )
        stats = self.stats_store.get_stats(post_id, question.id)
        score = calculate_score(scoring_mode, question, answer, stats, time_remaining)
        return score, stats

    def process_answer(
        self,
        post_id: str,
        session: PlayerSession,
        question: Question,
        answer: Answer,
        time_remaining: int,
    ) -> ProcessedAnswer:
        if session.game_state != "playing":
            raise ValidationError(f"Session is {session.game_state}, not accepting answers")
        expected = SessionLifecycle.current_question_id(session)
        if question.id != expected:
            raise ValidationError(
                f"Question {question.id} is not the current question ({expected})"
            )
        validate_answer(question, answer)

        score, stats = self.record_and_score(
            post_id, session.user_id, session.scoring_mode, question, answer, time_remaining
        )
        record = PlayerAnswer(
            question_id=question.id, answer=answer, time_remaining=time_remaining
        )
        updated = SessionLifecycle.advance(session, record, score)

        # Leaderboard write precedes the session save; retries hit ZADD NX.
        is_complete = updated.game_state == "finished"
        leaderboard_updated = False
        if is_complete:
            leaderboard_updated = self._record_finish(post_id, updated)
        self.sessions.save(post_id, updated)

        logger.info(
            f"Answer {question.id} by {session.user_id} on {post_id}: {score} points "
            f"[Mode: {session.scoring_mode}, Total: {updated.total_score}]"
        )
        return ProcessedAnswer(
            score=score,
            stats=stats,
            session=updated,
            is_game_complete=is_complete,
            next_question_index=None if is_complete else updated.current_question_index,
            leaderboard_updated=leaderboard_updated,
        )

    def complete_game(
        self,
        post_id: str,
        deck: Deck,
        session: PlayerSession,
        answers: List[PlayerAnswer],
        client_total: Optional[int] = None,
    ) -> CompletedGame:
        """Score a whole run at once. The client's total is never trusted."""
        if session.game_state == "finished":
            logger.info(f"Session for {session.user_id} on {post_id} already finished")
            return CompletedGame(
                final_score=session.total_score, session=session, leaderboard_updated=False
            )
        if not answers:
            raise ValidationError("Valid answers required")
        question_ids = [record.question_id for record in answers]
        if len(set(question_ids)) != len(question_ids):
            raise ValidationError("Each question may be answered only once")
        if session.question_ids:
            undealt = [qid for qid in question_ids if qid not in session.question_ids]
            if undealt:
                raise ValidationError(f"Questions not dealt in this session: {undealt}")

        questions = []
        for record in answers:
            try:
                question = find_question(deck, record.question_id)
            except NotFoundError:
                raise ValidationError(f"Unknown question {record.question_id}") from None
            validate_answer(question, record.answer)
            questions.append(question)

        final_score = 0
        for question, record in zip(questions, answers):
            score, _ = self.record_and_score(
                post_id,
                session.user_id,
                session.scoring_mode,
                question,
                record.answer,
                record.time_remaining,
            )
            final_score += score

        if client_total is not None and client_total != final_score:
            logger.warning(
                f"Client total {client_total} for {session.user_id} differs from {final_score}"
            )

        finished = SessionLifecycle.finish(session, answers=answers, total_score=final_score)
        leaderboard_updated = self._record_finish(post_id, finished)
        self.sessions.save(post_id, finished)
        return CompletedGame(
            final_score=final_score, session=finished, leaderboard_updated=leaderboard_updated
        )

    def _record_finish(self, post_id: str, session: PlayerSession) -> bool:
        return self.leaderboard.record_finish(
            post_id,
            LeaderboardEntry(
                user_id=session.user_id,
                username=session.username,
                score=session.total_score,
                scoring_mode=session.scoring_mode,
                completed_at=session.finished_at,
            ),
        )
