import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import Literal, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from .answers import AnswerProcessor
from .config import settings
from .dealing import DealerFactory
from .decks import DeckRepository, attach_stats, find_question
from .errors import DuelerError, NotFoundError, ValidationError
from .leaderboard import LeaderboardManager
from .library import DeckLibrary
from .models import (
    CompleteGameRequest,
    CreateDeckRequest,
    DeleteQuestionRequest,
    PlayerSession,
    QuestionPayload,
    StartGameRequest,
    SubmitAnswerRequest,
)
from .redis_session import clear_tracked_keys, get_redis
from .sessions import SessionLifecycle
from .stats import RedisStatsStore

# --- Logging Setup ---
logger = logging.getLogger(__name__)
package_logger = logging.getLogger("debate_dueler")
package_logger.setLevel(logging.INFO)

if not package_logger.handlers:
    if settings.LOG_TO_FILE:
        if not os.path.exists(settings.LOG_DIR):
            os.makedirs(settings.LOG_DIR)
        log_path = os.path.join(settings.LOG_DIR, settings.LOG_FILE)
        handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    package_logger.addHandler(handler)


# --- Lifecycle ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    deck_library.load_all()
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

deck_library = DeckLibrary(settings.DECK_DIR)
dealer = DealerFactory.create(settings.DEAL_MODE)


@app.exception_handler(DuelerError)
async def dueler_error_handler(request: Request, exc: DuelerError):
    if exc.status_code >= 500:
        logger.error(f"{request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.url.path} rejected: {exc.message}")
    return JSONResponse({"status": "error", "message": exc.message}, status_code=exc.status_code)


# --- Dependencies ---
def get_post_id(x_post_id: Optional[str] = Header(None)) -> str:
    if not x_post_id:
        raise ValidationError("Post ID is required")
    return x_post_id


def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id or None


def require_user_id(user_id: Optional[str] = Depends(get_user_id)) -> str:
    if not user_id:
        raise ValidationError("Must be logged in to play")
    return user_id


def get_username(x_username: Optional[str] = Header(None)) -> str:
    return x_username or "Anonymous"


def get_library() -> DeckLibrary:
    return deck_library


def get_stats_store(client=Depends(get_redis)) -> RedisStatsStore:
    return RedisStatsStore(client)


def get_sessions(client=Depends(get_redis)) -> SessionLifecycle:
    return SessionLifecycle(client)


def get_leaderboard(client=Depends(get_redis)) -> LeaderboardManager:
    return LeaderboardManager(client)


def get_deck_repository(
    client=Depends(get_redis), stats_store: RedisStatsStore = Depends(get_stats_store)
) -> DeckRepository:
    return DeckRepository(client, stats_store)


def get_processor(
    stats_store: RedisStatsStore = Depends(get_stats_store),
    sessions: SessionLifecycle = Depends(get_sessions),
    leaderboard: LeaderboardManager = Depends(get_leaderboard),
) -> AnswerProcessor:
    return AnswerProcessor(stats_store, sessions, leaderboard)


# --- Routes ---
@app.get("/api/decks")
def list_decks(library: DeckLibrary = Depends(get_library)):
    return library.get_decks()


@app.get("/api/init")
@app.get("/api/post-data")
def init_game(
    post_id: str = Depends(get_post_id),
    user_id: Optional[str] = Depends(get_user_id),
    username: str = Depends(get_username),
    library: DeckLibrary = Depends(get_library),
    decks: DeckRepository = Depends(get_deck_repository),
    sessions: SessionLifecycle = Depends(get_sessions),
    leaderboard: LeaderboardManager = Depends(get_leaderboard),
    stats_store: RedisStatsStore = Depends(get_stats_store),
):
    deck = decks.get_or_create(post_id, library)

    session = sessions.get(post_id, user_id) if user_id else None
    if session:
        questions = DeckRepository.questions_in_order(deck, session.question_ids)
    else:
        questions = dealer.deal(deck.questions, settings.SESSION_SIZE)
    dealt = attach_stats(deck.model_copy(update={"questions": questions}), stats_store, post_id)

    return {
        "postId": post_id,
        "deck": dealt,
        "playerSession": session,
        "playerRank": leaderboard.get_rank(post_id, user_id) if user_id else None,
        "userId": user_id or "anonymous",
        "username": username,
    }


@app.post("/api/start")
def start_game(
    body: StartGameRequest,
    post_id: str = Depends(get_post_id),
    user_id: str = Depends(require_user_id),
    username: str = Depends(get_username),
    library: DeckLibrary = Depends(get_library),
    decks: DeckRepository = Depends(get_deck_repository),
    sessions: SessionLifecycle = Depends(get_sessions),
):
    deck = decks.get_or_create(post_id, library)
    dealt = dealer.deal(deck.questions, settings.SESSION_SIZE)
    session = sessions.start(post_id, user_id, username, body.scoring_mode, dealt)
    return {
        "status": "success",
        "session": session,
        "questions": DeckRepository.questions_in_order(deck, session.question_ids),
    }


@app.post("/api/submit-answer")
def submit_answer(
    body: SubmitAnswerRequest,
    post_id: str = Depends(get_post_id),
    user_id: str = Depends(require_user_id),
    decks: DeckRepository = Depends(get_deck_repository),
    sessions: SessionLifecycle = Depends(get_sessions),
    processor: AnswerProcessor = Depends(get_processor),
):
    session = sessions.get(post_id, user_id)
    if session is None:
        raise NotFoundError("No game in progress")
    question = find_question(decks.require(post_id), body.question_id)

    result = processor.process_answer(
        post_id, session, question, body.answer, body.time_remaining
    )
    return {
        "status": "success",
        "score": result.score,
        "questionStats": result.stats,
        "isGameComplete": result.is_game_complete,
        "nextQuestionIndex": result.next_question_index,
        "leaderboardUpdated": result.leaderboard_updated,
    }


@app.post("/api/complete-game")
def complete_game(
    body: CompleteGameRequest,
    post_id: str = Depends(get_post_id),
    user_id: str = Depends(require_user_id),
    username: str = Depends(get_username),
    decks: DeckRepository = Depends(get_deck_repository),
    sessions: SessionLifecycle = Depends(get_sessions),
    processor: AnswerProcessor = Depends(get_processor),
):
    deck = decks.require(post_id)
    session = sessions.get(post_id, user_id)
    if session is None:
        session = PlayerSession(
            user_id=user_id,
            username=body.session_data.username or username,
            scoring_mode=body.session_data.scoring_mode,
            question_ids=[a.question_id for a in body.answers],
            game_state="playing",
        )

    result = processor.complete_game(post_id, deck, session, body.answers, body.total_score)
    return {
        "status": "success",
        "finalScore": result.final_score,
        "session": result.session,
        "leaderboardUpdated": result.leaderboard_updated,
    }


@app.get("/api/leaderboard")
def get_leaderboard_data(
    board_type: Literal["top", "near"] = Query("top", alias="type"),
    post_id: str = Depends(get_post_id),
    user_id: Optional[str] = Depends(get_user_id),
    sessions: SessionLifecycle = Depends(get_sessions),
    leaderboard: LeaderboardManager = Depends(get_leaderboard),
):
    if board_type == "near":
        entries = leaderboard.get_near(post_id, user_id)
    else:
        entries = leaderboard.get_top(post_id)

    player_rank = None
    player_score = None
    if user_id:
        player_rank = leaderboard.get_rank(post_id, user_id)
        session = sessions.get(post_id, user_id)
        if session:
            player_score = session.total_score

    return {"leaderboard": entries, "playerRank": player_rank, "playerScore": player_score}


@app.post("/api/create-deck")
def create_deck(
    body: CreateDeckRequest,
    post_id: str = Depends(get_post_id),
    user_id: Optional[str] = Depends(get_user_id),
    decks: DeckRepository = Depends(get_deck_repository),
):
    deck = body.deck
    if user_id and not deck.creator_id:
        deck = deck.model_copy(update={"creator_id": user_id})
    decks.create(post_id, deck)
    return {"status": "success", "deckId": deck.id}


@app.post("/api/add-question")
def add_question(
    body: QuestionPayload,
    post_id: str = Depends(get_post_id),
    user_id: str = Depends(require_user_id),
    username: str = Depends(get_username),
    decks: DeckRepository = Depends(get_deck_repository),
):
    question = decks.add_question(post_id, body.question, user_id, username)
    return {"status": "success", "questionId": question.id}


@app.post("/api/edit-question")
def edit_question(
    body: QuestionPayload,
    post_id: str = Depends(get_post_id),
    decks: DeckRepository = Depends(get_deck_repository),
):
    decks.edit_question(post_id, body.question)
    return {"status": "success"}


@app.post("/api/delete-question")
def delete_question(
    body: DeleteQuestionRequest,
    post_id: str = Depends(get_post_id),
    decks: DeckRepository = Depends(get_deck_repository),
):
    decks.delete_question(post_id, body.question_id)
    return {"status": "success"}


@app.post("/internal/menu/clear-redis")
def clear_redis(client=Depends(get_redis)):
    cleared = clear_tracked_keys(client)
    return {"status": "success", "cleared": cleared}


if __name__ == "__main__":
    uvicorn.run("debate_dueler.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
