from .models import (
    Difficulty,
    InvalidIndexError,
    Level,
    Position,
    ProgressFormatError,
    QuestError,
    QuestProgress,
    Question,
    Rewards,
    Round,
    SubRound,
    build_initial_progress,
    check_invariants,
)
from .scoring import SessionScore, evaluate_session, result_message, star_tier
from .manager import (
    CompleteSubRound,
    Rejection,
    RejectionReason,
    Reset,
    RewardGrant,
    Transition,
    complete_sub_round,
    current_frontier,
    dispatch,
)
from .question_bank import QuestionBank, QuestionBankError, load_default_bank
from .scheduler import AsyncioScheduler, ManualScheduler
from .session import (
    SessionController,
    SessionPhase,
    SessionResult,
    SessionSettings,
    reading_delay,
)
from .store import (
    JsonFileProgressPersistence,
    PersistenceError,
    ProgressStore,
)

__all__ = [
    "Difficulty",
    "InvalidIndexError",
    "Level",
    "Position",
    "ProgressFormatError",
    "QuestError",
    "QuestProgress",
    "Question",
    "Rewards",
    "Round",
    "SubRound",
    "build_initial_progress",
    "check_invariants",
    "SessionScore",
    "evaluate_session",
    "result_message",
    "star_tier",
    "CompleteSubRound",
    "Rejection",
    "RejectionReason",
    "Reset",
    "RewardGrant",
    "Transition",
    "complete_sub_round",
    "current_frontier",
    "dispatch",
    "QuestionBank",
    "QuestionBankError",
    "load_default_bank",
    "AsyncioScheduler",
    "ManualScheduler",
    "SessionController",
    "SessionPhase",
    "SessionResult",
    "SessionSettings",
    "reading_delay",
    "JsonFileProgressPersistence",
    "PersistenceError",
    "ProgressStore",
]
