"""Answer evaluation and XP scoring for generated practice questions."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from engines.math_equivalence import check_equivalence, detect_misconceptions, unique_misconceptions
from errors import ValidationError
from schemas import (
    EvaluationResult,
    MisconceptionInfo,
    QuestionRecord,
    StepResult,
    Submission,
    XpBreakdown,
    stringify_number,
)

logger = logging.getLogger(__name__)

BASE_XP: Dict[int, int] = {1: 10, 2: 15, 3: 20, 4: 30, 5: 50}
DEFAULT_BASE_XP = 20
HINT_MULTIPLIERS: Dict[int, float] = {0: 1.0, 1: 0.85, 2: 0.65, 3: 0.40}
SPEED_BONUS_RATE = 0.2
DEFAULT_STEP_TOLERANCE = 0.01
SECONDS_PER_DIFFICULTY = 60
DEFAULT_DIFFICULTY = 5

SKIPPED_FEEDBACK = "Frage übersprungen"
GRADED_TYPES = frozenset({"multiple-choice", "step-by-step", "free-form", "numeric"})
STREAK_FREEZE_MIN = 5
STREAK_FROZEN_NOTICE = "\n\n❄️ Dein Streak wurde durch ein Streak-Freeze geschützt!"


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up, like the browser client."""
    return int(math.floor(value + 0.5))


def base_xp_for(difficulty: Optional[int]) -> int:
    return BASE_XP.get(difficulty, DEFAULT_BASE_XP) if difficulty is not None else DEFAULT_BASE_XP


def hint_multiplier(hints_used: int) -> float:
    return HINT_MULTIPLIERS[min(max(int(hints_used), 0), 3)]


def earns_speed_bonus(time_spent: Optional[float], difficulty: Optional[int]) -> bool:
    if time_spent is None:
        return False
    expected_seconds = (difficulty or DEFAULT_DIFFICULTY) * SECONDS_PER_DIFFICULTY
    return time_spent < 0.5 * expected_seconds


def _with_explanation(text: str, explanation: Optional[str]) -> str:
    return f"{text} {explanation}".strip() if explanation else text


def _misconception_lines(items: Sequence[Mapping[str, str]]) -> str:
    lines = "\n".join(f"• {item['name']}: {item['hint']}" for item in items)
    return f"Mögliche Fehlerquellen:\n{lines}"


@dataclass
class _Verdict:
    is_correct: bool
    feedback: str
    correct_answer: Any = None
    step_results: List[StepResult] = field(default_factory=list)
    misconceptions: List[Mapping[str, str]] = field(default_factory=list)
    equivalence_method: Optional[str] = None


class AnswerEvaluator:
    """Grades a submission against a question record and computes XP.

    ``evaluate`` is pure: the same question and submission always produce
    the same result, and nothing outside the call is read or modified.
    """

    def __init__(self, default_tolerance: float = DEFAULT_STEP_TOLERANCE) -> None:
        self.default_tolerance = default_tolerance

    def evaluate(
        self,
        question: Union[QuestionRecord, Mapping[str, Any]],
        submission: Union[Submission, Mapping[str, Any]],
    ) -> EvaluationResult:
        record = question if isinstance(question, QuestionRecord) else QuestionRecord.model_validate(question)
        answer = submission if isinstance(submission, Submission) else Submission.model_validate(submission)

        base = base_xp_for(record.difficulty)

        if answer.skipped:
            correct_answer = None
            if record.type in GRADED_TYPES:
                correct_answer = self._grade(record, answer).correct_answer
            return EvaluationResult(
                is_correct=False,
                feedback=SKIPPED_FEEDBACK,
                correct_answer=correct_answer,
                xp_earned=0,
                xp_breakdown=XpBreakdown(base=base, hint_penalty=-base, total=0),
            )

        verdict = self._grade(record, answer)
        feedback = verdict.feedback
        streak_frozen = False
        if not verdict.is_correct:
            xp_breakdown = XpBreakdown(base=base, total=0)
            xp_earned = 0
            if answer.streak_freeze_available and answer.correct_streak >= STREAK_FREEZE_MIN:
                streak_frozen = True
                feedback += STREAK_FROZEN_NOTICE
        else:
            xp_earned, xp_breakdown = self._score(base, record, answer)

        return EvaluationResult(
            is_correct=verdict.is_correct,
            feedback=feedback,
            correct_answer=verdict.correct_answer,
            xp_earned=xp_earned,
            xp_breakdown=xp_breakdown,
            step_results=verdict.step_results,
            misconceptions=[MisconceptionInfo.model_validate(m) for m in verdict.misconceptions],
            equivalence_method=verdict.equivalence_method,
            streak_frozen=streak_frozen,
        )

    # ------------------------------------------------------------------
    # scoring

    @staticmethod
    def _score(base: int, record: QuestionRecord, answer: Submission) -> Tuple[int, XpBreakdown]:
        multiplier = hint_multiplier(answer.hints_used)
        time_bonus = base * SPEED_BONUS_RATE if earns_speed_bonus(answer.time_spent, record.difficulty) else 0.0
        total = round_half_up(base * multiplier + time_bonus)
        breakdown = XpBreakdown(
            base=base,
            hint_penalty=-round_half_up(base * (1 - multiplier)),
            time_penalty=0,
            bonuses=round_half_up(time_bonus),
            total=total,
        )
        return total, breakdown

    # ------------------------------------------------------------------
    # grading by question type

    def _grade(self, record: QuestionRecord, answer: Submission) -> _Verdict:
        if record.type == "multiple-choice":
            return self._grade_multiple_choice(record, answer.user_answer)
        if record.type == "step-by-step":
            return self._grade_steps(record, answer.user_answer)
        if record.type in {"free-form", "numeric"}:
            return self._grade_single(record, answer.user_answer)
        raise ValidationError(f"Unsupported question type: {record.type}", fields=["questionData.type"])

    @staticmethod
    def _grade_multiple_choice(record: QuestionRecord, user_answer: Any) -> _Verdict:
        correct = next((option for option in record.options if option.is_correct), None)
        if correct is None:
            logger.warning("Multiple-choice question %s has no option marked correct", record.id)
        correct_id = correct.id if correct else None
        user_answer = stringify_number(user_answer)
        is_correct = correct_id is not None and user_answer == correct_id
        if is_correct:
            feedback = _with_explanation("Richtig!", record.explanation)
        else:
            chosen = next((option for option in record.options if option.id == user_answer), None)
            chosen_text = chosen.text if chosen else "keine Antwort"
            text = f'Leider falsch. Du hast "{chosen_text}" gewählt.'
            if correct_id is not None:
                text += f" Richtig wäre {correct_id}."
            feedback = _with_explanation(text, record.explanation)
        return _Verdict(is_correct, feedback, correct_answer=correct_id)

    def _grade_steps(self, record: QuestionRecord, user_answer: Any) -> _Verdict:
        answers: Sequence[Any]
        if isinstance(user_answer, (list, tuple)):
            answers = user_answer
        elif isinstance(user_answer, Mapping):
            answers = [user_answer.get(str(i)) for i in range(len(record.steps))]
        else:
            answers = []

        results: List[StepResult] = []
        for index, step in enumerate(record.steps):
            actual = answers[index] if index < len(answers) else None
            tolerance = step.tolerance if step.tolerance is not None else self.default_tolerance
            outcome = check_equivalence(actual, step.expected_answer, tolerance)
            misconceptions = [] if outcome.is_equivalent else detect_misconceptions(actual, step.expected_answer)
            results.append(
                StepResult(
                    step_number=index + 1,
                    correct=outcome.is_equivalent,
                    expected=step.expected_answer,
                    actual=actual,
                    equivalence_method=outcome.method,
                    is_close=outcome.is_close,
                    misconceptions=[MisconceptionInfo.model_validate(m) for m in misconceptions],
                )
            )

        expected_answers = [step.expected_answer for step in record.steps]
        is_correct = bool(results) and all(result.correct for result in results)
        if is_correct:
            return _Verdict(
                True,
                _with_explanation("Alle Schritte korrekt!", record.explanation),
                correct_answer=expected_answers,
                step_results=results,
            )

        failed = [result for result in results if not result.correct]
        collected = unique_misconceptions(
            [m.model_dump() for result in failed for m in result.misconceptions]
        )
        parts = [
            "Nicht alle Schritte waren korrekt. Fehler in Schritt(en): "
            + ", ".join(str(result.step_number) for result in failed)
            + "."
        ]
        if collected:
            parts.append(_misconception_lines(collected))
        close = [str(result.step_number) for result in failed if result.is_close]
        if close:
            parts.append(f"Bei Schritt {', '.join(close)} warst du nahe dran!")
        if record.explanation:
            parts.append(record.explanation)
        return _Verdict(
            False,
            "\n\n".join(parts),
            correct_answer=expected_answers,
            step_results=results,
            misconceptions=collected,
        )

    def _grade_single(self, record: QuestionRecord, user_answer: Any) -> _Verdict:
        expected = record.correct_answer if record.correct_answer is not None else record.expected_answer
        tolerance = record.tolerance if record.tolerance is not None else self.default_tolerance
        outcome = check_equivalence(user_answer, expected, tolerance)
        if outcome.is_equivalent:
            opening = "Richtig!"
            if outcome.method == "algebraic":
                opening = "Richtig! Deine Antwort ist algebraisch äquivalent."
            return _Verdict(
                True,
                _with_explanation(opening, record.explanation),
                correct_answer=expected,
                equivalence_method=outcome.method,
            )

        misconceptions = detect_misconceptions(user_answer, expected)
        parts = [f"Leider falsch. Die richtige Antwort ist {expected}."]
        if outcome.is_close:
            parts[0] += " Du warst sehr nahe dran!"
        if misconceptions:
            parts.append(_misconception_lines(misconceptions))
        if record.explanation:
            parts.append(record.explanation)
        return _Verdict(
            False,
            "\n\n".join(parts),
            correct_answer=expected,
            misconceptions=misconceptions,
            equivalence_method=outcome.method,
        )


__all__ = [
    "AnswerEvaluator",
    "BASE_XP",
    "DEFAULT_BASE_XP",
    "GRADED_TYPES",
    "HINT_MULTIPLIERS",
    "SKIPPED_FEEDBACK",
    "base_xp_for",
    "earns_speed_bonus",
    "hint_multiplier",
    "round_half_up",
]
