import pytest

from engines.evaluator import (
    SKIPPED_FEEDBACK,
    AnswerEvaluator,
    base_xp_for,
    earns_speed_bonus,
    hint_multiplier,
    round_half_up,
)
from errors import ValidationError


def _mc_question(difficulty=3):
    return {
        "id": "q1",
        "type": "multiple-choice",
        "difficulty": difficulty,
        "question": "Was ist die Ableitung von x²?",
        "options": [
            {"id": "A", "text": "x", "isCorrect": False},
            {"id": "B", "text": "2x", "isCorrect": True},
            {"id": "C", "text": "x³/3", "isCorrect": False},
        ],
        "explanation": "Potenzregel: (x^n)' = n·x^(n-1).",
    }


def _step_question(difficulty=4, tolerance=None):
    step = {"stepNumber": 1, "instruction": "Berechne f(2)", "expectedAnswer": "4"}
    if tolerance is not None:
        step["tolerance"] = tolerance
    return {
        "id": "q2",
        "type": "step-by-step",
        "difficulty": difficulty,
        "question": "f(x) = x²",
        "steps": [
            step,
            {"stepNumber": 2, "instruction": "Berechne f'(2)", "expectedAnswer": "4"},
        ],
        "explanation": "f'(x) = 2x.",
    }


@pytest.fixture
def evaluator():
    return AnswerEvaluator()


def test_base_xp_lookup():
    assert [base_xp_for(d) for d in (1, 2, 3, 4, 5)] == [10, 15, 20, 30, 50]
    assert base_xp_for(None) == 20
    assert base_xp_for(9) == 20


def test_hint_multiplier_caps_at_three():
    assert hint_multiplier(0) == 1.0
    assert hint_multiplier(3) == 0.40
    assert hint_multiplier(7) == 0.40


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(2.4) == 2


def test_speed_bonus_threshold_is_strict():
    assert earns_speed_bonus(149, 5)
    assert not earns_speed_bonus(150, 5)
    assert not earns_speed_bonus(None, 5)


def test_correct_with_one_hint_and_no_speed_bonus(evaluator):
    result = evaluator.evaluate(_mc_question(3), {"userAnswer": "B", "hintsUsed": 1, "timeSpent": 120})

    assert result.is_correct
    assert result.xp_earned == 17
    assert result.xp_breakdown.base == 20
    assert result.xp_breakdown.hint_penalty == -3
    assert result.xp_breakdown.bonuses == 0
    assert result.xp_breakdown.time_penalty == 0
    assert result.xp_breakdown.total == 17
    assert result.feedback.startswith("Richtig!")
    assert "Potenzregel" in result.feedback


def test_fast_correct_answer_earns_bonus(evaluator):
    question = {**_mc_question(5)}
    result = evaluator.evaluate(question, {"userAnswer": "B", "hintsUsed": 0, "timeSpent": 100})

    assert result.xp_earned == 60
    assert result.xp_breakdown.bonuses == 10
    assert result.xp_breakdown.hint_penalty == 0


def test_breakdown_reconciles_with_total(evaluator):
    for hints in range(5):
        result = evaluator.evaluate(_mc_question(4), {"userAnswer": "B", "hintsUsed": hints, "timeSpent": 10})
        breakdown = result.xp_breakdown
        reconciled = breakdown.base + breakdown.hint_penalty + breakdown.time_penalty + breakdown.bonuses
        assert abs(reconciled - breakdown.total) <= 1


@pytest.mark.parametrize("difficulty, base", [(1, 10), (3, 20), (5, 50), (None, 20)])
def test_skipped_question_forfeits_base(evaluator, difficulty, base):
    question = _mc_question(difficulty)
    result = evaluator.evaluate(question, {"userAnswer": "B", "skipped": True})

    assert not result.is_correct
    assert result.xp_earned == 0
    assert result.xp_breakdown.hint_penalty == -base
    assert result.feedback == SKIPPED_FEEDBACK


def test_incorrect_choice_names_chosen_text_and_correct_id(evaluator):
    result = evaluator.evaluate(_mc_question(), {"userAnswer": "A", "hintsUsed": 2})

    assert not result.is_correct
    assert result.xp_earned == 0
    assert result.xp_breakdown.hint_penalty == 0
    assert result.xp_breakdown.bonuses == 0
    assert '"x"' in result.feedback
    assert "Richtig wäre B" in result.feedback
    assert result.correct_answer == "B"


def test_all_steps_correct(evaluator):
    result = evaluator.evaluate(_step_question(), {"userAnswer": ["4", "4,0"], "hintsUsed": 0, "timeSpent": 400})

    assert result.is_correct
    assert result.xp_earned == 30
    assert [step.correct for step in result.step_results] == [True, True]
    assert result.correct_answer == ["4", "4"]


def test_step_tolerance_boundary_is_inclusive(evaluator):
    result = evaluator.evaluate(_step_question(tolerance=0.5), {"userAnswer": ["4.5", "4"]})

    assert result.step_results[0].correct
    assert result.is_correct


def test_failed_steps_are_named_one_indexed(evaluator):
    result = evaluator.evaluate(_step_question(), {"userAnswer": ["4", "-4"]})

    assert not result.is_correct
    assert result.xp_earned == 0
    assert "Schritt(en): 2." in result.feedback
    assert "Vorzeichenfehler" in result.feedback
    assert [m.id for m in result.misconceptions][0] == "sign_error"


def test_missing_step_answers_count_as_wrong(evaluator):
    result = evaluator.evaluate(_step_question(), {"userAnswer": ["4"]})

    assert [step.correct for step in result.step_results] == [True, False]


def test_free_form_accepts_algebraic_equivalent(evaluator):
    question = {"type": "free-form", "difficulty": 2, "correctAnswer": "2x+3"}

    result = evaluator.evaluate(question, {"userAnswer": "3 + 2x"})

    assert result.is_correct
    assert result.equivalence_method == "algebraic"
    assert result.xp_earned == 15


def test_unsupported_question_type(evaluator):
    with pytest.raises(ValidationError):
        evaluator.evaluate({"type": "essay"}, {"userAnswer": "..."})


def test_evaluation_is_idempotent(evaluator):
    question = _step_question()
    submission = {"userAnswer": ["4.2", "4"], "hintsUsed": 1, "timeSpent": 30}

    first = evaluator.evaluate(question, submission)
    second = evaluator.evaluate(question, submission)

    assert first == second
    assert first.to_wire() == second.to_wire()


def test_wire_format_is_camel_case(evaluator):
    payload = evaluator.evaluate(_mc_question(), {"userAnswer": "B"}).to_wire()

    assert {"isCorrect", "feedback", "correctAnswer", "xpEarned", "xpBreakdown"} <= set(payload)
    assert set(payload["xpBreakdown"]) == {"base", "hintPenalty", "timePenalty", "bonuses", "total"}


def test_step_answer_without_unit_matches_expected_with_unit(evaluator):
    question = {
        "type": "step-by-step",
        "difficulty": 2,
        "steps": [{"stepNumber": 1, "instruction": "Berechne den Umfang", "expectedAnswer": "12 cm"}],
    }

    result = evaluator.evaluate(question, {"userAnswer": ["12"]})

    assert result.is_correct
    assert result.step_results[0].equivalence_method == "numeric"
    assert result.xp_earned == 15


def test_numeric_option_ids_are_graded(evaluator):
    question = {
        "type": "multiple-choice",
        "difficulty": 1,
        "options": [
            {"id": 1, "text": "a", "isCorrect": True},
            {"id": 2, "text": "b", "isCorrect": False},
        ],
    }

    assert evaluator.evaluate(question, {"userAnswer": 1}).is_correct
    assert evaluator.evaluate(question, {"userAnswer": "1"}).is_correct
    wrong = evaluator.evaluate(question, {"userAnswer": 2})
    assert not wrong.is_correct
    assert '"b"' in wrong.feedback
    assert wrong.correct_answer == "1"


def test_skipped_unknown_type_is_not_graded(evaluator):
    result = evaluator.evaluate({"type": "essay", "difficulty": 2}, {"userAnswer": None, "skipped": True})

    assert result.feedback == SKIPPED_FEEDBACK
    assert result.correct_answer is None
    assert result.xp_breakdown.hint_penalty == -15


def test_streak_freeze_protects_long_streak_without_xp(evaluator):
    submission = {"userAnswer": "A", "correctStreak": 5, "streakFreezeAvailable": True}

    result = evaluator.evaluate(_mc_question(), submission)

    assert not result.is_correct
    assert result.streak_frozen
    assert result.feedback.endswith("Dein Streak wurde durch ein Streak-Freeze geschützt!")
    assert result.xp_earned == 0


@pytest.mark.parametrize(
    "submission",
    [
        {"userAnswer": "A", "correctStreak": 4, "streakFreezeAvailable": True},
        {"userAnswer": "A", "correctStreak": 9},
        {"userAnswer": "B", "correctStreak": 9, "streakFreezeAvailable": True},
    ],
)
def test_streak_freeze_needs_wrong_answer_and_long_streak(evaluator, submission):
    assert not evaluator.evaluate(_mc_question(), submission).streak_frozen
