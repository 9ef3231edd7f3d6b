from engines.model_router import (
    MODEL_TIERS,
    Complexity,
    complexity_for,
    determine_model_tier,
    select_model,
)


def test_heavy_tier_triggers():
    assert determine_model_tier(Complexity(afb_level="III", question_count=5)) == "heavy"
    assert determine_model_tier(Complexity(has_proof=True, question_count=5)) == "heavy"
    assert determine_model_tier(Complexity(has_geogebra=True, question_count=5)) == "heavy"
    assert determine_model_tier(Complexity(question_count=16)) == "heavy"


def test_light_tier_triggers():
    assert determine_model_tier(Complexity(afb_level="I", question_count=10)) == "light"
    assert determine_model_tier(Complexity(question_count=3)) == "light"
    assert determine_model_tier(Complexity(is_numeric_only=True, question_count=5)) == "light"


def test_standard_tier():
    assert determine_model_tier(Complexity(afb_level="II", question_count=10)) == "standard"


def test_preferred_model_wins():
    assert select_model("claude", Complexity(afb_level="III"), "claude-custom") == "claude-custom"


def test_select_model_per_provider():
    light = Complexity(afb_level="I", question_count=5)

    assert select_model("openai", light) == MODEL_TIERS["openai"]["light"]
    assert select_model("gemini", Complexity(question_count=20)) == MODEL_TIERS["gemini"]["heavy"]


def test_complexity_from_topics():
    topics = [
        {"leitidee": "Funktionaler Zusammenhang", "thema": "Funktionen untersuchen", "unterthema": "Extrempunkte"},
    ]

    complexity = complexity_for(topics, afb_level="I", question_count=4)

    assert complexity.has_geogebra
    assert not complexity.is_numeric_only
    assert determine_model_tier(complexity) == "heavy"


def test_numeric_only_topics():
    topics = [{"thema": "Rechnen mit Brüchen"}, {"thema": "Arithmetik"}]

    assert complexity_for(topics, question_count=5).is_numeric_only
