import json

import pytest

import curriculum

LEITIDEE = "3.4.1 Leitidee Zahl – Variable – Operation"
THEMA = "weitere Ableitungsregeln anwenden"
UNTERTHEMA = "die Produkt- und Kettenregel zum Ableiten von Funktionen verwenden"


@pytest.fixture
def leistungsfach(clean_llm_env):
    return curriculum.course("Leistungsfach")


def test_bundled_course_types(clean_llm_env):
    assert curriculum.course_types() == ["Leistungsfach", "Basisfach"]


def test_unknown_course_type(clean_llm_env):
    assert curriculum.course("Grundkurs") is None


def test_match_topics_requires_verbatim_path(leistungsfach):
    topics = [
        {"leitidee": LEITIDEE, "thema": THEMA, "unterthema": UNTERTHEMA, "confidence": 0.9},
        {"leitidee": LEITIDEE, "thema": THEMA, "unterthema": "Kettenregel"},
        {"leitidee": "Leitidee Zahl", "thema": THEMA, "unterthema": UNTERTHEMA},
    ]

    matched = curriculum.match_topics(leistungsfach, topics)

    assert matched == [topics[0]]


def test_render_keeps_umlauts(leistungsfach):
    text = curriculum.render(leistungsfach)

    assert "lösen" in text
    assert json.loads(text) == leistungsfach


def test_curriculum_path_override(tmp_path, monkeypatch):
    path = tmp_path / "mini.json"
    path.write_text(json.dumps({"Klassen_11_12": {"Basisfach": {}}}), encoding="utf-8")
    monkeypatch.setenv("CURRICULUM_PATH", str(path))

    assert curriculum.curriculum_path() == path
    assert curriculum.course_types(curriculum.load_curriculum(path)) == ["Basisfach"]


def test_rejects_file_without_grade_band(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text(json.dumps({"Klasse_5": {}}), encoding="utf-8")

    with pytest.raises(RuntimeError):
        curriculum.load_curriculum(path)
