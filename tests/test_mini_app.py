import json
import logging

import pytest

from engines.mini_app import document_problem, parse_mini_app, suspicious_patterns
from errors import ResponseParseError

HTML = "<!DOCTYPE html><html><head><title>t</title></head><body><canvas></canvas></body></html>"


def test_parse_json_reply():
    raw = "```json\n" + json.dumps({"title": "Sinus", "description": "Schieberegler", "html": HTML}) + "\n```"

    output = parse_mini_app(raw)

    assert output.title == "Sinus"
    assert output.html == HTML


def test_blank_title_gets_default():
    output = parse_mini_app(json.dumps({"title": "  ", "html": HTML}))

    assert output.title == "Generierte Simulation"
    assert output.description == ""


def test_raw_html_reply_is_accepted():
    output = parse_mini_app("Hier ist die App:\n" + HTML + "\nViel Spaß!")

    assert output.html == HTML
    assert output.title == "Generierte Simulation"


def test_incomplete_document_is_rejected():
    with pytest.raises(ResponseParseError) as excinfo:
        parse_mini_app(json.dumps({"title": "x", "html": "<div>kein Dokument</div>"}))

    assert excinfo.value.message == "Generated code is missing the HTML doctype"


def test_unparseable_reply_is_rejected():
    with pytest.raises(ResponseParseError):
        parse_mini_app("Tut mir leid, das kann ich nicht.")


def test_document_problem():
    assert document_problem(HTML) is None
    assert document_problem("<!DOCTYPE html><body>") == "Generated HTML document is incomplete"


def test_suspicious_patterns_only_warn(caplog):
    html = HTML.replace("<canvas></canvas>", "<script>fetch('/x')</script>")

    with caplog.at_level(logging.WARNING, logger="engines.mini_app"):
        output = parse_mini_app(json.dumps({"html": html}))

    assert output.html == html
    assert suspicious_patterns(html)
    assert any("suspicious" in record.getMessage() for record in caplog.records)
