# app.py - Oberstufe Mathe-Tutor API
# - One POST handler per feature, JSON in/out with a top-level "success" flag
# - Upstream calls are plain requests, no retries, no streaming
# - GET on any endpoint path returns its self-description

import hmac
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import curriculum
import llm_client
from engines.auto_mode import build_prompt_variables, clamp_assessment, describe_for_generation
from engines.drawings import (
    CANVAS_BOUNDS,
    WHITEBOARD_BOUNDS,
    describe_geogebra_objects,
    sanitize_drawings,
    sanitize_geogebra_commands,
)
from engines.evaluator import AnswerEvaluator, round_half_up
from engines.extraction import extract_json, parse_model_output
from engines.mini_app import parse_mini_app
from engines.model_catalog import normalize
from engines.model_router import complexity_for, select_model
from engines.prompt_engine import PromptEngine
from env_validation import get_env_bool
from errors import AuthenticationError, ResponseParseError, TutorError, ValidationError
from schemas import (
    AnalyzeImageBody,
    AuthBody,
    CanvasBody,
    CanvasOutput,
    CustomHintBody,
    EvaluateAnswerBody,
    GenerateAdaptiveQuestionsBody,
    GenerateQuestionsBody,
    GeoGebraBody,
    GeoGebraOutput,
    GetModelsBody,
    ImageAnalysisOutput,
    MiniAppBody,
    QuestionBatchOutput,
    QuestionRecord,
    SelectionBounds,
    SolutionVisualizationBody,
    SolutionVisualizationOutput,
    UpdateAutoModeBody,
    WhiteboardBody,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        # Validate environment variables first
        from env_validation import validate_environment
        validate_environment()

        engine = _prompt_engine()
        logger.info("Loaded %d prompt templates: %s", len(engine.available()), ", ".join(engine.available()))
        curriculum.load_curriculum()
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Oberstufe Mathe-Tutor API", version="1.0.0", lifespan=_lifespan)

_EVALUATOR = AnswerEvaluator()

# Models pinned per feature; callers may override where the request carries a model.
VISION_MODEL = "claude-sonnet-4-20250514"
HINT_MODEL = "claude-sonnet-4-20250514"
AUTO_MODE_MODEL = "claude-sonnet-4-5-20250929"
ADAPTIVE_DEFAULT_MODELS = {
    "claude": "claude-sonnet-4-5-20250929",
    "gemini": "gemini-3-flash-preview",
}

_DEMO_USERNAME = b"admin"
_DEMO_PASSWORD = b"admin"
_DEMO_PROFILE = {"username": "admin", "level": 7, "xp": 1250, "streak": 12}


@lru_cache(maxsize=1)
def _prompt_engine() -> PromptEngine:
    return PromptEngine()


def _render(name: str, variables: Optional[Mapping[str, Any]] = None) -> str:
    prompt = _prompt_engine().render(name, variables)
    if get_env_bool("LOG_PROMPTS"):
        logger.info("Rendered prompt %s:\n%s", name, prompt)
    return prompt


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _now_ms() -> int:
    return int(time.time() * 1000)


# ---------- Error handling ----------
def _field_name(loc: Sequence[Any]) -> str:
    parts = [str(part) for part in loc if part != "body"]
    return ".".join(parts)


def _validation_error(errors: Sequence[Mapping[str, Any]]) -> ValidationError:
    missing: List[str] = []
    invalid: List[str] = []
    for error in errors:
        kind = error.get("type")
        if kind == "json_invalid":
            return ValidationError("Malformed JSON body")
        name = _field_name(error.get("loc") or ())
        if not name:
            return ValidationError("Missing request body")
        is_empty = kind == "string_too_short" and (error.get("ctx") or {}).get("min_length") == 1
        target = missing if kind == "missing" or is_empty else invalid
        if name not in target:
            target.append(name)
    parts = []
    if missing:
        parts.append(f"Missing required fields: {', '.join(missing)}")
    if invalid:
        parts.append(f"Invalid fields: {', '.join(invalid)}")
    return ValidationError("; ".join(parts) or "Invalid request", fields=missing + invalid)


@app.exception_handler(RequestValidationError)
async def _on_request_validation(request: Request, exc: RequestValidationError):
    error = _validation_error(exc.errors())
    logger.info("Rejected %s %s: %s", request.method, request.url.path, error.message)
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@app.exception_handler(TutorError)
async def _on_tutor_error(request: Request, exc: TutorError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    else:
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.middleware("http")
async def _catch_unhandled(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "error": "Server error"})


# ---------- Endpoint descriptions ----------
ENDPOINTS: Dict[str, Dict[str, Any]] = {
    "/api/auth": {
        "description": "Demo login with a single hardcoded account",
        "requiredFields": ["username", "password"],
    },
    "/api/get-models": {
        "description": "Fetches available Claude models",
        "requiredFields": ["apiKey"],
    },
    "/api/analyze-image": {
        "description": "Analyzes uploaded images of topic lists using Claude Vision",
        "requiredFields": ["apiKey", "image (base64)", "gradeLevel", "courseType"],
    },
    "/api/generate-questions": {
        "description": "Generates practice questions with complexity-based model selection",
        "requiredFields": ["apiKey", "userId", "topics", "userContext"],
        "optionalFields": ["provider", "selectedModel", "afbLevel", "questionCount", "hasProof", "learningPlanItemId"],
    },
    "/api/generate-adaptive-questions": {
        "description": "Generates adaptive questions based on difficulty level",
        "requiredFields": ["apiKey", "topics"],
        "optionalFields": ["provider", "model", "difficultyLevel", "adjustmentReason", "recentPerformance", "questionCount", "userContext"],
    },
    "/api/evaluate-answer": {
        "description": "Evaluates user answer with semantic math comparison and misconception detection",
        "requiredFields": ["questionData", "userAnswer"],
        "optionalFields": ["hintsUsed", "timeSpent", "skipped", "correctStreak", "streakFreezeAvailable"],
    },
    "/api/generate-custom-hint": {
        "description": "Answers a learner's question about a task with a personalised hint",
        "requiredFields": ["apiKey", "questionData", "userQuestion"],
        "optionalFields": ["previousHints"],
    },
    "/api/update-auto-mode": {
        "description": "Re-assesses the AUTO mode learning settings from recent performance",
        "requiredFields": ["apiKey", "performanceData"],
        "optionalFields": ["previousAssessment"],
    },
    "/api/generate-geogebra": {
        "description": "Generates GeoGebra commands from a natural language description",
        "requiredFields": ["apiKey", "prompt"],
        "optionalFields": ["provider", "questionContext", "selectedModel"],
    },
    "/api/generate-solution-visualization": {
        "description": "Breaks a worked solution into visual steps",
        "requiredFields": ["apiKey", "question", "solution"],
        "optionalFields": ["provider", "model"],
    },
    "/api/analyze-whiteboard": {
        "description": "Answers a question about a marked whiteboard region with text and drawings",
        "requiredFields": ["apiKey", "imageData", "question"],
        "optionalFields": ["selectionBounds"],
    },
    "/api/collaborative-canvas": {
        "description": "Collaborative whiteboard tutor with drawings and GeoGebra commands",
        "requiredFields": ["apiKey", "question"],
        "optionalFields": ["provider", "imageData", "geogebraState", "selectionBounds", "context", "chatHistory"],
    },
    "/api/generate-mini-app": {
        "description": "Generates a self-contained interactive HTML simulation",
        "requiredFields": ["apiKey", "prompt"],
        "optionalFields": ["provider", "model", "context"],
    },
}


def _describe(path: str):
    def describe() -> Dict[str, Any]:
        return {"endpoint": path, "method": "POST", **ENDPOINTS[path]}

    describe.__name__ = f"describe_{path.rsplit('/', 1)[-1].replace('-', '_')}"
    return describe


for _path in ENDPOINTS:
    app.add_api_route(_path, _describe(_path), methods=["GET"])


# ---------- Auth ----------
@app.post("/api/auth")
def auth(body: AuthBody):
    valid_user = hmac.compare_digest(body.username.encode("utf-8"), _DEMO_USERNAME)
    valid_password = hmac.compare_digest(body.password.encode("utf-8"), _DEMO_PASSWORD)
    if not (valid_user and valid_password):
        raise AuthenticationError("Ungültiger Benutzername oder Passwort")
    response = JSONResponse(
        content={"success": True, "user": dict(_DEMO_PROFILE), "message": "Login erfolgreich!"}
    )
    response.set_cookie(
        "auth_session", "demo_session", max_age=86400, httponly=True, secure=True, samesite="strict"
    )
    return response


# ---------- Models ----------
@app.post("/api/get-models")
def get_models(body: GetModelsBody):
    models = normalize(llm_client.list_models(body.api_key), "claude")
    return {"success": True, "models": [model.to_wire() for model in models]}


# ---------- Topic extraction ----------
@app.post("/api/analyze-image")
def analyze_image(body: AnalyzeImageBody):
    course = curriculum.course(body.course_type)
    if course is None:
        raise ValidationError("Invalid courseType", fields=["courseType"])

    prompt = _render(
        "image-analysis",
        {
            "GRADE_LEVEL": body.grade_level,
            "COURSE_TYPE": body.course_type,
            "CURRICULUM": curriculum.render(course),
        },
    )
    completion = llm_client.complete(
        "claude",
        body.api_key,
        [llm_client.user_message(llm_client.image_from_data_url(body.image, "image/jpeg"), prompt)],
        model=VISION_MODEL,
        max_tokens=4096,
        purpose="analyze-image",
    )
    output = parse_model_output(completion.text, ImageAnalysisOutput)
    extracted = [topic.to_wire() for topic in output.extracted_topics]
    matched = curriculum.match_topics(course, extracted)
    return {
        "success": True,
        "extractedTopics": matched,
        "matchedFromCurriculum": bool(matched),
        "suggestions": output.suggestions,
        "totalFound": len(extracted),
        "totalMatched": len(matched),
    }


# ---------- Question generation ----------
_AFB_INSTRUCTIONS = {
    "I": "- Fokus auf Reproduktion und einfache Anwendung\n- Keine komplexen Transferaufgaben",
    "II": "- Ausgewogene Mischung aus Anwendung und Reorganisation\n- Moderate Komplexität",
    "III": "- Fokus auf Transfer und komplexe Problemlösung\n- Beweise und Begründungen einbeziehen",
}


def _topic_line(topic: Any) -> str:
    if isinstance(topic, str):
        return f"- {topic}"
    if isinstance(topic, Mapping):
        thema = topic.get("thema") or topic.get("topic") or ""
        unterthema = topic.get("unterthema") or topic.get("subtopic") or ""
        return f"- {topic.get('leitidee') or ''} > {thema} > {unterthema}"
    return f"- {topic}"


def _warn_on_hint_count(questions: Sequence[Mapping[str, Any]]) -> None:
    for index, question in enumerate(questions):
        hints = question.get("hints") if isinstance(question, Mapping) else None
        if not isinstance(hints, list) or len(hints) != 3:
            logger.warning(
                "Generated question %s carries %s hints instead of 3",
                question.get("id", index) if isinstance(question, Mapping) else index,
                len(hints) if isinstance(hints, list) else 0,
            )


@app.post("/api/generate-questions")
def generate_questions(body: GenerateQuestionsBody):
    topics = [topic.to_wire() for topic in body.topics]
    context = body.user_context
    complexity = complexity_for(
        topics,
        afb_level=body.afb_level,
        question_count=body.question_count,
        has_proof=body.has_proof,
    )
    model = select_model(body.provider, complexity, body.selected_model)

    struggling = context.recent_performance.struggling_topics if context.recent_performance else []
    assessment = context.auto_mode_assessment.current_assessment if context.auto_mode_assessment else None
    prompt = _render(
        "question-generation",
        {
            "TOPICS_LIST": "\n".join(_topic_line(topic) for topic in topics),
            "GRADE_LEVEL": context.grade_level,
            "COURSE_TYPE": context.course_type,
            "STRUGGLING_TOPICS": (
                f"Der Schüler hat Schwierigkeiten mit: {', '.join(struggling)}"
                if struggling
                else "Keine bekannten Schwierigkeiten"
            ),
            "MEMORIES": (
                "Bekannte Informationen über den Schüler:\n" + "\n".join(context.recent_memories)
                if context.recent_memories
                else "Keine spezifischen Informationen über Lernverhalten bekannt"
            ),
            "AUTO_MODE": describe_for_generation(assessment),
            "COMPLEXITY": (
                f"ANFORDERUNGSBEREICH: {body.afb_level}\n{_AFB_INSTRUCTIONS[body.afb_level]}\n\n"
                f"ANZAHL FRAGEN: {body.question_count}"
            ),
            "QUESTION_COUNT": body.question_count,
        },
    )
    temperature = assessment.temperature if assessment is not None else 0.7
    completion = llm_client.complete(
        body.provider,
        body.api_key,
        [llm_client.user_message(prompt)],
        model=model,
        max_tokens=16000,
        temperature=temperature,
        purpose="generate-questions",
    )
    batch = parse_model_output(completion.text, QuestionBatchOutput)
    _warn_on_hint_count(batch.questions)

    return {
        "success": True,
        "sessionId": f"session_{_now_ms()}_{body.user_id[:8]}",
        "learningPlanItemId": body.learning_plan_item_id,
        "topics": topics,
        "userContext": context.model_dump(by_alias=True, exclude_none=True),
        "questions": batch.questions,
        "totalQuestions": len(batch.questions),
        "fromCache": False,
        "modelUsed": completion.model,
        "providerUsed": body.provider,
    }


@app.post("/api/generate-adaptive-questions")
def generate_adaptive_questions(body: GenerateAdaptiveQuestionsBody):
    performance = body.recent_performance
    context = body.user_context
    if performance.recent_questions:
        performance_text = (
            f"Letzte {len(performance.recent_questions)} Fragen: "
            f"{performance.correct_count} richtig, {performance.wrong_count} falsch"
        )
    else:
        performance_text = "Keine vorherige Leistung bekannt"

    prompt = _render(
        "adaptive-question-generation",
        {
            "QUESTION_COUNT": body.question_count,
            "TOPICS_LIST": "\n".join(_topic_line(topic) for topic in body.topics),
            "DIFFICULTY_LEVEL": body.difficulty_level,
            "ADJUSTMENT_REASON": body.adjustment_reason,
            "RECENT_PERFORMANCE": performance_text,
            "GRADE_LEVEL": context.grade_level,
            "COURSE_TYPE": context.course_type,
            "USER_CONTEXT": (
                f"Schwierigkeiten mit: {', '.join(context.struggling_topics)}"
                if context.struggling_topics
                else "Keine bekannten Schwierigkeiten"
            ),
        },
    )
    model = body.model or ADAPTIVE_DEFAULT_MODELS.get(body.provider) or llm_client.default_model(body.provider)
    completion = llm_client.complete(
        body.provider,
        body.api_key,
        [llm_client.user_message(prompt)],
        model=model,
        max_tokens=8000,
        temperature=0.5 + body.difficulty_level / 20,
        purpose="generate-adaptive-questions",
    )
    batch = parse_model_output(completion.text, QuestionBatchOutput)

    generated_at = _now_iso()
    stamp = _now_ms()
    questions = [
        {
            **question,
            "id": question.get("id") or f"q_{stamp}_{index}",
            "difficulty": question.get("difficulty") or body.difficulty_level,
            "generatedAt": generated_at,
        }
        for index, question in enumerate(batch.questions)
    ]
    _warn_on_hint_count(questions)
    return {
        "success": True,
        "questions": questions,
        "metadata": {
            **batch.metadata,
            "provider": body.provider,
            "model": completion.model,
            "difficultyLevel": body.difficulty_level,
            "generatedAt": generated_at,
            "questionCount": len(questions),
        },
    }


# ---------- Evaluation ----------
@app.post("/api/evaluate-answer")
def evaluate_answer(body: EvaluateAnswerBody):
    result = _EVALUATOR.evaluate(body.question_data, body.submission())
    return {"success": True, **result.to_wire()}


# ---------- Hints & AUTO mode ----------
def _question_type_content(question: QuestionRecord) -> str:
    if question.type == "multiple-choice" and question.options:
        lines = "\n".join(f"{option.id}) {option.text}" for option in question.options)
        return f"ANTWORTMÖGLICHKEITEN:\n{lines}"
    if question.type == "step-by-step" and question.steps:
        lines = "\n".join(
            f"Schritt {step.step_number or index}: {step.instruction}"
            for index, step in enumerate(question.steps, start=1)
        )
        return f"SCHRITTE:\n{lines}"
    return ""


@app.post("/api/generate-custom-hint")
def generate_custom_hint(body: CustomHintBody):
    previous = (
        "\n".join(f"Hinweis {index}: {hint}" for index, hint in enumerate(body.previous_hints, start=1))
        if body.previous_hints
        else "Keine Hinweise bisher verwendet"
    )
    prompt = _render(
        "custom-hint",
        {
            "QUESTION": body.question_data.question,
            "QUESTION_TYPE_CONTENT": _question_type_content(body.question_data),
            "PREVIOUS_HINTS": previous,
            "USER_QUESTION": body.user_question,
        },
    )
    completion = llm_client.complete(
        "claude",
        body.api_key,
        [llm_client.user_message(prompt)],
        model=HINT_MODEL,
        max_tokens=500,
        temperature=0.8,
        purpose="generate-custom-hint",
    )
    hint = completion.text.strip()
    if not hint:
        raise ResponseParseError(completion.text, message="AI returned an empty hint")
    return {"success": True, "customHint": hint}


@app.post("/api/update-auto-mode")
def update_auto_mode(body: UpdateAutoModeBody):
    previous = body.previous_assessment.current_assessment if body.previous_assessment else None
    prompt = _render(
        "auto-mode-update",
        build_prompt_variables(previous, body.performance_data.model_dump(by_alias=True)),
    )
    completion = llm_client.complete(
        "claude",
        body.api_key,
        [llm_client.user_message(prompt)],
        model=AUTO_MODE_MODEL,
        max_tokens=500,
        temperature=0.3,
        purpose="update-auto-mode",
    )
    assessment = clamp_assessment(extract_json(completion.text))
    return {"success": True, "newAssessment": assessment.to_wire()}


# ---------- Visualisation ----------
@app.post("/api/generate-geogebra")
def generate_geogebra(body: GeoGebraBody):
    request_text = body.prompt
    if body.question_context:
        request_text += f"\n\nKontext der Aufgabe: {body.question_context}"
    completion = llm_client.complete(
        body.provider,
        body.api_key,
        [llm_client.user_message(request_text)],
        model=body.selected_model,
        system=_render("geogebra-generation"),
        max_tokens=2000,
        temperature=0.5,
        purpose="generate-geogebra",
    )
    output = parse_model_output(completion.text, GeoGebraOutput)
    return {"success": True, **output.to_wire()}


@app.post("/api/generate-solution-visualization")
def generate_solution_visualization(body: SolutionVisualizationBody):
    prompt = _render("solution-visualization", {"QUESTION": body.question, "SOLUTION": body.solution})
    completion = llm_client.complete(
        body.provider,
        body.api_key,
        [llm_client.user_message(prompt)],
        model=body.model,
        max_tokens=4000,
        temperature=0.5,
        purpose="generate-solution-visualization",
    )
    output = parse_model_output(completion.text, SolutionVisualizationOutput)
    return {"success": True, **output.to_wire()}


def _selection_note(bounds: Optional[SelectionBounds]) -> str:
    if bounds is None:
        return ""
    return (
        f"\n\n(Der Schüler hat einen Bereich markiert: "
        f"{round_half_up(bounds.width)}x{round_half_up(bounds.height)} Pixel)"
    )


@app.post("/api/analyze-whiteboard")
def analyze_whiteboard(body: WhiteboardBody):
    question_text = (
        f'Frage des Schülers: "{body.question}"{_selection_note(body.selection_bounds)}\n\n'
        "Bitte analysiere das Bild und beantworte die Frage. Antworte im JSON-Format."
    )
    completion = llm_client.complete(
        "claude",
        body.api_key,
        [llm_client.user_message(llm_client.image_from_data_url(body.image_data), question_text)],
        model=VISION_MODEL,
        system=_render("whiteboard-analysis"),
        max_tokens=2000,
        purpose="analyze-whiteboard",
    )
    output = parse_model_output(completion.text, CanvasOutput)
    return {
        "success": True,
        "explanation": output.explanation or "Keine Erklärung verfügbar",
        "drawings": sanitize_drawings(output.drawings, WHITEBOARD_BOUNDS),
    }


@app.post("/api/collaborative-canvas")
def collaborative_canvas(body: CanvasBody):
    objects = [obj.to_wire() for obj in body.geogebra_state.objects] if body.geogebra_state else []
    question_context = ""
    if body.context and body.context.question:
        question_context = f"Kontext der aktuellen Aufgabe:\nAufgabe: {body.context.question}"
        if body.context.solution:
            question_context += f"\nLösung: {body.context.solution}"
    system = _render(
        "collaborative-canvas",
        {"GEOGEBRA_STATE": describe_geogebra_objects(objects), "QUESTION_CONTEXT": question_context},
    )

    messages: List[Dict[str, Any]] = [
        {"role": message.role, "content": message.content}
        for message in body.chat_history
        if message.role in {"user", "assistant"}
    ]
    blocks: List[Any] = []
    if body.image_data:
        blocks.append(llm_client.image_from_data_url(body.image_data))
    blocks.append(f"{body.question}{_selection_note(body.selection_bounds)}\n\nBitte antworte im JSON-Format.")
    messages.append(llm_client.user_message(*blocks))

    completion = llm_client.complete(
        body.provider,
        body.api_key,
        messages,
        system=system,
        max_tokens=4000,
        purpose="collaborative-canvas",
    )
    output = parse_model_output(completion.text, CanvasOutput)
    return {
        "success": True,
        "explanation": output.explanation,
        "drawings": sanitize_drawings(output.drawings, CANVAS_BOUNDS),
        "geogebraCommands": sanitize_geogebra_commands(output.geogebra_commands),
    }


@app.post("/api/generate-mini-app")
def generate_mini_app(body: MiniAppBody):
    system = _render(
        "mini-app-generation",
        {"GRADE_LEVEL": body.context.grade_level.replace("_", " "), "COURSE_TYPE": body.context.course_type},
    )
    completion = llm_client.complete(
        body.provider,
        body.api_key,
        [llm_client.user_message(body.prompt)],
        model=body.model,
        system=system,
        max_tokens=8000,
        temperature=0.7,
        purpose="generate-mini-app",
    )
    output = parse_mini_app(completion.text)
    return {"success": True, **output.to_wire(), "provider": body.provider, "model": completion.model}
