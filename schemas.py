"""Pydantic schemas for request bodies, question records and model outputs."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

__all__ = [
    "CamelModel",
    "QuestionOption",
    "stringify_number",
    "QuestionStep",
    "QuestionHint",
    "QuestionRecord",
    "Submission",
    "MisconceptionInfo",
    "StepResult",
    "XpBreakdown",
    "EvaluationResult",
    "ModelDescriptor",
    "AutoModeAssessment",
    "TopicSelection",
    "ExtractedTopic",
    "ImageAnalysisOutput",
    "QuestionBatchOutput",
    "GeoGebraOutput",
    "SolutionVisualizationOutput",
    "CanvasOutput",
    "MiniAppOutput",
    "AuthBody",
    "GetModelsBody",
    "AnalyzeImageBody",
    "GenerateQuestionsBody",
    "GenerateAdaptiveQuestionsBody",
    "EvaluateAnswerBody",
    "CustomHintBody",
    "UpdateAutoModeBody",
    "GeoGebraBody",
    "SolutionVisualizationBody",
    "WhiteboardBody",
    "CanvasBody",
    "MiniAppBody",
]

RequiredStr = Annotated[str, Field(min_length=1)]


class CamelModel(BaseModel):
    """snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Question records and evaluation


def stringify_number(value: Any) -> Any:
    """Numeric ids arrive as JSON numbers from some models; compare them as text."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class QuestionOption(CamelModel):
    model_config = ConfigDict(extra="allow")

    id: str
    text: str = ""
    is_correct: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return stringify_number(value)


class QuestionStep(CamelModel):
    model_config = ConfigDict(extra="allow")

    step_number: Optional[int] = None
    instruction: str = ""
    expected_answer: Any = None
    tolerance: Optional[float] = None


class QuestionHint(CamelModel):
    model_config = ConfigDict(extra="allow")

    level: Optional[int] = None
    text: str = ""


class QuestionRecord(CamelModel):
    """A generated practice question as produced by the model and echoed back by the client."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    type: str
    difficulty: Optional[int] = None
    topic: Optional[str] = None
    subtopic: Optional[str] = None
    question: str = ""
    options: List[QuestionOption] = Field(default_factory=list)
    steps: List[QuestionStep] = Field(default_factory=list)
    hints: List[QuestionHint] = Field(default_factory=list)
    solution: Optional[str] = None
    explanation: Optional[str] = None
    correct_answer: Any = None
    expected_answer: Any = None
    tolerance: Optional[float] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return stringify_number(value)


class Submission(CamelModel):
    user_answer: Any = None
    hints_used: int = Field(default=0, ge=0)
    time_spent: Optional[float] = None
    skipped: bool = False
    correct_streak: int = 0
    streak_freeze_available: bool = False

    @field_validator("hints_used", mode="before")
    @classmethod
    def _default_hints(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("correct_streak", mode="before")
    @classmethod
    def _default_streak(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("skipped", "streak_freeze_available", mode="before")
    @classmethod
    def _default_flags(cls, value: Any) -> Any:
        return False if value is None else value


class MisconceptionInfo(CamelModel):
    id: str
    name: str
    description: str
    hint: str


class StepResult(CamelModel):
    step_number: int
    correct: bool
    expected: Any = None
    actual: Any = None
    equivalence_method: str = "none"
    is_close: bool = False
    misconceptions: List[MisconceptionInfo] = Field(default_factory=list)


class XpBreakdown(CamelModel):
    base: int
    hint_penalty: int = 0
    time_penalty: int = 0
    bonuses: int = 0
    total: int = 0


class EvaluationResult(CamelModel):
    is_correct: bool
    feedback: str
    correct_answer: Any = None
    xp_earned: int = Field(ge=0)
    xp_breakdown: XpBreakdown
    step_results: List[StepResult] = Field(default_factory=list)
    misconceptions: List[MisconceptionInfo] = Field(default_factory=list)
    equivalence_method: Optional[str] = None
    streak_frozen: bool = False


# ---------------------------------------------------------------------------
# Model catalog and AUTO mode


class ModelDescriptor(CamelModel):
    id: str
    name: str
    type: Literal["fast", "balanced", "powerful", "standard"]
    description: str
    created: Optional[str] = None


class AutoModeAssessment(CamelModel):
    detail_level: int = Field(ge=0, le=100)
    temperature: float = Field(ge=0.0, le=1.0)
    helpfulness: int = Field(ge=0, le=100)
    reasoning: str = ""


# ---------------------------------------------------------------------------
# Model outputs


class TopicSelection(CamelModel):
    model_config = ConfigDict(extra="allow")

    leitidee: str = ""
    thema: str = ""
    unterthema: str = ""


class ExtractedTopic(TopicSelection):
    confidence: Optional[float] = None


class ImageAnalysisOutput(CamelModel):
    extracted_topics: List[ExtractedTopic] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class QuestionBatchOutput(CamelModel):
    model_config = ConfigDict(extra="allow")

    questions: List[Dict[str, Any]]
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GeoGebraOutput(CamelModel):
    commands: List[str]
    explanation: str = ""
    interaction_tips: str = ""

    @field_validator("interaction_tips", mode="before")
    @classmethod
    def _join_tips(cls, value: Any) -> Any:
        if isinstance(value, list):
            return " ".join(str(item) for item in value)
        return "" if value is None else value


class SolutionVisualizationOutput(CamelModel):
    steps: List[Dict[str, Any]]
    interactive_elements: List[Dict[str, Any]] = Field(default_factory=list)


class CanvasOutput(CamelModel):
    explanation: str = ""
    drawings: List[Any] = Field(default_factory=list)
    geogebra_commands: List[Any] = Field(default_factory=list)

    @field_validator("drawings", "geogebra_commands", mode="before")
    @classmethod
    def _list_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []


class MiniAppOutput(CamelModel):
    title: str = "Generierte Simulation"
    description: str = ""
    html: RequiredStr

    @field_validator("title", "description", mode="before")
    @classmethod
    def _blank_to_default(cls, value: Any, info) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "Generierte Simulation" if info.field_name == "title" else ""
        return value


# ---------------------------------------------------------------------------
# Request bodies


class AuthBody(CamelModel):
    username: RequiredStr
    password: RequiredStr


class GetModelsBody(CamelModel):
    api_key: RequiredStr


class AnalyzeImageBody(CamelModel):
    api_key: RequiredStr
    image: RequiredStr
    grade_level: RequiredStr
    course_type: RequiredStr


class RecentPerformance(CamelModel):
    model_config = ConfigDict(extra="allow")

    struggling_topics: List[str] = Field(default_factory=list)
    recent_questions: Optional[List[Any]] = None
    correct_count: int = 0
    wrong_count: int = 0


class AutoModeState(CamelModel):
    model_config = ConfigDict(extra="allow")

    current_assessment: Optional[AutoModeAssessment] = None


class UserContext(CamelModel):
    model_config = ConfigDict(extra="allow")

    grade_level: str = "Klasse_11"
    course_type: str = "Leistungsfach"
    difficulty: Optional[int] = None
    recent_performance: Optional[RecentPerformance] = None
    recent_memories: List[str] = Field(default_factory=list)
    struggling_topics: List[str] = Field(default_factory=list)
    auto_mode_assessment: Optional[AutoModeState] = None


class GenerateQuestionsBody(CamelModel):
    api_key: RequiredStr
    user_id: RequiredStr
    topics: List[TopicSelection] = Field(min_length=1)
    user_context: UserContext
    learning_plan_item_id: Optional[str] = None
    selected_model: Optional[str] = None
    provider: Literal["claude", "gemini", "openai"] = "claude"
    afb_level: Literal["I", "II", "III"] = "II"
    question_count: int = Field(default=20, ge=1, le=50)
    has_proof: bool = False


class GenerateAdaptiveQuestionsBody(CamelModel):
    api_key: RequiredStr
    topics: List[Any] = Field(min_length=1)
    provider: Literal["claude", "gemini", "openai"] = "claude"
    model: Optional[str] = None
    user_id: Optional[str] = None
    difficulty_level: int = Field(default=5, ge=1, le=10)
    adjustment_reason: str = "Neuer Start"
    recent_performance: RecentPerformance = Field(default_factory=RecentPerformance)
    question_count: int = Field(default=5, ge=1, le=50)
    user_context: UserContext = Field(default_factory=UserContext)


class EvaluateAnswerBody(Submission):
    question_data: QuestionRecord
    user_answer: Any = Field(...)
    user_id: Optional[str] = None
    question_id: Optional[str] = None

    def submission(self) -> Submission:
        return Submission(
            user_answer=self.user_answer,
            hints_used=self.hints_used,
            time_spent=self.time_spent,
            skipped=self.skipped,
            correct_streak=self.correct_streak,
            streak_freeze_available=self.streak_freeze_available,
        )


class CustomHintBody(CamelModel):
    api_key: RequiredStr
    question_data: QuestionRecord
    user_question: RequiredStr
    previous_hints: List[str] = Field(default_factory=list)
    user_id: Optional[str] = None


class PerformanceData(CamelModel):
    model_config = ConfigDict(extra="allow")

    avg_accuracy: float = 0.0
    avg_hints_used: float = 0.0
    avg_time_spent: float = 0.0
    struggling_topics: List[str] = Field(default_factory=list)
    last10_questions: Optional[List[Any]] = Field(default=None, alias="last10Questions")


class UpdateAutoModeBody(CamelModel):
    api_key: RequiredStr
    performance_data: PerformanceData
    previous_assessment: Optional[AutoModeState] = None
    user_id: Optional[str] = None


class GeoGebraBody(CamelModel):
    api_key: RequiredStr
    prompt: str = Field(min_length=5)
    provider: Literal["claude", "gemini", "openai"] = "claude"
    question_context: Optional[str] = None
    selected_model: Optional[str] = None

    @field_validator("prompt")
    @classmethod
    def _strip_prompt(cls, value: str) -> str:
        stripped = value.strip()
        if len(stripped) < 5:
            raise ValueError("prompt must contain at least 5 characters")
        return stripped


class SolutionVisualizationBody(CamelModel):
    api_key: RequiredStr
    question: RequiredStr
    solution: RequiredStr
    provider: Literal["claude", "gemini", "openai"] = "claude"
    model: Optional[str] = None


class SelectionBounds(CamelModel):
    model_config = ConfigDict(extra="allow")

    x: Optional[float] = None
    y: Optional[float] = None
    width: float = 0.0
    height: float = 0.0


class WhiteboardBody(CamelModel):
    api_key: RequiredStr
    image_data: RequiredStr
    question: RequiredStr
    selection_bounds: Optional[SelectionBounds] = None
    user_id: Optional[str] = None


class GeoGebraObject(CamelModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    type: str = ""
    value: Any = None


class GeoGebraState(CamelModel):
    model_config = ConfigDict(extra="allow")

    objects: List[GeoGebraObject] = Field(default_factory=list)


class CanvasQuestionContext(CamelModel):
    model_config = ConfigDict(extra="allow")

    question: str = ""
    solution: Optional[str] = None


class ChatMessage(CamelModel):
    role: str
    content: Any = ""


class CanvasBody(CamelModel):
    api_key: RequiredStr
    question: RequiredStr
    provider: Literal["claude", "gemini", "openai"] = "claude"
    image_data: Optional[str] = None
    geogebra_state: Optional[GeoGebraState] = None
    selection_bounds: Optional[SelectionBounds] = None
    context: Optional[CanvasQuestionContext] = None
    chat_history: List[ChatMessage] = Field(default_factory=list)


class MiniAppContext(CamelModel):
    model_config = ConfigDict(extra="allow")

    grade_level: str = "Klasse 11/12"
    course_type: str = "Leistungsfach"


class MiniAppBody(CamelModel):
    api_key: RequiredStr
    prompt: str = Field(min_length=10, max_length=1000)
    provider: Literal["claude", "gemini", "openai"] = "claude"
    model: Optional[str] = None
    context: MiniAppContext = Field(default_factory=MiniAppContext)

    @field_validator("prompt")
    @classmethod
    def _strip_prompt(cls, value: str) -> str:
        stripped = value.strip()
        if len(stripped) < 10:
            raise ValueError("prompt must contain at least 10 characters")
        return stripped
