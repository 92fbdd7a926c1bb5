"""Diagnostic questionnaire analysis.

Responses are scored by an Azure OpenAI deployment when one is configured,
and by a fixed rule table otherwise. Both paths return a ``QuizAnalysis`` so
callers never need to know which one ran. A delegate failure of any kind
falls back to the rule table instead of surfacing an error.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from openai import AzureOpenAI
from pydantic import ValidationError

from .config import settings
from .logging_utils import setup_logger
from .models import QuizAnalysis

logger = setup_logger(__name__)

DEFAULT_DELEGATE_SCORE = 50
DEFAULT_DELEGATE_ANALYSIS = "Analysis completed."
NO_ISSUES_ANALYSIS = "No significant problems detected."
MAINTENANCE_RECOMMENDATION = (
    "Keep up with periodic check-ups to keep your device in good health"
)

SYSTEM_PROMPT = """You are an expert mobile device technician. Analyze the answers to a diagnostic questionnaire about a customer's device and provide:
1. A health score from 0 to 100
2. A short analysis of the problems detected
3. Specific recommendations

Reply ONLY with valid JSON using exactly this structure:
{"score": number, "analysis": "text", "recommendations": ["recommendation 1", "recommendation 2"]}"""


class QuizParseError(ValueError):
    """Raised when delegate output cannot be turned into a QuizAnalysis."""


class QuizDelegate:
    """Text-generation capability used to analyze questionnaire responses."""

    def generate(self, responses: Mapping[str, Any]) -> str:
        raise NotImplementedError


class OpenAIQuizDelegate(QuizDelegate):
    """Quiz delegate backed by an Azure OpenAI chat completions deployment."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        deployment: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key or settings.AZURE_OPENAI_API_KEY
        self.endpoint = endpoint or settings.AZURE_OPENAI_ENDPOINT
        self.deployment = deployment or settings.AZURE_OPENAI_DEPLOYMENT
        self.api_version = api_version or settings.AZURE_OPENAI_API_VERSION
        self.timeout = timeout or settings.QUIZ_ANALYSIS_TIMEOUT_SECONDS
        self._client: Optional[AzureOpenAI] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.endpoint)

    @property
    def client(self) -> AzureOpenAI:
        if self._client is None:
            self._client = AzureOpenAI(
                api_key=self.api_key,
                api_version=self.api_version,
                azure_endpoint=self.endpoint,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def generate(self, responses: Mapping[str, Any]) -> str:
        response = self.client.chat.completions.create(
            model=self.deployment,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Questionnaire answers: {json.dumps(responses, default=str)}",
                },
            ],
            temperature=0.2,
            max_tokens=600,
        )
        return response.choices[0].message.content or ""


def default_quiz_delegate() -> Optional[QuizDelegate]:
    """Return the configured delegate, or None when no credentials are set."""
    delegate = OpenAIQuizDelegate()
    return delegate if delegate.is_configured else None


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring of ``text``.

    Braces inside JSON string literals are ignored. Returns None when no
    balanced object exists.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        start = text.find("{", start + 1)
    return None


def parse_quiz_analysis(text: str) -> QuizAnalysis:
    """Parse delegate output that may wrap its JSON answer in prose.

    Raises:
        QuizParseError: If no usable JSON object is found.
    """
    candidate = extract_json_object(text or "")
    if candidate is None:
        raise QuizParseError("No JSON object found in delegate output")

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise QuizParseError(f"Invalid JSON in delegate output: {e}") from e
    if not isinstance(parsed, dict):
        raise QuizParseError("Delegate output is not a JSON object")

    score = parsed.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not score:
        score = DEFAULT_DELEGATE_SCORE

    recommendations = parsed.get("recommendations")
    if not isinstance(recommendations, list):
        recommendations = []

    try:
        return QuizAnalysis(
            score=int(round(max(0, min(100, score)))),
            analysis=str(parsed.get("analysis") or DEFAULT_DELEGATE_ANALYSIS),
            recommendations=[str(item) for item in recommendations],
        )
    except ValidationError as e:
        raise QuizParseError(f"Delegate output failed validation: {e}") from e


def _is_low_rating(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value <= 2


@dataclass(frozen=True)
class QuizRule:
    """One recognized questionnaire condition and its effect on the score."""

    name: str
    matches: Callable[[Mapping[str, Any]], bool]
    deduction: int
    issue: str
    recommendation: str


QUIZ_RULES: List[QuizRule] = [
    QuizRule(
        name="battery",
        matches=lambda r: r.get("battery_drains_fast") is True
        or _is_low_rating(r.get("battery_rating")),
        deduction=25,
        issue="battery life problems",
        recommendation="We recommend a battery diagnosis",
    ),
    QuizRule(
        name="overheating",
        matches=lambda r: r.get("overheating") in ("often", True),
        deduction=20,
        issue="frequent overheating",
        recommendation="Check the thermal paste and clean the device internals",
    ),
    QuizRule(
        name="performance",
        matches=lambda r: r.get("slowdowns") == "frequent"
        or _is_low_rating(r.get("performance_rating")),
        deduction=15,
        issue="system slowdowns",
        recommendation="Consider a software cleanup and optimization",
    ),
    QuizRule(
        name="storage",
        matches=lambda r: r.get("storage_low") is True
        or _is_low_rating(r.get("storage_rating")),
        deduction=10,
        issue="insufficient storage space",
        recommendation="Free up space or consider a storage upgrade",
    ),
    QuizRule(
        name="crashes",
        matches=lambda r: r.get("crashes") == "often",
        deduction=20,
        issue="frequent app crashes",
        recommendation="An in-depth software diagnosis is recommended",
    ),
]


def simple_quiz_analysis(responses: Mapping[str, Any]) -> QuizAnalysis:
    """Score questionnaire responses with the fixed rule table.

    Keys the table does not recognize are ignored.
    """
    score = 100
    issues: List[str] = []
    recommendations: List[str] = []

    for rule in QUIZ_RULES:
        if rule.matches(responses):
            score -= rule.deduction
            issues.append(rule.issue)
            recommendations.append(rule.recommendation)

    if issues:
        analysis = f"Detected: {', '.join(issues)}."
    else:
        analysis = NO_ISSUES_ANALYSIS
        recommendations.append(MAINTENANCE_RECOMMENDATION)

    return QuizAnalysis(score=max(0, score), analysis=analysis, recommendations=recommendations)


def analyze_quiz(
    responses: Dict[str, Any], delegate: Optional[QuizDelegate] = None
) -> QuizAnalysis:
    """Analyze questionnaire responses, preferring the delegate when given.

    Args:
        responses: Question id to answer mapping.
        delegate: Text-generation delegate, or None for the rule table.

    Returns:
        QuizAnalysis from whichever path succeeded.
    """
    if delegate is None:
        return simple_quiz_analysis(responses)

    try:
        return parse_quiz_analysis(delegate.generate(responses))
    except Exception as e:
        logger.warning(f"Quiz delegate failed, using rule-based analysis: {e}")
        return simple_quiz_analysis(responses)
