from typing import Any, Dict, Iterable, List
import requests
from requests import RequestException

from studentrecords.config.logging_config import get_logger
from studentrecords.config.settings import settings
from studentrecords.core.models import Account, Grade, Subject

logger = get_logger("analysis")

MISSING_KEY_TEXT = "Gemini API Key is missing. Please configure the environment."
EMPTY_TEXT = "No analysis generated."
FAILED_TEXT = "Failed to generate analysis. Please try again later."


class AnalysisServiceError(Exception):
    pass


def build_prompt(student: Account, grades: Iterable[Grade], subjects: Iterable[Subject]) -> str:
    subjects_by_id = {s.id: s for s in subjects}
    lines: List[str] = []
    for grade in grades:
        subject = subjects_by_id.get(grade.subject_id)
        name = subject.name if subject else "Unknown subject"
        code = subject.code if subject else "?"
        lines.append(f"- {name} ({code}): {grade.score}")
    transcript = "\n".join(lines) or "- No grades recorded yet."

    return (
        "You are an academic advisor at a prestigious university.\n"
        "Analyze the following student's performance and provide a constructive summary, "
        "highlighting strengths, weaknesses, and recommendations.\n"
        f"Student Name: {student.full_name}\n\n"
        f"Grades:\n{transcript}\n\n"
        "Please keep the response under 150 words, professional and encouraging."
    )


class GeminiAnalysisService:
    """
    Callable summary generator backed by the Gemini generateContent REST API.
    Never raises: failures come back as fixed sentinel strings.
    """

    def __init__(self, api_key: str, model: str, endpoint: str, timeout: float = 30) -> None:
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "GeminiAnalysisService":
        return cls(settings.gemini_api_key, settings.gemini_model, settings.gemini_endpoint)

    def __call__(self, student: Account, grades: List[Grade], subjects: List[Subject]) -> str:
        if not self.api_key:
            logger.warning("API key not found in environment variables")
            return MISSING_KEY_TEXT
        try:
            data = self._post(build_prompt(student, grades, subjects))
        except AnalysisServiceError as exc:
            logger.error("Gemini analysis error: %s", exc)
            return FAILED_TEXT
        return self._extract_text(data) or EMPTY_TEXT

    def _post(self, prompt: str) -> Dict[str, Any]:
        url = f"{self.endpoint}/models/{self.model}:generateContent"
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            res = requests.post(url, headers=headers, json=payload, timeout=self.timeout)
        except RequestException as exc:
            raise AnalysisServiceError("ANALYSIS_SERVICE_UNAVAILABLE") from exc
        try:
            data = res.json()
        except ValueError:
            raise AnalysisServiceError("ANALYSIS_SERVICE_UNAVAILABLE")

        if res.status_code >= 400:
            error = data.get("error") if isinstance(data, dict) else None
            if isinstance(error, dict):
                error = error.get("message") or error.get("status")
            raise AnalysisServiceError(str(error or "ANALYSIS_ERROR"))
        if not isinstance(data, dict):
            raise AnalysisServiceError("ANALYSIS_UNEXPECTED_RESPONSE")

        return data

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates")
        for candidate in candidates if isinstance(candidates, list) else []:
            content = candidate.get("content") if isinstance(candidate, dict) else None
            parts = content.get("parts") if isinstance(content, dict) else None
            if not isinstance(parts, list):
                continue
            text = "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))
            if text.strip():
                return text.strip()
        return ""
