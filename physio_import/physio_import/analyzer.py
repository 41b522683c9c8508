"""
Document analysis boundary.

Turns an uploaded document into an AnalysisResult: extracted exercises,
exercise sets, clinical notes and match suggestions against the existing
exercise catalog. Three analyzers share one interface:

- HttpDocumentAnalyzer: the backend's AI analysis endpoints
- OpenAIDocumentAnalyzer: local text extraction + OpenAI chat model
- ReplayAnalyzer: a stored analysis result (offline sessions)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

import pypdf
import requests
from openai import OpenAI
from pydantic import ValidationError

from .config import Settings
from .errors import AnalysisError, FileValidationError
from .matching import CatalogExercise, rank_candidates
from .schema import AnalysisResult, DocumentFile


logger = logging.getLogger(__name__)


def validate_document(file: Optional[DocumentFile], settings: Settings) -> DocumentFile:
    if file is None:
        raise FileValidationError("Select a file to analyze")
    if file.extension not in settings.supported_extensions:
        supported = ", ".join(e.upper() for e in settings.supported_extensions)
        raise FileValidationError(f"Unsupported file format. Supported: {supported}")
    if file.size > settings.max_file_size_bytes:
        raise FileValidationError(f"File is too large. Maximum size: {settings.max_file_size_mb:g}MB")
    return file


def document_from_path(path: str | Path) -> DocumentFile:
    p = Path(path)
    return DocumentFile(name=p.name, size=p.stat().st_size, path=str(p))


class DocumentAnalyzer(Protocol):
    def analyze_document(
        self, file: DocumentFile, patient_id: Optional[str] = None, additional_context: Optional[str] = None
    ) -> AnalysisResult: ...

    def analyze_text(
        self, text: str, patient_id: Optional[str] = None, additional_context: Optional[str] = None
    ) -> AnalysisResult: ...


def _parse_result(data: Any) -> AnalysisResult:
    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as e:
        raise AnalysisError(f"Analysis service returned an invalid result: {e.error_count()} validation error(s)") from e


def _log_result(result: AnalysisResult) -> None:
    logger.info(
        "analysis result: %d exercises, %d sets, %d notes",
        len(result.exercises),
        len(result.exercise_sets),
        len(result.clinical_notes),
    )


class HttpDocumentAnalyzer:
    """Backend analysis endpoints (multipart file upload or JSON text)."""

    def __init__(self, api_url: str, token: Optional[str], timeout: float = 60.0, session: Optional[requests.Session] = None):
        if not api_url:
            raise ValueError("API URL must be provided or set in PHYSIO_IMPORT_API_URL environment variable")
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpDocumentAnalyzer":
        return cls(settings.api_url, settings.api_token, timeout=settings.timeout)

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            raise AnalysisError("Missing authorization token. Sign in again.")
        return {"Authorization": f"Bearer {self.token}"}

    def _handle(self, response: requests.Response, what: str) -> AnalysisResult:
        if response.status_code == 401:
            raise AnalysisError("Session expired. Refresh and try again.")
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not response.ok:
            message = payload.get("message") if isinstance(payload, dict) else None
            raise AnalysisError(message or f"{what} failed: {response.status_code}")
        if not isinstance(payload, dict):
            raise AnalysisError(f"{what} did not return a JSON object")
        result = _parse_result(payload)
        _log_result(result)
        return result

    def analyze_document(
        self, file: DocumentFile, patient_id: Optional[str] = None, additional_context: Optional[str] = None
    ) -> AnalysisResult:
        if not file.path:
            raise AnalysisError(f"No content available for {file.name}")
        data: Dict[str, str] = {}
        if patient_id:
            data["patientId"] = patient_id
        if additional_context:
            data["additionalContext"] = additional_context
        logger.debug("analyzing document %s (%d bytes)", file.name, file.size)
        try:
            with open(file.path, "rb") as fh:
                response = self.session.post(
                    f"{self.api_url}/api/ai/document-analyze",
                    headers=self._headers(),
                    files={"file": (file.name, fh)},
                    data=data,
                    timeout=self.timeout,
                )
        except (OSError, requests.RequestException) as e:
            raise AnalysisError(f"Document analysis failed: {e}") from e
        return self._handle(response, "Document analysis")

    def analyze_text(
        self, text: str, patient_id: Optional[str] = None, additional_context: Optional[str] = None
    ) -> AnalysisResult:
        logger.debug("analyzing text (%d chars)", len(text))
        try:
            response = self.session.post(
                f"{self.api_url}/api/ai/document-analyze-text",
                headers={**self._headers(), "Content-Type": "application/json"},
                json={"text": text, "patientId": patient_id, "additionalContext": additional_context},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AnalysisError(f"Text analysis failed: {e}") from e
        return self._handle(response, "Text analysis")


EXTRACTION_PROMPT = """You are a physiotherapy documentation assistant. Analyze the document and extract
home exercise programmes and clinical notes.

Return ONE JSON object with this exact structure:

{
  "documentInfo": {"patientName": str|null, "date": str|null, "therapistName": str|null,
                   "clinicName": str|null, "documentType": str|null},
  "exercises": [
    {"tempId": "ex-1", "name": str, "description": str|null, "type": "reps|time|hold",
     "sets": int|null, "reps": int|null, "duration": int|null (seconds), "holdTime": int|null,
     "restBetweenSets": int|null, "restBetweenReps": int|null,
     "exerciseSide": "none|left|right|both|alternating"|null,
     "suggestedTags": [str], "notes": str|null, "confidence": 0..1, "originalText": str|null}
  ],
  "exerciseSets": [
    {"tempId": "set-1", "name": str, "description": str|null,
     "exerciseTempIds": ["ex-1", ...], "suggestedFrequency": str|null, "confidence": 0..1}
  ],
  "clinicalNotes": [
    {"tempId": "note-1", "noteType": "interview|examination|diagnosis|procedure|other",
     "title": str|null, "content": str, "points": [str], "confidence": 0..1}
  ]
}

IMPORTANT:
- Every exercise mentioned in a set must also appear in "exercises"; reference it by tempId.
- Keep the order of exercises within a set as written in the document.
- Do not invent parameters that are not in the document; use null instead.
"""


def extract_text(file: DocumentFile) -> str:
    """Plain text of a local document (PDF, XLSX or text formats)."""
    if not file.path:
        raise AnalysisError(f"No content available for {file.name}")
    ext = file.extension
    try:
        if ext == "pdf":
            with open(file.path, "rb") as fh:
                reader = pypdf.PdfReader(fh)
                return "\n".join((page.extract_text() or "") for page in reader.pages).strip()
        if ext == "xlsx":
            from openpyxl import load_workbook

            wb = load_workbook(file.path, read_only=True, data_only=True)
            lines: List[str] = []
            for ws in wb.worksheets:
                for row in ws.iter_rows(values_only=True):
                    cells = [str(c) for c in row if c is not None]
                    if cells:
                        lines.append("\t".join(cells))
            return "\n".join(lines)
        if ext == "xls":
            raise AnalysisError("Legacy .xls files require the backend analysis service")
        return Path(file.path).read_text(encoding="utf-8", errors="replace")
    except AnalysisError:
        raise
    except Exception as e:
        raise AnalysisError(f"Failed to read {file.name}: {e}") from e


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _assign_ids(items: List[Dict[str, Any]], prefix: str) -> set:
    # first claim wins; missing or repeated ids get the next unused "<prefix>-<n>"
    seen: set = set()
    n = 0
    for item in items:
        temp_id = str(item.get("tempId") or "")
        if not temp_id or temp_id in seen:
            n += 1
            while f"{prefix}-{n}" in seen or any(str(i.get("tempId") or "") == f"{prefix}-{n}" for i in items):
                n += 1
            temp_id = f"{prefix}-{n}"
        item["tempId"] = temp_id
        seen.add(temp_id)
    return seen


def normalize_extraction(data: Dict[str, Any]) -> Dict[str, Any]:
    """Assign unique temp ids and drop set references to unknown exercises."""
    exercises = [e for e in data.get("exercises") or [] if isinstance(e, dict) and e.get("name")]
    known = _assign_ids(exercises, "ex")

    sets = [s for s in data.get("exerciseSets") or [] if isinstance(s, dict) and s.get("name")]
    _assign_ids(sets, "set")
    for s in sets:
        s["exerciseTempIds"] = [str(t) for t in s.get("exerciseTempIds") or [] if str(t) in known]

    notes = [n for n in data.get("clinicalNotes") or [] if isinstance(n, dict) and n.get("content")]
    _assign_ids(notes, "note")

    return {
        "documentInfo": data.get("documentInfo") or {},
        "exercises": exercises,
        "exerciseSets": sets,
        "clinicalNotes": notes,
    }


class OpenAIDocumentAnalyzer:
    """Extract entities with an OpenAI chat model; match suggestions come from a local catalog."""

    MAX_TEXT_CHARS = 24000

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        catalog: Sequence[CatalogExercise] = (),
        client: Optional[OpenAI] = None,
    ):
        if client is None:
            if not api_key:
                raise ValueError("OpenAI API key must be provided or set in OPENAI_API_KEY environment variable")
            client = OpenAI(api_key=api_key)
        self.client = client
        self.model = model
        self.catalog = list(catalog)

    @classmethod
    def from_settings(cls, settings: Settings, catalog: Sequence[CatalogExercise] = ()) -> "OpenAIDocumentAnalyzer":
        return cls(settings.openai_api_key, model=settings.openai_model, catalog=catalog)

    def _complete(self, text: str, additional_context: Optional[str]) -> Dict[str, Any]:
        user_prompt = "Document text:\n\n" + text[: self.MAX_TEXT_CHARS]
        if additional_context:
            user_prompt += f"\n\nAdditional context from the therapist:\n{additional_context}"
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": EXTRACTION_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=0.1,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise AnalysisError(f"OpenAI analysis failed: {e}") from e

        content = response.choices[0].message.content or ""
        try:
            data = json.loads(_strip_fences(content))
        except json.JSONDecodeError as e:
            logger.warning("could not parse model output: %s", content[:200])
            raise AnalysisError(f"OpenAI returned malformed JSON: {e}") from e
        if not isinstance(data, dict):
            raise AnalysisError("OpenAI returned an unexpected JSON structure")
        return data

    def _build(self, text: str, additional_context: Optional[str]) -> AnalysisResult:
        if not text.strip():
            raise AnalysisError("Document contains no readable text")
        data = normalize_extraction(self._complete(text, additional_context))
        suggestions = {}
        for ex in data["exercises"]:
            candidates = rank_candidates(ex["name"], self.catalog)
            if candidates:
                suggestions[ex["tempId"]] = [c.to_wire() for c in candidates]
        data["matchSuggestions"] = suggestions
        data["rawText"] = text
        result = _parse_result(data)
        _log_result(result)
        return result

    def analyze_document(
        self, file: DocumentFile, patient_id: Optional[str] = None, additional_context: Optional[str] = None
    ) -> AnalysisResult:
        logger.debug("extracting text from %s", file.name)
        return self._build(extract_text(file), additional_context)

    def analyze_text(
        self, text: str, patient_id: Optional[str] = None, additional_context: Optional[str] = None
    ) -> AnalysisResult:
        return self._build(text, additional_context)


class ReplayAnalyzer:
    """Returns a previously stored analysis result regardless of input."""

    def __init__(self, result: AnalysisResult):
        self.result = result

    def analyze_document(
        self, file: DocumentFile, patient_id: Optional[str] = None, additional_context: Optional[str] = None
    ) -> AnalysisResult:
        return self.result

    def analyze_text(
        self, text: str, patient_id: Optional[str] = None, additional_context: Optional[str] = None
    ) -> AnalysisResult:
        return self.result
