from __future__ import annotations

import logging
from typing import Optional, Protocol

import requests
from pydantic import ValidationError

from .config import Settings
from .errors import ImportRejectedError, ImportTransportError
from .schema import ImportRequest, ImportResult


logger = logging.getLogger(__name__)


class ImportClient(Protocol):
    def import_data(self, request: ImportRequest) -> ImportResult: ...


class HttpImportClient:
    """Persists an import request through the backend's batch import endpoint."""

    def __init__(self, api_url: str, token: Optional[str], timeout: float = 60.0, session: Optional[requests.Session] = None):
        if not api_url:
            raise ValueError("API URL must be provided or set in PHYSIO_IMPORT_API_URL environment variable")
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpImportClient":
        return cls(settings.api_url, settings.api_token, timeout=settings.timeout)

    def import_data(self, request: ImportRequest) -> ImportResult:
        if not self.token:
            raise ImportRejectedError("Missing authorization token. Sign in again.")
        try:
            response = self.session.post(
                f"{self.api_url}/api/ai/document-import",
                headers={"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"},
                json=request.to_wire(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ImportTransportError(f"Import service unreachable: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not response.ok:
            message = payload.get("message") if isinstance(payload, dict) else None
            raise ImportRejectedError(message or f"Import failed: {response.status_code}", response.status_code)
        try:
            return ImportResult.model_validate(payload)
        except ValidationError as e:
            raise ImportRejectedError(f"Import service returned an invalid result: {e.error_count()} validation error(s)") from e


def execute_import(client: ImportClient, request: ImportRequest) -> ImportResult:
    """Run the import; partial failures come back in the result, transport failures raise."""
    logger.info(
        "importing: %d exercises to create, %d to reuse, %d sets, %d notes",
        len(request.exercises_to_create),
        len(request.exercises_to_reuse),
        len(request.exercise_sets_to_create),
        len(request.clinical_notes_to_create),
    )
    result = client.import_data(request)
    if result.failed_count:
        logger.warning("import finished with %d failed item(s): %s", result.failed_count, result.message)
    else:
        logger.info("import finished: %d item(s) imported", result.imported_count)
    return result
