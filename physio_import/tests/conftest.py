from typing import List, Optional

import pytest

from physio_import.errors import ImportTransportError
from physio_import.schema import AnalysisResult, ImportRequest, ImportResult


def _analysis_payload() -> dict:
    return {
        "documentInfo": {"patientName": "Anna Kowalska", "date": "2026-03-02", "therapistName": "J. Nowak"},
        "exercises": [
            {"tempId": "e1", "name": "Squat", "type": "reps", "sets": 4, "reps": 12, "suggestedTags": ["tag-legs"], "confidence": 0.9},
            {"tempId": "e2", "name": "Glute bridge", "type": "reps", "reps": 15, "confidence": 0.8},
            {"tempId": "e3", "name": "Clamshell", "type": "reps", "sets": 2, "reps": 10, "exerciseSide": "both", "confidence": 0.7},
            {"tempId": "e4", "name": "Heel raise", "type": "reps", "confidence": 0.6},
            {"tempId": "e5", "name": "Plank", "type": "time", "duration": 30, "restBetweenSets": 60, "confidence": 0.95},
            {"tempId": "e6", "name": "Forward lunge", "type": "reps", "reps": 8, "confidence": 0.85},
        ],
        "exerciseSets": [
            {"tempId": "s1", "name": "Knee programme", "description": "Weeks 1-2", "exerciseTempIds": ["e1", "e2", "e3"]},
            {"tempId": "s2", "name": "Calf programme", "exerciseTempIds": ["e4"]},
            {"tempId": "s3", "name": "Empty programme", "exerciseTempIds": []},
        ],
        "clinicalNotes": [
            {"tempId": "n1", "noteType": "interview", "title": "History", "content": "Knee pain for 3 weeks."},
            {"tempId": "n2", "noteType": "diagnosis", "content": "Patellofemoral pain syndrome."},
        ],
        "matchSuggestions": {
            "e1": [
                {"existingExerciseId": "ex-squat", "existingExerciseName": "Bodyweight squat", "confidence": 0.92, "matchReason": "same name"},
                {"existingExerciseId": "ex-box-squat", "existingExerciseName": "Box squat", "confidence": 0.6, "matchReason": "similar"},
            ],
            "e2": [
                {"existingExerciseId": "ex-bridge", "existingExerciseName": "Bridge", "confidence": 0.5, "matchReason": "similar"},
            ],
            "e6": [
                {"existingExerciseId": "ex-lunge", "existingExerciseName": "Lunge", "confidence": 0.75, "matchReason": "similar"},
            ],
        },
    }


@pytest.fixture
def analysis_payload() -> dict:
    return _analysis_payload()


@pytest.fixture
def analysis() -> AnalysisResult:
    return AnalysisResult.model_validate(_analysis_payload())


class FakeAnalyzer:
    def __init__(self, result: Optional[AnalysisResult] = None, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: List[tuple] = []

    def _answer(self):
        if self.error is not None:
            raise self.error
        return self.result

    def analyze_document(self, file, patient_id=None, additional_context=None):
        self.calls.append(("document", file.name, patient_id, additional_context))
        return self._answer()

    def analyze_text(self, text, patient_id=None, additional_context=None):
        self.calls.append(("text", text, patient_id, additional_context))
        return self._answer()


class FakeImportClient:
    def __init__(self, result: Optional[ImportResult] = None, error: Optional[Exception] = None):
        self.result = result or ImportResult(success=True, message="Imported")
        self.error = error
        self.requests: List[ImportRequest] = []

    def import_data(self, request: ImportRequest) -> ImportResult:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def fake_analyzer(analysis) -> FakeAnalyzer:
    return FakeAnalyzer(result=analysis)


@pytest.fixture
def fake_import_client() -> FakeImportClient:
    return FakeImportClient()


@pytest.fixture
def unreachable_import_client() -> FakeImportClient:
    return FakeImportClient(error=ImportTransportError("Import service unreachable: connection refused"))


@pytest.fixture
def analyzer_factory():
    return FakeAnalyzer


@pytest.fixture
def import_client_factory():
    return FakeImportClient
