from __future__ import annotations

import json
from pathlib import Path
from typing import List

from .matching import CatalogExercise, PatientOption
from .schema import AnalysisResult


def _load_list(path: str | Path, key: str) -> list:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"file not found: {path}")
    with p.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get(key, [])
    return data


def load_catalog(path: str | Path) -> List[CatalogExercise]:
    """Existing exercises, either a JSON list or {"exercises": [...]}."""
    return [CatalogExercise(**item) for item in _load_list(path, "exercises")]


def load_patients(path: str | Path) -> List[PatientOption]:
    return [PatientOption(**item) for item in _load_list(path, "patients")]


def load_analysis_result(path: str | Path) -> AnalysisResult:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"analysis file not found: {path}")
    return AnalysisResult.model_validate_json(p.read_text(encoding="utf-8"))
