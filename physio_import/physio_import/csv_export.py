from __future__ import annotations

import csv
from typing import Any, Dict, Iterable, List, Optional

from .resolver import best_match
from .schema import ImportResult, WizardState


CSV_HEADERS = [
    "kind",
    "temp_id",
    "name",
    "action",
    "reuse_exercise_id",
    "best_match_id",
    "best_match_confidence",
    "backend_id",
    "error",
]


def _errors_by_temp_id(result: Optional[ImportResult]) -> Dict[str, str]:
    if result is None:
        return {}
    return {e.temp_id: e.message for e in result.errors if e.temp_id}


def decision_rows(state: WizardState) -> List[Dict[str, Any]]:
    """One row per extracted entity with its decision and, after import, its outcome."""
    result = state.analysis_result
    if result is None:
        return []
    imported = state.import_result
    errors = _errors_by_temp_id(imported)
    rows: List[Dict[str, Any]] = []

    for ex in result.exercises:
        d = state.exercise_decisions.get(ex.temp_id)
        best = best_match(result, ex.temp_id)
        backend_id = None
        if imported is not None:
            backend_id = imported.exercise_id_mapping.get(ex.temp_id)
        rows.append({
            "kind": "exercise",
            "temp_id": ex.temp_id,
            "name": ex.name,
            "action": d.action if d else "skip",
            "reuse_exercise_id": d.reuse_exercise_id if d else None,
            "best_match_id": best.existing_exercise_id if best else None,
            "best_match_confidence": best.confidence if best else None,
            "backend_id": backend_id,
            "error": errors.get(ex.temp_id),
        })

    for s in result.exercise_sets:
        d = state.set_decisions.get(s.temp_id)
        rows.append({
            "kind": "set",
            "temp_id": s.temp_id,
            "name": (d.edited_name if d else None) or s.name,
            "action": d.action if d else "skip",
            "backend_id": imported.exercise_set_id_mapping.get(s.temp_id) if imported else None,
            "error": errors.get(s.temp_id),
        })

    for n in result.clinical_notes:
        d = state.note_decisions.get(n.temp_id)
        rows.append({
            "kind": "note",
            "temp_id": n.temp_id,
            "name": n.title or n.note_type,
            "action": d.action if d else "skip",
            "backend_id": imported.clinical_note_id_mapping.get(n.temp_id) if imported else None,
            "error": errors.get(n.temp_id),
        })
    return rows


def to_csv(rows: Iterable[Dict[str, Any]], out_path: str) -> None:
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=CSV_HEADERS)
        w.writeheader()
        for row in rows:
            w.writerow(row)
