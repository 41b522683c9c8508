from __future__ import annotations

from typing import Optional, Tuple

from .config import AUTO_REUSE_CONFIDENCE
from .schema import (
    AnalysisResult,
    ClinicalNoteDecision,
    ExerciseDecision,
    ExerciseDecisions,
    ExerciseSetDecision,
    MatchCandidate,
    NoteDecisions,
    SetDecisions,
)


def best_match(result: AnalysisResult, temp_id: str) -> Optional[MatchCandidate]:
    # suggestions arrive best-first; ties keep the analysis service's order
    candidates = result.match_suggestions.get(temp_id) or []
    return candidates[0] if candidates else None


def resolve_exercise(result: AnalysisResult, temp_id: str, reuse_threshold: float = AUTO_REUSE_CONFIDENCE) -> ExerciseDecision:
    best = best_match(result, temp_id)
    if best is not None and best.confidence >= reuse_threshold:
        return ExerciseDecision(temp_id=temp_id, action="reuse", reuse_exercise_id=best.existing_exercise_id)
    return ExerciseDecision(temp_id=temp_id, action="create")


def initial_decisions(
    result: AnalysisResult, reuse_threshold: float = AUTO_REUSE_CONFIDENCE
) -> Tuple[ExerciseDecisions, SetDecisions, NoteDecisions]:
    exercises: ExerciseDecisions = {
        ex.temp_id: resolve_exercise(result, ex.temp_id, reuse_threshold) for ex in result.exercises
    }
    sets: SetDecisions = {s.temp_id: ExerciseSetDecision(temp_id=s.temp_id, action="create") for s in result.exercise_sets}
    notes: NoteDecisions = {
        n.temp_id: ClinicalNoteDecision(temp_id=n.temp_id, action="create") for n in result.clinical_notes
    }
    return exercises, sets, notes
