from __future__ import annotations

from collections import Counter
from typing import List, Mapping, Optional

from .config import CONFIDENT_MATCH_THRESHOLD
from .resolver import best_match
from .schema import (
    AnalysisResult,
    ClinicalNoteDecision,
    ExerciseDecision,
    ExerciseDecisions,
    ExerciseSetDecision,
    ExtractedExercise,
    ImportStats,
    ReviewCategories,
)


def _has_match(result: AnalysisResult, temp_id: str) -> bool:
    return bool(result.match_suggestions.get(temp_id))


def _action_counts(temp_ids: List[str], decisions: Mapping[str, object]) -> Counter:
    # an entity without a decision is never sent, so it counts as skipped
    return Counter(getattr(decisions.get(t), "action", "skip") for t in temp_ids)


def compute_stats(
    result: Optional[AnalysisResult],
    exercise_decisions: Mapping[str, ExerciseDecision],
    set_decisions: Mapping[str, ExerciseSetDecision],
    note_decisions: Mapping[str, ClinicalNoteDecision],
) -> ImportStats:
    if result is None:
        return ImportStats()

    ex = _action_counts([e.temp_id for e in result.exercises], exercise_decisions)
    sets = _action_counts([s.temp_id for s in result.exercise_sets], set_decisions)
    notes = _action_counts([n.temp_id for n in result.clinical_notes], note_decisions)

    return ImportStats(
        total_exercises=len(result.exercises),
        exercises_to_create=ex["create"],
        exercises_to_reuse=ex["reuse"],
        exercises_to_skip=ex["skip"],
        exercises_with_matches=sum(1 for e in result.exercises if _has_match(result, e.temp_id)),
        total_sets=len(result.exercise_sets),
        sets_to_create=sets["create"],
        sets_to_skip=sets["skip"],
        total_notes=len(result.clinical_notes),
        notes_to_create=notes["create"],
        notes_to_skip=notes["skip"],
    )


def filter_exercises(
    result: Optional[AnalysisResult],
    exercise_decisions: Mapping[str, ExerciseDecision],
    exercise_filter: str = "all",
) -> List[ExtractedExercise]:
    if result is None:
        return []
    if exercise_filter == "all":
        return list(result.exercises)
    if exercise_filter == "matched":
        return [e for e in result.exercises if _has_match(result, e.temp_id)]
    return [
        e
        for e in result.exercises
        if getattr(exercise_decisions.get(e.temp_id), "action", None) == exercise_filter
    ]


def categorize_exercises(result: Optional[AnalysisResult], threshold: float = CONFIDENT_MATCH_THRESHOLD) -> ReviewCategories:
    """Split exercises for review: confident match, brand new, or a match that needs attention."""
    categories = ReviewCategories()
    if result is None:
        return categories
    for ex in result.exercises:
        best = best_match(result, ex.temp_id)
        if best is None:
            categories.new.append(ex)
        elif best.confidence >= threshold:
            categories.confident.append(ex)
        else:
            categories.uncertain.append(ex)
    return categories


# ---------- bulk mutators ----------

def set_all_exercises_create(result: AnalysisResult) -> ExerciseDecisions:
    return {e.temp_id: ExerciseDecision(temp_id=e.temp_id, action="create") for e in result.exercises}


def set_all_exercises_skip(result: AnalysisResult) -> ExerciseDecisions:
    return {e.temp_id: ExerciseDecision(temp_id=e.temp_id, action="skip") for e in result.exercises}


def use_all_matched_exercises(result: AnalysisResult, current: Mapping[str, ExerciseDecision]) -> ExerciseDecisions:
    """Adopt the best suggestion for every matched exercise still marked for creation.

    Explicit skips and already chosen reuse targets are kept.
    """
    decisions: ExerciseDecisions = dict(current)
    for e in result.exercises:
        best = best_match(result, e.temp_id)
        previous = decisions.get(e.temp_id)
        if best is None or (previous is not None and previous.action != "create"):
            continue
        decisions[e.temp_id] = ExerciseDecision(
            temp_id=e.temp_id, action="reuse", reuse_exercise_id=best.existing_exercise_id
        )
    return decisions
