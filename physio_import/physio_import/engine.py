from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Set

from .config import DEFAULT_EXERCISE_SETS
from .schema import (
    AnalysisResult,
    ClinicalNoteDecision,
    ClinicalNoteImportItem,
    ExerciseDecision,
    ExerciseEdits,
    ExerciseImportItem,
    ExerciseSetDecision,
    ExerciseSetImportItem,
    ExerciseSetMappingImportItem,
    ExtractedExercise,
    ExtractedSet,
    ImportRequest,
)


def live_exercise_ids(decisions: Mapping[str, ExerciseDecision]) -> Set[str]:
    """Temp ids that will resolve to a real exercise on the backend (created or reused)."""
    return {
        temp_id
        for temp_id, d in decisions.items()
        if d.action == "create" or (d.action == "reuse" and d.reuse_exercise_id)
    }


def _pick(edited, original):
    return edited if edited is not None else original


def _exercise_item(ex: ExtractedExercise, edits: Optional[ExerciseEdits], default_sets: int) -> ExerciseImportItem:
    e = edits or ExerciseEdits()
    return ExerciseImportItem(
        temp_id=ex.temp_id,
        name=e.name or ex.name,
        description=e.description or ex.description,
        type=e.type or ex.type,
        sets=e.sets or ex.sets or default_sets,
        reps=_pick(e.reps, ex.reps),
        duration=_pick(e.duration, ex.duration),
        rest_sets=_pick(e.rest_between_sets, ex.rest_between_sets),
        rest_reps=_pick(e.rest_between_reps, ex.rest_between_reps),
        exercise_side=e.exercise_side or ex.exercise_side,
        tag_ids=list(e.suggested_tags or ex.suggested_tags or []),
        notes=e.notes or ex.notes,
    )


def _set_item(
    ex_set: ExtractedSet, decision: ExerciseSetDecision, live: Set[str]
) -> Optional[ExerciseSetImportItem]:
    surviving = [temp_id for temp_id in ex_set.exercise_temp_ids if temp_id in live]
    if not surviving:
        return None
    return ExerciseSetImportItem(
        temp_id=ex_set.temp_id,
        name=decision.edited_name or ex_set.name,
        description=decision.edited_description or ex_set.description,
        exercises=[
            ExerciseSetMappingImportItem(exercise_temp_id=temp_id, order=index + 1)
            for index, temp_id in enumerate(surviving)
        ],
    )


def build_import_request(
    result: Optional[AnalysisResult],
    exercise_decisions: Mapping[str, ExerciseDecision],
    set_decisions: Mapping[str, ExerciseSetDecision],
    note_decisions: Mapping[str, ClinicalNoteDecision],
    selected_patient_id: Optional[str] = None,
    assign_sets_to_patient: bool = False,
    default_sets: int = DEFAULT_EXERCISE_SETS,
) -> ImportRequest:
    if result is None:
        return ImportRequest(patient_id=selected_patient_id)

    live = live_exercise_ids(exercise_decisions) & {ex.temp_id for ex in result.exercises}

    exercises_to_create: List[ExerciseImportItem] = []
    exercises_to_reuse: Dict[str, str] = {}
    for ex in result.exercises:
        if ex.temp_id not in live:
            continue
        decision = exercise_decisions[ex.temp_id]
        if decision.action == "reuse":
            exercises_to_reuse[ex.temp_id] = decision.reuse_exercise_id
        else:
            exercises_to_create.append(_exercise_item(ex, decision.edited_data, default_sets))

    sets_to_create: List[ExerciseSetImportItem] = []
    for ex_set in result.exercise_sets:
        set_decision = set_decisions.get(ex_set.temp_id)
        if set_decision is None or set_decision.action == "skip":
            continue
        item = _set_item(ex_set, set_decision, live)
        if item is not None:
            sets_to_create.append(item)

    notes_to_create: List[ClinicalNoteImportItem] = []
    if selected_patient_id:
        for note in result.clinical_notes:
            note_decision = note_decisions.get(note.temp_id)
            if note_decision is None or note_decision.action == "skip":
                continue
            notes_to_create.append(
                ClinicalNoteImportItem(
                    temp_id=note.temp_id,
                    note_type=note.note_type,
                    title=note.title,
                    content=note_decision.edited_content or note.content,
                )
            )

    return ImportRequest(
        patient_id=selected_patient_id,
        exercises_to_create=exercises_to_create,
        exercises_to_reuse=exercises_to_reuse,
        exercise_sets_to_create=sets_to_create,
        clinical_notes_to_create=notes_to_create,
        assign_to_patient=bool(assign_sets_to_patient and selected_patient_id),
    )
