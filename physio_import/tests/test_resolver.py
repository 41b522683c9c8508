from physio_import.resolver import best_match, initial_decisions, resolve_exercise
from physio_import.schema import AnalysisResult


def test_confident_match_defaults_to_reuse(analysis):
    exercises, _, _ = initial_decisions(analysis)
    assert exercises["e1"].action == "reuse"
    assert exercises["e1"].reuse_exercise_id == "ex-squat"


def test_weak_match_defaults_to_create(analysis):
    exercises, _, _ = initial_decisions(analysis)
    assert exercises["e2"].action == "create"
    assert exercises["e2"].reuse_exercise_id is None
    # 0.75 is below the auto-reuse threshold
    assert exercises["e6"].action == "create"


def test_unmatched_exercises_and_all_sets_notes_default_to_create(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    assert exercises["e3"].action == "create"
    assert set(sets) == {"s1", "s2", "s3"}
    assert all(d.action == "create" for d in sets.values())
    assert set(notes) == {"n1", "n2"}
    assert all(d.action == "create" for d in notes.values())


def test_threshold_is_inclusive():
    result = AnalysisResult.model_validate({
        "exercises": [{"tempId": "a", "name": "Row"}],
        "matchSuggestions": {"a": [{"existingExerciseId": "ex-row", "confidence": 0.8}]},
    })
    assert resolve_exercise(result, "a").action == "reuse"
    assert resolve_exercise(result, "a", reuse_threshold=0.81).action == "create"


def test_only_first_candidate_is_considered():
    # ordering from the analysis service is authoritative, even when not sorted
    result = AnalysisResult.model_validate({
        "exercises": [{"tempId": "a", "name": "Row"}],
        "matchSuggestions": {"a": [
            {"existingExerciseId": "ex-low", "confidence": 0.4},
            {"existingExerciseId": "ex-high", "confidence": 0.99},
        ]},
    })
    assert best_match(result, "a").existing_exercise_id == "ex-low"
    assert resolve_exercise(result, "a").action == "create"


def test_heuristic_is_idempotent(analysis):
    assert initial_decisions(analysis) == initial_decisions(analysis)
