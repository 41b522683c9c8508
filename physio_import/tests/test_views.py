from physio_import.resolver import initial_decisions
from physio_import.schema import ExerciseDecision
from physio_import.views import (
    categorize_exercises,
    compute_stats,
    filter_exercises,
    set_all_exercises_create,
    set_all_exercises_skip,
    use_all_matched_exercises,
)


def test_stats_reconcile_with_extracted_totals(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    exercises["e4"] = ExerciseDecision(temp_id="e4", action="skip")
    stats = compute_stats(analysis, exercises, sets, notes)

    assert stats.total_exercises == 6
    assert (stats.exercises_to_create, stats.exercises_to_reuse, stats.exercises_to_skip) == (4, 1, 1)
    assert stats.exercises_to_create + stats.exercises_to_reuse + stats.exercises_to_skip == stats.total_exercises
    assert stats.sets_to_create + stats.sets_to_skip == stats.total_sets == 3
    assert stats.notes_to_create + stats.notes_to_skip == stats.total_notes == 2


def test_matched_count_is_independent_of_action(analysis):
    exercises = set_all_exercises_skip(analysis)
    stats = compute_stats(analysis, exercises, {}, {})
    assert stats.exercises_with_matches == 3
    assert stats.exercises_to_skip == 6


def test_missing_decisions_count_as_skipped(analysis):
    stats = compute_stats(analysis, {}, {}, {})
    assert stats.exercises_to_skip == stats.total_exercises
    assert stats.sets_to_skip == stats.total_sets
    assert stats.notes_to_skip == stats.total_notes


def test_stats_without_analysis_are_zero():
    assert compute_stats(None, {}, {}, {}).total_exercises == 0


def test_filter_view(analysis):
    exercises, _, _ = initial_decisions(analysis)
    exercises["e3"] = ExerciseDecision(temp_id="e3", action="skip")

    def ids(f):
        return [e.temp_id for e in filter_exercises(analysis, exercises, f)]

    assert ids("all") == ["e1", "e2", "e3", "e4", "e5", "e6"]
    assert ids("reuse") == ["e1"]
    assert ids("skip") == ["e3"]
    assert ids("create") == ["e2", "e4", "e5", "e6"]
    assert ids("matched") == ["e1", "e2", "e6"]


def test_filter_view_does_not_mutate(analysis):
    exercises, _, _ = initial_decisions(analysis)
    snapshot = dict(exercises)
    filter_exercises(analysis, exercises, "skip")
    assert exercises == snapshot


def test_review_categories(analysis):
    categories = categorize_exercises(analysis)
    assert [e.temp_id for e in categories.confident] == ["e1", "e6"]
    assert [e.temp_id for e in categories.uncertain] == ["e2"]
    assert [e.temp_id for e in categories.new] == ["e3", "e4", "e5"]


def test_set_all_create_clears_reuse_targets(analysis):
    decisions = set_all_exercises_create(analysis)
    assert set(decisions) == {e.temp_id for e in analysis.exercises}
    assert all(d.action == "create" and d.reuse_exercise_id is None for d in decisions.values())


def test_set_all_skip(analysis):
    decisions = set_all_exercises_skip(analysis)
    assert all(d.action == "skip" for d in decisions.values())


def test_use_all_matched_keeps_manual_choices(analysis):
    exercises, _, _ = initial_decisions(analysis)
    exercises["e1"] = ExerciseDecision(temp_id="e1", action="skip")
    exercises["e5"] = ExerciseDecision(temp_id="e5", action="create")

    updated = use_all_matched_exercises(analysis, exercises)

    assert updated["e1"] == exercises["e1"]
    assert updated["e5"] == exercises["e5"]
    assert updated["e2"].action == "reuse"
    assert updated["e2"].reuse_exercise_id == "ex-bridge"
    assert updated["e6"].reuse_exercise_id == "ex-lunge"
    assert updated["e3"].action == "create"
    # input map is left alone
    assert exercises["e2"].action == "create"


def test_use_all_matched_keeps_chosen_reuse_target(analysis):
    exercises, _, _ = initial_decisions(analysis)
    exercises["e1"] = ExerciseDecision(temp_id="e1", action="reuse", reuse_exercise_id="ex-box-squat")
    updated = use_all_matched_exercises(analysis, exercises)
    assert updated["e1"].reuse_exercise_id == "ex-box-squat"
