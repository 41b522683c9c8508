import itertools

from physio_import.engine import build_import_request, live_exercise_ids
from physio_import.resolver import initial_decisions
from physio_import.schema import ClinicalNoteDecision, ExerciseDecision, ExerciseEdits, ExerciseSetDecision


def _decide(analysis, **overrides):
    exercises, sets, notes = initial_decisions(analysis)
    for temp_id, action in overrides.items():
        exercises[temp_id] = ExerciseDecision(temp_id=temp_id, action=action)
    return exercises, sets, notes


def test_skipped_exercise_is_removed_from_set_and_order_renumbered(analysis):
    exercises, sets, notes = _decide(analysis, e3="skip")
    req = build_import_request(analysis, exercises, sets, notes)
    s1 = next(s for s in req.exercise_sets_to_create if s.temp_id == "s1")
    assert [(m.exercise_temp_id, m.order) for m in s1.exercises] == [("e1", 1), ("e2", 2)]


def test_gap_in_the_middle_keeps_relative_order(analysis):
    exercises, sets, notes = _decide(analysis, e2="skip")
    req = build_import_request(analysis, exercises, sets, notes)
    s1 = next(s for s in req.exercise_sets_to_create if s.temp_id == "s1")
    assert [(m.exercise_temp_id, m.order) for m in s1.exercises] == [("e1", 1), ("e3", 2)]


def test_set_with_all_exercises_skipped_is_dropped(analysis):
    exercises, sets, notes = _decide(analysis, e4="skip")
    req = build_import_request(analysis, exercises, sets, notes)
    assert "s2" not in {s.temp_id for s in req.exercise_sets_to_create}


def test_set_without_exercises_is_never_sent(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    req = build_import_request(analysis, exercises, sets, notes)
    assert "s3" not in {s.temp_id for s in req.exercise_sets_to_create}
    assert {s.temp_id for s in req.exercise_sets_to_create} == {"s1", "s2"}


def test_skipped_set_is_not_sent(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    sets["s1"] = ExerciseSetDecision(temp_id="s1", action="skip")
    req = build_import_request(analysis, exercises, sets, notes)
    assert "s1" not in {s.temp_id for s in req.exercise_sets_to_create}


def test_notes_require_a_patient(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    req = build_import_request(analysis, exercises, sets, notes, selected_patient_id=None)
    assert req.clinical_notes_to_create == []

    req = build_import_request(analysis, exercises, sets, notes, selected_patient_id="p-1")
    assert [n.temp_id for n in req.clinical_notes_to_create] == ["n1", "n2"]
    assert req.patient_id == "p-1"


def test_note_edits_and_skips(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    notes["n1"] = ClinicalNoteDecision(temp_id="n1", action="create", edited_content="Knee pain for 4 weeks.")
    notes["n2"] = ClinicalNoteDecision(temp_id="n2", action="skip")
    req = build_import_request(analysis, exercises, sets, notes, selected_patient_id="p-1")
    assert len(req.clinical_notes_to_create) == 1
    note = req.clinical_notes_to_create[0]
    assert note.content == "Knee pain for 4 weeks."
    assert note.note_type == "interview"
    assert note.title == "History"


def test_assignment_requires_a_patient(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    assert build_import_request(analysis, exercises, sets, notes, None, assign_sets_to_patient=True).assign_to_patient is False
    assert build_import_request(analysis, exercises, sets, notes, "p-1", assign_sets_to_patient=True).assign_to_patient is True
    assert build_import_request(analysis, exercises, sets, notes, "p-1", assign_sets_to_patient=False).assign_to_patient is False


def test_reuse_goes_to_mapping_not_create_list(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    req = build_import_request(analysis, exercises, sets, notes)
    assert req.exercises_to_reuse == {"e1": "ex-squat"}
    assert "e1" not in {e.temp_id for e in req.exercises_to_create}


def test_create_item_defaults(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    req = build_import_request(analysis, exercises, sets, notes)
    items = {e.temp_id: e for e in req.exercises_to_create}

    assert items["e2"].sets == 3
    assert items["e2"].reps == 15
    assert items["e2"].tag_ids == []
    assert items["e4"].reps is None
    assert items["e4"].duration is None
    assert items["e5"].duration == 30
    assert items["e5"].rest_sets == 60
    assert items["e5"].rest_reps is None
    assert items["e3"].sets == 2
    assert items["e3"].exercise_side == "both"


def test_default_sets_is_configurable(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    req = build_import_request(analysis, exercises, sets, notes, default_sets=5)
    assert {e.temp_id: e.sets for e in req.exercises_to_create}["e4"] == 5


def test_edited_data_overrides_extraction(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    exercises["e1"] = ExerciseDecision(
        temp_id="e1",
        action="create",
        edited_data=ExerciseEdits(name="Goblet squat", sets=5, reps=0, suggested_tags=["tag-strength"]),
    )
    req = build_import_request(analysis, exercises, sets, notes)
    item = next(e for e in req.exercises_to_create if e.temp_id == "e1")
    assert item.name == "Goblet squat"
    assert item.sets == 5
    # an explicit zero is still an edit for pass-through fields
    assert item.reps == 0
    assert item.tag_ids == ["tag-strength"]
    assert "e1" not in req.exercises_to_reuse


def test_set_edits(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    sets["s1"] = ExerciseSetDecision(temp_id="s1", action="create", edited_name="Knee rehab", edited_description=None)
    req = build_import_request(analysis, exercises, sets, notes)
    s1 = next(s for s in req.exercise_sets_to_create if s.temp_id == "s1")
    assert s1.name == "Knee rehab"
    assert s1.description == "Weeks 1-2"
    assert s1.is_template is False


def test_no_analysis_gives_empty_request():
    req = build_import_request(None, {}, {}, {}, selected_patient_id="p-1", assign_sets_to_patient=True)
    assert req.is_empty()
    assert req.assign_to_patient is False


def test_builder_is_pure(analysis):
    exercises, sets, notes = _decide(analysis, e2="skip")
    before = dict(exercises)
    first = build_import_request(analysis, exercises, sets, notes, "p-1", True)
    second = build_import_request(analysis, exercises, sets, notes, "p-1", True)
    assert first == second
    assert exercises == before


def test_every_set_reference_resolves(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    choices = {
        "e1": ["create", "reuse", "skip"],
        "e2": ["create", "reuse", "skip"],
        "e3": ["create", "skip"],
        "e4": ["create", "skip"],
    }
    reuse_ids = {"e1": "ex-squat", "e2": "ex-bridge"}
    for combo in itertools.product(*choices.values()):
        decided = dict(exercises)
        for temp_id, action in zip(choices, combo):
            decided[temp_id] = ExerciseDecision(
                temp_id=temp_id, action=action, reuse_exercise_id=reuse_ids.get(temp_id) if action == "reuse" else None
            )
        req = build_import_request(analysis, decided, sets, notes)
        resolvable = {e.temp_id for e in req.exercises_to_create} | set(req.exercises_to_reuse)
        sent = {s.temp_id for s in req.exercise_sets_to_create}
        for s in req.exercise_sets_to_create:
            assert s.exercises
            assert {m.exercise_temp_id for m in s.exercises} <= resolvable
            assert [m.order for m in s.exercises] == list(range(1, len(s.exercises) + 1))
        for ex_set in analysis.exercise_sets:
            if not any(decided[t].action != "skip" for t in ex_set.exercise_temp_ids):
                assert ex_set.temp_id not in sent


def test_live_exercise_ids_requires_reuse_target():
    decisions = {
        "a": ExerciseDecision(temp_id="a", action="create"),
        "b": ExerciseDecision(temp_id="b", action="reuse", reuse_exercise_id="ex-b"),
        "c": ExerciseDecision(temp_id="c", action="reuse"),
        "d": ExerciseDecision(temp_id="d", action="skip"),
    }
    assert live_exercise_ids(decisions) == {"a", "b"}


def test_wire_format_is_camel_case(analysis):
    exercises, sets, notes = initial_decisions(analysis)
    wire = build_import_request(analysis, exercises, sets, notes, "p-1", True).to_wire()
    assert set(wire) == {
        "patientId",
        "exercisesToCreate",
        "exercisesToReuse",
        "exerciseSetsToCreate",
        "clinicalNotesToCreate",
        "assignToPatient",
    }
    assert wire["exerciseSetsToCreate"][0]["exercises"][0] == {"exerciseTempId": "e1", "order": 1}
    assert "tagIds" in wire["exercisesToCreate"][0]
