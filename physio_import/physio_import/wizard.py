"""
Import wizard state machine.

The wizard owns a frozen WizardState and replaces it on every operation;
nothing else writes to it. Steps are strictly linear:

    upload -> processing -> review-exercises -> review-sets -> summary

Only two operations call out of process: analyze_document/analyze_text
(analysis boundary) and execute_import (persistence boundary). Both are
guarded by the is_analyzing / is_importing flags and convert every boundary
failure into state.error instead of raising.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Sequence, get_args

from .analyzer import DocumentAnalyzer, validate_document
from .config import Settings
from .engine import build_import_request
from .errors import AnalysisError, FileValidationError, InvalidDecisionError, PipelineError, WizardBusyError
from .importer import ImportClient, execute_import
from .matching import PatientOption, suggest_patient
from .resolver import best_match, initial_decisions
from .schema import (
    STEP_ORDER,
    AnalysisResult,
    ClinicalNoteDecision,
    DocumentFile,
    ExerciseDecision,
    ExerciseFilter,
    ExerciseSetDecision,
    ExtractedExercise,
    ImportRequest,
    ImportResult,
    ImportStats,
    ReviewCategories,
    WizardState,
)
from .views import (
    categorize_exercises,
    compute_stats,
    filter_exercises,
    set_all_exercises_create,
    set_all_exercises_skip,
    use_all_matched_exercises,
)


logger = logging.getLogger(__name__)

Listener = Callable[[WizardState], None]


class ImportWizard:
    def __init__(
        self,
        analyzer: Optional[DocumentAnalyzer] = None,
        import_client: Optional[ImportClient] = None,
        settings: Optional[Settings] = None,
        state: Optional[WizardState] = None,
    ):
        self.analyzer = analyzer
        self.import_client = import_client
        self.settings = settings or Settings()
        self._state = state or WizardState()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> WizardState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener with every committed state; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        # a failing listener must not interrupt a state transition
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("wizard state listener failed")

    def _commit(self, **changes: Any) -> WizardState:
        self._state = self._state.model_copy(update=changes)
        self._notify()
        return self._state

    def _ensure_idle(self) -> None:
        if self._state.is_analyzing or self._state.is_importing:
            raise WizardBusyError("Another operation is still in progress")

    # ---------- inputs ----------

    def set_file(self, file: Optional[DocumentFile]) -> None:
        self._commit(
            file=file,
            error=None,
            analysis_result=None,
            exercise_decisions={},
            set_decisions={},
            note_decisions={},
            import_result=None,
        )

    def set_patient_id(self, patient_id: Optional[str]) -> None:
        self._commit(selected_patient_id=patient_id or None)

    def set_assign_sets_to_patient(self, assign: bool) -> None:
        self._commit(assign_sets_to_patient=bool(assign))

    def set_exercise_filter(self, exercise_filter: str) -> None:
        if exercise_filter not in get_args(ExerciseFilter):
            raise ValueError(f"unknown exercise filter: {exercise_filter}")
        self._commit(exercise_filter=exercise_filter)

    def suggested_patient(self, patients: Sequence[PatientOption]) -> Optional[PatientOption]:
        result = self._state.analysis_result
        if result is None:
            return None
        return suggest_patient(result.document_info.patient_name, patients)

    # ---------- analysis ----------

    def analyze_document(self, additional_context: Optional[str] = None) -> bool:
        self._ensure_idle()
        try:
            file = validate_document(self._state.file, self.settings)
        except FileValidationError as e:
            self._commit(error=str(e))
            return False
        patient_id = self._state.selected_patient_id
        return self._run_analysis(
            lambda analyzer: analyzer.analyze_document(file, patient_id, additional_context)
        )

    def analyze_text(self, text: str, additional_context: Optional[str] = None) -> bool:
        self._ensure_idle()
        if not text or not text.strip():
            self._commit(error="Enter text to analyze")
            return False
        patient_id = self._state.selected_patient_id
        return self._run_analysis(lambda analyzer: analyzer.analyze_text(text, patient_id, additional_context))

    def _run_analysis(self, call: Callable[[DocumentAnalyzer], AnalysisResult]) -> bool:
        self._commit(step="processing", is_analyzing=True, error=None)
        try:
            if self.analyzer is None:
                raise AnalysisError("No document analysis service configured")
            result = call(self.analyzer)
        except PipelineError as e:
            logger.warning("document analysis failed: %s", e)
            self._commit(step="upload", is_analyzing=False, error=str(e) or "Document analysis failed")
            return False
        except Exception as e:
            logger.exception("unexpected error during document analysis")
            self._commit(step="upload", is_analyzing=False, error=f"Document analysis failed: {e}")
            return False

        exercises, sets, notes = initial_decisions(result, self.settings.reuse_threshold)
        self._commit(
            step="review-exercises",
            is_analyzing=False,
            analysis_result=result,
            exercise_decisions=exercises,
            set_decisions=sets,
            note_decisions=notes,
            import_result=None,
        )
        return True

    # ---------- decisions ----------

    def _result_or_raise(self) -> AnalysisResult:
        if self._state.analysis_result is None:
            raise InvalidDecisionError("No analysis result to decide on")
        return self._state.analysis_result

    def update_exercise_decision(self, temp_id: str, **changes: Any) -> ExerciseDecision:
        result = self._result_or_raise()
        if result.exercise(temp_id) is None:
            raise InvalidDecisionError(f"unknown exercise: {temp_id}")
        previous = self._state.exercise_decisions.get(temp_id)
        base = previous.model_dump() if previous else {"action": "create"}
        decision = ExerciseDecision.model_validate({**base, **changes, "temp_id": temp_id})

        if decision.action == "reuse":
            candidate_ids = [c.existing_exercise_id for c in result.candidates(temp_id)]
            reuse_id = decision.reuse_exercise_id
            if reuse_id is None and "reuse_exercise_id" not in changes:
                best = best_match(result, temp_id)
                reuse_id = best.existing_exercise_id if best else None
            if reuse_id is None or reuse_id not in candidate_ids:
                raise InvalidDecisionError(f"exercise {temp_id} has no match suggestion {reuse_id!r} to reuse")
            decision = decision.model_copy(update={"reuse_exercise_id": reuse_id})
        elif decision.reuse_exercise_id is not None:
            decision = decision.model_copy(update={"reuse_exercise_id": None})

        self._commit(exercise_decisions={**self._state.exercise_decisions, temp_id: decision})
        return decision

    def update_set_decision(self, temp_id: str, **changes: Any) -> ExerciseSetDecision:
        result = self._result_or_raise()
        if temp_id not in {s.temp_id for s in result.exercise_sets}:
            raise InvalidDecisionError(f"unknown exercise set: {temp_id}")
        previous = self._state.set_decisions.get(temp_id)
        base = previous.model_dump() if previous else {"action": "create"}
        decision = ExerciseSetDecision.model_validate({**base, **changes, "temp_id": temp_id})
        self._commit(set_decisions={**self._state.set_decisions, temp_id: decision})
        return decision

    def update_note_decision(self, temp_id: str, **changes: Any) -> ClinicalNoteDecision:
        result = self._result_or_raise()
        if temp_id not in {n.temp_id for n in result.clinical_notes}:
            raise InvalidDecisionError(f"unknown clinical note: {temp_id}")
        previous = self._state.note_decisions.get(temp_id)
        base = previous.model_dump() if previous else {"action": "create"}
        decision = ClinicalNoteDecision.model_validate({**base, **changes, "temp_id": temp_id})
        self._commit(note_decisions={**self._state.note_decisions, temp_id: decision})
        return decision

    def set_all_exercises_create(self) -> None:
        self._commit(exercise_decisions=set_all_exercises_create(self._result_or_raise()))

    def set_all_exercises_skip(self) -> None:
        self._commit(exercise_decisions=set_all_exercises_skip(self._result_or_raise()))

    def use_all_matched_exercises(self) -> None:
        result = self._result_or_raise()
        self._commit(exercise_decisions=use_all_matched_exercises(result, self._state.exercise_decisions))

    # ---------- derived views ----------

    @property
    def stats(self) -> ImportStats:
        s = self._state
        return compute_stats(s.analysis_result, s.exercise_decisions, s.set_decisions, s.note_decisions)

    @property
    def filtered_exercises(self) -> List[ExtractedExercise]:
        s = self._state
        return filter_exercises(s.analysis_result, s.exercise_decisions, s.exercise_filter)

    @property
    def review_categories(self) -> ReviewCategories:
        return categorize_exercises(self._state.analysis_result, self.settings.confident_threshold)

    @property
    def notes_need_patient(self) -> bool:
        """Notes are marked for import but will be dropped because no patient is selected."""
        return self.stats.notes_to_create > 0 and not self._state.selected_patient_id

    # ---------- navigation ----------

    @property
    def can_proceed(self) -> bool:
        s = self._state
        if s.step == "upload":
            return s.file is not None
        if s.step == "processing":
            return False
        if s.step == "review-exercises":
            stats = self.stats
            return stats.exercises_to_create + stats.exercises_to_reuse > 0
        if s.step == "review-sets":
            return True
        if s.step == "summary":
            return bool(s.import_result and s.import_result.success)
        return False

    def go_to_step(self, step: str) -> None:
        if step not in STEP_ORDER:
            raise ValueError(f"unknown step: {step}")
        self._commit(step=step)

    def go_next(self) -> None:
        index = STEP_ORDER.index(self._state.step)
        if index < len(STEP_ORDER) - 1:
            self._commit(step=STEP_ORDER[index + 1])

    def go_back(self) -> None:
        index = STEP_ORDER.index(self._state.step)
        if index > 0:
            self._commit(step=STEP_ORDER[index - 1])

    # ---------- import ----------

    def build_import_request(self) -> ImportRequest:
        s = self._state
        return build_import_request(
            s.analysis_result,
            s.exercise_decisions,
            s.set_decisions,
            s.note_decisions,
            selected_patient_id=s.selected_patient_id,
            assign_sets_to_patient=s.assign_sets_to_patient,
            default_sets=self.settings.default_sets,
        )

    def execute_import(self) -> Optional[ImportResult]:
        self._ensure_idle()
        self._commit(is_importing=True, error=None)
        try:
            if self.import_client is None:
                raise PipelineError("No import service configured")
            result = execute_import(self.import_client, self.build_import_request())
        except PipelineError as e:
            logger.warning("import failed: %s", e)
            self._commit(is_importing=False, error=str(e) or "Import failed")
            return None
        except Exception as e:
            logger.exception("unexpected error during import")
            self._commit(is_importing=False, error=f"Import failed: {e}")
            return None

        self._commit(is_importing=False, import_result=result, step="summary")
        return result

    def reset(self) -> None:
        self._state = WizardState()
        self._notify()
