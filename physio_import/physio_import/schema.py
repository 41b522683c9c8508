from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


WizardStep = Literal["upload", "processing", "review-exercises", "review-sets", "summary"]
ExerciseAction = Literal["create", "reuse", "skip"]
EntityAction = Literal["create", "skip"]
ExerciseFilter = Literal["all", "create", "reuse", "skip", "matched"]
ExerciseType = Literal["reps", "time", "hold"]
ExerciseSide = Literal["none", "left", "right", "both", "alternating"]
NoteType = Literal["interview", "examination", "diagnosis", "procedure", "other"]

STEP_ORDER: List[str] = ["upload", "processing", "review-exercises", "review-sets", "summary"]


class WireModel(BaseModel):
    """Payload exchanged with the backend; camelCase on the wire, snake_case in Python."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "extra": "ignore"}

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class FrozenWireModel(WireModel):
    model_config = {**WireModel.model_config, "frozen": True}


# ---------- analysis result ----------

class DocumentInfo(FrozenWireModel):
    patient_name: Optional[str] = None
    date: Optional[str] = None
    therapist_name: Optional[str] = None
    clinic_name: Optional[str] = None
    document_type: Optional[str] = None


class ExtractedExercise(FrozenWireModel):
    temp_id: str
    name: str
    description: Optional[str] = None
    type: ExerciseType = "reps"
    sets: Optional[int] = None
    reps: Optional[int] = None
    duration: Optional[int] = None
    hold_time: Optional[int] = None
    rest_between_sets: Optional[int] = None
    rest_between_reps: Optional[int] = None
    exercise_side: Optional[ExerciseSide] = None
    suggested_tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    confidence: float = 0.0
    source_line_number: Optional[int] = None
    original_text: Optional[str] = None


class ExtractedSet(FrozenWireModel):
    temp_id: str
    name: str
    description: Optional[str] = None
    exercise_temp_ids: List[str] = Field(default_factory=list)
    suggested_frequency: Optional[str] = None
    confidence: float = 0.0


class ExtractedNote(FrozenWireModel):
    temp_id: str
    note_type: NoteType = "other"
    title: Optional[str] = None
    content: str
    points: List[str] = Field(default_factory=list)
    confidence: float = 0.0


class MatchCandidate(FrozenWireModel):
    existing_exercise_id: str
    existing_exercise_name: str = ""
    confidence: float = Field(ge=0.0, le=1.0)
    match_reason: str = ""
    image_url: Optional[str] = None


class AnalysisResult(FrozenWireModel):
    document_info: DocumentInfo = Field(default_factory=DocumentInfo)
    exercises: List[ExtractedExercise] = Field(default_factory=list)
    exercise_sets: List[ExtractedSet] = Field(default_factory=list)
    clinical_notes: List[ExtractedNote] = Field(default_factory=list)
    match_suggestions: Dict[str, List[MatchCandidate]] = Field(default_factory=dict)
    raw_text: Optional[str] = None

    @model_validator(mode="after")
    def validate_unique_temp_ids(self) -> "AnalysisResult":
        for label, items in (
            ("exercise", self.exercises),
            ("exercise set", self.exercise_sets),
            ("clinical note", self.clinical_notes),
        ):
            seen: set[str] = set()
            for item in items:
                if item.temp_id in seen:
                    raise ValueError(f"duplicate {label} tempId: {item.temp_id}")
                seen.add(item.temp_id)
        return self

    def exercise(self, temp_id: str) -> Optional[ExtractedExercise]:
        for ex in self.exercises:
            if ex.temp_id == temp_id:
                return ex
        return None

    def candidates(self, temp_id: str) -> List[MatchCandidate]:
        return list(self.match_suggestions.get(temp_id) or [])


# ---------- decisions ----------

class ExerciseEdits(WireModel):
    """Operator overrides for an exercise that will be created."""

    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[ExerciseType] = None
    sets: Optional[int] = None
    reps: Optional[int] = None
    duration: Optional[int] = None
    rest_between_sets: Optional[int] = None
    rest_between_reps: Optional[int] = None
    exercise_side: Optional[ExerciseSide] = None
    suggested_tags: Optional[List[str]] = None
    notes: Optional[str] = None

    model_config = {**WireModel.model_config, "extra": "forbid", "frozen": True}


class ExerciseDecision(FrozenWireModel):
    temp_id: str
    action: ExerciseAction
    reuse_exercise_id: Optional[str] = None
    edited_data: Optional[ExerciseEdits] = None


class ExerciseSetDecision(FrozenWireModel):
    temp_id: str
    action: EntityAction
    edited_name: Optional[str] = None
    edited_description: Optional[str] = None


class ClinicalNoteDecision(FrozenWireModel):
    temp_id: str
    action: EntityAction
    edited_content: Optional[str] = None


ExerciseDecisions = Dict[str, ExerciseDecision]
SetDecisions = Dict[str, ExerciseSetDecision]
NoteDecisions = Dict[str, ClinicalNoteDecision]


# ---------- import request / result ----------

class ExerciseImportItem(WireModel):
    temp_id: str
    name: str
    description: Optional[str] = None
    type: str
    sets: int
    reps: Optional[int] = None
    duration: Optional[int] = None
    rest_sets: Optional[int] = None
    rest_reps: Optional[int] = None
    exercise_side: Optional[str] = None
    tag_ids: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class ExerciseSetMappingImportItem(WireModel):
    exercise_temp_id: str
    order: int = Field(ge=1)
    sets: Optional[int] = None
    reps: Optional[int] = None
    duration: Optional[int] = None
    custom_name: Optional[str] = None
    notes: Optional[str] = None


class ExerciseSetImportItem(WireModel):
    temp_id: str
    name: str
    description: Optional[str] = None
    exercises: List[ExerciseSetMappingImportItem]
    is_template: bool = False


class ClinicalNoteImportItem(WireModel):
    temp_id: str
    note_type: str
    title: Optional[str] = None
    content: str


class ImportRequest(WireModel):
    patient_id: Optional[str] = None
    exercises_to_create: List[ExerciseImportItem] = Field(default_factory=list)
    exercises_to_reuse: Dict[str, str] = Field(default_factory=dict)
    exercise_sets_to_create: List[ExerciseSetImportItem] = Field(default_factory=list)
    clinical_notes_to_create: List[ClinicalNoteImportItem] = Field(default_factory=list)
    assign_to_patient: bool = False

    def is_empty(self) -> bool:
        return not (
            self.exercises_to_create
            or self.exercises_to_reuse
            or self.exercise_sets_to_create
            or self.clinical_notes_to_create
        )


class ImportItemError(WireModel):
    temp_id: Optional[str] = None
    message: str


class ImportResult(WireModel):
    success: bool
    message: str = ""
    exercises_created: int = 0
    exercises_reused: int = 0
    exercise_sets_created: int = 0
    clinical_notes_created: int = 0
    failed_count: Optional[int] = None
    exercise_id_mapping: Dict[str, str] = Field(default_factory=dict)
    exercise_set_id_mapping: Dict[str, str] = Field(default_factory=dict)
    clinical_note_id_mapping: Dict[str, str] = Field(default_factory=dict)
    errors: List[ImportItemError] = Field(default_factory=list)

    @field_validator("errors", mode="before")
    @classmethod
    def coerce_plain_errors(cls, value):
        # the backend reports errors as plain strings
        if isinstance(value, list):
            return [{"message": e} if isinstance(e, str) else e for e in value]
        return value

    @model_validator(mode="after")
    def default_failed_count(self) -> "ImportResult":
        if self.failed_count is None:
            self.failed_count = len(self.errors)
        return self

    @property
    def imported_count(self) -> int:
        return (
            self.exercises_created
            + self.exercises_reused
            + self.exercise_sets_created
            + self.clinical_notes_created
        )

    @property
    def attempted_count(self) -> int:
        return self.imported_count + (self.failed_count or 0)


# ---------- wizard ----------

class DocumentFile(FrozenWireModel):
    name: str
    size: int = Field(ge=0)
    path: Optional[str] = None

    @property
    def extension(self) -> str:
        if "." not in self.name:
            return ""
        return self.name.rsplit(".", 1)[-1].lower()


class WizardState(FrozenWireModel):
    step: WizardStep = "upload"
    file: Optional[DocumentFile] = None
    is_analyzing: bool = False
    is_importing: bool = False
    analysis_result: Optional[AnalysisResult] = None
    exercise_decisions: Dict[str, ExerciseDecision] = Field(default_factory=dict)
    set_decisions: Dict[str, ExerciseSetDecision] = Field(default_factory=dict)
    note_decisions: Dict[str, ClinicalNoteDecision] = Field(default_factory=dict)
    selected_patient_id: Optional[str] = None
    assign_sets_to_patient: bool = True
    exercise_filter: ExerciseFilter = "all"
    error: Optional[str] = None
    import_result: Optional[ImportResult] = None


class ImportStats(BaseModel):
    total_exercises: int = 0
    exercises_to_create: int = 0
    exercises_to_reuse: int = 0
    exercises_to_skip: int = 0
    exercises_with_matches: int = 0
    total_sets: int = 0
    sets_to_create: int = 0
    sets_to_skip: int = 0
    total_notes: int = 0
    notes_to_create: int = 0
    notes_to_skip: int = 0

    model_config = {"extra": "forbid"}


class ReviewCategories(BaseModel):
    confident: List[ExtractedExercise] = Field(default_factory=list)
    new: List[ExtractedExercise] = Field(default_factory=list)
    uncertain: List[ExtractedExercise] = Field(default_factory=list)
