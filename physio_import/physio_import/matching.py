"""
Fuzzy name matching used to propose catalog exercises and patients.

Scores are on a 0-100 scale: exact match 100, containment 80, otherwise
word overlap scaled to at most 70.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel

from .schema import MatchCandidate


PATIENT_SUGGESTION_MIN_SCORE = 50
CATALOG_MATCH_MIN_SCORE = 40


class CatalogExercise(BaseModel):
    id: str
    name: str
    image_url: Optional[str] = None


class PatientOption(BaseModel):
    id: str
    fullname: str
    email: Optional[str] = None


def fuzzy_score(query: str, target: str) -> int:
    if not query or not target:
        return 0
    q = query.lower().strip()
    t = target.lower().strip()
    if not q or not t:
        return 0
    if q == t:
        return 100
    if q in t or t in q:
        return 80

    q_words = q.split()
    t_words = t.split()
    matched = sum(1 for qw in q_words if any(tw in qw or qw in tw for tw in t_words))
    if matched:
        return round(matched / max(len(q_words), len(t_words)) * 70)
    return 0


def rank_candidates(
    name: str,
    catalog: Iterable[CatalogExercise],
    limit: int = 3,
    min_score: int = CATALOG_MATCH_MIN_SCORE,
) -> List[MatchCandidate]:
    """Best-first match candidates for an extracted exercise name; ties keep catalog order."""
    scored = []
    for item in catalog:
        score = fuzzy_score(name, item.name)
        if score >= min_score:
            scored.append((score, item))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [
        MatchCandidate(
            existing_exercise_id=item.id,
            existing_exercise_name=item.name,
            confidence=score / 100.0,
            match_reason="exact name" if score == 100 else "similar name",
            image_url=item.image_url,
        )
        for score, item in scored[:limit]
    ]


def suggest_patient(detected_name: Optional[str], patients: Sequence[PatientOption]) -> Optional[PatientOption]:
    if not detected_name or not patients:
        return None
    best: Optional[PatientOption] = None
    best_score = 0
    for patient in patients:
        score = fuzzy_score(detected_name, patient.fullname)
        if score > best_score and score >= PATIENT_SUGGESTION_MIN_SCORE:
            best_score = score
            best = patient
    return best


def search_patients(query: str, patients: Sequence[PatientOption]) -> List[PatientOption]:
    if not query.strip():
        return list(patients)
    scored = []
    for patient in patients:
        score = fuzzy_score(query, patient.fullname)
        if patient.email:
            score += fuzzy_score(query, patient.email) * 0.5
        if score > 20:
            scored.append((score, patient))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [p for _, p in scored]
