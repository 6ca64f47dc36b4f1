from __future__ import annotations
import re
from typing import List
from pydantic import BaseModel, Field, ValidationError

# leading outline numbering such as "1.", "2.3 ", "IV)"
_NUMBERING_RE = re.compile(r"^\s*(?:\d+(?:\.\d+)*[.)\-:]?|[IVXLC]+[.)\-:])\s+")


class SuggestionError(ValueError):
    """The text service answered with something that is not a title list."""


class SubjectList(BaseModel):
    subjects: List[str] = Field(default_factory=list)


class SubtopicList(BaseModel):
    subtopics: List[str] = Field(default_factory=list)


def clean_titles(titles: List[str]) -> List[str]:
    out: List[str] = []
    seen = set()
    for raw in titles:
        title = _NUMBERING_RE.sub("", str(raw)).strip()
        if not title or title.lower() in seen:
            continue
        seen.add(title.lower())
        out.append(title)
    return out


def parse_subject_titles(response_text: str) -> List[str]:
    """
    Read a {"subjects": [...]} JSON answer into clean, de-duplicated titles,
    ready for StudyStore.import_subjects.
    """
    try:
        payload = SubjectList.model_validate_json(response_text or "{}")
    except ValidationError as e:
        raise SuggestionError(f"Unexpected subject list: {e}") from e
    return clean_titles(payload.subjects)


def parse_subtopic_titles(response_text: str) -> List[str]:
    try:
        payload = SubtopicList.model_validate_json(response_text or "{}")
    except ValidationError as e:
        raise SuggestionError(f"Unexpected subtopic list: {e}") from e
    return clean_titles(payload.subtopics)


def titles_from_lines(text: str) -> List[str]:
    # plain-text fallback: one title per line, bullets stripped
    lines = [line.lstrip("-*• \t") for line in (text or "").splitlines()]
    return clean_titles(lines)
