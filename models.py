from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Dict, List, Literal, Optional

DATE_KEY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
MONTH_KEY_PATTERN = r"^\d{4}-\d{2}$"

SessionStatus = Literal["completed", "incomplete"]
HealthDegree = Literal[
    "Medicine",
    "Pharmacy",
    "Nursing",
    "Dentistry",
    "Physiotherapy",
    "Biomedicine",
    "Nutrition",
    "Clinical Analysis",
    "Radiology",
]


class Month(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    year: int


class Subtopic(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    is_completed: bool = False


class SubjectSchedule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    monthly_goal: int = Field(default=0, ge=0)  # hours
    planned_days: List[str] = Field(default_factory=list)
    is_completed: bool = False
    notes: str = ""


class Subject(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    color: str
    created_at: datetime
    month_id: Optional[str] = None
    subtopics: List[Subtopic] = Field(default_factory=list)
    # month key (YYYY-MM) -> schedule; only populated in snapshots
    schedules: Dict[str, SubjectSchedule] = Field(default_factory=dict)


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    subject_id: str
    duration: int = Field(ge=0)  # seconds
    date: str = Field(pattern=DATE_KEY_PATTERN)
    start_time: datetime
    status: SessionStatus = "completed"


# (min, max) minutes
POMODORO_MINUTES = (1, 180)
BREAK_MINUTES = (0, 60)


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    pomodoro_duration: int = Field(default=25, ge=POMODORO_MINUTES[0], le=POMODORO_MINUTES[1])
    short_break_duration: int = Field(default=5, ge=BREAK_MINUTES[0], le=BREAK_MINUTES[1])
    user_name: str = "Student"
    health_degree: HealthDegree = "Medicine"
    final_goal: str = ""
    monthly_goal_hours: int = Field(default=40, ge=0)


class AppState(BaseModel):
    months: List[Month] = Field(default_factory=list)
    subjects: List[Subject] = Field(default_factory=list)
    sessions: List[Session] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)
    active_schedule_months: List[str] = Field(default_factory=list)
    profile: str = "guest"
