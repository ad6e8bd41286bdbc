from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Exercise(BaseModel):
    """One prescribed exercise of a workout plan.

    Wire payloads use the template field names ``sets``, ``reps`` and ``rir``;
    the model exposes them as ``prescribed_sets``, ``rep_range`` and
    ``target_rir``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    prescribed_sets: int = Field(alias="sets", ge=1)
    rep_range: str = Field(default="", alias="reps")
    target_rir: Optional[int] = Field(default=None, alias="rir", ge=0)
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("exercise name must not be blank")
        return value

    @field_validator("rep_range", mode="before")
    @classmethod
    def _reps_to_text(cls, value):
        if value is None:
            return ""
        if isinstance(value, bool):
            raise ValueError("reps must be a number or a range string")
        if isinstance(value, (int, float)):
            return str(int(value))
        return value


class WorkoutPlan(BaseModel):
    """Ordered list of exercises with the metadata needed at persistence time."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title: str = Field(default="Workout", alias="name")
    workout_type: str = Field(default="strength", alias="type")
    template_id: Optional[str] = Field(default=None, alias="id")
    exercises: List[Exercise] = Field(min_length=1)

    @field_validator("template_id", mode="before")
    @classmethod
    def _id_to_text(cls, value):
        if value is None:
            return None
        return str(value)


class SetLog(BaseModel):
    """One completed set."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    reps: int = Field(ge=0)
    weight_kg: float = Field(default=0.0, alias="weightKg", ge=0)
    rir: Optional[int] = Field(default=None, ge=0)

    @field_validator("weight_kg", mode="before")
    @classmethod
    def _weight_default(cls, value):
        return 0.0 if value is None else value


class ExerciseLogInput(BaseModel):
    """Exercise entry of a bulk exercise-log write."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    sets: Optional[int] = Field(default=None, ge=0)
    reps: Optional[str] = None
    rir: Optional[int] = None
    notes: Optional[str] = None
    exercise_order: Optional[int] = Field(default=None, alias="exerciseOrder", ge=0)
    completed_sets: Optional[int] = Field(default=None, alias="completedSets", ge=0)
    set_details: Optional[List[SetLog]] = Field(default=None, alias="setDetails")
    skipped: bool = False

    @field_validator("reps", mode="before")
    @classmethod
    def _reps_to_text(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value))
        return value


class BulkExerciseLogRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    log_date: str = Field(alias="logDate", pattern=r"^\d{4}-\d{2}-\d{2}$")
    workout_template_id: Optional[str] = Field(default=None, alias="workoutTemplateId")
    exercises: List[ExerciseLogInput]


class ExerciseLogCreate(ExerciseLogInput):
    log_date: str = Field(alias="logDate", pattern=r"^\d{4}-\d{2}-\d{2}$")
    workout_template_id: Optional[str] = Field(default=None, alias="workoutTemplateId")


class ExerciseLogUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    completed_sets: Optional[int] = Field(default=None, alias="completedSets", ge=0)
    set_details: Optional[List[SetLog]] = Field(default=None, alias="setDetails")
    notes: Optional[str] = None
    skipped: Optional[bool] = None


class DailyLogInput(BaseModel):
    """Daily-aggregate upsert body; omitted fields leave stored values untouched."""

    model_config = ConfigDict(populate_by_name=True)

    log_date: str = Field(alias="logDate", pattern=r"^\d{4}-\d{2}-\d{2}$")
    accumulate: bool = False
    weight_kg: Optional[float] = Field(default=None, alias="weightKg")
    waist_cm: Optional[float] = Field(default=None, alias="waistCm")
    hips_cm: Optional[float] = Field(default=None, alias="hipsCm")
    chest_cm: Optional[float] = Field(default=None, alias="chestCm")
    calories_consumed: Optional[int] = Field(default=None, alias="caloriesConsumed")
    protein_grams: Optional[float] = Field(default=None, alias="proteinGrams")
    carbs_grams: Optional[float] = Field(default=None, alias="carbsGrams")
    fat_grams: Optional[float] = Field(default=None, alias="fatGrams")
    water_liters: Optional[float] = Field(default=None, alias="waterLiters")
    steps: Optional[int] = None
    active_minutes: Optional[int] = Field(default=None, alias="activeMinutes")
    workout_completed: Optional[bool] = Field(default=None, alias="workoutCompleted")
    workout_type: Optional[str] = Field(default=None, alias="workoutType")
    workout_duration_minutes: Optional[int] = Field(
        default=None, alias="workoutDurationMinutes", ge=0
    )
    sleep_hours: Optional[float] = Field(default=None, alias="sleepHours")
    sleep_quality: Optional[int] = Field(default=None, alias="sleepQuality", ge=1, le=10)
    energy_level: Optional[int] = Field(default=None, alias="energyLevel", ge=1, le=10)
    stress_level: Optional[int] = Field(default=None, alias="stressLevel", ge=1, le=10)
    mood_rating: Optional[int] = Field(default=None, alias="moodRating", ge=1, le=10)
    digestion_notes: Optional[str] = Field(default=None, alias="digestionNotes")
    avg_heart_rate: Optional[int] = Field(default=None, alias="avgHeartRate")
    hrv: Optional[float] = None
    notes: Optional[str] = None
    data_source: Optional[str] = Field(default=None, alias="dataSource")

    def fields(self) -> dict:
        """Return the provided daily-log columns, excluding the merge flag."""
        return self.model_dump(exclude={"log_date", "accumulate"}, exclude_none=True)


class WorkoutTemplateCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    description: Optional[str] = None
    type: str = "strength"
    difficulty: str = "beginner"
    duration_minutes: Optional[int] = Field(default=None, alias="durationMinutes")
    exercises: List[Exercise] = Field(min_length=1)
