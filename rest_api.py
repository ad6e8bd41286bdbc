import datetime
import logging
import time
from fastapi import (
    FastAPI,
    HTTPException,
    Response,
    APIRouter,
    Request,
    Header,
)
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from db import (
    DailyLogRepository,
    ExerciseLogRepository,
    WorkoutTemplateRepository,
)
from schemas import (
    BulkExerciseLogRequest,
    DailyLogInput,
    ExerciseLogCreate,
    ExerciseLogUpdate,
    WorkoutTemplateCreate,
)
from config import APP_VERSION

logger = logging.getLogger(__name__)

RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_USER = "local"


class RateLimiter:
    """In-memory sliding window limiter keyed by user header, then client address."""

    def __init__(self, limit: int = 60, window: int = 60) -> None:
        self.limit = limit
        self.window = window
        self.requests: dict[str, list[float]] = {}

    async def __call__(self, request: Request, call_next):
        key = request.headers.get("x-user-id") or (
            request.client.host if request.client else "anon"
        )
        now = time.time()
        history = [t for t in self.requests.get(key, []) if now - t < self.window]
        if len(history) >= self.limit:
            return Response("rate limit exceeded", status_code=429)
        history.append(now)
        self.requests[key] = history
        return await call_next(request)


def _range_start(time_range: str, today: datetime.date) -> datetime.date:
    if time_range not in RANGE_DAYS:
        raise ValueError(f"invalid range '{time_range}', expected one of 7d, 30d, 90d")
    return today - datetime.timedelta(days=RANGE_DAYS[time_range])


def _validate_date(value: str) -> str:
    try:
        datetime.date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"invalid date '{value}'")
    return value


class TrackerAPI:
    """Provides REST endpoints for daily logs, exercise logs and workout templates."""

    def __init__(
        self,
        db_path: str = "workout.db",
        *,
        rate_limit: int | None = None,
        rate_window: int = 60,
    ) -> None:
        self.db_path = db_path
        self.daily_logs = DailyLogRepository(db_path)
        self.exercise_logs = ExerciseLogRepository(db_path)
        self.templates = WorkoutTemplateRepository(db_path)
        self.app = FastAPI(title="Workout Tracker API", version=APP_VERSION)
        if rate_limit:
            self.app.middleware("http")(RateLimiter(rate_limit, rate_window))
        self._setup_routes()

    def _setup_routes(self) -> None:
        daily_router = APIRouter(prefix="/daily-logs", tags=["Daily Logs"])
        exercise_router = APIRouter(prefix="/exercise-logs", tags=["Exercise Logs"])
        workouts_router = APIRouter(prefix="/workouts", tags=["Workouts"])

        @self.app.exception_handler(RequestValidationError)
        async def validation_error(request: Request, exc: RequestValidationError):
            return JSONResponse(
                status_code=400, content={"detail": jsonable_encoder(exc.errors())}
            )

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.templates.fetch_all()
                return {"status": "ok", "version": APP_VERSION}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @daily_router.get("/today")
        def daily_log_today(x_user_id: str = Header(DEFAULT_USER)):
            today = datetime.date.today().isoformat()
            log = self.daily_logs.fetch(x_user_id, today)
            if log is None:
                raise HTTPException(status_code=404, detail="log not found")
            return log

        @daily_router.get("/range/{time_range}")
        def daily_log_range(time_range: str, x_user_id: str = Header(DEFAULT_USER)):
            today = datetime.date.today()
            try:
                start = _range_start(time_range, today)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self.daily_logs.fetch_range(
                x_user_id, start.isoformat(), today.isoformat()
            )

        @daily_router.get("/{log_date}")
        def daily_log_for_date(log_date: str, x_user_id: str = Header(DEFAULT_USER)):
            try:
                _validate_date(log_date)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            log = self.daily_logs.fetch(x_user_id, log_date)
            if log is None:
                raise HTTPException(status_code=404, detail="log not found")
            return log

        @daily_router.post("")
        def upsert_daily_log(
            payload: DailyLogInput, x_user_id: str = Header(DEFAULT_USER)
        ):
            try:
                _validate_date(payload.log_date)
                log = self.daily_logs.upsert(
                    x_user_id,
                    payload.log_date,
                    payload.fields(),
                    accumulate=payload.accumulate,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            logger.debug(
                "Daily log %s/%s upserted (accumulate=%s)",
                x_user_id,
                payload.log_date,
                payload.accumulate,
            )
            return log

        @exercise_router.post("/bulk")
        def bulk_exercise_logs(
            payload: BulkExerciseLogRequest, x_user_id: str = Header(DEFAULT_USER)
        ):
            try:
                _validate_date(payload.log_date)
                rows = self.exercise_logs.replace_for_date(
                    x_user_id,
                    payload.log_date,
                    [ex.model_dump() for ex in payload.exercises],
                    workout_template_id=payload.workout_template_id,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            logger.info(
                "Replaced exercise logs for %s on %s (%d rows)",
                x_user_id,
                payload.log_date,
                len(rows),
            )
            return rows

        @exercise_router.post("")
        def add_exercise_log(
            payload: ExerciseLogCreate, x_user_id: str = Header(DEFAULT_USER)
        ):
            try:
                _validate_date(payload.log_date)
                entry = payload.model_dump(exclude={"log_date", "workout_template_id"})
                lid = self.exercise_logs.add(
                    x_user_id,
                    payload.log_date,
                    entry,
                    workout_template_id=payload.workout_template_id,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": lid}

        @exercise_router.get("/{log_date}")
        def exercise_logs_for_date(
            log_date: str, x_user_id: str = Header(DEFAULT_USER)
        ):
            try:
                _validate_date(log_date)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self.exercise_logs.fetch_for_date(x_user_id, log_date)

        @exercise_router.patch("/{entry_id}")
        def update_exercise_log(
            entry_id: int,
            payload: ExerciseLogUpdate,
            x_user_id: str = Header(DEFAULT_USER),
        ):
            try:
                return self.exercise_logs.update(
                    entry_id, x_user_id, payload.model_dump(exclude_none=True)
                )
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @exercise_router.delete("/{entry_id}")
        def delete_exercise_log(entry_id: int, x_user_id: str = Header(DEFAULT_USER)):
            try:
                self.exercise_logs.delete(entry_id, x_user_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @workouts_router.get("")
        def list_workouts():
            return self.templates.fetch_all()

        @workouts_router.get("/{template_id}")
        def get_workout(template_id: int):
            try:
                return self.templates.fetch_detail(template_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @workouts_router.post("")
        def create_workout(payload: WorkoutTemplateCreate):
            try:
                tid = self.templates.create(
                    payload.name,
                    [ex.model_dump(by_alias=True) for ex in payload.exercises],
                    description=payload.description,
                    type=payload.type,
                    difficulty=payload.difficulty,
                    duration_minutes=payload.duration_minutes,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": tid}

        self.app.include_router(daily_router)
        self.app.include_router(exercise_router)
        self.app.include_router(workouts_router)


api = TrackerAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app)
