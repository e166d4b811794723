from __future__ import annotations

"""HTTP API surface for the local tracker session."""

from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Literal
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .auth import LocalSessionProvider, SessionProvider
from .catalog import CatalogError
from .models import SCHEMA_VERSION
from .paths import reset_check_seconds
from .scheduler import DailyResetScheduler
from .service import TrackerService


Collection = Literal["habits", "dailies", "todos", "rewards"]


class HabitCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    kind: str = "both"
    goal: int | None = Field(default=None, ge=1)
    notes: str | None = Field(default=None, max_length=2000)


class TaskCreate(BaseModel):
    """Payload for new dailies and to-dos."""

    title: str = Field(min_length=1, max_length=200)
    notes: str | None = Field(default=None, max_length=2000)


class RewardCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    cost: int = Field(default=10, ge=1)
    notes: str | None = Field(default=None, max_length=2000)


class TapRequest(BaseModel):
    direction: str = Field(max_length=8)


class ChallengeHabit(BaseModel):
    title: str = Field(min_length=1)
    type: Literal["good", "bad", "both"] = "both"
    goal: int | None = Field(default=None, ge=1)


class ChallengeTask(BaseModel):
    title: str = Field(min_length=1)
    notes: str | None = None


class ChallengeReward(BaseModel):
    title: str = Field(min_length=1)
    cost: int = Field(ge=1)


class ChallengeCreate(BaseModel):
    """Payload for `/v1/challenges`; the creator is the signed-in user."""

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=4000)
    category: str = Field(min_length=1, max_length=80)
    prize: int = Field(default=0, ge=0)
    tags: list[str] = Field(default_factory=list)
    habits: list[ChallengeHabit] = Field(default_factory=list)
    dailies: list[ChallengeTask] = Field(default_factory=list)
    todos: list[ChallengeTask] = Field(default_factory=list)
    rewards: list[ChallengeReward] = Field(default_factory=list)


def _notification(exc: CatalogError) -> dict[str, Any]:
    return {**exc.to_dict(), "notification": {"title": "Challenges unavailable", "description": exc.message}}


def create_app(service: TrackerService, session: SessionProvider | None = None) -> FastAPI:
    """Create API routes backed by one `TrackerService` session."""

    session_provider = session or LocalSessionProvider()
    scheduler = DailyResetScheduler(
        check=lambda: service.check_daily_reset(source="scheduler"),
        interval_seconds=reset_check_seconds(),
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):  # type: ignore[no-untyped-def]
        scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()

    app = FastAPI(title="Heago Quest Tracker API", version="0.1", lifespan=lifespan)
    app.state.scheduler = scheduler

    @app.middleware("http")
    async def trace_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
        trace_id = f"api:{uuid4()}"
        try:
            response = await call_next(request)
        except Exception as exc:  # noqa: BLE001
            service.telemetry.log_event(
                "risk.flagged",
                source="api",
                data={
                    "reason": "api_internal_error",
                    "endpoint": request.url.path,
                    "error_type": exc.__class__.__name__,
                    "trace_id": trace_id,
                },
            )
            response = JSONResponse(
                status_code=500,
                content={"code": "INTERNAL_SERVER_ERROR", "message": "Internal server error", "trace_id": trace_id},
            )
        response.headers["X-Heago-Trace-Id"] = trace_id
        return response

    def require_user() -> str:
        user = session_provider.current_user
        if not user:
            raise HTTPException(status_code=401, detail="Sign in to use the tracker.")
        return user

    signed_in = [Depends(require_user)]

    @app.get("/v1/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "version": "0.1", "schema_versions": {"save_state": SCHEMA_VERSION}}

    @app.get("/v1/session")
    async def get_session() -> dict[str, Any]:
        user = session_provider.current_user
        return {"signed_in": bool(user), "user": user}

    @app.post("/v1/session/sign-out")
    async def sign_out() -> dict[str, Any]:
        session_provider.sign_out()
        service.telemetry.log_event("session.signed_out", source="api", data={})
        return {"signed_in": False}

    @app.get("/v1/state", dependencies=signed_in)
    async def get_state() -> dict[str, Any]:
        return service.get_state()

    @app.get("/v1/player", dependencies=signed_in)
    async def get_player() -> dict[str, Any]:
        return service.get_player()

    @app.post("/v1/habits", dependencies=signed_in)
    async def add_habit(request: HabitCreate) -> dict[str, Any]:
        try:
            return service.add_habit(request.title, request.kind, request.goal, request.notes, source="api")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.post("/v1/habits/{habit_id}/tap", dependencies=signed_in)
    async def tap_habit(habit_id: str, request: TapRequest) -> dict[str, Any]:
        try:
            return service.tap_habit(habit_id, request.direction, source="api")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.post("/v1/dailies", dependencies=signed_in)
    async def add_daily(request: TaskCreate) -> dict[str, Any]:
        try:
            return service.add_daily(request.title, request.notes, source="api")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.post("/v1/dailies/{daily_id}/toggle", dependencies=signed_in)
    async def toggle_daily(daily_id: str) -> dict[str, Any]:
        return service.toggle_daily(daily_id, source="api")

    @app.post("/v1/todos", dependencies=signed_in)
    async def add_todo(request: TaskCreate) -> dict[str, Any]:
        try:
            return service.add_todo(request.title, request.notes, source="api")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.post("/v1/todos/{todo_id}/toggle", dependencies=signed_in)
    async def toggle_todo(todo_id: str) -> dict[str, Any]:
        return service.toggle_todo(todo_id, source="api")

    @app.post("/v1/rewards", dependencies=signed_in)
    async def add_reward(request: RewardCreate) -> dict[str, Any]:
        try:
            return service.add_reward(request.title, request.cost, request.notes, source="api")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.post("/v1/rewards/{reward_id}/buy", dependencies=signed_in)
    async def buy_reward(reward_id: str) -> dict[str, Any]:
        return service.buy_reward(reward_id, source="api")

    @app.delete("/v1/{collection}/{item_id}", dependencies=signed_in)
    async def remove_item(collection: Collection, item_id: str) -> dict[str, Any]:
        return service.remove(collection, item_id, source="api")

    @app.post("/v1/reset/check", dependencies=signed_in)
    async def check_reset() -> dict[str, Any]:
        return service.check_daily_reset(source="api")

    @app.get("/v1/analytics/summary", dependencies=signed_in)
    async def analytics_summary() -> dict[str, Any]:
        return service.analytics_summary()

    @app.get("/v1/analytics/calendar", dependencies=signed_in)
    async def analytics_calendar(
        year: int = Query(..., ge=1970, le=9999),
        month: int = Query(..., ge=1, le=12),
    ) -> dict[str, Any]:
        return service.month_calendar(year, month)

    @app.get("/v1/analytics/day", dependencies=signed_in)
    async def analytics_day(day: str = Query(..., alias="date", pattern=r"^\d{4}-\d{2}-\d{2}$")) -> dict[str, Any]:
        try:
            target = date_from_str(day)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return service.day_details(target)

    @app.get("/v1/challenges")
    async def list_challenges(
        q: str | None = Query(default=None, max_length=200),
        category: list[str] | None = Query(default=None),
    ) -> Any:
        try:
            return service.list_challenges(search=q, categories=category, source="api")
        except CatalogError as exc:
            return JSONResponse(status_code=502, content=_notification(exc))

    @app.get("/v1/challenges/{challenge_id}")
    async def get_challenge(challenge_id: str) -> Any:
        try:
            return service.get_challenge(challenge_id, source="api")
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Challenge not found") from exc
        except CatalogError as exc:
            return JSONResponse(status_code=502, content=_notification(exc))

    @app.post("/v1/challenges")
    async def create_challenge(request: ChallengeCreate, user: str = Depends(require_user)) -> Any:
        try:
            return service.create_challenge(request.model_dump(exclude_none=True), creator=user, source="api")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except CatalogError as exc:
            return JSONResponse(status_code=502, content=_notification(exc))

    @app.post("/v1/challenges/{challenge_id}/join", dependencies=signed_in)
    async def join_challenge(challenge_id: str) -> Any:
        try:
            return service.join_challenge(challenge_id, source="api")
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Challenge not found") from exc
        except CatalogError as exc:
            return JSONResponse(status_code=502, content=_notification(exc))

    # Declared last so fixed paths such as /v1/challenges match first.
    @app.get("/v1/{collection}", dependencies=signed_in)
    async def list_items(collection: Collection) -> list[dict[str, Any]]:
        return service.list_items(collection)

    return app


def date_from_str(value: str) -> date:
    """Parse `YYYY-MM-DD` into a date object."""

    return date.fromisoformat(value)
