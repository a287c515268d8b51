from __future__ import annotations

import random
from dataclasses import asdict
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from statquest.config import Settings, load_settings
from statquest.db import Database
from statquest.errors import (
    AlreadyCompletedError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StatQuestError,
    ValidationError,
)
from statquest.logging_setup import setup_logging
from statquest.models import BasicQuest
from statquest.quest_pool import load_quest_pool
from statquest.quests import create_quest
from statquest.rewards import complete_quest
from statquest.scheduler import RandomQuestScheduler
from statquest.service import build_profile_view
from statquest.substats import DEFAULT_SUBSTAT_ICON, add_substat, delete_substat, update_substat_value
from statquest.time_utils import now_utc

ERROR_STATUS: dict[type[StatQuestError], int] = {
    ValidationError: 400,
    AuthorizationError: 403,
    NotFoundError: 404,
    AlreadyCompletedError: 409,
    ConflictError: 409,
}


def _require_auth(request: Request, token: str | None) -> None:
    if not token:
        return
    header = request.headers.get("x-api-token")
    query = request.query_params.get("token")
    if header == token or query == token:
        return
    raise HTTPException(status_code=401, detail="Unauthorized")


class CreateUserRequest(BaseModel):
    user_id: str = Field(min_length=1)
    display_name: str = ""
    email: str = ""


class AddSubstatRequest(BaseModel):
    name: str
    parent_stat: str
    icon: str = DEFAULT_SUBSTAT_ICON
    boost_ratio: float | None = None


class SubstatValueRequest(BaseModel):
    value: float


class CreateQuestRequest(BaseModel):
    title: str
    description: str = ""
    quest_type: str = "daily"
    difficulty: str = "easy"
    stat_boosts: dict[str, int] = Field(default_factory=dict)
    substat_boosts: dict[str, int] = Field(default_factory=dict)
    experience: int | None = None


def build_api_app(
    db: Database,
    settings: Settings,
    pool: list[BasicQuest] | None = None,
    rng: random.Random | None = None,
) -> FastAPI:
    app = FastAPI(title="StatQuest", version="1.0.0")
    quest_pool = pool if pool is not None else load_quest_pool(settings.quest_pool_path)
    shared_rng = rng or random.Random()
    retries = settings.write_retry_limit

    def scheduler_for(user_id: str) -> RandomQuestScheduler:
        return RandomQuestScheduler(
            db,
            user_id,
            quest_pool,
            rng=shared_rng,
            spawn_chance=settings.scheduler_spawn_chance,
            attempts=retries,
        )

    def profile_payload(user_id: str) -> dict[str, Any]:
        profile = db.get_user_record(user_id)
        view = build_profile_view(profile)
        return {
            "user_id": profile.user_id,
            "display_name": profile.display_name,
            "level": profile.level,
            "experience": profile.experience,
            "hp": profile.hp,
            "energy": profile.energy,
            "base_stats": profile.stats,
            "total_stats": view.total_stats,
            "stats": [asdict(s) for s in view.stats],
            "progress": asdict(view.progress),
            "custom_stats": [asdict(s) for s in profile.custom_stats],
            "cosmetics": profile.cosmetics,
        }

    @app.exception_handler(StatQuestError)
    async def handle_core_error(request: Request, exc: StatQuestError) -> JSONResponse:
        status = next((code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500)
        return JSONResponse(status_code=status, content={"detail": str(exc), "error": type(exc).__name__})

    @app.post("/api/users")
    async def api_create_user(request: Request, payload: CreateUserRequest) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        db.create_user_record(payload.user_id, payload.display_name, payload.email, now_utc())
        return profile_payload(payload.user_id)

    @app.get("/api/users/{user_id}")
    async def api_get_user(user_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        return profile_payload(user_id)

    @app.post("/api/users/{user_id}/substats")
    async def api_add_substat(user_id: str, request: Request, payload: AddSubstatRequest) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        stat = add_substat(
            db,
            user_id,
            payload.name,
            payload.parent_stat,
            payload.icon,
            payload.boost_ratio,
            grant_base=settings.substat_base_grants,
            attempts=retries,
        )
        return {"ok": True, "substat": asdict(stat), "profile": profile_payload(user_id)}

    @app.put("/api/users/{user_id}/substats/{name}")
    async def api_update_substat(user_id: str, name: str, request: Request, payload: SubstatValueRequest) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        stat = update_substat_value(db, user_id, name, payload.value, attempts=retries)
        return {"ok": True, "substat": asdict(stat)}

    @app.delete("/api/users/{user_id}/substats/{name}")
    async def api_delete_substat(user_id: str, name: str, parent_stat: str, request: Request) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        delete_substat(db, user_id, name, parent_stat, attempts=retries)
        return {"ok": True}

    @app.post("/api/users/{user_id}/quests")
    async def api_create_quest(user_id: str, request: Request, payload: CreateQuestRequest) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        db.get_user_record(user_id)
        quest = create_quest(
            db,
            user_id,
            payload.title,
            payload.description,
            payload.quest_type,
            payload.difficulty,
            payload.stat_boosts,
            payload.substat_boosts,
            payload.experience,
        )
        return {"ok": True, "quest": asdict(quest)}

    @app.get("/api/users/{user_id}/quests")
    async def api_list_quests(
        user_id: str,
        request: Request,
        quest_type: str | None = None,
        completed: bool | None = None,
    ) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        quests = db.list_quests_for_user(user_id, quest_type=quest_type, completed=completed)
        return {"quests": [asdict(q) for q in quests]}

    @app.post("/api/users/{user_id}/quests/{quest_id}/complete")
    async def api_complete_quest(user_id: str, quest_id: int, request: Request) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        outcome = complete_quest(
            db,
            quest_id,
            user_id,
            grant_base=settings.substat_base_grants,
            attempts=retries,
        )
        return {"ok": True, "outcome": asdict(outcome)}

    @app.get("/api/users/{user_id}/basic-quests")
    async def api_basic_quests(user_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        quests = scheduler_for(user_id).ensure_seeded()
        return {"quests": [asdict(q) for q in quests]}

    @app.post("/api/users/{user_id}/basic-quests/tick")
    async def api_tick_basic_quests(user_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        result = scheduler_for(user_id).tick()
        return asdict(result)

    @app.post("/api/users/{user_id}/basic-quests/{quest_id}/accept")
    async def api_accept_basic_quest(user_id: str, quest_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        quest = scheduler_for(user_id).accept_quest(quest_id)
        return {"ok": True, "quest": asdict(quest)}

    @app.post("/api/users/{user_id}/basic-quests/{quest_id}/complete")
    async def api_complete_basic_quest(user_id: str, quest_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, settings.api_token)
        outcome = scheduler_for(user_id).complete_quest(quest_id)
        return {"ok": True, "outcome": asdict(outcome)}

    return app


def run_api() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    db = Database(settings.database_path)
    app = build_api_app(db, settings)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
