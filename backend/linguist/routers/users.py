from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..engine import MasteryEngine, get_engine
from ..schemas import UserView


router = APIRouter(prefix="/users", tags=["users"])


class CreateUserRequest(BaseModel):
    username: str
    display_name: Optional[str] = None
    level: Optional[str] = Field(default="A1", description="Starting level A1–C2 (default A1)")
    daily_goal: Optional[int] = None


@router.post("", response_model=UserView, status_code=201)
def create_user(req: CreateUserRequest, engine: MasteryEngine = Depends(get_engine)):
    return engine.users.create_user(req.username, req.display_name, req.level, req.daily_goal)


@router.get("/{username}", response_model=UserView)
def get_user(username: str, engine: MasteryEngine = Depends(get_engine)):
    return engine.users.get_user(username)
