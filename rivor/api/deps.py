"""FastAPI dependencies: organization context and per-request services.

Authentication is handled upstream; the gateway forwards the caller's
organization in ``X-Org-Id`` and, optionally, the user in ``X-User-Id``.
"""
# ruff: noqa: B008

from __future__ import annotations

import uuid

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from rivor.automation.engine import SequenceEngine
from rivor.db.engine import get_session
from rivor.factory import build_appointment_service, build_sequence_engine
from rivor.scheduling.service import AppointmentService


async def get_org_id(x_org_id: uuid.UUID = Header(alias="X-Org-Id")) -> uuid.UUID:
    return x_org_id


async def get_actor(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str | None:
    return x_user_id


async def get_appointment_service(db: AsyncSession = Depends(get_session)) -> AppointmentService:
    return build_appointment_service(db)


async def get_sequence_engine(db: AsyncSession = Depends(get_session)) -> SequenceEngine:
    return build_sequence_engine(db)
