"""
Collector Server - Collectors Router

Read access to stored metrics and the shutdown trigger for collectors.
"""

import uuid
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from protocol import TaskType
from server.db import MetricsStore
from server.services.commands import CommandStore

router = APIRouter()


class DataPoint(BaseModel):
    id: int
    collector_id: str
    received: int
    total_memory: int
    used_memory: int
    average_cpu: Optional[float]


class Collector(BaseModel):
    collector_id: str
    last_seen: int
    samples: int


class PendingCommand(BaseModel):
    collector_id: str
    command: str


def get_store(request: Request) -> MetricsStore:
    return request.app.state.store


def get_commands(request: Request) -> CommandStore:
    return request.app.state.commands


def parse_collector_id(collector_id: str) -> uuid.UUID:
    """Parse a collector id path parameter."""
    try:
        return uuid.UUID(collector_id)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid collector id: {collector_id}")


@router.get("/all", response_model=List[DataPoint])
async def show_all(store: MetricsStore = Depends(get_store)):
    """Every stored data point."""
    return await store.all_rows()


@router.get("/collectors", response_model=List[Collector])
async def show_collectors(store: MetricsStore = Depends(get_store)):
    """Known collectors and when each was last seen."""
    return await store.collectors()


@router.get("/collector/{collector_id}", response_model=List[DataPoint])
async def collector_data(collector_id: str, store: MetricsStore = Depends(get_store)):
    """Data points for one collector, oldest first."""
    parsed = parse_collector_id(collector_id)
    return await store.rows_for(str(parsed))


@router.post("/collector/{collector_id}/shutdown", response_model=Dict)
async def shutdown_collector(collector_id: str, commands: CommandStore = Depends(get_commands)):
    """Ask a collector to shut down on its next work request."""
    parsed = parse_collector_id(collector_id)
    commands.set(parsed.int, TaskType.SHUTDOWN)
    return {"success": True, "collector_id": str(parsed), "command": TaskType.SHUTDOWN.name}


@router.get("/commands", response_model=List[PendingCommand])
async def pending_commands(commands: CommandStore = Depends(get_commands)):
    """Commands waiting to be picked up."""
    return [
        {"collector_id": str(uuid.UUID(int=collector_id)), "command": task.name}
        for collector_id, task in commands.pending().items()
    ]
