"""
Realtime processing hub.

Routes: WS /hubs/processing

Server sends:
    {"event": "connected", "data": {"connection_id": "..."}}
    {"event": "unit_processed", "data": {"job_id", "character", "progress"}}
    {"event": "job_completed", "data": {"job_id", "result", "completed_at",
                                        "duration_seconds"}}
    {"event": "job_cancelled", "data": {"job_id", "cancelled_at"}}
    {"event": "job_failed", "data": {"job_id", "error_message", "failed_at"}}
    {"event": "cancellation_accepted", "data": {"job_id"}}
    {"event": "cancellation_failed", "data": {"job_id", "error"}}

Client sends:
    {"action": "join", "job_id": "..."}
    {"action": "leave", "job_id": "..."}
    {"action": "cancel", "job_id": "..."}
    {"action": "ping"}
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from textstream.v1.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from textstream.v1.infra.jobs.models import Job

logger = logging.getLogger(__name__)
router = APIRouter(tags=["realtime"])


def job_topic(job_id: UUID | str) -> str:
    return f"job:{job_id}"


class ConnectionManager:
    """Tracks open hub connections and their per-job topic membership."""

    def __init__(self) -> None:
        self._connections: dict[str, WebSocket] = {}
        self._topics: dict[str, set[str]] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> str:
        """Accept the socket and assign it a fresh connection id."""
        await websocket.accept()
        connection_id = str(uuid4())
        self._connections[connection_id] = websocket
        logger.info(
            "Hub client connected",
            extra={"connection_id": connection_id, "client_host": websocket.client},
        )
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)
        for topic in list(self._topics):
            members = self._topics[topic]
            members.discard(connection_id)
            if not members:
                del self._topics[topic]
        logger.info("Hub client disconnected", extra={"connection_id": connection_id})

    def join(self, connection_id: str, topic: str) -> None:
        self._topics.setdefault(topic, set()).add(connection_id)
        logger.debug(
            "Connection joined topic",
            extra={"connection_id": connection_id, "topic": topic},
        )

    def leave(self, connection_id: str, topic: str) -> None:
        members = self._topics.get(topic)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._topics[topic]

    def members(self, topic: str) -> set[str]:
        return set(self._topics.get(topic, ()))

    async def send(self, connection_id: str, event: str, data: dict[str, Any]) -> bool:
        """Send one event to one connection. Returns False if delivery failed."""
        websocket = self._connections.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json({"event": event, "data": data})
            return True
        except Exception as e:
            logger.warning(
                "Failed to send hub event",
                extra={
                    "connection_id": connection_id,
                    "hub_event": event,
                    "error": str(e),
                },
            )
            return False

    async def broadcast(self, topic: str, event: str, data: dict[str, Any]) -> int:
        """Send an event to every member of ``topic``; returns the delivered count."""
        delivered = 0
        for connection_id in self.members(topic):
            if await self.send(connection_id, event, data):
                delivered += 1
        return delivered


class HubNotificationSink:
    """Pushes job events to the subscribers of each job's topic."""

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    async def unit_processed(
        self, owner_id: str, job_id: UUID, unit: str, progress_percent: float
    ) -> None:
        await self.manager.broadcast(
            job_topic(job_id),
            "unit_processed",
            {
                "job_id": str(job_id),
                "character": unit,
                "progress": round(progress_percent, 2),
            },
        )

    async def job_completed(self, owner_id: str, job: Job) -> None:
        await self.manager.broadcast(
            job_topic(job.id),
            "job_completed",
            {
                "job_id": str(job.id),
                "result": job.processed_text,
                "completed_at": _isoformat(job.completed_at),
                "duration_seconds": job.duration_seconds(),
            },
        )
        logger.info("Notified job completion", extra={"job_id": str(job.id)})

    async def job_cancelled(self, owner_id: str, job_id: UUID) -> None:
        await self.manager.broadcast(
            job_topic(job_id),
            "job_cancelled",
            {"job_id": str(job_id), "cancelled_at": _isoformat(datetime.now(UTC))},
        )
        logger.info("Notified job cancellation", extra={"job_id": str(job_id)})

    async def job_failed(self, owner_id: str, job_id: UUID, error_message: str) -> None:
        await self.manager.broadcast(
            job_topic(job_id),
            "job_failed",
            {
                "job_id": str(job_id),
                "error_message": error_message,
                "failed_at": _isoformat(datetime.now(UTC)),
            },
        )
        logger.warning(
            "Notified job failure",
            extra={"job_id": str(job_id), "error_message": error_message},
        )


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_job_id(raw: Any) -> UUID | None:
    try:
        return UUID(str(raw))
    except (TypeError, ValueError):
        return None


@router.websocket("/hubs/processing")
async def processing_hub(websocket: WebSocket) -> None:
    """WebSocket endpoint for job progress subscriptions and cancellation."""
    manager: ConnectionManager = websocket.app.state.connection_manager
    connection_id = await manager.connect(websocket)

    await manager.send(connection_id, "connected", {"connection_id": connection_id})

    try:
        while True:
            raw_data = await websocket.receive_text()

            try:
                message = json.loads(raw_data)
            except json.JSONDecodeError:
                await manager.send(
                    connection_id,
                    "error",
                    {"code": "INVALID_JSON", "message": "Invalid JSON format"},
                )
                continue

            if not isinstance(message, dict):
                message = {}
            action = message.get("action")

            if action == "ping":
                await manager.send(connection_id, "pong", {})
            elif action in ("join", "leave"):
                _handle_membership(
                    manager, connection_id, action, message.get("job_id")
                )
            elif action == "cancel":
                await _handle_cancel(websocket, connection_id, message.get("job_id"))
            else:
                await manager.send(
                    connection_id,
                    "error",
                    {"code": "UNKNOWN_ACTION", "message": f"Unknown action: {action}"},
                )

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.exception(
            "Unexpected error in hub connection",
            extra={"connection_id": connection_id, "error_type": type(e).__name__},
        )
    finally:
        manager.disconnect(connection_id)


def _handle_membership(
    manager: ConnectionManager, connection_id: str, action: str, raw_job_id: Any
) -> None:
    job_id = _parse_job_id(raw_job_id)
    if job_id is None:
        logger.warning(
            "Invalid job id in hub request",
            extra={
                "connection_id": connection_id,
                "action": action,
                "job_id": str(raw_job_id),
            },
        )
        return

    if action == "join":
        manager.join(connection_id, job_topic(job_id))
    else:
        manager.leave(connection_id, job_topic(job_id))


async def _handle_cancel(
    websocket: WebSocket, connection_id: str, raw_job_id: Any
) -> None:
    manager: ConnectionManager = websocket.app.state.connection_manager
    job_id = _parse_job_id(raw_job_id)

    error: str | None = None
    if job_id is None:
        error = "Invalid job ID"
    else:
        try:
            await websocket.app.state.job_service.cancel_job(job_id, connection_id)
        except NotFoundError:
            error = "Job not found"
        except ForbiddenError:
            error = "Unauthorized"
        except ConflictError:
            error = "Cannot cancel job in current state"
        except Exception:
            logger.exception(
                "Error cancelling job from hub",
                extra={"connection_id": connection_id, "job_id": str(job_id)},
            )
            error = "Internal server error"

    if error is not None:
        logger.warning(
            "Hub cancellation rejected",
            extra={
                "connection_id": connection_id,
                "job_id": str(raw_job_id),
                "reason": error,
            },
        )
        await manager.send(
            connection_id,
            "cancellation_failed",
            {"job_id": str(raw_job_id), "error": error},
        )
        return

    await manager.send(connection_id, "cancellation_accepted", {"job_id": str(job_id)})
