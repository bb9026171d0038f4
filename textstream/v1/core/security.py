from dataclasses import dataclass
from uuid import uuid4

from fastapi import Depends, Request

from textstream.config.settings import settings as default_settings
from textstream.v1.infra.jobs.models import Job


@dataclass
class ConnectionIdentity:
    """Opaque identifier of the calling connection.

    The identifier is a capability scoped to one connection, not an
    authenticated identity: whoever presents it is treated as its owner.
    """

    connection_id: str | None
    generated: bool = False


def authorize_cancel(job: Job, requester_id: str | None) -> bool:
    """Only the connection that submitted a job may cancel it."""
    if not requester_id:
        return False
    return requester_id == job.owner_id


def resolve_connection_id(request: Request) -> str | None:
    """Read the connection identifier header, ignoring blank values."""
    app_settings = getattr(request.app.state, "settings", default_settings)
    header_value = request.headers.get(app_settings.connection_header)
    if header_value and header_value.strip():
        return header_value.strip()
    return None


async def get_connection(request: Request) -> ConnectionIdentity:
    """Dependency returning the caller's connection identity (may be anonymous)."""
    return ConnectionIdentity(connection_id=resolve_connection_id(request))


async def get_or_create_connection(request: Request) -> ConnectionIdentity:
    """
    Dependency for job submission.

    Callers without a connection identifier get a fresh one so that every job
    has exactly one owner; it is echoed back in the response header.
    """
    connection_id = resolve_connection_id(request)
    if connection_id is None:
        return ConnectionIdentity(connection_id=str(uuid4()), generated=True)
    return ConnectionIdentity(connection_id=connection_id)


# Convenience type aliases for dependency injection
ConnectionDep = Depends(get_connection)
SubmittingConnectionDep = Depends(get_or_create_connection)
