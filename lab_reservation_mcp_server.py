from __future__ import annotations

from datetime import datetime
from pathlib import Path
import os

from mcp.server.fastmcp import FastMCP

from lab_scheduler import ReservationYamlRepository, SchedulingService

mcp = FastMCP(
    "Lab Reservation MCP Server",
    instructions="Expose laboratory reservations and booking operations from the lab_scheduler project.",
    json_response=True,
)

DATA_DIR = Path(os.environ.get("LAB_SCHEDULER_DATA_DIR", Path(__file__).parent / "data"))
SERVICE = SchedulingService(ReservationYamlRepository(DATA_DIR))


@mcp.resource("reservation://laboratories")
async def list_laboratories() -> list[str]:
    """List registered laboratory names."""
    return [resource.name for resource in SERVICE.repository.get_resources()]


@mcp.tool()
def list_reservations(resource: str | None = None) -> list[dict]:
    """Return stored reservations, optionally filtered by laboratory."""
    records = SERVICE.list_reservations()
    filtered = [record for record in records if resource is None or record.resource == resource]
    return [record.to_dict() for record in filtered]


@mcp.tool()
def create_reservation(
    resource: str,
    username: str,
    start_iso: str,
    end_iso: str,
    purpose: str = "MCP reservation",
    priority: int = 1,
) -> dict:
    """Book a laboratory, deferring day by day when the slot is taken."""
    created = SERVICE.create_reservation(
        resource,
        username,
        datetime.fromisoformat(start_iso),
        datetime.fromisoformat(end_iso),
        purpose=purpose,
        priority=priority,
    )
    return created.to_dict()


@mcp.tool()
def cancel_reservation(reservation_id: str) -> bool:
    """Cancel a reservation and report whether it was removed."""
    return SERVICE.cancel_reservation(reservation_id)


@mcp.tool()
def check_availability(resource: str, start_iso: str, end_iso: str) -> bool:
    """Check whether a laboratory is free for the given interval."""
    return SERVICE.is_resource_available(resource, datetime.fromisoformat(start_iso), datetime.fromisoformat(end_iso))


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
