"""Container records, API payloads and status values."""

from __future__ import annotations

import re
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any


class ContainerStatus(str, Enum):
    """Lifecycle states of a managed container."""

    PENDING = "Pending"
    CREATED = "Created"
    RUNNING = "Running"
    STOPPED = "Stopped"
    FAILED = "Failed"
    REMOVING = "Removing"


_RFC3339 = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})[Tt ]([0-9]{2}):([0-9]{2}):([0-9]{2})"
    r"(?:\.([0-9]+))?(?:([Zz])|([+-])([0-9]{2}):([0-9]{2}))"
)


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_rfc3339(text: str) -> datetime | None:
    """Parse an RFC 3339 timestamp into a UTC datetime, or return None."""
    match = _RFC3339.fullmatch(text)
    if match is None:
        return None
    year, month, day, hour, minute, second = (int(match.group(i)) for i in range(1, 7))
    fraction = (match.group(7) or "")[:6].ljust(6, "0")
    try:
        if match.group(8):
            tz = timezone.utc
        else:
            sign = -1 if match.group(9) == "-" else 1
            offset = timedelta(hours=int(match.group(10)), minutes=int(match.group(11)))
            tz = timezone(sign * offset)
        parsed = datetime(year, month, day, hour, minute, second, int(fraction), tzinfo=tz)
    except ValueError:
        return None
    return parsed.astimezone(timezone.utc)


def _format_rfc3339(moment: datetime) -> str:
    """Format a datetime in UTC with a trailing ``Z`` and as few fraction digits as needed."""
    utc = moment.astimezone(timezone.utc)
    base = (
        f"{utc.year:04d}-{utc.month:02d}-{utc.day:02d}"
        f"T{utc.hour:02d}:{utc.minute:02d}:{utc.second:02d}"
    )
    micro = utc.microsecond
    if micro == 0:
        fraction = ""
    elif micro % 1000 == 0:
        fraction = f".{micro // 1000:03d}"
    else:
        fraction = f".{micro:06d}"
    return f"{base}{fraction}Z"


@dataclass(frozen=True)
class CreateContainerRequest:
    """Body of a request to create a container."""

    name: str
    image: str

    @classmethod
    def from_dict(cls, data: Any) -> "CreateContainerRequest":
        """Validate a decoded JSON object; unknown keys are ignored."""
        if not isinstance(data, Mapping):
            raise ValueError("request body must be a JSON object")
        values = {}
        for field in ("name", "image"):
            value = data.get(field)
            if not isinstance(value, str):
                raise ValueError(f"missing or invalid field: {field}")
            values[field] = value
        return cls(**values)


@dataclass
class ContainerRecord:
    """A container row as stored in the database."""

    id: str
    name: str
    image: str
    status: str
    docker_id: str | None
    created_at: str
    updated_at: str

    @classmethod
    def new(cls, name: str, image: str) -> "ContainerRecord":
        """Create a fresh pending record for ``image`` named ``name``."""
        return cls.from_request(CreateContainerRequest(name=name, image=image))

    @classmethod
    def from_request(cls, request: CreateContainerRequest) -> "ContainerRecord":
        """Create a pending record with a new id from an API request."""
        now = _now_rfc3339()
        return cls(
            id=str(uuid.uuid4()),
            name=request.name,
            image=request.image,
            status=ContainerStatus.PENDING.value,
            docker_id=None,
            created_at=now,
            updated_at=now,
        )

    def to_response(self) -> "ContainerResponse":
        return ContainerResponse.from_record(self)

    def update_status(self, status: ContainerStatus) -> None:
        self.status = ContainerStatus(status).value
        self.updated_at = _now_rfc3339()

    def set_docker_id(self, docker_id: str) -> None:
        self.docker_id = docker_id
        self.updated_at = _now_rfc3339()


@dataclass(frozen=True)
class ContainerResponse:
    """A container as presented by the API."""

    id: str
    name: str
    image: str
    status: ContainerStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: ContainerRecord) -> "ContainerResponse":
        """Convert a stored record; unknown statuses read as pending, bad timestamps as now."""
        try:
            status = ContainerStatus(record.status)
        except ValueError:
            status = ContainerStatus.PENDING
        return cls(
            id=record.id,
            name=record.name,
            image=record.image,
            status=status,
            created_at=_parse_rfc3339(record.created_at) or datetime.now(timezone.utc),
            updated_at=_parse_rfc3339(record.updated_at) or datetime.now(timezone.utc),
        )

    def to_dict(self) -> dict[str, str]:
        """Return the JSON-ready representation."""
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "status": self.status.value,
            "created_at": _format_rfc3339(self.created_at),
            "updated_at": _format_rfc3339(self.updated_at),
        }