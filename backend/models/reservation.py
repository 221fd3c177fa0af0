"""
SmartPark Reservation System - Reservation Models
Time ranges, reservation records, allocation requests and typed outcomes.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal, Union
from datetime import datetime, timedelta
from enum import Enum
import math

from models.parking import ZoneType
from utils.helpers import ensure_utc


class TimeRange(BaseModel):
    """
    Half-open interval [start, end) during which a reservation holds a spot.
    """
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_order(self) -> "TimeRange":
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self

    @classmethod
    def instant(cls, moment: datetime) -> "TimeRange":
        """Smallest range containing ``moment`` (one microsecond wide)."""
        return cls(start=moment, end=ensure_utc(moment) + timedelta(microseconds=1))

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, moment: datetime) -> bool:
        moment = ensure_utc(moment)
        return self.start <= moment < self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def billable_hours(self) -> int:
        """Started hours; a partial hour bills as a full one."""
        return math.ceil(self.duration.total_seconds() / 3600)


class ReservationStatus(str, Enum):
    """Lifecycle: pending -> active -> completed, or cancelled from pending/active."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_blocking(self) -> bool:
        """Pending and active reservations hold their spot."""
        return self in (ReservationStatus.PENDING, ReservationStatus.ACTIVE)

    @property
    def is_terminal(self) -> bool:
        return not self.is_blocking


BLOCKING_STATUSES = [ReservationStatus.PENDING, ReservationStatus.ACTIVE]


class Reservation(BaseModel):
    """Authoritative reservation record as stored in the ledger."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    reservation_id: str
    user_id: str
    location_id: int
    spot_id: int
    spot_number: str
    zone: ZoneType
    vehicle_id: int
    start_time: datetime
    end_time: datetime
    status: ReservationStatus = ReservationStatus.PENDING
    total_cost: float
    currency: str = "IDR"
    idempotency_key: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancel_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("start_time", "end_time", "created_at", "updated_at")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start_time, end=self.end_time)

    def blocks(self, time_range: TimeRange) -> bool:
        """True if this reservation holds its spot during any part of ``time_range``."""
        return self.status.is_blocking and self.time_range.overlaps(time_range)


# ==================== ALLOCATION TARGET ====================

class BySpot(BaseModel):
    """Allocation aimed at one explicit spot."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["spot"] = "spot"
    spot_id: int


class ByZone(BaseModel):
    """Allocation aimed at any free spot of a zone."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["zone"] = "zone"
    zone: ZoneType


AllocationTarget = Union[BySpot, ByZone]


class AllocationRequest(BaseModel):
    """
    Inbound reservation request.
    An explicit spot wins over the zone, which is only a fallback search key.
    """
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    location_id: int = Field(..., description="Parking location ID")
    spot_id: Optional[int] = Field(default=None, description="Explicit spot to reserve")
    zone: Optional[ZoneType] = Field(
        default=None,
        validation_alias="zone_type",
        description="Zone to pick any free spot from"
    )
    vehicle_id: int = Field(..., description="Vehicle parked on the spot")
    start_time: datetime
    end_time: datetime

    @model_validator(mode="before")
    @classmethod
    def accept_zone_aliases(cls, data):
        # Clients send either "zone" or the legacy "zone_type"
        if isinstance(data, dict):
            data = dict(data)
            if "zone" in data and "zone_type" not in data:
                data["zone_type"] = data.pop("zone")
            if isinstance(data.get("zone_type"), str):
                data["zone_type"] = ZoneType(data["zone_type"])
        return data

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def target(self) -> Optional[AllocationTarget]:
        if self.spot_id is not None:
            return BySpot(spot_id=self.spot_id)
        if self.zone is not None:
            return ByZone(zone=self.zone)
        return None


class AllocationState(str, Enum):
    """States of a single allocation attempt."""
    VALIDATING = "validating"
    RESOLVING = "resolving"
    COMMITTING = "committing"
    COMMITTED = "committed"
    REJECTED = "rejected"


# ==================== ERRORS & OUTCOMES ====================

class ErrorKind(str, Enum):
    """Client-visible error taxonomy."""
    INVALID_REQUEST = "InvalidRequest"
    NO_AVAILABILITY = "NoAvailability"
    CONFLICT = "Conflict"
    ALREADY_TERMINAL = "AlreadyTerminal"
    NOT_FOUND = "NotFound"
    FORBIDDEN = "Forbidden"
    ALLOCATION_FAILED = "AllocationFailed"

    @property
    def http_status(self) -> int:
        return {
            ErrorKind.INVALID_REQUEST: 400,
            ErrorKind.NO_AVAILABILITY: 400,
            ErrorKind.CONFLICT: 409,
            ErrorKind.ALREADY_TERMINAL: 409,
            ErrorKind.NOT_FOUND: 404,
            ErrorKind.FORBIDDEN: 403,
            ErrorKind.ALLOCATION_FAILED: 503,
        }[self]


class Rejected(BaseModel):
    """Typed rejection returned by the reservation core instead of raising."""
    error_kind: ErrorKind
    detail: str


class Committed(BaseModel):
    """Successful allocation. ``replayed`` is set for idempotent retries."""
    reservation: Reservation
    replayed: bool = False


AllocationOutcome = Union[Committed, Rejected]


class ErrorResponse(BaseModel):
    """Error body crossing the API boundary: kind plus a safe message."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    error_kind: ErrorKind
    detail: str


class ReservationCreatedResponse(BaseModel):
    """Response model after successful reservation."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    reservation_id: str
    spot_id: int
    spot_number: str
    zone: ZoneType
    start_time: datetime
    end_time: datetime
    total_cost: float
    currency: str
    status: ReservationStatus

    @classmethod
    def from_reservation(cls, reservation: Reservation) -> "ReservationCreatedResponse":
        return cls(
            reservation_id=reservation.reservation_id,
            spot_id=reservation.spot_id,
            spot_number=reservation.spot_number,
            zone=reservation.zone,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            total_cost=reservation.total_cost,
            currency=reservation.currency,
            status=reservation.status,
        )


class ReservationListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    count: int
    reservations: List[Reservation]


class CancelRequest(BaseModel):
    """Optional reason given when cancelling."""
    reason: Optional[str] = Field(default=None, max_length=200)
