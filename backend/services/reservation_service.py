"""
SmartPark Reservation System - Reservation Service
Allocation, cancellation and completion of reservations.

Every state change runs inside one ledger transaction keyed by the
(location, zone) bucket of the spot concerned, so the availability check,
the reservation write and the spot status write commit together or not at
all. Business rejections are returned as ``Rejected`` values, never raised.
"""

from typing import List, Optional, Union
from datetime import timedelta
import logging

from fastapi import Request

from database.ledger import (
    Bucket,
    ConflictError,
    LedgerTimeout,
    LedgerTransaction,
    ReservationLedger,
    StorageError,
)
from models.parking import ParkingSpot, SpotStatus
from models.payment import PriceQuote, ReservationWithPayment
from models.reservation import (
    AllocationOutcome,
    AllocationRequest,
    AllocationState,
    AllocationTarget,
    BySpot,
    Committed,
    ErrorKind,
    Rejected,
    Reservation,
    ReservationStatus,
    TimeRange,
)
from models.user import UserProfile
from services.availability import AvailabilityIndex, MissReason
from services.pricing import PricingEngine
from utils.helpers import generate_reservation_id, utcnow

# Configure logging
logger = logging.getLogger(__name__)

_MISS_REJECTIONS = {
    MissReason.NOT_FOUND: (ErrorKind.INVALID_REQUEST, "Parking spot not found"),
    MissReason.WRONG_LOCATION: (
        ErrorKind.INVALID_REQUEST,
        "Parking spot does not belong to this location"
    ),
    MissReason.UNAVAILABLE: (
        ErrorKind.NO_AVAILABILITY,
        "Parking spot is under maintenance"
    ),
    MissReason.CONFLICT: (
        ErrorKind.CONFLICT,
        "Parking spot is already reserved for the selected time"
    ),
    MissReason.ZONE_EXHAUSTED: (
        ErrorKind.NO_AVAILABILITY,
        "No parking spots available in the selected zone"
    ),
}


def rejection_for(reason: MissReason) -> Rejected:
    """Map an availability miss to its client-visible rejection."""
    kind, detail = _MISS_REJECTIONS[reason]
    return Rejected(error_kind=kind, detail=detail)


class AllocationAttempt:
    """Tracks the state of one allocation attempt for logging."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self.state = AllocationState.VALIDATING

    def transition(self, state: AllocationState) -> None:
        logger.debug(f"Allocation for {self.user_id}: {self.state.value} -> {state.value}")
        self.state = state

    def reject(self, rejection: Rejected) -> Rejected:
        self.transition(AllocationState.REJECTED)
        logger.warning(
            f"Reservation rejected for {self.user_id}: "
            f"{rejection.error_kind.value} ({rejection.detail})"
        )
        return rejection


class ReservationAllocator:
    """
    Service class for reservation operations.
    Handles allocation, cancellation and completion of reservations.
    """

    def __init__(
        self,
        ledger: ReservationLedger,
        pricing: Optional[PricingEngine] = None,
        index: Optional[AvailabilityIndex] = None,
        timeout_seconds: Optional[float] = 5.0,
        max_reservation_hours: int = 24
    ):
        self.ledger = ledger
        self.pricing = pricing or PricingEngine()
        self.index = index or AvailabilityIndex()
        self.timeout_seconds = timeout_seconds
        self.max_reservation_hours = max_reservation_hours

    # ==================== ALLOCATION ====================

    async def allocate(
        self,
        request: AllocationRequest,
        principal: UserProfile,
        idempotency_key: Optional[str] = None
    ) -> AllocationOutcome:
        """
        Create a pending reservation on a concrete spot.

        Args:
            request: Location, spot or zone, vehicle and time window
            principal: Authenticated user making the reservation
            idempotency_key: Optional client key making retries safe

        Returns:
            Committed with the stored reservation, or Rejected
        """
        attempt = AllocationAttempt(principal.uid)

        invalid = self._validate(request)
        if invalid is not None:
            return attempt.reject(invalid)

        time_range = TimeRange(start=request.start_time, end=request.end_time)
        target = request.target

        attempt.transition(AllocationState.RESOLVING)
        try:
            bucket = await self._bucket_for(request.location_id, target)
        except StorageError as e:
            logger.error(f"Catalog read failed during allocation: {e}")
            return attempt.reject(self._failure())
        if isinstance(bucket, Rejected):
            return attempt.reject(bucket)

        async def commit(tx: LedgerTransaction) -> AllocationOutcome:
            if idempotency_key:
                existing = await tx.find_by_idempotency_key(principal.uid, idempotency_key)
                if existing is not None:
                    return Committed(reservation=existing, replayed=True)

            availability = await self.index.find_available(
                tx, request.location_id, target, time_range
            )
            if not availability.found:
                return rejection_for(availability.reason)

            attempt.transition(AllocationState.COMMITTING)
            reservation = self._new_reservation(
                request, principal, availability.spot, time_range, idempotency_key
            )
            tx.insert_reservation(reservation)
            tx.set_spot_status(reservation.spot_id, SpotStatus.RESERVED, reservation.created_at)
            return Committed(reservation=reservation)

        try:
            outcome = await self.ledger.run_in_transaction(
                bucket, commit, timeout=self.timeout_seconds
            )
        except LedgerTimeout:
            logger.error(f"Allocation timed out after {self.timeout_seconds}s on {bucket}")
            return attempt.reject(self._failure("Reservation service is busy, please retry"))
        except ConflictError:
            replay = await self._replay(bucket, principal, idempotency_key)
            if replay is not None:
                logger.info(f"Idempotent replay of reservation {replay.reservation.reservation_id}")
                return replay
            return attempt.reject(Rejected(
                error_kind=ErrorKind.CONFLICT,
                detail="Another reservation was made concurrently, please retry"
            ))
        except StorageError as e:
            logger.error(f"Allocation failed on {bucket}: {e}")
            return attempt.reject(self._failure())

        if isinstance(outcome, Rejected):
            return attempt.reject(outcome)

        attempt.transition(AllocationState.COMMITTED)
        reservation = outcome.reservation
        if outcome.replayed:
            logger.info(f"Idempotent replay of reservation {reservation.reservation_id}")
        else:
            logger.info(
                f"Reservation created: {reservation.reservation_id}, "
                f"spot={reservation.spot_number}, user={principal.uid}, "
                f"cost={reservation.total_cost}"
            )
        return outcome

    async def _replay(
        self,
        bucket: Bucket,
        principal: UserProfile,
        idempotency_key: Optional[str]
    ) -> Optional[Committed]:
        """Reservation committed meanwhile under the same key, if that caused the conflict."""
        if not idempotency_key:
            return None

        async def lookup(tx: LedgerTransaction) -> Optional[Reservation]:
            return await tx.find_by_idempotency_key(principal.uid, idempotency_key)

        try:
            existing = await self.ledger.run_in_transaction(
                bucket, lookup, timeout=self.timeout_seconds
            )
        except StorageError as e:
            logger.error(f"Idempotency lookup failed on {bucket}: {e}")
            return None
        if existing is None:
            return None
        return Committed(reservation=existing, replayed=True)

    def _validate(self, request: AllocationRequest) -> Optional[Rejected]:
        """Shape checks done before touching storage."""
        problems = []
        if request.location_id <= 0:
            problems.append("locationId must be positive")
        if request.vehicle_id <= 0:
            problems.append("vehicleId must be positive")
        if request.target is None:
            problems.append("spotId or zone is required")
        if request.end_time <= request.start_time:
            problems.append("endTime must be after startTime")
        elif request.end_time - request.start_time > timedelta(hours=self.max_reservation_hours):
            problems.append(f"Maximum reservation duration is {self.max_reservation_hours} hours")

        if problems:
            return Rejected(error_kind=ErrorKind.INVALID_REQUEST, detail="; ".join(problems))
        return None

    async def _bucket_for(
        self,
        location_id: int,
        target: AllocationTarget
    ) -> Union[Bucket, Rejected]:
        """
        Lock key of a request. An explicit spot is looked up first so that
        spot and zone requests for the same spot share one bucket.
        """
        if not isinstance(target, BySpot):
            return (location_id, target.zone)

        spot = await self.ledger.get_spot(target.spot_id)
        if spot is None:
            return rejection_for(MissReason.NOT_FOUND)
        if spot.location_id != location_id:
            return rejection_for(MissReason.WRONG_LOCATION)
        return (spot.location_id, spot.zone)

    def _new_reservation(
        self,
        request: AllocationRequest,
        principal: UserProfile,
        spot: ParkingSpot,
        time_range: TimeRange,
        idempotency_key: Optional[str]
    ) -> Reservation:
        now = utcnow()
        return Reservation(
            reservation_id=generate_reservation_id(),
            user_id=principal.uid,
            location_id=spot.location_id,
            spot_id=spot.spot_id,
            spot_number=spot.spot_number,
            zone=spot.zone,
            vehicle_id=request.vehicle_id,
            start_time=time_range.start,
            end_time=time_range.end,
            status=ReservationStatus.PENDING,
            total_cost=self.pricing.price(spot.hourly_rate, time_range),
            currency=self.pricing.currency,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _failure(detail: str = "Reservation could not be processed, please retry later") -> Rejected:
        return Rejected(error_kind=ErrorKind.ALLOCATION_FAILED, detail=detail)

    # ==================== CANCELLATION ====================

    async def cancel(
        self,
        reservation_id: str,
        principal: UserProfile,
        reason: Optional[str] = None
    ) -> Union[Reservation, Rejected]:
        """
        Cancel a pending or active reservation.
        Only the owner or an admin may cancel. The spot goes back to
        available when nothing else holds it right now.
        """
        current = await self._load_for(reservation_id, principal)
        if isinstance(current, Rejected):
            return current

        async def apply(tx: LedgerTransaction) -> Union[Reservation, Rejected]:
            reservation = await tx.get_reservation(reservation_id)
            if reservation is None:
                return Rejected(error_kind=ErrorKind.NOT_FOUND, detail="Reservation not found")
            if reservation.status.is_terminal:
                return Rejected(
                    error_kind=ErrorKind.ALREADY_TERMINAL,
                    detail=f"Reservation is already {reservation.status.value}"
                )
            return await self._close(
                tx, reservation, ReservationStatus.CANCELLED,
                cancelled_by=principal.uid, reason=reason
            )

        outcome = await self._run(current, apply)
        if isinstance(outcome, Reservation):
            logger.info(f"Reservation {reservation_id} cancelled by {principal.uid}")
        return outcome

    async def _close(
        self,
        tx: LedgerTransaction,
        reservation: Reservation,
        status: ReservationStatus,
        cancelled_by: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Reservation:
        """Move a reservation to a terminal status and release its spot if free now."""
        now = utcnow()
        spot = await tx.get_spot(reservation.spot_id)
        holders = await tx.blocking_reservations([reservation.spot_id], TimeRange.instant(now))
        still_held = any(r.reservation_id != reservation.reservation_id for r in holders)

        closed = reservation.model_copy(update={
            "status": status,
            "cancelled_by": cancelled_by,
            "cancel_reason": reason,
            "updated_at": now,
        })
        tx.update_reservation(closed)
        if spot is not None and spot.status.is_allocatable and not still_held:
            tx.set_spot_status(spot.spot_id, SpotStatus.AVAILABLE, now)
        return closed

    # ==================== COMPLETION SWEEP ====================

    async def complete_due(self) -> int:
        """
        Close reservations whose end has passed.
        Active ones become completed; pending ones were never paid and are
        cancelled as expired. Called by the background scheduler.

        Returns:
            int: Number of reservations closed
        """
        now = utcnow()
        due = await self.ledger.list_due_reservations(now)
        count = 0

        for candidate in due:
            async def apply(tx: LedgerTransaction, reservation_id=candidate.reservation_id):
                reservation = await tx.get_reservation(reservation_id)
                if reservation is None or reservation.status.is_terminal:
                    return None
                if reservation.end_time > now:
                    return None
                if reservation.status == ReservationStatus.ACTIVE:
                    return await self._close(tx, reservation, ReservationStatus.COMPLETED)
                return await self._close(
                    tx, reservation, ReservationStatus.CANCELLED,
                    cancelled_by="system", reason="expired"
                )

            closed = await self._run(candidate, apply)
            if isinstance(closed, Rejected):
                logger.error(f"Could not close {candidate.reservation_id}: {closed.detail}")
            elif isinstance(closed, Reservation):
                count += 1
                logger.info(f"Reservation {closed.reservation_id} -> {closed.status.value}")

        return count

    # ==================== MAINTENANCE ====================

    async def set_maintenance(
        self,
        spot_id: int,
        enabled: bool
    ) -> Union[ParkingSpot, Rejected]:
        """
        Operator tool: take a spot out of service or put it back.
        A spot back from maintenance is reserved if a reservation holds it now.
        """
        try:
            spot = await self.ledger.get_spot(spot_id)
        except StorageError as e:
            logger.error(f"Could not load spot {spot_id}: {e}")
            return self._failure("Spot could not be updated, please retry later")
        if spot is None:
            return Rejected(error_kind=ErrorKind.NOT_FOUND, detail="Parking spot not found")

        async def apply(tx: LedgerTransaction) -> ParkingSpot:
            now = utcnow()
            if enabled:
                status = SpotStatus.MAINTENANCE
            else:
                holders = await tx.blocking_reservations([spot_id], TimeRange.instant(now))
                status = SpotStatus.RESERVED if holders else SpotStatus.AVAILABLE
            tx.set_spot_status(spot_id, status, now)
            return spot.model_copy(update={"status": status, "updated_at": now})

        try:
            updated = await self.ledger.run_in_transaction(
                (spot.location_id, spot.zone), apply, timeout=self.timeout_seconds
            )
        except StorageError as e:
            logger.error(f"Maintenance update failed for spot {spot_id}: {e}")
            return self._failure("Spot could not be updated, please retry later")

        logger.info(f"Spot {spot.spot_number} status -> {updated.status.value}")
        return updated

    # ==================== READS ====================

    async def get_reservation(
        self,
        reservation_id: str,
        principal: UserProfile
    ) -> Union[Reservation, Rejected]:
        """Reservation details, visible to its owner and to admins."""
        return await self._load_for(reservation_id, principal)

    async def quote(
        self,
        spot_id: int,
        time_range: TimeRange
    ) -> Union[PriceQuote, Rejected]:
        """Price preview for a spot. Does not check availability."""
        try:
            spot = await self.ledger.get_spot(spot_id)
        except StorageError as e:
            logger.error(f"Could not load spot {spot_id}: {e}")
            return self._failure()
        if spot is None:
            return Rejected(error_kind=ErrorKind.NOT_FOUND, detail="Parking spot not found")
        return self.pricing.quote(spot, time_range)

    async def list_my_reservations(
        self,
        principal: UserProfile
    ) -> Union[List[ReservationWithPayment], Rejected]:
        """The caller's reservations, newest first, each with its payment state."""
        try:
            reservations = await self.ledger.list_user_reservations(principal.uid)
            payments = await self.ledger.list_user_payments(principal.uid)
        except StorageError as e:
            logger.error(f"Could not list reservations of {principal.uid}: {e}")
            return self._failure()
        return ReservationWithPayment.join(reservations, payments)

    async def list_reservations(
        self,
        status: Optional[ReservationStatus] = None,
        limit: int = 100
    ) -> List[Reservation]:
        return await self.ledger.list_reservations(status, limit)

    # ==================== HELPERS ====================

    async def _load_for(
        self,
        reservation_id: str,
        principal: UserProfile
    ) -> Union[Reservation, Rejected]:
        try:
            reservation = await self.ledger.get_reservation(reservation_id)
        except StorageError as e:
            logger.error(f"Could not load reservation {reservation_id}: {e}")
            return self._failure()
        if reservation is None:
            return Rejected(error_kind=ErrorKind.NOT_FOUND, detail="Reservation not found")
        if reservation.user_id != principal.uid and not principal.is_admin:
            logger.warning(f"User {principal.uid} denied access to {reservation_id}")
            return Rejected(
                error_kind=ErrorKind.FORBIDDEN,
                detail="You can only manage your own reservations"
            )
        return reservation

    async def _run(self, reservation: Reservation, fn):
        """Run ``fn`` in the bucket of the reservation's spot, mapping storage faults."""
        bucket = (reservation.location_id, reservation.zone)
        try:
            return await self.ledger.run_in_transaction(bucket, fn, timeout=self.timeout_seconds)
        except LedgerTimeout:
            logger.error(f"Timed out waiting for {bucket}")
            return self._failure("Reservation service is busy, please retry")
        except ConflictError:
            return Rejected(
                error_kind=ErrorKind.CONFLICT,
                detail="Reservation changed concurrently, please retry"
            )
        except StorageError as e:
            logger.error(f"Storage error on {bucket}: {e}")
            return self._failure()


def get_reservation_allocator(request: Request) -> ReservationAllocator:
    """Dépendance FastAPI: allocateur construit au démarrage de l'application."""
    return request.app.state.allocator
