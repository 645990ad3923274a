"""Departure inventory service owning seat capacity."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import and_, case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import with_timeout
from ..core.exceptions import (
    CapacityExceededError,
    ConflictError,
    DepartureClosedError,
    InvalidStateTransitionError,
    NotFoundError,
)
from ..core.observability import metrics_collector
from ..models.departure import Departure, DepartureStatus
from ..models.inventory import InventoryMovement, MovementKind
from ..schemas.departure import AdjustQuotaRequest, CreateDepartureRequest, SearchDeparturesRequest

logger = logging.getLogger(__name__)

# Statuses a staff status change may start from
_STATUS_SOURCES = {
    DepartureStatus.CLOSED: (DepartureStatus.OPEN, DepartureStatus.FULL),
    DepartureStatus.OPEN: (DepartureStatus.CLOSED,),
    DepartureStatus.DEPARTED: (DepartureStatus.OPEN, DepartureStatus.FULL, DepartureStatus.CLOSED),
}


class QuotaConflictError(ConflictError):
    """Exception when a quota change would drop below the seats already booked."""

    def __init__(self, departure_id: str, requested_delta: int, quota: int, booked_count: int):
        super().__init__(
            detail=(
                f"Cannot change quota of departure {departure_id} by {requested_delta}: "
                f"{booked_count} seats are booked and the quota must stay at least 1"
            ),
            title="Quota Conflict",
            code="QUOTA_CONFLICT",
            slug="quota-conflict",
            conflicting_resource={
                "departure_id": departure_id,
                "requested_delta": requested_delta,
                "quota": quota,
                "booked_count": booked_count,
            },
        )


def _recomputed_status(new_quota):
    """Status expression after a quota change, leaving closed and departed alone."""
    return case(
        (
            Departure.status.in_([DepartureStatus.OPEN.value, DepartureStatus.FULL.value]),
            case(
                (Departure.booked_count >= new_quota, DepartureStatus.FULL.value),
                else_=DepartureStatus.OPEN.value,
            ),
        ),
        else_=Departure.status,
    )


class DepartureService:
    """Service for departure inventory operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_departure(self, request: CreateDepartureRequest) -> Departure:
        """
        Create a new departure with no seats booked.

        Args:
            request: Departure creation request

        Returns:
            Created departure entity
        """
        departure = Departure(
            package_id=request.package_id,
            departure_date=request.departure_date,
            return_date=request.return_date,
            quota=request.quota,
            booked_count=0,
            status=DepartureStatus.OPEN,
            price_quad=request.prices.quad,
            price_triple=request.prices.triple,
            price_double=request.prices.double,
            price_single=request.prices.single,
            currency=request.currency,
            hotel_makkah_id=request.hotel_makkah_id,
            hotel_madinah_id=request.hotel_madinah_id,
        )

        self.db.add(departure)
        await with_timeout(self.db.commit(), "departure.create")

        logger.info(
            "Departure created successfully",
            extra={
                "departure_id": str(departure.id),
                "package_id": departure.package_id,
                "departure_date": departure.departure_date.isoformat(),
                "quota": departure.quota
            }
        )

        return departure

    async def get_departure_by_id(self, departure_id: UUID, fresh: bool = False) -> Departure | None:
        """
        Get departure by ID.

        Args:
            departure_id: Departure ID to search for
            fresh: Overwrite any copy already loaded in this session

        Returns:
            Departure if found, None otherwise
        """
        stmt = select(Departure).where(Departure.id == departure_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await with_timeout(self.db.execute(stmt), "departure.get")
        return result.scalar_one_or_none()

    async def get_departure_by_id_or_raise(self, departure_id: UUID, fresh: bool = False) -> Departure:
        """
        Get departure by ID or raise NotFoundError.

        Raises:
            NotFoundError: If departure not found
        """
        departure = await self.get_departure_by_id(departure_id, fresh=fresh)
        if not departure:
            logger.warning(
                "Departure not found",
                extra={"departure_id": str(departure_id)}
            )
            raise NotFoundError(
                resource_type="departure",
                resource_id=str(departure_id)
            )
        return departure

    async def get_availability(self, departure_id: UUID) -> dict[str, Any]:
        """Seat availability snapshot of a departure."""
        departure = await self.get_departure_by_id_or_raise(departure_id, fresh=True)
        return {
            "departure_id": departure.id,
            "quota": departure.quota,
            "booked": departure.booked_count,
            "available": departure.available,
            "status": departure.status,
        }

    async def search_departures(self, request: SearchDeparturesRequest) -> tuple[list[Departure], str | None]:
        """
        Search departures based on criteria.

        Args:
            request: Search criteria

        Returns:
            Tuple of (departures, next_cursor)
        """
        stmt = select(Departure)

        # Apply filters
        conditions = []

        if request.package_id:
            conditions.append(Departure.package_id == request.package_id)

        if request.date_from:
            conditions.append(Departure.departure_date >= request.date_from)

        if request.date_to:
            conditions.append(Departure.departure_date <= request.date_to)

        if request.status:
            conditions.append(Departure.status == request.status)

        if request.available_only:
            conditions.append(Departure.status == DepartureStatus.OPEN)
            conditions.append(Departure.booked_count < Departure.quota)

        if conditions:
            stmt = stmt.where(and_(*conditions))

        # Apply cursor-based pagination
        if request.cursor:
            try:
                cursor_id = UUID(request.cursor)
                stmt = stmt.where(Departure.id > cursor_id)
            except (ValueError, TypeError):
                logger.warning(
                    "Invalid cursor provided in departure search",
                    extra={"cursor": request.cursor}
                )

        # Order by ID for consistent pagination, fetch one extra to detect a next page
        stmt = stmt.order_by(Departure.id).limit(request.limit + 1).execution_options(populate_existing=True)

        result = await with_timeout(self.db.execute(stmt), "departure.search")
        departures = list(result.scalars())

        has_next_page = len(departures) > request.limit
        if has_next_page:
            departures = departures[:-1]

        next_cursor = str(departures[-1].id) if has_next_page and departures else None

        logger.info(
            "Departure search completed",
            extra={
                "total_found": len(departures),
                "has_next_page": has_next_page,
                "filters": {
                    "package_id": request.package_id,
                    "date_from": request.date_from.isoformat() if request.date_from else None,
                    "date_to": request.date_to.isoformat() if request.date_to else None,
                    "status": request.status.value if request.status else None,
                    "available_only": request.available_only
                }
            }
        )

        return departures, next_cursor

    async def reserve(
        self,
        departure_id: UUID,
        pax_count: int,
        actor: str,
        booking_id: UUID | None = None,
        reason: str = "booking",
        commit: bool = True,
    ) -> InventoryMovement:
        """
        Atomically take seats from a departure.

        The increment, the capacity check and the full flag are one conditional
        UPDATE. The row is only read afterwards to explain a rejection.

        Args:
            departure_id: Departure to take seats from
            pax_count: Number of seats
            actor: Who is reserving
            booking_id: Booking the seats are for
            reason: Audit reason
            commit: Commit the transaction, False when part of a larger unit of work

        Returns:
            The inventory movement recorded for the reservation

        Raises:
            NotFoundError: If departure not found
            DepartureClosedError: If the departure is closed or departed
            CapacityExceededError: If fewer than pax_count seats are free
        """
        if pax_count <= 0:
            raise ValueError("pax_count must be positive")

        new_count = Departure.booked_count + pax_count
        stmt = (
            update(Departure)
            .where(
                Departure.id == departure_id,
                Departure.status == DepartureStatus.OPEN,
                new_count <= Departure.quota,
            )
            .values(
                booked_count=new_count,
                status=case(
                    (new_count >= Departure.quota, DepartureStatus.FULL.value),
                    else_=DepartureStatus.OPEN.value,
                ),
            )
            .returning(Departure.quota, Departure.booked_count)
            .execution_options(synchronize_session=False)
        )
        result = await with_timeout(self.db.execute(stmt), "departure.reserve")
        row = result.first()

        if row is None:
            departure = await self.get_departure_by_id_or_raise(departure_id, fresh=True)
            if departure.status in (DepartureStatus.CLOSED, DepartureStatus.DEPARTED):
                metrics_collector.record_reservation_rejected("closed")
                logger.warning(
                    "Reservation rejected - departure not open",
                    extra={"departure_id": str(departure_id), "status": departure.status.value}
                )
                raise DepartureClosedError(str(departure_id), departure.status.value)

            metrics_collector.record_reservation_rejected("capacity")
            logger.warning(
                "Reservation rejected - insufficient capacity",
                extra={
                    "departure_id": str(departure_id),
                    "requested_pax": pax_count,
                    "quota": departure.quota,
                    "booked_count": departure.booked_count
                }
            )
            raise CapacityExceededError(
                departure_id=str(departure_id),
                requested_pax=pax_count,
                quota=departure.quota,
                booked_count=departure.booked_count,
            )

        quota, booked_after = row
        movement = InventoryMovement(
            departure_id=departure_id,
            kind=MovementKind.RESERVE,
            delta=pax_count,
            booking_id=booking_id,
            reason=reason,
            actor=actor,
            quota_before=quota,
            quota_after=quota,
            booked_before=booked_after - pax_count,
            booked_after=booked_after,
        )
        self.db.add(movement)

        if commit:
            await with_timeout(self.db.commit(), "departure.reserve")

        metrics_collector.record_seats_reserved(pax_count)
        logger.info(
            "Seats reserved",
            extra={
                "departure_id": str(departure_id),
                "pax_count": pax_count,
                "booked_count": booked_after,
                "quota": quota,
                "booking_id": str(booking_id) if booking_id else None
            }
        )

        return movement

    async def release(
        self,
        departure_id: UUID,
        pax_count: int,
        actor: str,
        booking_id: UUID | None = None,
        reason: str = "release",
        commit: bool = True,
    ) -> InventoryMovement | None:
        """
        Atomically give seats back to a departure.

        A full departure reopens. The booked count never drops below zero.

        Returns:
            The inventory movement recorded, None when nothing was booked

        Raises:
            NotFoundError: If departure not found
        """
        if pax_count <= 0:
            raise ValueError("pax_count must be positive")

        reopened = case(
            (Departure.status == DepartureStatus.FULL.value, DepartureStatus.OPEN.value),
            else_=Departure.status,
        )
        stmt = (
            update(Departure)
            .where(Departure.id == departure_id, Departure.booked_count >= pax_count)
            .values(booked_count=Departure.booked_count - pax_count, status=reopened)
            .returning(Departure.quota, Departure.booked_count)
            .execution_options(synchronize_session=False)
        )
        result = await with_timeout(self.db.execute(stmt), "departure.release")
        row = result.first()

        if row is not None:
            quota, booked_after = row
            booked_before = booked_after + pax_count
        else:
            departure = await self.get_departure_by_id_or_raise(departure_id, fresh=True)
            logger.warning(
                "Release exceeds booked count, flooring at zero",
                extra={
                    "departure_id": str(departure_id),
                    "pax_count": pax_count,
                    "booked_count": departure.booked_count
                }
            )
            floor_stmt = (
                update(Departure)
                .where(Departure.id == departure_id, Departure.booked_count < pax_count)
                .values(booked_count=0, status=reopened)
                .returning(Departure.quota, Departure.booked_count)
                .execution_options(synchronize_session=False)
            )
            floor_row = (await with_timeout(self.db.execute(floor_stmt), "departure.release")).first()
            quota = floor_row[0] if floor_row else departure.quota
            booked_before, booked_after = departure.booked_count, 0

        movement = None
        if booked_before != booked_after:
            movement = InventoryMovement(
                departure_id=departure_id,
                kind=MovementKind.RELEASE,
                delta=booked_after - booked_before,
                booking_id=booking_id,
                reason=reason,
                actor=actor,
                quota_before=quota,
                quota_after=quota,
                booked_before=booked_before,
                booked_after=booked_after,
            )
            self.db.add(movement)

        if commit:
            await with_timeout(self.db.commit(), "departure.release")

        metrics_collector.record_seats_released(booked_before - booked_after)
        logger.info(
            "Seats released",
            extra={
                "departure_id": str(departure_id),
                "pax_count": pax_count,
                "booked_count": booked_after,
                "booking_id": str(booking_id) if booking_id else None
            }
        )

        return movement

    async def adjust_quota(self, request: AdjustQuotaRequest, actor: str, commit: bool = True) -> InventoryMovement:
        """
        Atomically change the quota of a departure.

        The new quota may not drop below the booked count or below one. The
        full flag is recomputed in the same statement.

        Args:
            request: Quota adjustment request
            actor: User making the adjustment

        Returns:
            Created inventory movement record

        Raises:
            NotFoundError: If departure not found
            QuotaConflictError: If the new quota would be below the booked count
        """
        new_quota = Departure.quota + request.delta
        stmt = (
            update(Departure)
            .where(
                Departure.id == request.departure_id,
                new_quota >= Departure.booked_count,
                new_quota >= 1,
            )
            .values(quota=new_quota, status=_recomputed_status(new_quota))
            .returning(Departure.quota, Departure.booked_count)
            .execution_options(synchronize_session=False)
        )
        result = await with_timeout(self.db.execute(stmt), "departure.adjust_quota")
        row = result.first()

        if row is None:
            departure = await self.get_departure_by_id_or_raise(request.departure_id, fresh=True)
            logger.warning(
                "Quota adjustment rejected",
                extra={
                    "departure_id": str(request.departure_id),
                    "requested_delta": request.delta,
                    "quota": departure.quota,
                    "booked_count": departure.booked_count,
                    "actor": actor
                }
            )
            raise QuotaConflictError(
                departure_id=str(request.departure_id),
                requested_delta=request.delta,
                quota=departure.quota,
                booked_count=departure.booked_count,
            )

        quota_after, booked = row
        movement = InventoryMovement(
            departure_id=request.departure_id,
            kind=MovementKind.QUOTA_ADJUST,
            delta=request.delta,
            reason=request.reason,
            actor=actor,
            quota_before=quota_after - request.delta,
            quota_after=quota_after,
            booked_before=booked,
            booked_after=booked,
        )
        self.db.add(movement)

        if commit:
            await with_timeout(self.db.commit(), "departure.adjust_quota")

        logger.info(
            "Quota adjustment completed successfully",
            extra={
                "departure_id": str(request.departure_id),
                "delta": request.delta,
                "reason": request.reason,
                "actor": actor,
                "quota_after": quota_after,
                "booked_count": booked
            }
        )

        return movement

    async def set_status(self, departure_id: UUID, status: DepartureStatus, actor: str) -> Departure:
        """
        Close, reopen or mark a departure as departed.

        Reopening a departure with no seats left yields full. Requesting the
        current status is a no-op.

        Raises:
            NotFoundError: If departure not found
            InvalidStateTransitionError: If the change is not allowed
        """
        target = DepartureStatus(status)
        if target not in _STATUS_SOURCES:
            raise InvalidStateTransitionError(
                entity="departure",
                entity_id=str(departure_id),
                current_state="unknown",
                attempted=f"set status {target.value}",
                detail="Status 'full' is derived from the booked count and cannot be set",
            )

        if target == DepartureStatus.OPEN:
            new_status = case(
                (Departure.booked_count >= Departure.quota, DepartureStatus.FULL.value),
                else_=DepartureStatus.OPEN.value,
            )
        else:
            new_status = target.value

        stmt = (
            update(Departure)
            .where(
                Departure.id == departure_id,
                Departure.status.in_([s.value for s in _STATUS_SOURCES[target]]),
            )
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        result = await with_timeout(self.db.execute(stmt), "departure.set_status")

        if result.rowcount == 0:
            departure = await self.get_departure_by_id_or_raise(departure_id, fresh=True)
            if departure.status == target or (
                target == DepartureStatus.OPEN and departure.status == DepartureStatus.FULL
            ):
                return departure
            raise InvalidStateTransitionError(
                entity="departure",
                entity_id=str(departure_id),
                current_state=departure.status.value,
                attempted=f"set status {target.value}",
            )

        await with_timeout(self.db.commit(), "departure.set_status")
        departure = await self.get_departure_by_id_or_raise(departure_id, fresh=True)

        logger.info(
            "Departure status changed",
            extra={"departure_id": str(departure_id), "status": departure.status.value, "actor": actor}
        )

        return departure

    async def list_movements(self, departure_id: UUID) -> list[InventoryMovement]:
        """Get all inventory movements for a departure, newest first."""
        await self.get_departure_by_id_or_raise(departure_id)
        stmt = (
            select(InventoryMovement)
            .where(InventoryMovement.departure_id == departure_id)
            .order_by(InventoryMovement.created_at.desc())
        )
        result = await with_timeout(self.db.execute(stmt), "departure.list_movements")
        return list(result.scalars())
