"""Sample data for local development."""

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .core.database import async_session_factory
from .models.commission import Agent, AgentWallet
from .models.departure import Departure, DepartureStatus

logger = logging.getLogger(__name__)

SAMPLE_HOTEL_MAKKAH = "HTL-MAKKAH-01"
SAMPLE_HOTEL_MADINAH = "HTL-MADINAH-01"


async def create_sample_data(session: AsyncSession) -> bool:
    """
    Create a few open departures and one agent unless departures already exist.

    Returns:
        True if sample data was inserted
    """
    existing = await session.execute(select(func.count(Departure.id)))
    if existing.scalar_one() > 0:
        logger.info("Sample data already exists, skipping")
        return False

    base_date = datetime.utcnow().date() + timedelta(days=45)
    for i in range(4):
        departure_date = base_date + timedelta(days=i * 14)
        session.add(Departure(
            package_id="UMRAH-12D",
            departure_date=departure_date,
            return_date=departure_date + timedelta(days=12),
            quota=45,
            booked_count=0,
            status=DepartureStatus.OPEN,
            price_quad=29_500_000,
            price_triple=31_000_000,
            price_double=33_500_000,
            price_single=39_000_000,
            currency="IDR",
            hotel_makkah_id=SAMPLE_HOTEL_MAKKAH,
            hotel_madinah_id=SAMPLE_HOTEL_MADINAH,
        ))

    agent = Agent(agent_code="AG-001", name="Sample Travel Partner", commission_rate=Decimal("2.50"))
    session.add(agent)
    await session.flush()
    session.add(AgentWallet(agent_id=agent.id, balance=0))

    await session.commit()
    logger.info("Sample data created", extra={"departures": 4, "agent_code": agent.agent_code})
    return True


async def seed() -> None:
    async with async_session_factory() as session:
        try:
            await create_sample_data(session)
        except Exception:
            await session.rollback()
            logger.error("Failed to create sample data", exc_info=True)
            raise
