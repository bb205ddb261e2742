"""storestock — LocationService: registry of stores and warehouses per business."""
import logging
from uuid import UUID

from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from storestock.core.errors import InvalidRequest, LocationInactive, LocationNotFound
from storestock.models.location import Location, LocationKind

logger = logging.getLogger(__name__)

# primary store first, then retail stores, then warehouses
_KIND_ORDER = case(
    {
        LocationKind.PRIMARY_STORE.value: 0,
        LocationKind.RETAIL_STORE.value: 1,
        LocationKind.WAREHOUSE.value: 2,
    },
    value=Location.kind,
    else_=3,
)


class LocationService:
    """Read-mostly registry. Locations are deactivated, never deleted."""

    @staticmethod
    async def list_locations(
        db: AsyncSession,
        business_id: UUID,
        include_inactive: bool = False,
    ) -> list[Location]:
        q = select(Location).where(Location.business_id == business_id)
        if not include_inactive:
            q = q.where(Location.is_active == True)  # noqa: E712
        q = q.order_by(_KIND_ORDER, Location.name)
        result = await db.execute(q)
        return list(result.scalars().all())

    @staticmethod
    async def list_active_locations(db: AsyncSession, business_id: UUID) -> list[Location]:
        return await LocationService.list_locations(db, business_id)

    @staticmethod
    async def get_location(db: AsyncSession, business_id: UUID, location_id: UUID) -> Location:
        """Fetch a location whether active or not. Raises LocationNotFound."""
        result = await db.execute(
            select(Location).where(
                Location.id == location_id,
                Location.business_id == business_id,
            )
        )
        loc = result.scalar_one_or_none()
        if loc is None:
            raise LocationNotFound(location_id)
        return loc

    @staticmethod
    async def require_active(
        db: AsyncSession,
        business_id: UUID,
        location_id: UUID,
        role: str = "location",
    ) -> Location:
        """Resolve a transfer endpoint. Deactivated locations cannot be chosen."""
        try:
            loc = await LocationService.get_location(db, business_id, location_id)
        except LocationNotFound:
            raise LocationNotFound(location_id, role) from None
        if not loc.is_active:
            raise LocationInactive(location_id, role)
        return loc

    @staticmethod
    async def display_names(
        db: AsyncSession,
        business_id: UUID,
        location_ids: set[UUID],
    ) -> dict[UUID, str]:
        """Names for history labels, including deactivated locations."""
        if not location_ids:
            return {}
        result = await db.execute(
            select(Location.id, Location.name).where(
                Location.business_id == business_id,
                Location.id.in_(location_ids),
            )
        )
        return {row.id: row.name for row in result.all()}

    @staticmethod
    async def create_location(
        db: AsyncSession,
        business_id: UUID,
        code: str,
        name: str,
        kind: LocationKind | str = LocationKind.RETAIL_STORE,
        localized_name: str | None = None,
    ) -> Location:
        existing = await db.execute(
            select(Location.id).where(Location.business_id == business_id, Location.code == code)
        )
        if existing.scalar_one_or_none() is not None:
            raise InvalidRequest(f"Location code '{code}' already exists")
        loc = Location(
            business_id=business_id,
            code=code,
            name=name,
            localized_name=localized_name,
            kind=LocationKind(kind).value,
        )
        db.add(loc)
        await db.flush()
        await db.refresh(loc)
        logger.info("Location %s (%s) created for business %s", loc.id, code, business_id)
        return loc

    @staticmethod
    async def update_location(db: AsyncSession, business_id: UUID, location_id: UUID, **fields) -> Location:
        loc = await LocationService.get_location(db, business_id, location_id)
        for key in ("name", "localized_name", "kind"):
            value = fields.get(key)
            if value is None:
                continue
            setattr(loc, key, LocationKind(value).value if key == "kind" else value)
        await db.flush()
        await db.refresh(loc)
        return loc

    @staticmethod
    async def deactivate_location(db: AsyncSession, business_id: UUID, location_id: UUID) -> Location:
        loc = await LocationService.get_location(db, business_id, location_id)
        if loc.is_active:
            loc.is_active = False
            await db.flush()
            await db.refresh(loc)
            logger.info("Location %s deactivated", location_id)
        return loc

    @staticmethod
    async def reactivate_location(db: AsyncSession, business_id: UUID, location_id: UUID) -> Location:
        loc = await LocationService.get_location(db, business_id, location_id)
        if not loc.is_active:
            loc.is_active = True
            await db.flush()
            await db.refresh(loc)
            logger.info("Location %s reactivated", location_id)
        return loc
