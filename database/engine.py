import logging

from sqlalchemy import BigInteger, Integer, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings

logger = logging.getLogger(__name__)

# SQLite only autoincrements INTEGER primary keys
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")

db_engine = create_async_engine(settings.database_url, echo=settings.database_echo)


# Create async session maker to be used throughout the application
AsyncSessionLocal = async_sessionmaker(
    db_engine, class_=AsyncSession, expire_on_commit=False
)


# Base class for declarative models
class Base(DeclarativeBase):
    pass


# Dependency to get DB session
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


def import_models() -> None:
    """Register every mapped table on Base.metadata."""
    import database.models.candidates  # noqa: F401
    import database.models.interviews  # noqa: F401
    import database.models.offers  # noqa: F401
    import database.models.communications  # noqa: F401
    import database.models.users  # noqa: F401


async def create_schema(engine=None) -> None:
    """Create all tables on the given engine (defaults to the app engine)."""
    import_models()
    async with (engine or db_engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_role_permissions(session: AsyncSession) -> int:
    """Insert the default permission matrix when the table is empty."""
    from core.middleware.authorization import DEFAULT_ROLE_PERMISSIONS
    from database.models.users import RolePermission

    existing = await session.execute(select(RolePermission.id).limit(1))
    if existing.first() is not None:
        return 0

    count = 0
    for role, resources in DEFAULT_ROLE_PERMISSIONS.items():
        for resource, verbs in resources.items():
            session.add(
                RolePermission(
                    role=role,
                    resource=resource.value,
                    can_create="create" in verbs,
                    can_read="read" in verbs,
                    can_update="update" in verbs,
                    can_delete="delete" in verbs,
                )
            )
            count += 1
    await session.commit()
    logger.info(f"Seeded {count} role permission rows")
    return count


# Function to initialize the database (create tables, seed permissions)
async def init_db():
    await create_schema()
    async with AsyncSessionLocal() as session:
        await seed_role_permissions(session)


# Function to close database connections
async def close_db():
    """Close database engine and connections."""
    await db_engine.dispose()


def enum_values(enum_cls) -> list[str]:
    """Persist enum values (not member names) in non-native enum columns."""
    return [member.value for member in enum_cls]
