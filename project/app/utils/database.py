# app/utils/database.py

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.future import select
from app.config import settings
from app.utils.security import hash_password

# ────────────── Base for models ──────────────
Base = declarative_base()

# ────────────── Async engine ──────────────
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False
)

# ────────────── Async session ──────────────
# expire_on_commit=False: routes serialize objects after commit, lazy refresh is not possible under asyncio
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ────────────── Database initialisation ──────────────
async def init_db(bind=None, session_factory=None):
    """
    Creates all tables (if missing) and makes sure at least one administrator exists.
    The first admin gets AUTH_LOGIN / AUTH_PASSWORD from settings, the password is stored hashed.
    """
    bind = bind or engine
    session_factory = session_factory or AsyncSessionLocal

    # import models so they are registered on Base.metadata
    from app.models import user, order, reward, referral, pincode  # noqa: F401
    from app.models.user import User

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_factory() as session:
        result = await session.execute(select(User).where(User.role == "admin").limit(1))
        if result.scalar_one_or_none() is None:
            admin = User(
                name="Administrator",
                email=settings.AUTH_LOGIN,
                password=hash_password(settings.AUTH_PASSWORD),
                role="admin",
            )
            session.add(admin)
            await session.commit()
            return admin
    return None
