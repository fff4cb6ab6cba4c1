"""
Seed script to populate the demo users.

Run this script after database initialization to create one or more users
per role. Permissions need no seeding: role defaults are compiled in, and
overrides are created from the permissions matrix.

Usage:
    uv run python -m scripts.seed_users
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import AsyncSessionLocal, init_db
from app.features.permissions.defaults import Role, validate_permission_tables
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


DEMO_USERS = [
    # (id, email, name, role)
    ("user-rob", "rob@updraft.com", "Rob", Role.CCRO_TEAM),
    ("user-cath", "cath@updraft.com", "Cath", Role.CCRO_TEAM),
    ("user-ash", "ash@updraft.com", "Ash", Role.OWNER),
    ("user-chris", "chris@updraft.com", "Chris", Role.OWNER),
    ("user-micha", "micha@updraft.com", "Micha", Role.OWNER),
    ("user-david", "david@updraft.com", "David", Role.OWNER),
    ("user-ceo", "aseem@updraft.com", "Aseem", Role.CEO),
    ("user-viewer", "viewer@updraft.com", "Viewer", Role.VIEWER),
]


async def seed_users(db: AsyncSession) -> int:
    """
    Create demo users that don't exist yet.

    Returns:
        Number of users created
    """
    log.info("Creating demo users...")
    created = 0

    for user_id, email, name, role in DEMO_USERS:
        result = await db.execute(select(User).where(User.id == user_id))
        if result.scalars().first():
            log.debug(f"User '{user_id}' already exists, skipping")
            continue

        db.add(User(id=user_id, email=email, name=name, role=role, is_active=True))
        created += 1
        log.info(f"Created user: {user_id} ({role.value})")

    await db.commit()
    log.info(f"Created {created} users")
    return created


async def main():
    """Main function to seed demo users."""
    log.info("Starting user seeding...")
    validate_permission_tables()

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            await seed_users(db)
            log.info("User seeding completed successfully!")
        except Exception as e:
            log.error(f"Error seeding users: {e}", exc_info=True)
            await db.rollback()
            raise


if __name__ == "__main__":
    asyncio.run(main())
