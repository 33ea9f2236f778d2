"""
Database seeding script for a fresh deployment.

Creates a default location and an initial API key, and prints an admin
token for the given subject. Run after the database is reachable:

    python -m backend.seed [admin-email]
"""

import asyncio
import sys

from sqlalchemy import select

from backend.app.core.config import settings
from backend.app.core.jwt import create_access_token
from backend.app.db.session import Database
from backend.app.models.location import Location
from backend.app.services.api_keys import ApiKeyService

# Register the remaining tables with Base before create_all
import backend.app.main  # noqa: F401

DEFAULT_LOCATION = "Default Warehouse"


async def seed(admin_email: str) -> None:
    """
    Seed initial data.

    Creates:
    - the default location, unless it exists
    - one API key (the secret is printed once and not stored)
    """
    database = Database(settings.database_url)
    await database.create_all()

    try:
        async with database.session_factory() as db:
            print("Starting seeding...")

            result = await db.execute(select(Location).where(Location.name == DEFAULT_LOCATION))
            location = result.scalar_one_or_none()
            if location:
                print(f"Location '{DEFAULT_LOCATION}' already exists, skipping")
            else:
                location = Location(name=DEFAULT_LOCATION, recipient_emails=["warehouse@example.com"])
                db.add(location)
                await db.commit()
                print(f"Created location '{location.name}' ({location.id})")

            api_key, secret = await ApiKeyService.create(db, "Seeded key")
            print(f"Created API key {api_key.id}")
            print(f"  {settings.api_key_header}: {secret}")
            print("  Store it now; it cannot be shown again.")
    finally:
        await database.dispose()

    token = create_access_token(data={"sub": admin_email})
    print(f"\nAdmin bearer token for {admin_email} ({settings.access_token_expire_minutes} min):")
    print(f"  {token}")


if __name__ == "__main__":
    asyncio.run(seed(sys.argv[1] if len(sys.argv) > 1 else "admin@example.com"))
