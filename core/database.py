# core/database.py
import motor.motor_asyncio
from beanie import init_beanie
from .config import settings


async def init_db() -> motor.motor_asyncio.AsyncIOMotorDatabase:
    """Initializes the Beanie ODM and database connection."""

    # Import models inside the function to avoid circular imports at startup
    from data.models import LeaderboardMember, KnownNames, ItemAuctions

    client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_DETAILS)
    database = client.get_database(settings.DB_NAME)
    await init_beanie(
        database=database,
        document_models=[
            LeaderboardMember,
            KnownNames,
            ItemAuctions,
        ]
    )
    return database


def collection_for(database, document_model):
    """Raw Motor collection behind a Beanie document, used for bulk queries."""
    return database[document_model.Settings.name]
