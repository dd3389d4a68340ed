from tortoise import Tortoise
from coffeeshop.core.config import DB_URL, GENERATE_SCHEMAS
import logging
from logging import INFO

# Set logging level for Tortoise ORM
logging.getLogger('tortoise').setLevel(INFO)
log = logging.getLogger("db")

# Define all models modules for the ORM
MODELS_MODULES = [
    "coffeeshop.models.menu",
    "coffeeshop.models.inventory",
    "coffeeshop.models.order",
    "coffeeshop.models.customer",
]

async def init_db(db_url: str = DB_URL, generate_schemas: bool = GENERATE_SCHEMAS):
    """Initializes the Tortoise ORM connection and (optionally) generates schemas."""
    try:
        await Tortoise.init(
            db_url=db_url,
            modules={"models": MODELS_MODULES},
        )
        if generate_schemas:
            # Create missing tables; existing ones are left untouched
            await Tortoise.generate_schemas(safe=True)
        log.info("Database connection established.")
    except Exception as e:
        log.error(f"FATAL ERROR: Could not connect to database at {db_url}. Error: {e}")
        # Re-raise to prevent the application from starting without a database
        raise

async def close_db():
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")
