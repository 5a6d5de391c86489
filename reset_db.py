import asyncio
import sys
import os

# Add backend/ to the path to import supply_ledger.*
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

from supply_ledger.core.database import engine
from supply_ledger.models import Base
from supply_ledger.store.procedures import PROCEDURES

async def reset():
    print("Connecting to the database, dropping tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        print("Tables dropped. Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
    print("Database reset. Store procedures available: %s" % ", ".join(sorted(PROCEDURES)))

if __name__ == "__main__":
    asyncio.run(reset())
