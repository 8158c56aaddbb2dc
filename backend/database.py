from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

# Freelancer records the assistant can act on
RESOURCE_COLLECTIONS = ("tasks", "clients", "orders", "events")

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def ping(self) -> bool:
        """True when the server answers; used by the health check."""
        if self.db is None:
            return False
        try:
            await self.db.command("ping")
            return True
        except Exception as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False

    async def _create_indexes(self):
        """Create MongoDB indexes for assistant queries."""
        try:
            # Every assistant query is owner-scoped; lists sort newest first
            for name in RESOURCE_COLLECTIONS:
                await self.db[name].create_index("id", unique=True)
                await self.db[name].create_index([("owner_id", 1), ("created_at", -1)])
                await self.db[name].create_index([("owner_id", 1), ("status", 1)])

            await self.db.profiles.create_index("id", unique=True)

            # Usage ledger - monthly sums per user
            await self.db.ai_usage.create_index([("user_id", 1), ("created_at", -1)])

            # Assistant audit trail
            await self.db.assistant_actions.create_index([("user_id", 1), ("created_at", -1)])
            await self.db.assistant_actions.create_index("intent")

            try:
                await self.db.assistant_conversations.create_index("user_id", unique=True)
            except Exception:
                pass  # Index may already exist with different options

            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()
