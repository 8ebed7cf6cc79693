import logging

from pymongo import ASCENDING, MongoClient

from voting_portal.config import (
    AUTH_USERS_COLLECTION_NAME,
    CANDIDATES_COLLECTION_NAME,
    MONGO_DB,
    MONGO_TIMEOUT_MS,
    MONGO_URI,
    POSITIONS_COLLECTION_NAME,
    SETTINGS_COLLECTION_NAME,
    VOTERS_COLLECTION_NAME,
    VOTES_COLLECTION_NAME,
)

logger = logging.getLogger(__name__)


class MongoConnector:
    """Process-wide handle on the election database and its collections.

    The client is created lazily; pymongo only talks to the server on the
    first operation, so constructing the connector never blocks.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = cls._build(MongoClient(MONGO_URI, serverSelectionTimeoutMS=MONGO_TIMEOUT_MS))
        return cls._instance

    @classmethod
    def _build(cls, client, db_name: str = MONGO_DB, transactions=None):
        instance = super(MongoConnector, cls).__new__(cls)
        instance.client = client
        instance.db = client[db_name]
        instance.voters = instance.db[VOTERS_COLLECTION_NAME]
        instance.auth_users = instance.db[AUTH_USERS_COLLECTION_NAME]
        instance.positions = instance.db[POSITIONS_COLLECTION_NAME]
        instance.candidates = instance.db[CANDIDATES_COLLECTION_NAME]
        instance.votes = instance.db[VOTES_COLLECTION_NAME]
        instance.settings = instance.db[SETTINGS_COLLECTION_NAME]
        instance._transactions = transactions
        return instance

    @classmethod
    def bind(cls, client, db_name: str = MONGO_DB, transactions: bool = False) -> "MongoConnector":
        """Point the connector at an explicit client (used by tests and scripts)."""
        cls._instance = cls._build(client, db_name, transactions)
        cls._instance.ensure_indexes()
        return cls._instance

    @classmethod
    def reset(cls):
        cls._instance = None

    def ensure_indexes(self):
        # One ballot entry per (voter, position), ever
        self.votes.create_index(
            [("voter_id", ASCENDING), ("position_id", ASCENDING)],
            unique=True,
            name="one_vote_per_position",
        )
        self.votes.create_index("position_id")
        self.voters.create_index("email", unique=True)
        self.voters.create_index("user_id", unique=True)
        self.auth_users.create_index("email", unique=True)
        self.candidates.create_index("position_id")
        self.positions.create_index("order_index")
        logger.info(f"Indexes ensured on database: {self.db.name}")

    @property
    def supports_transactions(self) -> bool:
        """Multi-document transactions need a replica set or a sharded cluster."""
        if self._transactions is None:
            hello = self.client.admin.command("hello")
            self._transactions = bool(hello.get("setName")) or hello.get("msg") == "isdbgrid"
            logger.info(f"MongoDB transactions {'enabled' if self._transactions else 'unavailable'}")
        return self._transactions

    def run_in_transaction(self, callback):
        """Run ``callback(session)`` inside one transaction when the server allows it.

        On a standalone server the callback gets ``session=None`` and must
        keep its own writes recoverable.
        """
        if not self.supports_transactions:
            return callback(None)
        with self.client.start_session() as session:
            return session.with_transaction(callback)

    def ping(self):
        return self.client.server_info()
