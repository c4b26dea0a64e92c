"""Cassandra connection and schema bootstrap (cassandra-asyncio-driver).

The driver's ``Cluster`` hands out sessions with ``aexecute()`` so services
can await queries. Enrollment writes rely on lightweight transactions
(``IF NOT EXISTS`` claims, ``IF version = ?`` updates), so the session runs
with quorum reads and writes and a local serial level for the Paxos phase.
"""

import structlog
from cassandra import ConsistencyLevel
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from orah.attendance.models import ATTENDANCE_TABLES_CQL
from orah.config.settings import Settings, get_settings
from orah.directory.models import DIRECTORY_TABLES_CQL
from orah.enrollments.models import ENROLLMENTS_TABLES_CQL
from orah.notifications.models import NOTIFICATIONS_TABLES_CQL


logger = structlog.get_logger(__name__)

# Tables per feature, created in this order
SCHEMA: dict[str, list[str]] = {
    "directory": DIRECTORY_TABLES_CQL,
    "enrollments": ENROLLMENTS_TABLES_CQL,
    "attendance": ATTENDANCE_TABLES_CQL,
    "notifications": NOTIFICATIONS_TABLES_CQL,
}


class AsyncCassandraConnection:
    """Process-wide cluster and session holder."""

    _cluster: Cluster | None = None
    _session = None

    @classmethod
    def connect(cls, settings: Settings):
        """Open the session once; later calls return the same one.

        Raises:
            ConnectionError: If no contact point answers
        """
        if cls._session is not None:
            return cls._session

        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        cls._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            connect_timeout=settings.cassandra_connect_timeout,
        )

        try:
            session = cls._cluster.connect()
        except Exception as e:
            logger.error(
                "cassandra_connection_failed",
                hosts=settings.cassandra_hosts,
                error=str(e),
            )
            cls._cluster.shutdown()
            cls._cluster = None
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        session.default_timeout = settings.cassandra_request_timeout
        session.default_consistency_level = ConsistencyLevel.LOCAL_QUORUM
        session.default_serial_consistency_level = ConsistencyLevel.LOCAL_SERIAL
        cls._session = session

        logger.info(
            "cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
        )
        return session

    @classmethod
    def disconnect(cls) -> None:
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("cassandra_disconnected")

    @classmethod
    def is_connected(cls) -> bool:
        return cls._session is not None and not cls._session.is_shutdown


async def init_async_keyspace(session, settings: Settings) -> None:
    """Create the keyspace if missing (RF 3 in production, 1 elsewhere)."""
    if settings.is_production:
        replication = "'class': 'NetworkTopologyStrategy', 'datacenter1': 3"
    else:
        replication = "'class': 'SimpleStrategy', 'replication_factor': 1"

    await session.aexecute(f"""
        CREATE KEYSPACE IF NOT EXISTS {settings.cassandra_keyspace}
        WITH replication = {{{replication}}}
        AND durable_writes = true
    """)
    logger.info("keyspace_ready", keyspace=settings.cassandra_keyspace)


async def init_async_tables(session, keyspace: str) -> None:
    """Create every feature's tables (idempotent)."""
    for feature, tables in SCHEMA.items():
        for cql_template in tables:
            await session.aexecute(cql_template.format(keyspace=keyspace))
        logger.info("tables_ready", feature=feature, keyspace=keyspace)


async def init_async_cassandra():
    """Connect and make sure the schema exists.

    Returns:
        Session with aexecute() support, bound to the configured keyspace
    """
    settings = get_settings()
    session = AsyncCassandraConnection.connect(settings)

    await init_async_keyspace(session, settings)
    session.set_keyspace(settings.cassandra_keyspace)
    await init_async_tables(session, settings.cassandra_keyspace)
    return session


async def shutdown_async_cassandra() -> None:
    AsyncCassandraConnection.disconnect()
