from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from friends_api.core.config import Settings


def _use_explicit_transactions(engine: Engine) -> None:
    # pysqlite commits implicitly before DDL; hand BEGIN/COMMIT to SQLAlchemy
    # so schema changes roll back with the rest of their transaction.
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


def create_db_engine(settings: Settings) -> Engine:
    """Build the engine whose connection pool backs every request.

    The engine pool is sized to match ``ConnectionPool`` so a handle that got
    a slot never waits again for a connection.
    """
    url = make_url(settings.sqlalchemy_url)
    if not settings.is_sqlite:
        return create_engine(
            url,
            pool_size=settings.pool_size,
            max_overflow=0,
            pool_timeout=settings.pool_acquire_timeout,
            pool_pre_ping=True,
        )

    # Connections are checked out on threadpool workers, not the creating thread.
    connect_args = {"check_same_thread": False, "timeout": settings.query_timeout}
    if url.database in (None, "", ":memory:"):
        # An in-memory database only exists on its one connection.
        engine = create_engine(url, connect_args=connect_args, poolclass=StaticPool)
    else:
        engine = create_engine(
            url,
            connect_args=connect_args,
            pool_size=settings.pool_size,
            max_overflow=0,
            pool_timeout=settings.pool_acquire_timeout,
        )
    _use_explicit_transactions(engine)
    return engine
