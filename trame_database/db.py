from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


# PUBLIC_INTERFACE
def make_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Builds the SQLAlchemy engine for the given URL.

    SQLite connections are shared between the request thread pool and the
    debounce timer threads, so the same-thread check is disabled for them.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, future=True, echo=echo, connect_args=connect_args)


# PUBLIC_INTERFACE
def make_session_factory(engine: Engine) -> sessionmaker:
    """Returns a session factory bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
