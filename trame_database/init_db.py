"""
Database initialization/migration script.

Run this script to create all required tables in the database:

    python -m trame_database.init_db
"""
import os

from dotenv import load_dotenv
from sqlalchemy.engine import Engine

from .db import make_engine
from .models import Base


# PUBLIC_INTERFACE
def init_db(engine: Engine):
    """Initializes the database by creating all tables if they do not exist."""
    Base.metadata.create_all(bind=engine)


if __name__ == "__main__":
    load_dotenv()
    init_db(make_engine(os.getenv("DATABASE_URL", "sqlite:///trame.db")))
    print("Database tables created successfully.")
