"""
Simple script to create the threads, messages, stores, documents and memories tables.
Run this once to set up the tables in your database.

Usage: python -m personal_agent.create_tables
"""

from sqlalchemy import inspect

from personal_agent.config import configure_logging
from personal_agent.database import engine, init_db

TABLES = ("threads", "messages", "stores", "documents", "memories")

if __name__ == "__main__":
    configure_logging()
    print("Creating database tables...")

    init_db(engine)

    # Verify tables were created
    existing = set(inspect(engine).get_table_names())
    for table in TABLES:
        if table in existing:
            print(f"✓ {table.capitalize()} table created successfully!")
        else:
            print(f"✗ Failed to create {table} table")

    engine.dispose()
