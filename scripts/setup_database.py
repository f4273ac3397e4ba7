# scripts/setup_database.py
"""
Database setup script for Operations Agent v1.0
Creates the task, session, budget and circuit breaker tables
"""

import asyncio
import os
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import asyncpg
from infrastructure.storage.schema import TABLES, INDEXES
from shared.logging import logger, setup_logging

STATUS_CONSTRAINT = """
    DO $$
    BEGIN
        IF NOT EXISTS (SELECT 1 FROM pg_constraint WHERE conname = 'chk_task_status') THEN
            ALTER TABLE tasks ADD CONSTRAINT chk_task_status
            CHECK (status IN ('pending_validation', 'approved', 'executing', 'completed', 'failed'));
        END IF;
    END $$
"""

async def create_database_if_not_exists(admin_url: str, database_name: str):
    """Create database if it doesn't exist"""
    try:
        admin_conn = await asyncpg.connect(admin_url)

        db_exists = await admin_conn.fetchval(
            "SELECT 1 FROM pg_database WHERE datname = $1", database_name
        )

        if not db_exists:
            await admin_conn.execute(f'CREATE DATABASE "{database_name}"')
            logger.info(f"Created database: {database_name}")
        else:
            logger.info(f"Database already exists: {database_name}")

        await admin_conn.close()

    except Exception as e:
        logger.error(f"Failed to create database: {e}")
        raise

async def setup_tables(database_url: str):
    """Create all required tables, indexes and constraints"""

    conn = await asyncpg.connect(database_url)

    try:
        logger.info("Creating database tables...")
        for name, statement in TABLES.items():
            await conn.execute(statement)
            logger.info(f"✓ Created {name} table")

        for statement in INDEXES:
            await conn.execute(statement)
        logger.info(f"✓ Created {len(INDEXES)} indexes")

        await conn.execute(STATUS_CONSTRAINT)
        logger.info("✓ Added task status constraint")

        logger.info("Database setup completed successfully!")

    except Exception as e:
        logger.error(f"Failed to setup tables: {e}")
        raise
    finally:
        await conn.close()

async def verify_setup(database_url: str):
    """Verify the database setup is working correctly"""

    conn = await asyncpg.connect(database_url)

    try:
        logger.info("Verifying database setup...")

        tables = await conn.fetch("""
            SELECT table_name FROM information_schema.tables
            WHERE table_schema = 'public'
        """)
        found_tables = {row['table_name'] for row in tables}
        missing = set(TABLES) - found_tables
        if missing:
            raise Exception(f"Missing tables: {missing}")
        logger.info(f"✓ All {len(TABLES)} tables found")

        # Round-trip one row through the tasks table
        test_task_id = 'test-setup-verification'
        await conn.execute("""
            INSERT INTO tasks (task_id, title, task_type, status)
            VALUES ($1, 'setup verification', 'check', 'pending_validation')
            ON CONFLICT (task_id) DO NOTHING
        """, test_task_id)

        test_record = await conn.fetchrow("SELECT * FROM tasks WHERE task_id = $1", test_task_id)
        if not test_record:
            raise Exception("Failed to insert/query test record")

        await conn.execute("DELETE FROM tasks WHERE task_id = $1", test_task_id)

        logger.info("✓ Basic database operations working")

    except Exception as e:
        logger.error(f"Database verification failed: {e}")
        raise
    finally:
        await conn.close()

async def main():
    """Main setup function"""

    setup_logging(level="INFO", json_logs=False)

    logger.info("Starting Operations Agent database setup")

    database_url = os.getenv("DATABASE_URL")

    if not database_url:
        # Default local development setup
        host = os.getenv("DB_HOST", "localhost")
        port = os.getenv("DB_PORT", "5432")
        user = os.getenv("DB_USER", "postgres")
        password = os.getenv("DB_PASSWORD", "postgres")
        database = os.getenv("DB_NAME", "operations_agent")

        database_url = f"postgresql://{user}:{password}@{host}:{port}/{database}"
        admin_url = f"postgresql://{user}:{password}@{host}:{port}/postgres"

        logger.info(f"Using database: {host}:{port}/{database}")

        try:
            await create_database_if_not_exists(admin_url, database)
        except Exception as e:
            logger.warning(f"Could not create database (may already exist): {e}")

    try:
        await setup_tables(database_url)
        await verify_setup(database_url)
        logger.info("🎉 Database setup completed successfully!")

    except Exception as e:
        logger.error(f"Database setup failed: {e}")
        sys.exit(1)

if __name__ == "__main__":
    asyncio.run(main())
