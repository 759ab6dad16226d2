"""
Migration: unique (user_id, log_date) index and row-level security on daily_logs.

This migration:
1. Creates the unique index the upsert conflict target relies on
2. (PostgreSQL) Enables and forces row-level security on daily_logs
3. (PostgreSQL) Adds an owner policy keyed on the app.current_user setting,
   which the gateway sets for every transaction

It is idempotent and safe to run on every startup.
"""
import logging
from sqlalchemy import text

logger = logging.getLogger(__name__)

POLICY_NAME = "daily_logs_owner"


def is_postgres(engine):
    """Check if database is PostgreSQL."""
    return engine.dialect.name == "postgresql"


def migrate(engine):
    """Run migration."""
    with engine.connect() as conn:
        trans = conn.begin()

        try:
            if is_postgres(engine):
                migrate_postgres(conn)
            else:
                migrate_sqlite(conn)

            trans.commit()
            logger.info("Migration 001 completed successfully")
        except Exception as e:
            trans.rollback()
            logger.error(f"Migration 001 failed: {str(e)}")
            raise


def migrate_postgres(conn):
    """PostgreSQL migration."""
    logger.info("Running PostgreSQL migration...")

    logger.info("Ensuring unique index on (user_id, log_date)...")
    conn.execute(text("""
        CREATE UNIQUE INDEX IF NOT EXISTS uniq_daily_logs_user_date_idx
        ON daily_logs (user_id, log_date)
    """))

    logger.info("Enabling row-level security on daily_logs...")
    conn.execute(text("ALTER TABLE daily_logs ENABLE ROW LEVEL SECURITY"))
    conn.execute(text("ALTER TABLE daily_logs FORCE ROW LEVEL SECURITY"))

    result = conn.execute(
        text("SELECT 1 FROM pg_policies WHERE tablename = 'daily_logs' AND policyname = :name"),
        {"name": POLICY_NAME},
    )
    if result.fetchone():
        logger.info("Owner policy already exists, skipping")
        return

    logger.info("Creating owner policy...")
    conn.execute(text(f"""
        CREATE POLICY {POLICY_NAME} ON daily_logs
        USING (user_id = current_setting('app.current_user', true))
        WITH CHECK (user_id = current_setting('app.current_user', true))
    """))


def migrate_sqlite(conn):
    """SQLite migration (no row-level security, owner filters only)."""
    logger.info("Running SQLite migration...")

    result = conn.execute(text("""
        SELECT name FROM sqlite_master
        WHERE type='table' AND name='daily_logs'
    """))

    if not result.fetchone():
        logger.info("daily_logs table does not exist, skipping migration")
        return

    logger.info("Ensuring unique index on (user_id, log_date)...")
    conn.execute(text("""
        CREATE UNIQUE INDEX IF NOT EXISTS uniq_daily_logs_user_date_idx
        ON daily_logs (user_id, log_date)
    """))


if __name__ == "__main__":
    from db import engine
    migrate(engine)
