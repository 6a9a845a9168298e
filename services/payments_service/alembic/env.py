"""Alembic configuration entrypoint for the payments service."""

# ruff: noqa: F401

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from libs.common.config import get_settings
from libs.db.base import Base
from services.payments_service.models import (  # noqa: F401
    City,
    Division,
    ETransferPayment,
    InstallmentPlan,
    ManualReceipt,
    PaymentAuditLog,
    PaymentRecord,
    Player,
    SubscriptionPayment,
    Team,
)

settings = get_settings()
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
# League reference tables are owned by league admin tooling; only migrate
# them here when this service runs standalone (tests, local dev).
SERVICE_TABLES = {
    "payment_records",
    "installment_plans",
    "subscription_payments",
    "etransfer_payments",
    "manual_receipts",
    "payment_audit_logs",
    "cities",
    "divisions",
    "teams",
    "players",
}
VERSION_TABLE = "alembic_version_payments"

url = settings.DATABASE_URL.replace("%", "%%")
config.set_main_option("sqlalchemy.url", url)


def include_object(obj, name, type_, reflected, compare_to):
    if type_ == "table":
        return name in SERVICE_TABLES
    if type_ in ("index", "column", "foreign_key_constraint"):
        return obj.table.name in SERVICE_TABLES
    return True


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        version_table=VERSION_TABLE,
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        version_table=VERSION_TABLE,
        include_object=include_object,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        # Disable psycopg auto-prepared statements to avoid duplicate name errors
        connect_args={"prepare_threshold": 0},
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
