import asyncio

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from common.core.config import settings
from common.db.base import Base

# Register every entity on Base.metadata
from packages.audit.models.database.audit_log import AuditLogEntity  # noqa: F401
from packages.billing.models.database.auto_payment import AutoPaymentConfigEntity  # noqa: F401
from packages.billing.models.database.coupon import (  # noqa: F401
    CouponEntity,
    CouponRedemptionEntity,
)
from packages.billing.models.database.invoice import (  # noqa: F401
    InvoiceEntity,
    InvoiceItemEntity,
    PaymentEntity,
)
from packages.billing.models.database.plan import PlanEntity  # noqa: F401
from packages.billing.models.database.subscription import SubscriptionEntity  # noqa: F401
from packages.billing.models.database.token_transaction import (  # noqa: F401
    TokenTransactionEntity,
)

config = context.config
config.set_main_option(
    "sqlalchemy.url",
    settings.database_url.replace("postgresql://", "postgresql+asyncpg://"),
)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
