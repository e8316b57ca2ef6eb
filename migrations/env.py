import logging
from logging.config import fileConfig

from flask import current_app
from sqlalchemy import text

from alembic import context

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# app 已經設定好 logging 時 (create_app 啟動時自動 migrate) 不要覆蓋掉
if config.config_file_name is not None and not logging.getLogger().handlers:
    fileConfig(config.config_file_name, disable_existing_loggers=False)
logger = logging.getLogger('alembic.env')

# 多個 process 同時啟動時,用這個 key 排隊跑 migrations
MIGRATION_LOCK_KEY = 827301
MYSQL_LOCK_NAME = 'story_board_migrations'


def get_engine():
    return current_app.extensions['migrate'].db.engine


def get_engine_url():
    return get_engine().url.render_as_string(hide_password=False).replace('%', '%%')


config.set_main_option('sqlalchemy.url', get_engine_url())
target_db = current_app.extensions['migrate'].db


def get_metadata():
    if hasattr(target_db, 'metadatas'):
        return target_db.metadatas[None]
    return target_db.metadata


def acquire_migration_lock(connection):
    """
    取得 advisory lock

    PostgreSQL 的 xact lock 在 transaction 結束時自動釋放;
    MySQL 的 GET_LOCK 綁在連線上,需要 release_migration_lock;
    SQLite 沒有 advisory lock,寫入本身就是單一 writer
    """
    dialect = connection.dialect.name
    if dialect == 'postgresql':
        connection.execute(text('SELECT pg_advisory_xact_lock(:key)'), {'key': MIGRATION_LOCK_KEY})
    elif dialect in ('mysql', 'mariadb'):
        acquired = connection.execute(
            text('SELECT GET_LOCK(:name, 60)'), {'name': MYSQL_LOCK_NAME}
        ).scalar()
        if acquired != 1:
            raise RuntimeError('Timed out waiting for the migration lock')
    logger.info(f"Migration lock acquired ({dialect})")


def release_migration_lock(connection):
    if connection.dialect.name in ('mysql', 'mariadb'):
        connection.execute(text('SELECT RELEASE_LOCK(:name)'), {'name': MYSQL_LOCK_NAME})


def run_migrations_offline():
    """Run migrations in 'offline' mode.

    This configures the context with just a URL
    and not an Engine, though an Engine is acceptable
    here as well.  By skipping the Engine creation
    we don't even need a DBAPI to be available.

    Calls to context.execute() here emit the given string to the
    script output.

    """
    url = config.get_main_option('sqlalchemy.url')
    context.configure(
        url=url, target_metadata=get_metadata(), literal_binds=True
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Run migrations in 'online' mode.

    In this scenario we need to create an Engine
    and associate a connection with the context.

    """

    # this callback is used to prevent an auto-migration from being generated
    # when there are no changes to the schema
    # reference: http://alembic.zzzcomputing.com/en/latest/cookbook.html
    def process_revision_directives(context, revision, directives):
        if getattr(config.cmd_opts, 'autogenerate', False):
            script = directives[0]
            if script.upgrade_ops.is_empty():
                directives[:] = []
                logger.info('No changes in schema detected.')

    conf_args = dict(current_app.extensions['migrate'].configure_args)
    if conf_args.get('process_revision_directives') is None:
        conf_args['process_revision_directives'] = process_revision_directives

    connectable = get_engine()

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=get_metadata(),
            transaction_per_migration=False,
            **conf_args
        )

        try:
            with context.begin_transaction():
                acquire_migration_lock(connection)
                context.run_migrations()
        finally:
            release_migration_lock(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
