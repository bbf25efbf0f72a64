# workload_engine/services/templates/postgres.py
"""PostgreSQL instance template."""

from workload_engine.services.templates.base import DatabaseTemplate


POSTGRES_TEMPLATE = DatabaseTemplate(
    engine="postgres",
    image="postgres:16-alpine",
    internal_port=5432,
    memory="256m",
    memory_swap="512m",
    build_environment=lambda username, password, database: {
        "POSTGRES_USER": username,
        "POSTGRES_PASSWORD": password,
        "POSTGRES_DB": database,
    },
)
