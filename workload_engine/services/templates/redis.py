# workload_engine/services/templates/redis.py
"""Redis instance template - password via the server command line."""

from workload_engine.services.templates.base import DatabaseTemplate


REDIS_TEMPLATE = DatabaseTemplate(
    engine="redis",
    image="redis:7-alpine",
    internal_port=6379,
    memory="128m",
    memory_swap="256m",
    build_environment=lambda username, password, database: {},
    build_command=lambda password: ["redis-server", "--requirepass", password, "--appendonly", "yes"],
    has_username=False,
    has_database=False,
)
