# workload_engine/services/templates/mongodb.py
"""MongoDB instance template."""

from workload_engine.services.templates.base import DatabaseTemplate


MONGODB_TEMPLATE = DatabaseTemplate(
    engine="mongodb",
    image="mongo:7",
    internal_port=27017,
    memory="512m",
    memory_swap="1g",
    build_environment=lambda username, password, database: {
        "MONGO_INITDB_ROOT_USERNAME": username,
        "MONGO_INITDB_ROOT_PASSWORD": password,
        "MONGO_INITDB_DATABASE": database,
    },
)
