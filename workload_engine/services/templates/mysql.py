# workload_engine/services/templates/mysql.py
"""MySQL instance template."""

from workload_engine.services.templates.base import DatabaseTemplate


MYSQL_TEMPLATE = DatabaseTemplate(
    engine="mysql",
    image="mysql:8.0",
    internal_port=3306,
    memory="512m",
    memory_swap="1g",
    # Root and application user share the generated password
    build_environment=lambda username, password, database: {
        "MYSQL_ROOT_PASSWORD": password,
        "MYSQL_USER": username,
        "MYSQL_PASSWORD": password,
        "MYSQL_DATABASE": database,
    },
)
