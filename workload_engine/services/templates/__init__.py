"""Database engine templates."""

from .postgres import POSTGRES_TEMPLATE
from .mysql import MYSQL_TEMPLATE
from .redis import REDIS_TEMPLATE
from .mongodb import MONGODB_TEMPLATE


DATABASE_TEMPLATES = {
    template.engine: template
    for template in (POSTGRES_TEMPLATE, MYSQL_TEMPLATE, REDIS_TEMPLATE, MONGODB_TEMPLATE)
}


__all__ = [
    "POSTGRES_TEMPLATE",
    "MYSQL_TEMPLATE",
    "REDIS_TEMPLATE",
    "MONGODB_TEMPLATE",
    "DATABASE_TEMPLATES",
]
