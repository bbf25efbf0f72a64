# workload_engine/services/templates/base.py
"""Database engine template definition."""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

DEFAULT_USERNAME = "bunker_user"


@dataclass(frozen=True)
class DatabaseTemplate:
    """How one database engine is run: image, port, limits and bootstrap env."""
    engine: str
    image: str
    internal_port: int
    memory: str
    memory_swap: str
    build_environment: Callable[[str, str, str], Dict[str, str]]
    build_command: Optional[Callable[[str], List[str]]] = None
    has_username: bool = True
    has_database: bool = True

    def environment(self, username: str, password: str, database: str) -> Dict[str, str]:
        return self.build_environment(username, password, database)

    def command(self, password: str) -> Optional[List[str]]:
        if self.build_command is None:
            return None
        return self.build_command(password)
