"""
Postgres state database via ibis.

The synchronizer is a single writer, so one backend connection is enough;
there is no pooling here.
"""

from typing import Any

import ibis

from rollsync.connections.base import BaseConnection
from rollsync.exceptions import ConnectionError_
from rollsync.utils.logging import get_logger

logger = get_logger("rollsync.connections.postgres")


class PostgresConnection(BaseConnection):
    """Postgres connection wrapper using ibis.

    Config::

        connections:
          state:
            type: postgres
            config:
              host: localhost
              port: 5432
              user: ${PGUSER}
              password: ${PGPASSWORD}
              database: rollsync
    """

    REQUIRED_FIELDS = ("host", "database")

    def __init__(self, name: str, config: dict[str, Any]):
        super().__init__(name, config)
        pg_config = config.get("config", {})
        missing = [f for f in self.REQUIRED_FIELDS if not pg_config.get(f)]
        if missing:
            raise ValueError(f"Postgres connection '{name}' is missing required fields: {', '.join(missing)}")

    @property
    def connection(self) -> ibis.BaseBackend:
        """Get Postgres connection via ibis (lazy initialization)."""
        if self._connection is None:
            pg_config = self.config.get("config", {})
            try:
                self._connection = ibis.postgres.connect(
                    host=pg_config["host"],
                    port=int(pg_config.get("port", 5432)),
                    user=pg_config.get("user"),
                    password=pg_config.get("password"),
                    database=pg_config["database"],
                )
            except Exception as e:
                raise ConnectionError_(
                    f"Cannot connect to Postgres '{pg_config['host']}/{pg_config['database']}': {e}",
                    details={"connection": self.name},
                ) from e
            logger.debug(f"Opened Postgres state database {pg_config['host']}/{pg_config['database']}")
        return self._connection
