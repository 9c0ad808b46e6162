"""
Artifact persistence capability.

The progress store hands every decoded artifact to an ``ArtifactHandler``
inside its commit transaction. ``ArtifactTables`` is the default handler; it
keeps one table per artifact kind keyed by natural identity, so re-applying a
page never duplicates rows.
"""

from __future__ import annotations

from typing import Protocol

from rollsync.sync.types import Input, Notice, Report, Voucher
from rollsync.utils.logging import get_logger
from rollsync.utils.sql import SqlRunner, sql_value

logger = get_logger("rollsync.sync.artifacts")


class ArtifactHandler(Protocol):
    """Downstream consumer of decoded artifacts."""

    def create_tables(self, sql: SqlRunner) -> None: ...

    def handle_output(self, sql: SqlRunner, artifact: Voucher | Notice) -> None: ...

    def handle_input(self, sql: SqlRunner, artifact: Input) -> None: ...

    def handle_report(self, sql: SqlRunner, artifact: Report) -> None: ...


class ArtifactTables:
    """Stores vouchers, notices, inputs and reports in ``<schema>.*`` tables."""

    TABLES = ("vouchers", "notices", "inputs", "reports")

    def __init__(self, schema: str = "rollsync"):
        self.schema = schema

    def table(self, name: str) -> str:
        return f"{self.schema}.{name}"

    def create_tables(self, sql: SqlRunner) -> None:
        sql.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table("vouchers")} (
                input_index BIGINT NOT NULL,
                output_index BIGINT NOT NULL,
                destination TEXT NOT NULL,
                payload TEXT NOT NULL,
                value TEXT NOT NULL,
                executed BOOLEAN NOT NULL DEFAULT FALSE,
                PRIMARY KEY (input_index, output_index)
            )
            """
        )
        sql.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table("notices")} (
                input_index BIGINT NOT NULL,
                output_index BIGINT NOT NULL,
                payload TEXT NOT NULL,
                PRIMARY KEY (input_index, output_index)
            )
            """
        )
        sql.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table("inputs")} (
                input_index BIGINT PRIMARY KEY,
                blob TEXT NOT NULL,
                status TEXT NOT NULL,
                chain_id TEXT,
                app_contract TEXT,
                msg_sender TEXT,
                block_number BIGINT,
                block_timestamp BIGINT,
                prev_randao TEXT,
                payload TEXT
            )
            """
        )
        sql.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table("reports")} (
                report_index BIGINT PRIMARY KEY,
                input_index BIGINT NOT NULL,
                blob TEXT NOT NULL
            )
            """
        )

    def handle_output(self, sql: SqlRunner, artifact: Voucher | Notice) -> None:
        if isinstance(artifact, Voucher):
            logger.debug(f"Add voucher {artifact.input_index}:{artifact.output_index} to {artifact.destination}")
            # uint256 does not fit BIGINT
            self._insert(
                "vouchers",
                {
                    "input_index": artifact.input_index,
                    "output_index": artifact.output_index,
                    "destination": artifact.destination,
                    "payload": artifact.payload,
                    "value": str(artifact.value),
                    "executed": artifact.executed,
                },
                sql,
            )
        else:
            logger.debug(f"Add notice {artifact.input_index}:{artifact.output_index}")
            self._insert(
                "notices",
                {
                    "input_index": artifact.input_index,
                    "output_index": artifact.output_index,
                    "payload": artifact.payload,
                },
                sql,
            )

    def handle_input(self, sql: SqlRunner, artifact: Input) -> None:
        logger.debug(f"Add input {artifact.index}")
        self._insert(
            "inputs",
            {
                "input_index": artifact.index,
                "blob": artifact.blob,
                "status": artifact.status.value,
                "chain_id": None if artifact.chain_id is None else str(artifact.chain_id),
                "app_contract": artifact.app_contract,
                "msg_sender": artifact.msg_sender,
                "block_number": artifact.block_number,
                "block_timestamp": artifact.block_timestamp,
                "prev_randao": artifact.prev_randao,
                "payload": artifact.payload,
            },
            sql,
        )

    def handle_report(self, sql: SqlRunner, artifact: Report) -> None:
        logger.debug(f"Add report {artifact.index} for input {artifact.input_index}")
        self._insert(
            "reports",
            {"report_index": artifact.index, "input_index": artifact.input_index, "blob": artifact.blob},
            sql,
        )

    def _insert(self, name: str, row: dict, sql: SqlRunner) -> None:
        columns = ", ".join(row)
        values = ", ".join(sql_value(v) for v in row.values())
        sql.execute(f"INSERT INTO {self.table(name)} ({columns}) VALUES ({values}) ON CONFLICT DO NOTHING")

    def counts(self, sql: SqlRunner) -> dict[str, int]:
        """Row count per artifact table."""
        return {name: int(sql.fetchall(f"SELECT COUNT(*) FROM {self.table(name)}")[0][0]) for name in self.TABLES}
