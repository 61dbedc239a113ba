"""SQLite implementation of the flow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..flow import FlowGraph
from .models import RunSelections
from .repository import FlowRepository


class SQLiteFlowRepository(FlowRepository):
    """Persist flow graphs and run selections using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS flow_graphs (
                project_id TEXT PRIMARY KEY,
                configs TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS run_selections (
                run_id TEXT PRIMARY KEY,
                answers TEXT NOT NULL,
                if_necessary_work TEXT NOT NULL,
                mode TEXT,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    # ------------------------------------------------------------------
    # Repository API
    async def save_flow_graph(self, project_id: str, graph: FlowGraph) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO flow_graphs (project_id, configs, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(project_id) DO UPDATE SET configs = excluded.configs, updated_at = excluded.updated_at
            """,
            project_id,
            json.dumps(graph.to_dict()),
            datetime.now(timezone.utc).isoformat(),
        )

    async def get_flow_graph(self, project_id: str) -> FlowGraph | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT configs FROM flow_graphs WHERE project_id = ?",
            project_id,
        )
        if not row:
            return None
        return FlowGraph.from_dict(json.loads(row["configs"]))

    async def list_projects(self) -> list[str]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT project_id FROM flow_graphs ORDER BY project_id"
        )
        return [r["project_id"] for r in rows]

    async def save_selections(self, selections: RunSelections) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO run_selections (run_id, answers, if_necessary_work, mode, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(run_id) DO UPDATE SET
                answers = excluded.answers,
                if_necessary_work = excluded.if_necessary_work,
                mode = excluded.mode,
                updated_at = excluded.updated_at
            """,
            selections.run_id,
            json.dumps(selections.answers),
            json.dumps(selections.if_necessary_work),
            selections.mode,
            selections.updated_at.isoformat(),
        )

    async def get_selections(self, run_id: str) -> RunSelections | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT run_id, answers, if_necessary_work, mode, updated_at FROM run_selections WHERE run_id = ?",
            run_id,
        )
        if not row:
            return None
        return RunSelections(
            run_id=row["run_id"],
            answers=json.loads(row["answers"]),
            if_necessary_work=json.loads(row["if_necessary_work"]),
            mode=row["mode"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
