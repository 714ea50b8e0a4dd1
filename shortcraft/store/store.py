import json
import os
import re
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional
from uuid import uuid4

from shortcraft.errors import VersionConflict
from shortcraft.store.models import stage_value
from shortcraft.utils.logging_setup import setup_logger

logger = setup_logger(__name__)

MAX_VERSION_ATTEMPTS = 8


def _repo_root() -> Path:
    # shortcraft/store/store.py -> shortcraft/store -> shortcraft -> repo root
    return Path(__file__).resolve().parents[2]


def default_db_path() -> Path:
    return _repo_root() / "data" / "shortcraft.db"


def _clean_language(language_variant: str) -> str:
    lang = (language_variant or "").strip().lower()
    if not lang:
        raise ValueError("language_variant must be non-empty")
    return lang


def _clean_id(value: str, name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{name} must be non-empty")
    if not re.match(r"^[a-zA-Z0-9._:-]+$", value):
        raise ValueError(f"{name} contains unsupported characters: {value!r}")
    return value


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS accounts (
  account_id TEXT PRIMARY KEY,
  email TEXT NOT NULL UNIQUE,
  created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS projects (
  project_id TEXT PRIMARY KEY,
  account_id TEXT NOT NULL,
  title TEXT NOT NULL DEFAULT '',
  idea TEXT NOT NULL DEFAULT '',
  created_at REAL NOT NULL,
  FOREIGN KEY(account_id) REFERENCES accounts(account_id)
);
CREATE INDEX IF NOT EXISTS idx_projects_account ON projects(account_id, created_at);

CREATE TABLE IF NOT EXISTS artifacts (
  artifact_id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL,
  language_variant TEXT NOT NULL,    -- language the content is written in
  stage_kind TEXT NOT NULL,          -- hooks/storyboard/image_prompts/...
  version INTEGER NOT NULL,          -- 1..N per (project, language, stage)
  content_json TEXT NOT NULL,
  created_at REAL NOT NULL,
  updated_at REAL NOT NULL,
  UNIQUE(project_id, language_variant, stage_kind, version),
  FOREIGN KEY(project_id) REFERENCES projects(project_id)
);
CREATE INDEX IF NOT EXISTS idx_artifacts_kind ON artifacts(project_id, stage_kind, version);
CREATE INDEX IF NOT EXISTS idx_artifacts_created ON artifacts(stage_kind, created_at);
"""


@dataclass
class ArtifactStore:
    db_path: Path
    conn: sqlite3.Connection
    clock: Callable[[], float] = field(default=time.time)

    @classmethod
    def open(
        cls,
        db_path: Optional[os.PathLike] = None,
        clock: Optional[Callable[[], float]] = None,
        timeout_sec: float = 30.0,
    ) -> "ArtifactStore":
        path = Path(db_path) if db_path is not None else default_db_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        # Autocommit mode; multi-statement writes open explicit transactions.
        conn = sqlite3.connect(str(path), isolation_level=None, check_same_thread=False, timeout=timeout_sec)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")

        store = cls(db_path=path, conn=conn, clock=clock or time.time)
        store._ensure_schema()
        return store

    def close(self) -> None:
        try:
            self.conn.close()
        except sqlite3.Error:
            logger.warning("Failed to close store %s", self.db_path, exc_info=True)

    def _ensure_schema(self) -> None:
        self.conn.executescript(SCHEMA_SQL)
        self.conn.execute("INSERT OR IGNORE INTO meta(key, value) VALUES(?, ?)", ("schema_version", "1"))

    def _now(self) -> float:
        return float(self.clock())

    def _j(self, obj: Any) -> str:
        return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))

    def _ju(self, s: Optional[str]) -> Any:
        if s is None:
            return None
        return json.loads(s)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        # IMMEDIATE takes the write lock up front so the version read and the
        # insert are serialized against other writers.
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        else:
            self.conn.execute("COMMIT")

    def _artifact_row(self, row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
        if not row:
            return None
        d = dict(row)
        d["content"] = self._ju(d.get("content_json"))
        d.pop("content_json", None)
        return d

    # --- accounts ---
    def ensure_account(self, email: str) -> Dict[str, Any]:
        email = (email or "").strip().lower()
        if not email:
            raise ValueError("email must be non-empty")
        self.conn.execute(
            "INSERT OR IGNORE INTO accounts(account_id, email, created_at) VALUES(?, ?, ?)",
            (str(uuid4()), email, self._now()),
        )
        return self.get_account_by_email(email)

    def get_account_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.execute("SELECT * FROM accounts WHERE email=?", ((email or "").strip().lower(),))
        row = cur.fetchone()
        return dict(row) if row else None

    # --- projects ---
    def create_project(self, account_id: str, title: str = "", idea: str = "", project_id: Optional[str] = None) -> Dict[str, Any]:
        pid = _clean_id(project_id, "project_id") if project_id else str(uuid4())
        ts = self._now()
        self.conn.execute(
            "INSERT INTO projects(project_id, account_id, title, idea, created_at) VALUES(?, ?, ?, ?, ?)",
            (pid, account_id, title or "", idea or "", ts),
        )
        return {"project_id": pid, "account_id": account_id, "title": title or "", "idea": idea or "", "created_at": ts}

    def get_project(self, project_id: str, account_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        if account_id is None:
            cur = self.conn.execute("SELECT * FROM projects WHERE project_id=?", (project_id,))
        else:
            cur = self.conn.execute(
                "SELECT * FROM projects WHERE project_id=? AND account_id=?",
                (project_id, account_id),
            )
        row = cur.fetchone()
        return dict(row) if row else None

    def list_projects(self, account_id: str) -> List[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM projects WHERE account_id=? ORDER BY created_at DESC",
            (account_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    # --- artifacts ---
    def create_artifact(self, project_id: str, language_variant: str, stage_kind: str, content: Any) -> Dict[str, Any]:
        """
        Persist a new version of (project, language, stage).

        The version is MAX(version)+1 read inside a write transaction. A
        UNIQUE violation means another writer got there first; re-read and retry.
        """
        lang = _clean_language(language_variant)
        kind = stage_value(stage_kind)
        payload = self._j(content)

        for attempt in range(1, MAX_VERSION_ATTEMPTS + 1):
            aid = str(uuid4())
            ts = self._now()
            try:
                with self._transaction():
                    cur = self.conn.execute(
                        """
                        SELECT COALESCE(MAX(version), 0) AS mx FROM artifacts
                        WHERE project_id=? AND language_variant=? AND stage_kind=?
                        """,
                        (project_id, lang, kind),
                    )
                    version = int(cur.fetchone()["mx"]) + 1
                    self.conn.execute(
                        """
                        INSERT INTO artifacts(artifact_id, project_id, language_variant, stage_kind, version, content_json, created_at, updated_at)
                        VALUES(?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (aid, project_id, lang, kind, version, payload, ts, ts),
                    )
            except sqlite3.IntegrityError as e:
                if "UNIQUE" not in str(e).upper():
                    raise
                logger.warning(
                    "Version collision on %s/%s/%s (attempt %d), retrying",
                    project_id, lang, kind, attempt,
                )
                continue
            return {
                "artifact_id": aid,
                "project_id": project_id,
                "language_variant": lang,
                "stage_kind": kind,
                "version": version,
                "content": content,
                "created_at": ts,
                "updated_at": ts,
            }

        raise VersionConflict(
            f"Could not allocate a version for {project_id}/{lang}/{kind} after {MAX_VERSION_ATTEMPTS} attempts"
        )

    def latest(self, project_id: str, language_variant: str, stage_kind: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.execute(
            """
            SELECT * FROM artifacts
            WHERE project_id=? AND language_variant=? AND stage_kind=?
            ORDER BY version DESC LIMIT 1
            """,
            (project_id, _clean_language(language_variant), stage_value(stage_kind)),
        )
        return self._artifact_row(cur.fetchone())

    def latest_any(self, project_id: str, stage_kind: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.execute(
            """
            SELECT * FROM artifacts
            WHERE project_id=? AND stage_kind=?
            ORDER BY version DESC, created_at DESC LIMIT 1
            """,
            (project_id, stage_value(stage_kind)),
        )
        return self._artifact_row(cur.fetchone())

    def exists(self, project_id: str, language_variant: str, stage_kind: str) -> bool:
        cur = self.conn.execute(
            "SELECT 1 FROM artifacts WHERE project_id=? AND language_variant=? AND stage_kind=? LIMIT 1",
            (project_id, _clean_language(language_variant), stage_value(stage_kind)),
        )
        return cur.fetchone() is not None

    def next_version(self, project_id: str, language_variant: str, stage_kind: str) -> int:
        cur = self.conn.execute(
            """
            SELECT COALESCE(MAX(version), 0) AS mx FROM artifacts
            WHERE project_id=? AND language_variant=? AND stage_kind=?
            """,
            (project_id, _clean_language(language_variant), stage_value(stage_kind)),
        )
        return int(cur.fetchone()["mx"]) + 1

    def list_artifacts(
        self,
        project_id: str,
        stage_kind: Optional[str] = None,
        language_variant: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        conditions = ["project_id = ?"]
        params: List[Any] = [project_id]
        if stage_kind:
            conditions.append("stage_kind = ?")
            params.append(stage_value(stage_kind))
        if language_variant:
            conditions.append("language_variant = ?")
            params.append(_clean_language(language_variant))
        where = " AND ".join(conditions)
        cur = self.conn.execute(
            f"SELECT * FROM artifacts WHERE {where} ORDER BY stage_kind ASC, language_variant ASC, version ASC",
            params,
        )
        return [self._artifact_row(r) for r in cur.fetchall()]

    def count_artifacts_since(self, account_id: str, stage_kinds: Iterable[str], since_ts: float) -> int:
        kinds = [stage_value(k) for k in stage_kinds]
        if not kinds:
            return 0
        qmarks = ",".join(["?"] * len(kinds))
        cur = self.conn.execute(
            f"""
            SELECT COUNT(*) AS n FROM artifacts a
            JOIN projects p ON p.project_id = a.project_id
            WHERE p.account_id = ?
              AND a.stage_kind IN ({qmarks})
              AND a.created_at >= ?
            """,
            [account_id, *kinds, float(since_ts)],
        )
        return int(cur.fetchone()["n"])
