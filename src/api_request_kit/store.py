"""State layer: global environments, projects, collections and saved requests.

Each store is a plain service object created once and passed to its
consumers. Mutations schedule a coalesced write through a
DebouncedWriter; storage failures are logged and never interrupt the
caller.
"""

import json
import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import DateTime, String, Text, create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column
from sqlalchemy.pool import StaticPool

from api_request_kit.http import HttpClient
from api_request_kit.parser.base import (
    Collection,
    DispatchPayload,
    Environment,
    Folder,
    HttpRequest,
    HttpResponse,
    Project,
    new_id,
)
from api_request_kit.parser.swagger import import_openapi
from api_request_kit.resolver.variables import resolve_request

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_ID = "default-project"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DataTable(Base):
    """One named JSON document per row."""

    __tablename__ = "data"

    table_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    content: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class Storage:
    """Named JSON tables in a single SQLite file."""

    def __init__(self, path: Path | str):
        if str(path) == ":memory:":
            # one shared connection, or each thread would see its own empty database
            self.engine = create_engine(
                "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
            )
        else:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})
        Base.metadata.create_all(self.engine)

    def save(self, table: str, data: Any) -> None:
        content = json.dumps(data)
        with Session(self.engine) as session, session.begin():
            row = session.get(DataTable, table)
            if row is None:
                session.add(DataTable(table_name=table, content=content))
            else:
                row.content = content
                row.updated_at = _utcnow()

    def load(self, table: str) -> Any | None:
        with Session(self.engine) as session:
            content = session.scalar(select(DataTable.content).where(DataTable.table_name == table))
        return json.loads(content) if content is not None else None

    def delete(self, table: str) -> None:
        with Session(self.engine) as session, session.begin():
            session.execute(delete(DataTable).where(DataTable.table_name == table))

    def close(self) -> None:
        self.engine.dispose()


class DebouncedWriter:
    """Coalesces bursts of mutations into a single write after `delay` seconds.

    The snapshot is taken on the mutating thread when a write is
    scheduled; the timer thread only serializes and stores it.
    """

    def __init__(self, storage: Storage, table: str, snapshot: Callable[[], Any], delay: float = 0.3):
        self.storage = storage
        self.table = table
        self.snapshot = snapshot
        self.delay = delay
        self._pending: Any | None = None
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()
        # writes land in the order their snapshots were taken
        self._write_lock = threading.Lock()

    def schedule(self) -> None:
        data = self.snapshot()
        with self._lock:
            self._pending = data
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> None:
        with self._write_lock:
            with self._lock:
                if self._timer is not None:
                    self._timer.cancel()
                    self._timer = None
                data, self._pending = self._pending, None
            if data is None:
                return
            try:
                self.storage.save(self.table, data)
            except (SQLAlchemyError, TypeError, ValueError):
                logger.warning("Could not persist %s", self.table, exc_info=True)


def _load(storage: Storage | None, table: str) -> Any | None:
    if storage is None:
        return None
    try:
        return storage.load(table)
    except (SQLAlchemyError, ValueError):
        logger.warning("Could not load %s", table, exc_info=True)
        return None


class EnvironmentStore:
    """Global environments; at most one is active at a time."""

    TABLE = "environments"

    def __init__(self, storage: Storage | None = None, persist_delay: float = 0.3):
        self.environments: list[Environment] = []
        self.active_env_id: str | None = None
        self._writer = DebouncedWriter(storage, self.TABLE, self.snapshot, persist_delay) if storage else None

    def snapshot(self) -> dict:
        return {
            "environments": [e.model_dump() for e in self.environments],
            "active_env_id": self.active_env_id,
        }

    def hydrate(self, storage: Storage | None) -> None:
        data = _load(storage, self.TABLE)
        if not data:
            return
        self.environments = [Environment(**e) for e in data.get("environments", [])]
        self.active_env_id = data.get("active_env_id")
        if self.get(self.active_env_id) is None:
            self.active_env_id = None

    def _changed(self) -> None:
        if self._writer:
            self._writer.schedule()

    def flush(self) -> None:
        if self._writer:
            self._writer.flush()

    def get(self, env_id: str | None) -> Environment | None:
        return next((e for e in self.environments if e.id == env_id), None)

    def create(self, name: str) -> Environment:
        env = Environment(name=name)
        self.environments.append(env)
        self._changed()
        return env

    def update(self, env_id: str, **updates) -> Environment:
        env = self.get(env_id)
        if env is None:
            raise KeyError(env_id)
        updated = env.model_copy(update=updates)
        self.environments = [updated if e.id == env_id else e for e in self.environments]
        self._changed()
        return updated

    def delete(self, env_id: str) -> None:
        self.environments = [e for e in self.environments if e.id != env_id]
        if self.active_env_id == env_id:
            self.active_env_id = None
        self._changed()

    def set_active(self, env_id: str | None) -> None:
        if env_id is not None and self.get(env_id) is None:
            raise KeyError(env_id)
        self.active_env_id = env_id
        self._changed()

    def active(self) -> Environment | None:
        return self.get(self.active_env_id)


class CollectionStore:
    """Projects, collections (with their own environments) and saved requests."""

    TABLE = "collections"

    def __init__(self, storage: Storage | None = None, persist_delay: float = 0.3):
        self.projects: list[Project] = [Project(id=DEFAULT_PROJECT_ID, name="My Workspace")]
        self.collections: list[Collection] = []
        self.saved_requests: dict[str, HttpRequest] = {}
        self.active_collection_id: str | None = None
        self._writer = DebouncedWriter(storage, self.TABLE, self.snapshot, persist_delay) if storage else None

    def snapshot(self) -> dict:
        return {
            "projects": [p.model_dump() for p in self.projects],
            "collections": [c.model_dump() for c in self.collections],
            "saved_requests": {k: r.model_dump() for k, r in self.saved_requests.items()},
            "active_collection_id": self.active_collection_id,
        }

    def hydrate(self, storage: Storage | None) -> None:
        data = _load(storage, self.TABLE)
        if not data:
            return
        self.projects = [Project(**p) for p in data.get("projects", [])] or self.projects
        self.collections = [Collection(**c) for c in data.get("collections", [])]
        self.saved_requests = {k: HttpRequest(**r) for k, r in data.get("saved_requests", {}).items()}
        self.active_collection_id = data.get("active_collection_id")

        # Drop pointers to ids that no longer exist.
        if self.get(self.active_collection_id) is None:
            self.active_collection_id = None
        self.collections = [
            c if c.get_environment(c.active_environment_id) is not None
            else c.model_copy(update={"active_environment_id": None})
            for c in self.collections
        ]

    def environment_labels(self) -> list[str]:
        """'<collection> > <environment>' for every collection environment."""
        labels = []
        for col in self.collections:
            labels += [f"{col.name} > {e.name}" for e in col.environments]
        return labels

    def _changed(self) -> None:
        if self._writer:
            self._writer.schedule()

    def flush(self) -> None:
        if self._writer:
            self._writer.flush()

    # Projects

    def create_project(self, name: str, color: str = "#A855F7") -> Project:
        project = Project(name=name, color=color)
        self.projects.append(project)
        self._changed()
        return project

    def delete_project(self, project_id: str) -> None:
        for col in [c for c in self.collections if c.project_id == project_id]:
            self._drop_collection(col.id)
        self.projects = [p for p in self.projects if p.id != project_id]
        self._changed()

    # Collections

    def get(self, collection_id: str | None) -> Collection | None:
        return next((c for c in self.collections if c.id == collection_id), None)

    def _require(self, collection_id: str) -> Collection:
        col = self.get(collection_id)
        if col is None:
            raise KeyError(collection_id)
        return col

    def _replace(self, col: Collection) -> None:
        self.collections = [col if c.id == col.id else c for c in self.collections]

    def create_collection(self, name: str, project_id: str = DEFAULT_PROJECT_ID, color: str = "#34d399") -> Collection:
        col = Collection(
            project_id=project_id,
            name=name,
            color=color,
            environments=[Environment(name="Default")],
        )
        self.collections.append(col)
        self._changed()
        return col

    def import_collection(self, project_id: str, document: dict) -> Collection | None:
        """Import an OpenAPI document as a new collection.

        All or nothing: if the walk fails, state is left untouched and
        None is returned.
        """
        try:
            parsed = import_openapi(document)

            new_requests: dict[str, HttpRequest] = {}
            root_ids = []
            for req in parsed.root_requests:
                new_requests[req.id] = req
                root_ids.append(req.id)

            folders = []
            for folder_name, requests in parsed.folders.items():
                for req in requests:
                    new_requests[req.id] = req
                folders.append(Folder(name=folder_name, requests=[r.id for r in requests]))

            col = Collection(
                project_id=project_id,
                name=parsed.name,
                folders=folders,
                requests=root_ids,
                environments=parsed.environments,
                active_environment_id=parsed.environments[0].id if parsed.environments else None,
            )
        except Exception:
            logger.exception("Import failed")
            return None

        self.saved_requests.update(new_requests)
        self.collections.append(col)
        self._changed()
        logger.info("Imported collection %r with %d requests", col.name, len(new_requests))
        return col

    def _drop_collection(self, collection_id: str) -> None:
        col = self.get(collection_id)
        if col is None:
            return
        for request_id in col.request_ids():
            self.saved_requests.pop(request_id, None)
        self.collections = [c for c in self.collections if c.id != collection_id]
        if self.active_collection_id == collection_id:
            self.active_collection_id = None

    def delete_collection(self, collection_id: str) -> None:
        self._drop_collection(collection_id)
        self._changed()

    def set_active_collection(self, collection_id: str | None) -> None:
        if collection_id is not None:
            self._require(collection_id)
        self.active_collection_id = collection_id
        self._changed()

    def active_collection(self) -> Collection | None:
        return self.get(self.active_collection_id)

    # Requests

    def save_request(self, req: HttpRequest, collection_id: str) -> HttpRequest:
        """Store a copy of `req` under a fresh id at the collection root."""
        col = self._require(collection_id)
        saved = req.model_copy(update={"id": new_id()}, deep=True)
        self.saved_requests[saved.id] = saved
        self._replace(col.model_copy(update={"requests": [*col.requests, saved.id]}))
        self._changed()
        return saved

    def update_saved_request(self, req: HttpRequest) -> None:
        self.saved_requests[req.id] = req
        self._changed()

    # Collection environments

    def add_collection_env(self, collection_id: str, name: str) -> Environment:
        col = self._require(collection_id)
        env = Environment(name=name)
        self._replace(col.model_copy(update={"environments": [*col.environments, env]}))
        self._changed()
        return env

    def update_collection_env(self, collection_id: str, env_id: str, **updates) -> Environment:
        col = self._require(collection_id)
        env = col.get_environment(env_id)
        if env is None:
            raise KeyError(env_id)
        updated = env.model_copy(update=updates)
        envs = [updated if e.id == env_id else e for e in col.environments]
        self._replace(col.model_copy(update={"environments": envs}))
        self._changed()
        return updated

    def remove_collection_env(self, collection_id: str, env_id: str) -> None:
        col = self._require(collection_id)
        active = None if col.active_environment_id == env_id else col.active_environment_id
        envs = [e for e in col.environments if e.id != env_id]
        self._replace(col.model_copy(update={"environments": envs, "active_environment_id": active}))
        self._changed()

    def set_collection_active_env(self, collection_id: str, env_id: str | None) -> None:
        col = self._require(collection_id)
        if env_id is not None and col.get_environment(env_id) is None:
            raise KeyError(env_id)
        self._replace(col.model_copy(update={"active_environment_id": env_id}))
        self._changed()


class RequestRunner:
    """Resolves a request against the current environments and dispatches it."""

    def __init__(self, environments: EnvironmentStore, collections: CollectionStore, client: HttpClient | None = None):
        self.environments = environments
        self.collections = collections
        self.client = client

    def available_environments(self) -> list[str]:
        labels = [f"Global: {e.name}" for e in self.environments.environments]
        return labels + self.collections.environment_labels()

    def build(self, request: HttpRequest) -> DispatchPayload:
        """Resolve `request` into a payload; raises UnresolvedVariablesError."""
        global_env = self.environments.active()
        label = f"Global: {global_env.name}" if global_env else None

        collection_env = None
        col = self.collections.active_collection()
        if col is not None:
            collection_env = col.get_environment(col.active_environment_id)
            if collection_env is not None:
                label = f"Collection: {col.name} > {collection_env.name}"

        return resolve_request(
            request,
            global_env=global_env,
            collection_env=collection_env,
            active_label=label,
            available=self.available_environments(),
        )

    async def send(self, request: HttpRequest) -> HttpResponse:
        payload = self.build(request)
        if self.client is None:
            self.client = HttpClient()
        return await self.client.send(payload)
