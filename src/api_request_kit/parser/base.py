"""Unified data models for requests, environments and collections.

The importer, the curl codec and the variable resolver all produce or
consume these models; the state layer persists them as plain JSON.
"""

import uuid
from typing import Literal

from pydantic import BaseModel, Field

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]
BodyType = Literal["none", "json", "text"]


def new_id() -> str:
    return str(uuid.uuid4())


class KeyValuePair(BaseModel):
    """A single variable, header, param or cookie entry."""

    id: str = Field(default_factory=new_id)
    key: str
    value: str = ""
    enabled: bool = True


class HttpRequest(BaseModel):
    """A request template; url/header/param/body values may hold {{ key }} placeholders."""

    id: str = Field(default_factory=new_id)
    name: str = "New Request"
    method: HttpMethod = "GET"
    url: str = ""
    headers: list[KeyValuePair] = []
    params: list[KeyValuePair] = []
    cookies: list[KeyValuePair] = []
    body_type: BodyType = "none"
    body: str = ""


class Environment(BaseModel):
    """A named set of variables plus optional shared headers."""

    id: str = Field(default_factory=new_id)
    name: str
    variables: list[KeyValuePair] = []
    headers: list[KeyValuePair] = []


class Folder(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    requests: list[str] = []  # request ids


class Project(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    color: str = "#A855F7"


class Collection(BaseModel):
    """A group of requests and folders owned by a project, with its own environments."""

    id: str = Field(default_factory=new_id)
    project_id: str
    name: str
    color: str = "#34d399"
    folders: list[Folder] = []
    requests: list[str] = []  # root-level request ids
    environments: list[Environment] = []
    active_environment_id: str | None = None

    def get_environment(self, env_id: str | None) -> Environment | None:
        for env in self.environments:
            if env.id == env_id:
                return env
        return None

    def request_ids(self) -> list[str]:
        """All request ids owned by this collection, root first."""
        ids = list(self.requests)
        for folder in self.folders:
            ids.extend(folder.requests)
        return ids


class OpenApiImport(BaseModel):
    """Result of walking an OpenAPI/Swagger document."""

    name: str
    environments: list[Environment]
    folders: dict[str, list[HttpRequest]] = {}  # tag -> requests, insertion ordered
    root_requests: list[HttpRequest] = []


class DispatchPayload(BaseModel):
    """A fully resolved request, ready for the HTTP client."""

    method: str
    url: str
    headers: dict[str, str] = {}
    cookies: dict[str, str] | None = None
    body: str | None = None


class HttpResponse(BaseModel):
    status_code: int
    time_ms: int  # ms
    size_bytes: int
    headers: dict[str, str] = {}
    cookies: dict[str, str] = {}
    body: str = ""
    content_type: str = ""
