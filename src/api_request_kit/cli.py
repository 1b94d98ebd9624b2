"""CLI entry point for api-request-kit."""

import asyncio
import json
import logging
from pathlib import Path

import click
import yaml

from api_request_kit.config import get_settings
from api_request_kit.http import DispatchError, HttpClient
from api_request_kit.parser.base import HttpRequest
from api_request_kit.parser.curl import from_curl, to_curl
from api_request_kit.parser.detect import detect_format
from api_request_kit.resolver.variables import UnresolvedVariablesError
from api_request_kit.store import DEFAULT_PROJECT_ID, CollectionStore, EnvironmentStore, RequestRunner, Storage


def _open_stores(db: Path | None) -> tuple[Storage, EnvironmentStore, CollectionStore]:
    settings = get_settings()
    storage = Storage(db or settings.db_path)
    envs = EnvironmentStore(storage, settings.persist_delay)
    envs.hydrate(storage)
    collections = CollectionStore(storage, settings.persist_delay)
    collections.hydrate(storage)
    return storage, envs, collections


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """API Request Kit: import API specs, resolve variables and send requests."""
    level = "DEBUG" if verbose else get_settings().log_level
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@main.command(name="import")
@click.argument("spec_path", type=click.Path(exists=True, path_type=Path))
@click.option("--project", "project_id", default=DEFAULT_PROJECT_ID, help="Project that owns the new collection.")
@click.option("--db", type=click.Path(path_type=Path), default=None, help="State database path.")
def import_spec(spec_path: Path, project_id: str, db: Path | None):
    """Import an OpenAPI/Swagger document as a new collection."""
    fmt = detect_format(spec_path)
    if fmt != "swagger":
        raise click.ClickException(f"{spec_path} is not an OpenAPI/Swagger document (detected: {fmt})")

    document = yaml.safe_load(spec_path.read_text(encoding="utf-8"))
    storage, _, collections = _open_stores(db)
    try:
        col = collections.import_collection(project_id, document)
        if col is None:
            raise click.ClickException(f"Import of {spec_path} failed")
        collections.flush()
    finally:
        storage.close()

    click.echo(f"Imported collection '{col.name}' ({col.id})")
    click.echo(f"  Environments: {', '.join(e.name for e in col.environments)}")
    for folder in col.folders:
        click.echo(f"  Folder {folder.name}: {len(folder.requests)} requests")
    click.echo(f"  Root requests: {len(col.requests)}")


@main.command(name="to-curl")
@click.argument("request_path", type=click.Path(exists=True, path_type=Path))
def to_curl_cmd(request_path: Path):
    """Print a saved request JSON file as a curl command."""
    req = HttpRequest.model_validate_json(request_path.read_text(encoding="utf-8"))
    click.echo(to_curl(req))


@main.command(name="from-curl")
@click.argument("curl_path", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", type=click.Path(path_type=Path), default=None, help="Write the request JSON here.")
def from_curl_cmd(curl_path: Path, output: Path | None):
    """Parse a curl command into a request JSON document."""
    fmt = detect_format(curl_path)
    if fmt != "curl":
        raise click.ClickException(f"{curl_path} is not a curl command (detected: {fmt})")
    req = HttpRequest(name=curl_path.stem, **from_curl(curl_path.read_text(encoding="utf-8")))
    text = req.model_dump_json(indent=2)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        click.echo(f"Request saved to {output}")
    else:
        click.echo(text)


@main.command()
@click.argument("request_id")
@click.option("--collection", "collection_id", default=None, help="Collection whose active environment applies.")
@click.option("--db", type=click.Path(path_type=Path), default=None, help="State database path.")
def send(request_id: str, collection_id: str | None, db: Path | None):
    """Resolve a saved request and send it."""
    settings = get_settings()
    storage, envs, collections = _open_stores(db)
    try:
        req = collections.saved_requests.get(request_id)
        if req is None:
            raise click.ClickException(f"No saved request with id {request_id}")
        if collection_id:
            collections.active_collection_id = collection_id

        client = HttpClient(
            timeout=settings.http_timeout,
            follow_redirects=settings.follow_redirects,
            verify_ssl=settings.verify_ssl,
        )
        runner = RequestRunner(envs, collections, client)
        try:
            response = asyncio.run(_send(runner, req))
        except (UnresolvedVariablesError, DispatchError) as e:
            raise click.ClickException(str(e))
    finally:
        storage.close()

    click.echo(f"{response.status_code} ({response.time_ms} ms, {response.size_bytes} bytes)")
    body = response.body
    if "json" in response.content_type:
        try:
            body = json.dumps(json.loads(body), indent=2, ensure_ascii=False)
        except ValueError:
            pass
    click.echo(body)


async def _send(runner: RequestRunner, req: HttpRequest):
    try:
        return await runner.send(req)
    finally:
        await runner.client.close()
