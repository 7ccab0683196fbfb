"""
Operations Center CLI.
Talks to a running API; `serve` starts one.
"""
import json
from typing import Optional
import click
import httpx

from reliability.config import settings


def default_api_url() -> str:
    return f"http://{settings.api_host}:{settings.api_port}"


def _client(ctx: click.Context) -> httpx.Client:
    obj = ctx.obj or {}
    return httpx.Client(
        base_url=obj.get("api_url") or default_api_url(),
        timeout=obj.get("timeout", 60.0),
        transport=obj.get("transport"),
    )


def _request(ctx: click.Context, method: str, path: str, **kwargs) -> dict:
    """Send one request and echo the JSON body. Exits non-zero on 4xx/5xx."""
    try:
        with _client(ctx) as client:
            response = client.request(method, path, **kwargs)
    except httpx.HTTPError as e:
        raise click.ClickException(f"API unreachable: {e}") from e

    try:
        data = response.json()
    except ValueError:
        data = {"detail": response.text}

    click.echo(json.dumps(data, indent=2, sort_keys=True))
    if response.is_error:
        ctx.exit(1)
    return data


@click.group()
@click.option("--api-url", "-u", default=None, help="Operations Center API base URL")
@click.pass_context
def cli(ctx: click.Context, api_url: Optional[str]):
    """Operations Center CLI."""
    ctx.ensure_object(dict)
    if api_url:
        ctx.obj["api_url"] = api_url


@cli.command("open")
@click.option("--limit", "-l", default=50, show_default=True, help="Maximum incidents to list")
@click.option("--offset", default=0, show_default=True)
@click.pass_context
def list_open(ctx: click.Context, limit: int, offset: int):
    """List open incidents."""
    _request(ctx, "GET", "/api/v1/incidents", params={"limit": limit, "offset": offset})


@cli.command()
@click.argument("incident_id")
@click.pass_context
def repair(ctx: click.Context, incident_id: str):
    """Make one repair attempt for an incident."""
    _request(ctx, "POST", f"/api/v1/incidents/{incident_id}/repair")


@cli.command()
@click.argument("incident_id")
@click.pass_context
def ticket(ctx: click.Context, incident_id: str):
    """Escalate an incident to a support ticket."""
    _request(ctx, "POST", f"/api/v1/incidents/{incident_id}/ticket")


@cli.command()
@click.argument("incident_id")
@click.option(
    "--resolution", "-r",
    type=click.Choice(["manual", "escalated"]),
    default="manual",
    show_default=True,
    help="How the incident was resolved",
)
@click.pass_context
def resolve(ctx: click.Context, incident_id: str, resolution: str):
    """Resolve an incident by hand."""
    _request(
        ctx, "POST", f"/api/v1/incidents/{incident_id}/resolve",
        json={"resolution": resolution},
    )


@cli.command()
@click.argument("action", type=click.Choice(["attempt_repair", "create_ticket", "resolve"]))
@click.argument("incident_ids", nargs=-1, required=True)
@click.pass_context
def bulk(ctx: click.Context, action: str, incident_ids: tuple[str, ...]):
    """Apply one action to several incidents."""
    _request(
        ctx, "POST", "/api/v1/incidents/bulk",
        json={"action": action, "incident_ids": list(incident_ids)},
    )


@cli.command()
@click.option("--window-hours", "-w", type=float, default=None, help="Trailing window size")
@click.option("--start", type=click.DateTime(), default=None, help="Window start (UTC)")
@click.option("--end", type=click.DateTime(), default=None, help="Window end (UTC)")
@click.pass_context
def metrics(ctx: click.Context, window_hours, start, end):
    """Show reliability metrics."""
    if (start is None) != (end is None):
        raise click.UsageError("--start and --end must be given together")

    params = {}
    if start is not None:
        params = {"start": start.isoformat(), "end": end.isoformat()}
    elif window_hours is not None:
        params = {"window_hours": window_hours}
    _request(ctx, "GET", "/api/v1/reliability/metrics", params=params)


@cli.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Bind port")
def serve(host: Optional[str], port: Optional[int]):
    """Run the Operations Center API."""
    import uvicorn

    uvicorn.run(
        "reliability.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    cli()
