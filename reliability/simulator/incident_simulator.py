"""
Incident Simulator.
Plays the external detector: posts typical media-pipeline incidents to the API.
"""
from typing import Optional
from uuid import uuid4
import click
import httpx
import structlog

from reliability.config import settings
from reliability.models import IncidentCreate, IncidentSeverity, SourceType


logger = structlog.get_logger()


def stalled_upload(source_id: str) -> IncidentCreate:
    return IncidentCreate(
        severity=IncidentSeverity.ERROR,
        title="Asset stuck in uploading state",
        description="Upload completed but the asset never left 'uploading'",
        source_type=SourceType.ASSET,
        source_id=source_id,
    )


def thumbnail_failure(source_id: str) -> IncidentCreate:
    return IncidentCreate(
        severity=IncidentSeverity.WARNING,
        title="Thumbnail generation failed",
        description="Derivative job exited with an error for the asset thumbnail",
        source_type=SourceType.ASSET,
        source_id=source_id,
    )


def failed_job(source_id: str) -> IncidentCreate:
    return IncidentCreate(
        severity=IncidentSeverity.ERROR,
        title="Processing job failed",
        description="Transcode job exhausted its worker retries",
        source_type=SourceType.JOB,
        source_id=source_id,
        retryable=True,
    )


def scheduler_heartbeat(source_id: str) -> IncidentCreate:
    return IncidentCreate(
        severity=IncidentSeverity.CRITICAL,
        title="Scheduler heartbeat missing",
        description="No scheduler heartbeat received in the last 10 minutes",
        source_type=SourceType.SCHEDULER,
        source_id=source_id,
    )


def queue_backlog(source_id: str) -> IncidentCreate:
    return IncidentCreate(
        severity=IncidentSeverity.WARNING,
        title="Processing queue backlog",
        description="Pending jobs above threshold for 30 minutes",
        source_type=SourceType.QUEUE,
        source_id=source_id,
    )


class IncidentSimulator:
    """Creates test incidents through the Operations Center API."""

    SCENARIOS = {
        "stalled-upload": stalled_upload,
        "thumbnail-failure": thumbnail_failure,
        "failed-job": failed_job,
        "scheduler-heartbeat": scheduler_heartbeat,
        "queue-backlog": queue_backlog,
    }

    def __init__(
        self,
        api_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.client = httpx.Client(
            base_url=api_url or f"http://{settings.api_host}:{settings.api_port}",
            timeout=10.0,
            transport=transport,
        )

    def build(self, scenario: str, source_id: Optional[str] = None) -> IncidentCreate:
        """Incident payload for a scenario. A random source id is used when none is given."""
        if scenario not in self.SCENARIOS:
            raise ValueError(f"Unknown scenario: {scenario}")
        return self.SCENARIOS[scenario](source_id or str(uuid4()))

    def create_scenario(self, scenario: str, source_id: Optional[str] = None) -> Optional[str]:
        """Post one scenario incident. Returns the new incident id, or None on failure."""
        payload = self.build(scenario, source_id)

        try:
            response = self.client.post(
                "/api/v1/incidents",
                json=payload.model_dump(mode="json", exclude_none=True),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to create scenario", scenario=scenario, error=str(e))
            return None

        incident_id = response.json()["id"]
        logger.info("Created incident", scenario=scenario, incident_id=incident_id)
        return incident_id

    def list_scenarios(self) -> list[str]:
        """List available scenarios."""
        return list(self.SCENARIOS.keys())

    def close(self) -> None:
        self.client.close()


@click.group()
@click.option("--api-url", "-u", default=None, help="Operations Center API base URL")
@click.pass_context
def cli(ctx: click.Context, api_url: Optional[str]):
    """Operations Center Incident Simulator CLI."""
    ctx.ensure_object(dict)
    if api_url:
        ctx.obj["api_url"] = api_url


@cli.command()
@click.option(
    "--scenario", "-s", required=True,
    help="Scenario to create (stalled-upload, thumbnail-failure, failed-job, scheduler-heartbeat, queue-backlog, all)",
)
@click.option("--source-id", default=None, help="Affected resource id")
@click.option("--count", "-c", default=1, show_default=True, help="Incidents per scenario")
@click.pass_context
def create(ctx: click.Context, scenario: str, source_id: Optional[str], count: int):
    """Create test incidents."""
    if scenario != "all" and scenario not in IncidentSimulator.SCENARIOS:
        raise click.BadParameter(f"Unknown scenario: {scenario}", param_hint="--scenario")

    obj = ctx.obj or {}
    simulator = IncidentSimulator(obj.get("api_url"), transport=obj.get("transport"))
    scenarios = simulator.list_scenarios() if scenario == "all" else [scenario]

    created = []
    try:
        for name in scenarios:
            for _ in range(count):
                incident_id = simulator.create_scenario(name, source_id)
                if incident_id:
                    created.append(incident_id)
    finally:
        simulator.close()

    for incident_id in created:
        click.echo(incident_id)
    if len(created) < len(scenarios) * count:
        ctx.exit(1)


@cli.command("list")
def list_scenarios():
    """List available test scenarios."""
    click.echo("Available scenarios:")
    for s in IncidentSimulator.SCENARIOS:
        click.echo(f"  - {s}")


if __name__ == "__main__":
    cli()
