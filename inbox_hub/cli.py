"""
Command-line interface for inbox-hub.

Usage:
    inbox-hub run          # Poll providers on their schedules until stopped
    inbox-hub refresh      # Poll once and print the unified inbox
    inbox-hub providers    # List supported providers and defaults
    inbox-hub health       # Check store and provider connectivity
"""

import asyncio
import json
import signal
import sys
from datetime import datetime

import click

from inbox_hub.config.providers import PROVIDER_CATALOG, provider_label
from inbox_hub.config.settings import get_settings
from inbox_hub.observability.logging import setup_logging
from inbox_hub.observability.metrics import get_metrics
from inbox_hub.providers.schemas import ProviderId

PROVIDER_CHOICE = click.Choice([p.value for p in ProviderId])


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """inbox-hub - Unified unread messages across chat and mail providers."""
    setup_logging(level="DEBUG" if debug else None)

    settings = get_settings()
    if settings.tracing_enabled:
        from inbox_hub.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


@main.command()
@click.option("--mock", is_flag=True, help="Use mock adapters")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def run(mock: bool, metrics: bool) -> None:
    """Run scheduled polling until SIGINT/SIGTERM."""
    from inbox_hub.services.orchestrator import InboxOrchestrator

    async def serve():
        orchestrator = InboxOrchestrator(use_mock=mock)

        if metrics:
            get_metrics().start_server()

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

        scheduled = await orchestrator.start()
        click.echo(
            f"Polling {len(scheduled)} providers: "
            + (", ".join(p.value for p in scheduled) or "(none)")
        )

        try:
            await stop_event.wait()
        finally:
            await orchestrator.stop()
            await orchestrator.close()

    asyncio.run(serve())


@main.command()
@click.option(
    "--provider", "provider", type=PROVIDER_CHOICE, default=None,
    help="Poll a single provider",
)
@click.option("--mock", is_flag=True, help="Use mock adapters")
@click.option("--json", "as_json", is_flag=True, help="Print the snapshot as JSON")
def refresh(provider: str | None, mock: bool, as_json: bool) -> None:
    """Poll once and print statuses and messages."""
    from inbox_hub.services.orchestrator import InboxOrchestrator

    async def poll_once():
        async with InboxOrchestrator(use_mock=mock) as orchestrator:
            if provider:
                results = [await orchestrator.refresh_one(ProviderId(provider))]
            else:
                results = await orchestrator.refresh_all()
            snapshot = await orchestrator.get_snapshot()
        return results, snapshot

    results, snapshot = asyncio.run(poll_once())

    if as_json:
        payload = snapshot.to_dict()
        payload["results"] = [r.to_dict() for r in results]
        click.echo(json.dumps(payload, indent=2))
        return

    click.echo("\nProviders:")
    click.echo("-" * 60)
    for status in snapshot.statuses:
        if not status.enabled:
            continue
        icon = "✓" if status.connected else "✗"
        color = "green" if status.connected else "red"
        line = f"  {icon} {provider_label(status.provider_id):<12} unread={status.unread_count}"
        if status.error:
            line += f"  error: {status.error}"
        click.echo(click.style(line, fg=color))

    click.echo("-" * 60)
    click.echo(f"Badge: {snapshot.badge or '(empty)'}")

    if snapshot.messages:
        click.echo("\nMessages:")
        for message in snapshot.messages:
            sent = datetime.fromtimestamp(message.timestamp / 1000).strftime("%Y-%m-%d %H:%M")
            marker = "*" if message.is_unread else " "
            click.echo(
                f" {marker} [{provider_label(message.provider_id)}] {sent} "
                f"{message.sender}: {message.content[:60]}"
            )

    if any(r.outcome == "error" for r in results):
        sys.exit(1)


@main.command()
def providers() -> None:
    """List supported providers with their default polling intervals."""
    click.echo(f"\n{'Provider':<14}{'Id':<14}{'Interval':<12}")
    click.echo("-" * 40)
    for provider_id, info in PROVIDER_CATALOG.items():
        interval = (
            f"{info.polling_interval_seconds}s"
            if info.polling_interval_seconds > 0
            else "passive"
        )
        click.echo(f"{info.label:<14}{provider_id.value:<14}{interval:<12}")


@main.command()
@click.option("--mock", is_flag=True, help="Use mock adapters")
def health(mock: bool) -> None:
    """Check store and provider connectivity."""
    from inbox_hub.services.orchestrator import InboxOrchestrator

    async def check():
        async with InboxOrchestrator(use_mock=mock) as orchestrator:
            return await orchestrator.health_check()

    results = asyncio.run(check())

    click.echo("\nHealth Check Results:")
    click.echo("-" * 40)

    checks = {"store": results["store_healthy"], **results["providers"]}
    for name, ok in checks.items():
        icon = "✓" if ok else "✗"
        color = "green" if ok else "red"
        click.echo(click.style(f"  {icon} {name}: {ok}", fg=color))

    click.echo("-" * 40)

    if all(checks.values()):
        click.echo(click.style("All enabled providers healthy!", fg="green"))
        sys.exit(0)

    click.echo(click.style("Some checks failed!", fg="red"))
    sys.exit(1)


if __name__ == "__main__":
    main()
