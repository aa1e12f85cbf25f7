"""
Command-line interface for reddit-feed.

Usage:
    reddit-feed feed pics aww --access-token TOKEN   # One feed cycle
    reddit-feed poll pics aww --refresh-token TOKEN  # Poll until interrupted
    reddit-feed connect-url --user-id USER           # Print the authorize URL
    reddit-feed serve                                # Run the token broker
    reddit-feed init-db                              # Create the credential table
"""

import asyncio
import json
import signal
import sys
from contextlib import AsyncExitStack

import click

from reddit_feed.config.settings import get_settings
from reddit_feed.errors import ConfigurationError, RedditFeedError
from reddit_feed.observability.logging import bind_context, setup_logging
from reddit_feed.observability.metrics import get_metrics


class StaticTokenProvider:
    """Token provider for a token passed on the command line."""

    def __init__(self, token: str):
        self._token = token

    async def get_access_token(self) -> str | None:
        return self._token


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Reddit Feed - OAuth-aware Reddit media feed pipeline."""
    setup_logging(level="DEBUG" if debug else None)


async def _token_provider(
    stack: AsyncExitStack,
    access_token: str | None,
    refresh_token: str | None,
    user_id: str | None,
):
    """Build a token provider from CLI options."""
    from reddit_feed.auth import (
        AccessCredential,
        InMemoryCredentialStore,
        PostgresCredentialStore,
        TokenLifecycleManager,
        create_token_endpoint,
    )

    if access_token:
        return StaticTokenProvider(access_token)

    settings = get_settings()
    if not refresh_token and not (user_id and settings.store_configured):
        raise click.UsageError(
            "Provide --access-token, --refresh-token, or --user-id with DATABASE_URL set."
        )

    endpoint = create_token_endpoint(settings)
    if refresh_token:
        store = InMemoryCredentialStore()
        user_id = user_id or "cli"
        await store.save(
            user_id,
            AccessCredential(refresh_token=refresh_token, is_authenticated=True),
        )
    else:
        from reddit_feed.storage.database import Database

        db = await stack.enter_async_context(Database())
        store = PostgresCredentialStore(db)

    bind_context(user_id=user_id)
    manager = TokenLifecycleManager(endpoint, store, user_id=user_id, settings=settings)
    await manager.initialize()
    if not manager.is_authenticated:
        click.echo("Warning: could not obtain a Reddit access token", err=True)
    return manager


def _build_assembler(provider, fetcher, policy: str, seed: int | None):
    import random

    from reddit_feed.feed import FeedAssembler, get_policy

    return FeedAssembler(
        provider,
        fetcher,
        priority=get_policy(policy),
        rng=random.Random(seed) if seed is not None else None,
    )


def _print_feed(feed, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(feed.model_dump(mode="json"), indent=2))
        return

    for result in feed.results:
        status = f" [error: {result.error}]" if result.error else ""
        click.echo(f"\nr/{result.source_name}: {len(result.posts)} posts{status}")
        for post in result.posts:
            kind = "video" if post.is_video else "image"
            marker = "*" if post.priority_flag else " "
            click.echo(f"  {marker} {kind:5} {post.id:8} {post.title[:60]}")
            click.echo(f"          {post.video_url or post.display_url}")

    if feed.overall_error:
        click.echo(f"\nError: {feed.overall_error}", err=True)


_token_options = [
    click.option("--access-token", envvar="REDDIT_ACCESS_TOKEN", default=None, help="Use this access token as-is"),
    click.option("--refresh-token", envvar="REDDIT_REFRESH_TOKEN", default=None, help="Refresh token to exchange"),
    click.option("--user-id", default=None, help="Load the stored credential for this user"),
    click.option("--policy", type=click.Choice(["flagged", "keywords", "none"]), default="flagged",
                 help="Priority-class policy"),
    click.option("--seed", type=int, default=None, help="Seed for reproducible shuffling"),
]


def token_options(func):
    for option in reversed(_token_options):
        func = option(func)
    return func


@main.command()
@click.argument("sources", nargs=-1, required=True)
@token_options
@click.option("--json", "as_json", is_flag=True, help="Print the feed as JSON")
def feed(
    sources: tuple[str, ...],
    access_token: str | None,
    refresh_token: str | None,
    user_id: str | None,
    policy: str,
    seed: int | None,
    as_json: bool,
) -> None:
    """Run one feed cycle for SOURCES (names, r/ prefixes or comma lists)."""
    from reddit_feed.feed import parse_source_names
    from reddit_feed.ingestion import SourceFetcher

    names = parse_source_names(",".join(sources))

    async def run():
        async with AsyncExitStack() as stack:
            provider = await _token_provider(stack, access_token, refresh_token, user_id)
            fetcher = await stack.enter_async_context(SourceFetcher())
            assembler = _build_assembler(provider, fetcher, policy, seed)
            return await assembler.assemble(names)

    try:
        result = asyncio.run(run())
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e

    _print_feed(result, as_json)
    if result.overall_error:
        sys.exit(1)


@main.command()
@click.argument("sources", nargs=-1, required=True)
@token_options
@click.option("--interval", type=int, default=None, help="Seconds between cycles")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def poll(
    sources: tuple[str, ...],
    access_token: str | None,
    refresh_token: str | None,
    user_id: str | None,
    policy: str,
    seed: int | None,
    interval: int | None,
    metrics: bool,
) -> None:
    """Poll SOURCES until interrupted."""
    from reddit_feed.feed import FeedPoller, parse_source_names
    from reddit_feed.ingestion import SourceFetcher

    names = parse_source_names(",".join(sources))

    async def run():
        if metrics:
            get_metrics().start_server()

        async with AsyncExitStack() as stack:
            provider = await _token_provider(stack, access_token, refresh_token, user_id)
            fetcher = await stack.enter_async_context(SourceFetcher())
            assembler = _build_assembler(provider, fetcher, policy, seed)
            poller = FeedPoller(
                assembler,
                names,
                on_feed=lambda result: _print_feed(result, as_json=False),
                interval=interval,
            )

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(poller.stop()))

            click.echo(f"Polling {', '.join(names)} every {poller.interval:.0f}s")
            await poller.start()

    try:
        asyncio.run(run())
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e


@main.command("connect-url")
@click.option("--user-id", required=True, help="User the Reddit account will belong to")
@click.option("--state", default=None, help="Explicit OAuth state value")
def connect_url(user_id: str, state: str | None) -> None:
    """Print the Reddit authorization URL for the connect flow."""
    from reddit_feed.auth import TokenLifecycleManager, create_token_endpoint

    try:
        manager = TokenLifecycleManager(create_token_endpoint(), user_id=user_id)
        click.echo(manager.authorization_url(state=state))
    except RedditFeedError as e:
        raise click.ClickException(e.message) from e


@main.command("init-db")
def init_db() -> None:
    """Create the credential table."""
    from reddit_feed.auth import PostgresCredentialStore
    from reddit_feed.storage.database import Database

    async def run():
        async with Database() as db:
            await PostgresCredentialStore(db).create_table()
        click.echo("Database initialized successfully")

    try:
        asyncio.run(run())
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the token broker API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting token broker on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "reddit_feed.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
