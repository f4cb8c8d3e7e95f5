"""Command-line interface for the comment mop service."""

import asyncio
import logging
import logging.config
import signal
import sys
from datetime import timedelta
from functools import partial
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from comment_mop.collector.batch_executor import BatchExecutor
from comment_mop.collector.rate_limiter import RateLimiter
from comment_mop.collector.tree_collector import TreeCollector
from comment_mop.config import Config
from comment_mop.models.node import MopOutcome, MopSummary, PermissionDecision
from comment_mop.monitoring.metrics import PrometheusExporter
from comment_mop.orchestrator import ModerationOrchestrator
from comment_mop.permissions.permission_cache import PermissionCache
from comment_mop.permissions.roster_events import RosterEventHandler, RosterWatcher
from comment_mop.providers.reddit_provider import RedditAuthorizationSource, RedditContentProvider
from comment_mop.reddit_client import RedditClient
from comment_mop.storage.audit_sink import CsvAuditSink
from comment_mop.storage.cache_store import InMemoryCacheStore, RedisCacheStore

app = typer.Typer(help="Comment Mop - remove or lock whole Reddit comment trees")

logger = logging.getLogger(__name__)

_watcher: Optional[RosterWatcher] = None

ConfigOption = Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")]
LogLevelOption = Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose output")]
RemoveOption = Annotated[Optional[bool], typer.Option("--remove/--no-remove", help="Remove comments")]
LockOption = Annotated[Optional[bool], typer.Option("--lock/--no-lock", help="Lock comments")]
SkipDistinguishedOption = Annotated[Optional[bool], typer.Option(
    "--skip-distinguished/--no-skip-distinguished",
    help="Leave comments with the mod badge alone",
)]
SkipActionedOption = Annotated[Optional[bool], typer.Option(
    "--skip-actioned/--no-skip-actioned",
    help="Do not remove/lock comments that are already removed/locked",
)]


def setup_logging(log_level: str = "INFO") -> None:
    """
    Set up logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": log_level,
                "formatter": "standard",
                "filename": "logs/comment_mop.log",
                "maxBytes": 10485760,  # 10 MB
                "backupCount": 5,
                "encoding": "utf8",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console", "file"],
                "level": log_level,
                "propagate": True
            },
            "asyncio": {"level": "WARNING"},
            "asyncpraw": {"level": "WARNING"},
            "asyncprawcore": {"level": "WARNING"},
        }
    }

    logging.config.dictConfig(log_config)


def load_config(config_path: str) -> Config:
    """Load and validate configuration, exiting with status 1 when it is invalid."""
    config = Config.from_files(config_path)
    validation_errors = config.validate()

    if validation_errors:
        for error in validation_errors:
            logger.error(f"Configuration error: {error}")
        logger.critical("Invalid configuration, aborting")
        sys.exit(1)

    return config


class MopServices:
    """Wires the Reddit-backed components together and owns their resources."""

    def __init__(self, config: Config):
        self.config = config
        self.reddit_client = RedditClient(config)
        self.rate_limiter = RateLimiter(config.rate_limit)

        self.prometheus_exporter = None
        if config.monitoring.enable_prometheus:
            self.prometheus_exporter = PrometheusExporter(port=config.monitoring.prometheus_port)
            self.prometheus_exporter.start_server()

        if config.redis.enabled:
            self.cache_store = RedisCacheStore.from_config(config.redis)
        else:
            logger.warning("Redis disabled, permission decisions are cached in memory only")
            self.cache_store = InMemoryCacheStore()

        self.provider = RedditContentProvider(self.reddit_client, self.rate_limiter)
        self.auth_source = RedditAuthorizationSource(self.reddit_client, self.rate_limiter)
        self.permission_cache = PermissionCache(
            self.cache_store,
            self.auth_source,
            config.subreddit,
            ttl=timedelta(seconds=config.permission_cache_ttl_sec),
            prometheus_exporter=self.prometheus_exporter,
        )
        self.orchestrator = ModerationOrchestrator(
            provider=self.provider,
            permission_cache=self.permission_cache,
            collector=TreeCollector(self.provider, config.max_concurrent_fetches),
            executor=BatchExecutor(self.provider, config.chunk_size, self.prometheus_exporter),
            audit_sink=CsvAuditSink(config.audit_log_path),
            lock_post_instead_of_comments=config.lock_post_instead_of_comments,
            prometheus_exporter=self.prometheus_exporter,
        )

    async def connect_cache(self) -> None:
        """Fail fast when the shared permission cache is unreachable."""
        if isinstance(self.cache_store, RedisCacheStore):
            await self.cache_store.ping()

    async def __aenter__(self) -> "MopServices":
        try:
            await self.connect_cache()
            await self.reddit_client.initialize()
        except Exception:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.reddit_client.close()
        if isinstance(self.cache_store, RedisCacheStore):
            await self.cache_store.close()


async def run_mop(config: Config, target_id: str, is_post: bool, **options: Optional[bool]) -> MopSummary:
    """
    Run a single mop as the authenticated account.

    Args:
        config: Validated configuration
        target_id: Post id for a post mop, comment id for a thread mop
        is_post: Whether ``target_id`` is a post
        **options: remove/lock/skip_distinguished/skip_already_actioned overrides

    Returns:
        The mop summary
    """
    action_config = config.mop_defaults.to_action_config(**options)

    async with MopServices(config) as services:
        actor = await services.auth_source.get_current_user()
        if is_post:
            return await services.orchestrator.mop_post(actor, target_id, action_config)
        return await services.orchestrator.mop_thread(actor, target_id, action_config)


async def run_permission_check(config: Config) -> PermissionDecision:
    async with MopServices(config) as services:
        actor = await services.auth_source.get_current_user()
        return await services.permission_cache.authorize(actor.id)


async def run_forget(config: Config, user_id: str) -> None:
    services = MopServices(config)
    try:
        await services.connect_cache()
        await services.permission_cache.invalidate(user_id)
    finally:
        await services.close()


async def run_roster_watcher(config: Config) -> None:
    global _watcher

    async with MopServices(config) as services:
        handler = RosterEventHandler(services.permission_cache)
        fetch = partial(services.auth_source.fetch_roster_events, config.subreddit)
        _watcher = RosterWatcher(fetch, handler, interval_sec=config.roster_poll_interval_sec)
        try:
            await _watcher.run_daemon()
        finally:
            _watcher = None


def handle_shutdown_signal(signum, frame):
    """Handle shutdown signals (SIGTERM, SIGINT)."""
    signal_name = signal.Signals(signum).name
    logger.info(f"Received {signal_name} signal, initiating graceful shutdown")
    if _watcher:
        _watcher.stop()


def _report(summary: MopSummary) -> None:
    typer.echo(summary.message)
    if summary.outcome is MopOutcome.SUCCEEDED and summary.count:
        typer.echo(
            f"Gathered in {summary.gather_seconds:.2f}s, actioned in {summary.action_seconds:.2f}s"
        )
    if summary.outcome not in (MopOutcome.SUCCEEDED, MopOutcome.NOTHING_TO_DO):
        raise typer.Exit(code=1)


def _mop_command(
    target_id: str,
    is_post: bool,
    config: str,
    loglevel: str,
    verbose: bool,
    **options: Optional[bool],
) -> None:
    setup_logging("DEBUG" if verbose else loglevel)
    cfg = load_config(config)

    try:
        summary = asyncio.run(run_mop(cfg, target_id, is_post, **options))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        raise typer.Exit(code=1)
    except Exception as e:
        logger.critical(f"Unhandled exception: {str(e)}", exc_info=True)
        sys.exit(1)

    _report(summary)


@app.command()
def thread(
    comment_id: Annotated[str, typer.Argument(help="Id of the comment whose thread is mopped")],
    remove: RemoveOption = None,
    lock: LockOption = None,
    skip_distinguished: SkipDistinguishedOption = None,
    skip_actioned: SkipActionedOption = None,
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    verbose: VerboseOption = False,
) -> None:
    """Remove and/or lock a comment and all of its replies."""
    _mop_command(
        comment_id, False, config, loglevel, verbose,
        remove=remove, lock=lock,
        skip_distinguished=skip_distinguished, skip_already_actioned=skip_actioned,
    )


@app.command()
def post(
    post_id: Annotated[str, typer.Argument(help="Id of the post whose comments are mopped")],
    remove: RemoveOption = None,
    lock: LockOption = None,
    skip_distinguished: SkipDistinguishedOption = None,
    skip_actioned: SkipActionedOption = None,
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    verbose: VerboseOption = False,
) -> None:
    """Remove and/or lock every comment of a post."""
    _mop_command(
        post_id, True, config, loglevel, verbose,
        remove=remove, lock=lock,
        skip_distinguished=skip_distinguished, skip_already_actioned=skip_actioned,
    )


@app.command()
def permissions(
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    verbose: VerboseOption = False,
) -> None:
    """Check whether the authenticated account may mop comments."""
    setup_logging("DEBUG" if verbose else loglevel)
    cfg = load_config(config)

    try:
        decision = asyncio.run(run_permission_check(cfg))
    except Exception as e:
        logger.critical(f"Unhandled exception: {str(e)}", exc_info=True)
        sys.exit(1)

    typer.echo(f"Permission: {decision.value}")
    if decision is not PermissionDecision.ALLOWED:
        raise typer.Exit(code=1)


@app.command()
def forget(
    user_id: Annotated[str, typer.Argument(help="Reddit user id whose cached permissions are dropped")],
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
) -> None:
    """Drop the cached permission decision for a user."""
    setup_logging(loglevel)
    cfg = load_config(config)

    if not cfg.redis.enabled:
        # In-memory decisions live only as long as the process that made them
        logger.error("Redis is disabled, there is no shared permission cache to clear")
        typer.echo("Redis is disabled, nothing was cleared")
        raise typer.Exit(code=1)

    try:
        asyncio.run(run_forget(cfg, user_id))
    except Exception as e:
        logger.critical(f"Failed to clear permissions cache: {str(e)}", exc_info=True)
        sys.exit(1)

    typer.echo(f"Cleared cached permissions for {user_id}")


@app.command("watch-roster")
def watch_roster(
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    verbose: VerboseOption = False,
) -> None:
    """Watch the moderation log and clear cached permissions on roster changes."""
    setup_logging("DEBUG" if verbose else loglevel)
    cfg = load_config(config)

    signal.signal(signal.SIGTERM, handle_shutdown_signal)
    signal.signal(signal.SIGINT, handle_shutdown_signal)

    try:
        asyncio.run(run_roster_watcher(cfg))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.critical(f"Unhandled exception: {str(e)}", exc_info=True)
        sys.exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
