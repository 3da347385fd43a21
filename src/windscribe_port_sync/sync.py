"""Service wiring and entry point."""

import logging
import signal
import sys
from datetime import timedelta

from .cache import PortCache
from .config import Config, load_config, setup_logging
from .errors import ClientError, InvariantViolation
from .forwarding import ForwardingLifecycleManager
from .health import HealthServer, HealthState
from .reconciler import PortReconciler
from .scheduler import CalendarTrigger, RunScheduler
from .session import CredentialCache
from .torrent_client import TorrentClient, create_torrent_client
from .windscribe import WindscribeTransport


def build_scheduler(
    config: Config,
    logger: logging.Logger,
    client: TorrentClient,
    health_state: HealthState | None = None,
) -> RunScheduler:
    """Assemble the reconciliation engine from configuration."""
    cache = PortCache(config.cache_file, namespace="windscribe", logger=logger)
    transport = WindscribeTransport(
        config.windscribe_username,
        config.windscribe_password,
        logger,
        timeout=config.request_timeout,
    )
    sessions = CredentialCache(transport, cache, logger)
    forwarding = ForwardingLifecycleManager(transport, sessions, cache, logger)
    reconciler = PortReconciler(client, logger)

    calendar = None
    if config.cron_schedule:
        calendar = CalendarTrigger(config.cron_schedule, logger)

    return RunScheduler(
        forwarding,
        reconciler,
        logger,
        forwarding_retry_delay=timedelta(seconds=config.windscribe_retry_delay),
        client_retry_delay=timedelta(seconds=config.client_retry_delay),
        extra_delay=timedelta(seconds=config.windscribe_extra_delay),
        calendar=calendar,
        health_state=health_state,
    )


def log_connection(client: TorrentClient, logger: logging.Logger) -> None:
    """Report which torrent client host is managed; failures are retried by the loop."""
    try:
        info = client.check_ready()
    except ClientError as e:
        logger.warning(f"{client.name} not reachable yet: {e}")
        return

    logger.info(f"Connected to {client.name} host {info.host_id} (version {info.version})")


def main() -> None:
    """Application entry point."""
    # Load configuration
    config = load_config()

    # Set up logging
    logger = setup_logging(config.log_level)

    logger.info("Starting Windscribe ephemeral port sync")
    config.log_config(logger)

    # Initialize health state and server
    health_state = HealthState()
    health_server = None

    if config.health_enabled:
        health_server = HealthServer(config.health_port, health_state, logger)
        health_server.start()

    client = create_torrent_client(config, logger)
    log_connection(client, logger)

    scheduler = build_scheduler(config, logger, client, health_state)

    def handle_signal(signum, frame) -> None:
        logger.info(f"Received signal {signum}, shutting down")
        scheduler.stop()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    exit_code = 0
    try:
        scheduler.start()
        scheduler.wait()
    except InvariantViolation as e:
        logger.critical(f"Fatal scheduling error: {e}", exc_info=True)
        exit_code = 1
    except Exception as e:
        logger.critical(f"Unexpected error in update loop: {e}", exc_info=True)
        exit_code = 1
    finally:
        scheduler.stop()
        if health_server:
            health_server.stop()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
