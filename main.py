"""bounce edge relay: redirect requests for our own host names, 404 the rest."""

import sys
from typing import Optional

from bounce.bootstrap.config import ConfigError, parse_cli_args, resolve_config
from bounce.bootstrap.logging_setup import component_logger, configure_logging
from bounce.lifecycle.shutdown import ShutdownCoordinator
from bounce.lifecycle.state import ServerLifecycle
from bounce.transport.supervisor import ListenerSupervisor


def main(argv: Optional[list[str]] = None) -> int:
    """Resolve configuration, start both listeners, and block until shutdown."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    # plain text on stderr until the configured level and destination are known
    bootstrap_logger = configure_logging("info", "stderr", use_json=False)

    try:
        config = resolve_config(args.config_file or None)
    except ConfigError as error:
        bootstrap_logger.critical(
            "Could not load configuration: %s",
            error,
            extra={
                "event": "config_error",
                "kind": error.kind.value,
                "field": error.field,
                "config_file": args.config_file,
            },
        )
        return 1

    logger = configure_logging(config.log_level, config.log_destination)
    logger.info(
        "Starting relay",
        extra={
            "event": "relay_starting",
            "config_file": args.config_file or None,
            "log_level": config.log_level,
            "log_destination": config.log_destination,
            "deadline_seconds": config.shutdown_deadline.total_seconds(),
            "offloaded": config.https_is_offloaded,
            "destination_host": config.destination_host,
        },
    )

    lifecycle = ServerLifecycle()
    coordinator = ShutdownCoordinator(
        lifecycle, config.shutdown_deadline, component_logger(logger, "lifecycle")
    )
    coordinator.install_signal_handlers()

    supervisors = [
        ListenerSupervisor(
            config.http_listener(),
            config.server_names,
            lifecycle,
            component_logger(logger, "listener.http"),
        ),
        ListenerSupervisor(
            config.https_listener(),
            config.server_names,
            lifecycle,
            component_logger(logger, "listener.https"),
        ),
    ]
    started = [supervisor.start() for supervisor in supervisors]
    if not any(started):
        logger.warning(
            "No listener is serving; waiting for a shutdown signal",
            extra={"event": "no_listeners"},
        )

    coordinator.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
