"""Entry point for running the subscription timer service as a module."""

import argparse
import os
import sys

import uvicorn


def main() -> None:
    """Parse arguments and run the service under uvicorn."""
    parser = argparse.ArgumentParser(
        description="Subscription Timer - tenant subscription countdown and lifecycle service"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8080")),
        help="Port to bind to (default: 8080)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=os.getenv("LOG_FORMAT", "json"),
        help="Log output format (default: json)",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH"),
        help="Path to settings.yaml (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--clock",
        choices=["system", "virtual"],
        default=os.getenv("CLOCK_MODE"),
        help="Clock mode; virtual enables /control/time/advance (default: from settings.yaml)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() == "true",
        help="Enable auto-reload for development (default: false)",
    )

    args = parser.parse_args()

    # Read by create_app in the uvicorn worker
    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["LOG_FORMAT"] = args.log_format
    if args.config:
        os.environ["CONFIG_PATH"] = args.config
    if args.clock:
        os.environ["CLOCK_MODE"] = args.clock

    if args.log_format == "console":
        print("=" * 60)
        print("Subscription Timer v0.1.0")
        print("=" * 60)
        print(f"Host: {args.host}")
        print(f"Port: {args.port}")
        print(f"Log Level: {args.log_level}")
        print(f"Config: {args.config or 'config/settings.yaml'}")
        print(f"Clock: {args.clock or 'from settings'}")
        print("=" * 60)

    try:
        uvicorn.run(
            "subscription_timer.main:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            reload=args.reload,
            access_log=False,  # RequestLoggingMiddleware logs requests
        )
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")
        sys.exit(0)
    except Exception as e:
        print(f"Failed to start service: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
