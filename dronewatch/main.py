"""Entry point: CLI argument parsing + pipeline + uvicorn startup."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from dronewatch.capture.api import DetectionApiClient
from dronewatch.capture.search import PlaceSearch
from dronewatch.config import load_config, save_config_values
from dronewatch.models import FeedRole, LatLng
from dronewatch.pipeline import Pipeline
from dronewatch.web.app import create_app


def setup_logging(log_dir: str, verbose: bool = False) -> None:
    """Configure logging to both console and file."""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_path / "dronewatch.log"),
        ],
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Drone detection situational-awareness service"
    )
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to YAML config file (default: $CONFIG_PATH or config/default.yaml)",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Web server host (overrides config)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Web server port (overrides config)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args()


def make_defence_persister(config_path: str | None):
    """Return a pipeline defence callback that writes values to the config file."""
    def persist(role: FeedRole, point: LatLng, radius: float) -> None:
        values = {f"{role.value}.radius": radius}
        if point is not None:
            values[f"{role.value}.default_lat"] = point.lat
            values[f"{role.value}.default_lng"] = point.lng
        save_config_values(values, config_path)
    return persist


def main() -> None:
    args = parse_args()

    # Load configuration
    config = load_config(args.config)

    # Apply CLI overrides
    if args.host:
        config.web.host = args.host
    if args.port:
        config.web.port = args.port

    # Setup logging
    setup_logging(config.logging.log_dir, args.verbose)
    logger = logging.getLogger(__name__)
    logger.info("Starting dronewatch")
    logger.info("Detection API: %s", config.api.base_url)
    logger.info("Web API: http://%s:%d", config.web.host, config.web.port)

    # Create pipeline and web app
    api = DetectionApiClient(config.api.base_url, timeout=config.api.request_timeout)
    search = PlaceSearch(config.search, timeout=config.api.request_timeout)
    pipeline = Pipeline(config, api=api, search=search)
    if config.defence.persist:
        pipeline.add_defence_callback(make_defence_persister(args.config))
    app = create_app(pipeline)

    try:
        # Run uvicorn (blocks until shutdown); the app lifespan starts the feeds
        uvicorn.run(
            app,
            host=config.web.host,
            port=config.web.port,
            log_level="info",
            loop="asyncio",
        )
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
