"""
Entrypoint for the SampleApp API process.

Loads `.env`, resolves configuration, configures logging and hands over to
the Bootstrapper, which serves until the process is signalled. Any
configuration or bring-up failure exits with status 1.
"""

from __future__ import annotations

import asyncio

from dotenv import load_dotenv

from sampleapp.bootstrap import Bootstrapper
from sampleapp.config import ConfigError, load_config
from sampleapp.observability.logging import configure_logging, get_logger

logger = get_logger(__name__)


def main() -> None:
    """Console-script entrypoint (`sampleapp`)."""

    load_dotenv()
    try:
        config = load_config()
    except ConfigError as exc:
        configure_logging()
        logger.error("config_invalid", error=str(exc))
        raise SystemExit(1) from exc

    configure_logging(
        level=config.logging.level,
        format=config.logging.format,
        log_file=config.logging.file,
    )
    asyncio.run(Bootstrapper(config).start())


if __name__ == "__main__":
    main()
