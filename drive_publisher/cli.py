"""Process entry point: positional arguments in, one publish-and-notify run out."""

from __future__ import annotations

import logging
import sys
from typing import Optional, Sequence

from .auth import DriveAuthorizer
from .config import Settings
from .messenger import MatrixMessenger
from .models import PublishRequest
from .pipeline import Publisher

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_publisher(settings: Settings) -> Publisher:
    return Publisher(
        settings,
        authorizer=DriveAuthorizer(settings),
        messenger=MatrixMessenger(settings),
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Usage: <file> <description> <client-secret> <folder-id> <login> <password> <recipient> <message>"""
    args = sys.argv[1:] if argv is None else argv

    settings = Settings()
    configure_logging(settings.log_level)
    request = PublishRequest.from_args(args)

    outcome = build_publisher(settings).run(request)
    logger.debug("Run complete: %s", outcome.summary())

    if settings.strict and not outcome.succeeded:
        failed = ", ".join(stage.value for stage in outcome.failed_stages)
        logger.error("Run finished with failed stages: %s", failed)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
