from __future__ import annotations

import uvicorn

from .config import settings
from .logging_config import build_logging_config


def main() -> None:
    uvicorn.run(
        "fleetpro.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_config=build_logging_config(settings.log_level),
    )


if __name__ == "__main__":
    main()
