"""Run the API server: ``python -m buttonsynth``."""

import uvicorn

from buttonsynth.app.core.config import settings


def main() -> None:
    uvicorn.run(
        "buttonsynth.app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
