"""
Main entrypoint: serve the Chainpulse API with uvicorn.

Env: API_HOST, API_PORT, LOG_LEVEL, plus the provider keys read by chainpulse.config.
The snapshot scheduler runs separately: python -m chainpulse.scheduler.engine

Equivalent: uvicorn chainpulse.api_server.app:app --host 0.0.0.0 --port 8000
"""

import os

# Configure structured JSON logging before other imports that may log
from chainpulse.logging import get_logger

logger = get_logger("main")


def main() -> None:
    api_host = os.getenv("API_HOST", "0.0.0.0").strip()
    api_port = int(os.getenv("API_PORT", "8000").strip() or "8000")

    from chainpulse.api_server.app import app
    import uvicorn

    logger.info("main_server_starting", host=api_host, port=api_port)
    uvicorn.run(app, host=api_host, port=api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
