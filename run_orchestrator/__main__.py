"""
Start the run orchestrator API.

Usage:
    python -m run_orchestrator
    python -m run_orchestrator --reload
    python -m run_orchestrator --port 8080
"""

import argparse

import uvicorn

from run_orchestrator.config import settings


def main() -> None:
    """Start the FastAPI application."""
    parser = argparse.ArgumentParser(description="Run the run orchestrator API")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    uvicorn.run(
        "run_orchestrator.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
