"""
Run the inspection approval API with uvicorn.

A single process only: the job scheduler runs inside the app, so extra
workers would each start their own sweeps.

Usage:
    python run.py
    python run.py --reload --port 8080
"""
import argparse
import uvicorn

from approval_engine.config.settings import settings


def main():
    parser = argparse.ArgumentParser(description="Run the Inspection Approval Engine API server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    args = parser.parse_args()

    print(f"Starting Inspection Approval Engine on {args.host}:{args.port} ({settings.environment})")
    if not settings.scheduler_enabled:
        print("  Scheduler disabled: grouping, retention and notification jobs will not run")

    uvicorn.run(
        "approval_engine.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
