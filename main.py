"""Trip import API 서버 실행

Usage:
    python main.py --server.port 8080
    # or
    uvicorn trip_import.api:app --reload --host 0.0.0.0 --port 8080

Run a single worker: rate-limit counters and the import queue live in process memory.
"""
import argparse
import os

import uvicorn

from config import config


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the trip import API server")
    parser.add_argument("--server.port", dest="server_port", type=int, default=int(os.getenv("PORT", 8080)), help="Port to run the server on")
    parser.add_argument("--server.address", dest="server_address", type=str, default=os.getenv("HOST", "0.0.0.0"), help="Host to run the server on")
    parser.add_argument("--log-level", dest="log_level", type=str, default=config.LOG_LEVEL, help="loguru / uvicorn log level")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args, _ = parser.parse_known_args(argv)
    return args


def main(argv=None) -> None:
    args = parse_args(argv)
    # trip_import.api configures loguru from LOG_LEVEL at import time; env covers the reload subprocess
    config.LOG_LEVEL = args.log_level.upper()
    os.environ["LOG_LEVEL"] = config.LOG_LEVEL
    uvicorn.run(
        "trip_import.api:app",
        host=args.server_address,
        port=args.server_port,
        reload=args.reload,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
