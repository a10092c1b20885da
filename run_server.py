#!/usr/bin/env python
"""
Merchandising Insights API Server

Usage:
    Development:  python run_server.py --dev [--port 8001]
    Production:   python run_server.py
    Gunicorn:     python run_server.py --gunicorn

Report state lives in the serving process, so production runs a single
worker unless WORKERS is set explicitly.
"""

import argparse
import os
import subprocess


def run_dev_server(port: int):
    """Uvicorn with auto-reload on the package sources."""
    import uvicorn

    uvicorn.run(
        "merch_insights.main:app",
        host="127.0.0.1",
        port=port,
        reload=True,
        reload_dirs=["merch_insights"],
        log_level="debug",
    )


def run_prod_server(port: int):
    import uvicorn

    uvicorn.run(
        "merch_insights.main:app",
        host="0.0.0.0",
        port=port,
        workers=int(os.getenv("WORKERS", 1)),
        log_level=os.getenv("LOG_LEVEL", "info"),
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn(port: int):
    env = dict(os.environ, BIND=os.getenv("BIND", f"0.0.0.0:{port}"))
    subprocess.run(
        ["gunicorn", "merch_insights.main:app", "-c", "gunicorn.conf.py"],
        env=env,
        check=True,
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Merchandising Insights API Server")
    parser.add_argument("--dev", action="store_true", help="Run with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run under Gunicorn")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", 8000)),
        help="Port to listen on (default: $PORT or 8000)",
    )
    args = parser.parse_args()

    if args.dev:
        print(f"Starting development server on port {args.port}...")
        run_dev_server(args.port)
    elif args.gunicorn:
        print("Starting Gunicorn...")
        run_gunicorn(args.port)
    else:
        print(f"Starting Uvicorn on port {args.port}...")
        run_prod_server(args.port)
