"""Run the gateway with uvicorn.

Usage:
    PORT=3001 python -m stagehand_gateway
    python -m stagehand_gateway --host 127.0.0.1 --port 8080
"""
from __future__ import annotations

import argparse

import uvicorn

from .api.app import create_app
from .api.config import GatewayConfig


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='stagehand-gateway')
    parser.add_argument('--host', default=None, help='Bind address (default: HOST env or 0.0.0.0)')
    parser.add_argument('--port', type=int, default=None, help='Listen port (default: PORT env or 3001)')
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = GatewayConfig()
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port

    app = create_app(config)
    uvicorn.run(app, host=config.host, port=config.port, log_config=None)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
