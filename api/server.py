# api/server.py
import argparse
import logging

import uvicorn

from config.settings import get_settings
from services.db_ledger import LedgerDB
from utils.logger import setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Bitcoin exchange server")
    parser.add_argument("--init", action="store_true", help="Initialize the database.")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind the HTTP server to.")
    parser.add_argument("--port", type=int, default=8000, help="Port on which to start the HTTP server.")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)

    if args.init:
        ledger = LedgerDB.from_settings(settings)
        try:
            ledger.init_schema()
        finally:
            ledger.close()
        return

    from api.main import create_app

    logger.info("Starting HTTP server on %s:%s", args.host, args.port)
    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
