#!/usr/bin/env python3
"""
Loan Ledger Entry Point

Starts the FastAPI server with the loan ledger. Host, port, storage and
logging come from LOAN_LEDGER_* environment variables (see loan_ledger.config).
"""

import sys

import uvicorn

from loan_ledger.api import create_app
from loan_ledger.config import get_config
from loan_ledger.logging_config import get_logger


def main():
    config = get_config()
    app = create_app(config=config)
    logger = get_logger("loan_ledger")
    logger.info(f"Starting Loan Ledger API on {config.api_host}:{config.api_port}")

    try:
        uvicorn.run(app, host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        logger.info("Shutting down Loan Ledger API")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
