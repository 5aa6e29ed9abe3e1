#!/usr/bin/env python3
"""
Wallet Entry Point

Starts the FastAPI server with the wallet core (port from WALLET_API_PORT, default 8090).
"""

import sys

from wallet_core.api import run_server
from wallet_core.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting wallet API...")
    print(f"Storage: {config.storage_backend} ({config.database_path})")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug=False)
    except KeyboardInterrupt:
        print("\nShutting down wallet API...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
