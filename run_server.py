"""
Transport Tracker - Server Runner
Initializes the database and starts the API server.
"""

import os
import sys
from datetime import datetime

os.environ.setdefault('BASE_DIR', os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.environ['BASE_DIR'])

from tracker.clock import LOCAL_TZ


def get_timestamp():
    """Get current timestamp in the local timezone for logging."""
    return datetime.now(LOCAL_TZ).strftime('%Y-%m-%d %H:%M:%S')


def run_server():
    """Run the API server."""
    import uvicorn
    from database.db import init_database

    init_database()

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    print(f"[{get_timestamp()}] [Server] Starting Transport Tracker API on {host}:{port}")
    print(f"[{get_timestamp()}] [Server] API docs at http://localhost:{port}/docs")

    uvicorn.run(
        "dashboard.api:app",
        host=host,
        port=port,
        reload=os.getenv("RELOAD", "").lower() in ("1", "true", "yes")
    )


if __name__ == "__main__":
    print("=" * 50)
    print("Transport Tracker")
    print("=" * 50)
    run_server()
