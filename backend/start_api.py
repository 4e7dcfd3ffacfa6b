#!/usr/bin/env python3
"""
Stock Ledger API startup script.

Runs the FastAPI app with uvicorn in reload mode for local development.
"""

import sys
from pathlib import Path

import uvicorn


def main():
    """Start the Stock Ledger API server."""
    print("Starting Stock Ledger API server...")
    print("   Swagger UI:  http://localhost:8000/docs")
    print("   ReDoc:       http://localhost:8000/redoc")
    print("")

    if not Path(".env").exists():
        print("WARNING: No .env file found!")
        print("   Run generate_keys.py or create a .env with:")
        print("   DATABASE_URL=postgresql://...")
        print("   JWT_SECRET=your-secret-key-here")
        print("   TOKEN_ENCRYPTION_KEY=<fernet key>")
        print("")

    try:
        uvicorn.run(
            "app.main:app",
            host="0.0.0.0",
            port=8000,
            reload=True,
            reload_dirs=["app"],
            log_level="info",
        )
    except KeyboardInterrupt:
        print("\nShutting down Stock Ledger API server...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
