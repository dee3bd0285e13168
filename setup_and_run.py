#!/usr/bin/env python3
"""
Caption Gallery Setup and Run Script

Prepares a local development environment for the Caption Gallery API and
starts the server with auto-reload.
"""

import os
import sys
import subprocess
from pathlib import Path

REQUIRED_OAUTH_VARIABLES = ("OAUTH_CLIENT_ID", "OAUTH_CLIENT_SECRET")


def setup_environment():
    """Set up environment variables and configuration"""
    print("Setting up Caption Gallery environment...")

    os.environ.setdefault("ENVIRONMENT", "development")

    # SQLite keeps local development free of a PostgreSQL server
    db_url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./caption_gallery.db")
    os.environ["DATABASE_URL"] = db_url
    print(f"Database URL: {db_url}")

    port = os.getenv("PORT", "8002")
    os.environ.setdefault("PUBLIC_BASE_URL", f"http://localhost:{port}")
    print(f"Public base URL: {os.environ['PUBLIC_BASE_URL']}")

    missing = [name for name in REQUIRED_OAUTH_VARIABLES if not os.getenv(name)]
    if missing:
        print(f"Warning: {', '.join(missing)} not set; sign-in will not work")

    if not os.getenv("JWT_SECRET_KEY"):
        print("Warning: JWT_SECRET_KEY not set; sessions end on every restart")

    os.environ.setdefault("PYTHONPATH", str(Path.cwd()))

    return True


def check_dependencies():
    """Check if required dependencies are installed"""
    print("Checking dependencies...")

    try:
        import fastapi  # noqa: F401
        import uvicorn  # noqa: F401
        import sqlmodel  # noqa: F401

        print("Core dependencies found")
        return True
    except ImportError as e:
        print(f"Missing dependency: {e}")
        print("Installing the project in editable mode...")

        try:
            subprocess.check_call([sys.executable, "-m", "pip", "install", "-e", "."])
            print("Dependencies installed successfully")
            return True
        except subprocess.CalledProcessError:
            print("Failed to install dependencies")
            return False


def start_server():
    """Start the Caption Gallery server"""
    port = int(os.getenv("PORT", "8002"))
    print("Starting Caption Gallery API server...")
    print(f"Gallery: http://localhost:{port}/captions")
    print(f"Sign in: http://localhost:{port}/auth/sign-in")
    print("Press Ctrl+C to stop the server")
    print("-" * 50)

    try:
        import uvicorn

        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=port,
            reload=True,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


def main():
    """Main setup and run function"""
    print("Caption Gallery API - Setup and Run")
    print("=" * 40)

    script_dir = Path(__file__).parent
    os.chdir(script_dir)
    print(f"Working directory: {script_dir}")

    if not setup_environment():
        print("Failed to setup environment")
        sys.exit(1)

    if not check_dependencies():
        print("Failed to check/install dependencies")
        sys.exit(1)

    start_server()


if __name__ == "__main__":
    main()
