#!/usr/bin/env python3
"""Development scripts for the Cinema POS seat reservation service."""

import subprocess
import sys


def start():
    """Start the development server."""
    subprocess.run([
        "uvicorn",
        "cinema_pos.main:app",
        "--host", "0.0.0.0",
        "--port", "3000",
        "--reload"
    ])


def worker():
    """Start a Celery worker."""
    subprocess.run(["celery", "-A", "cinema_pos.tasks.celery_app", "worker", "--loglevel=info"])


def beat():
    """Start Celery beat, which schedules the expired hold sweep."""
    subprocess.run(["celery", "-A", "cinema_pos.tasks.celery_app", "beat", "--loglevel=info"])


def test():
    """Run the test suite."""
    sys.exit(subprocess.run(["pytest", "tests/"]).returncode)


def lint():
    """Run linting and type checking."""
    subprocess.run(["black", "--check", "cinema_pos/", "tests/"])
    subprocess.run(["mypy", "cinema_pos/"])


def format_code():
    """Format code with black."""
    subprocess.run(["black", "cinema_pos/", "tests/"])


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python scripts.py <command>")
        print("Commands: start, worker, beat, test, lint, format-code")
        sys.exit(1)

    command = sys.argv[1].replace("-", "_")
    if hasattr(sys.modules[__name__], command):
        getattr(sys.modules[__name__], command)()
    else:
        print(f"Unknown command: {sys.argv[1]}")
        sys.exit(1)
