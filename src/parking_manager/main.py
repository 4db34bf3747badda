"""Entrypoint for running the parking management API."""

from parking_manager.cli import run

if __name__ == "__main__":
    run(["serve"])
