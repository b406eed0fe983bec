"""
Global pytest configuration.

Loads a local .env file before collection so settings such as the
OpenTelemetry exporter endpoints are picked up the same way whether the
suite runs from the command line or an IDE. The unit tests themselves
clear ADO_* credentials and never talk to Azure DevOps.
"""

from pathlib import Path

from dotenv import load_dotenv


def pytest_configure():
    """Load environment variables from the project's .env file, if present."""
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    if env_file.exists():
        load_dotenv(env_file)
        print(f"✓ Loaded environment variables from {env_file}")
