"""Two-way synchronization between YAML work item documents and Azure DevOps Boards."""

from dotenv import load_dotenv

__version__ = "0.1.0"

# Values from a local .env file fill in anything not already exported
load_dotenv()
