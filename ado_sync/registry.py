"""Per-project client cache owned by the caller."""

import logging

from .client import AdoClient
from .config import AdoSyncConfig

logger = logging.getLogger(__name__)


class ClientRegistry:
    """
    Hands out one ``AdoClient`` per ``organization/project``.

    Reusing the client means every call made in one process for a project
    shares a single rate-limit window and HTTP session.
    """

    def __init__(self, config: AdoSyncConfig | None = None):
        self.config = config
        self._clients: dict[str, AdoClient] = {}

    @staticmethod
    def _key(organization: str, project: str) -> str:
        return f"{organization}/{project}"

    def get_client(
        self,
        organization: str | None = None,
        project: str | None = None,
        pat: str | None = None,
    ) -> AdoClient:
        """Return the cached client for the target, creating it on first use."""
        config = self.config or AdoSyncConfig(organization=organization, project=project, pat=pat)
        organization = organization or config.organization
        project = project or config.project
        key = self._key(organization or "", project or "")

        client = self._clients.get(key)
        if client is None:
            logger.debug(f"Creating client for {key}")
            client = AdoClient(organization=organization, project=project, pat=pat, config=config)
            self._clients[key] = client
        return client

    def __contains__(self, key: str) -> bool:
        return key in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    def clear(self):
        """Close and forget every cached client."""
        for key, client in self._clients.items():
            logger.debug(f"Closing client for {key}")
            client.close()
        self._clients.clear()
