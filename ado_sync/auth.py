"""Personal access token lookup with a small credential chain."""

import logging
import os
from abc import ABC, abstractmethod
from base64 import b64encode
from dataclasses import dataclass

from .errors import AdoAuthenticationError

logger = logging.getLogger(__name__)

PAT_ENV_VARS = ("ADO_PAT", "AZURE_DEVOPS_EXT_PAT")


@dataclass
class AuthCredential:
    """A token together with the provider that produced it."""

    token: str
    method: str  # 'pat' or 'env_pat'

    def to_header(self) -> dict[str, str]:
        """Convert credential to an HTTP Basic Authorization header."""
        encoded_token = b64encode(f":{self.token}".encode("ascii")).decode("ascii")
        return {"Authorization": f"Basic {encoded_token}"}


class AuthProvider(ABC):
    """Abstract base class for authentication providers."""

    @abstractmethod
    def get_credential(self) -> AuthCredential | None:
        """Get authentication credential."""
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Get provider name."""
        pass


class PatAuthProvider(AuthProvider):
    """Explicitly supplied Personal Access Token."""

    def __init__(self, pat: str):
        self.pat = pat

    def get_credential(self) -> AuthCredential | None:
        if not self.pat:
            return None
        return AuthCredential(token=self.pat, method="pat")

    def get_name(self) -> str:
        return "PAT"


class EnvironmentPatAuthProvider(AuthProvider):
    """PAT read from an environment variable."""

    def __init__(self, env_var: str = "ADO_PAT"):
        self.env_var = env_var

    def get_credential(self) -> AuthCredential | None:
        pat = os.environ.get(self.env_var)
        if not pat:
            return None
        return AuthCredential(token=pat, method="env_pat")

    def get_name(self) -> str:
        return f"Environment ({self.env_var})"


class AuthManager:
    """
    Tries authentication providers in order until one yields a credential.

    The first credential found is cached for the lifetime of the manager.
    """

    def __init__(self, providers: list[AuthProvider] | None = None):
        self.providers: list[AuthProvider] = list(providers or [])
        self.cached_credential: AuthCredential | None = None

    @classmethod
    def default(cls, explicit_pat: str | None = None) -> "AuthManager":
        """Explicit PAT first, then ``ADO_PAT``, then ``AZURE_DEVOPS_EXT_PAT``."""
        manager = cls()
        if explicit_pat:
            manager.add_provider(PatAuthProvider(explicit_pat))
        for env_var in PAT_ENV_VARS:
            manager.add_provider(EnvironmentPatAuthProvider(env_var))
        return manager

    def add_provider(self, provider: AuthProvider):
        """Add an authentication provider to the chain."""
        self.providers.append(provider)
        logger.debug(f"Added auth provider: {provider.get_name()}")

    def get_credential(self) -> AuthCredential:
        """
        Get authentication credential using credential chaining.

        Raises:
            AdoAuthenticationError: If no provider has a credential
        """
        if self.cached_credential:
            return self.cached_credential

        for provider in self.providers:
            credential = provider.get_credential()
            if credential:
                logger.info(f"Authenticated using {provider.get_name()}")
                self.cached_credential = credential
                return credential
            logger.debug(f"No credential available from {provider.get_name()}")

        provider_names = [p.get_name() for p in self.providers]
        raise AdoAuthenticationError(
            "No Azure DevOps credential found. Set ADO_PAT or AZURE_DEVOPS_EXT_PAT.",
            context={"providers_tried": provider_names},
        )

    def invalidate_cache(self):
        """Invalidate the cached credential."""
        self.cached_credential = None
        logger.debug("Authentication cache invalidated")

    def get_auth_headers(self) -> dict[str, str]:
        """Get authentication headers for HTTP requests."""
        headers = self.get_credential().to_header()
        headers["Content-Type"] = "application/json"
        return headers
