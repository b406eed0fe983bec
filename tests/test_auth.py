from base64 import b64decode
from unittest.mock import Mock

import pytest

from ado_sync.auth import (
    AuthCredential,
    AuthManager,
    EnvironmentPatAuthProvider,
    PatAuthProvider,
)
from ado_sync.errors import AdoAuthenticationError


def decoded(headers):
    return b64decode(headers["Authorization"].removeprefix("Basic ")).decode("ascii")


class TestProviders:
    def test_explicit_pat(self):
        assert PatAuthProvider("abc").get_credential() == AuthCredential(token="abc", method="pat")
        assert PatAuthProvider("").get_credential() is None

    def test_environment_pat(self, monkeypatch):
        provider = EnvironmentPatAuthProvider("AZURE_DEVOPS_EXT_PAT")
        assert provider.get_credential() is None

        monkeypatch.setenv("AZURE_DEVOPS_EXT_PAT", "from-env")

        assert provider.get_credential().token == "from-env"
        assert provider.get_name() == "Environment (AZURE_DEVOPS_EXT_PAT)"


class TestAuthManager:
    def test_explicit_pat_wins(self, monkeypatch):
        monkeypatch.setenv("ADO_PAT", "env-pat")

        headers = AuthManager.default("explicit").get_auth_headers()

        assert decoded(headers) == ":explicit"
        assert headers["Content-Type"] == "application/json"

    def test_ado_pat_before_extension_pat(self, monkeypatch):
        monkeypatch.setenv("ADO_PAT", "ado")
        monkeypatch.setenv("AZURE_DEVOPS_EXT_PAT", "ext")

        assert AuthManager.default().get_credential().token == "ado"

    def test_extension_pat_fallback(self, monkeypatch):
        monkeypatch.setenv("AZURE_DEVOPS_EXT_PAT", "ext")

        credential = AuthManager.default().get_credential()

        assert credential.token == "ext" and credential.method == "env_pat"

    def test_no_credential_raises(self):
        with pytest.raises(AdoAuthenticationError) as exc_info:
            AuthManager.default().get_credential()

        assert exc_info.value.context["providers_tried"] == [
            "Environment (ADO_PAT)",
            "Environment (AZURE_DEVOPS_EXT_PAT)",
        ]

    def test_credential_is_cached(self):
        provider = Mock()
        provider.get_credential.return_value = AuthCredential(token="t", method="pat")
        manager = AuthManager([provider])

        manager.get_credential()
        manager.get_credential()
        assert provider.get_credential.call_count == 1

        manager.invalidate_cache()
        manager.get_credential()
        assert provider.get_credential.call_count == 2
