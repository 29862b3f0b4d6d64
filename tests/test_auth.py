""" Unit tests for the confidential client.
"""

import pytest

from conftest import FakeConfidentialApp, invalid_scope_response
from daemon_console.auth import ConfidentialClient, is_invalid_scope
from daemon_console.credentials import CredentialKind, SelectedCredential
from daemon_console.errors import TokenAcquisitionError
from daemon_console.outcome import FailureKind
from daemon_console.token_cache import InMemoryTokenCache

AUTHORITY = "https://login.microsoftonline.com/contoso.onmicrosoft.com"
SCOPE = "https://graph.microsoft.com/.default"


def _client(app, cache=None):
    return ConfidentialClient(
        client_id="client-id",
        authority=AUTHORITY,
        credential=SelectedCredential(CredentialKind.CLIENT_SECRET, "secret"),
        token_cache=cache,
        app_factory=lambda client_id, credential, authority: app,
    )


class TestConfidentialClient(object):

    def test_app_built_lazily(self):
        built = []

        def factory(client_id, credential, authority):
            built.append((client_id, credential, authority))
            return FakeConfidentialApp()

        ConfidentialClient(
            "client-id",
            AUTHORITY,
            SelectedCredential(CredentialKind.CLIENT_SECRET, "secret"),
            app_factory=factory,
        )
        assert built == []

    @pytest.mark.asyncio
    async def test_token_is_cached(self):
        app = FakeConfidentialApp()
        client = _client(app)

        first = await client.acquire_token([SCOPE])
        second = await client.acquire_token([SCOPE])

        assert first.ok and second.ok
        assert first.unwrap().access_token == f"token-for-{SCOPE}"
        assert first.unwrap().from_cache is False
        assert second.unwrap().from_cache is True
        assert app.calls == [[SCOPE]]

    @pytest.mark.asyncio
    async def test_expired_token_refetched(self):
        now = [0.0]
        cache = InMemoryTokenCache(skew_seconds=0, clock=lambda: now[0])
        app = FakeConfidentialApp({SCOPE: {"access_token": "short", "expires_in": 10}})
        client = _client(app, cache)

        await client.acquire_token([SCOPE])
        now[0] = 11.0
        await client.acquire_token([SCOPE])
        assert len(app.calls) == 2

    @pytest.mark.asyncio
    async def test_invalid_scope_is_a_failed_outcome(self):
        bad_scope = "api://todo-api/access_as_user"
        app = FakeConfidentialApp({bad_scope: invalid_scope_response(bad_scope)})
        outcome = await _client(app).acquire_token([bad_scope])
        assert not outcome.ok
        assert outcome.failure is FailureKind.UNSUPPORTED_SCOPE
        assert "AADSTS70011" in outcome.detail

    @pytest.mark.asyncio
    async def test_other_errors_raise(self):
        app = FakeConfidentialApp({
            SCOPE: {
                "error": "invalid_client",
                "error_description": "AADSTS7000215: Invalid client secret provided.",
                "error_codes": [7000215],
            }
        })
        with pytest.raises(TokenAcquisitionError) as excinfo:
            await _client(app).acquire_token([SCOPE])
        assert excinfo.value.error == "invalid_client"
        assert excinfo.value.codes == [7000215]


@pytest.mark.parametrize("result, expected", [
    ({"error_codes": [70011]}, True),
    ({"error_description": "AADSTS70011: bad scope"}, True),
    ({"error_codes": [7000215], "error_description": "AADSTS7000215"}, False),
    (None, False),
])
def test_is_invalid_scope(result, expected):
    assert is_invalid_scope(result) is expected
