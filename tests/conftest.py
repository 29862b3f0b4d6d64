""" Global pytest configuration and fixtures.

Nothing here talks to the identity provider or to Graph: msal applications are
replaced by ``FakeConfidentialApp`` and HTTP goes through ``httpx.MockTransport``.
"""

import datetime
import io
import json

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from daemon_console.reporting import ConsoleReporter, InMemoryReportStore

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
TODO_SCOPE = "api://todo-api/.default"
TODO_BASE = "https://todo.example.test"
GRAPH_BASE = "https://graph.microsoft.com/v1.0"


class FakeConfidentialApp(object):
    """ Stands in for msal.ConfidentialClientApplication.

    ``responses`` maps a scope to the dict msal would return for it.
    """

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []

    def acquire_token_for_client(self, scopes):
        self.calls.append(list(scopes))
        scope = scopes[0]
        if scope in self.responses:
            return self.responses[scope]
        return {
            "access_token": f"token-for-{scope}",
            "token_type": "Bearer",
            "expires_in": 3600,
        }


def invalid_scope_response(scope):
    return {
        "error": "invalid_scope",
        "error_description": (
            f"AADSTS70011: The provided request must include a 'scope' input parameter. "
            f"The provided value for the input parameter 'scope' is not valid: {scope}"
        ),
        "error_codes": [70011],
    }


class FakeServices(object):
    """ Routes Graph and To-Do API requests for httpx.MockTransport.
    """

    def __init__(self, user_pages=None, graph_status=200, failing_owners=(), list_status=200):
        self.user_pages = user_pages if user_pages is not None else [[]]
        self.graph_status = graph_status
        self.failing_owners = set(failing_owners)
        self.list_status = list_status
        self.requests = []
        self.created = []

    @property
    def posts(self):
        return [r for r in self.requests if r.method == "POST"]

    @property
    def list_calls(self):
        return [r for r in self.requests if r.method == "GET" and r.url.path == "/api/todolist"]

    def handler(self, request):
        self.requests.append(request)
        if request.url.host == "graph.microsoft.com":
            return self._graph(request)
        if request.url.path == "/api/todolist" and request.method == "POST":
            body = json.loads(request.content)
            if body["Owner"] in self.failing_owners:
                return httpx.Response(500)
            self.created.append(body)
            return httpx.Response(201, json=body)
        if request.url.path == "/api/todolist" and request.method == "GET":
            if self.list_status != 200:
                return httpx.Response(self.list_status)
            items = [
                {"id": index + 1, "owner": item["Owner"], "task": item["Task"]}
                for index, item in enumerate(self.created)
            ]
            return httpx.Response(200, json=items)
        return httpx.Response(404)

    def _graph(self, request):
        if self.graph_status != 200:
            return httpx.Response(
                self.graph_status,
                json={"error": {"code": "Authorization_RequestDenied"}},
            )
        page = int(request.url.params.get("page", "0"))
        body = {"value": self.user_pages[page]}
        if page + 1 < len(self.user_pages):
            body["@odata.nextLink"] = f"{GRAPH_BASE}/users?page={page + 1}"
        return httpx.Response(200, json=body)

    def transport(self):
        return httpx.MockTransport(self.handler)


def make_users(count, start=0):
    return [
        {
            "id": f"user-{i}",
            "displayName": f"User {i}",
            "userPrincipalName": f"user{i}@contoso.test",
            "accountEnabled": True,
            "createdDateTime": "2021-03-04T05:06:07Z",
        }
        for i in range(start, start + count)
    ]


@pytest.fixture()
def settings():
    return {
        "Instance": "https://login.microsoftonline.com/{0}",
        "Tenant": "contoso.onmicrosoft.com",
        "ClientId": "11111111-2222-3333-4444-555555555555",
        "ClientSecret": "real-secret",
        "TodoListBaseAddress": TODO_BASE,
        "TodoListScope": TODO_SCOPE,
    }


@pytest.fixture()
def write_settings(tmp_path):
    def _write(data, name="appsettings.json"):
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path
    return _write


@pytest.fixture()
def report_store():
    return InMemoryReportStore()


@pytest.fixture()
def reporter(report_store):
    return ConsoleReporter(
        name="daemon_console.tests", stream=io.StringIO(), color=False, store=report_store
    )


@pytest.fixture()
def fake_app():
    return FakeConfidentialApp()


@pytest.fixture()
def app_factory(fake_app):
    def _factory(client_id, credential, authority):
        fake_app.created_with = (client_id, credential, authority)
        return fake_app
    return _factory


@pytest.fixture(scope="session")
def certificate():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "daemon-console-test")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return key, cert


@pytest.fixture()
def pem_file(tmp_path, certificate):
    key, cert = certificate
    path = tmp_path / "daemon.pem"
    path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        + cert.public_bytes(serialization.Encoding.PEM)
    )
    return path
