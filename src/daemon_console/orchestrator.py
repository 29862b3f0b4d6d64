from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

import httpx

from .auth import ConfidentialClient, default_app_factory
from .config import AuthenticationConfig
from .credentials import select_credential
from .directory import DirectoryUser, fetch_users
from .graph_client import GraphClient
from .outcome import FailureKind
from .reporting import ConsoleReporter
from .todo_api import TodoListClient, TodoRecord, UploadSummary, todos_for_users
from .token_cache import InMemoryTokenCache

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    CONFIGURING = "configuring"
    CREDENTIAL_SELECTED = "credential_selected"
    CLIENT_READY = "client_ready"
    USERS_FETCHED = "users_fetched"
    GRAPH_TOKEN_ACQUIRED = "graph_token_acquired"
    DOWNSTREAM_TOKEN_ACQUIRED = "downstream_token_acquired"
    RECORDS_UPLOADED = "records_uploaded"
    RECORDS_LISTED = "records_listed"
    DONE = "done"


@dataclass
class RunReport:
    states: List[RunState] = field(default_factory=list)
    users: List[DirectoryUser] = field(default_factory=list)
    upload: Optional[UploadSummary] = None
    todos: Optional[List[TodoRecord]] = None
    scope_supported: bool = True

    @property
    def state(self) -> Optional[RunState]:
        return self.states[-1] if self.states else None


class DaemonRun:
    """Runs the daemon sample from settings to the printed To-Do list.

    Steps run one after another: select the credential, build the confidential
    client, list the directory users, get a token for the To-Do API, upload one
    To-Do per user, then list what the API holds.
    """

    def __init__(
        self,
        config: AuthenticationConfig,
        reporter: ConsoleReporter,
        app_factory: Callable[[str, Any, str], Any] = default_app_factory,
        token_cache: Optional[InMemoryTokenCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.reporter = reporter
        self.app_factory = app_factory
        self.token_cache = token_cache
        self.transport = transport
        self.report = RunReport()

    def _advance(self, state: RunState) -> None:
        logger.debug("Run state -> %s", state.value)
        self.report.states.append(state)

    def _http_client(self) -> httpx.AsyncClient:
        kwargs: dict = {}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        if self.config.http.timeout_seconds is not None:
            kwargs["timeout"] = self.config.http.timeout_seconds
        return httpx.AsyncClient(**kwargs)

    async def run(self) -> RunReport:
        config = self.config
        self._advance(RunState.CONFIGURING)

        credential = select_credential(config)
        self._advance(RunState.CREDENTIAL_SELECTED)

        client = ConfidentialClient(
            client_id=config.client_id,
            authority=config.authority,
            credential=credential,
            token_cache=self.token_cache,
            app_factory=self.app_factory,
        )
        self._advance(RunState.CLIENT_READY)

        async with self._http_client() as http_client:
            graph = GraphClient(
                client,
                self.reporter,
                base_address=config.graph_base_address,
                scopes=[config.graph_scope],
                http_client=http_client,
                max_retries=config.http.max_retries,
                max_concurrency=config.http.max_concurrency,
            )
            users = await self._fetch_users(graph)
            if graph.token_acquired:
                self._advance(RunState.GRAPH_TOKEN_ACQUIRED)

            # Client-credentials scopes are always of the form "resource/.default".
            outcome = await client.acquire_token([config.todo_list_scope])
            if not outcome.ok:
                if outcome.failure is FailureKind.UNSUPPORTED_SCOPE:
                    self.report.scope_supported = False
                    self.reporter.error("Scope provided is not supported", detail=outcome.detail)
                    self._advance(RunState.DONE)
                    return self.report
                raise RuntimeError(f"Unexpected token failure: {outcome.detail}")

            self.reporter.success("Token acquired for TodoList API")
            self._advance(RunState.DOWNSTREAM_TOKEN_ACQUIRED)

            todo_api = TodoListClient(
                config.todo_list_base_address,
                outcome.unwrap().access_token,
                self.reporter,
                http_client=http_client,
            )
            await self._upload(todo_api, users)
            await self._list(todo_api)

        self._advance(RunState.DONE)
        return self.report

    async def _fetch_users(self, graph: GraphClient) -> List[DirectoryUser]:
        outcome = await fetch_users(graph)
        if outcome.ok:
            users = outcome.unwrap()
            self.reporter.info(f"Got {len(users)} users from the tenant")
        else:
            users = []
            self.reporter.error(f"We could not retrieve the user's list: {outcome.detail}")
        self._advance(RunState.USERS_FETCHED)

        self.report.users = users
        for user in users:
            self.reporter.info(user.summary_line())
        return users

    async def _upload(self, todo_api: TodoListClient, users: List[DirectoryUser]) -> None:
        summary = await todo_api.post_todos(
            todos_for_users(users), continue_on_error=self.config.continue_on_error
        )
        self.report.upload = summary
        if summary.failures:
            self.reporter.warning(
                f"Uploaded {summary.succeeded} of {summary.attempted} To-Dos",
                failed=len(summary.failures),
                aborted=summary.aborted,
            )
        else:
            self.reporter.info(f"Uploaded {summary.succeeded} To-Dos")
        self._advance(RunState.RECORDS_UPLOADED)

    async def _list(self, todo_api: TodoListClient) -> None:
        outcome = await todo_api.get_todos()
        if not outcome.ok:
            self.reporter.error(f"Failed to call the web API: {outcome.detail}")
            return

        todos = outcome.unwrap()
        self.report.todos = todos
        self.reporter.success("Web API call result:")
        for todo in todos:
            self.reporter.info(todo.summary_line())
        self._advance(RunState.RECORDS_LISTED)
