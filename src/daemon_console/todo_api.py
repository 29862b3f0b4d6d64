from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Union

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .outcome import FailureKind, Outcome
from .reporting import ConsoleReporter

logger = logging.getLogger(__name__)

TODO_LIST_PATH = "/api/todolist"


class TodoRecord(BaseModel):
    id: Optional[Union[int, str]] = Field(default=None, validation_alias=AliasChoices("Id", "id"))
    owner: str = Field(validation_alias=AliasChoices("Owner", "owner"))
    task: str = Field(validation_alias=AliasChoices("Task", "task"))

    model_config = ConfigDict(extra="ignore", frozen=True)

    def to_payload(self) -> dict:
        return {"Owner": self.owner, "Task": self.task}

    def summary_line(self) -> str:
        prefix = f"{self.id}, " if self.id is not None else ""
        return f"{prefix}{self.owner}, {self.task}"


@dataclass(frozen=True)
class CreateFailure:
    owner: str
    status_code: int
    reason: str


@dataclass
class UploadSummary:
    attempted: int = 0
    succeeded: int = 0
    failures: List[CreateFailure] = field(default_factory=list)
    aborted: bool = False


class TodoListClient:
    """Calls the protected To-Do list web API with a bearer token."""

    def __init__(
        self,
        base_address: str,
        access_token: str,
        reporter: ConsoleReporter,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = f"{base_address.rstrip('/')}{TODO_LIST_PATH}"
        self.reporter = reporter
        self.session = http_client or httpx.AsyncClient()
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    async def post_todos(
        self, todos: Iterable[TodoRecord], continue_on_error: bool = True
    ) -> UploadSummary:
        """Sends one create call per record, one after another, without retries."""
        summary = UploadSummary()
        for todo in todos:
            summary.attempted += 1
            response = await self.session.post(self.url, headers=self._headers, json=todo.to_payload())
            if response.is_success:
                summary.succeeded += 1
                logger.debug("Created To-Do for %s", todo.owner)
                continue

            failure = CreateFailure(todo.owner, response.status_code, response.reason_phrase)
            summary.failures.append(failure)
            self.reporter.error(
                f"Failed to call the web API: {failure.status_code} {failure.reason}",
                owner=todo.owner,
            )
            if not continue_on_error:
                summary.aborted = True
                break
        return summary

    async def get_todos(self) -> Outcome[List[TodoRecord]]:
        response = await self.session.get(self.url, headers=self._headers)
        if not response.is_success:
            return Outcome.failed(
                FailureKind.HTTP_ERROR, f"{response.status_code} {response.reason_phrase}"
            )

        try:
            payload: Any = response.json()
            if not isinstance(payload, list):
                raise ValueError("expected a JSON array")
            return Outcome.success([TodoRecord.model_validate(item) for item in payload])
        except (ValueError, ValidationError) as exc:
            return Outcome.failed(FailureKind.HTTP_ERROR, f"Unexpected To-Do list payload: {exc}")

    async def aclose(self) -> None:
        await self.session.aclose()


def todos_for_users(users: Iterable[Any]) -> List[TodoRecord]:
    """Builds one synthetic To-Do per directory user."""
    return [
        TodoRecord(owner=user.id, task=f"A To-Do for '{user.display_name}'.")
        for user in users
    ]
