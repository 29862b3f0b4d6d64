from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import GraphServiceError
from .graph_client import GraphClient
from .outcome import FailureKind, Outcome

logger = logging.getLogger(__name__)

USER_SELECT_FIELDS = (
    "id,displayName,givenName,surname,mail,mailNickname,userPrincipalName,"
    "userType,jobTitle,accountEnabled,country,createdDateTime"
)


class DirectoryUser(BaseModel):
    """Read-only projection of a Graph ``user`` resource."""

    id: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    user_principal_name: Optional[str] = Field(default=None, alias="userPrincipalName")
    given_name: Optional[str] = Field(default=None, alias="givenName")
    surname: Optional[str] = None
    mail: Optional[str] = None
    mail_nickname: Optional[str] = Field(default=None, alias="mailNickname")
    user_type: Optional[str] = Field(default=None, alias="userType")
    job_title: Optional[str] = Field(default=None, alias="jobTitle")
    account_enabled: Optional[bool] = Field(default=None, alias="accountEnabled")
    country: Optional[str] = None
    created_date_time: Optional[datetime] = Field(default=None, alias="createdDateTime")

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    def summary_line(self) -> str:
        return f"{self.id}, {self.display_name}, {self.user_principal_name}"


async def fetch_users(graph: GraphClient) -> Outcome[List[DirectoryUser]]:
    """Lists every user visible to the application, draining all pages.

    A Graph service failure (missing ``User.Read.All`` consent, for instance) is
    returned as a failed outcome so the run can go on without users.
    """
    try:
        values = await graph.get_all_values("/users", params={"$select": USER_SELECT_FIELDS})
    except GraphServiceError as exc:
        logger.debug("User listing failed: %s", exc)
        return Outcome.failed(FailureKind.SERVICE_ERROR, str(exc))

    users = [DirectoryUser.model_validate(value) for value in values]
    return Outcome.success(users)
