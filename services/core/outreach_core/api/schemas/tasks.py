"""Per-kind task request schemas.

Each request model converts itself into the job payload its executor
validates; field-level rules (URL shape, length limits) are enforced by
the executor's ``validate`` so the API and the worker agree.
"""

from typing import Any, ClassVar, Optional

from pydantic import AliasChoices, Field

from outreach_core.api.schemas.jobs import CamelModel

JOB_ID_MAX_LENGTH = 128
JOB_ID_PATTERN = r"^[A-Za-z0-9_.:-]+$"


class TaskRequest(CamelModel):
    """Fields common to every single-job request."""

    priority: int = Field(default=0, description="Higher runs first")
    job_id: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=JOB_ID_MAX_LENGTH,
        pattern=JOB_ID_PATTERN,
        validation_alias=AliasChoices("jobId", "job_id"),
        description="Caller-chosen id; re-sending it returns the existing job",
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude={"priority", "max_retries", "job_id"}, exclude_none=True)


class RetryFields(CamelModel):
    max_retries: int = Field(default=3, ge=1, le=10, description="Attempts before the job fails")


class BulkRequest(CamelModel):
    """A batch admitted as a staggered drip."""

    items_field: ClassVar[str] = "items"
    item_label: ClassVar[str] = "Item"

    @property
    def items(self) -> list[Any]:
        return getattr(self, self.items_field)

    def item_payload(self, item: Any) -> dict[str, Any]:
        raise NotImplementedError

    def item_job_id(self, item: Any) -> Optional[str]:
        """Caller-chosen id of one item, checked by ``item_payload`` first."""
        if isinstance(item, dict):
            return item.get("jobId") or item.get("job_id")
        return None


# =============================================================================
# CONNECTION REQUESTS
# =============================================================================


class ConnectRequestIn(TaskRequest):
    """Request schema for sending one connection request."""

    profile_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("profileUrl", "profile_url"),
    )
    note: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("note", "message"),
        description="Invitation note, at most 300 characters",
    )


class ConnectRetryIn(ConnectRequestIn, RetryFields):
    pass


class BulkConnectIn(BulkRequest):
    """Request schema for a batch of connection requests."""

    items_field: ClassVar[str] = "connections"
    item_label: ClassVar[str] = "Connection"

    connections: list[Any] = Field(default_factory=list)
    default_note: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("defaultNote", "defaultMessage", "default_note"),
    )

    def item_payload(self, item: Any) -> dict[str, Any]:
        payload = ConnectRequestIn.model_validate(item).to_payload()
        if not payload.get("note") and self.default_note:
            payload["note"] = self.default_note
        return payload


# =============================================================================
# REPLIES
# =============================================================================


class ReplyIn(TaskRequest):
    """Request schema for sending one reply."""

    thread_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("threadId", "thread_id"),
    )
    message: Optional[str] = None
    bot_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("botId", "bot_id"),
    )


class ReplyRetryIn(ReplyIn, RetryFields):
    pass


class BulkRepliesIn(BulkRequest):
    """Request schema for a batch of replies."""

    items_field: ClassVar[str] = "replies"
    item_label: ClassVar[str] = "Reply"

    replies: list[Any] = Field(default_factory=list)
    default_bot_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("defaultBotId", "default_bot_id"),
    )

    def item_payload(self, item: Any) -> dict[str, Any]:
        payload = ReplyIn.model_validate(item).to_payload()
        if not payload.get("bot_id") and self.default_bot_id:
            payload["bot_id"] = self.default_bot_id
        return payload


# =============================================================================
# CONNECTION STATUS CHECKS
# =============================================================================


class StatusCheckIn(TaskRequest):
    """Request schema for a status check of one profile, some, or all."""

    profile_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("profileUrl", "profile_url"),
    )
    profile_links: Optional[list[str]] = Field(
        default=None,
        validation_alias=AliasChoices("profileLinks", "profile_links"),
    )
    campaign_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("campaignId", "campaign_id"),
    )

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        profile_url = payload.pop("profile_url", None)
        if profile_url:
            payload["profile_links"] = [profile_url, *payload.get("profile_links", [])]
        return payload


class StatusCheckRetryIn(StatusCheckIn, RetryFields):
    pass


class BulkStatusChecksIn(BulkRequest):
    """Request schema for a batch of single-profile status checks."""

    items_field: ClassVar[str] = "profiles"
    item_label: ClassVar[str] = "Profile"

    profiles: list[Any] = Field(default_factory=list)
    campaign_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("campaignId", "campaign_id"),
    )

    def item_payload(self, item: Any) -> dict[str, Any]:
        if isinstance(item, str):
            item = {"profileUrl": item}
        payload = StatusCheckIn.model_validate(item).to_payload()
        if self.campaign_id and "campaign_id" not in payload:
            payload["campaign_id"] = self.campaign_id
        return payload


# =============================================================================
# PROFILE EXTRACTION AND INBOX POLL
# =============================================================================


class ExtractProfilesIn(TaskRequest):
    """Request schema for a profile extraction sweep."""

    campaign_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("campaignId", "campaign_id"),
    )
    profile_links: Optional[list[str]] = Field(
        default=None,
        validation_alias=AliasChoices("profileLinks", "profile_links"),
    )
    force: bool = False


class InboxPollIn(TaskRequest):
    """Request schema for an inbox poll."""

    max_threads: Optional[int] = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("maxThreads", "max_threads"),
    )
