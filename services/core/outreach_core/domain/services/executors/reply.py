"""Reply sender for existing message threads."""

from typing import Any, Optional

from outreach_core.domain.errors import (
    AMBIGUOUS_OUTCOME,
    ActionRejected,
    ElementNotFound,
    ValidationError,
)
from outreach_core.domain.models import TaskKind
from outreach_core.domain.services.credentials import Account
from outreach_core.domain.services.executors.base import TaskExecutor, TaskResult, require_text
from outreach_core.domain.services.threads import ThreadRepository
from outreach_core.providers.linkedin import descriptors

MAX_MESSAGE_LENGTH = 8000

# Seconds
COMPOSE_TIMEOUT = 15.0
SEND_SETTLE = 2.0


class ReplyExecutor(TaskExecutor):
    """Types and sends one reply into a thread."""

    kind = TaskKind.REPLY

    @classmethod
    def validate(cls, payload: dict[str, Any]) -> dict[str, Any]:
        thread_id = payload.get("thread_id")
        if not isinstance(thread_id, str) or not thread_id.strip():
            raise ValidationError("thread_id is required and must be a string", target="thread_id")
        validated = {
            "thread_id": thread_id.strip(),
            "message": require_text(payload.get("message"), "message", MAX_MESSAGE_LENGTH),
        }
        bot_id = payload.get("bot_id")
        if bot_id is not None:
            if not isinstance(bot_id, str) or not bot_id.strip():
                raise ValidationError("bot_id must be a non-empty string", target="bot_id")
            validated["bot_id"] = bot_id.strip()
        return validated

    @classmethod
    def check_account(cls, payload: dict[str, Any], account: Account) -> None:
        bot_id = payload.get("bot_id")
        if bot_id and bot_id != account.bot_id:
            # The mismatching id is never echoed: it embeds the account secret
            raise ValidationError(
                f"bot_id does not belong to the configured account {account.email}",
                target=payload["thread_id"],
            )

    async def execute(self, payload: dict[str, Any], job_id: Optional[str] = None) -> TaskResult:
        thread_id = payload["thread_id"]
        message = payload["message"]
        threads = ThreadRepository(self.context.store, self.account)

        if job_id and threads.reply_recorded(thread_id, job_id):
            self.logger.info(f"Reply {job_id} already sent to thread {thread_id}, skipping")
            return TaskResult(status="already_sent", target=thread_id, skipped=True)

        await self.pacing.wait(self.pacing.reply_pre_delay)

        async with self.session() as session:
            result = await self.guarded(
                session, thread_id, lambda: self._send(session, thread_id, message)
            )

        if job_id:
            threads.record_reply(
                thread_id,
                job_id,
                {
                    "sentAt": self.context.store.server_timestamp(),
                    "length": len(message),
                    "verified": AMBIGUOUS_OUTCOME not in result.warnings,
                },
            )
        return result

    async def _send(self, session: Any, thread_id: str, message: str) -> TaskResult:
        await session.navigate(descriptors.thread_url(self.settings.platform_base_url, thread_id))

        if await session.wait_for(descriptors.THREAD_COMPOSE_INPUT, timeout=COMPOSE_TIMEOUT) is None:
            raise ElementNotFound("Message input not found", target=thread_id)

        await self.type_into(session, descriptors.THREAD_COMPOSE_INPUT, message)
        await self.pacing.wait(self.pacing.settle)

        send = await session.find(descriptors.THREAD_SEND_BUTTON)
        if send is None:
            raise ElementNotFound("Send button not found", target=thread_id)
        if not await send.is_enabled():
            raise ActionRejected("Send button is disabled", target=thread_id)
        await send.click()
        await self.pacing.sleep(SEND_SETTLE)

        # An emptied compose box is the only (weak) delivery signal
        warnings = []
        compose = await session.find(descriptors.THREAD_COMPOSE_INPUT)
        if compose is None or await compose.inner_text():
            warnings.append(AMBIGUOUS_OUTCOME)
            self.logger.warning(f"Could not confirm reply delivery to thread {thread_id}")
        else:
            self.logger.info(f"Reply sent to thread {thread_id}")

        return TaskResult(
            status="sent",
            target=thread_id,
            details={"message_length": len(message)},
            warnings=warnings,
        )
