"""Inbox poll: thread discovery, then message refresh.

Discovery walks the conversation list by position until a position is
empty (or the configured cap is reached), records new threads whose
counterpart matches a known profile, and ignores the rest. The refresh
phase reads each known thread and stores messages from the counterpart
newer than the thread's ``lastChecked``.
"""

import re
from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Any, Optional

from outreach_core.domain.errors import NavigationTimeout, TaskError
from outreach_core.domain.models import TaskKind
from outreach_core.domain.services.executors.base import TaskExecutor, TaskResult
from outreach_core.domain.services.profiles import ProfileRepository
from outreach_core.domain.services.reconciliation import to_datetime
from outreach_core.domain.services.threads import ThreadRepository
from outreach_core.providers.linkedin import descriptors

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

TIME_ONLY_FORMATS = ("%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M%p")

# Seconds
INBOX_SETTLE = 5.0
THREAD_OPEN_TIMEOUT = 10.0
THREAD_SETTLE = 3.0
MESSAGE_LIST_TIMEOUT = 10.0
MESSAGE_LIST_SETTLE = 2.0
BETWEEN_THREADS = 2.0


@dataclass
class DiscoveredThread:
    thread_id: str
    name: str


def _name_tokens(name: str) -> list[str]:
    return [t for t in re.split(r"[\s.,]+", name.casefold()) if t]


def names_match(thread_name: Optional[str], profile_name: Optional[str]) -> bool:
    """Symmetric, permissive name match.

    Either name contained in the other (case-insensitive), or the words
    of one name all present in the other, so "Jane Q. Doe" and
    "Jane Doe" match regardless of argument order.
    """
    a = " ".join(_name_tokens(thread_name or ""))
    b = " ".join(_name_tokens(profile_name or ""))
    if not a or not b:
        return False
    if a in b or b in a:
        return True
    tokens_a, tokens_b = set(a.split()), set(b.split())
    return tokens_a <= tokens_b or tokens_b <= tokens_a


def parse_message_timestamp(raw: Optional[str], now: Optional[datetime] = None) -> str:
    """Normalise a message time attribute to an ISO 8601 UTC string.

    A time-only value is combined with today's date, which misattributes
    messages sent on earlier days. Missing or unparseable values fall
    back to ``now``.
    """
    now = now or datetime.now(timezone.utc)
    if not raw:
        return now.isoformat()

    parsed = to_datetime(raw.strip())
    if parsed is not None:
        return parsed.isoformat()

    for fmt in TIME_ONLY_FORMATS:
        try:
            clock: time = datetime.strptime(raw.strip().upper(), fmt).time()
        except ValueError:
            continue
        return datetime.combine(now.date(), clock, tzinfo=timezone.utc).isoformat()

    return now.isoformat()


def find_matching_profile(name: str, profiles: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    for profile in profiles:
        if profile.get("link") and names_match(name, profile.get("name")):
            return profile
    return None


class InboxPollExecutor(TaskExecutor):
    """Discovers new threads and refreshes messages of known ones."""

    kind = TaskKind.INBOX_POLL

    @classmethod
    def validate(cls, payload: dict[str, Any]) -> dict[str, Any]:
        max_threads = payload.get("max_threads")
        return {"max_threads": int(max_threads) if max_threads else None}

    async def execute(self, payload: dict[str, Any], job_id: Optional[str] = None) -> TaskResult:
        max_threads = payload.get("max_threads") or self.settings.inbox_max_threads
        threads = ThreadRepository(self.context.store, self.account)
        profiles = ProfileRepository(self.context.store, self.account).list_profiles()

        discovered: list[DiscoveredThread] = []
        new_threads: list[DiscoveredThread] = []
        created: list[tuple[str, dict[str, Any]]] = []
        updates: list[tuple[str, dict[str, Any]]] = []
        errors: list[dict[str, str]] = []
        try:
            async with self.session() as session:
                discovered = await self.guarded(
                    session, "inbox", lambda: self.discover(session, max_threads)
                )

                known = threads.list_threads()
                known_ids = {thread["threadId"] for thread in known}
                new_threads = [t for t in discovered if t.thread_id not in known_ids]
                for thread in new_threads:
                    profile = find_matching_profile(thread.name, profiles)
                    if profile is None:
                        self.logger.info(f"Thread not matched to a profile: {thread.thread_id}")
                        continue
                    doc_id, record = threads.plan_new_thread(thread.thread_id, thread.name, profile["link"])
                    created.append((doc_id, record))
                    known.append({**record, "docId": doc_id, "threadId": thread.thread_id})

                for thread in known:
                    try:
                        messages = await self.guarded(
                            session, thread["threadId"], lambda: self.read_thread(session, thread)
                        )
                    except TaskError as e:
                        self.logger.warning(f"Failed to read thread {thread['threadId']}: {e.message}")
                        errors.append({"thread_id": thread["threadId"], "error": e.message})
                        continue

                    last_checked = to_datetime(thread.get("lastChecked")) or EPOCH
                    fresh = [m for m in messages if to_datetime(m["timestamp"]) > last_checked]
                    if fresh:
                        entry = threads.plan_message_update(
                            thread,
                            {
                                "lastMessages": fresh,
                                "lastChecked": self.context.store.server_timestamp(),
                                "process": True,
                            },
                        )
                        if entry:
                            updates.append(entry)
                    await self.pacing.sleep(BETWEEN_THREADS)
        finally:
            # New threads and refreshed messages land in one batch
            threads.write_batch(created + updates)

        self.logger.info(
            f"Inbox poll: {len(discovered)} threads seen, {len(new_threads)} new, "
            f"{len(created)} matched, {len(updates)} with new messages"
        )
        return TaskResult(
            status="completed",
            details={
                "discovered": len(discovered),
                "new_threads": len(new_threads),
                "matched": len(created),
                "updated_threads": len(updates),
                "errors": errors,
            },
        )

    async def discover(self, session: Any, max_threads: int) -> list[DiscoveredThread]:
        await session.navigate(descriptors.messaging_url(self.settings.platform_base_url))
        await self.pacing.sleep(INBOX_SETTLE)

        found: list[DiscoveredThread] = []
        for position in range(1, max_threads + 1):
            item = await session.find(descriptors.conversation_item(position))
            if item is None:
                break

            link = await item.find(descriptors.CONVERSATION_LINK)
            if link is None:
                continue

            await link.click()
            if not await session.wait_for_url("/messaging/thread/", timeout=THREAD_OPEN_TIMEOUT):
                continue

            thread_id = descriptors.parse_thread_id(session.url)
            if not thread_id:
                continue

            title = await session.find(descriptors.THREAD_TITLE)
            name = await title.inner_text() if title is not None else ""
            found.append(DiscoveredThread(thread_id=thread_id, name=name))
        else:
            self.logger.warning(f"Stopped inbox enumeration at cap of {max_threads} threads")

        return found

    async def read_thread(self, session: Any, thread: dict[str, Any]) -> list[dict[str, str]]:
        thread_id = thread["threadId"]
        await session.navigate(descriptors.thread_url(self.settings.platform_base_url, thread_id))
        await self.pacing.sleep(THREAD_SETTLE)

        if await session.wait_for(descriptors.MESSAGE_LIST, timeout=MESSAGE_LIST_TIMEOUT) is None:
            raise NavigationTimeout("Message list did not load", target=thread_id)
        await self.pacing.sleep(MESSAGE_LIST_SETTLE)

        messages = []
        for event in await session.find_all(descriptors.MESSAGE_EVENT):
            sender = await event.find(descriptors.MESSAGE_SENDER)
            if sender is None or await sender.inner_text() != thread.get("name"):
                continue

            body = await event.find(descriptors.MESSAGE_BODY)
            content = await body.inner_text() if body is not None else ""
            if not content:
                continue

            stamp = await event.find(descriptors.MESSAGE_TIME)
            raw = await stamp.attribute("datetime") if stamp is not None else None
            messages.append({"content": content, "timestamp": parse_message_timestamp(raw)})

        return messages
