"""Page descriptors for the LinkedIn web UI.

Selectors and URL builders used by the task executors. These change
whenever the site's markup changes and are kept out of the executors on
purpose: update them here.

Selectors use Playwright's CSS extensions (``:text-is``, ``:has``).
"""

import re
from typing import Optional
from urllib.parse import urljoin

# =============================================================================
# URLS
# =============================================================================

FEED_PATH = "/feed/"
LOGIN_PATH = "/login"
MESSAGING_PATH = "/messaging/"

# Fragment of the landing URL after a successful login
AUTHENTICATED_URL_FRAGMENT = "feed"

THREAD_ID_PATTERN = re.compile(r"messaging/thread/([^/?#]+)")

# Profile URLs must contain this path segment
PROFILE_PATH_SEGMENT = "/in/"


def feed_url(base_url: str) -> str:
    return urljoin(base_url, FEED_PATH)


def login_url(base_url: str) -> str:
    return urljoin(base_url, LOGIN_PATH)


def messaging_url(base_url: str) -> str:
    return urljoin(base_url, MESSAGING_PATH)


def thread_url(base_url: str, thread_id: str) -> str:
    return urljoin(base_url, f"/messaging/thread/{thread_id}/")


def parse_thread_id(url: str) -> Optional[str]:
    """Extract the durable thread id from a conversation URL."""
    match = THREAD_ID_PATTERN.search(url or "")
    return match.group(1) if match else None


# =============================================================================
# AUTHENTICATION
# =============================================================================

# Only present once logged in
AUTH_LANDMARK = '[aria-label="Search"]'

LOGIN_USERNAME = "#username"
LOGIN_PASSWORD = "#password"
LOGIN_SUBMIT = 'button[type="submit"]'

# Lower-cased body text that marks a verification/security challenge
CHALLENGE_MARKERS = ("security challenge", "verification")

# =============================================================================
# PROFILE PAGE
# =============================================================================

PROFILE_LANDMARK = "h1"

PENDING_INDICATOR = 'span:text-is("Pending")'
BUTTON_LABELS = "span.artdeco-button__text"
MESSAGE_LABEL = "Message"
DEGREE_BADGE = "span.dist-value"
FIRST_DEGREE = "1st"

FOLLOW_LABEL = 'span:text-is("Follow")'
MORE_ACTIONS = 'button[aria-label="More actions"]'
CONNECT_ACTION = ':is(button, div[role="button"]):has(span:text-is("Connect"))'
ADD_NOTE = 'button[aria-label="Add a note"]'
NOTE_INPUT = "textarea#custom-message"
SEND_INVITATION = 'button[aria-label="Send invitation"]'

# Compose box opened from a profile's Message action
PROFILE_COMPOSE_INPUT = 'div[role="textbox"]'
PROFILE_COMPOSE_SUBMIT = 'button[type="submit"]'

# Field -> ordered lookup candidates; the first non-empty match wins
PROFILE_FIELDS: dict[str, tuple[str, ...]] = {
    "name": (
        "h1",
        ".text-heading-xlarge",
        ".pv-text-details__left-panel h1",
    ),
    "headline": (
        "div.text-body-medium.break-words",
        ".text-body-medium",
        ".pv-text-details__left-panel .text-body-medium",
    ),
    "location": (
        "span.text-body-small.inline.t-black--light.break-words",
        ".pv-text-details__left-panel .text-body-small",
        ".text-body-small.inline.t-black--light",
    ),
}

# =============================================================================
# MESSAGING
# =============================================================================

THREAD_COMPOSE_INPUT = ".msg-form__contenteditable"
THREAD_SEND_BUTTON = ".msg-form__send-button"

CONVERSATION_LIST_ITEM = (
    "div.msg-conversations-container--inbox-shortcuts > ul > li:nth-child({position})"
)
CONVERSATION_LINK = "div.msg-conversation-listitem__link"
THREAD_TITLE = "h2#thread-detail-jump-target"

MESSAGE_LIST = ".msg-s-message-list"
MESSAGE_EVENT = ".msg-s-message-list__event"
MESSAGE_SENDER = ".msg-s-message-group__name"
MESSAGE_BODY = ".msg-s-event-listitem__body"
MESSAGE_TIME = ".msg-s-message-list__time-heading time"


def conversation_item(position: int) -> str:
    """Selector for the conversation entry at a 1-based position."""
    return CONVERSATION_LIST_ITEM.format(position=position)
