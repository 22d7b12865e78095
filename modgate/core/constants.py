"""
ModGate - Centralized Constants
===============================

Word lists, canned notice texts and magic numbers used by the
moderation rules. Import from this module instead of hardcoding values.
"""

# =============================================================================
# Timeouts
# =============================================================================

API_TIMEOUT = 10                      # External API request timeout (TLD list)

# =============================================================================
# Invite Detection
# =============================================================================

INVITE_BLOCKED_WORDS = ("nsfw", "onlyfans", "nudes", "18+", "+18", "egirls", "🍑")
"""Words that get an invite's target server flagged (matched per word of its name)."""

INVITE_KICK_REASON = "Spamming NSFW invite links"

# =============================================================================
# Link Gate
# =============================================================================

KICK_MARKER_TOKEN = "(HOW)"
"""A blocked URL posted alongside this token escalates to a kick."""

CDN_SPAM_LINK_THRESHOLD = 3
"""Messages with this many Discord CDN links match a known spam template."""

# =============================================================================
# Keyword Rules
# =============================================================================

# (target, max edits)
FUZZY_SINGLE_TARGETS = (
    ("gunbuddy", 2),
    ("gunbuddies", 2),
    ("riotbuddy", 3),
    ("riotbuddies", 3),
)

FUZZY_FIRST_WORDS = (("gun", 1), ("riot", 1))
FUZZY_SECOND_WORDS = (("buddy", 2), ("buddies", 2))

SUPPORT_DISTRESS_WORDS = frozenset({"ban", "banned", "hacked", "stolen", "suspended"})
SUPPORT_REQUEST_WORDS = frozenset({"dev", "ticket", "support", "admin", "help"})
SUPPORT_EXEMPT_WORDS = ("127.0.0.1", "localhost", "portal", "console", "python", "lcu")

CRYPTO_WORDS = (
    "crypto", "blockchain", "web3", " nft", "$", "€",
    "bitcoin", " btc", "btc ", "ethereum", " eth",
)

# =============================================================================
# TLD List
# =============================================================================

TLD_LIST_URL = "https://data.iana.org/TLD/tlds-alpha-by-domain.txt"

FALLBACK_TLDS = frozenset({
    "com", "net", "org", "io", "gg", "co", "me", "xyz", "info", "biz",
    "ru", "uk", "de", "fr", "us", "tv", "app", "dev", "site", "online",
    "shop", "store", "link", "click", "top", "live", "gift", "gifts",
})
"""Used by the misleading-link rule when the IANA list can't be fetched."""

# =============================================================================
# Reactions
# =============================================================================

CONFIRM_EMOJI = "👍"

# =============================================================================
# Notice Texts
# =============================================================================

WARNING_THUMBNAIL = "https://upload.wikimedia.org/wikipedia/commons/thumb/f/f7/Antu_dialog-warning.svg/240px-Antu_dialog-warning.svg.png"
STOP_THUMBNAIL = "https://upload.wikimedia.org/wikipedia/commons/1/19/Stop2.png"

ROBOT_CHECK_TITLE = "Robot Check"

LINK_ROBOT_CHECK_TEXT = (
    "We require users to verify that they are human before they are allowed "
    "to post a link. If you are a human, react with :+1: to this message to "
    "gain link privileges. If you are a bot, please go spam somewhere else. 👍"
)

KEYWORD_ROBOT_CHECK_TEXT = (
    "We require users to verify that they are human before they are allowed "
    "to send messages that include certain keywords. If you are a human, react "
    "with :+1: to this message. If you are a bot, please go spam somewhere else. 👍"
)

SPAM_PATTERN_TEXT = "Your message matches a known spam pattern and was disallowed."

GUNBUDDY_TITLE = "There are no gun buddies here"
GUNBUDDY_TEXT = (
    "You triggered our spam detector. This is not a game publisher's server. "
    "There are no staff from the game here, and no one can give you a gun buddy."
)

SUPPORT_TITLE = "There is no game or account support here"
SUPPORT_TEXT = (
    "This Discord server is for developers building on a game API. No one here "
    "will be able to help you with support or gameplay issues. If you're having "
    "account related issues or technical problems, contact player support."
)
SUPPORT_FIELDS = (
    ("Player Support", "[Player Support](https://support.riotgames.com/hc/en-us)"),
    ("League", "[Discord](https://discord.gg/leagueoflegends)\n[Subreddit](https://reddit.com/r/leagueoflegends)"),
    ("Valorant", "[Discord](https://discord.gg/valorant)\n[Subreddit](https://reddit.com/r/valorant)"),
)

STOP_SPAMMING_TEXT = "Hey <@{user_id}>, stop spamming!"

COMPROMISED_ACCOUNT_DM = (
    "Hey there! You've been kicked from the server because you triggered our "
    "spam filter. There's a good chance your account has been compromised, "
    "please change your password."
)

REPEAT_OFFENDER_KICK_REASON = "Repeatedly triggered the spam filter"

REPOST_TEXT = "<@{user_id}> ({username}) just said: \n{content}"

CLASSIFIER_REMOVAL_TITLE = "Message Removed"
CLASSIFIER_REMOVAL_TEXT = (
    "<@{user_id}> Your message has been removed by an automated filter. If you "
    "believe this was an error, please contact a moderator."
)

# =============================================================================
# Review Replies
# =============================================================================

CLASSIFIER_DISABLED_REPLY = "The Anti-Spam service is currently disabled"
RECORD_NOT_FOUND_REPLY = "Couldn't find violating message with id {message_id}"
REVIEW_DENIED_REPLY = "You don't have permission to review this message."
