"""
ModGate - Detection Helpers
===========================

Pure text functions used by the moderation rules: tokenizing, edit
distance, URL and invite extraction, and misleading-link detection.
Nothing in here does I/O.
"""

import re
from typing import FrozenSet, Iterable, List, Optional, Pattern, Sequence, Set, Tuple
from urllib.parse import urlsplit

from modgate.core.constants import (
    CRYPTO_WORDS,
    FUZZY_FIRST_WORDS,
    FUZZY_SECOND_WORDS,
    FUZZY_SINGLE_TARGETS,
    INVITE_BLOCKED_WORDS,
    SUPPORT_DISTRESS_WORDS,
    SUPPORT_EXEMPT_WORDS,
    SUPPORT_REQUEST_WORDS,
)


# =============================================================================
# Compiled Regex Patterns
# =============================================================================

INVITE_PATTERN: Pattern = re.compile(
    r"(?:https?://)?(?:www\.)?(?:discord(?:app)?\.com/invite|discord\.gg)/([a-z0-9-]+)",
    re.IGNORECASE,
)

# ASCII word semantics so "word + trailing separators" splits like a plain tokenizer
TOKEN_PATTERN: Pattern = re.compile(r"\b(\w+\W+)", re.ASCII)
TOKEN_GARBAGE_PATTERN: Pattern = re.compile(r"[,\-./?]")
ASTRAL_PATTERN: Pattern = re.compile("[\U00010000-\U0010FFFF]")

URL_BODY_PATTERN: Pattern = re.compile(r"[^\s<>\"'(){}|\\^`\[\]]+")
CDN_LINK_PATTERN: Pattern = re.compile(r"https://cdn\.discordapp\.com/\S+", re.IGNORECASE)
MARKDOWN_LINK_PATTERN: Pattern = re.compile(r"(\[.*?\])(\(<?https://.*?\)>?)")
LABEL_HOST_PATTERN: Pattern = re.compile(r"(?:https?://)?((?:[a-z0-9-]+\.)+[a-z0-9-]+)")


# =============================================================================
# Edit Distance & Tokens
# =============================================================================

def levenshtein(a: str, b: str) -> int:
    """Number of single-character edits turning a into b."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def normalize_token(word: str) -> str:
    """Lowercase and strip punctuation and astral-plane emoji."""
    word = TOKEN_GARBAGE_PATTERN.sub("", word.lower())
    word = ASTRAL_PATTERN.sub("", word)
    return word.strip()


def tokenize(text: str) -> List[str]:
    """Split text into normalized word tokens, in order."""
    return [normalize_token(t) for t in TOKEN_PATTERN.findall(text + " ")]


def _any_within(word: str, targets: Sequence[Tuple[str, int]]) -> bool:
    return any(levenshtein(word, target) <= limit for target, limit in targets)


def has_fuzzy_phrase(tokens: Sequence[str]) -> bool:
    """
    Check tokens against the gun/riot buddy phrases.

    A single token may be close to a compound ("gunbody"), or a first word
    may be immediately followed by a second word ("gun buddy").
    """
    for token in tokens:
        if _any_within(token, FUZZY_SINGLE_TARGETS):
            return True

    for first, second in zip(tokens, tokens[1:]):
        if _any_within(first, FUZZY_FIRST_WORDS) and _any_within(second, FUZZY_SECOND_WORDS):
            return True

    return False


def is_support_request(text: str) -> bool:
    """
    Distress word + support word, with no developer-context exemption.

    Exemption words are normalized like tokens. Ones that span several
    tokens (an IP address) are matched against the lowercased text.
    """
    tokens = set(tokenize(text))
    if not (tokens & SUPPORT_DISTRESS_WORDS and tokens & SUPPORT_REQUEST_WORDS):
        return False

    lowered = text.lower()
    for word in SUPPORT_EXEMPT_WORDS:
        normalized = normalize_token(word)
        if normalized in tokens or (normalized != word and word in lowered):
            return False
    return True


def mentions_crypto(content: str) -> bool:
    """Case-insensitive substring match against the crypto keyword list."""
    lowered = content.lower()
    return any(word in lowered for word in CRYPTO_WORDS)


# =============================================================================
# Invites
# =============================================================================

def extract_invite_codes(content: str) -> List[str]:
    """Every invite code in the message, in order."""
    return INVITE_PATTERN.findall(content)


def invite_name_is_blocked(guild_name: str) -> bool:
    """Whether any whitespace-separated word of a server name is blocklisted."""
    words = guild_name.lower().split()
    return any(bad in words for bad in INVITE_BLOCKED_WORDS)


# =============================================================================
# Links
# =============================================================================

def extract_first_url(content: str) -> Optional[str]:
    """
    The URL the link gate inspects.

    The first plain-http link wins; otherwise the first https link.
    """
    offset = content.find("http://")
    if offset < 0:
        offset = content.find("https://")
    if offset < 0:
        return None
    match = URL_BODY_PATTERN.match(content, offset)
    return match.group(0) if match else None


def parse_hostname(url: str) -> str:
    """Lowercase hostname of url, or "" when it has none."""
    if "://" not in url:
        url = "//" + url
    try:
        return urlsplit(url).hostname or ""
    except ValueError:
        return ""


def host_matches(hostname: str, domains: Iterable[str]) -> bool:
    """Exact domain or subdomain match."""
    for domain in domains:
        if hostname == domain or hostname.endswith("." + domain):
            return True
    return False


def count_cdn_links(content: str) -> int:
    return len(CDN_LINK_PATTERN.findall(content))


# =============================================================================
# Misleading Links
# =============================================================================

def parse_tld_list(text: str) -> FrozenSet[str]:
    """Parse the IANA TLD list (one per line, "#" comments) into lowercase TLDs."""
    tlds: Set[str] = set()
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            tlds.add(line.lower())
    return frozenset(tlds)


def _strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def find_misleading_links(content: str, tlds: FrozenSet[str]) -> List[Tuple[str, str]]:
    """
    Markdown links whose label names a different host than the target.

    Returns:
        (full link markup, label) pairs.
    """
    flagged = []
    for match in MARKDOWN_LINK_PATTERN.finditer(content):
        link = match.group(0)
        label = match.group(1)[1:-1]

        label_host_match = LABEL_HOST_PATTERN.search(label.lower())
        if not label_host_match:
            continue
        label_host = label_host_match.group(1)
        if label_host.rsplit(".", 1)[-1] not in tlds:
            continue

        target = match.group(2).strip("()<>")
        target_host = parse_hostname(target)
        if _strip_www(label_host) != _strip_www(target_host):
            flagged.append((link, label))
    return flagged


__all__ = [
    "INVITE_PATTERN",
    "levenshtein",
    "normalize_token",
    "tokenize",
    "has_fuzzy_phrase",
    "is_support_request",
    "mentions_crypto",
    "extract_invite_codes",
    "invite_name_is_blocked",
    "extract_first_url",
    "parse_hostname",
    "host_matches",
    "count_cdn_links",
    "parse_tld_list",
    "find_misleading_links",
]
