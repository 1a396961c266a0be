"""Social profile link canonicalization.

A profile is reduced to platform + first path segment so the same page
linked in different ways (query strings, trailing paths, m. hosts) maps to
one stable URL.
"""

from urllib.parse import parse_qs, urlparse

PLATFORM_HOSTS = {
    "facebook.com": "facebook",
    "fb.com": "facebook",
    "instagram.com": "instagram",
    "linkedin.com": "linkedin",
    "twitter.com": "twitter",
    "x.com": "twitter",
    "youtube.com": "youtube",
    "youtu.be": "youtube",
}

# First path segments that are never a profile
EXCLUDED_SEGMENTS = {
    "facebook": {"sharer", "sharer.php", "share", "share.php", "login", "login.php", "dialog", "plugins", "tr", "groups", "events", "watch", "hashtag"},
    "instagram": {"accounts", "explore", "p", "reel", "reels", "stories", "share"},
    "twitter": {"intent", "share", "home", "search", "hashtag", "i", "login"},
    "linkedin": {"login", "signup", "shareArticle", "feed"},
    "youtube": {"watch", "results", "feed", "embed", "playlist", "shorts"},
}


def _platform(host: str) -> str | None:
    host = host.lower()
    for prefix in ("www.", "m.", "mobile.", "web."):
        if host.startswith(prefix):
            host = host[len(prefix):]
            break
    for domain, platform in PLATFORM_HOSTS.items():
        if host == domain or host.endswith("." + domain):
            return platform
    return None


def canonicalize_social(url: str | None) -> tuple[str, str] | None:
    """(platform, canonical profile URL), or None for non-profile links."""
    if not url:
        return None
    url = url.strip()
    if url.startswith("//"):
        url = "https:" + url
    try:
        parts = urlparse(url)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return None

    platform = _platform(parts.hostname)
    if platform is None:
        return None

    segments = [s for s in parts.path.split("/") if s]
    host = parts.hostname.lower()

    if platform == "youtube" and host.endswith("youtu.be"):
        return (platform, f"https://www.youtube.com/watch?v={segments[0]}") if segments else None

    if not segments or segments[0] in EXCLUDED_SEGMENTS[platform]:
        return None
    first = segments[0]

    if platform == "facebook":
        if first == "profile.php":
            profile_id = parse_qs(parts.query).get("id")
            return (platform, f"https://www.facebook.com/profile.php?id={profile_id[0]}") if profile_id else None
        return platform, f"https://www.facebook.com/{first}"

    if platform == "instagram":
        return platform, f"https://www.instagram.com/{first}"

    if platform == "linkedin":
        if first in ("company", "in", "school") and len(segments) > 1:
            return platform, f"https://www.linkedin.com/{first}/{segments[1]}"
        return None

    if platform == "twitter":
        return platform, f"https://twitter.com/{first}"

    # youtube
    if first.startswith("@"):
        return platform, f"https://www.youtube.com/{first}"
    if first in ("channel", "user", "c") and len(segments) > 1:
        return platform, f"https://www.youtube.com/{first}/{segments[1]}"
    return None
