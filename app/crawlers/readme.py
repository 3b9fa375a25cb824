"""Preview image discovery from repository READMEs"""

from __future__ import annotations

import re
from typing import Optional

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".bmp")

_IMAGE_PATTERNS = (
    re.compile(r"!\[[^\]]*\]\(\s*<?([^)\s>]+)>?(?:\s+[\"'][^\"']*[\"'])?\s*\)"),  # ![alt](url "title")
    re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE),  # <img src="url">
    re.compile(r"^\s*\[[^\]]+\]:\s*<?(\S+?)>?(?:\s+[\"'][^\"']*[\"'])?\s*$", re.MULTILINE),  # [ref]: url
)


# Hosts that serve uploaded images without a file extension
_EXTENSIONLESS_IMAGE_HOSTS = (
    "user-images.githubusercontent.com",
    "private-user-images.githubusercontent.com",
    "camo.githubusercontent.com",
    "github.com/user-attachments/assets/",
)


def is_image_url(url: str) -> bool:
    lowered = url.lower()
    path = lowered.split("?", 1)[0].split("#", 1)[0]
    if path.endswith(IMAGE_EXTENSIONS):
        return True
    return any(host in lowered for host in _EXTENSIONLESS_IMAGE_HOSTS)


def resolve_image_url(url: str, *, owner: str, repo: str, branch: str, raw_base: str) -> Optional[str]:
    """Resolve README-relative references against the raw-content base."""
    url = url.strip()
    if not url or url.startswith(("data:", "#", "mailto:")):
        return None

    if url.startswith("//"):
        return f"https:{url}"
    if re.match(r"^[a-z][a-z0-9+.-]*://", url, re.IGNORECASE):
        if not url.lower().startswith(("http://", "https://")):
            return None
        return url

    path = url
    while path.startswith(("./", "../")):
        path = path[2:] if path.startswith("./") else path[3:]
    path = path.lstrip("/")
    if not path:
        return None
    return f"{raw_base.rstrip('/')}/{owner}/{repo}/{branch}/{path}"


def extract_first_image(
    content: str,
    *,
    owner: str,
    repo: str,
    branch: str,
    raw_base: str,
) -> Optional[str]:
    """
    Return the first image referenced by a README, or None

    References are considered in document order across markdown, HTML and
    reference-style syntax; unresolvable or non-image URLs are skipped.
    """
    if not content:
        return None

    matches = []
    for pattern in _IMAGE_PATTERNS:
        for match in pattern.finditer(content):
            matches.append((match.start(), match.group(1)))
    matches.sort(key=lambda item: item[0])

    for _, raw_url in matches:
        resolved = resolve_image_url(raw_url, owner=owner, repo=repo, branch=branch, raw_base=raw_base)
        if resolved and is_image_url(resolved):
            return resolved
    return None
