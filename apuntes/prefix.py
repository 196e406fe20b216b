from __future__ import annotations

from .errors import InvalidPrefix
from .models import DELIMITER

_FORBIDDEN_SEGMENTS = {".", ".."}


def normalize(raw: str) -> str:
    if not raw:
        return ""
    if raw.endswith(DELIMITER):
        return raw
    return f"{raw}{DELIMITER}"


def is_root(prefix: str) -> bool:
    return prefix in {"", DELIMITER}


def scope(raw: str, root: str = "") -> str:
    """Resolve a caller-supplied folder path to a store prefix under ``root``.

    Leading delimiters are treated as root markers and dropped, so ``""``,
    ``"/"`` and ``root`` itself all resolve to ``root``. Any path that could
    address keys outside ``root`` raises :class:`InvalidPrefix`.
    """

    root = normalize(root.lstrip(DELIMITER))
    if is_root(raw or ""):
        return root
    relative = raw.lstrip(DELIMITER)
    if not relative:
        return root
    _check_segments(raw, relative)
    prefix = normalize(relative)
    if root and not prefix.startswith(root):
        prefix = f"{root}{prefix}"
    return prefix


def _check_segments(raw: str, relative: str) -> None:
    if "\\" in relative:
        raise InvalidPrefix(f"Backslashes are not allowed in prefix {raw!r}", prefix=raw)
    if any(ord(char) < 32 or ord(char) == 127 for char in relative):
        raise InvalidPrefix(f"Control characters in prefix {raw!r}", prefix=raw)
    if relative.endswith(DELIMITER):
        relative = relative[: -len(DELIMITER)]
    segments = relative.split(DELIMITER)
    for segment in segments:
        if not segment:
            raise InvalidPrefix(f"Empty path segment in prefix {raw!r}", prefix=raw)
        if segment in _FORBIDDEN_SEGMENTS:
            raise InvalidPrefix(f"Relative segment {segment!r} in prefix {raw!r}", prefix=raw)
