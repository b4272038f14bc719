from collections.abc import Callable

from score_relay.errors import INVALID_TYPE, InvalidImageError


def _is_jpeg(content: bytes) -> bool:
    return content.startswith(b"\xff\xd8\xff")


def _is_png(content: bytes) -> bool:
    return content.startswith(b"\x89PNG\r\n\x1a\n")


def _is_webp(content: bytes) -> bool:
    return len(content) >= 12 and content[:4] == b"RIFF" and content[8:12] == b"WEBP"


_SIGNATURE_CHECKS: dict[str, Callable[[bytes], bool]] = {
    "image/jpeg": _is_jpeg,
    "image/png": _is_png,
    "image/webp": _is_webp,
}


def validate_image(
    content_type: str | None,
    size: int,
    allowed_types: set[str],
    max_bytes: int,
) -> None:
    """Check the declared type and size of an upload.

    Only the client-declared values are inspected; see ``matches_signature``
    for the optional content check.
    """
    if not content_type or content_type.lower() not in allowed_types:
        raise InvalidImageError(INVALID_TYPE)
    if size > max_bytes:
        raise InvalidImageError(f"Image too large. Maximum size is {_format_limit(max_bytes)}")


def matches_signature(content_type: str, content: bytes) -> bool:
    check = _SIGNATURE_CHECKS.get(content_type.lower())
    return check is not None and check(content)


def _format_limit(max_bytes: int) -> str:
    mib = max_bytes / (1024 * 1024)
    if mib >= 1 and mib == int(mib):
        return f"{int(mib)}MB"
    return f"{max_bytes} bytes"
