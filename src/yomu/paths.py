from __future__ import annotations

from urllib.parse import unquote


def resolve_path(base_path: str, relative_path: str) -> str:
    """
    Resolve ``relative_path`` against the directory ``base_path``.

    Leading-slash references are already archive-absolute and only lose the
    slash. ``..`` never climbs above the archive root.
    """
    if relative_path.startswith("/"):
        return relative_path[1:]
    parts = [part for part in base_path.split("/") if part]
    for part in relative_path.split("/"):
        if part == "..":
            if parts:
                parts.pop()
        elif part not in {".", ""}:
            parts.append(part)
    return "/".join(parts)


def directory_of(path: str) -> str:
    """Return ``path`` up to and including its last slash (``""`` at the root)."""
    return path[: path.rfind("/") + 1]


def file_name(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def split_fragment(href: str) -> tuple[str, str | None]:
    if "#" in href:
        path, fragment = href.split("#", 1)
        return path, fragment
    return href, None


def strip_query_and_fragment(ref: str) -> str:
    for sep in ("#", "?"):
        if sep in ref:
            ref = ref.split(sep, 1)[0]
    return ref


def path_candidates(path: str) -> list[str]:
    """Archive keys to try for ``path``: as written, then percent-decoded."""
    candidates = [path]
    decoded = unquote(path)
    if decoded != path:
        candidates.append(decoded)
    return candidates


def is_external_url(ref: str) -> bool:
    lowered = ref.strip().lower()
    return lowered.startswith(("http:", "https:", "//"))


def is_data_uri(ref: str) -> bool:
    return ref.strip().lower().startswith("data:")


__all__ = [
    "resolve_path",
    "directory_of",
    "file_name",
    "split_fragment",
    "strip_query_and_fragment",
    "path_candidates",
    "is_external_url",
    "is_data_uri",
]
