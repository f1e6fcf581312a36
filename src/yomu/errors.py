from __future__ import annotations


class YomuError(Exception):
    """Base class for errors raised by yomu."""


class BookLoadError(YomuError):
    """Raised when an archive cannot be opened as a book."""


class MalformedPackage(BookLoadError):
    """Raised when the container pointer or package document is missing or unparsable."""


class NavigationError(YomuError):
    """Raised when a navigation request cannot be honoured."""


class NoBookLoaded(NavigationError):
    """Raised when navigation is requested before any book was loaded."""

    def __init__(self) -> None:
        super().__init__("No book is loaded.")


class IndexOutOfRange(NavigationError):
    """Raised when a unit index falls outside the spine."""

    def __init__(self, index: int, total: int) -> None:
        super().__init__(f"Chapter index {index} is outside 0..{total - 1}." if total else "The book has no chapters.")
        self.index = index
        self.total = total


class ChapterLoadFailure(NavigationError):
    """Raised when a valid spine entry cannot be read from the archive."""

    def __init__(self, href: str, reason: str | None = None) -> None:
        message = f"Unable to load chapter {href}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.href = href


# Local conditions. Instances are logged and collected (see Book.warnings)
# by the component that detects them; they are never raised.


class DanglingReference(YomuError):
    """A spine idref or navigation reference that does not resolve."""


class MissingNavigation(YomuError):
    """No usable legacy or modern navigation document."""


class ResourceInlineFailure(YomuError):
    """An image or stylesheet referenced by a content document could not be inlined."""


__all__ = [
    "YomuError",
    "BookLoadError",
    "MalformedPackage",
    "NavigationError",
    "NoBookLoaded",
    "IndexOutOfRange",
    "ChapterLoadFailure",
    "DanglingReference",
    "MissingNavigation",
    "ResourceInlineFailure",
]
