from .archive import Archive, MappingArchive, ZipArchive
from .assemble import assemble
from .errors import (
    BookLoadError,
    ChapterLoadFailure,
    DanglingReference,
    IndexOutOfRange,
    MalformedPackage,
    MissingNavigation,
    NavigationError,
    NoBookLoaded,
    ResourceInlineFailure,
    YomuError,
)
from .models import (
    Book,
    ManifestEntry,
    NavigationSource,
    ProgressRecord,
    ReaderPosition,
    RenderableUnit,
    SpineEntry,
    TocEntry,
)
from .package import load_book, parse_package
from .paths import resolve_path
from .session import ReaderSession
from .toc import parse_toc

__all__ = [
    "Archive",
    "ZipArchive",
    "MappingArchive",
    "Book",
    "ManifestEntry",
    "SpineEntry",
    "TocEntry",
    "NavigationSource",
    "ReaderPosition",
    "RenderableUnit",
    "ProgressRecord",
    "resolve_path",
    "parse_package",
    "load_book",
    "parse_toc",
    "assemble",
    "ReaderSession",
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
