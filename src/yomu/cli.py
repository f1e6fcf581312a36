from __future__ import annotations

import argparse
import socket
import sys
import zipfile
from importlib import metadata
from pathlib import Path

import tomllib
import uvicorn
from rich.console import Console
from rich.table import Table

from .archive import ZipArchive
from .errors import YomuError
from .logging_utils import build_uvicorn_log_config, configure_logging
from .package import load_book
from .progress import DEFAULT_STATE_PATH
from .session import ReaderSession
from .web import ReaderConfig, create_app, list_epubs

console = Console()


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("yomu")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"yomu {__version__}",
    )


def _add_debug_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging.",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="yomu",
        description=(
            "EPUB reader. Subcommands: serve (browser reader), info (package summary), "
            "toc (table of contents), render (write one chapter as self-contained HTML)."
        ),
    )
    _add_version_flag(ap)
    return ap


def build_serve_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="yomu serve",
        description="Serve an EPUB (or a directory of EPUBs) as a browser-based reader.",
    )
    _add_version_flag(ap)
    ap.add_argument(
        "path",
        help="Path to an .epub file or a directory containing .epub files.",
    )
    ap.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the web server (default: 127.0.0.1).",
    )
    ap.add_argument(
        "--port",
        type=int,
        default=2047,
        help="Port for the web server (default: 2047).",
    )
    ap.add_argument(
        "--dark",
        action="store_true",
        help="Start in dark mode (otherwise the saved theme is used).",
    )
    ap.add_argument(
        "--state-file",
        help=f"Where reading progress and theme are kept (default: {DEFAULT_STATE_PATH}).",
    )
    _add_debug_flag(ap)
    return ap


def build_info_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="yomu info",
        description="Print the title, spine and parse warnings of an EPUB.",
    )
    _add_version_flag(ap)
    ap.add_argument("epub", help="Path to an .epub file.")
    _add_debug_flag(ap)
    return ap


def build_toc_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="yomu toc",
        description="Print the table of contents of an EPUB.",
    )
    _add_version_flag(ap)
    ap.add_argument("epub", help="Path to an .epub file.")
    _add_debug_flag(ap)
    return ap


def build_render_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="yomu render",
        description="Write one chapter as a self-contained HTML document (images and CSS inlined).",
    )
    _add_version_flag(ap)
    ap.add_argument("epub", help="Path to an .epub file.")
    ap.add_argument("index", type=int, help="Zero-based chapter (spine) index.")
    ap.add_argument(
        "-o",
        "--output",
        help="Output .html path (default: <epub stem>-<index>.html next to the EPUB).",
    )
    ap.add_argument(
        "--dark",
        action="store_true",
        help="Use the dark palette for the baseline style.",
    )
    _add_debug_flag(ap)
    return ap


def _open_archive(path_value: str) -> ZipArchive:
    path = Path(path_value).expanduser()
    if not path.is_file():
        raise SystemExit(f"EPUB not found: {path}")
    try:
        return ZipArchive(path)
    except (OSError, zipfile.BadZipFile) as exc:
        raise SystemExit(f"Unable to open {path}: {exc}") from exc


def _run_info(args: argparse.Namespace) -> int:
    configure_logging(args.debug)
    with _open_archive(args.epub) as archive:
        try:
            book = load_book(archive)
        except YomuError as exc:
            raise SystemExit(str(exc)) from exc
    console.print(f"[bold]{book.title}[/bold]")
    console.print(f"Package directory: {book.base_path or '(archive root)'}")
    navigation = book.navigation
    console.print(
        f"Navigation: {navigation.kind} ({navigation.href})" if navigation else "Navigation: none"
    )
    table = Table(title=f"Spine ({book.total_units} chapters)")
    table.add_column("#", justify="right")
    table.add_column("id")
    table.add_column("href")
    for index, entry in enumerate(book.spine):
        table.add_row(str(index), entry.id, entry.href)
    console.print(table)
    for issue in book.warnings:
        console.print(f"[yellow]warning:[/yellow] {issue}")
    return 0


def _run_toc(args: argparse.Namespace) -> int:
    configure_logging(args.debug)
    with _open_archive(args.epub) as archive:
        try:
            book = load_book(archive)
        except YomuError as exc:
            raise SystemExit(str(exc)) from exc
    if not book.toc:
        console.print("No table of contents.")
        return 0
    table = Table(title=book.title)
    table.add_column("order", justify="right")
    table.add_column("label")
    table.add_column("href")
    for entry in book.toc:
        table.add_row(str(entry.order), entry.label, entry.href)
    console.print(table)
    return 0


def _run_render(args: argparse.Namespace) -> int:
    configure_logging(args.debug)
    epub_path = Path(args.epub).expanduser()
    output_path = (
        Path(args.output).expanduser()
        if args.output
        else epub_path.with_name(f"{epub_path.stem}-{args.index}.html")
    )
    session = ReaderSession(dark_mode=args.dark)
    with _open_archive(args.epub) as archive:
        try:
            session.load(archive)
            unit = session.go_to(args.index)
        except YomuError as exc:
            raise SystemExit(str(exc)) from exc
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(unit.html, encoding="utf-8")
    console.print(f"Wrote {unit.href} to {output_path}")
    return 0


def _resolve_local_ip(host: str) -> str:
    if host not in {"", "0.0.0.0"}:
        return host
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"


def _run_serve(args: argparse.Namespace) -> int:
    root = Path(args.path).expanduser().resolve()
    if not root.exists():
        raise SystemExit(f"Books path not found: {root}")
    if not list_epubs(root):
        raise SystemExit(f"No .epub files found in {root}")
    state_path = Path(args.state_file).expanduser().resolve() if args.state_file else None
    config = ReaderConfig(root=root, dark_mode=args.dark, state_path=state_path)

    app = create_app(config)
    url = f"http://{_resolve_local_ip(args.host)}:{args.port}/"
    console.print(f"Serving yomu from {root}")
    console.print(f"Reader URL: {url}")
    console.print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_config=build_uvicorn_log_config(args.debug),
    )
    return 0


_COMMANDS = {
    "serve": (build_serve_parser, _run_serve),
    "info": (build_info_parser, _run_info),
    "toc": (build_toc_parser, _run_toc),
    "render": (build_render_parser, _run_render),
}


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] in _COMMANDS:
        build, run = _COMMANDS[argv[0]]
        args = build().parse_args(argv[1:])
        return run(args)

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    parser.parse_args(argv)
    parser.error(f"Unknown command: {argv[0]}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
