"""
Console entry point: runs the typer app and turns uncaught failures into a
readable panel and an exit status.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from castfeed.cli.app import app
from castfeed.cli.formatters import format_error_with_suggestions
from castfeed.exceptions import AppError, CastfeedError
from castfeed.utils.errors import user_message

log = logging.getLogger("castfeed")


def _force_utf8_streams() -> None:
    # Feed titles and the player UI use non-ASCII glyphs.
    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if reconfigure is not None:
            reconfigure(encoding="utf-8")


def main() -> None:
    if os.name == "nt":
        _force_utf8_streams()
    console = Console(stderr=True)

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Playback stopped, bye.[/yellow]")
        sys.exit(0)
    except AppError as e:
        console.print(format_error_with_suggestions(e, {"details": user_message(e)}))
        log.debug(f"{e.context or 'operation'} failed, caused by {e.cause!r}")
        sys.exit(1)
    except CastfeedError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(1)
    except Exception as e:
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
