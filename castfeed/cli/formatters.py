"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from castfeed.exceptions import AppError, ErrorCode
from castfeed.models.config import AppConfig
from castfeed.models.generation import ScriptLine
from castfeed.models.podcast import Comment, FeedPodcast, Profile, UserStatistics
from castfeed.services.audio_generator import AudioPreview
from castfeed.utils.formatting import format_clock, format_count

SENSITIVE_KEYS = ("api_key", "supabase_anon_key")

SUGGESTIONS = {
    "ConfigurationError": [
        "• Run `castfeed init` to create a configuration file.",
        "• Run `castfeed validate` to see which setting is rejected.",
    ],
    "AuthenticationError": [
        "• Sign in with `castfeed login <EMAIL>`.",
        "• Your session may have expired. Sign in again.",
    ],
    "ValidationError": ["• Check the values you entered and try again."],
    "GenerationError": [
        "• The generation service returned no usable result.",
        "• Try a different topic or different reference URLs.",
    ],
    "PlayerError": [
        "• Make sure ffplay (part of FFmpeg) is installed and on your PATH.",
        "• Set `player_command` in the configuration to another binary.",
    ],
    ErrorCode.NETWORK: [
        "• Check your internet connection.",
        "• The service might be temporarily unavailable.",
    ],
    ErrorCode.TIMEOUT: [
        "• The service took too long to answer.",
        "• Increase `request_timeout` in the configuration.",
    ],
    ErrorCode.UNAUTHORIZED: ["• Sign in again with `castfeed login <EMAIL>`."],
    ErrorCode.RATE_LIMIT: ["• Too many requests were sent. Wait a minute."],
}


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    if isinstance(error, AppError):
        error_type = f"{error_type} [{error.code.value}]"
        key: Any = error.code
    else:
        key = type(error).__name__

    suggestions = SUGGESTIONS.get(key, ["• Run the command with -vv for detailed logs."])

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(str(error))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding keys."""
    console = Console()
    content = ""
    for key, value in sorted(config_data.items()):
        if key in SENSITIVE_KEYS and value:
            value = "[hidden]"
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: AppConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Generation API:", config.api_base_url)
    table.add_row(
        "API Key:", "[green]✓ Set[/green]" if config.api_key else "[dim]not set[/dim]"
    )
    table.add_row("TTS Engine:", config.tts)
    table.add_row("Backend:", config.supabase_url)
    table.add_row("Page Size:", str(config.page_size))
    table.add_row(
        "Retries:", f"{config.retry_attempts} (base delay {config.retry_base_delay}s)"
    )
    table.add_row("Request Timeout:", f"{config.request_timeout}s")
    table.add_row("Player:", f"[dim]{config.player_command}[/dim]")

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_feed_table(podcasts: list[FeedPodcast], current_index: Optional[int] = None):
    """Displays one page of the feed."""
    console = Console()
    if not podcasts:
        console.print("[dim]No podcasts found.[/dim]")
        return

    table = Table(box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Host")
    table.add_column("Length", justify="right")
    table.add_column("Likes", justify="right", style="green")
    table.add_column("Tags", style="magenta")
    table.add_column("ID", style="dim", no_wrap=True)

    for i, podcast in enumerate(podcasts):
        marker = "▶ " if i == current_index else ""
        liked = " ♥" if podcast.is_liked else ""
        saved = " ★" if podcast.is_saved else ""
        table.add_row(
            str(i),
            f"{marker}{podcast.title}{liked}{saved}",
            podcast.host.name,
            podcast.duration,
            format_count(podcast.likes),
            " ".join(f"#{t}" for t in podcast.tags[:3]),
            podcast.id,
        )
    console.print(table)


def print_script_table(lines: list[ScriptLine], references: Optional[list[str]] = None):
    """Displays a generated script."""
    console = Console()
    table = Table(box=box.SIMPLE_HEAVY, title="[bold]Generated Script[/bold]")
    table.add_column("Speaker", style="bold cyan", no_wrap=True)
    table.add_column("Line")
    for line in lines:
        table.add_row(line.speaker or "", line.text or "")
    console.print(table)

    if references:
        console.print("[bold]References:[/bold]")
        for url in references:
            console.print(f"  • [link={url}]{url}[/link]")


def print_audio_panel(preview: AudioPreview):
    """Displays the outcome of an audio generation."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Audio URL:", preview.audio_url or "[red]none[/red]")
    table.add_row("Duration:", format_clock(preview.duration))
    table.add_row(
        "Voices:",
        ", ".join(f"{s} → {v}" for s, v in zip(preview.speakers, preview.voices)),
    )
    table.add_row("Sections:", str(len(preview.sections)))

    console.print(
        Panel(
            table,
            title="🎙 [bold]Audio Preview[/bold]",
            border_style="green",
            expand=False,
        )
    )


def print_comments(comments: list[Comment]):
    console = Console()
    if not comments:
        console.print("[dim]No comments yet.[/dim]")
        return
    for comment in comments:
        console.print(f"[dim]{comment.created_at or ''}[/dim] {comment.content}")


def print_profile_panel(profile: Profile, stats: UserStatistics):
    """Displays a user's profile and statistics."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Username:", profile.username or "[dim]not set[/dim]")
    table.add_row("Display Name:", profile.display_name or "[dim]not set[/dim]")
    if profile.bio:
        table.add_row("Bio:", profile.bio)
    table.add_row("Podcasts:", format_count(stats.podcasts))
    table.add_row("Followers:", format_count(stats.followers))
    table.add_row("Following:", format_count(stats.following))

    console.print(
        Panel(table, title="[bold]Profile[/bold]", border_style="cyan", expand=False)
    )
