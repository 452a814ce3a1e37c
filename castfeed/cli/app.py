"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import shutil
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from castfeed import __version__
from castfeed.api.backend import BackendClient
from castfeed.api.client import GenerationAPIClient
from castfeed.exceptions import CastfeedError
from castfeed.models.config import AppConfig
from castfeed.models.generation import PromptScript, Situation, VoiceOption
from castfeed.models.podcast import PublishRequest
from castfeed.playback.feed import FeedStore, FeedSynchronizer, ViewToken
from castfeed.playback.lifecycle import AppLifecycleHandler, AppState
from castfeed.playback.player import SubprocessPlayer
from castfeed.playback.session import PlaybackSessionManager
from castfeed.services.audio_generator import AudioGenerator
from castfeed.services.auth_service import AuthService
from castfeed.services.podcast_service import PodcastService
from castfeed.services.script_generator import ScriptSession
from castfeed.storage.cache import CacheManager
from castfeed.storage.config_manager import ConfigManager
from castfeed.storage.session_store import SessionStore, StoredSession
from castfeed.utils.structured_logger import (
    APILogger,
    PlaybackLogger,
    SessionLogger,
    StructuredLogger,
    create_structured_logger,
)

from .formatters import (
    print_audio_panel,
    print_comments,
    print_config,
    print_feed_table,
    print_profile_panel,
    print_script_table,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("castfeed")

app = typer.Typer(
    name="castfeed",
    help=(
        "Listen to, write and publish short podcasts from the terminal. Use"
        " 'castfeed <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "castfeed"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"

# Set by the main callback.
_options: dict[str, Any] = {"json_log": False}


@dataclass
class Services:
    backend: BackendClient
    generation: GenerationAPIClient
    podcasts: PodcastService
    auth: AuthService
    events: StructuredLogger
    playback_logger: PlaybackLogger
    api_logger: APILogger
    session_logger: SessionLogger


def _load_config() -> AppConfig:
    return ConfigManager(CONFIG_FILE).load_config()


@asynccontextmanager
async def _open_services(config: AppConfig) -> AsyncIterator[Services]:
    """Builds the clients and services, restoring a stored sign-in."""
    events, playback_logger, api_logger, session_logger = create_structured_logger(
        log_dir=CONFIG_DIR / "logs", enable_json=_options["json_log"]
    )
    backend = BackendClient(
        config.supabase_url, config.supabase_anon_key, timeout=config.request_timeout
    )
    generation = GenerationAPIClient(
        config.api_base_url,
        config.api_key,
        timeout=config.request_timeout,
        api_logger=api_logger,
    )
    stored = SessionStore(CONFIG_DIR).load()
    if stored:
        backend.authenticator.restore_session(stored.access_token, stored.user_id)
        events.bind(user_id=stored.user_id)

    try:
        yield Services(
            backend=backend,
            generation=generation,
            podcasts=PodcastService(
                backend, CacheManager(CONFIG_DIR), session_logger=session_logger
            ),
            auth=AuthService(backend),
            events=events,
            playback_logger=playback_logger,
            api_logger=api_logger,
            session_logger=session_logger,
        )
    finally:
        await generation.close()
        await backend.close()
        events.close()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    clear_cache: bool = typer.Option(
        False, "--clear-cache", help="Clear the catalog cache and exit."
    ),
    json_log: bool = typer.Option(
        False, "--json-log", help="Also write structured events as JSON lines."
    ),
):
    """castfeed CLI"""
    if version:
        console.print(f"[bold]castfeed[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "DEBUG" if verbose >= 2 else "INFO"
    logging.getLogger("castfeed").setLevel(log_level)
    _options["json_log"] = json_log

    if clear_cache:
        cache = CacheManager(CONFIG_DIR)
        files_count = len(list(cache.cache_dir.glob("*.json")))
        if cache.clear():
            console.print(
                f"[green]✓ Cache cleared successfully ({files_count} entries removed"
                ").[/green]"
            )
        else:
            console.print("[red]✗ Failed to clear cache.[/red]")
        raise typer.Exit()

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]castfeed init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config_manager._parser.read(CONFIG_FILE, encoding="utf-8")
        print_config(CONFIG_FILE, config_manager._get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    api_url: str = typer.Option(..., "--api-url", help="Generation API base URL."),
    supabase_url: str = typer.Option(..., "--supabase-url", help="Backend URL."),
    anon_key: str = typer.Option(..., "--anon-key", help="Backend anon key."),
    api_key: str = typer.Option("", "--api-key", help="Generation API key."),
    tts: str = typer.Option("openai", "--tts", help="Text-to-speech engine."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        "api_base_url": api_url,
        "api_key": api_key,
        "supabase_url": supabase_url,
        "supabase_anon_key": anon_key,
        "tts": tts,
    }
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    try:
        _load_config()
    except CastfeedError as e:
        console.print(f"[yellow]⚠️  Saved, but the configuration is invalid: {e}[/]")
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Sign in next: [cyan]castfeed login <EMAIL>[/cyan]")


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        print_validation_table(_load_config())
    except CastfeedError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


@app.command()
def diagnose():
    """Diagnose common configuration and connectivity issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print("[red]✗ Config file not found.[/] Run [cyan]castfeed init[/cyan].")
        raise typer.Exit(code=1)
    try:
        config = _load_config()
        console.print("[green]✓[/] Configuration file is valid and can be loaded.")
    except CastfeedError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    issues_found = False
    if SessionStore(CONFIG_DIR).load():
        console.print("[green]✓[/] A stored sign-in session exists.")
    else:
        console.print("[yellow]○[/] Not signed in. Liking and publishing need a login.")

    if shutil.which(config.player_command):
        console.print(f"[green]✓[/] Player '{config.player_command}' found.")
    else:
        console.print(f"[red]✗ Player '{config.player_command}' not found on PATH.[/]")
        issues_found = True

    async def test_connection(name: str, url: str, headers: dict[str, str]) -> bool:
        import aiohttp

        try:
            timeout = aiohttp.ClientTimeout(total=10)
            async with (
                aiohttp.ClientSession(timeout=timeout, headers=headers) as session,
                session.get(url) as resp,
            ):
                if resp.status < 500:
                    console.print(f"[green]✓[/] Reached the {name} ({resp.status}).")
                    return True
                console.print(f"[red]✗ The {name} answered with {resp.status}.[/red]")
                return False
        except Exception as e:
            console.print(f"[red]✗ Connection to the {name} failed: {e}[/red]")
            return False

    async def test_all() -> bool:
        results = await asyncio.gather(
            test_connection("generation API", config.api_base_url, {}),
            test_connection(
                "backend",
                f"{config.supabase_url}/auth/v1/health",
                {"apikey": config.supabase_anon_key},
            ),
        )
        return all(results)

    console.print("\n[dim]Testing connectivity...[/dim]")
    if not asyncio.run(test_all()):
        issues_found = True
    console.print()
    if not issues_found:
        console.print("[bold green]✓ All checks passed! Your setup looks good.[/]\n")
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )


@app.command()
def login(
    email: str = typer.Argument(..., help="Account email address."),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, help="Password."
    ),
):
    """Sign in and remember the session."""
    config = _load_config()

    async def _login():
        async with _open_services(config) as services:
            profile = await services.auth.sign_in(email, password)
            SessionStore(CONFIG_DIR).save(
                StoredSession(
                    access_token=services.backend.access_token,
                    user_id=services.backend.user_id,
                    email=email,
                )
            )
            name = (profile.display_name or profile.username) if profile else email
            console.print(f"[green]✓ Signed in as {name}.[/green]")

    asyncio.run(_login())


@app.command()
def signup(
    email: str = typer.Argument(..., help="Account email address."),
    username: str = typer.Argument(..., help="Public username."),
    password: str = typer.Option(
        ...,
        "--password",
        "-p",
        prompt=True,
        hide_input=True,
        confirmation_prompt=True,
        help="Password (at least 6 characters).",
    ),
):
    """Create an account."""
    config = _load_config()

    async def _signup():
        async with _open_services(config) as services:
            profile = await services.auth.sign_up(email, password, username)
            if profile is None:
                console.print(
                    "[yellow]Account created. Confirm your email address, then run "
                    "[cyan]castfeed login[/cyan].[/yellow]"
                )
                return
            SessionStore(CONFIG_DIR).save(
                StoredSession(
                    access_token=services.backend.access_token,
                    user_id=services.backend.user_id,
                    email=email,
                )
            )
            console.print(f"[green]✓ Welcome, {profile.username}![/green]")

    asyncio.run(_signup())


@app.command()
def logout():
    """Sign out and forget the stored session."""
    config = _load_config()

    async def _logout():
        async with _open_services(config) as services:
            await services.auth.sign_out()
        SessionStore(CONFIG_DIR).clear()
        console.print("[green]✓ Signed out.[/green]")

    asyncio.run(_logout())


@app.command()
def whoami():
    """Show the signed-in user's profile and statistics."""
    config = _load_config()

    async def _whoami():
        async with _open_services(config) as services:
            user_id = services.backend.authenticator.require_user()
            profile = await services.auth.load_profile(user_id)
            if profile is None:
                console.print("[yellow]Signed in, but no profile exists yet.[/yellow]")
                return
            stats = await services.podcasts.user_statistics(user_id)
            print_profile_panel(profile, stats)

    asyncio.run(_whoami())


@app.command()
def feed(
    page: int = typer.Option(0, "--page", min=0, help="Page to show (0-based)."),
):
    """List podcasts from the feed."""
    config = _load_config()

    async def _feed():
        async with _open_services(config) as services:
            result = await services.podcasts.fetch_podcasts(page, config.page_size)
            print_feed_table(result.podcasts)
            if result.has_next_page:
                console.print(f"[dim]More: castfeed feed --page {page + 1}[/dim]")

    asyncio.run(_feed())


PLAY_HELP = (
    "[dim]enter: play/pause · n: next · p: previous · r: restart · "
    "rate <x>: speed · l: like · s: save · bg/fg: background/foreground · "
    "q: quit[/dim]"
)


@app.command()
def play(
    start: int = typer.Option(0, "--start", min=0, help="Feed item to start with."),
):
    """Play the feed interactively; tracks advance automatically."""
    config = _load_config()

    async def _play():
        async with _open_services(config) as services:
            player = SubprocessPlayer(config.player_command)
            session = PlaybackSessionManager(
                player, playback_logger=services.playback_logger
            )
            store = FeedStore(session, services.podcasts, page_size=config.page_size)
            await store.fetch_podcasts(0)
            if store.error:
                console.print(f"[red]✗ {store.error}[/red]")
                raise typer.Exit(code=1)
            if not store.podcasts:
                console.print("[dim]The feed is empty.[/dim]")
                return

            def announce(index: int) -> None:
                podcast = store.podcasts[index]
                console.print(
                    f"[bold cyan]▶ {podcast.title}[/bold cyan] "
                    f"[dim]{podcast.host.name} · {podcast.duration}[/dim]"
                )

            synchronizer = FeedSynchronizer(store, scroll_to_index=announce)

            async def show(index: int) -> None:
                index = max(0, min(index, len(store.podcasts) - 1))
                podcast = store.podcasts[index]
                token = ViewToken(index=index, key=podcast.id, percent_visible=100.0)
                if await synchronizer.on_viewable_items_changed([token]):
                    announce(index)
                    await services.podcasts.record_play(podcast.id)

            async def toggle(kind: str) -> None:
                podcast = store.current_podcast
                if podcast is None:
                    return
                if kind == "like":
                    result = await services.podcasts.toggle_like(podcast.id)
                    update = {"is_liked": result.active}
                else:
                    result = await services.podcasts.toggle_save(podcast.id)
                    update = {"is_saved": result.active}
                if not result.success:
                    console.print(f"[red]✗ {result.error}[/red]")
                    return
                store.podcasts[store.current_index] = podcast.model_copy(update=update)
                state = "on" if result.active else "off"
                console.print(f"[green]✓ {kind.capitalize()} {state}.[/green]")

            async with AppLifecycleHandler(session, synchronizer) as lifecycle:
                console.print(PLAY_HELP)
                await show(start)
                while True:
                    command = (await asyncio.to_thread(console.input, "> ")).strip()
                    if command == "q":
                        break
                    elif command == "":
                        await store.toggle_play_pause()
                    elif command == "n":
                        if store.current_index + 1 >= len(store.podcasts):
                            await store.load_more()
                        await show(store.current_index + 1)
                    elif command == "p":
                        await show(store.current_index - 1)
                    elif command == "r":
                        await store.restart_current()
                    elif command.startswith("rate"):
                        try:
                            await store.set_playback_rate(float(command.split()[1]))
                        except (IndexError, ValueError):
                            console.print("[yellow]Usage: rate <0.5-4.0>[/yellow]")
                    elif command == "l":
                        await toggle("like")
                    elif command == "s":
                        await toggle("save")
                    elif command == "bg":
                        await lifecycle.on_app_state_change(AppState.BACKGROUND)
                    elif command == "fg":
                        await lifecycle.on_app_state_change(AppState.ACTIVE)
                        await synchronizer.on_focus()
                    else:
                        console.print(PLAY_HELP)

    asyncio.run(_play())


def _read_draft(path: Path) -> PromptScript:
    try:
        return PromptScript.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        console.print(f"[red]✗ Could not read script file '{path}': {e}[/red]")
        raise typer.Exit(code=1) from e


@app.command()
def script(
    prompt: str = typer.Argument("", help="Topic of the episode."),
    urls: list[str] | None = typer.Option(  # noqa: B008
        None, "--url", "-u", help="Reference URL (repeatable)."
    ),
    search: bool = typer.Option(False, "--search", help="Let the writer search."),
    situation: Optional[Situation] = typer.Option(
        None, "--situation", help="Conversation setting."
    ),
    words: Optional[int] = typer.Option(None, "--words", help="Target word count."),
    refine: list[str] | None = typer.Option(  # noqa: B008
        None, "--refine", "-r", help="Follow-up instruction (repeatable)."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Save the final script as JSON."
    ),
):
    """Generate a podcast script from a topic and/or reference URLs."""
    config = _load_config()

    async def _script():
        async with _open_services(config) as services:
            session = ScriptSession(
                services.generation,
                retry_attempts=config.retry_attempts,
                retry_base_delay=config.retry_base_delay,
                session_logger=services.session_logger,
            )
            with console.status("[cyan]Writing script...[/cyan]"):
                await session.generate(prompt, urls, search, situation, words)
                for instruction in refine or []:
                    await session.regenerate(instruction)

            print_script_table(session.script, session.reference_urls)
            if output:
                draft = session.history[-1].model_copy(update={"prompt": session.prompt})
                output.write_text(
                    draft.model_dump_json(by_alias=True, indent=2), encoding="utf-8"
                )
                console.print(f"[green]✓ Script saved to '{output}'.[/green]")

    asyncio.run(_script())


def _parse_voices(pairs: list[str]) -> dict[str, VoiceOption]:
    voices = {}
    for pair in pairs:
        speaker, sep, voice_id = pair.partition("=")
        if not sep or not speaker.strip() or not voice_id.strip():
            raise typer.BadParameter(f"Expected SPEAKER=VOICE, got '{pair}'.")
        voices[speaker.strip()] = VoiceOption(id=voice_id.strip(), name=voice_id.strip())
    return voices


@app.command()
def audio(
    script_file: Path = typer.Argument(..., help="Script JSON saved by 'script -o'."),
    voice: list[str] | None = typer.Option(  # noqa: B008
        None, "--voice", help="SPEAKER=VOICE assignment (repeatable)."
    ),
    default_voice: str = typer.Option(
        "alloy", "--default-voice", help="Voice for unassigned speakers."
    ),
    bgm: Optional[str] = typer.Option(None, "--bgm", help="Background music id."),
    list_bgm: bool = typer.Option(
        False, "--list-bgm", help="List background music and exit."
    ),
):
    """Render a saved script to audio."""
    config = _load_config()

    async def _audio():
        async with _open_services(config) as services:
            if list_bgm:
                for option in await services.podcasts.list_bgm():
                    console.print(f"[cyan]{option.id}[/cyan]  {option.name}")
                return
            draft = _read_draft(script_file)
            generator = AudioGenerator(
                services.generation,
                tts=config.tts,
                retry_attempts=config.retry_attempts,
                retry_base_delay=config.retry_base_delay,
                session_logger=services.session_logger,
            )
            with console.status("[cyan]Rendering audio...[/cyan]"):
                preview = await generator.generate(
                    draft.script,
                    _parse_voices(voice or []),
                    VoiceOption(id=default_voice, name=default_voice),
                    bgm or config.default_bgm_id,
                )
            print_audio_panel(preview)

    asyncio.run(_audio())


@app.command()
def publish(
    script_file: Path = typer.Argument(..., help="Script JSON saved by 'script -o'."),
    title: str = typer.Option(..., "--title", "-t", help="Episode title."),
    audio_url: str = typer.Option(..., "--audio-url", help="Rendered audio URL."),
    tags: list[str] = typer.Option(  # noqa: B008
        ..., "--tag", help="Tag (repeatable, at least one)."
    ),
    description: str = typer.Option("", "--description", "-d"),
    duration: Optional[int] = typer.Option(None, "--duration", help="Seconds."),
    image_url: Optional[str] = typer.Option(None, "--image-url"),
    genre: Optional[str] = typer.Option(None, "--genre", help="Genre id."),
):
    """Publish a generated episode to the feed."""
    config = _load_config()
    draft = _read_draft(script_file)
    request = PublishRequest(
        title=title,
        description=description,
        script=[line.model_dump(exclude_none=True) for line in draft.script],
        audio_url=audio_url,
        duration=duration,
        image_url=image_url,
        tags=tags,
        genre_id=genre,
        speakers=list(
            dict.fromkeys(line.speaker for line in draft.script if line.speaker)
        ),
        source_urls=draft.reference,
        situation=draft.situation.value if draft.situation else None,
    )

    async def _publish():
        async with _open_services(config) as services:
            podcast = await services.podcasts.publish(request)
            console.print(
                f"[bold green]✓ Published '{podcast.title}'[/bold green] "
                f"[dim]({podcast.id})[/dim]"
            )

    asyncio.run(_publish())


@app.command()
def like(podcast_id: str = typer.Argument(..., help="Podcast id.")):
    """Like or unlike a podcast."""
    asyncio.run(_toggle_command("like", podcast_id))


@app.command()
def save(podcast_id: str = typer.Argument(..., help="Podcast id.")):
    """Save or unsave a podcast."""
    asyncio.run(_toggle_command("save", podcast_id))


async def _toggle_command(kind: str, podcast_id: str) -> None:
    config = _load_config()
    async with _open_services(config) as services:
        if kind == "like":
            result = await services.podcasts.toggle_like(podcast_id)
        else:
            result = await services.podcasts.toggle_save(podcast_id)
    if not result.success:
        console.print(f"[red]✗ {result.error}[/red]")
        raise typer.Exit(code=1)
    verb = kind if result.active else f"un{kind}"
    console.print(f"[green]✓ {verb.capitalize()}d {podcast_id}.[/green]")


@app.command()
def comments(
    podcast_id: str = typer.Argument(..., help="Podcast id."),
    add: Optional[str] = typer.Option(None, "--add", "-a", help="Post a comment."),
):
    """Show or add comments on a podcast."""
    config = _load_config()

    async def _comments():
        async with _open_services(config) as services:
            if add is not None:
                await services.podcasts.add_comment(podcast_id, add)
                console.print("[green]✓ Comment posted.[/green]")
            print_comments(await services.podcasts.list_comments(podcast_id))

    asyncio.run(_comments())


@app.command()
def follow(
    user_id: str = typer.Argument(..., help="User id."),
    undo: bool = typer.Option(False, "--undo", help="Unfollow instead."),
):
    """Follow or unfollow a creator."""
    config = _load_config()

    async def _follow():
        async with _open_services(config) as services:
            if undo:
                await services.podcasts.unfollow(user_id)
                console.print(f"[green]✓ Unfollowed {user_id}.[/green]")
            else:
                await services.podcasts.follow(user_id)
                console.print(f"[green]✓ Following {user_id}.[/green]")

    asyncio.run(_follow())

