"""
BoldMove - CLI Entry Point.

Usage:
    boldmove interview       Run the Five Whys interview, then plan the roadmap
    boldmove steps "<task>"  Preview a tiny-step breakdown
    boldmove progress        Show completions and streaks
    boldmove health          Check system health
    boldmove --help          Show help
"""

import asyncio

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table

app = typer.Typer(
    name="boldmove",
    help="BoldMove - discover what drives your dream, then take the first tiny step.",
    add_completion=False,
)
console = Console()


def _thinking(text: str = "Thinking...") -> Live:
    return Live(Spinner("dots", text=text), console=console, transient=True)


async def _run_interview(user_id: str, draft_overrides: dict, fresh: bool) -> None:
    from boldmove.config import settings
    from boldmove.core.errors import GenerationError
    from boldmove.db.client import get_service_client
    from boldmove.llm.client import TextGenerationClient
    from journey.draft_cache import FileDraftCache
    from journey.five_whys import Completion
    from journey.models import Identity, OnboardingDraft
    from journey.pipeline import JourneyPipeline
    from journey.store import JourneyStore

    cache = FileDraftCache(settings.draft_cache_path)
    draft = cache.load_draft() or OnboardingDraft()
    for key, value in draft_overrides.items():
        if value:
            setattr(draft, key, value)
    cache.save_draft(draft)
    if fresh:
        cache.set_resume_session_id(None)

    pipeline = JourneyPipeline(
        Identity(id=user_id),
        JourneyStore(get_service_client()),
        TextGenerationClient(),
        cache,
    )

    with _thinking("Getting ready..."):
        result = await pipeline.begin()

    while not isinstance(result, Completion):
        if result.reflection:
            console.print(f"\n[italic green]{result.reflection}[/italic green]")
        console.print(f"\n[bold green]Coach:[/bold green] {result.question}")

        answer = console.input("\n[bold blue]You:[/bold blue] ").strip()
        if answer.lower() in ("exit", "quit", "q"):
            console.print("\n[dim]Progress saved. Run `boldmove interview` to pick up where you left off.[/dim]")
            return
        if not answer:
            continue

        try:
            with _thinking():
                result = await pipeline.answer(answer)
        except GenerationError as e:
            console.print(f"\n[yellow]Couldn't come up with the next question ({e}).[/yellow]")
            while True:
                if not typer.confirm("Try again?", default=True):
                    console.print("\n[dim]Your answer is saved. Resume any time.[/dim]")
                    return
                try:
                    with _thinking():
                        result = await pipeline.retry()
                    break
                except GenerationError as retry_error:
                    console.print(f"[yellow]Still failing: {retry_error}[/yellow]")

    with _thinking("Reflecting on everything you shared..."):
        synthesis = await pipeline.finalize()
        permission = await pipeline.permission_statement()

    console.print(Panel.fit(pipeline.celebration or synthesis.motivation, title="✨", border_style="green"))
    console.print(Panel.fit(permission, title="Permission Slip", border_style="magenta"))
    if synthesis.pending_writes:
        console.print(f"[yellow]Not yet saved: {', '.join(synthesis.pending_writes)}[/yellow]")

    with _thinking("Planning your first actions..."):
        roadmap = await pipeline.create_roadmap()

    table = Table(title=roadmap.roadmap_title)
    table.add_column("#", justify="right")
    table.add_column("Action", style="bold")
    table.add_column("Minutes", justify="right")
    table.add_column("Why it matters")
    for action in roadmap.actions:
        table.add_row(
            str(action.order_index + 1),
            action.title,
            str(action.duration_minutes or ""),
            action.why_it_matters or "",
        )
    console.print(table)
    console.print("[dim]Break any action into tiny steps with `boldmove steps \"<action>\"`.[/dim]")


@app.command()
def interview(
    name: str = typer.Option(None, "--name", "-n", help="Your first name"),
    dream: str = typer.Option(None, "--dream", "-d", help="The dream to explore"),
    stuck_point: str = typer.Option(None, "--stuck-point", "-s", help="Focus area (career, travel, ...)"),
    new: bool = typer.Option(False, "--new", help="Ignore the saved session and start over"),
    log_prompts: bool = typer.Option(False, "--log-prompts", "-l", help="Log all LLM prompts to prompt_logs/"),
) -> None:
    """Run the Five Whys interview for the dev user."""
    from boldmove.config import configure_logging, settings
    from boldmove.core.errors import BoldMoveError
    from boldmove.llm.prompt_logger import enable_prompt_logging, get_session_log_dir

    configure_logging("WARNING")
    if log_prompts:
        enable_prompt_logging(True)
        console.print("[dim]📝 Prompt logging enabled. Check prompt_logs/ after the session.[/dim]")

    console.print(
        Panel.fit(
            "[bold green]BoldMove[/bold green]\n"
            "A few questions about what your dream really means to you.\n\n"
            "[dim]Type 'exit' or 'quit' to pause; your answers are saved.[/dim]",
            title="Welcome",
            border_style="green",
        )
    )

    try:
        asyncio.run(_run_interview(
            settings.dev_user_id,
            {"name": name, "dream": dream, "stuck_point": stuck_point},
            fresh=new,
        ))
    except KeyboardInterrupt:
        console.print("\n\n[dim]Session interrupted. Your answers are saved. 👋[/dim]")
    except BoldMoveError as e:
        console.print(f"\n[red]❌ {type(e).__name__}: {e}[/red]")
        raise typer.Exit(1)

    if log_prompts:
        log_dir = get_session_log_dir()
        if log_dir:
            console.print(f"\n[dim]📝 Prompts logged to: {log_dir}[/dim]")


@app.command()
def steps(
    action_title: str = typer.Argument(..., help="The action to break down"),
    description: str = typer.Option("", "--description", help="Extra detail for the action"),
) -> None:
    """Preview the tiny-step breakdown for an action (nothing is saved)."""
    from boldmove.config import settings
    from boldmove.llm.client import TextGenerationClient
    from journey.tiny_steps import Fallback, TinyStepDecomposer

    # Preview only: decompose() never touches the store
    decomposer = TinyStepDecomposer(None, TextGenerationClient(), settings.dev_user_id)

    with _thinking("Breaking it down..."):
        result = asyncio.run(decomposer.decompose(action_title, description))

    table = Table(title=action_title)
    table.add_column("#", justify="right")
    table.add_column("Step", style="bold")
    table.add_column("How")
    for step in result.steps:
        table.add_row(str(step.index + 1), step.title, step.description)
    console.print(table)

    if isinstance(result, Fallback):
        console.print(f"[yellow]Using the standard plan ({result.reason})[/yellow]")


@app.command()
def progress(
    user_id: str = typer.Option(None, "--user", "-u", help="User id (defaults to the dev user)"),
    timezone: str = typer.Option(None, "--tz", help="IANA time zone for streak days"),
) -> None:
    """Show completed actions and streaks."""
    from boldmove.config import settings
    from boldmove.db.client import get_service_client
    from journey.progress import ProgressTracker
    from journey.store import JourneyStore

    tracker = ProgressTracker(
        JourneyStore(get_service_client()),
        user_id or settings.dev_user_id,
        timezone,
    )
    try:
        snapshot = asyncio.run(tracker.snapshot())
    except Exception as e:
        console.print(f"\n[red]❌ Could not load progress: {e}[/red]")
        raise typer.Exit(1)

    console.print("\n[bold]Progress[/bold]\n")
    console.print(f"  Actions completed: {snapshot.completed_count}")
    console.print(f"  Current streak:    {snapshot.current_streak} day(s) 🔥")
    console.print(f"  Longest streak:    {snapshot.longest_streak} day(s)")
    if snapshot.last_completed_on:
        console.print(f"  Last completed:    {snapshot.last_completed_on.isoformat()}")


@app.command()
def health() -> None:
    """Check system health and configuration."""
    from boldmove.config import get_settings

    console.print("\n[bold]BoldMove Health Check[/bold]\n")

    try:
        settings = get_settings()
        console.print("✅ Configuration loaded")
        console.print(f"   Environment: {settings.boldmove_env}")
        console.print(f"   Log level: {settings.log_level}")
        console.print(f"   Interview depth: {settings.five_whys_depth}")

        if settings.openai_api_key:
            endpoint = settings.openai_base_url or "api.openai.com"
            console.print(f"✅ LLM API key configured ({endpoint})")
        else:
            console.print("❌ OPENAI_API_KEY missing")

        if settings.supabase_url.startswith("https://"):
            console.print("✅ Supabase URL configured")
        else:
            console.print("❌ Supabase URL missing or invalid")

        if settings.supabase_service_role_key:
            console.print("✅ Supabase service role key configured")
        else:
            console.print("ℹ️  No service role key (CLI commands need one)")

        console.print("\n[green]All checks passed![/green]")

    except Exception as e:
        console.print(f"\n[red]❌ Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with required variables.[/dim]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from boldmove import __version__

    console.print(f"BoldMove version {__version__}")


@app.command()
def db() -> None:
    """Check database connection and journey tables."""
    from boldmove.db.client import get_service_client
    from journey import store

    console.print("\n[bold]Database Connection Check[/bold]\n")

    try:
        client = get_service_client()
        console.print("✅ Connected to Supabase")

        tables = [
            store.PROFILES,
            store.DREAMS,
            store.SESSIONS,
            store.EXCHANGES,
            store.ROADMAPS,
            store.ACTIONS,
            store.DEEP_DIVES,
        ]

        console.print("\n[bold]Table Status:[/bold]")
        for table in tables:
            try:
                result = client.table(table).select("*", count="exact").limit(0).execute()
                count = result.count if hasattr(result, "count") else "?"
                console.print(f"  ✅ {table}: {count} rows")
            except Exception as e:
                console.print(f"  ❌ {table}: {e}")

        console.print("\n[green]Database check complete![/green]")

    except Exception as e:
        console.print(f"\n[red]❌ Database connection failed: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload for development"),
) -> None:
    """Start the journey API server."""
    import os

    import uvicorn

    # Hosting platforms set PORT
    actual_port = int(os.environ.get("PORT", port))

    console.print("\n[bold green]BoldMove API[/bold green]")
    console.print(f"Starting server on http://localhost:{actual_port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    uvicorn.run(
        "boldmove.web.app:app",
        host="0.0.0.0",
        port=actual_port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
