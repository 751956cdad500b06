"""CLI entry point for brain."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import typer
from rich import print as rprint
from rich.markup import escape

from brain import __version__
from brain.ai.client import AIClientError
from brain.config import Config
from brain.git.analyzer import GitError, NotAGitRepositoryError
from brain.service import BrainService, ConfigValueError
from brain.storage.models import WorkNote
from brain.storage.store import StorageError

app = typer.Typer(help="Capture your current thoughts with git context and resume later.")
config_app = typer.Typer(help="Manage configuration settings.")
app.add_typer(config_app, name="config")

CONFIG_HELP = """\
Available configuration keys:
  openai-key     Your OpenAI API key (required for AI features)
  max-commits    Number of recent commits to analyze (default: 10)
  ai-model       OpenAI model to use (default: gpt-4)
  enable-ai      Enable/disable AI analysis (true/false)"""


def format_time_ago(timestamp: str, now: datetime | None = None) -> str:
    """Render an ISO timestamp as '3 hours ago' style text."""
    try:
        then = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return timestamp
    if then.tzinfo is None:
        then = then.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)

    seconds = max(0, int((now - then).total_seconds()))
    days, hours, minutes = seconds // 86400, seconds // 3600, seconds // 60
    if days > 0:
        return f"{days} day{'' if days == 1 else 's'} ago"
    if hours > 0:
        return f"{hours} hour{'' if hours == 1 else 's'} ago"
    return f"{minutes} minute{'' if minutes == 1 else 's'} ago"


def _service() -> BrainService:
    config = Config.load()
    issues = config.validate()
    if issues:
        for issue in issues:
            rprint(f"[red]Config error: {escape(issue)}[/red]")
        raise typer.Exit(1)

    service = BrainService(config)
    try:
        migrated = service.initialize()
    except StorageError as e:
        rprint(f"[red]{escape(str(e))}[/red]")
        rprint(f"Check that {config.storage_path} is writable or set BRAIN_STORAGE_PATH.")
        raise typer.Exit(1)

    if migrated:
        rprint(f"Migrated {migrated} legacy context(s) to include repository information")
    return service


def _first_run_hint(service: BrainService) -> None:
    if service.stats()["total_notes"] == 0 and not service.ai_available:
        rprint("Welcome to brain!")
        rprint("  For AI analysis, set your OpenAI API key:")
        rprint("  brain config set openai-key sk-your-key-here")
        rprint("  (brain still saves git context without AI)\n")


def _render_note(note: WorkNote) -> None:
    rprint(
        f"\n[bold]Last saved:[/bold] {format_time_ago(note.timestamp)} "
        f"on {escape(note.git_context.current_branch)}"
    )
    rprint(f"[dim]{escape(note.repository_info.path)}[/dim]\n")
    rprint(f'[bold]Your thoughts:[/bold] "{escape(note.message)}"\n')

    ai = note.ai_interpretation
    if ai is None:
        return
    rprint("[bold]AI analysis:[/bold]")
    rprint(f"  {escape(ai.summary)}\n")
    rprint("[bold]Technical context:[/bold]")
    rprint(f"  {escape(ai.technical_context)}\n")
    if ai.suggested_next_steps:
        rprint("[bold]Suggested next steps:[/bold]")
        for i, step in enumerate(ai.suggested_next_steps, 1):
            rprint(f"  {i}. {escape(step)}")
        rprint("")
    if ai.related_files:
        rprint("[bold]Related files:[/bold]")
        rprint(f"  {escape(', '.join(ai.related_files))}\n")
    rprint(f"Confidence: {round(ai.confidence_score * 100)}%\n")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"brain v{__version__}")


@app.command()
def save(
    message: str = typer.Argument(help="What you are working on right now"),
    no_ai: bool = typer.Option(False, "--no-ai", help="Skip AI analysis (works offline)"),
) -> None:
    """Capture the current git context together with your thoughts."""
    service = _service()
    _first_run_hint(service)

    try:
        rprint("Analyzing current context...")
        result = service.save(message, use_ai=not no_ai)
    except NotAGitRepositoryError:
        rprint("[red]Error: Not in a git repository[/red]")
        rprint("  brain requires a git repository to analyze context.")
        rprint("  Navigate to a repository (or run git init), then try again.")
        raise typer.Exit(1)
    except (GitError, ValueError) as e:
        rprint(f"[red]Error saving context: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if result.ai_error:
        rprint("[yellow]AI analysis failed, saved context without AI interpretation[/yellow]")
        rprint(f"  {escape(result.ai_error)}")

    note = result.note
    changes = note.git_context.working_directory_changes
    rprint("[green]Context saved successfully[/green]")
    rprint(f"  Id: {note.id}")
    rprint(f"  Branch: {escape(note.git_context.current_branch)}")
    rprint(f"  Recent commits: {len(note.git_context.recent_commits)}")
    rprint(f"  Working directory changes: {changes.total}")
    if note.ai_interpretation:
        rprint(f"  AI analysis: confidence {round(note.ai_interpretation.confidence_score * 100)}%")


@app.command()
def resume(
    raw: bool = typer.Option(False, "--raw", help="Print the stored JSON"),
    all_repos: bool = typer.Option(False, "--all", help="Ignore the current repository"),
) -> None:
    """Show your last saved context for this repository."""
    service = _service()
    note = service.resume(all_repositories=all_repos)

    if note is None:
        rprint("No previous context found")
        rprint("  Use 'brain save \"your message\"' to capture your first context.")
        return

    if raw:
        typer.echo(json.dumps(note.to_dict(), indent=2))
        return

    _render_note(note)

    try:
        current = service.git.analyze(5)
    except GitError:
        rprint("  (Unable to read current git status)")
        return

    changes = current.working_directory_changes
    rprint("[bold]Current status:[/bold]")
    rprint(f"  Branch: {escape(current.current_branch)}")
    if changes.staged:
        rprint(f"  Staged: {escape(', '.join(changes.staged))}")
    if changes.unstaged:
        rprint(f"  Unstaged: {escape(', '.join(changes.unstaged))}")
    if changes.untracked:
        rprint(f"  Untracked: {escape(', '.join(changes.untracked))}")
    if changes.total == 0:
        rprint("  Working directory clean")


@app.command("list")
def list_notes(
    count: int = typer.Argument(5, help="Number of contexts to show"),
    branch: str = typer.Option(None, "--branch", help="Filter contexts by git branch"),
    all_repos: bool = typer.Option(False, "--all", help="Include every repository"),
) -> None:
    """Show recent contexts."""
    service = _service()
    try:
        notes = service.list_notes(count, branch=branch, all_repositories=all_repos)
    except ValueError as e:
        rprint(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not notes:
        rprint(f"No contexts found for branch: {escape(branch)}" if branch else "No contexts found")
        rprint("  Use 'brain save \"your message\"' to capture your first context.")
        return

    title = f"Recent contexts on {escape(branch)}:" if branch else "Recent contexts:"
    rprint(f"\n[bold]{title}[/bold]\n")
    for note in notes:
        marker = " [cyan](AI)[/cyan]" if note.ai_interpretation else ""
        rprint(
            f"\\[{format_time_ago(note.timestamp)}] "
            f"{escape(note.git_context.current_branch)}{marker}  [dim]{note.id}[/dim]"
        )
        rprint(f'  "{escape(note.message)}"\n')


@app.command()
def delete(note_id: str = typer.Argument(help="Id of the context to delete")) -> None:
    """Delete a saved context."""
    service = _service()
    if not service.delete(note_id):
        rprint(f"[red]No context with id {escape(note_id)}[/red]")
        raise typer.Exit(1)
    rprint(f"[green]Deleted {escape(note_id)}[/green]")


@app.command()
def stats() -> None:
    """Show storage statistics."""
    service = _service()
    s = service.stats()
    rprint("[bold]brain statistics:[/bold]")
    rprint(f"  Total contexts: {s['total_notes']}")
    rprint(f"  Storage size:   {s['storage_size']} bytes")
    rprint(f"  Oldest:         {s['oldest_note'] or '-'}")
    rprint(f"  Newest:         {s['newest_note'] or '-'}")


@app.command()
def export(
    output: str = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout"),
    all_repos: bool = typer.Option(False, "--all", help="Include every repository"),
) -> None:
    """Export saved contexts as JSON."""
    service = _service()
    payload = service.export(all_repositories=all_repos)
    if output:
        Path(output).write_text(payload + "\n")
        rprint(f"[green]Exported to {escape(output)}[/green]")
    else:
        typer.echo(payload)


@app.command("check-ai")
def check_ai() -> None:
    """Verify the OpenAI key and model with a test request."""
    service = _service()
    try:
        service.check_ai()
    except AIClientError as e:
        rprint(f"[red]AI check failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    rprint("[green]AI connection OK[/green]")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Configuration key"),
    value: str = typer.Argument(help="New value"),
) -> None:
    """Set a configuration value."""
    service = _service()
    try:
        service.set_config(key, value)
    except ConfigValueError as e:
        rprint(f"[red]{escape(str(e))}[/red]")
        rprint(CONFIG_HELP)
        raise typer.Exit(1)
    shown = service.get_config(key)
    rprint(f"[green]Updated {key}: {escape(shown)}[/green]")


@config_app.command("get")
def config_get(key: str = typer.Argument(help="Configuration key")) -> None:
    """Print one configuration value."""
    service = _service()
    try:
        value = service.get_config(key)
    except ConfigValueError as e:
        rprint(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)
    typer.echo(f"{key}: {value}")


@config_app.command("list")
def config_list() -> None:
    """Show all configuration values."""
    service = _service()
    rprint("\n[bold]Current configuration:[/bold]\n")
    for key, value in service.list_config().items():
        typer.echo(f"{key}: {value}")


if __name__ == "__main__":
    app()
