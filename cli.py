import typer
from rich.console import Console
from rich.table import Table
from typing import Optional
from pathlib import Path
import json
import time

from studypack.config import get_settings
from studypack.database import drop_db
from studypack.errors import EmptyResultError, StudyPackError
from studypack.logging import configure_logging
from studypack.schemas import StudySetCreate, UserCreate
from studypack.services import Services
from studypack import crud

app = typer.Typer(help="Study Pack Scheduler CLI - daily spaced repetition packs")
console = Console()


def _services() -> Services:
    return Services(get_settings())


@app.callback()
def main():
    """Configure logging before any command runs"""
    configure_logging(get_settings().log_level)


@app.command()
def init():
    """Initialize database tables"""
    services = _services()
    try:
        services.init_db()
        console.print("[green]✓[/green] Database initialized successfully!")
    finally:
        services.close()


@app.command()
def reset_db():
    """Delete all data and reinitialize database (WARNING: irreversible!)"""
    confirm = typer.confirm("⚠️  This will DELETE ALL DATA. Are you sure?")
    if not confirm:
        console.print("[yellow]Cancelled.[/yellow]")
        return

    services = _services()
    try:
        console.print("[yellow]Dropping all tables...[/yellow]")
        drop_db(services.engine)
        console.print("[yellow]Recreating tables...[/yellow]")
        services.init_db()
        console.print("[green]✓[/green] Database reset complete! All data deleted.")
    finally:
        services.close()


@app.command()
def create_user(
    email: str = typer.Option(..., prompt="Email"),
    name: str = typer.Option(..., prompt="Full name")
):
    """Create a learner account"""
    services = _services()
    db = services.session_factory()
    try:
        if crud.get_user_by_email(db, email):
            console.print(f"[red]✗[/red] A user with email {email} already exists")
            raise typer.Exit(code=1)
        user = crud.create_user(db, UserCreate(email=email, full_name=name))
        console.print(f"[green]✓[/green] User created successfully! User ID: {user.id}")
    finally:
        db.close()
        services.close()


@app.command()
def import_study_set(
    user_id: int = typer.Option(..., prompt="User ID"),
    file_path: Path = typer.Option(..., prompt="Study set file (.json)", exists=True, dir_okay=False)
):
    """Import a generated study set (title, topics, flashcards, mcqs) from JSON"""
    services = _services()
    db = services.session_factory()
    try:
        raw = json.loads(file_path.read_text(encoding="utf-8"))
        data = StudySetCreate(user_id=user_id, **raw)
        study_set = crud.create_study_set(db, data)

        console.print(f"[green]✓[/green] Study set imported! ID: {study_set.id}")
        console.print(f"  Topics: {', '.join(study_set.topics)}")
        console.print(f"  Added {len(data.flashcards)} flashcards and {len(data.mcqs)} MCQs")
    except StudyPackError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(code=1)
    finally:
        db.close()
        services.close()


@app.command()
def delete_study_set(user_id: int, study_set_id: int):
    """Delete a study set together with all of its items"""
    services = _services()
    db = services.session_factory()
    try:
        crud.delete_study_set(db, study_set_id, user_id)
        console.print(f"[green]✓[/green] Study set {study_set_id} deleted")
    except StudyPackError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        db.close()
        services.close()


@app.command()
def daily(
    user_id: int,
    force: bool = typer.Option(False, "--force", help="Generate even if today's pack exists")
):
    """Generate today's study pack for a user"""
    services = _services()
    try:
        result = services.orchestrator.generate_daily(user_id, force=force)
        result.raise_for_empty()

        if result.status == "already_generated":
            console.print(f"[yellow]{result.message}[/yellow] (session {result.session.id})")
            return

        pack = result.pack
        console.print(f"\n[green]✓[/green] [bold]{result.message}[/bold] (session {result.session.id})")
        console.print(
            f"  Due: {pack.breakdown.due_count}  Weak topics: {pack.breakdown.weak_topic_count}  "
            f"New: {pack.breakdown.new_count}"
        )
        if pack.weak_topics:
            console.print(f"  Weak topics: {', '.join(t.topic for t in pack.weak_topics)}")

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#", justify="right")
        table.add_column("Item", style="cyan")
        table.add_column("Type", style="green")
        table.add_column("Difficulty", justify="right")
        table.add_column("Due", style="blue")
        for i, item in enumerate(pack.items, start=1):
            table.add_row(
                str(i),
                str(item.item_id),
                item.item_type,
                str(item.difficulty),
                item.due_at.strftime("%Y-%m-%d %H:%M")
            )
        console.print(table)
    except EmptyResultError as e:
        console.print(f"[yellow]{e}[/yellow]")
    except StudyPackError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(code=1)
    finally:
        services.close()


@app.command()
def run_batch():
    """Generate daily packs for all users"""
    services = _services()
    try:
        report = services.orchestrator.run_daily_batch()
        console.print(
            f"[green]✓[/green] Batch finished: {len(report.succeeded)} ok, "
            f"{len(report.skipped)} timed out, {len(report.failures)} failed"
        )
        for failure in report.failures:
            console.print(f"  [red]✗[/red] user {failure.user_id}: {failure.error_type}: {failure.cause}")
    finally:
        services.close()


@app.command()
def respond(
    user_id: int,
    item_id: int,
    item_type: str = typer.Option(..., help="flashcard or mcq"),
    correct: bool = typer.Option(..., "--correct/--incorrect"),
    ease: Optional[int] = typer.Option(None, help="Ease rating 1-4 (default 3)"),
    session_id: Optional[int] = typer.Option(None, help="Daily session the answer belongs to")
):
    """Record a graded answer and reschedule the item"""
    services = _services()
    try:
        outcome = services.recorder.record_response(
            user_id, item_id, item_type, correct, ease_rating=ease, session_id=session_id
        )
        item = outcome.item
        console.print(f"[green]✓[/green] Response recorded for {item.item_type} {item.item_id}")
        console.print(f"  Next review: {item.due_at.strftime('%Y-%m-%d %H:%M')} (in {item.interval_days} days)")
        console.print(f"  Ease factor: {item.ease_factor}  Difficulty: {item.difficulty}")
    except StudyPackError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        services.close()


@app.command()
def due(
    user_id: int,
    item_type: str = typer.Option("both", help="flashcard, mcq or both"),
    limit: int = typer.Option(50)
):
    """List items due for review"""
    services = _services()
    try:
        items = services.content_store.get_due_items(user_id, item_type, limit)
        if not items:
            console.print("[yellow]Nothing due right now.[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Item", style="cyan")
        table.add_column("Type", style="green")
        table.add_column("Due", style="blue")
        table.add_column("Difficulty", justify="right")
        table.add_column("Topics", style="yellow")
        for item in items:
            table.add_row(
                str(item.item_id),
                item.item_type,
                item.due_at.strftime("%Y-%m-%d %H:%M"),
                str(item.difficulty),
                ", ".join(item.topics)
            )
        console.print(table)
    except StudyPackError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        services.close()


@app.command()
def weak_topics(
    user_id: int,
    limit: int = typer.Option(10),
    min_attempts: int = typer.Option(3)
):
    """Show topics with low 7-day accuracy"""
    services = _services()
    try:
        rows = services.tracker.weak_topics(user_id, limit=limit, min_attempts=min_attempts)
        if not rows:
            console.print("[green]No weak topics.[/green]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Topic", style="cyan")
        table.add_column("7-day accuracy", justify="right")
        table.add_column("Attempts", justify="right")
        for row in rows:
            table.add_row(row.topic, f"{row.accuracy_7day:.1f}%", str(row.total_attempts))
        console.print(table)
    finally:
        services.close()


@app.command()
def recalc_topics(user_id: Optional[int] = typer.Option(None, help="Only this user")):
    """Recompute rolling topic accuracy"""
    services = _services()
    try:
        report = services.orchestrator.run_topic_recalculation([user_id] if user_id else None)
        console.print(f"[green]✓[/green] Recalculated topics for {len(report.succeeded)} users")
        for failure in report.failures:
            console.print(f"  [red]✗[/red] user {failure.user_id}: {failure.cause}")
    finally:
        services.close()


@app.command()
def stats(user_id: int, days: int = typer.Option(7)):
    """Study statistics for the last N days"""
    services = _services()
    try:
        study = services.stats.get_study_stats(user_id, days)
        scheduler = services.stats.get_scheduler_stats(user_id)

        console.print(f"\n[bold]Last {days} days[/bold]")
        console.print(f"  Responses: {study.total_responses} ({study.correct_responses} correct)")
        console.print(f"  Accuracy: {study.accuracy}%")
        console.print(f"  Avg response time: {study.avg_response_time_ms} ms")
        console.print(f"  Active days: {study.active_days}")
        console.print(f"  Study streak: {services.stats.study_streak(user_id)} days")

        console.print("\n[bold]Daily packs (30 days)[/bold]")
        console.print(f"  Generated: {scheduler.daily_sessions}, completed: {scheduler.completed_daily_sessions}")
        if scheduler.avg_daily_accuracy is not None:
            console.print(f"  Avg accuracy: {scheduler.avg_daily_accuracy}%")
    finally:
        services.close()


@app.command()
def preview(user_id: int, days: int = typer.Option(7)):
    """Upcoming review load per day"""
    services = _services()
    try:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Date", style="cyan", width=12)
        table.add_column("Items", justify="right")
        table.add_column("Flashcards", justify="right", style="green")
        table.add_column("MCQs", justify="right", style="yellow")
        for day in services.stats.schedule_preview(user_id, days):
            table.add_row(day.date.isoformat(), str(day.item_count), str(day.flashcards), str(day.mcqs))
        console.print(table)
    finally:
        services.close()


@app.command()
def complete_session(
    session_id: int,
    completed: Optional[int] = typer.Option(None, help="Items completed"),
    correct: Optional[int] = typer.Option(None, help="Items answered correctly")
):
    """Mark a study session as completed"""
    services = _services()
    try:
        session = services.orchestrator.complete_session(session_id, completed, correct)
        console.print(
            f"[green]✓[/green] Session {session.id} completed: "
            f"{session.items_correct}/{session.items_completed} correct of {session.items_total}"
        )
    except StudyPackError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        services.close()


@app.command()
def serve():
    """Run the recurring jobs until interrupted"""
    services = _services()
    settings = services.settings
    try:
        services.jobs.start()
        console.print(
            f"[green]✓[/green] Scheduler running (daily packs at "
            f"{settings.daily_schedule_hour:02d}:{settings.daily_schedule_minute:02d} {settings.scheduler_timezone}). "
            "Press Ctrl+C to stop."
        )
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("[yellow]Stopping scheduler...[/yellow]")
    finally:
        services.close()


if __name__ == "__main__":
    app()
