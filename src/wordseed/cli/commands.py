"""CLI commands for wordseed.

Commands:
- init-db: Create the SQLite database
- add-word: Add a vocabulary concept
- add-known: Add words the learner already knows
- next: Show the next practice item
- understand: Move a new concept into review
- practice: Interactive practice loop
- status: Review progress per concept
- explain: Regenerate explanations for a concept
- pregenerate: Stock unused questions for a learner
- usage: LLM usage per query type
- serve: Run the Web API
"""

import asyncio
import sqlite3

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wordseed.config.app_config import load_app_config
from wordseed.core.answer_pipeline import Feedback
from wordseed.core.practice import PracticeEngine, build_llm_client
from wordseed.core.reference_data import load_hsk_registry
from wordseed.core.scheduler import PracticeItem
from wordseed.core.srs import format_question_type
from wordseed.db import concepts_repository, usage_repository
from wordseed.db.concepts_repository import ConceptNotFoundError, Scope
from wordseed.db.database import init_db

app = typer.Typer(
    name="wordseed",
    help="Adaptive vocabulary practice with LLM-generated, vocabulary-constrained quizzes.",
    no_args_is_help=True,
)

console = Console()

USER_OPTION = typer.Option("default", "--user", "-u", help="Learner id")
LANGUAGE_OPTION = typer.Option("zh", "--language", "-l", help="Target language: zh, ja, en, sv")


def _open_db() -> None:
    init_db(load_app_config().db_path)


def _engine(provider: str | None = None) -> PracticeEngine:
    config = load_app_config()
    return PracticeEngine(build_llm_client(config, provider), config=config.practice)


def _check_language(language: str) -> None:
    supported = load_app_config().practice.supported_languages
    if language not in supported:
        console.print(f"[red]✗ Unsupported language: {language}[/red]")
        console.print(f"  Supported: {', '.join(supported)}")
        raise typer.Exit(code=1)


def _print_feedback(feedback: Feedback) -> None:
    if feedback.status == "hard_error":
        console.print(f"[red]✗ {feedback.message}[/red]")
        return
    if feedback.status == "soft_error":
        console.print(f"[yellow]⚠ {feedback.message}[/yellow]")

    if feedback.correct:
        console.print("[green]✓ Correct![/green]")
    elif feedback.correct is False:
        console.print("[red]✗ Not quite.[/red]")
        if feedback.canonical_answer:
            console.print(f"  [dim]answer:[/dim] {feedback.canonical_answer}")

    if feedback.explanation:
        console.print(f"  [dim]{feedback.explanation}[/dim]")
    if feedback.critique is not None:
        console.print(f"  {feedback.critique.feedback}")
        if feedback.critique.improved:
            console.print(f"  [dim]better:[/dim] {feedback.critique.improved}")
    if feedback.record is not None:
        console.print(f"  [dim]tier:[/dim] {feedback.record.tier}")


def _print_item(item: PracticeItem) -> None:
    if item.kind == "nothing":
        console.print("[green]Nothing to practice right now.[/green]")
        return

    concept = item.concept
    assert concept is not None
    if item.kind == "first_encounter":
        lines = [f"[bold]{concept.word}[/bold]"]
        if concept.pinyin:
            lines.append(concept.pinyin)
        lines.append(concept.meaning)
        lines.extend(f"[dim]• {e}[/dim]" for e in concept.explanations)
        console.print(Panel("\n".join(lines), title=f"New word #{concept.id}", expand=False))
        return

    assert item.record is not None
    console.print(
        f"[blue]Review[/blue] {concept.word} "
        f"[dim]({format_question_type(item.record.question_type)}, tier {item.record.tier})[/dim]"
    )


# =============================================================================
# COMMANDS
# =============================================================================


@app.command(name="init-db")
def init_db_command() -> None:
    """Create the database and tables."""
    _open_db()
    console.print(f"[green]✓ Database ready:[/green] {load_app_config().db_path}")


@app.command(name="add-word")
def add_word(
    word: str = typer.Argument(..., help="Word in the target language"),
    meaning: str = typer.Option(..., "--meaning", "-m", help="Meaning in your language"),
    pinyin: str | None = typer.Option(None, "--pinyin", "-p", help="Reading (Chinese)"),
    pos: str = typer.Option("other", "--pos", help="Part of speech"),
    explanation: list[str] = typer.Option([], "--explanation", "-e", help="Explanation (repeatable)"),
    user: str = USER_OPTION,
    language: str = LANGUAGE_OPTION,
) -> None:
    """Add a vocabulary concept."""
    _check_language(language)
    _open_db()

    try:
        concept = concepts_repository.insert_concept(
            Scope(user, language),
            word=word,
            meaning=meaning,
            pinyin=pinyin,
            part_of_speech=pos,
            explanations=list(explanation),
        )
    except sqlite3.IntegrityError:
        console.print(f"[yellow]⚠ Already in vocabulary: {word}[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Added #{concept.id}:[/green] {concept.word} ({concept.meaning})")


@app.command(name="add-known")
def add_known(
    words: list[str] = typer.Argument(..., help="Words you already know"),
    user: str = USER_OPTION,
    language: str = LANGUAGE_OPTION,
) -> None:
    """Add words at full understanding (they never enter review)."""
    _check_language(language)
    _open_db()
    added = concepts_repository.mark_words_as_known(Scope(user, language), words)
    console.print(f"[green]✓ Added {added} known word(s)[/green]")


@app.command(name="next")
def next_item(
    user: str = USER_OPTION,
    language: str = LANGUAGE_OPTION,
) -> None:
    """Show the next practice item without answering it."""
    _open_db()
    _print_item(_engine().get_next_practice_item(Scope(user, language)))


@app.command()
def understand(
    concept_id: int = typer.Argument(..., help="Concept id"),
) -> None:
    """Mark a new concept as understood and schedule its reviews."""
    _open_db()
    result = _engine().mark_understood(concept_id)
    if result.status != "ok":
        console.print(f"[red]✗ {result.message}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Scheduled {len(result.records or [])} review track(s)[/green]")


@app.command()
def practice(
    user: str = USER_OPTION,
    language: str = LANGUAGE_OPTION,
    provider: str | None = typer.Option(None, "--provider", help="LLM provider override"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum items this session"),
) -> None:
    """Interactive practice session.

    Reviews due items first, then introduces new words. Type 'q' to stop.
    """
    _open_db()
    engine = _engine(provider)
    scope = Scope(user, language)

    for _ in range(limit):
        item = engine.get_next_practice_item(scope)
        _print_item(item)
        if item.kind == "nothing":
            return

        assert item.concept is not None
        if item.kind == "first_encounter":
            if not typer.confirm("Got it?", default=True):
                return
            engine.mark_understood(item.concept.id)
            continue

        assert item.record is not None
        content = engine.get_or_generate_content(item.concept.id, item.record.question_type)

        if content.status == "hard_error":
            console.print(f"[red]✗ {content.message}[/red]")
            raise typer.Exit(code=1)

        if content.fallback_mode == "sentence":
            console.print(f"[yellow]{content.message}[/yellow]")
            raw = typer.prompt("Sentence").strip()
            if raw.lower() == "q":
                return
            _print_feedback(engine.evaluate_sentence(item.record.ref, raw))
            continue

        if item.record.question_type == "pinyin":
            console.print(f"[bold]{item.concept.word}[/bold]  type the pinyin (tone marks or numbers)")
            raw = typer.prompt("Pinyin").strip()
            if raw.lower() == "q":
                return
            _print_feedback(engine.answer_question(None, raw, item.record.ref))
            continue

        question = content.question
        assert question is not None
        console.print(f"[bold]{question.question_text}[/bold]")
        for idx, option in enumerate(question.options):
            console.print(f"  {idx}. {option}")
        hint = "yes/no" if question.question_type == "yes_no" else f"0-{len(question.options) - 1}"
        raw = typer.prompt(f"Answer ({hint})").strip()
        if raw.lower() == "q":
            return
        _print_feedback(engine.answer_question(question.id, raw, item.record.ref))


@app.command()
def status(
    user: str = USER_OPTION,
    language: str = LANGUAGE_OPTION,
) -> None:
    """Show review progress for every concept."""
    _open_db()
    statuses = _engine().list_review_status(Scope(user, language))
    hsk = load_hsk_registry() if language == "zh" else None

    if not statuses:
        console.print("[dim]No words yet. Add some with 'wordseed add-word'.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Word")
    if hsk is not None:
        table.add_column("HSK", justify="center")
    table.add_column("Tracks")
    table.add_column("State", justify="center")

    for entry in statuses:
        concept = entry.concept
        if entry.mastered:
            state = "[green]mastered[/green]"
        elif concept.paused:
            state = "[dim]paused[/dim]"
        elif not entry.tracks:
            state = "known" if concept.understanding >= 100 else "new"
        else:
            state = "learning"

        tracks = ", ".join(f"{t.label} {t.percent}% ({t.due_in})" for t in entry.tracks)
        row = [str(concept.id), concept.word]
        if hsk is not None:
            row.append(hsk.lookup(concept.word) or "-")
        row.extend([tracks or "-", state])
        table.add_row(*row)

    console.print(table)


@app.command()
def explain(
    concept_id: int = typer.Argument(..., help="Concept id"),
    provider: str | None = typer.Option(None, "--provider", help="LLM provider override"),
) -> None:
    """Regenerate explanations using only known vocabulary."""
    _open_db()
    try:
        explanations = _engine(provider).regenerate_explanations(concept_id)
    except ConceptNotFoundError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    for explanation in explanations:
        console.print(f"  • {explanation}")


@app.command()
def pregenerate(
    user: str = USER_OPTION,
    language: str = LANGUAGE_OPTION,
    provider: str | None = typer.Option(None, "--provider", help="LLM provider override"),
) -> None:
    """Generate questions ahead of time for words in review."""
    _open_db()
    engine = _engine(provider)
    result = asyncio.run(engine.pregenerate(Scope(user, language)))

    console.print(
        f"[green]✓ Generated {result.generated} question(s)[/green] "
        f"[dim]({result.jobs} job(s))[/dim]"
    )
    for error in result.errors:
        console.print(f"  [yellow]⚠ {error}[/yellow]")
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def usage(
    user: str | None = typer.Option(None, "--user", "-u", help="Only calls made for this learner"),
) -> None:
    """Show LLM calls and tokens per query type."""
    _open_db()
    rows = usage_repository.summarize_usage(user)
    if not rows:
        console.print("[dim]No LLM calls recorded.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Query type", style="cyan")
    table.add_column("Calls", justify="right")
    table.add_column("Input tokens", justify="right")
    table.add_column("Output tokens", justify="right")
    for row in rows:
        table.add_row(row.query_type, str(row.calls), str(row.input_tokens), str(row.output_tokens))
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Port"),
) -> None:
    """Run the Web API."""
    import uvicorn

    uvicorn.run("wordseed.web.api:app", host=host, port=port)


if __name__ == "__main__":
    app()
