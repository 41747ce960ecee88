from typing import Annotated

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from typer import Argument, Exit, Option, Typer

from .background import EmbeddingWorker
from .config import configure_logging
from .engine import open_engine
from .models import FAQ_MIN_SIMILARITY, FaqItem, SearchOptions, SearchResult
from .search import AnswerTier, answer_tier

app = Typer(help="Search FAQs, document chunks, documents and media.")

console = Console()

_TIER_STYLES = {
    AnswerTier.DIRECT: "bold green",
    AnswerTier.HEDGED: "bold yellow",
    AnswerTier.NONE: "bold red",
}


def _result_title(result: SearchResult) -> str:
    item = result.item
    if isinstance(item, FaqItem):
        return item.question
    for attr in ("name", "title", "file_name", "content"):
        value = getattr(item, attr, None)
        if value:
            text = str(value).replace("\n", " ")
            return text if len(text) <= 80 else text[:77] + "..."
    return str(item.id)


def _results_table(query: str, results: list[SearchResult]) -> Table:
    table = Table(title=f"Results for: {query}", title_justify="left")
    table.add_column("#", justify="right")
    table.add_column("Kind")
    table.add_column("Id")
    table.add_column("Match")
    table.add_column("Similarity", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    for rank, result in enumerate(results, start=1):
        source = result.source_document.name if result.source_document else ""
        table.add_row(
            str(rank),
            result.kind.value,
            str(result.item_id),
            _result_title(result),
            f"{result.similarity:.3f}",
            f"{result.score:.3f}",
            source,
        )
    return table


@app.callback()
def cli(
    log_level: Annotated[
        str,
        Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)."),
    ] = "WARNING",
) -> None:
    configure_logging(log_level.upper())


@app.command()
def search(
    query: Annotated[str, Argument(help="Free-text question to search for.")],
    limit: Annotated[int, Option("--limit", "-l", min=1, help="Maximum results.")] = 10,
    min_similarity: Annotated[
        float,
        Option("--min-similarity", help="Minimum raw similarity of a result."),
    ] = FAQ_MIN_SIMILARITY,
    faqs_only: Annotated[
        bool, Option("--faqs-only", help="Search FAQs only.")
    ] = False,
    db_path: Annotated[
        str | None, Option("--db-path", help="DuckDB file to search.")
    ] = None,
    as_json: Annotated[bool, Option("--json", help="Print raw JSON.")] = False,
) -> None:
    """Search every enabled source and print ranked results."""
    options = SearchOptions(
        limit=limit,
        min_similarity=min_similarity,
        include_documents=not faqs_only,
        include_chunks=not faqs_only,
        include_images=not faqs_only,
        include_graphs=not faqs_only,
    )
    engine, storage = open_engine(db_path)
    try:
        with console.status(status="Searching..."):
            results = engine.search(query, options)
        model = engine.provider.current_model()
    finally:
        engine.close()
        storage.close()

    if as_json:
        console.print_json(
            data={"query": query, "model": model, "results": [r.to_dict() for r in results]}
        )
        return
    if not results:
        console.print(f"[bold red]No results for[/] {query}")
        return
    console.print(_results_table(query, results))


@app.command("best-match")
def best_match(
    query: Annotated[str, Argument(help="Free-text question to answer.")],
    db_path: Annotated[
        str | None, Option("--db-path", help="DuckDB file to search.")
    ] = None,
) -> None:
    """Print the best FAQ answer and how confidently it may be shown."""
    engine, storage = open_engine(db_path)
    try:
        with console.status(status="Looking for the best answer..."):
            result = engine.find_best_match(query)
    finally:
        engine.close()
        storage.close()

    tier = answer_tier(result)
    if result is None or not isinstance(result.item, FaqItem):
        console.print(
            Panel(
                "No FAQ matched this question.",
                title="No match",
                title_align="left",
                border_style=_TIER_STYLES[AnswerTier.NONE],
            )
        )
        raise Exit(code=1)

    content = (
        f"**{result.item.question}**\n\n{result.item.answer}\n\n"
        f"similarity `{result.similarity:.3f}`, score `{result.score:.3f}`"
    )
    console.print(
        Panel(
            Markdown(content),
            title=f"Best match ({tier.value})",
            title_align="left",
            border_style=_TIER_STYLES[tier],
        )
    )


@app.command("embed-faqs")
def embed_faqs(
    db_path: Annotated[
        str | None, Option("--db-path", help="DuckDB file to update.")
    ] = None,
    max_retries: Annotated[
        int, Option("--max-retries", min=1, help="Attempts per FAQ.")
    ] = 3,
) -> None:
    """Embed every active FAQ that is missing question or answer embeddings."""
    engine, storage = open_engine(db_path)
    try:
        if not engine.provider.backend_active:
            console.print(
                "[bold red]No embedding backend configured.[/] "
                "Set GOOGLE_API_KEY or GEMINI_API_KEY."
            )
            raise Exit(code=1)

        pending = storage.list_faqs_missing_embeddings()
        if not pending:
            console.print("[bold green]All FAQs already have embeddings.[/]")
            return

        worker = EmbeddingWorker(engine.provider, storage, max_retries=max_retries)
        with worker, console.status(status=f"Embedding {len(pending)} FAQs..."):
            for faq in pending:
                worker.submit(faq.id)
            worker.join()
    finally:
        engine.close()
        storage.close()

    console.print(
        f"[bold green]Embedded {len(worker.completed)} FAQs[/], "
        f"[bold red]{len(worker.failures)} failed[/]"
    )
    for failure in worker.failures:
        console.print(f"  FAQ #{failure.faq_id}: {failure.error}")
    if worker.failures:
        raise Exit(code=1)


@app.command()
def serve(
    host: Annotated[str, Option("--host", help="Interface to bind.")] = "127.0.0.1",
    port: Annotated[int, Option("--port", help="Port to listen on.")] = 8000,
) -> None:
    """Run the HTTP API."""
    from .server import run_server

    run_server(host=host, port=port)
