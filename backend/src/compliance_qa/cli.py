"""Typer CLI for document management, querying, and serving the API."""
from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

import typer
import uvicorn

from .errors import DocumentValidationError
from .ingestion import load_text
from .models import DocumentType, QAFailure
from .services import get_services

app = typer.Typer(help="CLI for the compliance document Q&A service")


@app.command()
def ingest(
    path: Path,
    title: str = typer.Option(..., help="Document title"),
    doc_type: DocumentType = typer.Option(DocumentType.POLICY, "--type", help="Document type"),
    tags: str = typer.Option("", help="Comma-separated tags"),
) -> None:
    """Store and index a document from the filesystem."""

    services = get_services()
    try:
        result = services.ingestor.upload(title, doc_type.value, load_text(path), tags)
    except DocumentValidationError as exc:
        typer.echo(f"Invalid document: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(
        f"Stored {result.document.id} ({result.document.title}) in {result.content_backend.value}; "
        f"indexed={result.indexed}"
    )


@app.command()
def ask(question: str, session_id: str | None = typer.Option(None, "--session-id")) -> None:
    """Ask a compliance question."""

    result = get_services().agent.run(question, session_id)
    if isinstance(result, QAFailure):
        typer.echo(f"{result.error}: {result.details}", err=True)
        raise typer.Exit(code=1)
    typer.echo(result.response)
    typer.echo(json.dumps({"session_id": result.session_id, "context": [asdict(c) for c in result.context]}, indent=2))


@app.command("list")
def list_documents() -> None:
    """List stored documents."""

    for record in get_services().ingestor.list_documents():
        typer.echo(f"{record.id}\t{record.type.value}\t{record.title}\t{','.join(record.tags)}")


@app.command()
def delete(doc_id: str) -> None:
    """Delete a document and its content."""

    get_services().ingestor.delete(doc_id)
    typer.echo(f"Deleted {doc_id}")


@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the HTTP API."""

    uvicorn.run("compliance_qa.server:app", host=host, port=port)


if __name__ == "__main__":
    app()
