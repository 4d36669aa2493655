"""Chat Gateway CLI."""

import typer
from rich.console import Console
from rich.table import Table

from chat_gateway import __version__
from chat_gateway.config import DEFAULT_PORT
from chat_gateway.models.catalog import (
    DEFAULT_MODELS,
    MODELS,
    PROVIDER_LABELS,
    fallback_candidates,
    is_restricted_model,
    max_tokens_ceiling,
)

app = typer.Typer(
    name="chat-gateway",
    help="Chat Gateway - normalized chat completions over two provider protocols",
    no_args_is_help=True,
)
console = Console()


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(DEFAULT_PORT, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload (dev)"),
):
    """Start the Chat Gateway server."""
    import uvicorn

    console.print(f"[green]Starting Chat Gateway on http://{host}:{port}[/green]")
    uvicorn.run(
        "chat_gateway.main:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def models():
    """List the model catalog with token ceilings and fallbacks."""
    table = Table(title="Chat Gateway Models")
    table.add_column("Provider", style="cyan")
    table.add_column("Model", style="green")
    table.add_column("Max tokens", justify="right", style="yellow")
    table.add_column("Restricted", style="magenta")
    table.add_column("Fallbacks", style="blue")

    for provider, infos in MODELS.items():
        for info in infos:
            model_id = info.id
            if model_id == DEFAULT_MODELS[provider]:
                model_id += " (default)"
            fallbacks = fallback_candidates(info.id)[1:]
            table.add_row(
                PROVIDER_LABELS[provider],
                model_id,
                str(max_tokens_ceiling(info.id)),
                "yes" if is_restricted_model(info.id) else "",
                " -> ".join(fallbacks),
            )

    console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"Chat Gateway v{__version__}")


if __name__ == "__main__":
    app()
