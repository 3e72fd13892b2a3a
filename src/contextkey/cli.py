from __future__ import annotations
import asyncio
import base64
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from .bootstrap import build_app, configure_logging, select_provider
from .core.budget import BudgetReport, check_budget
from .core.models import Answer, Failure, StreamRecord, TransportKind
from .core.session import InputMode, QuerySession, compose_input
from .providers.discovery import list_models

app = typer.Typer(add_completion=False, help="Send captured context to a configured language-model provider.")
console = Console(soft_wrap=True, highlight=False)
err_console = Console(stderr=True, soft_wrap=True, highlight=False)

DEFAULT_CONFIG = Path("config/providers.yaml")

ConfigOpt = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Provider registry YAML.")
ProviderOpt = typer.Option(None, "--provider", "-p", help="Provider id (defaults to the active one).")
ContextOpt = typer.Option(None, "--context-file", help="File whose text is sent as context.")


@app.callback()
def main(ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging.")):
    ctx.obj = {"verbose": verbose}


def _load(ctx: typer.Context, config: Path, provider: Optional[str] = None):
    try:
        built = build_app(config)
    except (FileNotFoundError, ValueError) as e:
        err_console.print(f"[red]config:[/red] {escape(str(e))}")
        raise typer.Exit(2)

    verbose = bool((ctx.obj or {}).get("verbose"))
    level = (built["registry"].settings.get("logging") or {}).get("level", "WARNING")
    configure_logging("DEBUG" if verbose else str(level))

    try:
        cfg = select_provider(built["registry"], provider)
    except KeyError as e:
        err_console.print(f"[red]config:[/red] {escape(str(e.args[0]))}")
        raise typer.Exit(2)
    return built, cfg


def _read_context(path: Optional[Path]) -> str:
    return path.read_text(encoding="utf-8") if path else ""


def _print_budget(report: BudgetReport) -> None:
    if report.exceeds:
        err_console.print(f"[yellow]{report.describe()} - {report.warning}[/yellow]")
    else:
        err_console.print(f"[dim]{report.describe()}[/dim]")


def _print_failure(failure: Failure) -> None:
    err_console.print(f"[red]{escape('[' + failure.kind.value + ']')}[/red] {escape(failure.message)}")
    keys = failure.detail.get("available_keys")
    if keys:
        err_console.print(f"  available keys: {', '.join(keys)}", markup=False)
    for name in ("path", "status_code", "url", "missing"):
        if failure.detail.get(name):
            err_console.print(f"  {name}: {failure.detail[name]}", markup=False)


def _print_fragment(record: StreamRecord) -> None:
    console.print(record.text, end="", markup=False)


def _finish(result, streamed: bool) -> bool:
    if streamed:
        console.print("")
    if isinstance(result, Answer):
        if not streamed:
            console.print(result.text, markup=False)
        return True
    _print_failure(result)
    return False


@app.command()
def ask(
    ctx: typer.Context,
    question: str = typer.Argument(..., help="The question to ask."),
    config: Path = ConfigOpt,
    provider: Optional[str] = ProviderOpt,
    context_file: Optional[Path] = ContextOpt,
    image: List[Path] = typer.Option([], "--image", help="Image to attach (generate-stream providers only)."),
):
    """Send one question (plus optional context) and print the reply."""
    built, cfg = _load(ctx, config, provider)
    text = compose_input(_read_context(context_file), question)
    _print_budget(check_budget(text, cfg))

    images = [base64.b64encode(p.read_bytes()).decode("ascii") for p in image]
    streamed = cfg.transport is TransportKind.GENERATIVE_STREAM
    try:
        result = asyncio.run(built["dispatcher"].send(cfg, text, images=images, on_fragment=_print_fragment))
    except KeyboardInterrupt:
        err_console.print("\n[stream interrupted]", markup=False)
        raise typer.Exit(130)
    if not _finish(result, streamed):
        raise typer.Exit(1)


@app.command()
def budget(
    ctx: typer.Context,
    question: str = typer.Argument("", help="The question that would be asked."),
    config: Path = ConfigOpt,
    provider: Optional[str] = ProviderOpt,
    context_file: Optional[Path] = ContextOpt,
):
    """Estimate the token cost of a question against the provider's context limit."""
    _, cfg = _load(ctx, config, provider)
    report = check_budget(compose_input(_read_context(context_file), question), cfg)
    console.print(report.describe(), markup=False)
    if report.exceeds:
        console.print(f"[yellow]{report.warning}[/yellow]")


@app.command()
def providers(ctx: typer.Context, config: Path = ConfigOpt):
    """List configured providers; the active one is marked with '*'."""
    built, active = _load(ctx, config)
    for p in built["registry"]:
        mark = "*" if p.id == active.id else " "
        detail = p.model or p.endpoint
        console.print(f"{mark} {p.id}  {p.name}  [{p.transport.value}]  {detail}", markup=False)


@app.command()
def models(
    ctx: typer.Context,
    config: Path = ConfigOpt,
    provider: Optional[str] = ProviderOpt,
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Query this endpoint instead of a provider's."),
):
    """List the models a generate-stream backend offers."""
    if endpoint is None:
        _, cfg = _load(ctx, config, provider)
        endpoint = cfg.endpoint
    names = asyncio.run(list_models(endpoint))
    if not names:
        err_console.print(f"No models found at {endpoint}", markup=False)
        raise typer.Exit(1)
    for name in names:
        console.print(name, markup=False)


def _chat_turn(session: QuerySession, question: str) -> None:
    _print_budget(session.budget(question))
    streamed = session.config.transport is TransportKind.GENERATIVE_STREAM
    try:
        result = asyncio.run(session.ask(question, on_fragment=_print_fragment))
    except KeyboardInterrupt:
        # asyncio.run cancelled the call; the partial reply is not kept
        err_console.print("\n[stream interrupted]", markup=False)
        return
    _finish(result, streamed)


@app.command()
def chat(
    ctx: typer.Context,
    config: Path = ConfigOpt,
    provider: Optional[str] = ProviderOpt,
    context_file: Optional[Path] = ContextOpt,
    history: bool = typer.Option(True, "--history/--no-history", help="Send earlier turns with each question."),
):
    """Interactive conversation over one provider."""
    built, cfg = _load(ctx, config, provider)
    mode = InputMode.CONTEXT_AND_HISTORY if history else InputMode.CONTEXT_ONLY
    session = QuerySession(built["dispatcher"], cfg, context=_read_context(context_file), mode=mode)

    console.print(f"contextkey chat with {cfg.name}. Type /help for commands. Ctrl+C to quit.", markup=False)
    while True:
        try:
            user_input = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\nBye.")
            return

        if user_input in ("/exit", "/quit"):
            console.print("Bye.")
            return
        if user_input == "/help":
            console.print("Commands: /help, /budget, /exit, /quit", markup=False)
            continue
        if user_input == "/budget":
            console.print(session.budget("").describe(), markup=False)
            continue
        if not user_input:
            continue

        _chat_turn(session, user_input)


@app.command()
def serve(
    config: Path = ConfigOpt,
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
):
    """Serve the adapter over HTTP."""
    from .web.app import run

    run(config=config, host=host, port=port)

