"""
MCP Firewall CLI

Command-line interface for running the firewall in front of an MCP
filesystem server and for checking rule files offline.
"""

import asyncio
import sys
from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from mcpfirewall.config import configure_logging, get_settings
from mcpfirewall.policy.engine import PolicyEngine, load_rule_set
from mcpfirewall.policy.matcher import PatternMatcher
from mcpfirewall.proxy.backend import SubprocessBackend
from mcpfirewall.proxy.channels import (
    ClientOutput,
    StdioClientInput,
    open_stdout_writer,
)
from mcpfirewall.proxy.interceptor import FailMode, MessageInterceptor
from mcpfirewall.proxy.server import FirewallProxy

app = typer.Typer(
    name="mcpfirewall",
    help="Policy firewall for MCP filesystem servers",
    add_completion=False,
)

console = Console()

# stdout belongs to the JSON-RPC stream while the proxy runs
err_console = Console(stderr=True)

EXIT_ERROR = 2


def run_proxy(
    backend_args: list[str],
    rules_path: Path | None = None,
    fail_mode: FailMode | None = None,
) -> int:
    """
    Start the firewall on stdin/stdout and block until the backend exits.

    Args:
        backend_args: Appended verbatim to the backend command.
        rules_path: Rule file, overriding the configured one.
        fail_mode: Malformed-message handling, overriding the configured one.

    Returns:
        The backend's exit code.
    """
    settings = get_settings()
    configure_logging(settings.effective_log_level, settings.log_format)

    engine = PolicyEngine.from_file(rules_path or settings.resolved_rules_path)
    interceptor = MessageInterceptor(engine, fail_mode or settings.fail_mode)
    backend = SubprocessBackend(settings.backend_command + list(backend_args))

    async def serve() -> int:
        # The stdout pipe transport must belong to the running loop
        proxy = FirewallProxy(
            interceptor=interceptor,
            backend=backend,
            client_input=StdioClientInput(),
            client_output=ClientOutput(await open_stdout_writer()),
            read_chunk_size=settings.read_chunk_size,
        )
        return await proxy.run()

    return asyncio.run(serve())


def _start(
    backend_args: list[str],
    rules_path: Path | None = None,
    fail_mode: FailMode | None = None,
) -> int:
    try:
        return run_proxy(backend_args, rules_path, fail_mode)
    except FileNotFoundError as e:
        err_console.print(f"[red]Not found: {e}[/red]")
    except PermissionError as e:
        err_console.print(f"[red]Permission denied: {e}[/red]")
    except yaml.YAMLError as e:
        err_console.print(f"[red]Invalid YAML rule file: {e}[/red]")
    except ValueError as e:
        err_console.print(f"[red]Invalid configuration: {e}[/red]")
    except KeyboardInterrupt:
        return 130
    return EXIT_ERROR


def proxy_main() -> None:
    """
    Entry point that forwards every argument to the backend untouched.

    MCP clients launch the firewall as `mcp-firewall /allowed/dir ...`,
    exactly as they would launch the filesystem server itself.
    """
    sys.exit(_start(sys.argv[1:]))


@app.command(
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def run(
    ctx: typer.Context,
    rules: Path = typer.Option(None, "--rules", "-r", help="Rule file (JSON or YAML)"),
    fail_mode: str = typer.Option(None, "--fail-mode", help="Malformed messages: open or closed"),
):
    """
    Run the firewall in front of the filesystem server.

    Remaining arguments are passed to the server as allowed directories.

    Examples:
        mcpfirewall run ~/projects ~/notes
        mcpfirewall run --rules strict.yaml --fail-mode closed ~/projects
    """
    mode = None
    if fail_mode is not None:
        try:
            mode = FailMode(fail_mode.lower())
        except ValueError:
            err_console.print(f"[red]--fail-mode must be 'open' or 'closed', got {fail_mode!r}[/red]")
            raise typer.Exit(EXIT_ERROR)

    raise typer.Exit(_start(list(ctx.args), rules, mode))


@app.command()
def check(
    tool: str = typer.Option(..., "--tool", "-t", help="Tool name, e.g. read_text_file"),
    path: list[str] = typer.Option(None, "--path", "-p", help="Target path (repeatable)"),
    source: str = typer.Option(None, "--source", help="move_file source"),
    destination: str = typer.Option(None, "--destination", help="move_file destination"),
    rules: Path = typer.Option(None, "--rules", "-r", help="Rule file (JSON or YAML)"),
):
    """
    Evaluate a single tool call against a rule file.

    Exits with 1 when the call would be denied.

    Examples:
        mcpfirewall check -t read_text_file -p /home/me/.env
        mcpfirewall check -t move_file --source a.txt --destination secret.key
    """
    settings = get_settings()
    configure_logging(settings.effective_log_level, settings.log_format)

    arguments: dict[str, object] = {}
    if path:
        if len(path) == 1:
            arguments["path"] = path[0]
        else:
            arguments["paths"] = list(path)
    if source:
        arguments["source"] = source
    if destination:
        arguments["destination"] = destination

    try:
        engine = PolicyEngine.from_file(rules or settings.resolved_rules_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]✗ Could not load rules: {e}[/red]")
        raise typer.Exit(EXIT_ERROR)

    verdict = engine.evaluate(tool, arguments)

    if verdict.allowed:
        console.print(Panel.fit(
            f"Tool: [cyan]{escape(tool)}[/cyan]\n"
            f"Arguments: {escape(str(arguments))}\n"
            f"Verdict: [green]ALLOWED[/green]",
            title="Policy Check"
        ))
        return

    console.print(Panel.fit(
        f"Tool: [cyan]{escape(tool)}[/cyan]\n"
        f"Arguments: {escape(str(arguments))}\n"
        f"Verdict: [red]DENIED[/red] ({verdict.category.value})\n"
        f"Paths: {escape(', '.join(verdict.matched_paths))}\n"
        f"Patterns: {escape(', '.join(verdict.matched_patterns))}",
        title="Policy Check"
    ))
    raise typer.Exit(1)


@app.command()
def validate(
    rules: Path = typer.Option(None, "--rules", "-r", help="Rule file to validate"),
):
    """Validate a rule file and list its patterns."""
    rules_path = rules or get_settings().resolved_rules_path

    try:
        rule_set = load_rule_set(rules_path)
    except FileNotFoundError:
        console.print(f"[red]✗ File not found: {rules_path}[/red]")
        raise typer.Exit(1)
    except yaml.YAMLError as e:
        console.print(f"[red]✗ Invalid YAML in {rules_path}: {e}[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]✗ Invalid rule set in {rules_path}: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Rules ({rule_set.mode.value} mode)")
    table.add_column("Category", style="cyan")
    table.add_column("Pattern")
    table.add_column("Status")

    all_valid = True
    for category, patterns in (
        ("confidentiality", rule_set.confidentiality),
        ("integrity", rule_set.integrity),
    ):
        for pattern in patterns:
            if PatternMatcher.is_valid(pattern):
                status = "[green]ok[/green]"
            else:
                status = "[red]never matches[/red]"
                all_valid = False
            table.add_row(category, escape(pattern), status)

    console.print(table)

    if rule_set.pattern_count == 0:
        console.print(f"[yellow]⚠ No patterns in {rules_path}, every call will be allowed[/yellow]")

    if not all_valid:
        console.print(f"[red]✗ Invalid patterns in {rules_path}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Valid rule file: {rules_path}[/green]")


@app.command()
def version():
    """Show version information."""
    from mcpfirewall import __version__
    console.print(f"MCP Firewall v{__version__}")


if __name__ == "__main__":
    app()
