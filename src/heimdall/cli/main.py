"""
Main CLI entry point for Heimdall.

Provides the command-line interface using Click. The external CLI calls
`heimdall forward EVENT` for every hook event; everything else is for
people managing rules, the ingress, and agent trees.
"""

import asyncio as _asyncio
import json as _json
import logging as _logging
import pathlib as _pathlib
import typing as _typing

import click as _click
import pydantic as _pydantic
import rich.console as _rich_console
import rich.logging as _rich_logging
import rich.syntax as _rich_syntax
import rich.table as _rich_table
import rich.tree as _rich_tree
import yaml as _yaml

import heimdall
import heimdall.agents as agents
import heimdall.config as config
import heimdall.config.sources as config_sources
import heimdall.config.types as config_types
import heimdall.errors as errors
import heimdall.forward as forward
import heimdall.hooks as hooks
import heimdall.server as server
import heimdall.services as services

# Custom Click context settings for better help formatting
CONTEXT_SETTINGS: dict[str, _typing.Any] = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 100,
}

_logger = _logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_STATUS_STYLES = {
    agents.AgentStatus.RUNNING: "yellow",
    agents.AgentStatus.COMPLETED: "green",
    agents.AgentStatus.FAILED: "red",
    agents.AgentStatus.TERMINATED: "magenta",
}


def _run_async(coro: _typing.Coroutine[_typing.Any, _typing.Any, _typing.Any]) -> _typing.Any:
    """Run an async coroutine synchronously."""
    return _asyncio.run(coro)


def _configure_logging(
    logging_config: config_types.LoggingConfig | None,
    verbose: bool,
) -> None:
    """Send heimdall's loggers to stderr via rich, plus an optional file."""
    logger = _logging.getLogger("heimdall")
    # CliRunner invokes the group repeatedly in one process
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level_name = "debug" if verbose else (logging_config.level if logging_config else "info")
    logger.setLevel(level_name.upper())
    logger.propagate = False

    logger.addHandler(
        _rich_logging.RichHandler(
            console=_rich_console.Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
    )
    if logging_config is not None and logging_config.file is not None:
        log_file = logging_config.file.expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = _logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(_logging.Formatter(_LOG_FORMAT))
        logger.addHandler(file_handler)


def _get_settings(ctx: _click.Context) -> config.Settings:
    settings: config.Settings | None = ctx.obj.get("settings")
    if settings is None:
        raise _click.ClickException(str(ctx.obj["settings_error"]))
    return settings


def _get_services(ctx: _click.Context) -> services.Services:
    """Build the file-backed services once per invocation."""
    if "services" not in ctx.obj:
        try:
            ctx.obj["services"] = services.Services.from_settings(_get_settings(ctx))
        except errors.StoreError as e:
            raise _click.ClickException(str(e)) from None
    return ctx.obj["services"]


def _parse_event(name: str) -> hooks.HookEventType:
    try:
        return forward.parse_event_name(name)
    except ValueError:
        choices = ", ".join(e.value for e in hooks.HookEventType)
        raise _click.BadParameter(f"unknown event {name!r} (choose from {choices})") from None


@_click.group(context_settings=CONTEXT_SETTINGS)
@_click.version_option(heimdall.__version__, "-V", "--version", prog_name="heimdall")
@_click.option(
    "--verbose",
    is_flag=True,
    help="Enable debug logging",
)
@_click.pass_context
def cli(ctx: _click.Context, verbose: bool) -> None:
    """
    Heimdall - hook dispatcher and agent tracker.

    \b
    Examples:
        heimdall serve                       # Run the event ingress
        heimdall hooks add --name guard --event PreToolUse \\
            --matcher 'Bash(*rm -rf*)' --command 'exit 2'
        heimdall sync                        # Install forwarders in ~/.claude
        heimdall agents tree SESSION_ID      # Show a session's agent tree
    """
    ctx.ensure_object(dict)

    # Settings errors are reported lazily so `forward` can still fail open
    try:
        settings: config.Settings | None = config.Settings()
    except (config.ConfigFileError, _pydantic.ValidationError) as e:
        settings = None
        ctx.obj["settings_error"] = e

    ctx.obj["settings"] = settings
    _configure_logging(settings.logging if settings is not None else None, verbose)


# =============================================================================
# Ingress
# =============================================================================


async def _serve(ingress: server.HookServer) -> None:
    await ingress.start()
    try:
        await _asyncio.Event().wait()
    finally:
        await ingress.stop()


@cli.command()
@_click.option("--host", type=str, default=None, help="Interface to bind")
@_click.option("--port", type=int, default=None, help="Port to listen on")
@_click.pass_context
def serve(ctx: _click.Context, host: str | None, port: int | None) -> None:
    """Run the event ingress until interrupted."""
    settings = _get_settings(ctx)
    if host:
        settings.server.host = host
    if port:
        settings.server.port = port

    ingress = _get_services(ctx).create_server()
    _click.echo(f"Heimdall listening on {settings.server.base_url}", err=True)
    try:
        _run_async(_serve(ingress))
    except KeyboardInterrupt:
        _click.echo("Stopped.", err=True)
    except OSError as e:
        raise _click.ClickException(f"Cannot start server: {e}") from None


@cli.command(name="forward")
@_click.argument("event")
@_click.pass_context
def forward_cmd(ctx: _click.Context, event: str) -> None:
    """Forward one hook event from stdin to the ingress.

    This is the command written into the external CLI's settings. It prints
    the response JSON and exits 2 when the event is blocked, 0 otherwise.
    """
    raw_stdin = _click.get_text_stream("stdin").read()

    settings: config.Settings | None = ctx.obj.get("settings")
    server_config = settings.server if settings is not None else config_types.ServerConfig()

    try:
        event_type = forward.parse_event_name(event)
    except ValueError:
        _logger.warning("Unknown hook event %r, allowing", event)
        _click.echo(_json.dumps({"continue": True}))
        return

    payload, exit_code = forward.forward_event(
        event_type,
        raw_stdin,
        server_config.base_url,
        server_config.forward_timeout_seconds,
    )
    _click.echo(_json.dumps(payload))
    ctx.exit(exit_code)


# =============================================================================
# Configuration
# =============================================================================


@cli.group(name="config")
def config_cmd() -> None:
    """Configuration commands."""
    pass


@config_cmd.command(name="show")
@_click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@_click.pass_context
def config_show(ctx: _click.Context, as_json: bool) -> None:
    """Show effective configuration from all sources.

    Unknown keys (likely typos) are listed after the configuration.

    Examples:
        heimdall config show          # YAML
        heimdall config show --json   # JSON
    """
    settings = _get_settings(ctx)
    full_config = settings.to_display_dict()
    unknown = settings.collect_unknown_fields()

    if as_json:
        _click.echo(_json.dumps({**full_config, "unknown_fields": unknown}, indent=2))
        return

    yaml_text = _yaml.dump(full_config, default_flow_style=False, sort_keys=False)
    console = _rich_console.Console()
    console.print(
        _rich_syntax.Syntax(yaml_text, "yaml", theme="monokai", background_color="default")
    )
    for key in sorted(unknown):
        _click.echo(f"Warning: unknown config key '{key}'", err=True)


@config_cmd.command(name="path")
@_click.option("--all", "show_all", is_flag=True, help="Show all paths even if not found")
def config_path(show_all: bool) -> None:
    """Show configuration file paths and their status."""
    paths = [("User config", config_sources.get_user_config_path())]

    project_root = config.find_project_root()
    if project_root:
        paths.insert(0, ("Project config", config_sources.get_project_config_path(project_root)))

    for name, path in paths:
        exists = path.exists()
        if exists or show_all:
            status = "✓" if exists else "✗"
            _click.echo(f"{status} {name}: {path}")


# =============================================================================
# Hook rules
# =============================================================================


@cli.group(name="hooks")
def hooks_cmd() -> None:
    """Hook rule management commands."""
    pass


@hooks_cmd.command(name="list")
@_click.option("--event", "event_name", type=str, default=None, help="Only rules for this event")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def hooks_list(ctx: _click.Context, event_name: str | None, json_output: bool) -> None:
    """List hook rules."""
    event_type = _parse_event(event_name) if event_name else None
    rules = _get_services(ctx).rules.list(event_type)

    if json_output:
        _click.echo(_json.dumps([r.model_dump(mode="json") for r in rules], indent=2))
        return

    if not rules:
        _click.echo("No hook rules defined.")
        return

    table = _rich_table.Table(title="Hook Rules")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Event")
    table.add_column("Matcher")
    table.add_column("Scope")
    table.add_column("Enabled")
    table.add_column("Runs", justify="right")
    table.add_column("Last")
    for r in rules:
        table.add_row(
            str(r.id),
            r.name,
            r.event_type.value,
            r.matcher,
            r.scope if r.scope == "user" else f"project ({r.project_path})",
            "✓" if r.enabled else "✗",
            str(r.execution_count),
            r.last_result.value if r.last_result else "-",
        )
    _rich_console.Console().print(table)


@hooks_cmd.command(name="add")
@_click.option("--name", required=True, help="Rule name")
@_click.option("--event", "event_name", required=True, help="Event, e.g. PreToolUse")
@_click.option(
    "--matcher", default="*", show_default=True, help="'*', a tool name, or Tool(pattern)"
)
@_click.option("--command", "command", required=True, help="Shell command to run")
@_click.option("--timeout-ms", type=int, default=None, help="Kill the command after this long")
@_click.option(
    "--project",
    "project_path",
    type=_click.Path(file_okay=False, path_type=_pathlib.Path),
    default=None,
    help="Only apply inside this project",
)
@_click.option("--disabled", is_flag=True, help="Create the rule disabled")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def hooks_add(
    ctx: _click.Context,
    name: str,
    event_name: str,
    matcher: str,
    command: str,
    timeout_ms: int | None,
    project_path: _pathlib.Path | None,
    disabled: bool,
    json_output: bool,
) -> None:
    """Add a hook rule.

    Examples:
        heimdall hooks add --name no-rm --event PreToolUse \\
            --matcher 'Bash(*rm -rf*)' --command 'echo "no" >&2; exit 2'
    """
    settings = _get_settings(ctx)
    try:
        data = hooks.HookRuleCreate(
            name=name,
            event_type=_parse_event(event_name),
            matcher=matcher,
            command=command,
            timeout_ms=timeout_ms or settings.hooks.default_timeout_ms,
            enabled=not disabled,
            scope="project" if project_path else "user",
            project_path=str(project_path.resolve()) if project_path else None,
        )
    except _pydantic.ValidationError as e:
        raise _click.ClickException(str(e)) from None

    rule = _get_services(ctx).rules.create(data)
    if json_output:
        _click.echo(_json.dumps(rule.model_dump(mode="json"), indent=2))
    else:
        _click.echo(f"Created hook rule {rule.id}: {rule.name}")
        _click.echo("Run 'heimdall sync' to update the external CLI settings.")


@hooks_cmd.command(name="remove")
@_click.argument("rule_id", type=int)
@_click.pass_context
def hooks_remove(ctx: _click.Context, rule_id: int) -> None:
    """Delete a hook rule."""
    if not _get_services(ctx).rules.delete(rule_id):
        raise _click.ClickException(f"Hook rule not found: {rule_id}")
    _click.echo(f"Deleted hook rule {rule_id}")


def _set_enabled(ctx: _click.Context, rule_id: int, enabled: bool) -> None:
    try:
        rule = _get_services(ctx).rules.set_enabled(rule_id, enabled)
    except errors.RuleNotFoundError as e:
        raise _click.ClickException(str(e)) from None
    _click.echo(f"{'Enabled' if enabled else 'Disabled'} hook rule {rule.id}: {rule.name}")


@hooks_cmd.command(name="enable")
@_click.argument("rule_id", type=int)
@_click.pass_context
def hooks_enable(ctx: _click.Context, rule_id: int) -> None:
    """Enable a hook rule."""
    _set_enabled(ctx, rule_id, True)


@hooks_cmd.command(name="disable")
@_click.argument("rule_id", type=int)
@_click.pass_context
def hooks_disable(ctx: _click.Context, rule_id: int) -> None:
    """Disable a hook rule."""
    _set_enabled(ctx, rule_id, False)


@hooks_cmd.command(name="test")
@_click.argument("event_name", metavar="EVENT")
@_click.option("--tool", "tool_name", default=None, help="Tool name for tool events")
@_click.option("--input", "tool_input", default=None, help="Tool input as a JSON object")
@_click.option(
    "--project",
    "project_path",
    type=_click.Path(file_okay=False, path_type=_pathlib.Path),
    default=None,
    help="Project directory of the simulated event",
)
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def hooks_test(
    ctx: _click.Context,
    event_name: str,
    tool_name: str | None,
    tool_input: str | None,
    project_path: _pathlib.Path | None,
    json_output: bool,
) -> None:
    """Dispatch a simulated event to the matching rules.

    Commands really run. Exits 2 when the event would be blocked.

    Examples:
        heimdall hooks test PreToolUse --tool Bash --input '{"command": "rm -rf /"}'
    """
    event_type = _parse_event(event_name)

    parsed_input: dict[str, _typing.Any] | None = None
    if tool_input is not None:
        try:
            parsed_input = _json.loads(tool_input)
        except ValueError as e:
            raise _click.BadParameter(f"invalid JSON: {e}", param_hint="--input") from None
        if not isinstance(parsed_input, dict):
            raise _click.BadParameter("must be a JSON object", param_hint="--input")

    context = hooks.HookExecutionContext(
        event_type=event_type,
        tool_name=tool_name,
        tool_input=parsed_input,
        project_path=str(project_path.resolve()) if project_path else None,
    )
    results = _run_async(_get_services(ctx).dispatcher.dispatch(context))
    decision = hooks.build_decision(event_type, results)

    if json_output:
        _click.echo(
            _json.dumps(
                {"results": [r.to_dict() for r in results], "decision": decision.to_dict()},
                indent=2,
            )
        )
    else:
        if not results:
            _click.echo("No matching hook rules.")
        for r in results:
            _click.echo(
                f"[{r.outcome.value}] {r.rule_name} (exit {r.exit_code}, {r.duration_ms} ms)"
            )
            if r.stdout.strip():
                _click.echo(f"  stdout: {r.stdout.strip()}")
            if r.stderr.strip():
                _click.echo(f"  stderr: {r.stderr.strip()}")
        _click.echo(f"Decision: {decision.decision}")
        if decision.message:
            _click.echo(f"  {decision.message}")

    if decision.blocked:
        ctx.exit(2)


# =============================================================================
# Settings sync
# =============================================================================


@cli.command(name="sync")
@_click.option(
    "--project",
    "project_path",
    type=_click.Path(exists=True, file_okay=False, path_type=_pathlib.Path),
    default=None,
    help="Also sync project rules into PROJECT/.claude/settings.json",
)
@_click.option("--remove", is_flag=True, help="Remove Heimdall's entries instead")
@_click.pass_context
def sync_cmd(ctx: _click.Context, project_path: _pathlib.Path | None, remove: bool) -> None:
    """Write forwarder entries into the external CLI's settings."""
    synchronizer = _get_services(ctx).synchronizer
    project = project_path.resolve() if project_path else None
    try:
        if remove:
            paths = synchronizer.remove(project)
        else:
            paths = synchronizer.sync(project)
    except errors.SettingsSyncError as e:
        raise _click.ClickException(str(e)) from None

    if not paths:
        _click.echo("Nothing to do.")
    for path in paths:
        _click.echo(f"{'Cleaned' if remove else 'Synced'} {path}")


# =============================================================================
# Agent trees
# =============================================================================


@cli.group(name="agents")
def agents_cmd() -> None:
    """Agent hierarchy commands."""
    pass


def _tree_label(node: agents.TreeNode) -> str:
    style = _STATUS_STYLES.get(node.status, "white")
    label = f"[bold]{node.agent_name}[/bold] [{style}]{node.status.value}[/{style}]"
    details = [f"{node.duration_ms / 1000:.1f}s", f"{node.tool_calls} tools"]
    if node.tokens_used:
        details.append(f"{node.tokens_used} tokens")
    if node.budget_allocated:
        details.append(f"${node.budget_spent:.2f}/${node.budget_allocated:.2f}")
    return f"{label} ({', '.join(details)}) [dim]{node.session_id}[/dim]"


def _add_branch(branch: _rich_tree.Tree, node: agents.TreeNode) -> None:
    for child in node.children:
        _add_branch(branch.add(_tree_label(child)), child)


@agents_cmd.command(name="tree")
@_click.argument("root_session_id")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def agents_tree(ctx: _click.Context, root_session_id: str, json_output: bool) -> None:
    """Show the agent tree rooted at a session."""
    root = _get_services(ctx).tracker.visualize(root_session_id)
    if root is None:
        raise _click.ClickException(f"Agent not found: {root_session_id}")

    if json_output:
        _click.echo(_json.dumps(root.to_dict(), indent=2))
        return

    tree = _rich_tree.Tree(_tree_label(root))
    _add_branch(tree, root)
    _rich_console.Console().print(tree)


@agents_cmd.command(name="summary")
@_click.argument("root_session_id")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def agents_summary(ctx: _click.Context, root_session_id: str, json_output: bool) -> None:
    """Show counts and budget totals for an agent tree."""
    summary = _get_services(ctx).tracker.summary(root_session_id)
    if not summary.total_nodes:
        raise _click.ClickException(f"Agent not found: {root_session_id}")

    if json_output:
        _click.echo(_json.dumps(summary.to_dict(), indent=2))
        return

    _click.echo(f"Agent tree {summary.root_session_id}:")
    _click.echo(f"  Agents: {summary.total_nodes} (max depth {summary.max_depth})")
    _click.echo(
        f"  Running: {summary.running_count}  Completed: {summary.completed_count}  "
        f"Failed: {summary.failed_count}  Terminated: {summary.terminated_count}"
    )
    _click.echo(f"  Budget: ${summary.total_spend:.2f} spent of ${summary.total_budget:.2f}")


@agents_cmd.command(name="metrics")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def agents_metrics(ctx: _click.Context, json_output: bool) -> None:
    """Show per-agent-name performance totals."""
    metrics = _get_services(ctx).tracker.all_metrics()

    if json_output:
        _click.echo(_json.dumps([m.to_dict() for m in metrics], indent=2))
        return

    if not metrics:
        _click.echo("No finished agents recorded.")
        return

    table = _rich_table.Table(title="Agent Metrics")
    table.add_column("Agent")
    table.add_column("Sessions", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Avg duration", justify="right")
    table.add_column("Avg tools", justify="right")
    for m in metrics:
        table.add_row(
            m.agent_name,
            str(m.total_sessions),
            f"{m.success_rate:.0%}",
            f"{m.avg_duration_ms / 1000:.1f}s",
            f"{m.avg_tool_calls:.1f}",
        )
    _rich_console.Console().print(table)


@agents_cmd.command(name="cleanup")
@_click.option(
    "--max-age-hours",
    type=float,
    default=None,
    help="Remove finished trees older than this (default from config)",
)
@_click.pass_context
def agents_cleanup(ctx: _click.Context, max_age_hours: float | None) -> None:
    """Delete finished agent trees."""
    svc = _get_services(ctx)
    age = max_age_hours if max_age_hours is not None else svc.settings.agents.cleanup_max_age_hours
    removed = svc.tracker.cleanup(age)
    _click.echo(f"Removed {removed} agent record(s).")


def main() -> None:
    """Main entry point with correct program name."""
    cli(prog_name="heimdall")


if __name__ == "__main__":
    main()
