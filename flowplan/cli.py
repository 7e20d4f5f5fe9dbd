"""CLI entry point for flowplan.

Commands:
- flowplan init: Initialize project for flowplan
- flowplan workflow create|list|switch|delete|export|import|save: Manage workflows
- flowplan node config|header|remove: Edit nodes of the current workflow
- flowplan validate: Check the current workflow is a Start -> End pipeline
- flowplan order: Show the canvas display order
- flowplan plan: Resolve the current workflow into an execution plan
- flowplan visualize: Show the workflow graph as a tree
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
import pydantic
import yaml
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from flowplan.cli_ui.graph_renderer import PlanTableRenderer, TerminalGraphRenderer
from flowplan.core.config import CONFIG_FILENAME, DEFAULT_CONFIG_YAML, PROJECT_DIR, ConfigError
from flowplan.core.graph_schema import Edge, GraphIntegrityError, Node
from flowplan.core.resolver import InvalidPipelineError, MissingConfigError
from flowplan.core.session import Session, open_session
from flowplan.core.state import Database
from flowplan.core.workflow_store import WorkflowStoreError

console = Console()


def get_repo_path() -> Path:
    """Get the repository path (current directory)."""
    return Path.cwd()


def _fail(message: str) -> NoReturn:
    console.print(f"[red]{message}[/red]")
    sys.exit(1)


def _session(workflow_id: str | None = None) -> Session:
    """Open the project session, optionally selecting a workflow."""
    return _edit_session(workflow_id)[0]


def _edit_session(workflow_id: str | None = None) -> tuple[Session, str | None]:
    """Open the session and also return the workflow that was current before ``-w``."""
    try:
        session = open_session(get_repo_path())
    except ConfigError as e:
        _fail(f"Configuration error: {escape(str(e))}")
    previous = session.workflows.current_id
    if workflow_id:
        try:
            session.switch_to(workflow_id)
        except WorkflowStoreError as e:
            _fail(escape(str(e)))
    elif session.current_workflow is None:
        _fail("No workflow selected. Run 'flowplan workflow create NAME' first.")
    return session, previous


def _save(session: Session, current_id: str | None) -> None:
    """Persist every store, leaving ``current_id`` as the project's current workflow."""
    session.workflows.current_id = current_id
    session.save()


def _commit(session: Session, current_id: str | None) -> None:
    """Save the canvas into the selected workflow and persist every store."""
    session.save_canvas()
    _save(session, current_id)


def _load_document(path: str) -> Any:
    """Read a JSON or YAML file."""
    try:
        with open(path) as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        _fail(f"Error parsing '{escape(path)}': {escape(str(e))}")


@click.group()
@click.version_option(version="0.1.0")
def main() -> None:
    """flowplan - workflow graph engine.

    Validates visual pipeline graphs and resolves them into ordered
    operation lists for the execution backend.
    """
    pass


@main.command()
def init() -> None:
    """Initialize project for flowplan."""
    project_dir = get_repo_path() / PROJECT_DIR

    if (project_dir / CONFIG_FILENAME).exists():
        console.print("[yellow]Project already initialized[/yellow]")
        return

    project_dir.mkdir(parents=True, exist_ok=True)
    (project_dir / CONFIG_FILENAME).write_text(DEFAULT_CONFIG_YAML)
    Database(project_dir / "state.db")

    console.print(
        Panel(
            "[green]Project initialized![/green]\n\n"
            f"Configuration: {PROJECT_DIR}/{CONFIG_FILENAME}\n"
            f"Database: {PROJECT_DIR}/state.db\n\n"
            "Next: flowplan workflow create NAME",
            title="flowplan",
        )
    )


# ========== Workflows ==========


@main.group()
def workflow() -> None:
    """Create, switch and manage named workflows."""
    pass


@workflow.command("create")
@click.argument("name")
def workflow_create(name: str) -> None:
    """Create an empty workflow and make it current."""
    try:
        session = open_session(get_repo_path())
        wf = session.create_workflow(name)
    except (ConfigError, WorkflowStoreError) as e:
        _fail(escape(str(e)))
    session.save()
    console.print(f"[green]Created workflow '{escape(wf.name)}'[/green] ({wf.id})")


@workflow.command("list")
def workflow_list() -> None:
    """List workflows."""
    try:
        session = open_session(get_repo_path())
    except ConfigError as e:
        _fail(escape(str(e)))

    if not session.workflows.workflows:
        console.print("[yellow]No workflows yet[/yellow]")
        return

    table = Table(title="Workflows")
    table.add_column("", width=1)
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Nodes", justify="right")
    table.add_column("Edges", justify="right")
    table.add_column("Updated")
    for wf in session.workflows.workflows:
        marker = "*" if wf.id == session.workflows.current_id else ""
        table.add_row(
            marker,
            wf.id,
            escape(wf.name),
            str(len(wf.nodes)),
            str(len(wf.edges)),
            wf.updated_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@workflow.command("switch")
@click.argument("workflow_id")
def workflow_switch(workflow_id: str) -> None:
    """Make another workflow current."""
    session = _session(workflow_id)
    session.save()
    console.print(f"[green]Switched to '{escape(session.current_workflow.name)}'[/green]")


@workflow.command("delete")
@click.argument("workflow_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
def workflow_delete(workflow_id: str, yes: bool) -> None:
    """Delete a workflow (irreversible)."""
    session = _session()
    try:
        wf = session.workflows.get(workflow_id)
    except WorkflowStoreError as e:
        _fail(escape(str(e)))
    if not yes:
        click.confirm(
            f"Delete workflow '{wf.name}'? This operation is irreversible", abort=True
        )
    session.delete_workflow(wf.id)
    session.save()
    current = session.current_workflow
    console.print(f"[green]Deleted workflow '{escape(wf.name)}'[/green]")
    console.print(f"Current: {escape(current.name) if current else '(none)'}")


@workflow.command("export")
@click.argument("workflow_id", required=False)
@click.option("--output", "-o", type=click.Path(), help="Output file (default: workflow_<name>.json)")
def workflow_export(workflow_id: str | None, output: str | None) -> None:
    """Export a workflow as a standalone JSON document."""
    session = _session(workflow_id)
    document = session.export_workflow()
    out_path = Path(output or f"workflow_{session.current_workflow.name}.json")
    out_path.write_text(json.dumps(document, indent=2))
    console.print(f"[green]Workflow saved to: {escape(str(out_path))}[/green]")


@workflow.command("import")
@click.argument("workflow_file", type=click.Path(exists=True))
@click.option("--repair", is_flag=True, help="Drop edges that reference unknown nodes")
def workflow_import(workflow_file: str, repair: bool) -> None:
    """Import a workflow document and make it current."""
    document = _load_document(workflow_file)
    try:
        session = open_session(get_repo_path())
        wf = session.import_workflow(document, repair=repair or None)
    except (ConfigError, WorkflowStoreError, GraphIntegrityError) as e:
        _fail(f"Failed to import workflow: {escape(str(e))}")
    session.save()
    console.print(f"[green]Imported workflow: {escape(wf.name)}[/green]")


@workflow.command("save")
@click.argument("canvas_file", type=click.Path(exists=True))
@click.option("--workflow-id", "-w", help="Workflow to save into (default: current)")
def workflow_save(canvas_file: str, workflow_id: str | None) -> None:
    """Save a canvas snapshot ({nodes, edges}) into a workflow."""
    document = _load_document(canvas_file)
    if not isinstance(document, dict):
        _fail(f"Expected a mapping with 'nodes' and 'edges' in '{escape(canvas_file)}'")

    session, previous = _edit_session(workflow_id)
    try:
        nodes = [Node.model_validate(n) for n in document.get("nodes") or []]
        edges = [Edge.model_validate(e) for e in document.get("edges") or []]
        session.replace_graph(nodes, edges)
    except pydantic.ValidationError as e:
        console.print("[red]Error validating canvas:[/red]")
        for err in e.errors():
            loc = ".".join(str(x) for x in err["loc"])
            console.print(f"  - {loc}: {err['msg']}")
        sys.exit(1)
    except GraphIntegrityError as e:
        _fail(escape(str(e)))

    _commit(session, previous)
    console.print(
        f"[green]Workflow saved[/green] ({len(nodes)} nodes, {len(edges)} edges)"
    )


# ========== Nodes ==========


@main.group()
def node() -> None:
    """Edit nodes of the current workflow."""
    pass


def _parse_assignments(assignments: tuple[str, ...]) -> dict[str, str]:
    data = {}
    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep or not key:
            _fail(f"Expected key=value, got '{escape(item)}'")
        data[key.strip()] = value
    return data


@node.command("config")
@click.argument("node_id")
@click.argument("assignments", nargs=-1)
@click.option("--workflow-id", "-w", help="Workflow (default: current)")
def node_config(node_id: str, assignments: tuple[str, ...], workflow_id: str | None) -> None:
    """Set a node's configuration, e.g. `node config f1 mode=equal column=city value=Paris`."""
    session, previous = _edit_session(workflow_id)
    try:
        record = session.configure_node(node_id, _parse_assignments(assignments))
    except KeyError as e:
        _fail(escape(str(e.args[0])))
    except (ValueError, pydantic.ValidationError) as e:
        _fail(escape(str(e)))
    _save(session, previous)
    console.print(f"[green]Configured {escape(node_id)}[/green]: {escape(str(record.model_dump()))}")


@node.command("header")
@click.argument("node_id")
@click.argument("label", required=False, default="")
def node_header(node_id: str, label: str) -> None:
    """Set (or with no LABEL, clear) the output field name of a node."""
    session = _session()
    assigned = session.set_header(node_id, label)
    session.save()
    if assigned is None:
        console.print(f"Cleared header for {escape(node_id)}")
    else:
        console.print(f"[green]{escape(node_id)} -> {escape(assigned)}[/green]")


@node.command("remove")
@click.argument("node_ids", nargs=-1, required=True)
@click.option("--workflow-id", "-w", help="Workflow (default: current)")
def node_remove(node_ids: tuple[str, ...], workflow_id: str | None) -> None:
    """Remove nodes, their edges, configuration and header entries."""
    session, previous = _edit_session(workflow_id)
    missing = [n for n in node_ids if session.canvas.get_node(n) is None]
    if missing:
        _fail(f"Unknown node(s): {escape(', '.join(missing))}")
    session.remove_nodes(node_ids)
    _commit(session, previous)
    console.print(f"[green]Removed {len(node_ids)} node(s)[/green]")


# ========== Analysis ==========


@main.command()
@click.option("--workflow-id", "-w", help="Workflow (default: current)")
def validate(workflow_id: str | None) -> None:
    """Check the workflow is a single Start -> End pipeline."""
    session = _session(workflow_id)
    result = session.validate()
    if not result.is_valid:
        console.print(f"[red]Invalid pipeline ({result.reason.value}):[/] {result.message}")
        sys.exit(1)

    console.print("[green]✓ Pipeline is valid[/]")
    console.print("  " + " -> ".join(escape(n.label or n.id) for n in result.path))
    on_path = set(result.node_ids)
    for n in session.unconfigured_nodes():
        if n.id not in on_path:
            continue
        console.print(f"  [yellow]! {escape(n.id)} ({n.type.value}) has no configuration[/]")


@main.command()
@click.option("--workflow-id", "-w", help="Workflow (default: current)")
def order(workflow_id: str | None) -> None:
    """Show nodes in canvas display order (depth-first from source nodes)."""
    session = _session(workflow_id)
    nodes = session.execution_order()
    if not nodes:
        console.print("[yellow]No connected nodes[/yellow]")
        return
    for idx, n in enumerate(nodes, start=1):
        console.print(f"{idx:>3}. {escape(n.label or n.id)} [dim]({n.type.value})[/]")


@main.command()
@click.option("--workflow-id", "-w", help="Workflow (default: current)")
@click.option("--strict", is_flag=True, help="Fail on nodes without configuration")
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON")
def plan(workflow_id: str | None, strict: bool, as_json: bool) -> None:
    """Resolve the workflow into the ordered operation list."""
    session = _session(workflow_id)
    try:
        execution_plan = session.plan(strict=strict or None)
    except InvalidPipelineError as e:
        _fail(f"Invalid pipeline ({e.validation.reason.value}): {e}")
    except MissingConfigError as e:
        _fail(escape(str(e)))

    if as_json:
        click.echo(execution_plan.model_dump_json(indent=2))
        return

    console.print(PlanTableRenderer().render_plan_table(execution_plan))
    for node_id in execution_plan.dropped:
        console.print(f"[yellow]! {escape(node_id)} dropped: no configuration[/]")


@main.command()
@click.option("--workflow-id", "-w", help="Workflow (default: current)")
def visualize(workflow_id: str | None) -> None:
    """Visualize the workflow graph in the terminal."""
    session = _session(workflow_id)
    result = session.validate()
    headers = {e.value: e.label for e in session.headers.entries}

    renderer = TerminalGraphRenderer(console)
    console.print(
        renderer.render_as_tree(
            session.canvas, session.current_workflow.name, validation=result, headers=headers
        )
    )
    console.print()
    console.print(f"[bold]Nodes:[/] {len(session.canvas.nodes)}")
    console.print(f"[bold]Edges:[/] {len(session.canvas.edges)}")
    if result.is_valid:
        console.print("\n[green]✓ Pipeline is valid[/]")
    else:
        console.print(f"\n[red bold]{result.message}[/]")


@main.command()
def version() -> None:
    """Show version information."""
    from flowplan import __version__

    console.print(f"flowplan v{__version__}")
    console.print("Workflow graph engine")


if __name__ == "__main__":
    main()
