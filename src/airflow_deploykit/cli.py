"""Command-line interface for building and deploying Airflow."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import typer
import yaml
from rich.console import Console
from rich.table import Table

from airflow_deploykit.clients import CommandRunner, Docker, Helm, Kubectl
from airflow_deploykit.config import ENV_PREFIX, DeploymentConfig, load_config
from airflow_deploykit.errors import ConfigError, DeployError, SchemaValidationError

app = typer.Typer(
    name="airflow-deploy",
    help="Build a custom Airflow image and deploy it with the official Helm chart.",
    no_args_is_help=True,
)

image_app = typer.Typer(
    name="image",
    help="Custom image commands.",
    no_args_is_help=True,
)
app.add_typer(image_app, name="image")

values_app = typer.Typer(
    name="values",
    help="Helm chart values commands.",
    no_args_is_help=True,
)
app.add_typer(values_app, name="values")

keys_app = typer.Typer(
    name="keys",
    help="Fernet key and webserver secret key commands.",
    no_args_is_help=True,
)
app.add_typer(keys_app, name="keys")

runbook_app = typer.Typer(
    name="runbook",
    help="Runbook execution commands.",
    no_args_is_help=True,
)
app.add_typer(runbook_app, name="runbook")

console = Console()

_CONFIG_HELP = "Path to deployment config YAML (default: deploy.yaml if present)"
DEFAULT_CONFIG = "deploy.yaml"


def _configure_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _load(config_path: str | None) -> DeploymentConfig:
    """Load config or exit with a readable error."""
    if config_path is None and Path(DEFAULT_CONFIG).exists():
        config_path = DEFAULT_CONFIG
    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Config Error:[/red] {e}")
        for error in e.errors:
            console.print(f"  • {error}")
        raise typer.Exit(code=1) from None


def _fail(error: DeployError) -> typer.Exit:
    console.print(f"[red]Error:[/red] {error}")
    stderr = getattr(error, "stderr", "")
    if stderr:
        console.print(f"[dim]{stderr.strip()}[/dim]")
    return typer.Exit(code=1)


def parse_params(items: list[str] | None) -> dict[str, Any]:
    """Parse KEY=VALUE pairs; values are read as YAML scalars (true, 600, ...)."""
    params: dict[str, Any] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected KEY=VALUE, got '{item}'")
        params[key.strip()] = yaml.safe_load(value) if value else ""
    return params


def _tool_clients(
    config: DeploymentConfig, dry_run: bool, kube_context: str | None
) -> tuple[CommandRunner, Helm, Kubectl, Docker]:
    runner = CommandRunner(dry_run=dry_run)
    return (
        runner,
        Helm(runner=runner, kube_context=kube_context),
        Kubectl(runner=runner, namespace=config.chart.namespace, context=kube_context),
        Docker(runner=runner),
    )


@image_app.command("render")
def image_render_cmd(
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    output_dir: str | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Directory to write Dockerfile and requirements.txt (default: print)",
    ),
) -> None:
    """Render the Dockerfile and requirements.txt for the custom image."""
    from airflow_deploykit.image import render_dockerfile, render_requirements, write_build_context

    config = _load(config_path)

    if output_dir is None:
        typer.echo(render_dockerfile(config.image), nl=False)
        typer.echo("# --- requirements.txt ---")
        typer.echo(render_requirements(config.image), nl=False)
        return

    files = write_build_context(config.image, output_dir)
    for name, path in files.items():
        console.print(f"[green]✓[/green] {name} -> {path}")


@image_app.command("build")
def image_build_cmd(
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    context_dir: str = typer.Option(
        "build/image",
        "--context-dir",
        help="Directory for the rendered build context",
    ),
    platform: str | None = typer.Option(None, "--platform", help="Target platform, e.g. linux/amd64"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Build without the layer cache"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print docker commands instead of running them"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Render the build context and run docker build."""
    from airflow_deploykit.image import write_build_context

    _configure_logging(verbose)
    config = _load(config_path)
    _, _, _, docker = _tool_clients(config, dry_run, None)

    try:
        write_build_context(config.image, context_dir)
        docker.build(context_dir, config.image.local_ref, platform=platform, no_cache=no_cache)
    except DeployError as e:
        raise _fail(e) from None

    console.print(f"[green]✓ Built {config.image.local_ref}[/green]")


@image_app.command("push")
def image_push_cmd(
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    registry_url: str | None = typer.Option(
        None,
        "--registry",
        "-r",
        help="Push only to this registry URL (must be configured)",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print docker commands instead of running them"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Tag and push the built image to the configured registries."""
    _configure_logging(verbose)
    config = _load(config_path)
    _, _, _, docker = _tool_clients(config, dry_run, None)

    registries = config.registries
    if registry_url:
        registries = [r for r in registries if r.url.rstrip("/") == registry_url.rstrip("/")]
    if not registries:
        console.print("[red]Error:[/red] No matching registries configured")
        raise typer.Exit(code=1)

    try:
        for registry in registries:
            ref = registry.image_ref(config.image)
            docker.tag(config.image.local_ref, ref)
            docker.push(ref)
            console.print(f"[green]✓[/green] Pushed {ref}")
    except DeployError as e:
        raise _fail(e) from None


@image_app.command("save")
def image_save_cmd(
    output: str = typer.Option(..., "--output", "-o", help="Tarball path"),
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print docker commands instead of running them"),
) -> None:
    """Export the built image to a tarball (docker save)."""
    config = _load(config_path)
    _, _, _, docker = _tool_clients(config, dry_run, None)

    try:
        docker.save(config.image.local_ref, output)
    except DeployError as e:
        raise _fail(e) from None
    console.print(f"[green]✓[/green] Saved {config.image.local_ref} to {output}")


@values_app.command("render")
def values_render_cmd(
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    output: str | None = typer.Option(None, "--output", "-o", help="Write values to this file"),
    show_secrets: bool = typer.Option(
        False,
        "--show-secrets",
        help="Include inline key material instead of masking it",
    ),
) -> None:
    """Render Helm chart values from the deployment config."""
    from airflow_deploykit.io import write_text
    from airflow_deploykit.values import dump_values, redact_values, render_values

    config = _load(config_path)
    values = render_values(config)
    if not show_secrets:
        values = redact_values(values)

    text = dump_values(values)
    if output is None:
        typer.echo(text, nl=False)
        return
    write_text(output, text)
    console.print(f"[green]✓[/green] Values written to {output}")


@values_app.command("validate")
def values_validate_cmd(
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    values_file: str | None = typer.Option(
        None,
        "--values",
        "-f",
        help="Validate this values file instead of rendering from config",
    ),
) -> None:
    """Validate chart values against the bundled schema."""
    from airflow_deploykit.io import read_yaml
    from airflow_deploykit.schema import validate_values
    from airflow_deploykit.values import render_values

    if values_file:
        if not Path(values_file).exists():
            console.print(f"[red]Error:[/red] Values file not found: {values_file}")
            raise typer.Exit(code=1)
        values = read_yaml(values_file)
        source = values_file
    else:
        values = render_values(_load(config_path))
        source = "rendered values"

    try:
        validate_values(values)
    except SchemaValidationError as e:
        console.print(f"[red]Validation failed:[/red] {source}")
        for error in e.errors:
            console.print(f"  • {error}")
        raise typer.Exit(code=1) from None

    console.print(f"[green]✓ {source} valid[/green]")


@keys_app.command("generate")
def keys_generate_cmd(
    fmt: str = typer.Option("env", "--format", help="Output format: 'env' or 'yaml'"),
) -> None:
    """Generate a Fernet key and a webserver secret key.

    Example:
        airflow-deploy keys generate >> .env
    """
    from airflow_deploykit.config import ENV_OVERRIDES
    from airflow_deploykit.keys import generate_fernet_key, generate_webserver_secret_key

    fernet_key = generate_fernet_key()
    webserver_key = generate_webserver_secret_key()

    if fmt == "yaml":
        typer.echo(
            yaml.safe_dump(
                {"keys": {"fernet_key": fernet_key, "webserver_secret_key": webserver_key}},
                sort_keys=False,
            ),
            nl=False,
        )
    elif fmt == "env":
        typer.echo(f"{ENV_OVERRIDES['keys.fernet_key']}={fernet_key}")
        typer.echo(f"{ENV_OVERRIDES['keys.webserver_secret_key']}={webserver_key}")
    else:
        console.print(f"[red]Error:[/red] Unknown format '{fmt}'")
        raise typer.Exit(code=1)


@keys_app.command("check")
def keys_check_cmd(
    fernet_key: str | None = typer.Argument(
        None,
        help="Fernet key or 'new,old' key list (default: from config/env)",
    ),
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
) -> None:
    """Check that a Fernet key (or key list) is well formed."""
    from airflow_deploykit.keys import fingerprint, split_fernet_keys, validate_fernet_key

    value = fernet_key or _load(config_path).keys.fernet_key
    if not value:
        console.print("[red]Error:[/red] No Fernet key given or configured")
        raise typer.Exit(code=1)

    errors = validate_fernet_key(value)
    if errors:
        for error in errors:
            console.print(f"[red]✗[/red] {error}")
        raise typer.Exit(code=1)

    for i, key in enumerate(split_fernet_keys(value)):
        role = "encrypt+decrypt" if i == 0 else "decrypt"
        console.print(f"[green]✓[/green] key {i} ({role}) fingerprint {fingerprint(key)}")


def _execute_runbook(
    name: str,
    *,
    config: DeploymentConfig,
    params: dict[str, Any],
    workdir: str | None,
    run_id: str | None,
    dry_run: bool,
    kube_context: str | None,
) -> tuple[str, Any]:
    # Import step handlers to populate registry
    import airflow_deploykit.steps  # noqa: F401
    from airflow_deploykit.deps import build_deps
    from airflow_deploykit.runbook import RunbookRunner, load_runbook

    runbook = load_runbook(name)
    run_dir = Path(workdir) if workdir else RunbookRunner.default_workdir(runbook.name)

    with build_deps(config, workdir=str(run_dir), dry_run=dry_run, kube_context=kube_context) as deps:
        runner = RunbookRunner(runbook, deps, workdir=run_dir, params=params, run_id=run_id)

        console.print(f"[cyan]Runbook:[/cyan] {runbook.name}")
        console.print(f"[cyan]Run ID:[/cyan] {runner.run_id}")
        console.print(f"[cyan]Workdir:[/cyan] {runner.workdir}")
        if dry_run:
            console.print("[yellow]Dry run: mutating commands are printed, not executed[/yellow]")
        console.print()

        return runner.run(), runner


def _exit_for(result: str, label: str) -> typer.Exit:
    if result == "Succeeded":
        console.print(f"\n[green]✓ {label} {result}[/green]")
        return typer.Exit(code=0)
    console.print(f"\n[red]✗ {label} {result}[/red]")
    return typer.Exit(code=1 if result == "Failed" else 2)


@runbook_app.command("run")
def runbook_run_cmd(
    name: str = typer.Argument(..., help="Bundled runbook name or path to a runbook YAML"),
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    param: list[str] | None = typer.Option(
        None,
        "--param",
        "-p",
        help="Runbook parameter KEY=VALUE (repeatable)",
    ),
    workdir: str | None = typer.Option(
        None,
        "--workdir",
        help="Working directory for execution (default: auto-generated)",
    ),
    run_id: str | None = typer.Option(None, "--run-id", help="Run ID (default: auto-generated)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print mutating commands instead of running them"),
    kube_context: str | None = typer.Option(None, "--kube-context", help="kubeconfig context"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Run a runbook.

    Example:
        airflow-deploy runbook run deploy -c deploy.yaml -p build_image=false
    """
    _configure_logging(verbose)
    config = _load(config_path)
    params = parse_params(param)

    try:
        result, _ = _execute_runbook(
            name,
            config=config,
            params=params,
            workdir=workdir,
            run_id=run_id,
            dry_run=dry_run,
            kube_context=kube_context,
        )
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from None
    except ValueError as e:
        console.print(f"[red]Validation Error:[/red] {e}")
        raise typer.Exit(code=1) from None

    raise _exit_for(result, "Runbook")


@runbook_app.command("validate")
def runbook_validate_cmd(
    name: str = typer.Argument(..., help="Bundled runbook name or path to a runbook YAML"),
) -> None:
    """Load a runbook and report unknown handlers or broken dependencies."""
    import airflow_deploykit.steps  # noqa: F401
    from airflow_deploykit.runbook import load_runbook, validate_runbook

    try:
        runbook = load_runbook(name)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from None
    except ValueError as e:
        console.print(f"[red]Validation Error:[/red] {e}")
        raise typer.Exit(code=1) from None

    errors = validate_runbook(runbook)
    if errors:
        console.print("[red]Validation failed:[/red]")
        for error in errors:
            console.print(f"  • {error}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Runbook '{runbook.name}' is valid[/green]")


@runbook_app.command("list")
def runbook_list_cmd() -> None:
    """List the bundled runbooks."""
    from airflow_deploykit.runbook import list_runbooks, load_runbook

    names = list_runbooks()
    if not names:
        console.print("[yellow]No runbooks bundled.[/yellow]")
        return

    table = Table(title="Bundled Runbooks")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Description", style="green")
    table.add_column("Steps", style="dim")

    for name in names:
        runbook = load_runbook(name)
        order = " → ".join(step.name for step in runbook.get_execution_order())
        table.add_row(runbook.name, runbook.description, order)

    console.print(table)


@runbook_app.command("list-steps")
def runbook_list_steps_cmd() -> None:
    """List all registered step handlers."""
    # Import step handlers to populate registry
    import airflow_deploykit.steps  # noqa: F401
    from airflow_deploykit.runbook import list_steps

    steps = list_steps()

    if not steps:
        console.print("[yellow]No step handlers registered.[/yellow]")
        return

    table = Table(title="Registered Step Handlers")
    table.add_column("Handler Name", style="cyan", no_wrap=True)

    for step_name in steps:
        table.add_row(step_name)

    console.print(table)


@app.command("deploy")
def deploy_cmd(
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    build: bool = typer.Option(True, "--build/--no-build", help="Build the image first"),
    push: bool = typer.Option(True, "--push/--no-push", help="Push to configured registries"),
    workdir: str | None = typer.Option(None, "--workdir", help="Working directory for execution"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print mutating commands instead of running them"),
    kube_context: str | None = typer.Option(None, "--kube-context", help="kubeconfig context"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Build, push and install Airflow (the deploy runbook)."""
    _configure_logging(verbose)
    config = _load(config_path)

    result, _ = _execute_runbook(
        "deploy",
        config=config,
        params={"build_image": build, "push_image": push},
        workdir=workdir,
        run_id=None,
        dry_run=dry_run,
        kube_context=kube_context,
    )
    raise _exit_for(result, "Deploy")


@app.command("diagnose")
def diagnose_cmd(
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    workdir: str | None = typer.Option(None, "--workdir", help="Working directory for execution"),
    kube_context: str | None = typer.Option(None, "--kube-context", help="kubeconfig context"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Check migrations, GitSync and web UI reachability."""
    _configure_logging(verbose)
    config = _load(config_path)

    result, runner = _execute_runbook(
        "diagnose",
        config=config,
        params={},
        workdir=workdir,
        run_id=None,
        dry_run=False,
        kube_context=kube_context,
    )

    table = Table(title=f"Diagnosis of {config.chart.release}")
    table.add_column("Check", style="cyan", no_wrap=True)
    table.add_column("Level")
    table.add_column("Finding")
    table.add_column("Next command", style="dim")

    styles = {"ok": "green", "warning": "yellow", "error": "red"}
    for finding in runner.vars.get("diagnose", {}).get("findings", []):
        level = finding.get("level", "error")
        table.add_row(
            finding.get("check", ""),
            f"[{styles.get(level, 'white')}]{level}[/]",
            finding.get("text", ""),
            finding.get("command") or "",
        )
    console.print(table)

    raise _exit_for(result, "Diagnose")


@app.command("status")
def status_cmd(
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    kube_context: str | None = typer.Option(None, "--kube-context", help="kubeconfig context"),
) -> None:
    """Show the release status and its pods."""
    config = _load(config_path)
    _, helm, kubectl, _ = _tool_clients(config, False, kube_context)

    try:
        status = helm.status(config.chart)
        pods = kubectl.get_pods(f"release={config.chart.release}")
    except DeployError as e:
        raise _fail(e) from None

    if status is None:
        console.print(
            f"[yellow]Release {config.chart.release} not found in {config.chart.namespace}[/yellow]"
        )
    else:
        console.print(
            f"[cyan]Release:[/cyan] {status.name}  [cyan]Revision:[/cyan] {status.revision}  "
            f"[cyan]Status:[/cyan] {status.status}  [cyan]Chart:[/cyan] {status.chart or '-'}"
        )

    table = Table(title=f"Pods in {config.chart.namespace}")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Component")
    table.add_column("Phase")
    table.add_column("Ready")
    table.add_column("Restarts", justify="right")

    for pod in pods:
        ready = sum(1 for c in pod.containers if c.ready)
        style = "green" if pod.settled else "red"
        table.add_row(
            pod.name,
            pod.component or "-",
            f"[{style}]{pod.phase}[/]",
            f"{ready}/{len(pod.containers)}",
            str(pod.restarts),
        )
    console.print(table)


@app.command("port-forward")
def port_forward_cmd(
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    local_port: int | None = typer.Option(
        None,
        "--local-port",
        "-l",
        help="Local port (default: the service port)",
    ),
    kube_context: str | None = typer.Option(None, "--kube-context", help="kubeconfig context"),
) -> None:
    """Forward a local port to the webserver service until interrupted."""
    from airflow_deploykit.diagnose import webserver_service_name

    config = _load(config_path)
    _, _, kubectl, _ = _tool_clients(config, False, kube_context)

    port = config.service.port
    local = local_port or port
    console.print(f"[cyan]Web UI:[/cyan] http://localhost:{local} (Ctrl+C to stop)")

    try:
        code = kubectl.port_forward(f"svc/{webserver_service_name(config)}", local, port)
    except DeployError as e:
        raise _fail(e) from None
    raise typer.Exit(code=code)


@app.command("config")
def config_cmd(
    config_path: str | None = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
) -> None:
    """Print the effective config (file plus AIRFLOW_DEPLOY_* overrides)."""
    config = _load(config_path)
    data = config.model_dump(mode="json")
    keys = data.get("keys", {})
    for field in ("fernet_key", "webserver_secret_key"):
        if keys.get(field):
            keys[field] = "***"
    if data.get("database", {}).get("connection"):
        data["database"]["connection"] = "***"
    typer.echo(yaml.safe_dump(data, sort_keys=False), nl=False)

    overrides = sorted(k for k in os.environ if k.startswith(ENV_PREFIX))
    if overrides:
        console.print(f"[dim]# overrides: {', '.join(overrides)}[/dim]")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
