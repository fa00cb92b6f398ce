# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/cli/app.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml

from deckhand.config.loader import load_config
from deckhand.config.models import DeckhandConfig
from deckhand.deploy.deployer import ChartInfo, Deployer, DeployResult
from deckhand.errors import DeckhandError, DeployError
from deckhand.kube.client import KubernetesClient, new_api_client
from deckhand.kube.tracker import KubeTracker
from deckhand.lock.locker import ConfigMapLocker, InMemoryLocker
from deckhand.logging.log import init_logging
from deckhand.observers.console import ConsoleObserver
from deckhand.observers.jsonfile import JsonFileObserver
from deckhand.observers.logger import LoggerObserver
from deckhand.release.storage import new_storage
from deckhand.resource.loader import load_manifests
from deckhand.utils.context import DeployContext


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Deckhand release deployment CLI")

LOG_DIR = Path.home() / ".deckhand" / "logs"


def _load_values(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        return {}
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{path}: values file must contain a mapping")
    return data


def _settings(config: Optional[Path], context: Optional[str]) -> DeckhandConfig:
    return load_config(config, overrides={"kube_context": context})


def _build_deployer(cfg: DeckhandConfig, namespace: str, *, debug: bool, observers: bool = True) -> Deployer:
    """Wire logging, observers and cluster clients for one invocation."""
    logger, run_id, log_path = init_logging(base_dir=LOG_DIR, verbose=debug)

    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Logs     : {log_path}")
    typer.echo("")

    obs = []
    if observers:
        obs = [
            ConsoleObserver(),
            LoggerObserver(logger),
            JsonFileObserver(LOG_DIR / f"{run_id}.jsonl"),
        ]
    ctx = DeployContext.create(
        env=cfg.environment,
        kube_context=cfg.kube_context,
        observers=obs,
        logger=logger,
        run_id=run_id,
    )

    api_client = new_api_client(cfg.kubeconfig, cfg.kube_context)
    client = KubernetesClient(api_client, field_manager=cfg.field_manager)
    tracker = KubeTracker(client, poll_period=cfg.tracking.poll_period)
    storage = new_storage(cfg.storage_driver, namespace, api_client)
    if cfg.storage_driver == "memory":
        locker = InMemoryLocker()
    else:
        locker = ConfigMapLocker(
            namespace,
            api_client,
            configmap_name=cfg.lock.configmap_name,
            lease_ttl=cfg.lock.lease_ttl,
            create_namespace=cfg.create_namespace,
        )

    logger.debug("config: %s", cfg.model_dump())
    return Deployer(client, tracker, storage, locker, cfg, ctx)


def _print_result(result: DeployResult) -> None:
    rel = result.release
    typer.echo("")
    typer.secho(f"Release {rel.name!r} revision {rel.revision}: {rel.status.value}", bold=True, fg=typer.colors.GREEN)
    if result.report is not None:
        rendered = result.report.render()
        if rendered:
            typer.echo(rendered)
    if rel.notes:
        typer.echo("")
        typer.echo(rel.notes)


def _fail(err: DeckhandError) -> None:
    typer.secho(f"\nError: {err}", fg=typer.colors.RED, err=True)
    if isinstance(err, DeployError) and err.report is not None:
        rendered = err.report.render()
        if rendered:
            typer.echo(rendered, err=True)
    raise typer.Exit(code=1)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def deploy(
    release: str = typer.Argument(..., help="Release name"),
    manifest_dir: Path = typer.Argument(..., help="Directory of rendered manifests (crds/ subdir for CRDs)"),
    namespace: str = typer.Option("default", "--namespace", "-n"),
    config: Optional[Path] = typer.Option(None, "--config", help="Deckhand settings YAML"),
    values: Optional[Path] = typer.Option(None, "--values", help="Values recorded with the release"),
    notes: str = typer.Option("", "--notes"),
    chart_name: str = typer.Option("", "--chart-name"),
    chart_version: str = typer.Option("", "--chart-version"),
    app_version: str = typer.Option("", "--app-version"),
    context: Optional[str] = typer.Option(None, "--context"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the plan and exit"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Install or upgrade RELEASE from MANIFEST_DIR."""
    typer.echo("")
    typer.secho("Deckhand Deploy Started", bold=True)

    try:
        cfg = _settings(config, context)
        manifests = load_manifests(manifest_dir)
        deployer = _build_deployer(cfg, namespace, debug=debug)
        chart = ChartInfo(chart_name, chart_version, app_version)
        if dry_run:
            result = deployer.plan(release, namespace, manifests, _load_values(values), notes, chart=chart)
            typer.echo(json.dumps(result.plan.to_dict(), indent=2))
            return
        result = deployer.deploy(release, namespace, manifests, _load_values(values), notes, chart=chart)
    except DeckhandError as e:
        _fail(e)
        return

    _print_result(result)


@app.command()
def rollback(
    release: str = typer.Argument(..., help="Release name"),
    namespace: str = typer.Option("default", "--namespace", "-n"),
    revision: Optional[int] = typer.Option(None, "--revision", help="Defaults to the previous deployed revision"),
    config: Optional[Path] = typer.Option(None, "--config"),
    context: Optional[str] = typer.Option(None, "--context"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Redeploy the manifests of an earlier revision of RELEASE."""
    typer.echo("")
    typer.secho("Deckhand Rollback Started", bold=True)

    try:
        cfg = _settings(config, context)
        deployer = _build_deployer(cfg, namespace, debug=debug)
        result = deployer.rollback(release, namespace, revision)
    except DeckhandError as e:
        _fail(e)
        return

    _print_result(result)


@app.command()
def plan(
    release: str = typer.Argument(..., help="Release name"),
    manifest_dir: Path = typer.Argument(..., help="Directory of rendered manifests"),
    namespace: str = typer.Option("default", "--namespace", "-n"),
    config: Optional[Path] = typer.Option(None, "--config"),
    context: Optional[str] = typer.Option(None, "--context"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Print the plan a deploy of RELEASE would execute."""
    try:
        cfg = _settings(config, context)
        manifests = load_manifests(manifest_dir)
        deployer = _build_deployer(cfg, namespace, debug=debug, observers=False)
        result = deployer.plan(release, namespace, manifests)
    except DeckhandError as e:
        _fail(e)
        return

    typer.echo(json.dumps(result.plan.to_dict(), indent=2))


@app.command()
def history(
    release: str = typer.Argument(..., help="Release name"),
    namespace: str = typer.Option("default", "--namespace", "-n"),
    config: Optional[Path] = typer.Option(None, "--config"),
    context: Optional[str] = typer.Option(None, "--context"),
    debug: bool = typer.Option(False, "--debug"),
):
    """List stored revisions of RELEASE."""
    try:
        cfg = _settings(config, context)
        deployer = _build_deployer(cfg, namespace, debug=debug, observers=False)
        releases = deployer.history(release, namespace)
    except DeckhandError as e:
        _fail(e)
        return

    if not releases:
        typer.echo(f"no revisions of {release!r} in namespace {namespace!r}")
        return

    typer.echo(f"{'REVISION':<10}{'UPDATED':<22}{'STATUS':<18}{'CHART':<24}DESCRIPTION")
    for rel in releases:
        updated = rel.last_deployed.strftime("%Y-%m-%d %H:%M:%S") if rel.last_deployed else ""
        chart = f"{rel.chart_name}-{rel.chart_version}" if rel.chart_name else ""
        typer.echo(f"{rel.revision:<10}{updated:<22}{rel.status.value:<18}{chart:<24}{rel.description}")


if __name__ == "__main__":
    app()
