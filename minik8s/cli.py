"""Command-line entry point.

    minik8s run dev.json staging.toml
    minik8s validate dev.json
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from pathlib import Path

from rich.console import Console
from rich.table import Table

from minik8s.api.model import Cluster, validate_cluster
from minik8s.config import Settings, load_manifest, load_settings
from minik8s.core.exceptions import MiniK8sError
from minik8s.manager import Manager
from minik8s.observability.logger import logger
from minik8s.observability.logging import setup_logging, teardown_logging
from minik8s.store import ClusterStore, InMemoryClusterStore

console = Console(stderr=True)
log = logger.bind(component="cli")


def _load_clusters(paths: list[Path]) -> list[Cluster]:
    clusters = [load_manifest(p) for p in paths]
    for cluster in clusters:
        validate_cluster(cluster)
    return clusters


async def _wait_purged(store: ClusterStore, timeout: float) -> None:
    watch = store.watch()
    try:
        for cluster in await store.list():
            await store.delete(cluster.key)
        async with asyncio.timeout(timeout):
            while await store.list():
                await anext(watch)
    finally:
        watch.close()


async def _run(settings: Settings, clusters: list[Cluster], delete_timeout: float) -> None:
    handlers = setup_logging(settings.logging)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    provider = await settings.provider.create_provider()
    store = InMemoryClusterStore()
    try:
        async with Manager(store, provider, settings.controller):
            for cluster in clusters:
                await store.create(cluster)
                log.info("Submitted cluster {key}", key=cluster.key)

            await stop.wait()
            log.info("Interrupted, deleting {n} clusters", n=len(await store.list()))
            await _wait_purged(store, delete_timeout)
    finally:
        await provider.close()
        teardown_logging(handlers)


def _validate(clusters: list[Cluster]) -> None:
    table = Table(title="Clusters")
    table.add_column("Cluster")
    table.add_column("Kubernetes")
    table.add_column("Control plane", justify="right")
    table.add_column("Workers", justify="right")
    for c in clusters:
        spec = c.spec
        table.add_row(
            str(c.key),
            spec.kubernetes_version,
            str(spec.control_plane.count),
            str(spec.workers.count),
        )
    console.print(table)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="minik8s", description="Local Kubernetes cluster controller")
    parser.add_argument("--config", type=Path, default=None, help="Extra TOML settings file")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Reconcile the given clusters until interrupted")
    run.add_argument("manifests", nargs="+", type=Path)
    run.add_argument(
        "--delete-timeout", type=float, default=300.0,
        help="Seconds to wait for cluster teardown on shutdown",
    )

    validate = sub.add_parser("validate", help="Check manifests without touching the runtime")
    validate.add_argument("manifests", nargs="+", type=Path)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    try:
        clusters = _load_clusters(args.manifests)
        match args.command:
            case "validate":
                _validate(clusters)
            case "run":
                settings = load_settings(path=args.config)
                asyncio.run(_run(settings, clusters, args.delete_timeout))
    except MiniK8sError as e:
        console.print(f"[red]error:[/red] {e}")
        return 1
    except TimeoutError:
        console.print("[red]error:[/red] timed out waiting for clusters to be deleted")
        return 1
    return 0
