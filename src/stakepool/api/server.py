"""FastAPI server exposing a read-only view of a loaded ledger."""

from __future__ import annotations

import time
from dataclasses import asdict
from pathlib import Path
from typing import Any

import click
from fastapi import FastAPI, HTTPException

from stakepool import __version__
from stakepool.errors import NotFound
from stakepool.scenario import Scenario


def create_app(scenario: Scenario) -> FastAPI:
    """Build the API over ``scenario``. Nothing here mutates the ledger."""
    app = FastAPI(
        title="stakepool API",
        version=__version__,
        description="Read-only view of vault, workers and rebalancing state",
    )
    start_time = time.monotonic()

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        """Health check."""
        uptime = time.monotonic() - start_time
        return {
            "status": "ok",
            "version": __version__,
            "epoch": scenario.clock.current(),
            "uptime_seconds": round(uptime, 1),
        }

    @app.get("/api/vault")
    async def vault() -> dict[str, Any]:
        """Vault balances, exchange rate and configuration."""
        return asdict(scenario.vault.snapshot())

    @app.get("/api/workers")
    async def workers(active_only: bool = False) -> dict[str, Any]:
        records = scenario.registry.all_workers()
        if active_only:
            records = [r for r in records if r.active]
        return {
            "workers": [r.to_dict() for r in records],
            "count": len(records),
            "stats": asdict(scenario.registry.stats()),
        }

    @app.get("/api/workers/{worker_id}")
    async def worker(worker_id: str) -> dict[str, Any]:
        try:
            return scenario.registry.get_worker(worker_id).to_dict()
        except NotFound as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.get("/api/allocation/preview")
    async def allocation_preview() -> dict[str, Any]:
        """Target vs. current allocation for every active worker."""
        targets = scenario.engine.preview_allocation(
            scenario.strategy, scenario.vault, scenario.registry
        )
        return {
            "targets": [{**asdict(t), "deviation_bps": t.deviation_bps} for t in targets],
            "total_stake": scenario.vault.snapshot().delegated_capital,
        }

    @app.get("/api/rebalance/status")
    async def rebalance_status() -> dict[str, Any]:
        engine = scenario.engine
        return {
            "phase": engine.phase.value,
            "should_rebalance": engine.should_rebalance(
                scenario.strategy, scenario.vault, scenario.registry
            ),
            "cooldown_remaining": engine.cooldown_remaining(scenario.strategy, scenario.vault),
            "last_rebalance_epoch": scenario.vault.config().last_rebalance_epoch,
            "strategy": scenario.strategy.as_dict(),
        }

    return app


@click.command()
@click.argument("scenario_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--port", default=3848, help="Port to listen on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None)
def main(scenario_file: Path, port: int, host: str, config_path: Path | None) -> None:
    """Serve a scenario over the stakepool API."""
    import uvicorn

    from stakepool.config import load_settings
    from stakepool.observability import setup_logger
    from stakepool.scenario import load_scenario

    settings = load_settings(config_path)
    setup_logger(
        settings.logging.level, settings.logging.log_dir, json_logs=settings.logging.json_logs
    )
    uvicorn.run(create_app(load_scenario(scenario_file, settings)), host=host, port=port)
