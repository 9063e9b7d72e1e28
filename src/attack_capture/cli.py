"""Typer CLI for sandboxed attack capture."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from .attack.generator import UdpFlood
from .capture.ingestion import CaptureIngestor
from .capture.labeler import AttackLabeler
from .capture.pcap_reader import first_arrival_micros
from .capture.records import RecordSet
from .config import Config, load_config
from .errors import AttackCaptureError
from .session.controller import SessionController
from .utils.io import save_dataframe
from .utils.logging import configure_logging

app = typer.Typer(add_completion=False)


def _load(config_path: Path) -> Config:
    try:
        config = load_config(config_path)
    except AttackCaptureError as exc:
        raise typer.BadParameter(str(exc)) from exc
    configure_logging(config.logging.level, config.logging.json)
    return config


def _format_summary(records: RecordSet, name: str) -> str:
    """Return a compact CLI summary for a record set."""

    return " ".join(
        [
            f"[{name}]",
            f"records={len(records)}",
            f"attacks={records.attack_count}",
            f"benign={len(records) - records.attack_count}",
        ]
    )


def _write(records: RecordSet, out: Optional[Path], config: Config) -> None:
    if out is None:
        return
    save_dataframe(out, records.to_frame(config.capture.timestamp_format))
    typer.echo(f"Wrote {len(records)} records → {out}")


@app.command()
def generate(
    config_path: Path = typer.Option(Path("configs/config.yaml"), help="Path to configuration file"),
    out: Optional[Path] = typer.Option(None, help="CSV or Parquet output for the labeled records"),
) -> None:
    """Run one sandboxed attack session and export the labeled packets."""

    config = _load(config_path)
    controller = SessionController(config)
    try:
        records = controller.run()
    except AttackCaptureError as exc:
        typer.echo(f"Session failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    _write(records, out, config)
    typer.echo(_format_summary(records, config.sandbox.container_name))


@app.command()
def ingest(
    pcap: Path = typer.Argument(..., exists=True, dir_okay=False, help="Capture file to label"),
    config_path: Path = typer.Option(Path("configs/config.yaml"), help="Path to configuration file"),
    start_us: Optional[int] = typer.Option(None, help="Session start in µs since the epoch (default: first frame)"),
    out: Optional[Path] = typer.Option(None, help="CSV or Parquet output for the labeled records"),
) -> None:
    """Label an existing capture file without running a sandbox."""

    config = _load(config_path)
    try:
        if start_us is None:
            start_us = first_arrival_micros(pcap) or 0
        ingestor = CaptureIngestor(
            AttackLabeler(config.attack.signature, config.attack.header_skip),
            session_start_us=start_us,
            max_records=config.capture.max_records,
            drop_before_start=config.capture.drop_before_start,
            show_progress=config.capture.show_progress,
        )
        records, _ = ingestor.ingest(pcap)
    except AttackCaptureError as exc:
        typer.echo(f"Ingest failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    _write(records, out, config)
    typer.echo(_format_summary(records, pcap.name))


@app.command()
def flood(
    target: str = typer.Argument(..., help="Address to flood"),
    config_path: Path = typer.Option(Path("configs/config.yaml"), help="Path to configuration file"),
) -> None:
    """Send the configured attack burst to TARGET without a sandbox."""

    config = _load(config_path)
    try:
        stats = UdpFlood(config.attack).run(target)
    except AttackCaptureError as exc:
        typer.echo(f"Flood failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Sent {stats.packets_sent} packets to {target} in {stats.elapsed:.2f}s")


if __name__ == "__main__":
    app()
