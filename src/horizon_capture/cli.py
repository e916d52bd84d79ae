"""
Command-line interface for horizon capture.
"""

import sys
from pathlib import Path
from typing import Optional
import logging

import click
import yaml

from . import __version__
from .config import Config
from .coverage import CoverageAnalyzer
from .errors import ExportError
from .exporter import HorizonExporter
from .sensors import SimulatedSensorSource, load_sample_log, save_sample_log
from .session import CaptureSession
from .sinks import FileExportSink, load_points_csv


# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def _load_config(config: Optional[Path], verbose: bool) -> Config:
    try:
        cfg = Config.from_yaml(config) if config else Config()
    except (ValueError, OSError, yaml.YAMLError) as e:
        click.echo(click.style(f"✗ Invalid configuration: {e}", fg="red"))
        sys.exit(1)
    cfg.verbose = cfg.verbose or verbose
    if cfg.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    return cfg


def _write_output(text: str, output: Optional[Path]) -> None:
    if output is None:
        click.echo(text)
        return
    location = FileExportSink(output.parent).write(text, output.name)
    click.echo(f"Wrote: {location}")


@click.group()
@click.version_option(version=__version__)
def main():
    """Horizon Capture - build horizon obstruction profiles from orientation sensors."""
    pass


@main.command()
@click.argument("points_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-o", "--output",
    type=click.Path(path_type=Path),
    help="Output file (default: print to stdout)"
)
@click.option(
    "-c", "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration YAML file"
)
@click.option(
    "--format", "export_format",
    type=click.Choice(["hzn", "csv"]),
    default=None,
    help="Export format"
)
@click.option(
    "--policy",
    type=click.Choice(["carry_forward", "nearest_neighbor"]),
    default=None,
    help="Gap fill policy for the .hzn profile"
)
@click.option(
    "--delimiter",
    type=click.Choice([",", ";"]),
    default=None,
    help="CSV delimiter"
)
@click.option("--dms", is_flag=True, help="Write CSV coordinates as degrees/minutes/seconds")
@click.option("--timestamp", is_flag=True, help="Add a timestamp column to CSV output")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def export(
    points_path: Path,
    output: Optional[Path],
    config: Optional[Path],
    export_format: Optional[str],
    policy: Optional[str],
    delimiter: Optional[str],
    dms: bool,
    timestamp: bool,
    verbose: bool,
):
    """
    Export captured points as a horizon profile.

    POINTS_PATH: CSV file with Azimuth and Altitude columns
    """
    cfg = _load_config(config, verbose)

    # Apply command-line overrides
    if export_format:
        cfg.export.format = export_format
    if policy:
        cfg.export.policy = policy
    if delimiter:
        cfg.export.delimiter = delimiter
    if dms:
        cfg.export.coordinate_format = "dms"
    if timestamp:
        cfg.export.include_timestamp = True

    try:
        points = load_points_csv(points_path)
        exporter = HorizonExporter(
            policy=cfg.export.policy,
            delimiter=cfg.export.delimiter,
            include_timestamp=cfg.export.include_timestamp,
            coordinate_format=cfg.export.coordinate_format,
            filename=cfg.export.filename,
        )
        text = exporter.export(points, cfg.export.format)
    except (ValueError, OSError) as e:
        click.echo(click.style(f"✗ Export failed: {e}", fg="red"))
        sys.exit(1)

    _write_output(text, output)


@main.command()
@click.argument("points_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-c", "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration YAML file"
)
@click.option("--resolution", type=float, default=None, help="Azimuth bucket size in degrees")
@click.option("--gap-threshold", type=float, default=None, help="Report gaps wider than this (degrees)")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def coverage(
    points_path: Path,
    config: Optional[Path],
    resolution: Optional[float],
    gap_threshold: Optional[float],
    verbose: bool,
):
    """
    Show coverage, gaps and altitude statistics for a point file.

    POINTS_PATH: CSV file with Azimuth and Altitude columns
    """
    cfg = _load_config(config, verbose)
    capture = cfg.capture

    try:
        points = load_points_csv(points_path)
        analyzer = CoverageAnalyzer(
            resolution=resolution or capture.resolution_deg,
            complete_threshold=capture.complete_threshold,
            almost_threshold=capture.almost_threshold,
            gap_threshold=capture.gap_threshold_deg if gap_threshold is None else gap_threshold,
            recommended_points=capture.recommended_points,
        )
    except (ValueError, OSError) as e:
        click.echo(click.style(f"✗ {e}", fg="red"))
        sys.exit(1)

    click.echo(analyzer.generate_report(points))


@main.command()
@click.argument("log_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-o", "--output",
    type=click.Path(path_type=Path),
    help="Export the captured profile to this file"
)
@click.option(
    "-c", "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration YAML file"
)
@click.option(
    "--capture-every",
    type=int,
    default=10,
    help="Try to capture a point every N samples (0 disables capture)"
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def replay(
    log_path: Path,
    output: Optional[Path],
    config: Optional[Path],
    capture_every: int,
    verbose: bool,
):
    """
    Run a recorded sample log through a capture session.

    LOG_PATH: CSV sample log (timestamp,gx,gy,gz,mx,my,mz,yaw,pitch,roll,heading)
    """
    cfg = _load_config(config, verbose)

    try:
        samples = load_sample_log(log_path)
        session = CaptureSession(cfg)
    except (ValueError, OSError) as e:
        click.echo(click.style(f"✗ {e}", fg="red"))
        sys.exit(1)

    session.start(location_name=log_path.stem)
    skipped = 0
    for i, sample in enumerate(samples, 1):
        session.process(sample)
        if capture_every > 0 and i % capture_every == 0:
            try:
                session.capture()
            except RuntimeError as e:
                skipped += 1
                logger.debug(f"Sample {i}: capture skipped ({e})")

    reading = session.current
    session.end()

    click.echo(f"Replayed {len(samples)} samples from {log_path}")
    if reading is not None:
        click.echo(f"  Last reading: az={reading.azimuth:.1f}° alt={reading.altitude:.1f}° "
                   f"stability={reading.accuracy:.2f}")
    click.echo(f"  Captured points: {len(session.points)} ({skipped} skipped as unstable)")
    click.echo()
    click.echo(session.generate_report())

    if output is not None:
        try:
            text = session.export()
        except ExportError as e:
            click.echo(click.style(f"✗ Export failed: {e}", fg="red"))
            sys.exit(1)
        _write_output(text, output)


@main.command()
@click.argument("output_path", type=click.Path(path_type=Path))
@click.option(
    "-c", "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration YAML file"
)
@click.option("--samples", type=int, default=400, help="Number of samples to generate")
@click.option("--azimuth", type=float, default=0.0, help="Starting azimuth (degrees)")
@click.option("--altitude", type=float, default=10.0, help="Camera altitude (degrees)")
@click.option("--sweep-rate", type=float, default=10.0, help="Azimuth sweep rate (degrees/s)")
@click.option("--noise", type=float, default=0.0, help="Pointing noise (degrees, 1 sigma)")
@click.option("--interval-ms", type=int, default=None, help="Sample interval (ms, default from config)")
@click.option("--seed", type=int, default=None, help="Random seed")
def simulate(
    output_path: Path,
    config: Optional[Path],
    samples: int,
    azimuth: float,
    altitude: float,
    sweep_rate: float,
    noise: float,
    interval_ms: Optional[int],
    seed: Optional[int],
):
    """
    Write a synthetic sample log of a device sweeping the horizon.

    OUTPUT_PATH: Where to write the CSV sample log
    """
    cfg = _load_config(config, False)
    source = SimulatedSensorSource(
        azimuth=azimuth,
        altitude=altitude,
        sweep_rate=sweep_rate,
        pointing_noise=noise,
        interval_ms=cfg.sensor.update_interval_ms if interval_ms is None else interval_ms,
        seed=seed,
    )
    save_sample_log(source.generate(samples), output_path)
    click.echo(f"Wrote {samples} samples to {output_path}")


@main.command()
@click.argument("output_path", type=click.Path(path_type=Path))
def init_config(output_path: Path):
    """
    Create a default configuration file.
    """
    cfg = Config()
    cfg.to_yaml(output_path)
    click.echo(f"Created configuration file: {output_path}")


if __name__ == "__main__":
    main()
