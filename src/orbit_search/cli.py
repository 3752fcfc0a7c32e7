"""
Command-line interface for the satellite pass search.

This module provides a CLI for searching passes, validating TLE files
and managing element-set downloads and the cache.
"""

from pathlib import Path
from typing import List, Optional, Tuple
import logging
import sys

import click

from .config import SearchConfig, load_config
from .observer import ObserverLocation, SearchFilters
from .provider import ProviderError, get_common_tle_sources
from .search import PassSearch, export_passes
from .tle import InvalidTLEError, TleRecord, parse_batch
from .utils import format_coordinates, format_duration, get_current_utc, parse_datetime, setup_logging

logger = logging.getLogger(__name__)


def _read_tle_groups(path: str) -> List[Tuple[int, Optional[str], str, str]]:
    """Split a TLE file into (line_number, name, line1, line2) groups."""
    with open(path, "r") as f:
        lines = [(i + 1, line.strip()) for i, line in enumerate(f) if line.strip()]

    groups = []
    i = 0
    while i < len(lines):
        number, text = lines[i]
        if text.startswith("1 ") and i + 1 < len(lines):
            groups.append((number, None, text, lines[i + 1][1]))
            i += 2
        elif i + 2 < len(lines):
            groups.append((number, text, lines[i + 1][1], lines[i + 2][1]))
            i += 3
        else:
            groups.append((number, text, "", ""))
            i += 1
    return groups


@click.group()
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Set logging level')
@click.option('--log-file', type=click.Path(), help='Log file path')
@click.option('--config', 'config_path', type=click.Path(),
              help='YAML configuration file')
@click.pass_context
def main(ctx: click.Context, log_level: str, log_file: Optional[str], config_path: Optional[str]) -> None:
    """Satellite Pass Search - find when satellites pass over an observer."""
    setup_logging(log_level, log_file)
    ctx.obj = load_config(config_path)
    logger.debug("Starting orbit search CLI")


@main.command()
@click.option('--tle', 'tle_file', type=click.Path(exists=True),
              help='Path to TLE file')
@click.option('--satellite', help='Only use satellites whose name contains this text')
@click.option('--norad', 'norad_ids', multiple=True,
              help='NORAD catalog number to fetch (can specify multiple)')
@click.option('--lat', required=True, type=float, help='Observer latitude in degrees')
@click.option('--lon', required=True, type=float, help='Observer longitude in degrees')
@click.option('--start-time', type=str,
              help='Start time (YYYY-MM-DD HH:MM:SS UTC, default: now)')
@click.option('--duration', default=24.0, type=float,
              help='Search duration in hours (default: 24)')
@click.option('--min-elevation', type=float,
              help='Minimum pass elevation in degrees (default: from config)')
@click.option('--daylight/--no-daylight', default=False,
              help='Only keep passes visible to the naked eye (dark sky, sunlit satellite)')
@click.option('--output', type=click.Path(), help='Output file for results')
@click.option('--format', 'output_format', default='auto',
              type=click.Choice(['auto', 'json', 'csv']),
              help='Output format')
@click.pass_obj
def passes(
    config: SearchConfig,
    tle_file: Optional[str],
    satellite: Optional[str],
    norad_ids: Tuple[str, ...],
    lat: float,
    lon: float,
    start_time: Optional[str],
    duration: float,
    min_elevation: Optional[float],
    daylight: bool,
    output: Optional[str],
    output_format: str,
) -> None:
    """Search satellite passes over an observer.

    Example:
    passes --tle stations.tle --satellite ISS --lat 35.68 --lon 139.77 --duration 24
    """
    if not tle_file and not norad_ids:
        click.echo("Specify --tle FILE and/or --norad ID", err=True)
        sys.exit(2)

    try:
        start_dt = parse_datetime(start_time) if start_time else get_current_utc()
        location = ObserverLocation(lat=lat, lng=lon)
        filters = SearchFilters.for_duration(
            location,
            start_dt,
            duration,
            min_elevation_deg=min_elevation if min_elevation is not None else config.min_elevation_deg,
            consider_daylight=daylight,
        )

        satellites: List = list(norad_ids)
        if tle_file:
            with open(tle_file, "r") as f:
                records = parse_batch(f.read())
            if satellite:
                records = [r for r in records if r.name and satellite.upper() in r.name.upper()]
            if not records and not norad_ids:
                click.echo(f"No matching satellites in {tle_file}", err=True)
                sys.exit(1)
            satellites.extend(records)

        click.echo(f"Searching passes over {format_coordinates(lat, lon)} "
                   f"from {filters.start_time} for {duration} hours...")
        with config.create_worker() as worker:
            search = PassSearch(
                cache=config.create_cache(),
                provider=config.create_provider(),
                prefilter=config.create_prefilter(),
                worker=worker,
                step_seconds=config.step_seconds,
                horizon_deg=config.horizon_deg,
                result_ttl=config.result_ttl,
            )
            results = search.search(satellites, filters)

        for norad_id, found in results.items():
            click.echo(f"\n{norad_id}: {len(found)} passes")
            for satellite_pass in found:
                light = "day" if satellite_pass.is_daylight else "night"
                click.echo(f"  {satellite_pass} ({format_duration(satellite_pass.duration_seconds)}, {light})")

        summary = search.summarize(results)
        click.echo("\n=== Search Summary ===")
        click.echo(f"Total passes: {summary['total_passes']}")
        click.echo(f"Satellites with passes: {summary['satellites_with_passes']}/{summary['satellites_analyzed']}")
        click.echo(f"Highest elevation: {summary['highest_elevation']}°")

        if output:
            path = export_passes(results, output, format=output_format)
            click.echo(f"\nResults saved to: {path}")

    except (ValueError, ProviderError) as e:
        logger.error(f"Pass search failed: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument('tle_file', type=click.Path(exists=True))
@click.option('--no-checksum', is_flag=True, help='Skip checksum verification')
def validate(tle_file: str, no_checksum: bool) -> None:
    """Validate every element set in a TLE file."""
    groups = _read_tle_groups(tle_file)
    invalid = 0

    for line_number, name, line1, line2 in groups:
        label = name or line1[2:7] or "?"
        try:
            record = TleRecord.from_lines(line1, line2, name=name, verify_checksum=not no_checksum)
        except InvalidTLEError as e:
            invalid += 1
            click.echo(f"  INVALID  {label:<24} line {line_number}: {e}")
            continue
        click.echo(f"  OK       {label:<24} epoch {record.epoch.isoformat()}")

    click.echo(f"\n{len(groups) - invalid}/{len(groups)} element sets valid")
    if invalid:
        sys.exit(1)


@main.command()
@click.option('--source', default='celestrak_active',
              help='TLE source (use "list-sources" to see available)')
@click.option('--output', required=True, type=click.Path(),
              help='Output TLE file path')
@click.option('--url', type=str,
              help='Custom URL for TLE data')
@click.pass_obj
def download_tle(config: SearchConfig, source: str, output: str, url: Optional[str]) -> None:
    """Download TLE data from online sources."""
    if url:
        download_url = url
    else:
        sources = get_common_tle_sources()
        if source not in sources:
            click.echo(f"Unknown source: {source}")
            click.echo("Available sources:")
            for name in sources.keys():
                click.echo(f"  {name}")
            sys.exit(1)
        download_url = sources[source]

    click.echo(f"Downloading TLE data from {download_url}")
    try:
        path = config.create_provider().download(download_url, output)
    except ProviderError as e:
        click.echo(f"Download failed: {e}", err=True)
        sys.exit(1)

    with open(path, "r") as f:
        count = len(parse_batch(f.read()))
    click.echo(f"TLE data saved to: {path} ({count} element sets)")


@main.command()
def list_sources() -> None:
    """List available TLE data sources."""
    sources = get_common_tle_sources()

    click.echo("Available TLE sources:")
    for name, url in sources.items():
        click.echo(f"  {name:<20} {url}")


@main.command()
@click.option('--norad', 'norad_id', help='Only remove the cached TLE of this satellite')
@click.pass_obj
def cache_clear(config: SearchConfig, norad_id: Optional[str]) -> None:
    """Clear the element-set cache."""
    if config.cache_backend != "sqlite":
        click.echo("Memory cache is not persistent; nothing to clear")
        return

    if not Path(config.cache_path).exists():
        click.echo(f"No cache at {config.cache_path}")
        return

    cache = config.create_cache()
    if norad_id:
        cache.clear_tle(norad_id)
        click.echo(f"Removed cached TLE {norad_id}")
    else:
        cache.clear_all()
        click.echo(f"Cache cleared: {config.cache_path}")


if __name__ == '__main__':
    main()
