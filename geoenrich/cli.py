"""Click CLI commands for geoenrich."""

import dataclasses
import json
import logging

import click
import numpy as np

from . import config
from .builder import GeoEnricher
from .constants import DEFAULT_GROUND_LEVEL
from .errors import GeoEnrichError
from .models import BoundingBox, Footprint
from .registry import fetch_buildings

logger = logging.getLogger(__name__)

_bbox_args = [
    click.argument('south', type=float),
    click.argument('west', type=float),
    click.argument('north', type=float),
    click.argument('east', type=float),
]


def bbox_arguments(func):
    for decorator in reversed(_bbox_args):
        func = decorator(func)
    return func


def _progress(pct, msg):
    click.echo(f"[{pct:3.0f}%] {msg}")


def _make_bbox(south, west, north, east) -> BoundingBox:
    try:
        return BoundingBox.from_edges(south, west, north, east)
    except GeoEnrichError as e:
        raise click.BadParameter(str(e))


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def cli(verbose: bool):
    """Enrich renderer data with BBR buildings and DHM terrain."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format='%(asctime)s - %(levelname)s - %(message)s')


@cli.command()
@bbox_arguments
@click.option('--output', '-o', type=click.Path(dir_okay=False),
              help='Write the records as JSON')
def buildings(south, west, north, east, output):
    """Fetch BBR building records for a bounding box."""
    bbox = _make_bbox(south, west, north, east)
    try:
        api_key = config.require_credential(config.bbr_api_key(), "BBR API key")
        records = fetch_buildings(bbox, api_key, progress_callback=_progress)
    except GeoEnrichError as e:
        raise click.ClickException(str(e))

    click.echo(f"{len(records)} BBR buildings in {bbox.describe()}")
    if output:
        with open(output, 'w', encoding='utf-8') as f:
            json.dump([dataclasses.asdict(r) for r in records], f, indent=1)
        click.echo(f"Wrote {output}")


@cli.command()
@bbox_arguments
@click.option('--scale', '-s', default=1.0, show_default=True,
              help='Renderer cells per metre')
@click.option('--ground-level', '-g', default=DEFAULT_GROUND_LEVEL,
              show_default=True, help='Renderer Y of the lowest point')
@click.option('--output', '-o', type=click.Path(dir_okay=False),
              help='Save heights as .npy')
def terrain(south, west, north, east, scale, ground_level, output):
    """Fetch DHM terrain as a renderer height grid."""
    bbox = _make_bbox(south, west, north, east)
    try:
        grid = GeoEnricher().fetch_terrain(bbox, scale, ground_level,
                                           progress_callback=_progress)
    except GeoEnrichError as e:
        raise click.ClickException(str(e))

    click.echo(f"Terrain grid {grid.width}x{grid.height}, "
               f"Y {int(grid.heights.min())}..{int(grid.heights.max())}, "
               f"sea level row: {grid.sea_level_row}")
    if output:
        np.save(output, grid.heights)
        click.echo(f"Wrote {output}")


@cli.command(name='enrich')
@click.argument('footprints', type=click.Path(exists=True, dir_okay=False))
@bbox_arguments
@click.option('--output', '-o', type=click.Path(dir_okay=False),
              help='Output JSON (defaults to overwriting FOOTPRINTS)')
def enrich_cmd(footprints, south, west, north, east, output):
    """Apply BBR tags to footprints stored as JSON.

    FOOTPRINTS is a list of {"vertices": [[x, z], ...], "tags": {...}}.
    """
    bbox = _make_bbox(south, west, north, east)
    with open(footprints, encoding='utf-8') as f:
        items = [Footprint(vertices=[tuple(v) for v in d.get('vertices', [])],
                           tags=dict(d.get('tags', {})))
                 for d in json.load(f)]

    try:
        stats = GeoEnricher().enrich_buildings(items, bbox,
                                               progress_callback=_progress)
    except GeoEnrichError as e:
        raise click.ClickException(str(e))

    output = output or footprints
    with open(output, 'w', encoding='utf-8') as f:
        json.dump([{'vertices': [list(v) for v in fp.vertices],
                    'tags': fp.tags} for fp in items], f, indent=1)
    click.echo(f"Matched {stats.matched}, enriched {stats.enriched}; "
               f"wrote {output}")


def main():
    cli()


if __name__ == '__main__':
    main()
