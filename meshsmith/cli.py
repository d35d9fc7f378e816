"""
meshsmith CLI - Command-line interface for merging models into one mesh
"""

import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from meshsmith import MeshMerger, __version__
from meshsmith.converters.gltf import import_glb
from meshsmith.exceptions import MeshsmithError
from meshsmith.schema.options import CHANNELS


def _parse_vec3(value: str):
    parts = [p.strip() for p in value.split(',')]
    if len(parts) != 3:
        raise click.BadParameter(f"expected x,y,z but got '{value}'")
    try:
        return tuple(float(p) for p in parts)
    except ValueError:
        raise click.BadParameter(f"expected numbers in '{value}'")


def _parse_offsets(ctx, param, values):
    return [_parse_vec3(v) for v in values]


def parse_decal(value: str):
    """
    Parse INDEX:IMAGE[@U,V][:SCALE[:OPACITY]].

    Returns:
        (model index, image path, options dict)
    """
    parts = value.split(':')
    if len(parts) < 2 or len(parts) > 4:
        raise click.BadParameter(f"expected INDEX:IMAGE[@U,V][:SCALE[:OPACITY]] but got '{value}'")

    try:
        index = int(parts[0])
        options = {}
        image = parts[1]
        if '@' in image:
            image, uv = image.rsplit('@', 1)
            u, v = (float(c) for c in uv.split(','))
            options['uv'] = (u, v)
        if len(parts) > 2:
            scale = float(parts[2])
            options['scale'] = (scale, scale, scale)
        if len(parts) > 3:
            options['opacity'] = float(parts[3])
    except ValueError:
        raise click.BadParameter(f"invalid number in decal '{value}'")

    return index, image, options


def _parse_decals(ctx, param, values):
    return [parse_decal(v) for v in values]


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    meshsmith - Merge 3D models into one mesh with a texture atlas.

    Examples:
        meshsmith merge chair.glb table.glb -o room.glb
        meshsmith inspect room.glb
    """
    pass


@cli.command()
@click.argument('inputs', nargs=-1, required=True)
@click.option('-o', '--output', required=True, help='Output .glb path')
@click.option('--atlas-size', default=2048, show_default=True, type=int, help='Atlas edge length in pixels')
@click.option('--quality', default=0.9, show_default=True, type=float, help='Texture resampling quality (0-1)')
@click.option('--channel', 'channels', multiple=True, type=click.Choice(CHANNELS),
              help='Extra texture channel to atlas (albedo is always on)')
@click.option('--offset', 'offsets', multiple=True, callback=_parse_offsets,
              help='Position x,y,z for each input, in order')
@click.option('--decal', 'decals', multiple=True, callback=_parse_decals,
              help='Decal INDEX:IMAGE[@U,V][:SCALE[:OPACITY]] (INDEX is the input position)')
@click.option('--verbose', '-v', is_flag=True, help='Show progress and detailed logging')
def merge(inputs, output, atlas_size, quality, channels, offsets, decals, verbose):
    """
    Merge several GLB models into one.

    Examples:
        meshsmith merge chair.glb table.glb -o room.glb --offset 0,0,0 --offset 2,0,0
        meshsmith merge crate.glb -o crate.glb --decal 0:logo.png@0.5,0.5:0.5
        meshsmith merge a.glb b.glb -o out.glb --channel normal --atlas-size 1024
    """
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    try:
        merger = MeshMerger()
        if verbose:
            merger.set_progress_callback(lambda stage, fraction: click.echo(f"  [{fraction:>4.0%}] {stage}"))

        model_ids = []
        for i, path in enumerate(inputs):
            if not Path(path).exists():
                raise FileNotFoundError(f"Input file not found: {path}")
            position = offsets[i] if i < len(offsets) else (0.0, 0.0, 0.0)
            click.echo(f"Loading: {path}")
            model_ids.append(merger.add_model(path, transform={"position": position}))

        for index, image, options in decals:
            if not 0 <= index < len(model_ids):
                raise ValueError(f"Decal model index {index} out of range (0-{len(model_ids) - 1})")
            merger.add_decal(model_ids[index], image, options)

        result = merger.merge({
            "atlas_size": atlas_size,
            "texture_quality": quality,
            "atlas_mode": {channel: True for channel in channels},
        })

        click.echo(f"Saving to: {output}")
        merger.save(output)

        if verbose:
            click.echo("\nMerge Statistics:")
            click.echo(f"  Vertices: {result.vertex_count}")
            click.echo(f"  Materials: {len(result.materials)}")
            click.echo(f"  Atlases: {', '.join(result.atlas.atlases)}")

        click.secho(f"✓ Success! Merged {len(inputs)} models into {output}", fg='green')

    except FileNotFoundError as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)
    except MeshsmithError as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)
    except (ValueError, ValidationError) as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)
    except Exception as e:
        click.secho(f"Unexpected error: {e}", fg='red', err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


@cli.command()
@click.argument('model_path')
def inspect(model_path):
    """
    Print the meshes and materials of a GLB model.

    Examples:
        meshsmith inspect room.glb
    """
    try:
        path = Path(model_path)
        if not path.exists():
            raise FileNotFoundError(f"Input file not found: {model_path}")

        meshes = import_glb(path.read_bytes())
        click.echo(f"{path.name}: {len(meshes)} meshes")
        for mesh in meshes:
            maps = [channel for channel, image in mesh.material.maps.items() if image is not None]
            click.echo(
                f"  {mesh.name}: {mesh.geometry.triangle_count} triangles, "
                f"material '{mesh.material.name}' (maps: {', '.join(maps) or 'none'})"
            )

    except FileNotFoundError as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)
    except (MeshsmithError, ValueError) as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == '__main__':
    main()
