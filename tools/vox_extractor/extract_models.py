#!/usr/bin/env python3
"""Extract MagicaVoxel VOX models to glTF format.

Usage:
    python -m vox_extractor.extract_models <input> [-o <output>] [--voxels-per-unit N]

Examples:
    # Extract a single file
    python -m vox_extractor.extract_models castle.vox -o ./output

    # Extract all VOX files from a directory, one quad per voxel face
    python -m vox_extractor.extract_models ./models/ -o ./output --no-optimize

    # Use an external palette texture instead of the file's own palette
    python -m vox_extractor.extract_models castle.vox --palette palette.png

    # Show what a file contains without exporting
    python -m vox_extractor.extract_models castle.vox --info
"""
import argparse
import os
import sys
from pathlib import Path

from .gltf_exporter import VoxGLTFExporter
from .vox_file import VoxFile
from .vox_types import ImportSettings


def print_info(vox_file: Path):
    vox = VoxFile.open(vox_file)
    info = vox.get_info()
    print(f"{vox_file}:")
    print(f"  Version: {info['version']}")
    print(f"  Models: {info['model_count']}")
    for i, size in enumerate(info["sizes"]):
        print(f"    [{i}] {size[0]}x{size[1]}x{size[2]}")
    print(f"  Materials: {info['materials']}")
    print(f"  Scene nodes: {info['scene_nodes']}")
    print(f"  Palette: {'file' if info['has_palette'] else 'default'}")

    placements = vox.calculate_model_tree()
    print(f"  Placements: {len(placements) - 1}")
    for placement in placements[1:]:
        if not placement.is_resolved:
            continue
        label = placement.name or f"model {placement.model_id}"
        print(f"    {label}: model {placement.model_id} at {placement.position}")

    for warning in vox.warnings:
        print(f"Warning: {vox_file}: {warning}", file=sys.stderr)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Extract MagicaVoxel VOX models to glTF format"
    )
    parser.add_argument(
        "input",
        help="Input VOX file or directory containing VOX files",
    )
    parser.add_argument(
        "-o", "--output",
        default="./output",
        help="Output directory for glTF files (default: ./output)",
    )
    parser.add_argument(
        "--voxels-per-unit",
        type=int,
        default=10,
        help="Voxels per scene unit (default: 10)",
    )
    parser.add_argument(
        "--no-optimize",
        action="store_true",
        help="Emit one quad per voxel face instead of merging faces",
    )
    parser.add_argument(
        "--palette",
        help="256x1 PNG to use as the palette texture",
    )
    parser.add_argument(
        "--always-palette",
        action="store_true",
        help="Write <name>_palette.png even when --palette is given",
    )
    parser.add_argument(
        "--info",
        action="store_true",
        help="Print file contents instead of exporting",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )

    args = parser.parse_args(argv)

    if args.voxels_per_unit <= 0:
        parser.error("--voxels-per-unit must be positive")

    # Collect input files
    input_path = Path(args.input)
    if input_path.is_file():
        files = [input_path]
    elif input_path.is_dir():
        files = sorted(input_path.glob("**/*.vox"))
        if not files:
            print(f"No VOX files found in {input_path}", file=sys.stderr)
            return 1
    else:
        print(f"Input not found: {args.input}", file=sys.stderr)
        return 1

    if args.info:
        fail_count = 0
        for vox_file in files:
            try:
                print_info(vox_file)
            except Exception as e:
                print(f"Failed: {vox_file} - {e}", file=sys.stderr)
                fail_count += 1
        return 0 if fail_count == 0 else 1

    settings = ImportSettings(
        voxels_per_unit=args.voxels_per_unit,
        optimize_mesh=not args.no_optimize,
        generate_palette_always=args.always_palette,
        palette_override=args.palette,
    )

    # Ensure output directory exists
    os.makedirs(args.output, exist_ok=True)

    success_count = 0
    fail_count = 0

    for vox_file in files:
        output_file = Path(args.output) / f"{vox_file.stem}.glb"

        try:
            exporter = VoxGLTFExporter(vox_file, settings)
            exporter.export(output_file)
            if settings.writes_palette:
                palette_file = Path(args.output) / f"{vox_file.stem}_palette.png"
                exporter.export_palette(palette_file)
                if args.verbose:
                    print(f"Palette: {palette_file}")
            for warning in exporter.vox.warnings:
                print(f"Warning: {vox_file}: {warning}", file=sys.stderr)
            if args.verbose:
                print(f"Exported: {vox_file} -> {output_file}")
            success_count += 1
        except Exception as e:
            print(f"Failed: {vox_file} - {e}", file=sys.stderr)
            fail_count += 1

    # Summary
    total = success_count + fail_count
    print(f"\nExtracted {success_count}/{total} files to {args.output}")

    return 0 if fail_count == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
