#!/usr/bin/env python3
"""Inspect PVL labels and VICAR images.

Usage:
    vicar-dump label  PRODUCT.LBL                 # Print the parsed label
    vicar-dump info   PRODUCT.IMG                 # Resolved image geometry
    vicar-dump info   PRODUCT.LBL                 # ... from a detached label
    vicar-dump pixel  PRODUCT.IMG LINE SAMPLE BAND
    vicar-dump export PRODUCT.IMG out.png --depth 16

Files ending in .LBL/.lbl are opened as detached labels unless --embedded is
given.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from imagebuffer import ImageBuffer
from pvl_errors import PvlError
from pvl_label import KeyValuePair, PropertyGrouping, Pvl, SymbolKind
from vicar_img import VicarReader


def format_kvp(kvp: KeyValuePair, indent: bool = False) -> Optional[str]:
    prefix = "    " if indent else ""
    if kvp.key.kind in (SymbolKind.KEY, SymbolKind.POINTER):
        return f"{prefix}{kvp.key.name} -> {kvp.value.raw} ({kvp.value.value_type.value})"
    return None


def print_grouping(group: PropertyGrouping, depth: int = 0) -> None:
    pad = "    " * depth
    print(f"{pad}***************************************")
    print(f"{pad}{group.type_of().name}: {group.name}")
    for kvp in group.properties:
        line = format_kvp(kvp, indent=True)
        if line:
            print(pad + line)
    for child in [*group.groups, *group.objects]:
        print_grouping(child, depth + 1)
    print(f"{pad}    ** END {group.type_of().name}")


def print_pvl(pvl: Pvl) -> None:
    for kvp in pvl.properties:
        line = format_kvp(kvp)
        if line:
            print(line)
    for group in pvl.groups:
        print_grouping(group)
    for obj in pvl.objects:
        print_grouping(obj)


def open_reader(path: Path, embedded: bool = False) -> VicarReader:
    if not embedded and path.suffix.lower() == ".lbl":
        return VicarReader.from_detached_label(path)
    return VicarReader.open(path)


def print_info(reader: VicarReader) -> None:
    print(f"Label:        {'embedded' if reader.has_internal_label() else 'detached'}")
    print(f"Data type:    {reader.data_type.value}")
    print(f"Organization: {reader.organization.value}")
    print(f"Format:       {reader.pixel_format.value} ({reader.bytes_per_sample} bytes/sample)")
    print(f"Lines:        {reader.lines}")
    print(f"Samples:      {reader.samples}")
    print(f"Bands:        {reader.bands}")
    print(f"Label size:   {reader.label_size}")
    print(f"Record size:  {reader.record_size}")
    print(f"Pixel start:  {reader.data_start}")


def export_image(reader: VicarReader, out: Path, depth: int = 8) -> Path:
    image = ImageBuffer(reader.samples, reader.lines, reader.bands)
    with tqdm(total=reader.lines * reader.bands, unit="line", desc="Decoding") as pbar:
        for band in range(reader.bands):
            for line in range(reader.lines):
                for sample in range(reader.samples):
                    image.put(sample, line, reader.get_pixel_value(line, sample, band), band)
                pbar.update(1)
    image.normalize_between(0.0, 255.0 if depth == 8 else 65535.0)
    return image.save(out, depth=depth)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Inspect PVL labels and VICAR images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_label = sub.add_parser("label", help="Print the parsed PVL label")
    p_label.add_argument("path", type=Path)

    for name, help_text in (("info", "Print resolved image geometry"), ("pixel", "Print one sample value"), ("export", "Decode all pixels to an image file")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("path", type=Path)
        p.add_argument("--embedded", action="store_true", help="Treat a .LBL file as an embedded-label product")
        if name == "pixel":
            p.add_argument("line", type=int)
            p.add_argument("sample", type=int)
            p.add_argument("band", type=int)
        if name == "export":
            p.add_argument("out", type=Path)
            p.add_argument("--depth", type=int, choices=(8, 16), default=8, help="Output bit depth (default: 8)")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.path.exists():
        print(f"Error: Path not found: {args.path}")
        return 1

    try:
        if args.command == "label":
            print_pvl(Pvl.load(args.path))
            return 0

        with open_reader(args.path, embedded=args.embedded) as reader:
            if args.command == "info":
                print_info(reader)
            elif args.command == "pixel":
                print(reader.get_pixel_value(args.line, args.sample, args.band))
            else:
                out = export_image(reader, args.out, depth=args.depth)
                print(f"Saved {out}")
    except (PvlError, IndexError) as e:
        print(f"Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
