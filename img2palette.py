#!/usr/bin/env python3

from typing import Optional, Tuple
import argparse
import logging
import os
import time

import numpy as np
from PIL import Image, UnidentifiedImageError
from PIL.Image import Image as PILImage

from color_space import ColorPaletteSpace, METRICS, MODES
from palettes import (
    ImageReadError,
    ImageWriteError,
    TransferError,
    resolve_palette,
)

DEFAULT_FORMAT = "JPEG"

# Formats that keep an alpha channel when saving RGBA
ALPHA_FORMATS = ("PNG", "TIFF", "WEBP")

# Extension used for the default output name where Pillow's first pick is odd
PREFERRED_EXTENSIONS = {"JPEG": ".jpg", "TIFF": ".tif"}


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="img2palette", description="Converts image to color palette"
    )
    parser.add_argument("image", help="Image to convert")
    parser.add_argument("-t", "--timing", action="store_true", help="Prints timings")
    parser.add_argument(
        "-o",
        "--output",
        help="Set output name. Tries to honour set extension. Example: output.png",
    )
    colors = parser.add_mutually_exclusive_group()
    colors.add_argument(
        "-c",
        "--colors",
        help='Hexcodes in parenthesis and split by comma. Example: "2E3440,3B4252,434C5E". '
        "Uses Nord color palette if not set: https://www.nordtheme.com/",
    )
    colors.add_argument(
        "-p", "--palette", help="Text palette file (GIMP, JASC, Paint.NET, .hex, .tr)."
    )
    parser.add_argument(
        "-m",
        "--mode",
        choices=MODES,
        default="nearest",
        help="nearest: replace each pixel with the closest palette color, "
        "hull: clamp pixels into the convex hull spanned by the palette",
    )
    parser.add_argument(
        "--metric",
        choices=METRICS,
        default="rgb",
        help="Color space distances are measured in for nearest mode.",
    )
    parser.add_argument(
        "-d", "--dither", action="store_true", help="Apply Floyd-Steinberg dithering."
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose mode."
    )
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO)
    else:
        logging.basicConfig(level=logging.WARNING)

    if args.mode == "hull" and args.metric != "rgb":
        parser.error("--metric oklab only works with --mode nearest")
    if args.dither and args.mode != "nearest":
        parser.error("--dither only works with --mode nearest")

    try:
        convert(args)
    except TransferError as e:
        logging.info("conversion failed", exc_info=True)
        parser.exit(1, f"{parser.prog}: error: {e}\n")


def convert(args: argparse.Namespace) -> None:
    # Use either Nord or the given color palette
    palette = resolve_palette(args.colors, args.palette)
    space = ColorPaletteSpace(palette, mode=args.mode, metric=args.metric)

    now = time.perf_counter()
    img, input_format = read_image(args.image)
    # Use format from output file, input file or fall back to jpeg
    fmt = resolve_format(args.output, input_format)
    if args.timing:
        print(f"Read took {elapsed(now)}")

    now = time.perf_counter()
    out_img = transfer(img, space, dither=args.dither, keep_alpha=fmt in ALPHA_FORMATS)
    if args.timing:
        print(f"Transfer took {elapsed(now)}")

    now = time.perf_counter()
    output = args.output or default_output_name(fmt)
    write_image(out_img, output, fmt)
    if args.timing:
        print(f"Write took {elapsed(now)}")
    print(f"Saved {fmt} image to: {output}")


def elapsed(start: float) -> str:
    return f"{(time.perf_counter() - start) * 1000:.3f}ms"


def read_image(filename: str) -> Tuple[PILImage, Optional[str]]:
    """Open and decode an image, returning it with its file format."""
    try:
        img = Image.open(filename)
        img.load()
    except (OSError, UnidentifiedImageError, Image.DecompressionBombError) as err:
        raise ImageReadError(f"cannot read image {filename!r}: {err}") from err

    logging.info(f"image: {filename}, format: {img.format}, mode: {img.mode}, size: {img.size}")
    return img, img.format


def resolve_format(output: Optional[str], input_format: Optional[str]) -> str:
    """Pick the output format from the output extension, the input format or JPEG."""
    if output:
        ext = os.path.splitext(output)[1].lower()
        fmt = Image.registered_extensions().get(ext)
        if fmt:
            return fmt
        logging.warning(f"unknown extension {ext!r} for {output}, not using it")
    return input_format or DEFAULT_FORMAT


def default_output_name(fmt: str) -> str:
    if fmt in PREFERRED_EXTENSIONS:
        return f"out{PREFERRED_EXTENSIONS[fmt]}"

    extensions = [ext for ext, f in Image.registered_extensions().items() if f == fmt]
    if f".{fmt.lower()}" in extensions:
        return f"out.{fmt.lower()}"
    if extensions:
        return f"out{extensions[0]}"
    return f"out.{fmt.lower()}"


def transfer(
    image: PILImage,
    space: ColorPaletteSpace,
    dither: bool = False,
    keep_alpha: bool = False,
) -> PILImage:
    """Redraw an image with the colors of a palette space."""
    rgb_image = image.convert("RGB")

    pixels = np.asarray(rgb_image)
    if dither:
        out = Image.fromarray(space.dither_pixels(pixels))
    else:
        out = Image.fromarray(space.map_pixels(pixels))

    has_alpha = "A" in image.getbands() or "transparency" in image.info
    if keep_alpha and has_alpha:
        out.putalpha(image.convert("RGBA").getchannel("A"))
    return out


def write_image(image: PILImage, filename: str, fmt: str) -> None:
    try:
        image.save(filename, format=fmt)
    except (OSError, ValueError, KeyError) as err:
        raise ImageWriteError(f"cannot write {fmt} image {filename!r}: {err}") from err


if __name__ == "__main__":
    main()
