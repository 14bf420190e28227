import logging
import re
from typing import List, Optional, Tuple

Color = Tuple[int, int, int]

# https://www.nordtheme.com/
NORD = [
    "#2E3440", "#3B4252", "#434C5E", "#4C566A",
    "#D8DEE9", "#E5E9F0", "#ECEFF4", "#8FBCBB",
    "#88C0D0", "#81A1C1", "#5E81AC", "#BF616A",
    "#D08770", "#EBCB8B", "#A3BE8C", "#B48EAD",
]

HEX_PATTERN = re.compile(r"^#?([0-9A-Fa-f]{6}|[0-9A-Fa-f]{3})$")

PALETTE_LINE_PATTERNS = [re.compile(s) for s in [
    # .tr palettes: "index - r g b"
    r"^\s*\d+\s*-\s*(\d{1,3})\s+(\d{1,3})\s+(\d{1,3})\b",

    # Whitespace-separated decimal numbers at the start of a line
    # Matches: GIMP palettes, JASC palettes, PPM images
    r"^\s*(\d{1,3})\s+(\d{1,3})\s+(\d{1,3})\b",

    # Paint.NET
    r"^FF([0-9A-Fa-f]{6})\b",

    # .hex file
    r"^([0-9A-Fa-f]{6})\b",

    # CSS color code (with optional alpha channel)
    r"#([0-9A-Fa-f]{6})(?:[0-9A-Fa-f]{2})?\b",
]]


class TransferError(ValueError):
    """Base class for everything that stops an image from being converted."""


class PaletteError(TransferError):
    pass


class ConvexHullError(TransferError):
    pass


class ImageReadError(TransferError):
    pass


class ImageWriteError(TransferError):
    pass


def parse_hex(token: str) -> Color:
    """Parse a hex code such as "2E3440", "#2e3440", "(FFF)" into an RGB tuple."""
    value = token.strip().strip("\"'()").strip()
    match = HEX_PATTERN.match(value)
    if not match:
        raise PaletteError(f"invalid hex color {token!r}")

    digits = match[1]
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return tuple(int(digits[i : i + 2], 16) for i in range(0, 6, 2))


def parse_colors(text: str) -> List[Color]:
    """Parse a comma separated list of hex codes, keeping their order."""
    if not text.strip():
        raise PaletteError("no colors given")
    return [parse_hex(token) for token in text.split(",")]


def parse_palette_text(text: str) -> List[Color]:
    """Import a palette from a line-based text format.

    Each line is matched against a handful of regexes and lines that don't
    hold a color (headers, comments, etc) are skipped. This covers GIMP and
    JASC palettes, Paint.NET palettes, .hex files, .tr palettes and plain
    text with CSS hex codes in it.
    """
    colors = []
    for line in text.splitlines():
        match = None
        for pattern in PALETTE_LINE_PATTERNS:
            match = pattern.search(line)
            if match:
                break

        if not match:
            continue
        if len(match.groups()) == 1:
            colors.append(parse_hex(match[1]))
        else:
            ints = tuple(int(x) for x in match.groups())
            if all(x < 256 for x in ints):
                colors.append(ints)

    if not colors:
        raise PaletteError("no colors found in palette text")
    return colors


def load_palette_file(filename: str) -> List[Color]:
    try:
        with open(filename, "r") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as err:
        raise PaletteError(f"cannot read palette file {filename!r}: {err}") from err

    try:
        return parse_palette_text(text)
    except PaletteError as err:
        raise PaletteError(f"{filename}: {err}") from err


def resolve_palette(
    colors: Optional[str] = None, palette_file: Optional[str] = None
) -> List[Color]:
    """Pick the palette to convert to: -c colors, then a palette file, then Nord."""
    if colors:
        palette = parse_colors(colors)
        source = "command line"
    elif palette_file:
        palette = load_palette_file(palette_file)
        source = palette_file
    else:
        palette = [parse_hex(c) for c in NORD]
        source = "nord"

    logging.info(f"palette from {source}: {len(palette)} colors")
    return palette
