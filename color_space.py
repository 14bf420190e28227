import logging
from typing import List

import numpy as np
from scipy.spatial import ConvexHull, KDTree, QhullError

import oklab
from palettes import Color, ConvexHullError

MODES = ("nearest", "hull")
METRICS = ("rgb", "oklab")

# Pixels within this distance of a hull facet count as inside the hull
HULL_EPSILON = 1e-6

# Color/facet pairs projected per batch in hull mode, bounds the (N, facets, 3)
# temporaries
HULL_CHUNK = 1 << 16

# Floyd-Steinberg error weights as (dx, dy, weight)
DIFFUSION = [
    (1, 0, 7 / 16),
    (-1, 1, 3 / 16),
    (0, 1, 5 / 16),
    (1, 1, 1 / 16),
]


class ColorPaletteSpace:
    """Maps RGB colors onto a palette.

    In "nearest" mode every color is replaced by the closest palette entry,
    measured in RGB or OKLab. In "hull" mode the palette spans a convex hull
    in RGB space: colors inside it are kept and colors outside it are moved to
    the closest point on its surface.
    """

    def __init__(self, palette: List[Color], mode: str = "nearest", metric: str = "rgb"):
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode}")
        if metric not in METRICS:
            raise ValueError(f"Unknown metric: {metric}")
        if mode == "hull" and metric != "rgb":
            raise ValueError("hull mode only works in rgb")
        if not palette:
            raise ValueError("Palette must have at least one color")

        self.palette = list(palette)
        self.mode = mode
        self.metric = metric
        self.colors = np.array(self.palette, dtype=np.uint8)

        if mode == "nearest":
            self.tree = KDTree(self._project(self.colors))
        else:
            try:
                self.hull = ConvexHull(self.colors.astype(np.float64))
            except (QhullError, ValueError) as err:
                raise ConvexHullError(
                    f"palette of {len(self.palette)} colors does not span a convex hull"
                ) from err
            # Facet triangles, shape (facets, 3 vertices, 3 channels)
            self.triangles = self.hull.points[self.hull.simplices]

        logging.info(
            f"color space: {len(self.palette)} colors, mode: {mode}, metric: {metric}"
        )

    def get_color(self, rgb: Color) -> Color:
        mapped = self.map_pixels(np.array([rgb], dtype=np.uint8))[0]
        return tuple(int(c) for c in mapped)

    def map_pixels(self, pixels: np.ndarray) -> np.ndarray:
        """Map an (..., 3) uint8 array of pixels, returning a new array.

        Every distinct color is resolved once and the result spread back to
        all pixels sharing it.
        """
        pixels = np.asarray(pixels, dtype=np.uint8)
        flat = pixels.reshape(-1, 3)
        if len(flat) == 0:
            return pixels.copy()

        # Pack each pixel into one integer so np.unique works on a flat array
        keys = (
            (flat[:, 0].astype(np.uint32) << 16)
            | (flat[:, 1].astype(np.uint32) << 8)
            | flat[:, 2].astype(np.uint32)
        )
        unique_keys, inverse = np.unique(keys, return_inverse=True)
        unique = np.stack(
            [(unique_keys >> 16) & 0xFF, (unique_keys >> 8) & 0xFF, unique_keys & 0xFF],
            axis=1,
        ).astype(np.uint8)
        logging.info(f"mapping {len(flat)} pixels, {len(unique)} unique colors")

        if self.mode == "nearest":
            mapped = self._nearest(unique)
        else:
            mapped = self._hull(unique)
        return mapped[inverse.reshape(-1)].reshape(pixels.shape)

    def dither_pixels(self, pixels: np.ndarray) -> np.ndarray:
        """Map an (height, width, 3) uint8 array with Floyd-Steinberg dithering.

        Each pixel goes to its nearest palette color and the difference is
        spread over the unvisited neighbours. Pixels that already are a
        palette color carry no error, so they come out unchanged.
        """
        if self.mode != "nearest":
            raise ValueError("dithering needs nearest mode")

        pixels = np.asarray(pixels, dtype=np.uint8)
        height, width = pixels.shape[:2]
        work = pixels.astype(np.float64).tolist()
        result = np.empty_like(pixels)
        cache = {}

        for y in range(height):
            row = work[y]
            for x in range(width):
                old = [min(255.0, max(0.0, c)) for c in row[x]]
                key = tuple(int(round(c)) for c in old)
                new = cache.get(key)
                if new is None:
                    new = tuple(int(c) for c in self._nearest(np.array([key], dtype=np.uint8))[0])
                    cache[key] = new
                result[y, x] = new

                error = [o - n for o, n in zip(old, new)]
                if not any(error):
                    continue
                for dx, dy, weight in DIFFUSION:
                    nx, ny = x + dx, y + dy
                    if 0 <= nx < width and ny < height:
                        target = work[ny][nx]
                        for i in range(3):
                            target[i] += error[i] * weight

        logging.info(f"dithered {width}x{height} pixels, {len(cache)} distinct lookups")
        return result

    def _project(self, colors: np.ndarray) -> np.ndarray:
        if self.metric == "oklab":
            return oklab.srgb_to_oklab(colors)
        return colors.astype(np.float64)

    def _nearest(self, colors: np.ndarray) -> np.ndarray:
        _, indices = self.tree.query(self._project(colors))
        return self.colors[indices]

    def _hull(self, colors: np.ndarray) -> np.ndarray:
        result = colors.copy()
        points = colors.astype(np.float64)

        # Facet planes satisfy normal . x + offset <= 0 for points inside
        equations = self.hull.equations
        signed = points @ equations[:, :3].T + equations[:, 3]
        outside = np.flatnonzero(np.any(signed > HULL_EPSILON, axis=1))
        logging.info(f"{len(outside)} colors outside the palette hull")

        step = max(1, HULL_CHUNK // len(self.triangles))
        for start in range(0, len(outside), step):
            idx = outside[start : start + step]
            closest = closest_points_on_triangles(points[idx], self.triangles)
            result[idx] = np.clip(np.rint(closest), 0, 255).astype(np.uint8)
        return result


def closest_points_on_triangles(points: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """Closest point to each of `points` (N, 3) on any of `triangles` (F, 3, 3).

    Uses the Voronoi region test from Ericson, "Real-Time Collision
    Detection" 5.1.5, evaluated for every point/triangle pair at once.
    """
    p = points[:, None, :]
    a = triangles[None, :, 0, :]
    b = triangles[None, :, 1, :]
    c = triangles[None, :, 2, :]

    def dot(x, y):
        return np.sum(x * y, axis=-1)

    ab = b - a
    ac = c - a
    ap = p - a
    bp = p - b
    cp = p - c
    d1, d2 = dot(ab, ap), dot(ac, ap)
    d3, d4 = dot(ab, bp), dot(ac, bp)
    d5, d6 = dot(ab, cp), dot(ac, cp)
    va = d3 * d6 - d5 * d4
    vb = d5 * d2 - d1 * d6
    vc = d1 * d4 - d3 * d2

    with np.errstate(divide="ignore", invalid="ignore"):
        # Face interior
        denom = va + vb + vc
        v = (vb / denom)[..., None]
        w = (vc / denom)[..., None]
        closest = a + ab * v + ac * w

        # Regions are applied from lowest to highest priority, later ones win
        t = ((d4 - d3) / ((d4 - d3) + (d5 - d6)))[..., None]
        in_bc = (va <= 0) & (d4 - d3 >= 0) & (d5 - d6 >= 0)
        closest = np.where(in_bc[..., None], b + t * (c - b), closest)

        t = (d2 / (d2 - d6))[..., None]
        in_ac = (vb <= 0) & (d2 >= 0) & (d6 <= 0)
        closest = np.where(in_ac[..., None], a + t * ac, closest)

        in_c = (d6 >= 0) & (d5 <= d6)
        closest = np.where(in_c[..., None], c, closest)

        t = (d1 / (d1 - d3))[..., None]
        in_ab = (vc <= 0) & (d1 >= 0) & (d3 <= 0)
        closest = np.where(in_ab[..., None], a + t * ab, closest)

        in_b = (d3 >= 0) & (d4 <= d3)
        closest = np.where(in_b[..., None], b, closest)

        in_a = (d1 <= 0) & (d2 <= 0)
        closest = np.where(in_a[..., None], a, closest)

    dist = np.sum((closest - p) ** 2, axis=-1)
    dist = np.where(np.isnan(dist), np.inf, dist)
    best = np.argmin(dist, axis=1)
    return closest[np.arange(len(points)), best]
