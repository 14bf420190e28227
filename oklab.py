import numpy as np

# Consts for OKLAB conversions.
# Based on https://bottosson.github.io/posts/oklab/ -- in particular,
# the matrix m1 uses the trick of combining the XYZ and OKLAB matrixes.
m1 = np.array([
    [0.4122214708, 0.5363325363, 0.0514459929],
    [0.2119034982, 0.6806995451, 0.1073969566],
    [0.0883024619, 0.2817188376, 0.6299787005]])
m2 = np.array([
    [0.2104542553, 0.7936177850, -0.0040720468],
    [1.9779984951, -2.4285922050, 0.4505937099],
    [0.0259040371, 0.7827717662, -0.8086757660]])


def srgb_to_oklab(rgb):
    """
    Converts an array of (r, g, b) rows to (l, a, b) rows.

    RGB channels are 0-255 integers (any array shape ending in 3); the result
    is a float array of the same shape.
    """
    srgb = np.asarray(rgb, dtype=np.float64) / 255
    lms = _to_linear(srgb) @ m1.T
    return np.cbrt(lms) @ m2.T


# See https://entropymine.com/imageworsener/srgbformula/ for sRGB formulas
def _to_linear(x):
    """Converts sRGB gamma-encoded values to linear"""
    return np.where(x <= 0.04045, x/12.92, ((x + 0.055)/1.055)**2.4)


__all__ = ["srgb_to_oklab"]
