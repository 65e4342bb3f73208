"""Random noise composition used to seed a grid before any rules run.

A random layer of base generators is reduced to a single field by repeatedly
combining pairs and wrapping survivors in modifiers. Every node is baked into
a dense array over the same continuous window, so composing two nodes is a
lookup of their baked values rather than a re-evaluation of the whole graph.
The final field is rescaled to [0, 1] and bucketed into letter groups
("plateaus") built from palette colour distances.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .grid import CharGrid, FILL_CODE

logger = logging.getLogger(__name__)

Plateau = List[Tuple[float, List[str]]]

DEFAULT_BOUNDS = (-3.0, 3.0)
DEFAULT_COLOR_THRESHOLD = 100


# -------------------------
# Base noise kernels
# -------------------------


def _permutation(seed: int) -> np.ndarray:
    perm = np.random.default_rng(seed).permutation(256)
    return np.concatenate([perm, perm])


def _fade(t: np.ndarray) -> np.ndarray:
    return t * t * t * (t * (t * 6 - 15) + 10)


def _lerp(a: np.ndarray, b: np.ndarray, t: np.ndarray) -> np.ndarray:
    return a + t * (b - a)


_GRADIENTS_8 = np.array([
    [1, 0], [-1, 0], [0, 1], [0, -1],
    [1, 1], [-1, 1], [1, -1], [-1, -1],
], dtype=np.float64)
_GRADIENTS_8[4:] /= np.sqrt(2.0)

_GRADIENTS_12 = np.stack([
    np.cos(np.arange(12) * np.pi / 6),
    np.sin(np.arange(12) * np.pi / 6),
], axis=-1)


def gradient_noise(xs: np.ndarray, ys: np.ndarray, seed: int, frequency: float = 1.0) -> np.ndarray:
    """2D Perlin gradient noise, roughly in [-1, 1]."""
    perm = _permutation(seed)
    x = xs * frequency
    y = ys * frequency
    x0 = np.floor(x).astype(np.int64)
    y0 = np.floor(y).astype(np.int64)
    fx = x - x0
    fy = y - y0
    xi = x0 & 255
    yi = y0 & 255

    def corner(ix, iy, dx, dy):
        g = _GRADIENTS_8[perm[perm[ix] + iy] & 7]
        return g[..., 0] * dx + g[..., 1] * dy

    n00 = corner(xi, yi, fx, fy)
    n10 = corner(xi + 1, yi, fx - 1, fy)
    n01 = corner(xi, yi + 1, fx, fy - 1)
    n11 = corner(xi + 1, yi + 1, fx - 1, fy - 1)
    u = _fade(fx)
    v = _fade(fy)
    return _lerp(_lerp(n00, n10, u), _lerp(n01, n11, u), v) * np.sqrt(2.0)


def value_noise(xs: np.ndarray, ys: np.ndarray, seed: int, frequency: float = 1.0) -> np.ndarray:
    """Random lattice values smoothly interpolated, in [-1, 1]."""
    perm = _permutation(seed)
    x = xs * frequency
    y = ys * frequency
    x0 = np.floor(x).astype(np.int64)
    y0 = np.floor(y).astype(np.int64)
    u = _fade(x - x0)
    v = _fade(y - y0)
    xi = x0 & 255
    yi = y0 & 255

    def lattice(ix, iy):
        return perm[perm[ix] + iy] / 127.5 - 1.0

    top = _lerp(lattice(xi, yi), lattice(xi + 1, yi), u)
    bottom = _lerp(lattice(xi, yi + 1), lattice(xi + 1, yi + 1), u)
    return _lerp(top, bottom, v)


def fractal_noise(
    xs: np.ndarray,
    ys: np.ndarray,
    seed: int,
    octaves: int = 6,
    frequency: float = 1.0,
    lacunarity: float = 2.0,
    persistence: float = 0.5,
    billow: bool = False,
) -> np.ndarray:
    """Octave sum of gradient noise. ``billow`` folds each octave with abs()."""
    total = np.zeros_like(xs, dtype=np.float64)
    amplitude = 1.0
    norm = 0.0
    for octave in range(octaves):
        signal = gradient_noise(xs, ys, seed + octave, frequency)
        if billow:
            signal = 2.0 * np.abs(signal) - 1.0
        total += signal * amplitude
        norm += amplitude
        amplitude *= persistence
        frequency *= lacunarity
    result = total / norm
    if billow:
        result += 0.5
    return result


def worley_noise(xs: np.ndarray, ys: np.ndarray, seed: int, frequency: float = 1.0) -> np.ndarray:
    """Cellular noise: distance to the nearest jittered feature point."""
    rng = np.random.default_rng(seed)
    x = xs * frequency
    y = ys * frequency
    gx = np.arange(np.floor(x.min()) - 1, np.floor(x.max()) + 2)
    gy = np.arange(np.floor(y.min()) - 1, np.floor(y.max()) + 2)
    cells = np.stack(np.meshgrid(gx, gy), axis=-1).reshape(-1, 2)
    points = cells + rng.random(cells.shape)
    distances, _ = cKDTree(points).query(np.column_stack([x.ravel(), y.ravel()]))
    return (distances * 2.0 - 1.0).reshape(xs.shape)


def simplex_noise(
    xs: np.ndarray,
    ys: np.ndarray,
    seed: int,
    frequency: float = 1.0,
    radius: float = 0.5,
    scale: float = 70.0,
    gradients: np.ndarray = _GRADIENTS_8,
) -> np.ndarray:
    """2D simplex noise; ``radius`` is the squared kernel radius of each corner."""
    perm = _permutation(seed)
    f2 = 0.5 * (np.sqrt(3.0) - 1.0)
    g2 = (3.0 - np.sqrt(3.0)) / 6.0
    x = xs * frequency
    y = ys * frequency

    s = (x + y) * f2
    i = np.floor(x + s).astype(np.int64)
    j = np.floor(y + s).astype(np.int64)
    t = (i + j) * g2
    x0 = x - (i - t)
    y0 = y - (j - t)
    i1 = (x0 > y0).astype(np.int64)
    j1 = 1 - i1

    corners = (
        (x0, y0, 0, 0),
        (x0 - i1 + g2, y0 - j1 + g2, i1, j1),
        (x0 - 1.0 + 2.0 * g2, y0 - 1.0 + 2.0 * g2, 1, 1),
    )
    ii = i & 255
    jj = j & 255
    total = np.zeros_like(x, dtype=np.float64)
    for cx, cy, oi, oj in corners:
        h = perm[ii + oi + perm[jj + oj]] % len(gradients)
        g = gradients[h]
        falloff = np.maximum(radius - cx * cx - cy * cy, 0.0)
        total += falloff ** 4 * (g[..., 0] * cx + g[..., 1] * cy)
    return total * scale


def checkerboard(xs: np.ndarray, ys: np.ndarray, size: int = 1) -> np.ndarray:
    """Alternating +1/-1 tiles, ``size`` tiles per unit."""
    parity = (np.floor(xs * size) + np.floor(ys * size)).astype(np.int64) & 1
    return np.where(parity == 0, -1.0, 1.0)


def cylinders(xs: np.ndarray, ys: np.ndarray, frequency: float = 1.0) -> np.ndarray:
    """Concentric bands around the y axis, 1 on a band and -1 between bands."""
    distance = np.abs(xs) * frequency
    small = distance - np.floor(distance)
    nearest = np.minimum(small, 1.0 - small)
    return 1.0 - nearest * 4.0


# -------------------------
# Composition nodes
# -------------------------


class GeneratorKind(Enum):
    PERLIN = "perlin"
    WORLEY = "worley"
    FBM = "fbm"
    BILLOW = "billow"
    CHECKERBOARD = "checkerboard"
    CYLINDERS = "cylinders"
    OPEN_SIMPLEX = "open_simplex"
    SUPER_SIMPLEX = "super_simplex"
    VALUE = "value"


class ModifierKind(Enum):
    ABS = "abs"
    CLAMP = "clamp"
    EXPONENT = "exponent"
    NEGATE = "negate"
    SCALE_BIAS = "scale_bias"


class CombinerKind(Enum):
    ADD = "add"
    MAX = "max"
    MIN = "min"
    MULTIPLY = "multiply"
    POWER = "power"


@dataclass(frozen=True)
class FieldWindow:
    """Continuous rectangle sampled at ``size`` (width, height) points."""
    size: Tuple[int, int]
    x_bounds: Tuple[float, float] = DEFAULT_BOUNDS
    y_bounds: Tuple[float, float] = DEFAULT_BOUNDS

    @property
    def step(self) -> Tuple[float, float]:
        return (
            (self.x_bounds[1] - self.x_bounds[0]) / self.size[0],
            (self.y_bounds[1] - self.y_bounds[0]) / self.size[1],
        )

    def coordinates(self) -> Tuple[np.ndarray, np.ndarray]:
        """Sample point coordinates as two (height, width) arrays."""
        x_step, y_step = self.step
        x = self.x_bounds[0] + x_step * np.arange(self.size[0])
        y = self.y_bounds[0] + y_step * np.arange(self.size[1])
        return np.meshgrid(x, y)

    def to_cell(self, xs: np.ndarray, ys: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Nearest cell indices for continuous points, clipped into range."""
        x_step, y_step = self.step
        ix = np.rint((np.asarray(xs) - self.x_bounds[0]) / x_step).astype(np.int64)
        iy = np.rint((np.asarray(ys) - self.y_bounds[0]) / y_step).astype(np.int64)
        return np.clip(ix, 0, self.size[0] - 1), np.clip(iy, 0, self.size[1] - 1)


@dataclass
class NoiseField:
    """One baked node of the composition graph."""
    kind: Enum
    params: Dict
    window: FieldWindow
    values: np.ndarray
    sources: Tuple["NoiseField", ...] = field(default_factory=tuple)
    depth: int = field(init=False)

    def __post_init__(self):
        # Fixed at construction; sources are shared across the graph.
        self.depth = 1 + max((source.depth for source in self.sources), default=0)

    def sample(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        ix, iy = self.window.to_cell(xs, ys)
        return self.values[iy, ix]

    def resample(self, window: FieldWindow) -> np.ndarray:
        """This field's values at another window's sample points."""
        return self.sample(*window.coordinates())


def bake_generator(kind: GeneratorKind, params: Dict, window: FieldWindow) -> np.ndarray:
    xs, ys = window.coordinates()
    if kind == GeneratorKind.PERLIN:
        return gradient_noise(xs, ys, params["seed"])
    elif kind == GeneratorKind.WORLEY:
        return worley_noise(xs, ys, params["seed"])
    elif kind == GeneratorKind.FBM:
        return fractal_noise(xs, ys, params["seed"])
    elif kind == GeneratorKind.BILLOW:
        return fractal_noise(xs, ys, params["seed"], billow=True)
    elif kind == GeneratorKind.CHECKERBOARD:
        return checkerboard(xs, ys, params["size"])
    elif kind == GeneratorKind.CYLINDERS:
        return cylinders(xs, ys, params["frequency"])
    elif kind == GeneratorKind.OPEN_SIMPLEX:
        return simplex_noise(xs, ys, params["seed"])
    elif kind == GeneratorKind.SUPER_SIMPLEX:
        return simplex_noise(xs, ys, params["seed"], radius=2.0 / 3.0, scale=22.0, gradients=_GRADIENTS_12)
    elif kind == GeneratorKind.VALUE:
        return value_noise(xs, ys, params["seed"])
    raise ValueError(f"Unknown generator kind: {kind}")


def apply_modifier(kind: ModifierKind, params: Dict, values: np.ndarray) -> np.ndarray:
    with np.errstate(invalid="ignore", over="ignore"):
        if kind == ModifierKind.ABS:
            return np.abs(values)
        elif kind == ModifierKind.CLAMP:
            return np.clip(values, params["lower"], params["upper"])
        elif kind == ModifierKind.EXPONENT:
            shifted = np.abs((values + 1.0) / 2.0)
            return np.power(shifted, params["exponent"]) * 2.0 - 1.0
        elif kind == ModifierKind.NEGATE:
            return -values
        elif kind == ModifierKind.SCALE_BIAS:
            return values * params["scale"] + params["bias"]
    raise ValueError(f"Unknown modifier kind: {kind}")


def apply_combiner(kind: CombinerKind, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Combine two fields; overflow and NaN are left for normalize() to handle."""
    with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
        if kind == CombinerKind.ADD:
            return a + b
        elif kind == CombinerKind.MAX:
            return np.maximum(a, b)
        elif kind == CombinerKind.MIN:
            return np.minimum(a, b)
        elif kind == CombinerKind.MULTIPLY:
            return a * b
        elif kind == CombinerKind.POWER:
            return np.power(a, b)
    raise ValueError(f"Unknown combiner kind: {kind}")


def make_generator(kind: GeneratorKind, params: Dict, window: FieldWindow) -> NoiseField:
    return NoiseField(kind, params, window, bake_generator(kind, params, window))


def make_modifier(kind: ModifierKind, params: Dict, source: NoiseField, window: FieldWindow) -> NoiseField:
    values = apply_modifier(kind, params, source.resample(window))
    return NoiseField(kind, params, window, values, (source,))


def make_combiner(kind: CombinerKind, a: NoiseField, b: NoiseField, window: FieldWindow) -> NoiseField:
    values = apply_combiner(kind, a.resample(window), b.resample(window))
    return NoiseField(kind, {}, window, values, (a, b))


def _seed(rng: np.random.Generator) -> int:
    return int(rng.integers(0, 2**32))


def random_generator(rng: np.random.Generator, window: FieldWindow) -> NoiseField:
    kind = list(GeneratorKind)[rng.integers(len(GeneratorKind))]
    if kind == GeneratorKind.CHECKERBOARD:
        params = {"size": int(rng.integers(1, 10))}
    elif kind == GeneratorKind.CYLINDERS:
        params = {"frequency": float(rng.uniform(0.1, 10.0))}
    else:
        params = {"seed": _seed(rng)}
    return make_generator(kind, params, window)


def random_modifier(rng: np.random.Generator, source: NoiseField, window: FieldWindow) -> NoiseField:
    kind = list(ModifierKind)[rng.integers(len(ModifierKind))]
    if kind == ModifierKind.CLAMP:
        params = {"lower": float(rng.uniform(-1.0, 0.0)), "upper": float(rng.uniform(0.0, 1.0))}
    elif kind == ModifierKind.EXPONENT:
        params = {"exponent": float(rng.uniform(0.1, 2.0))}
    elif kind == ModifierKind.SCALE_BIAS:
        params = {"scale": float(rng.uniform(0.1, 3.0)), "bias": float(rng.uniform(0.0, 1.0))}
    else:
        params = {}
    return make_modifier(kind, params, source, window)


def random_combiner(
    rng: np.random.Generator,
    a: NoiseField,
    b: NoiseField,
    window: FieldWindow,
) -> NoiseField:
    kind = list(CombinerKind)[rng.integers(len(CombinerKind))]
    return make_combiner(kind, a, b, window)


# -------------------------
# Pipeline
# -------------------------


@dataclass
class NoiseSettings:
    generator_chance: float = 0.3
    modify_chance: float = 0.5
    combine_chance: float = 0.5

    @classmethod
    def random(cls, rng: np.random.Generator) -> "NoiseSettings":
        return cls(
            generator_chance=float(rng.uniform(0.1, 0.5)),
            modify_chance=float(rng.uniform(0.2, 0.9)),
            combine_chance=float(rng.uniform(0.2, 0.9)),
        )


def reduce_layer(
    rng: np.random.Generator,
    layer: List[NoiseField],
    settings: NoiseSettings,
    window: FieldWindow,
) -> List[NoiseField]:
    """One round of combine, modify and carry-over."""
    next_layer: List[NoiseField] = []
    used = [False] * len(layer)

    while len(next_layer) < len(layer) and rng.random() < settings.combine_chance:
        first = int(rng.integers(len(layer)))
        second = int(rng.integers(len(layer)))
        used[first] = True
        used[second] = True
        next_layer.append(random_combiner(rng, layer[first], layer[second], window))

    for index in [i for i, u in enumerate(used) if not u]:
        if rng.random() < settings.modify_chance:
            used[index] = True
            next_layer.append(random_modifier(rng, layer[index], window))

    next_layer.extend(node for node, u in zip(layer, used) if not u)
    return next_layer


def random_noise(
    rng: np.random.Generator,
    window: FieldWindow,
    settings: Optional[NoiseSettings] = None,
) -> NoiseField:
    """Build and bake a random composition graph, returning its root node."""
    if settings is None:
        settings = NoiseSettings.random(rng)

    layer = [random_generator(rng, window)]
    while rng.random() < settings.generator_chance:
        layer.append(random_generator(rng, window))
    logger.debug("noise layer starts with %d generators", len(layer))

    rounds = 0
    while len(layer) > 1:
        layer = reduce_layer(rng, layer, settings, window)
        rounds += 1

    root = layer[0]
    logger.debug("noise graph reduced in %d rounds, depth %d", rounds, root.depth)
    return root


def normalize(values: np.ndarray) -> np.ndarray:
    """Linearly rescale to [0, 1].

    Non-finite cells are left out of the min/max scan and become 0.0. A field
    with no spread (or no finite values) becomes the constant 0.5.
    """
    values = np.asarray(values, dtype=np.float64)
    finite = np.isfinite(values)
    if not finite.any():
        return np.full(values.shape, 0.5)

    low = values[finite].min()
    high = values[finite].max()
    if high == low:
        return np.where(finite, 0.5, 0.0)

    result = np.zeros(values.shape, dtype=np.float64)
    result[finite] = (values[finite] - low) / (high - low)
    return result


def color_distance(a, b) -> int:
    return abs(sum(int(c) for c in a) - sum(int(c) for c in b))


def noise_plateau(
    rng: np.random.Generator,
    palette: Dict[str, Tuple[int, int, int, int]],
    threshold: int = DEFAULT_COLOR_THRESHOLD,
) -> Plateau:
    """Group letters with similar colours and give each group a random band.

    Every letter starts its own group; any other letter whose colour is within
    ``threshold`` joins it, so a letter may sit in several groups.
    """
    letters = list(palette)
    groups: Dict[str, List[str]] = {letter: [letter] for letter in letters}
    for first in letters:
        for second in letters:
            if first != second and color_distance(palette[first], palette[second]) < threshold:
                groups[first].append(second)

    if not groups:
        return []

    bounds = sorted([float(b) for b in rng.random(len(groups) - 1)] + [1.0])
    return list(zip(bounds, groups.values()))


def plateau_levels(plateau: Plateau, values) -> np.ndarray:
    """Index of the first band whose upper bound is >= each value.

    Values above every bound fall back to band 0. ``plateau`` must not be empty.
    """
    bounds = np.array([bound for bound, _ in plateau])
    levels = np.searchsorted(bounds, values, side="left")
    return np.where(levels >= len(plateau), 0, levels)


def plateau_level(plateau: Plateau, value: float) -> List[str]:
    """Letters of the band holding ``value``."""
    if not plateau:
        return []
    return plateau[int(plateau_levels(plateau, value))][1]


def noise_fill(
    grid: CharGrid,
    palette: Dict[str, Tuple[int, int, int, int]],
    rng: np.random.Generator,
    settings: Optional[NoiseSettings] = None,
    threshold: int = DEFAULT_COLOR_THRESHOLD,
) -> np.ndarray:
    """Seed every cell of ``grid`` from a fresh normalized noise field.

    Returns the normalized field.
    """
    window = FieldWindow(size=(grid.width, grid.height))
    field_values = normalize(random_noise(rng, window, settings).values)
    plateau = noise_plateau(rng, palette, threshold)

    if not plateau:
        grid.fill(np.full((grid.height, grid.width), FILL_CODE, dtype=np.uint8))
        return field_values

    levels = plateau_levels(plateau, field_values)

    codes = np.empty((grid.height, grid.width), dtype=np.uint8)
    for level, (_, letters) in enumerate(plateau):
        mask = levels == level
        count = int(mask.sum())
        if count:
            choices = np.array([ord(c) for c in letters], dtype=np.uint8)
            codes[mask] = choices[rng.integers(0, len(choices), size=count)]
    grid.fill(codes)
    return field_values
