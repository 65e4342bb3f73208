"""Rendering and image export for sprite grids."""

import numpy as np
from pathlib import Path
from typing import List, Optional, Tuple

from .engine import SpriteEngine, palette_table
from .generator import Palette
from .grid import CharGrid


def render_rgba(grid: CharGrid, palette: Palette) -> np.ndarray:
    """(height, width, 4) RGBA array; symbols missing from the palette are transparent."""
    return palette_table(palette)[grid.pixels]


def render_image(pixels: np.ndarray, palette: Palette, cell_size: int = 8) -> np.ndarray:
    """Render a (height, width) array of symbol codes, upscaled by ``cell_size``."""
    img = palette_table(palette)[pixels]
    return np.repeat(np.repeat(img, cell_size, axis=0), cell_size, axis=1)


def save_image(grid: CharGrid, palette: Palette, filepath: str, cell_size: int = 8):
    """Save grid state as PNG image."""
    from PIL import Image
    img = Image.fromarray(render_image(grid.pixels, palette, cell_size))
    img.save(filepath)


def save_animation(
    history: List[np.ndarray],
    palette: Palette,
    filepath: str,
    cell_size: int = 8,
    duration: int = 200,
    loop: int = 0,
):
    """Save a list of grid snapshots as an animated GIF."""
    from PIL import Image
    frames = [
        Image.fromarray(render_image(pixels, palette, cell_size))
        for pixels in history
    ]
    if frames:
        frames[0].save(
            filepath,
            save_all=True,
            append_images=frames[1:],
            duration=duration,
            loop=loop,
            disposal=2,
        )


def run_and_record(engine: SpriteEngine, passes: int) -> Tuple[List[np.ndarray], List[int]]:
    """Run ``passes`` rule passes, keeping a copy of the grid before and after each."""
    history = [engine.grid.pixels.copy()]
    matches = []
    for _ in range(passes):
        matches.append(engine.run_pass())
        history.append(engine.grid.pixels.copy())
    return history, matches


def export_sprite(
    engine: SpriteEngine,
    output_dir: str,
    name: str,
    history: Optional[List[np.ndarray]] = None,
    cell_size: int = 8,
) -> List[str]:
    """Write the final PNG, the JSON config and optionally a GIF; returns the paths."""
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    png_path = str(output_path / f"{name}.png")
    save_image(engine.grid, engine.palette, png_path, cell_size=cell_size)
    engine.grid.changed = False

    config_path = str(output_path / f"{name}.json")
    engine.to_config().save(config_path)

    paths = [png_path, config_path]
    if history:
        gif_path = str(output_path / f"{name}.gif")
        save_animation(history, engine.palette, gif_path, cell_size=cell_size)
        paths.append(gif_path)
    return paths


def display_grid(grid: CharGrid, palette: Palette, title: str = "Sprite"):
    """Display grid using matplotlib (for interactive use)."""
    import matplotlib.pyplot as plt

    plt.figure(figsize=(6, 6))
    plt.imshow(render_rgba(grid, palette), interpolation="nearest")
    plt.title(title)
    plt.axis("off")
    plt.tight_layout()
    plt.show()
