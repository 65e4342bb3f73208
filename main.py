#!/usr/bin/env python3
"""CLI for the sprite rule engine."""

import argparse
import logging
import sys

from .engine import SpriteEngine
from .storage import ConfigError, SpriteConfig
from .visualize import display_grid, export_sprite, run_and_record


def _report(engine: SpriteEngine, matches, paths):
    print(f"  Grid: {engine.grid.width}x{engine.grid.height}, {len(engine.rules)} rules, "
          f"{len(engine.palette)} colours")
    if matches:
        print(f"  Matches per pass: {', '.join(str(m) for m in matches)}")
    print(f"\nSaved:")
    for path in paths:
        print(f"  {path}")


def cmd_generate(args):
    """Seed a new random sprite and run rule passes over it."""
    print(f"Generating sprite...")
    engine = SpriteEngine(args.width, args.height, seed=args.seed)
    engine.seed()

    history, matches = run_and_record(engine, args.passes)
    paths = export_sprite(
        engine,
        args.output,
        args.name,
        history=history if args.gif else None,
        cell_size=args.cell_size,
    )
    _report(engine, matches, paths)

    if args.show:
        display_grid(engine.grid, engine.palette, title=args.name)


def cmd_apply(args):
    """Reseed an image from a saved config and run its rules."""
    try:
        config = SpriteConfig.load(args.config)
    except (ConfigError, OSError) as e:
        print(f"Error loading config '{args.config}': {e}")
        sys.exit(1)

    engine = SpriteEngine(args.width, args.height, seed=args.seed)
    errors = engine.load_config(config)
    for error in errors:
        print(f"  Skipped rule: {error}")

    engine.reseed_image()
    history, matches = run_and_record(engine, args.passes)
    paths = export_sprite(
        engine,
        args.output,
        args.name,
        history=history if args.gif else None,
        cell_size=args.cell_size,
    )
    _report(engine, matches, paths)

    if args.show:
        display_grid(engine.grid, engine.palette, title=args.name)


def cmd_inspect(args):
    """Show the rules and palette stored in a config."""
    try:
        config = SpriteConfig.load(args.config)
    except (ConfigError, OSError) as e:
        print(f"Error loading config '{args.config}': {e}")
        sys.exit(1)

    print(f"{len(config.rules)} rules:\n")
    print(f"{'#':<4}{'Condition':<30}{'Action'}")
    print("-" * 50)
    for i, (condition, action) in enumerate(config.rules, 1):
        print(f"{i:<4}{condition:<30}{action}")

    print(f"\n{len(config.palette)} colours:\n")
    for symbol, (r, g, b, a) in config.palette:
        print(f"  {symbol}  #{r:02x}{g:02x}{b:02x}{a:02x}")


def _add_output_args(parser: argparse.ArgumentParser):
    parser.add_argument("--width", type=int, default=32, help="Grid width")
    parser.add_argument("--height", type=int, default=32, help="Grid height")
    parser.add_argument("--passes", type=int, default=5, help="Rule passes to run")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--cell-size", type=int, default=8, help="Cell size in pixels")
    parser.add_argument("--name", type=str, default="sprite", help="Base name of output files")
    parser.add_argument("-o", "--output", type=str, default="output", help="Output directory")
    parser.add_argument("--gif", action="store_true", help="Also save an animation of every pass")
    parser.add_argument("--show", action="store_true", help="Display the result with matplotlib")


def main():
    parser = argparse.ArgumentParser(
        description="Sprite rule engine - grow textures from noise and random rewrite rules"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    gen_parser = subparsers.add_parser("generate", help="Generate a new random sprite")
    _add_output_args(gen_parser)
    gen_parser.set_defaults(func=cmd_generate)

    apply_parser = subparsers.add_parser("apply", help="Run a saved config on a fresh image")
    apply_parser.add_argument("config", type=str, help="Config JSON file")
    _add_output_args(apply_parser)
    apply_parser.set_defaults(func=cmd_apply)

    inspect_parser = subparsers.add_parser("inspect", help="Show rules and palette of a config")
    inspect_parser.add_argument("config", type=str, help="Config JSON file")
    inspect_parser.set_defaults(func=cmd_inspect)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
