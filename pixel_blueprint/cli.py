"""Command-line interface for pixel-blueprint."""

import argparse
import json
import sys
from pathlib import Path

from .core import BlueprintError, GenerationResult, create_blueprint, render

MIN_RESOLUTION, MAX_RESOLUTION = 20, 200
MIN_COLORS, MAX_COLORS = 2, 256


def clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))


def output_path_for(input_path: Path, output: str | None, resolution: int, multiple: bool) -> Path:
    if output is None:
        base = input_path.parent / f"{input_path.stem}_blueprint.png"
    else:
        base = Path(output)
    if multiple:
        base = base.parent / f"{base.stem}_{resolution}{base.suffix or '.png'}"
    return base


def print_palette_key(result: GenerationResult) -> None:
    print(f"Color key ({len(result.palette)} colors):")
    for item in result.palette:
        print(f"  {item.id:>3}  {item.hex}  {item.count}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Turn a draft image into a numbered pixel-art blueprint"
    )
    parser.add_argument("input", help="Input image path")
    parser.add_argument("-o", "--output", help="Output image path (default: input_blueprint.png)")
    parser.add_argument(
        "-r", "--resolution", type=int, nargs="+", action="extend",
        help=f"Grid cells per side, {MIN_RESOLUTION}-{MAX_RESOLUTION} (default 64); repeat to render several sizes",
    )
    parser.add_argument(
        "-c", "--colors", type=int, default=32,
        help=f"Maximum palette size, {MIN_COLORS}-{MAX_COLORS}",
    )
    parser.add_argument("--palette-json", help="Write the color key as JSON to this path")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress output")

    args = parser.parse_args(argv)
    verbose = not args.quiet

    resolutions = []
    for res in args.resolution or [64]:
        clamped = clamp(res, MIN_RESOLUTION, MAX_RESOLUTION)
        if clamped != res and verbose:
            print(f"Resolution {res} out of range, using {clamped}")
        if clamped not in resolutions:
            resolutions.append(clamped)

    max_colors = clamp(args.colors, MIN_COLORS, MAX_COLORS)
    if max_colors != args.colors and verbose:
        print(f"Color count {args.colors} out of range, using {max_colors}")

    input_path = Path(args.input)
    multiple = len(resolutions) > 1
    keys = {}

    try:
        result = create_blueprint(
            input_path,
            output_path_for(input_path, args.output, resolutions[0], multiple),
            resolution=resolutions[0],
            max_colors=max_colors,
            verbose=verbose,
        )
        results = [result]

        # Later sizes reuse the already decoded source
        for res in resolutions[1:]:
            again = render(result.source, res, max_colors, verbose=verbose)
            path = output_path_for(input_path, args.output, res, multiple)
            again.rendered_image.save(path, format="PNG")
            if verbose:
                print(f"Saved to: {path}")
            results.append(again)
    except (BlueprintError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    for res_result in results:
        if verbose:
            print_palette_key(res_result)
        keys[str(res_result.resolution)] = res_result.palette_key()

    if args.palette_json:
        try:
            with open(args.palette_json, "w") as f:
                json.dump(keys if multiple else keys[str(resolutions[0])], f, indent=2)
        except OSError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        if verbose:
            print(f"Color key saved to: {args.palette_json}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
