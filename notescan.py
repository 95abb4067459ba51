import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

import rich.traceback
import typer

from nscan import file_utils, legend
from nscan.errors import NotescanError
from nscan.options import ShrinkOptions
from nscan.shrink import shrink


def convert_file(
    input_path: Path,
    options: ShrinkOptions,
    suffix: str = "_processed",
    gif: bool = False,
    output_dir: Optional[Path] = None,
    write_legend: bool = False,
    overwrite: bool = False,
    seed: Optional[int] = None,
    command_line_str: Optional[str] = None,
) -> Path:
    """
    Converts one image and writes the result (and optionally its palette legend).

    Returns:
        Path: Where the reduced image was written.

    Raises:
        FileExistsError: If the output exists and overwrite is False.
        NotescanError: For any failure inside the engine.
    """
    typer.echo(f"Shrink: [{input_path}]")

    output_path = file_utils.output_path_for(input_path, suffix=suffix, gif=gif, output_dir=output_dir)
    legend_path = output_path.with_name(f"{output_path.stem}_palette.png")
    if not overwrite:
        for path in [output_path] + ([legend_path] if write_legend else []):
            if path.exists():
                raise FileExistsError(f"{path} already exists (use --yes to overwrite)")

    image = file_utils.load_image(input_path)
    result = shrink(image, options, random_state=seed)

    if gif:
        file_utils.save_gif(result.image, output_path, result.palette)
    else:
        file_utils.save_png(
            result.image,
            output_path,
            command_line_invocation=command_line_str,
            additional_metadata={
                "SourceImage": str(input_path),
                "Background": "#%02x%02x%02x" % result.background.rgb,
                "Foreground": " ".join("#%02x%02x%02x" % p.rgb for p in result.foreground),
                "PaletteColors": str(len(result.palette)),
            }
        )

    if write_legend:
        legend_image = legend.create_legend_image(result.palette_rgb())
        if legend_image:
            file_utils.save_png(
                legend_image,
                legend_path,
                command_line_invocation=command_line_str,
                additional_metadata={"SourceImage": str(input_path), "FileType": "Palette Legend"}
            )
            typer.echo(f"Palette legend saved to: {legend_path}")

    typer.echo(f"Generated: [{output_path}]")
    return output_path


def notescan_cli(
    input_files: List[Path] = typer.Argument(
        ...,
        help="One or more scanned or photographed document images.",
        metavar="INPUT_FILES...",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    # --- Engine Options ---
    sampling_rate: float = typer.Option(
        0.05, "--sampling-rate",
        help="Fraction of pixels sampled to choose the background and foreground colors. Default: 0.05."
    ),
    shift: int = typer.Option(
        2, "--shift", help="Low bits dropped from each channel when voting for the background. Default: 2."
    ),
    brightness: float = typer.Option(
        0.35, "--brightness", help="Value (brightness) distance that makes a pixel foreground. Default: 0.35."
    ),
    saturation: float = typer.Option(
        0.25, "--saturation", help="Saturation distance that makes a pixel foreground. Default: 0.25."
    ),
    foreground_num: int = typer.Option(
        6, "--foreground-num", help="Total number of output colors, background included. Default: 6."
    ),
    kmeans_iterations: int = typer.Option(
        40, "--kmeans-iterations", help="Maximum K-Means iterations. Default: 40."
    ),
    seed: Optional[int] = typer.Option(
        None, "--seed", help="Seed for pixel sampling, for reproducible output."
    ),
    # --- Output Options ---
    suffix: str = typer.Option("_processed", "--suffix", help="Suffix in the output filename. Default: _processed."),
    gif: bool = typer.Option(False, "--gif", help="Write an indexed GIF using the learned palette instead of a PNG."),
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", help="Directory for output files. Default: next to each input.",
        file_okay=False, dir_okay=True, resolve_path=True,
    ),
    write_legend: bool = typer.Option(False, "--legend", help="Also write a palette legend PNG per image."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite existing files."),
    jobs: int = typer.Option(4, "--jobs", "-j", min=1, help="Number of images converted concurrently. Default: 4."),
):
    """
    Reduces scanned notes to a clean background plus a few ink colors.
    """
    command_line_str = " ".join(sys.argv)

    try:
        options = ShrinkOptions(
            sampling_rate=sampling_rate,
            brightness=brightness,
            saturation=saturation,
            shift=shift,
            foreground_num=foreground_num,
            kmeans_iterations=kmeans_iterations,
        ).validate()
    except NotescanError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)

    if output_dir:
        output_dir.mkdir(parents=True, exist_ok=True)
        typer.echo(f"Using output directory: {output_dir}")

    typer.echo(f"Converting {len(input_files)} image(s) to {options.foreground_num} colors...")

    def run(input_path: Path) -> Path:
        return convert_file(
            input_path, options,
            suffix=suffix, gif=gif, output_dir=output_dir, write_legend=write_legend,
            overwrite=yes, seed=seed, command_line_str=command_line_str,
        )

    failures = 0
    # Inputs sharing a stem (scan.jpg, scan.png) would race for one output file
    claimed = {}
    to_convert = []
    for path in input_files:
        output_path = file_utils.output_path_for(path, suffix=suffix, gif=gif, output_dir=output_dir)
        if output_path in claimed:
            failures += 1
            typer.secho(
                f"Error processing {path}: {output_path} is also the output of {claimed[output_path]}",
                fg=typer.colors.RED,
            )
            continue
        claimed[output_path] = path
        to_convert.append(path)

    with ThreadPoolExecutor(max_workers=jobs) as pool:
        futures = {pool.submit(run, path): path for path in to_convert}
        for future, path in futures.items():
            try:
                future.result()
            except Exception as e:
                failures += 1
                typer.secho(f"Error processing {path}: {type(e).__name__}: {e}", fg=typer.colors.RED)

    if failures:
        typer.secho(f"\n{failures} of {len(input_files)} image(s) failed.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.secho("\nProcessing complete!", fg=typer.colors.GREEN)


def main():
    rich.traceback.install(show_locals=False, suppress=[typer])
    typer.run(notescan_cli)


if __name__ == "__main__":
    main()
