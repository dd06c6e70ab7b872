"""Command-line entry point for inspecting a scan.

Print the header summary and display window of a NIfTI file, and optionally
export one slice as PNG::

    python -m mpr_volume scan.nii.gz
    python -m mpr_volume scan.nii.gz --axis z --position 0.4 --out axial.png
"""

from __future__ import annotations

import argparse
import logging
import sys

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="mpr_volume",
        description="Inspect a NIfTI volume and export orthogonal slices.",
    )
    parser.add_argument("scan", help="Path to a .nii, .nii.gz or .hdr/.img file.")
    parser.add_argument(
        "--axis",
        default="z",
        help="Slice axis: x/y/z or sagittal/coronal/axial (default: z).",
    )
    parser.add_argument(
        "--position",
        type=float,
        default=0.5,
        help="Normalised position along the axis in [0, 1] (default: 0.5).",
    )
    parser.add_argument("--level", type=float, default=None, help="Contrast window level.")
    parser.add_argument("--width", type=float, default=None, help="Contrast window width.")
    parser.add_argument(
        "--full-range",
        action="store_true",
        default=False,
        help="Normalise with the full min/max range instead of percentiles.",
    )
    parser.add_argument("--out", default=None, help="Write the selected slice to this PNG.")
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug mode with verbose logging.",
    )
    return parser


def _configure_logging(debug: bool) -> None:
    """Set up root logger.

    Parameters
    ----------
    debug:
        If True, set log level to DEBUG; otherwise INFO.
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, load the scan and report on it.

    Returns
    -------
    int
        Process exit code: 0 on success, 1 when the scan cannot be loaded,
        2 on a bad argument.
    """
    from dataclasses import replace

    from mpr_volume.domain.models import PlaneAxis
    from mpr_volume.preprocessing.slice_sampler import slice_to_png
    from mpr_volume.viewer.session import VolumeSession

    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.debug)

    try:
        axis = PlaneAxis.parse(args.axis)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    session = VolumeSession()
    if args.full_range:
        session.normalization = replace(session.normalization, use_percentile=False)
    if not session.load(args.scan):
        return 1

    header = session.store.header
    window = session.intensity_window
    print(f"file:        {args.scan}")
    print(f"format:      NIfTI-{header.format_version} ({header.encoding.name})")
    print(f"dimensions:  {' x '.join(str(n) for n in header.dimensions)}")
    print(f"spacing:     {' x '.join(f'{s:g}' for s in header.spacing)} mm")
    print(f"extent:      {' x '.join(f'{e:g}' for e in header.physical_extent)} mm")
    print(f"orientation: {header.orientation or 'unknown'}")
    print(f"window:      [{window.lower:g}, {window.upper:g}]")
    for note in header.warnings:
        print(f"warning:     {note}")

    if args.level is not None or args.width is not None:
        current = session.window
        session.set_window(
            args.level if args.level is not None else current.level,
            args.width if args.width is not None else current.width,
        )
    session.set_normalized_position(axis, args.position)
    plane = session.plane(axis)
    print(
        f"{axis.anatomical_name} slice: {plane.current_index + 1} / "
        f"{session.get_slice_count(axis)}"
    )

    if args.out:
        slice_to_png(plane.buffer, args.out)
        print(f"wrote:       {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
