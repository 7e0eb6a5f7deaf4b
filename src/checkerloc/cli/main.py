from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path

from checkerloc.api.locate import locate_checkerboard
from checkerloc.api.white_point import estimate_white_point_coordinates
from checkerloc.config import LocatorConfig, LocatorSettings, load_locator_config
from checkerloc.core.image_io import load_image_f64, save_image_u8
from checkerloc.target.checkerboard import CheckerboardSpec, generate_checkerboard_model


def _settings_from_args(args: argparse.Namespace) -> LocatorSettings:
    if args.config is not None:
        settings = load_locator_config(args.config)
    else:
        settings = LocatorSettings(board=CheckerboardSpec(), locator=LocatorConfig())
    board = settings.board
    if args.checkers_x is not None:
        board = replace(board, checkers_x=args.checkers_x)
    if args.checkers_y is not None:
        board = replace(board, checkers_y=args.checkers_y)
    locator = settings.locator
    if args.overlay is not None:
        locator = replace(locator, debug_overlay=True)
    return LocatorSettings(board=board, locator=locator)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="checkerloc")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="-v for INFO, -vv for DEBUG logging.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    loc = sub.add_parser("locate", help="Locate a checkerboard target and print the registered grid corners as JSON.")
    loc.add_argument("image", type=Path)
    loc.add_argument("--config", type=Path, default=None, help="JSON config (schema checkerloc.config.v0).")
    loc.add_argument("--checkers-x", type=int, default=None, help="Override grid corners along x.")
    loc.add_argument("--checkers-y", type=int, default=None, help="Override grid corners along y.")
    loc.add_argument("--overlay", type=Path, default=None, help="Write a debug overlay PNG.")
    loc.add_argument("--white-point", action="store_true", help="Also estimate the white-patch location.")
    loc.add_argument("--out-json", type=Path, default=None, help="Write the JSON report to a file instead of stdout.")

    pat = sub.add_parser("generate-pattern", help="Write the synthetic checkerboard pattern image.")
    pat.add_argument("out", type=Path)
    pat.add_argument("--checkers-x", type=int, default=4)
    pat.add_argument("--checkers-y", type=int, default=6)
    pat.add_argument("--checkers-size", type=int, default=32)

    args = parser.parse_args(argv)
    level = logging.WARNING if args.verbose == 0 else (logging.INFO if args.verbose == 1 else logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if args.cmd == "locate":
        settings = _settings_from_args(args)
        img = load_image_f64(args.image)
        res = locate_checkerboard(img, settings.board, settings.locator)

        report: dict[str, object] = {
            "image": str(args.image),
            "status": res.status,
            "message": res.message,
            "board": {"checkers_x": settings.board.checkers_x, "checkers_y": settings.board.checkers_y},
            "spacing_raw_px": res.spacing_raw,
            "spacing_px": res.spacing,
            "n_raw_corners": res.n_raw_corners,
            "n_corners": int(res.corners.shape[0]),
            "transform": res.transform.to_dict(),
            "residual": res.residual if res.ok else None,
            "corners_xy": res.points.tolist() if res.ok else [],
        }
        if args.white_point and res.ok:
            wp = estimate_white_point_coordinates(img, res.points, settings.board)
            report["white_point"] = {
                "status": wp.status,
                "xy": wp.xy.tolist() if wp.xy is not None else None,
                "block": list(wp.block) if wp.block is not None else None,
            }

        if args.overlay is not None and res.overlay is not None:
            save_image_u8(args.overlay, res.overlay)

        text = json.dumps(report, indent=2, sort_keys=True)
        if args.out_json is not None:
            args.out_json.parent.mkdir(parents=True, exist_ok=True)
            args.out_json.write_text(text, encoding="utf-8")
            print(f"Wrote {args.out_json}")
        else:
            print(text)
        if args.overlay is not None and res.overlay is not None:
            print(f"Wrote {args.overlay}")
        return 0 if res.ok else 1

    if args.cmd == "generate-pattern":
        model = generate_checkerboard_model(
            CheckerboardSpec(checkers_x=args.checkers_x, checkers_y=args.checkers_y, checkers_size=args.checkers_size)
        )
        save_image_u8(args.out, model.pattern)
        print(f"Wrote {args.out}")
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")


if __name__ == "__main__":
    raise SystemExit(main())
