"""CLI entrypoints for sprint video analysis."""

from __future__ import annotations

import argparse
from dataclasses import replace
import json
import logging

from .config import default_project_config
from .presets import preset_from_config
from .session import load_session_file, run_session_analysis, session_results_to_dict


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Analyze sprint steps from a landmark session file.")
    parser.add_argument("--input", required=True, help="Path to a session JSON file.")
    parser.add_argument(
        "--mass",
        type=float,
        default=None,
        help="Athlete mass in kg (overrides the session file; enables the force-velocity profile).",
    )
    parser.add_argument(
        "--standing-start",
        action="store_true",
        help="Measure the first stride from the distance origin.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = default_project_config()
    logging.basicConfig(
        level=config.runtime.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    model = preset_from_config(config)
    if args.standing_start:
        model = replace(model, steps=replace(model.steps, standing_start=True))

    session = load_session_file(args.input)
    if args.mass is not None:
        session = replace(session, mass_kg=args.mass)

    results = run_session_analysis(session, model=model)
    payload = session_results_to_dict(results)
    payload["input_path"] = str(args.input)
    print(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
