import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from shapescript import (
    EngineConfig,
    ShapeScriptError,
    compile_scene,
    evaluate,
    get_default_config,
    parse_program,
    print_program,
)

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def _build_config(args: argparse.Namespace) -> EngineConfig:
    config = get_default_config()
    if args.max_loop_iterations is not None:
        config.max_loop_iterations = args.max_loop_iterations
    if args.max_recursion_depth is not None:
        config.max_recursion_depth = args.max_recursion_depth
    if args.max_total_shapes is not None:
        config.max_total_shapes = args.max_total_shapes
    if args.detail is not None:
        config.default_detail_level = args.detail
    if args.seed is not None:
        config.random_seed = args.seed
    return config


def _format_error(error: dict) -> str:
    where = ""
    if error.get("line") is not None:
        where = f" at line {error['line']}, column {error['column']}"
    return f"{error['stage']} error ({error['kind']}){where}: {error['message']}"


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Compile ShapeScript models to meshes")
    parser.add_argument("path", help="Path to the ShapeScript source file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--max-loop-iterations",
        type=int,
        help="Total loop iterations allowed per run",
    )
    parser.add_argument(
        "--max-recursion-depth",
        type=int,
        help="Maximum nesting of custom shape and function calls",
    )
    parser.add_argument(
        "--max-total-shapes",
        type=int,
        help="Maximum number of shapes a script may emit",
    )
    parser.add_argument(
        "--detail",
        type=int,
        help="Default tessellation detail level",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the rnd builtin",
    )
    parser.add_argument(
        "--json",
        dest="json_path",
        help="Write the JSON result envelope to the given path",
    )
    parser.add_argument(
        "--print-ast",
        action="store_true",
        help="Print the parsed program in canonical form before compiling",
    )
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)
    config = _build_config(args)

    with open(args.path, encoding="utf-8") as fin:
        text = fin.read()

    logger.info("Compiling %s", args.path)
    try:
        program = parse_program(text)
        if args.print_ast:
            print(f"Program:\n{print_program(program)}")
        scene = evaluate(program, config)
        result = compile_scene(scene, config)
    except ShapeScriptError as err:
        error = err.to_dict()
        print(_format_error(error))
        if args.json_path:
            _write_json(args.json_path, {"ok": False, "error": error})
        raise SystemExit(1)

    print(f"Meshes ({len(result.meshes)}):")
    for idx, descriptor in enumerate(result.meshes):
        x, y, z = descriptor.position
        print(
            f"  [{idx}] {descriptor.kind}: {len(descriptor.vertices)} vertices, "
            f"{len(descriptor.faces)} faces at ({x:.3f}, {y:.3f}, {z:.3f})"
        )
    print("Diagnostics:")
    if result.diagnostics:
        for diagnostic in result.diagnostics:
            print(f"  - {_format_error(diagnostic)}")
    else:
        print("  (none)")

    if args.json_path:
        payload = result.to_dict()
        _write_json(args.json_path, {"ok": True, **payload})


def _write_json(path: str, envelope: dict) -> None:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Writing JSON result to %s", output_path)
    output_path.write_text(json.dumps(envelope, sort_keys=True), encoding="utf-8")
    print(f"JSON result written to {output_path}")


if __name__ == "__main__":
    main(sys.argv[1:])
