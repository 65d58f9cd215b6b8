from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from .saving import describe_file


def _inspect(path: Path, as_json: bool) -> None:
    if not path.exists():
        raise SystemExit(f"Weights file not found: {path}")
    entries = describe_file(path)
    if as_json:
        print(json.dumps([{**entry, "shape": list(entry["shape"])} for entry in entries], indent=2))
        return
    if not entries:
        print("# no variables stored")
        return
    width = max(len(entry["path"]) for entry in entries)
    for entry in entries:
        print(f"{entry['path']:<{width}}  {entry['dtype']:<8}  {entry['shape']}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Strata command line utilities")
    subparsers = parser.add_subparsers(dest="cmd")

    inspect_parser = subparsers.add_parser("inspect", help="List variables stored in a weights file")
    inspect_parser.add_argument("path", type=Path, help="Path to a .npz or .safetensors file")
    inspect_parser.add_argument(
        "--json",
        action="store_true",
        help="Emit a JSON list instead of aligned text",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "inspect":
        _inspect(args.path, as_json=args.json)
        return

    parser.print_help()


if __name__ == "__main__":  # pragma: no cover
    main(sys.argv[1:])
