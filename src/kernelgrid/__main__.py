"""CLI entry point: run `kernelgrid kernel.sx` or `python -m kernelgrid kernel.sx`."""

import sys
from pathlib import Path


def _to_json(value):
    import numpy as np
    from .runtime.grid import SubKernelOutputs

    if isinstance(value, SubKernelOutputs):
        return {"result": _to_json(value.result), "outputs": [_to_json(v) for v in value]}
    if isinstance(value, dict):
        return {key: _to_json(v) for key, v in value.items()}
    if isinstance(value, (np.ndarray, np.generic)):
        return value.tolist()
    return value


def main(argv=None) -> int:
    import argparse
    import json
    import logging
    from .export import load_kernel
    from .shared.errors import KernelError
    from .utils.io_utils import read_source_file, write_image

    parser = argparse.ArgumentParser(prog="kernelgrid", description="Run an exported kernelgrid kernel.")
    parser.add_argument("file", type=Path, help="Path to exported kernel text")
    parser.add_argument("--args", default="[]", help="JSON list of call arguments (default: [])")
    parser.add_argument("--output", type=Path, default=None,
                        help="Image path for graphical kernels (default: FILE with .png suffix)")
    parser.add_argument("--debug", action="store_true", help="Log build steps to stderr")
    args = parser.parse_args(argv)

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    path = args.file.resolve()
    if not path.exists():
        sys.stderr.write(f"kernelgrid: error: file not found: {path}\n")
        return 1
    if not path.is_file():
        sys.stderr.write(f"kernelgrid: error: not a file: {path}\n")
        return 1

    try:
        text = read_source_file(path)
    except (OSError, UnicodeDecodeError) as e:
        sys.stderr.write(f"kernelgrid: error: could not read file: {e}\n")
        return 1

    try:
        call_args = json.loads(args.args)
    except json.JSONDecodeError as e:
        sys.stderr.write(f"kernelgrid: error: --args is not valid JSON: {e}\n")
        return 1
    if not isinstance(call_args, list):
        sys.stderr.write("kernelgrid: error: --args must be a JSON list\n")
        return 1

    root_path = str(path.parent)
    if root_path not in sys.path:
        sys.path.insert(0, root_path)

    try:
        program = load_kernel(text)
        result = program(*call_args)
    except KernelError as e:
        sys.stderr.write(f"kernelgrid: error: {e}\n")
        return 1

    if program.graphical:
        output = args.output or path.with_suffix(".png")
        try:
            write_image(output, program.surface.to_array())
        except (OSError, ValueError) as e:
            sys.stderr.write(f"kernelgrid: error: could not write image: {e}\n")
            return 1
        sys.stdout.write(f"{output}\n")
        return 0

    sys.stdout.write(json.dumps(_to_json(result)) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
