"""
Inspect a saved graph document from the command line

Usage:
    python run_headless.py <graph.json>
    python run_headless.py graph.json --no-tree
    python run_headless.py graph.json --config path/to/config.json
"""

import argparse
import sys
from pathlib import Path

# make src importable without installing
project_root = Path(__file__).resolve().parent
src_dir = project_root / "src"
sys.path.insert(0, str(src_dir))

from patch_editor.headless import run_headless


def main():
    parser = argparse.ArgumentParser(description="Inspect and check a saved graph document")
    parser.add_argument("graph_file", help="path of the graph JSON document")
    parser.add_argument("--no-tree", action="store_true", help="do not print the node hierarchy")
    parser.add_argument("--config", type=str, default=None, help="settings file (default: user config dir)")
    args = parser.parse_args()

    graph_file = Path(args.graph_file)
    if not graph_file.exists():
        print(f"Error: File not found: {graph_file}")
        sys.exit(1)

    config_file = Path(args.config) if args.config else None
    if config_file and not config_file.exists():
        print(f"Error: Config file not found: {config_file}")
        sys.exit(1)

    sys.exit(run_headless(graph_file, config_file=config_file, show_tree=not args.no_tree))


if __name__ == "__main__":
    main()
