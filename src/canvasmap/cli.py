"""canvasmap CLI: compile canvases to mapping configs and back."""

import argparse
import json
import sys
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path
from typing import List


def _print_warnings(warnings: List, quiet: bool) -> None:
    if quiet:
        return
    print(f"  Warnings: {len(warnings)}")
    for issue in warnings:
        print(f"    [{issue.code.value}] {issue.message}")


async def _run_store_command(args, settings) -> None:
    """Run ``save`` or ``versions`` against the configured store."""
    from .api import load_graph
    from .store.service import MappingStore

    store = await MappingStore.from_settings(settings, args.user)
    if args.command == "save":
        saved = await store.save_mapping(args.name, load_graph(args.graph), category=args.category)
        if not args.quiet:
            print("[OK] Mapping saved")
            print(f"  Name: {saved.name} {saved.version}")
            print(f"  Group: {saved.mapping_group_id}")
        return

    versions = await store.get_mapping_versions(args.name, args.category)
    if not versions:
        print(f"No versions of '{args.name}' found")
        return
    for record in versions:
        marker = "*" if record.is_active else " "
        print(f"{marker} {record.version}  {record.id}")


def main():
    """Main CLI entry point for canvasmap commands."""
    try:
        canvasmap_version = get_version("canvasmap")
    except PackageNotFoundError:
        canvasmap_version = "dev"

    parser = argparse.ArgumentParser(
        prog="canvasmap",
        description="canvasmap: compile visual data-mapping canvases into execution configs"
    )
    parser.add_argument("--version", action="version", version=f"canvasmap {canvasmap_version}")
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all non-error output."
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export a canvas graph to a UI config and an execution config",
        parents=[parent_parser]
    )
    export_parser.add_argument(
        "--graph",
        type=Path,
        required=True,
        help="Path to canvas JSON ({nodes, edges})"
    )
    export_parser.add_argument(
        "--name",
        default="Untitled Mapping",
        help="Mapping name written into both configs"
    )
    export_parser.add_argument(
        "--category",
        default=None,
        help="Mapping category for the execution config"
    )
    export_parser.add_argument(
        "--out-dir",
        type=Path,
        required=True,
        help="Output directory for ui_config.json and execution_config.json"
    )

    # import command
    import_parser = subparsers.add_parser(
        "import",
        help="Rebuild a canvas graph from a UI config",
        parents=[parent_parser]
    )
    import_parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to UI config JSON"
    )
    import_parser.add_argument(
        "--arrays",
        type=Path,
        default=None,
        help="Path to execution config JSON whose arrays restore groupBy"
    )
    import_parser.add_argument(
        "--expand",
        action="store_true",
        help="Attach initialExpandedFields to source nodes for interactive canvases"
    )
    import_parser.add_argument(
        "--out",
        type=Path,
        required=True,
        help="Output path for the canvas JSON"
    )

    # import-execution command
    import_exec_parser = subparsers.add_parser(
        "import-execution",
        help="Rebuild a canvas graph from an execution config alone",
        parents=[parent_parser]
    )
    import_exec_parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to execution config JSON"
    )
    import_exec_parser.add_argument(
        "--out",
        type=Path,
        required=True,
        help="Output path for the canvas JSON"
    )

    # suggest command
    suggest_parser = subparsers.add_parser(
        "suggest",
        help="Ask the AI oracle for mappings and write the proposed canvas",
        parents=[parent_parser]
    )
    suggest_parser.add_argument(
        "--source",
        type=Path,
        required=True,
        help="Path to source sample records JSON"
    )
    suggest_parser.add_argument(
        "--target",
        type=Path,
        required=True,
        help="Path to target sample records JSON"
    )
    suggest_parser.add_argument(
        "--out",
        type=Path,
        required=True,
        help="Output path for {mappings, canvas} JSON"
    )

    # preview command
    preview_parser = subparsers.add_parser(
        "preview",
        help="Run sample records through an execution config",
        parents=[parent_parser]
    )
    preview_parser.add_argument(
        "--execution",
        type=Path,
        required=True,
        help="Path to execution config JSON"
    )
    preview_parser.add_argument(
        "--records",
        type=Path,
        required=True,
        help="Path to sample records JSON"
    )
    preview_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of records to preview"
    )

    # save command
    save_parser = subparsers.add_parser(
        "save",
        help="Save a canvas as the new active version of a stored mapping",
        parents=[parent_parser]
    )
    save_parser.add_argument(
        "--graph",
        type=Path,
        required=True,
        help="Path to canvas JSON ({nodes, edges})"
    )
    save_parser.add_argument(
        "--name",
        required=True,
        help="Mapping name"
    )
    save_parser.add_argument(
        "--category",
        default="General",
        help="Mapping category"
    )
    save_parser.add_argument(
        "--user",
        required=True,
        help="User id that owns the mapping"
    )

    # versions command
    versions_parser = subparsers.add_parser(
        "versions",
        help="List the stored versions of a mapping",
        parents=[parent_parser]
    )
    versions_parser.add_argument(
        "--name",
        required=True,
        help="Mapping name"
    )
    versions_parser.add_argument(
        "--category",
        default=None,
        help="Mapping category (omit to match mappings without one)"
    )
    versions_parser.add_argument(
        "--user",
        required=True,
        help="User id that owns the mapping"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Lazy imports: only load pydantic models and clients once a command runs
    from pydantic import ValidationError

    from .config import get_settings
    from .errors import CanvasMapError
    from .logger import configure_logging

    settings = get_settings()
    # stdout is reserved for command output
    configure_logging("ERROR" if args.quiet else settings.log_level, stream=sys.stderr)

    try:
        if args.command == "export":
            from .api import export_to_dir

            result = export_to_dir(args.graph, args.out_dir, name=args.name, category=args.category)
            if not args.quiet:
                print("[OK] Export complete")
                print(f"  Output: {args.out_dir}")
                print(f"  Rules: {len(result.execution_config.mappings)}")
            _print_warnings(result.warnings, args.quiet)

        elif args.command == "import":
            from .api import import_to_graph, write_graph
            from .kernel.graph import CanvasGraph
            from .kernel.importer import attach_expansions, compute_expansions

            warnings = []
            graph = import_to_graph(args.config, args.arrays, warnings)
            if args.expand:
                expansions = compute_expansions(graph.edges, warnings)
                graph = CanvasGraph(attach_expansions(graph.nodes, expansions), graph.edges)
            write_graph(graph, args.out)
            if not args.quiet:
                print("[OK] Import complete")
                print(f"  Canvas: {args.out}")
                print(f"  Nodes: {len(graph.nodes)}, edges: {len(graph.edges)}")
            _print_warnings(warnings, args.quiet)

        elif args.command == "import-execution":
            from .api import execution_to_graph, write_graph

            warnings = []
            graph = execution_to_graph(args.config, warnings)
            write_graph(graph, args.out)
            if not args.quiet:
                print("[OK] Import complete")
                print(f"  Canvas: {args.out}")
                print(f"  Nodes: {len(graph.nodes)}, edges: {len(graph.edges)}")
            _print_warnings(warnings, args.quiet)

        elif args.command == "suggest":
            import asyncio

            from ._internal.canonical_json import canonical_dumps
            from .api import load_records
            from .suggest.oracle import MappingOracle

            if not settings.openai_api_key:
                print("Error: CANVASMAP_OPENAI_API_KEY is not set.", file=sys.stderr)
                sys.exit(1)
            oracle = MappingOracle.from_settings(settings)
            result = asyncio.run(oracle.generate_canvas(load_records(args.source), load_records(args.target)))
            args.out.parent.mkdir(parents=True, exist_ok=True)
            args.out.write_text(
                canonical_dumps({"mappings": result.mappings, "canvas": result.canvas}, indent=2) + "\n",
                encoding="utf-8",
            )
            if not args.quiet:
                print("[OK] Suggestions written")
                print(f"  Output: {args.out}")
                print(f"  Mappings: {len(result.mappings)}")
            _print_warnings(result.warnings, args.quiet)

        elif args.command in ("save", "versions"):
            import asyncio

            asyncio.run(_run_store_command(args, settings))

        elif args.command == "preview":
            from .api import preview

            rows = preview(args.execution, args.records, limit=args.limit)
            print(json.dumps(rows, indent=2, ensure_ascii=False))

    except (CanvasMapError, ValidationError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
