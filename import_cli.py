"""Command line helper for registry provisioning and bulk model imports."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Dict, Optional

from registry_tools import importer, intake, provisioning
from registry_tools.context import AppContext
from registry_tools.errors import RegistryToolsError
from registry_tools.logging_config import configure_logging
from registry_tools.registry import unique_categories
from registry_tools.settings import ENVIRONMENTS, load_settings


def _context() -> AppContext:
    settings = load_settings()
    configure_logging(settings.log_level, settings.log_file)
    return AppContext(settings)


def _parse_overrides(pairs) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    for pair in pairs or []:
        field_name, sep, column = pair.partition("=")
        if not sep or not field_name.strip() or not column.strip():
            raise importer.ImporterError(f"Invalid --map value {pair!r}; expected FIELD=COLUMN")
        overrides[field_name.strip()] = column.strip()
    return overrides


def _print_preview(preview: importer.ImportPreview) -> None:
    print(f"Rows      : {preview.total}")
    print(f"Ready     : {preview.ready}")
    print(f"Duplicates: {preview.duplicates}")
    print(f"Skipped   : {preview.skipped}")
    mapped = ", ".join(
        f"{field_name}=#{index + 1}" if index >= 0 else f"{field_name}=-" for field_name, index in preview.mapping.items()
    )
    if mapped:
        print(f"Mapping   : {mapped}")
    if preview.missing_categories:
        print(f"Unknown categories: {', '.join(preview.missing_categories)}")


def command_categories(args: argparse.Namespace) -> int:
    try:
        categories = unique_categories(_context().read_registry())
    except RegistryToolsError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if not categories:
        print("Registry has no categories.")
    for category in categories:
        print(category)
    return 0


def _load_preview(args: argparse.Namespace, context: Optional[AppContext]) -> importer.ImportPreview:
    known = unique_categories(context.read_registry()) if context is not None else None
    return importer.preview_file(args.file, known_categories=known, overrides=_parse_overrides(args.map))


def command_preview(args: argparse.Namespace) -> int:
    try:
        context = None if args.offline else _context()
        preview = _load_preview(args, context)
    except (RegistryToolsError, importer.ImporterError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    _print_preview(preview)
    return 0


def command_import(args: argparse.Namespace) -> int:
    try:
        context = _context()
        preview = _load_preview(args, context)
    except (RegistryToolsError, importer.ImporterError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    _print_preview(preview)
    if not preview.ready:
        print("Nothing to import.")
        return 0

    try:
        result = intake.bulk_add_models(context, args.env, preview.items())
    except RegistryToolsError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    failed = 0
    for group in result.groups:
        upsert = group.upsert
        line = f"{group.category} -> {group.target}: {upsert.inserted} inserted, {upsert.updated} updated"
        if group.error:
            failed += 1
            line += f" (error: {group.error})"
        print(line)
    print(f"Total written: {result.total} (env={result.env})")
    return 1 if failed else 0


def command_provision(args: argparse.Namespace) -> int:
    if not args.all and not args.category:
        print("Error: give a CATEGORY or --all", file=sys.stderr)
        return 2

    try:
        context = _context()
        rows = context.read_registry()
        if args.all:
            summary = provisioning.provision_all(context.client, rows)
        else:
            result = provisioning.provision_category(context.client, rows, category=args.category)
    except RegistryToolsError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.all:
        print(f"Provisioned {summary.done}/{summary.total} categories.")
        for error in summary.errors:
            print(f"  {error['category']}: {error['error']}", file=sys.stderr)
        return 1 if summary.errors else 0

    state = "created" if result.created else "updated"
    print(f"Header {state} on {result.target} with {len(result.columns)} columns.")
    return 0


def command_validate(args: argparse.Namespace) -> int:
    try:
        context = _context()
        result = provisioning.validate_category(context.client, context.read_registry(), category=args.category)
    except RegistryToolsError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.to_json(), ensure_ascii=False, indent=2))
    elif result.valid:
        print("Header matches the schema.")
    else:
        print("Header does not match the schema.")
        print(f"Expected: {', '.join(result.expected)}")
        print(f"Actual  : {', '.join(result.header) or '<empty>'}")
    return 0 if result.valid else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Registry tools provisioning and import helper")
    subparsers = parser.add_subparsers(dest="command", required=True)

    categories_parser = subparsers.add_parser("categories", help="List the Registry categories")
    categories_parser.set_defaults(func=command_categories)

    map_help = "Override a column mapping, e.g. Manufacturer=Brand (repeatable)"

    preview_parser = subparsers.add_parser("preview", help="Show how an import file would be mapped")
    preview_parser.add_argument("file", help="CSV, TSV or XLSX file")
    preview_parser.add_argument("--map", action="append", metavar="FIELD=COLUMN", help=map_help)
    preview_parser.add_argument(
        "--offline",
        action="store_true",
        help="Do not read the Registry; unknown categories are not reported",
    )
    preview_parser.set_defaults(func=command_preview)

    import_parser = subparsers.add_parser("import", help="Upsert the models of an import file")
    import_parser.add_argument("file", help="CSV, TSV or XLSX file")
    import_parser.add_argument("--env", choices=ENVIRONMENTS, default="dev", help="Webhook environment to notify")
    import_parser.add_argument("--map", action="append", metavar="FIELD=COLUMN", help=map_help)
    import_parser.set_defaults(func=command_import)

    provision_parser = subparsers.add_parser("provision", help="Write schema headers to category sheets")
    provision_parser.add_argument("category", nargs="?", help="Category to provision")
    provision_parser.add_argument("--all", action="store_true", help="Provision every Registry category")
    provision_parser.set_defaults(func=command_provision)

    validate_parser = subparsers.add_parser("validate", help="Compare a category header with its schema")
    validate_parser.add_argument("category", help="Category to validate")
    validate_parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    validate_parser.set_defaults(func=command_validate)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
