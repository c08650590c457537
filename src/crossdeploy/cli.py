"""Command-line interface: validate, render, diagram, check-params, simulate."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from crossdeploy import __version__
from crossdeploy.compiler.parameters import ParameterValidationError
from crossdeploy.models.errors import DefinitionError, DefinitionValidationError
from crossdeploy.render import FormatRegistry, UnsupportedFormatError
from crossdeploy.runtime import AccessDeniedError, deploy_locally
from crossdeploy.service.definition_store import DefinitionStore, ErrorInfo
from crossdeploy.service.diagram import generate_mermaid_flow
from crossdeploy.settings import Settings

logger = logging.getLogger("crossdeploy.cli")


def _parse_params(pairs: list[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got '{pair}'")
        params[name] = value
    return params


def _print_errors(errors: list[ErrorInfo] | list[DefinitionError], label: str) -> None:
    print(f"{label}:", file=sys.stderr)
    for e in errors:
        line = f"  [{e.code}] {e.message}"
        if e.path:
            line += f"  (at {e.path})"
        if e.suggestions:
            line += f"  Did you mean: {', '.join(e.suggestions)}?"
        print(line, file=sys.stderr)


def _load(store: DefinitionStore, path: str) -> str:
    """Load the definition file into *store*; return its id."""
    result = store.load_definition(Path(path).read_text(encoding="utf-8"))
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    return result.definition_id


def _write(text: str, output: str | None) -> None:
    if output:
        Path(output).write_text(text, encoding="utf-8")
        print(f"Wrote {output}", file=sys.stderr)
    else:
        sys.stdout.write(text if text.endswith("\n") else text + "\n")


# -- commands ----------------------------------------------------------------


def cmd_validate(args: argparse.Namespace, store: DefinitionStore) -> int:
    summary = store.validate(Path(args.definition).read_text(encoding="utf-8"))
    if summary.warnings:
        _print_errors(summary.warnings, "Warnings")
    if not summary.valid:
        _print_errors(summary.errors, "Definition has validation errors")
        return 1
    print(f"{args.definition}: valid")
    return 0


def cmd_render(args: argparse.Namespace, store: DefinitionStore) -> int:
    definition_id = _load(store, args.definition)
    params = _parse_params(args.param) if args.param else None
    result = store.render(definition_id, args.format, params)
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    _write(result.template, args.output)
    return 0 if result.template_valid else 1


def cmd_diagram(args: argparse.Namespace, store: DefinitionStore) -> int:
    definition_id = _load(store, args.definition)
    mermaid = generate_mermaid_flow(store.get_plan(definition_id), theme=args.theme)
    _write(mermaid, args.output)
    return 0


def cmd_check_params(args: argparse.Namespace, store: DefinitionStore) -> int:
    definition_id = _load(store, args.definition)
    bound = store.bind_parameters(definition_id, _parse_params(args.param))
    for name, value in bound.items():
        print(f"{name}={value}")
    return 0


def cmd_simulate(args: argparse.Namespace, store: DefinitionStore) -> int:
    settings: Settings = args.settings
    definition_id = _load(store, args.definition)
    deployment = deploy_locally(
        store.get_plan(definition_id),
        _parse_params(args.param),
        account_id=settings.default_account_id,
        region=settings.default_region,
    )
    executions = deployment.push(args.branch)
    if not executions:
        print(f"No trigger rule matched a push to '{args.branch}'")
        return 1
    failed = False
    for e in executions:
        print(f"{e.execution_id}: {' -> '.join(e.history)}")
        if e.failure:
            print(f"  failure: {e.failure}", file=sys.stderr)
            failed = True
    return 1 if failed else 0


# -- entry point -------------------------------------------------------------


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crossdeploy",
        description="Compile cross-account pipeline definitions into CloudFormation",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("validate", help="Validate a definition file")
    p.add_argument("definition", help="Pipeline definition YAML file")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("render", help="Render the CloudFormation template")
    p.add_argument("definition", help="Pipeline definition YAML file")
    p.add_argument(
        "-f", "--format", default=settings.default_format,
        help=f"Output format ({', '.join(FormatRegistry.available())})",
    )
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.add_argument("-p", "--param", action="append", default=[], metavar="NAME=VALUE",
                   help="Stack parameter value to check before rendering")
    p.set_defaults(func=cmd_render)

    p = sub.add_parser("diagram", help="Print a Mermaid flowchart of the event flow")
    p.add_argument("definition", help="Pipeline definition YAML file")
    p.add_argument("--theme", default="default", help="Mermaid theme")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.set_defaults(func=cmd_diagram)

    p = sub.add_parser("check-params", help="Check stack parameter values")
    p.add_argument("definition", help="Pipeline definition YAML file")
    p.add_argument("-p", "--param", action="append", default=[], metavar="NAME=VALUE",
                   help="Stack parameter value")
    p.set_defaults(func=cmd_check_params)

    p = sub.add_parser("simulate", help="Simulate a push against a local deployment")
    p.add_argument("definition", help="Pipeline definition YAML file")
    p.add_argument("branch", help="Branch that receives the push")
    p.add_argument("-p", "--param", action="append", default=[], metavar="NAME=VALUE",
                   help="Stack parameter value (TargetAccountID is required)")
    p.set_defaults(func=cmd_simulate)
    return parser


def main(argv: list[str] | None = None) -> int:
    settings = Settings()
    logging.basicConfig(level=settings.log_level.upper())
    parser = build_parser(settings)
    args = parser.parse_args(argv)
    args.settings = settings
    store = DefinitionStore(account_id=settings.default_account_id)

    try:
        return int(args.func(args, store))
    except DefinitionValidationError as exc:
        _print_errors(exc.errors, "Definition has validation errors")
    except ParameterValidationError as exc:
        _print_errors(exc.errors, "Invalid stack parameters")
    except argparse.ArgumentTypeError as exc:
        print(f"error: {exc}", file=sys.stderr)
    except (UnsupportedFormatError, AccessDeniedError, OSError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
