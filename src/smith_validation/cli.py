"""smith-validation CLI entry point."""

from __future__ import annotations

import dataclasses
import json
import sys
from pathlib import Path

import click

from smith_validation import __version__
from smith_validation.logging_config import setup_logging

_SEVERITY_CHOICES = ["low", "medium", "high", "critical"]


@click.group()
@click.version_option(version=__version__, prog_name="smith-validation")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """smith-validation - architecture rules for Swift codebases."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    setup_logging(verbose=verbose, quiet=quiet)


def _project_root(paths: tuple[Path, ...]) -> Path:
    for path in paths:
        if path.is_dir():
            return path
    return Path.cwd()


def _collect_files(
    paths: tuple[Path, ...],
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    *,
    recursive: bool,
) -> list[Path]:
    """Expand directories, keep explicit files; first occurrence wins."""
    from smith_validation.discovery import find_files
    from smith_validation.errors import DiscoveryError

    seen: set[Path] = set()
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            found = find_files(path, include, exclude, recursive=recursive)
        elif path.is_file():
            found = [path]
        else:
            msg = f"Path not found: {path}"
            raise DiscoveryError(msg)
        for file in found:
            key = file.resolve()
            if key not in seen:
                seen.add(key)
                files.append(file)
    return files


@main.command()
@click.argument("paths", nargs=-1, type=click.Path(path_type=Path))
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: smith.yml in the project root).",
)
@click.option(
    "--rules",
    "rule_dirs",
    multiple=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Extra script rule pack directory (repeatable).",
)
@click.option("--pack", "packs", multiple=True, help="Only run these packs (repeatable).")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option("--strict", is_flag=True, default=False, help="Exit 1 if violations found.")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Parallel workers.")
@click.option("--include", multiple=True, help="Include glob (repeatable, overrides smith.yml).")
@click.option("--exclude", multiple=True, help="Exclude glob (repeatable, overrides smith.yml).")
@click.option(
    "--min-severity",
    type=click.Choice(_SEVERITY_CHOICES),
    default=None,
    help="Hide violations below this severity.",
)
def validate(
    *,
    paths: tuple[Path, ...],
    config_path: Path | None,
    rule_dirs: tuple[Path, ...],
    packs: tuple[str, ...],
    fmt: str | None,
    strict: bool,
    workers: int | None,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    min_severity: str | None,
) -> None:
    """Validate Swift sources against the active rule packs.

    PATHS are directories or files (default: current directory).
    Exit codes: 0 = clean or violations without --strict,
    1 = violations with --strict, 2 = configuration or discovery error.
    """
    from smith_validation.config import build_registry, resolve_config
    from smith_validation.engine import ValidationEngine
    from smith_validation.errors import ConfigurationError, DiscoveryError
    from smith_validation.report import FORMATTERS, ValidationReport

    targets = paths or (Path.cwd(),)

    # Resolve output format: explicit flag > TTY detection.
    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    try:
        config = resolve_config(_project_root(targets), config_path)
        settings = config.engine
        if workers is not None:
            settings = dataclasses.replace(settings, max_workers=workers)
        registry = build_registry(config, extra_rule_dirs=rule_dirs, only_packs=packs)
        rules = registry.active_rules()
        files = _collect_files(
            targets,
            include or config.files.include,
            exclude or config.files.exclude,
            recursive=config.files.recursive,
        )
        engine = ValidationEngine(settings)
        violations = engine.validate(rules, files)
    except (ConfigurationError, DiscoveryError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    if min_severity is not None:
        violations = violations.filter(min_severity=min_severity)

    stats = engine.statistics()
    report = ValidationReport(
        violations=violations,
        rules_evaluated=len(rules),
        files_scanned=stats.files_scanned,
        elapsed_ms=stats.elapsed_ms,
        load_errors=registry.load_errors,
        cache=stats.cache,
    )
    output = FORMATTERS[fmt](report)
    if output:
        click.echo(output)

    if strict and violations:
        sys.exit(1)


@main.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: ./smith.yml).",
)
@click.option(
    "--rules",
    "rule_dirs",
    multiple=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Extra script rule pack directory (repeatable).",
)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@click.option("--plain", is_flag=True, help="Plain text grouped by category.")
def rules(
    *, config_path: Path | None, rule_dirs: tuple[Path, ...], output_json: bool, plain: bool
) -> None:
    """List registered rules, their state and any load errors."""
    from smith_validation.config import build_registry, resolve_config
    from smith_validation.errors import ConfigurationError, DiscoveryError

    try:
        config = resolve_config(Path.cwd(), config_path)
        registry = build_registry(config, extra_rule_dirs=rule_dirs)
    except (ConfigurationError, DiscoveryError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    descriptors = registry.load_rules()

    if output_json:
        data = {
            "rules": [
                {
                    "name": d.name,
                    "pack": d.pack,
                    "category": str(d.category),
                    "severity": str(d.default_severity),
                    "confidence": d.default_confidence,
                    "version": d.version,
                    "origin": d.origin,
                    "state": registry.state(d.name).value,
                }
                for d in descriptors
            ],
            "load_errors": [
                {"name": e.name, "path": e.path, "message": str(e.args[0])}
                for e in registry.load_errors
            ],
        }
        click.echo(json.dumps(data, indent=2))
        return

    if plain:
        click.echo(registry.summary())
        return

    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    console = Console()
    table = Table(title=f"Rules ({len(descriptors)})")
    table.add_column("Rule", style="cyan")
    table.add_column("Pack")
    table.add_column("Category")
    table.add_column("Severity")
    table.add_column("Confidence", justify="right")
    table.add_column("State")
    for d in descriptors:
        state = registry.state(d.name).value
        table.add_row(
            d.name,
            d.pack,
            str(d.category),
            str(d.default_severity),
            f"{d.default_confidence:.2f}",
            f"[green]{state}[/]" if state == "active" else f"[yellow]{state}[/]",
        )
    console.print(table)

    for error in registry.load_errors:
        console.print(f"[red]✗[/] {escape(str(error))}", highlight=False)
