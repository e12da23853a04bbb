"""Command-line entry points for hashcc."""

from __future__ import annotations

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import typer

from hashcc.config import ConfigError, HashccConfig, dump_example_config, load_config
from hashcc.core.digest import Digest, constant_time_eq, get_algorithm, is_valid_hex
from hashcc.core.hashing import hash_target
from hashcc.core.models import FileSource, HashResult, HashTarget, StdinSource
from hashcc.core.pipeline import build_pipeline, iter_generate
from hashcc.core.verify import VerificationEngine, VerificationReport, VerificationStatus
from hashcc.errors import FatalConfigurationError, PolicyViolation
from hashcc.io.strategy import IOStrategySelector
from hashcc.output.formatter import render
from hashcc.util.logging import configure_logging
from hashcc.util.manifest import write_report
from hashcc.util.paths import is_stdin

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_FATAL = 2

app = typer.Typer(
    add_completion=False,
    help=(
        "Generate, compare, and verify file hashes (MD5, SHA-1, SHA-256, SHA-512, BLAKE3).\n\n"
        "Examples:\n\n"
        "  hashcc generate --format sumfile ./data > SHA256SUMS\n\n"
        "  hashcc verify SHA256SUMS --base-dir ./data\n\n"
        "  echo -n hello | hashcc generate --algo blake3"
    ),
)

LOGGER = logging.getLogger(__name__)


class AlgoChoice(str, Enum):
    md5 = "md5"
    sha1 = "sha1"
    sha256 = "sha256"
    sha512 = "sha512"
    blake3 = "blake3"


class FormatChoice(str, Enum):
    text = "text"
    json = "json"
    csv = "csv"
    sumfile = "sumfile"


def _load(config_path: Optional[Path], overrides: dict[str, Any], *, verbose: bool = False) -> HashccConfig:
    """Load configuration with CLI overrides and configure logging; exits 2 on bad config."""

    cleaned = {key: value for key, value in overrides.items() if value is not None and value is not False}
    try:
        cfg = load_config(config_path, overrides=cleaned)
    except ConfigError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=EXIT_FATAL) from exc
    configure_logging(
        level=logging.DEBUG if verbose else cfg.runtime.log_level,
        log_path=cfg.runtime.log_file,
    )
    return cfg


def _fatal(exc: Exception) -> typer.Exit:
    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(code=EXIT_FATAL)


def _emit(rendered: str, output: Optional[Path], quiet: bool) -> None:
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(rendered, encoding="utf-8")
    elif not quiet:
        typer.echo(rendered, nl=False)


@app.command()
def generate(
    paths: Optional[List[str]] = typer.Argument(None, help="Files or directories to hash; '-' or nothing reads stdin"),
    algo: Optional[AlgoChoice] = typer.Option(None, "--algo", "-a", help="Hash algorithm (default sha256)"),
    fmt: Optional[FormatChoice] = typer.Option(None, "--format", "-f", help="Output format"),
    include: Optional[List[str]] = typer.Option(None, "--include", help="Only hash paths matching this glob"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="Skip paths matching this glob"),
    archives: bool = typer.Option(False, "--archives", help="Hash entries inside .zip/.tar/.tar.gz files"),
    progress: bool = typer.Option(False, "--progress", help="Show progress on stderr"),
    workers: Optional[int] = typer.Option(None, "--workers", "-j", min=1, help="Worker threads (default: CPU count)"),
    base_dir: Optional[Path] = typer.Option(None, "--base-dir", help="Resolve paths against and confine them to DIR"),
    allow_absolute: bool = typer.Option(False, "--allow-absolute", help="Allow absolute paths"),
    allow_weak: bool = typer.Option(False, "--allow-weak", help="Allow weak algorithms (md5, sha1)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write output to FILE"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress normal output"),
    report: Optional[Path] = typer.Option(None, "--report", help="Write a JSON run report to FILE or DIR"),
    config: Optional[Path] = typer.Option(None, "--config", help="Configuration file (YAML/TOML/JSON)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Hash files, directory trees, archive entries or stdin."""

    cfg = _load(
        config,
        {
            "hashing.algorithm": algo.value if algo else None,
            "output.format": fmt.value if fmt else None,
            "scan.include": include or None,
            "scan.exclude": exclude or None,
            "scan.archives": archives,
            "runtime.progress": progress,
            "runtime.workers": workers,
            "policy.base_dir": base_dir,
            "policy.allow_absolute": allow_absolute,
            "policy.allow_weak": allow_weak,
        },
        verbose=verbose,
    )

    try:
        results_iter = iter_generate(cfg, paths or None)
        if cfg.runtime.progress:
            with typer.progressbar(results_iter, label="Hashing", file=sys.stderr) as bar:
                results = list(bar)
        else:
            results = list(results_iter)
    except (FatalConfigurationError, PolicyViolation) as exc:
        raise _fatal(exc) from exc

    _emit(render(results, cfg.output.format), output, quiet)

    failures = [result for result in results if not result.ok]
    LOGGER.info("Hashed %d targets, %d failed", len(results), len(failures))
    if not quiet or failures:
        typer.echo(f"Summary: OK={len(results) - len(failures)} ERROR={len(failures)}", err=True)
    if report is not None:
        write_report(_generate_report(cfg, results, failures), dest=report)
    if failures:
        raise typer.Exit(code=EXIT_FAILURES)


@app.command()
def compare(
    input_hash: str = typer.Argument(..., metavar="HASH", help="Expected hex digest"),
    file_path: str = typer.Argument(..., metavar="FILE", help="File to hash; '-' reads stdin"),
    algo: Optional[AlgoChoice] = typer.Option(None, "--algo", "-a", help="Hash algorithm (default sha256)"),
    allow_weak: bool = typer.Option(False, "--allow-weak", help="Allow weak algorithms (md5, sha1)"),
    config: Optional[Path] = typer.Option(None, "--config", help="Configuration file (YAML/TOML/JSON)"),
) -> None:
    """Compare one file against a known digest."""

    cfg = _load(
        config,
        {"hashing.algorithm": algo.value if algo else None, "policy.allow_weak": allow_weak},
    )
    try:
        pipeline = build_pipeline(cfg)
    except FatalConfigurationError as exc:
        raise _fatal(exc) from exc

    algorithm = pipeline.algorithm
    if len(input_hash) != algorithm.hex_length or not is_valid_hex(input_hash):
        typer.echo(
            f"Invalid {algorithm.digest_size * 8}-bit hash: expected {algorithm.hex_length} hex chars",
            err=True,
        )
        raise typer.Exit(code=EXIT_FATAL)

    source = StdinSource() if is_stdin(file_path) else FileSource(Path(file_path))
    target = HashTarget(logical_path=file_path, source=source)
    selector = IOStrategySelector(chunk_size=cfg.hashing.chunk_size, mmap_threshold=cfg.hashing.mmap_threshold)
    try:
        actual = hash_target(target, algorithm, selector)
    except OSError as exc:
        typer.echo(f"Cannot read {file_path}: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILURES) from exc

    expected = Digest.from_hex(algorithm, input_hash)
    if constant_time_eq(actual.value, expected.value):
        typer.echo("Hash matches!")
        return
    typer.echo("Hash does not match.")
    typer.echo(f"Expected: {input_hash.lower()}")
    typer.echo(f"Actual:   {actual.hex}")
    raise typer.Exit(code=EXIT_FAILURES)


@app.command()
def verify(
    checksum_file: Path = typer.Argument(..., metavar="CHECKSUMS", help="Sumfile or path,hash CSV"),
    algo: Optional[AlgoChoice] = typer.Option(None, "--algo", "-a", help="Algorithm for untagged entries (default sha256)"),
    base_dir: Optional[Path] = typer.Option(None, "--base-dir", help="Resolve paths against and confine them to DIR"),
    allow_absolute: bool = typer.Option(False, "--allow-absolute", help="Allow absolute paths in the checksum file"),
    allow_weak: bool = typer.Option(False, "--allow-weak", help="Allow weak algorithms (md5, sha1)"),
    sumfile: bool = typer.Option(False, "--sumfile", help="Treat the input as a sumfile"),
    csv: bool = typer.Option(False, "--csv", help="Treat the input as a path,hash CSV"),
    strict: bool = typer.Option(False, "--strict", help="Fail on malformed lines"),
    workers: Optional[int] = typer.Option(None, "--workers", "-j", min=1, help="Worker threads (default: CPU count)"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only report problems"),
    report: Optional[Path] = typer.Option(None, "--report", help="Write a JSON run report to FILE or DIR"),
    config: Optional[Path] = typer.Option(None, "--config", help="Configuration file (YAML/TOML/JSON)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Verify a sumfile or CSV of expected digests."""

    if sumfile and csv:
        typer.echo("--sumfile and --csv are mutually exclusive", err=True)
        raise typer.Exit(code=EXIT_FATAL)

    cfg = _load(
        config,
        {
            "hashing.algorithm": algo.value if algo else None,
            "policy.base_dir": base_dir,
            "policy.allow_absolute": allow_absolute,
            "policy.allow_weak": allow_weak,
            "verify.strict": strict,
            "runtime.workers": workers,
        },
        verbose=verbose,
    )

    engine = VerificationEngine(cfg)
    fmt = "sumfile" if sumfile else "csv" if csv else None
    try:
        result = engine.verify_file(checksum_file, fmt=fmt)
    except (FatalConfigurationError, PolicyViolation) as exc:
        raise _fatal(exc) from exc

    _print_outcomes(result, quiet=quiet)
    if report is not None:
        write_report(_verify_report(cfg, checksum_file, result), dest=report)
    if not result.ok:
        raise typer.Exit(code=EXIT_FAILURES)


@app.command("init-config")
def init_config(
    dest: Path = typer.Argument(Path("hashcc.yaml"), help="Destination (.yaml or .json)"),
) -> None:
    """Write the default configuration to DEST."""

    try:
        dump_example_config(dest)
    except ConfigError as exc:
        raise _fatal(exc) from exc
    typer.echo(f"Wrote {dest}")


# Abbreviated command names.
app.command("gen", hidden=True)(generate)
app.command("cmp", hidden=True)(compare)
app.command("ver", hidden=True)(verify)
app.command("check", hidden=True)(verify)


def _print_outcomes(result: VerificationReport, *, quiet: bool) -> None:
    for outcome in result.outcomes:
        path = outcome.entry.path
        if outcome.status is VerificationStatus.MATCH:
            if not quiet:
                typer.echo(f"{path}: OK")
        elif outcome.status is VerificationStatus.MISMATCH:
            typer.echo(f"{path}: FAILED")
        elif outcome.status is VerificationStatus.MISSING:
            typer.echo(f"{path}: MISSING ({outcome.detail})")
        else:
            typer.echo(f"{path}: REJECTED ({outcome.detail})")
    for warning in result.warnings:
        typer.echo(f"warning: {warning}", err=True)

    counts = result.summary()
    if not quiet or not result.ok:
        typer.echo(
            "Summary: OK={ok} FAILED={failed} MISSING={missing} INVALID_PATH={invalid_path} ERROR={error}".format(**counts),
            err=True,
        )


def _generate_report(cfg: HashccConfig, results: list[HashResult], failures: list[HashResult]) -> dict[str, Any]:
    return {
        "command": "generate",
        "algorithm": get_algorithm(cfg.hashing.algorithm).name,
        "summary": {"ok": len(results) - len(failures), "error": len(failures)},
        "failures": [{"path": f.logical_path, "error": f.error, "kind": f.error_kind} for f in failures],
    }


def _verify_report(cfg: HashccConfig, checksum_file: Path, result: VerificationReport) -> dict[str, Any]:
    return {
        "command": "verify",
        "checksum_file": str(checksum_file),
        "algorithm": get_algorithm(cfg.hashing.algorithm).name,
        "summary": result.summary(),
        "failures": [
            {"path": o.entry.path, "status": o.status.value, "detail": o.detail}
            for o in result.outcomes
            if not o.ok
        ],
        "warnings": [str(w) for w in result.warnings],
    }


def main() -> None:
    app()


__all__ = ["app", "main"]
