#!/usr/bin/env python
"""jdmatch Typer-based CLI.

Commands:
  - config show       effective configuration after all layers
  - tags extract      tag a job description or resume text
  - match run         rank the tagged corpus against a job description
  - ingest run        ingest resumes from S3 or a local directory

Global --config selects an explicit config file; output via rich.
"""
from __future__ import annotations
import contextvars
import json
import logging
import signal
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from jdmatch.config import ConfigError, MatcherConfig, load_config
from jdmatch.observability import get_metrics_collector

APP = typer.Typer(add_completion=False, help="jdmatch CLI: match job descriptions to tagged resumes")
console = Console()

# Sub-apps
config_app = typer.Typer(help="Config management")
tags_app = typer.Typer(help="Tag extraction")
match_app = typer.Typer(help="Matching operations")
ingest_app = typer.Typer(help="Resume ingestion")

APP.add_typer(config_app, name="config")
APP.add_typer(tags_app, name="tags")
APP.add_typer(match_app, name="match")
APP.add_typer(ingest_app, name="ingest")


class Context:
    def __init__(self, config: MatcherConfig):
        self.config = config


pass_context = contextvars.ContextVar("jdm_ctx")


def _config() -> MatcherConfig:
    return pass_context.get().config


def print_config(conf: Dict[str, Any]):
    table = Table(title="Effective Configuration")
    table.add_column("Key")
    table.add_column("Value")

    def _walk(prefix: str, obj: Any):
        if isinstance(obj, dict):
            for k, v in obj.items():
                _walk(f"{prefix}.{k}" if prefix else k, v)
        else:
            table.add_row(prefix, json.dumps(obj) if isinstance(obj, list) else str(obj))

    _walk('', conf)
    console.print(table)


def _read_text(file: Optional[Path], text: Optional[str], what: str) -> str:
    if file is not None:
        if not file.exists():
            console.print(f"[red]{what} file not found: {file}[/red]")
            raise typer.Exit(1)
        return file.read_text(encoding='utf-8', errors='ignore')
    if text is None:
        console.print(f"[red]Provide --file or --text for the {what.lower()}[/red]")
        raise typer.Exit(1)
    return text


@APP.callback()
def main(ctx: typer.Context, config: Optional[Path] = typer.Option(None, '--config', help='Config file path')):
    try:
        conf = load_config(config)
    except ConfigError as e:
        console.print(f"[red]Config invalid:[/red] {e}")
        raise typer.Exit(code=1)
    level = getattr(logging, conf.logging.level, logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s %(message)s')
    pass_context.set(Context(conf))


# --------------- Config Commands ---------------
@config_app.command('show')
def config_show(json_out: bool = typer.Option(False, '--json', help="Output as JSON")):
    """Show the effective configuration"""
    conf = _config().model_dump()
    if json_out:
        print(json.dumps(conf, indent=2))
    else:
        print_config(conf)


# --------------- Tag Commands ---------------
@tags_app.command('extract')
def tags_extract(
    file: Optional[Path] = typer.Option(None, '--file', help="Text file to tag"),
    text: Optional[str] = typer.Option(None, '--text', help="Inline text to tag"),
    kind: str = typer.Option("jd", '--kind', help="Document kind (jd|resume)"),
):
    """Extract tags from a job description or resume"""
    from jdmatch.app import build_tag_extractor
    from jdmatch.llm.provider_base import InferenceError

    if kind not in ("jd", "resume"):
        console.print(f"[red]Unknown kind: {kind} (expected jd or resume)[/red]")
        raise typer.Exit(1)
    document = _read_text(file, text, "Document")
    if not document.strip():
        console.print("[red]Document is empty[/red]")
        raise typer.Exit(1)

    try:
        extractor = build_tag_extractor(_config())
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    try:
        tags = extractor.extract_jd_tags(document) if kind == "jd" else extractor.extract_resume_tags(document)
    except InferenceError as e:
        console.print(f"[red]Tag extraction failed: {e}[/red]")
        raise typer.Exit(1)
    if tags is None:
        console.print("[yellow]Model output could not be parsed into tags[/yellow]")
        raise typer.Exit(2)
    print(json.dumps(tags.model_dump(by_alias=True, exclude_none=True), indent=2))


# --------------- Match Commands ---------------
@match_app.command('run')
def match_run(
    jd_file: Optional[Path] = typer.Option(None, '--jd-file', help="Job description text file"),
    jd_text: Optional[str] = typer.Option(None, '--jd-text', help="Inline job description"),
    top_n: Optional[int] = typer.Option(None, '--top-n', min=1, help="Maximum resumes to return"),
    threshold: Optional[int] = typer.Option(None, '--threshold', min=0, max=100, help="Minimum relevance score"),
    json_out: bool = typer.Option(False, '--json', help="Output as JSON"),
):
    """Rank tagged resumes against a job description"""
    from jdmatch.app import build_match_service
    from jdmatch.llm.provider_base import InferenceError
    from jdmatch.matching.service import RequestValidationError
    from jdmatch.storage.object_store import ObjectStoreError

    jd = _read_text(jd_file, jd_text, "Job description")
    try:
        service = build_match_service(_config())
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    try:
        response = service.match_resumes(jd, top_n=top_n, threshold=threshold)
    except RequestValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except (InferenceError, ObjectStoreError) as e:
        console.print(f"[red]Matching failed: {e}[/red]")
        raise typer.Exit(1)

    if json_out:
        print(json.dumps(response.to_payload(), indent=2))
        return

    if response.jd_tags is not None:
        console.print(f"[cyan]JD skills:[/cyan] {response.jd_tags.skills or '-'}")
        console.print(f"[cyan]JD languages:[/cyan] {response.jd_tags.programming_languages or '-'}")
        console.print(f"[cyan]JD years:[/cyan] {response.jd_tags.years_of_experience or '-'}")
    if not response.success:
        console.print(f"[yellow]{response.message}[/yellow]")
        return

    table = Table(title=f"Top {len(response.matching_resumes) + len(response.not_found)} Matches")
    table.add_column("Rank", style="cyan")
    table.add_column("Resume", style="white")
    table.add_column("Score", style="green")
    table.add_column("Available", style="yellow")
    ranked = [(n, True) for n in response.matching_resumes] + [(n, False) for n in response.not_found]
    ranked.sort(key=lambda item: (-response.scores.get(item[0], 0), item[0]))
    for i, (name, available) in enumerate(ranked, 1):
        table.add_row(str(i), name, str(response.scores.get(name, "")), "yes" if available else "missing")
    console.print(table)


# --------------- Ingest Commands ---------------
@ingest_app.command('run')
def ingest_run(
    bucket: Optional[str] = typer.Option(None, '--bucket', help="S3 bucket holding the resumes"),
    local_root: Optional[Path] = typer.Option(None, '--local-root', help="Local directory used as object store"),
    prefix: Optional[str] = typer.Option(None, '--prefix', help="Source key prefix"),
    output: Optional[Path] = typer.Option(None, '--output', help="Workbook for the tagged corpus"),
    batch_size: Optional[int] = typer.Option(None, '--batch-size', min=1, max=1000, help="Listing page size"),
    max_docs: Optional[int] = typer.Option(None, '--max-docs', min=1, help="Stop after this many successes"),
):
    """Ingest resumes into the tagged corpus"""
    from jdmatch.app import run_ingestion, build_ingestion_pipeline
    from jdmatch.llm.provider_base import InferenceError
    from jdmatch.storage.object_store import ObjectStoreError

    conf = _config().model_copy(deep=True)
    if bucket:
        conf.storage.bucket = bucket
        conf.storage.local_root = None
    elif local_root:
        conf.storage.bucket = None
        conf.storage.local_root = str(local_root)
    if output:
        conf.storage.output_path = str(output)

    cancel_event = threading.Event()
    install_handler = threading.current_thread() is threading.main_thread()
    if install_handler:
        previous_handler = signal.signal(signal.SIGINT, lambda *_: cancel_event.set())
    try:
        pipeline = build_ingestion_pipeline(conf)
        stats = run_ingestion(conf, source_prefix=prefix, batch_size=batch_size, max_docs=max_docs,
                              cancel_event=cancel_event, pipeline=pipeline)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except (InferenceError, ObjectStoreError) as e:
        console.print(f"[red]Ingestion aborted: {e}[/red]")
        raise typer.Exit(1)
    finally:
        if install_handler:
            signal.signal(signal.SIGINT, previous_handler)

    table = Table(title="Ingestion Summary")
    table.add_column("Metric")
    table.add_column("Value")
    table.add_row("Pages listed", str(stats.pages))
    table.add_row("Documents seen", str(stats.listed))
    table.add_row("Succeeded", str(stats.processed))
    table.add_row("Failed", str(len(stats.failed)))
    table.add_row("Cancelled", "yes" if stats.cancelled else "no")
    table.add_row("Duration (s)", f"{stats.duration_s:.1f}")
    metrics = get_metrics_collector()
    for stage, count in sorted(metrics.by_tag("ingestion.document_failure", "stage").items()):
        table.add_row(f"Failed at {stage}", str(int(count)))
    table.add_row("Throttled retries", str(int(metrics.total("llm.retry.throttled"))))
    console.print(table)
    if stats.failed:
        console.print(f"[yellow]Failed files: {', '.join(stats.failed)}[/yellow]")
    console.print(f"[green]Corpus written to {conf.storage.output_path}[/green]")


if __name__ == '__main__':  # pragma: no cover
    APP()
