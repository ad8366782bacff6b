"""
``flask importer`` commands.

``run`` imports a CSV of members; the remaining commands are maintenance
passes over the content store. Every command shares the batch writer, so
``--dry-run`` (or the absence of ``--apply``) guarantees zero mutations.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click
from flask import current_app
from flask.cli import AppGroup

from community_app.importer.adapters import CSVAdapterError, read_source_rows, resolve_record
from community_app.importer.contracts import HeaderMapError, parse_header_map
from community_app.importer.mapping import MappingLoadError, get_country_synonyms
from community_app.importer.pipeline import (
    MEMBERS,
    MEMBERSHIPS,
    SUBMITTED_MEMBERS,
    BatchWriter,
    CategoryNotFound,
    CountryResolver,
    ReconcileOptions,
    ReconciliationResult,
    TagSummary,
    WipeSummary,
    WipeTarget,
    execute_wipe,
    fix_missing_keys,
    load_names,
    normalize_regions,
    plan_wipe,
    preview_documents,
    reconcile_records,
    resolve_category,
    tag_members,
)
from community_app.models import ImportRun, ImportRunStatus, db
from community_app.store import ContentStore, StoreError, get_store, get_write_store
from community_app.store.documents import CATEGORY_KINDS, MemberStatus, get_category_kind

CONFIRM_WORD = "CONFIRM"
TOP_UNMATCHED = 20

importer_cli = AppGroup("importer", help="Import members and maintain the content store.")


def _resolve_store(*, for_writes: bool) -> ContentStore:
    try:
        return get_write_store() if for_writes else get_store()
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc


def _resolve_dry_run(dry_run: Optional[bool]) -> bool:
    if dry_run is not None:
        return dry_run
    return bool(current_app.config.get("IMPORTER_DRY_RUN_DEFAULT", False))


def _echo_wipe_sample(label: str, plan) -> None:
    click.echo(f"[wipe] found {len(plan.ids)} {label} document(s).")
    for document in plan.sample:
        click.echo(f"  - {document.get('_id')} | {document.get('title') or '(untitled)'} | {document.get('status') or ''}")
    if len(plan.ids) > len(plan.sample):
        click.echo(f"  ...and {len(plan.ids) - len(plan.sample)} more")


def _run_wipes(store: ContentStore, targets: list[WipeTarget], writer: BatchWriter) -> list[WipeSummary]:
    summaries = []
    for target in targets:
        plan = plan_wipe(store, target)
        _echo_wipe_sample(target.label, plan)
        summary = execute_wipe(plan, writer)
        verb = "would delete" if writer.dry_run else "deleted"
        click.echo(
            f"[wipe] {verb} {summary.deleted} {target.label} document(s); "
            f"{summary.references_cleaned} referencing document(s) cleaned."
        )
        summaries.append(summary)
    return summaries


def _mark_failed(run_id: int, exc: Exception) -> None:
    db.session.rollback()
    recovery_run = db.session.get(ImportRun, run_id)
    if recovery_run is None:
        raise click.ClickException(f"Import run {run_id} failed and could not be recovered.") from exc
    recovery_run.status = ImportRunStatus.FAILED
    recovery_run.error_summary = str(exc)
    recovery_run.finished_at = datetime.now(timezone.utc)
    db.session.commit()


def _format_summary(run: ImportRun, result: ReconciliationResult, created: int, rows_in_file: int) -> str:
    counts = result.problems.counts()
    status_value = run.status.value if hasattr(run.status, "value") else str(run.status)
    return (
        f"Run {run.id} completed with status {status_value} (dry_run={run.dry_run}).\n"
        f"  rows_in_file       : {rows_in_file}\n"
        f"  rows_processed     : {result.rows_seen}\n"
        f"  documents_prepared : {len(result.documents)}\n"
        f"  documents_created  : {created}\n"
        f"  missing_title      : {counts['missing_title']}\n"
        f"  unmatched_country  : {counts['missing_country']}\n"
        f"  ambiguous_country  : {counts['ambiguous_country']}\n"
        f"  bad_date           : {counts['bad_date']} (fallback to today)\n"
        f"  region_mismatch    : {counts['region_mismatch']}"
    )


def _echo_unmatched(result: ReconciliationResult) -> None:
    top = result.top_unmatched(TOP_UNMATCHED)
    if not top:
        return
    click.echo(f"Top unmatched country names (first {TOP_UNMATCHED}):")
    for name, count in top:
        click.echo(f"  - {name} x {count}")


@importer_cli.command("run")
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(path_type=Path, dir_okay=False),
    help="CSV file of members to import.",
)
@click.option("--dry-run/--no-dry-run", default=None, help="Build everything but skip the final commit.")
@click.option(
    "--status",
    type=click.Choice([MemberStatus.PUBLISHED.value, MemberStatus.SUBMITTED.value]),
    default=MemberStatus.PUBLISHED.value,
    show_default=True,
)
@click.option("--delimiter", default=",", show_default=True, help="Field delimiter of the source file.")
@click.option("--limit", type=int, default=0, help="Only process the first N rows (0 = all).")
@click.option("--wipe-posts", "--wipe", "wipe_posts", is_flag=True, help="Delete every member before importing.")
@click.option("--wipe-submitted", is_flag=True, help="Delete members with status 'submitted' before importing.")
@click.option("--no-headers", is_flag=True, help="The file has no header row; use the fixed column layout.")
@click.option("--map", "header_map_spec", default=None, help="Header overrides, e.g. 'title=Org Name,description=a|b'.")
@click.option("--summary-json", is_flag=True, help="Emit a machine-readable summary after completion.")
def importer_run(
    file_path: Path,
    dry_run: Optional[bool],
    status: str,
    delimiter: str,
    limit: int,
    wipe_posts: bool,
    wipe_submitted: bool,
    no_headers: bool,
    header_map_spec: Optional[str],
    summary_json: bool,
):
    """Import members from a CSV file into the content store."""

    app = current_app._get_current_object()
    dry_run = _resolve_dry_run(dry_run)
    try:
        header_map = parse_header_map(header_map_spec)
    except HeaderMapError as exc:
        raise click.ClickException(str(exc)) from exc
    try:
        synonyms = get_country_synonyms()
    except MappingLoadError as exc:
        raise click.ClickException(str(exc)) from exc
    csv_path = file_path.resolve()
    store = _resolve_store(for_writes=not dry_run)

    run = ImportRun(
        source="csv",
        file_path=str(csv_path),
        dry_run=dry_run,
        status=ImportRunStatus.PENDING,
        counts_json={},
        ingest_params_json={
            "file_path": str(csv_path),
            "status": status,
            "delimiter": delimiter,
            "limit": limit,
            "wipe_posts": wipe_posts,
            "wipe_submitted": wipe_submitted,
            "has_headers": not no_headers,
            "header_map": header_map,
            "dry_run": dry_run,
            "country_synonyms": synonyms.describe(),
        },
    )
    db.session.add(run)
    db.session.commit()
    run_id = run.id

    run.status = ImportRunStatus.RUNNING
    run.started_at = datetime.now(timezone.utc)
    db.session.commit()
    click.echo(f"[import] reading: {csv_path}")

    try:
        parsed = read_source_rows(csv_path, delimiter=delimiter, has_headers=not no_headers)
        click.echo(f"[parse] approx lines ~{parsed.approx_lines}, {parsed.parser} parser records: {len(parsed.rows)}")
        rows = parsed.rows[:limit] if limit > 0 else parsed.rows

        if not rows:
            click.echo("[import] No rows to process.")
            run.status = ImportRunStatus.SUCCEEDED
            run.counts_json = {"rows_in_file": 0, "documents_created": 0}
            run.finished_at = datetime.now(timezone.utc)
            db.session.commit()
            return

        click.echo(f"[import] rows in file: {len(parsed.rows)}  processing: {len(rows)}  dry_run={dry_run}")
        records = [resolve_record(row, header_map) for row in rows]
        resolver = CountryResolver.from_store(store, synonyms)
        result = reconcile_records(records, resolver, ReconcileOptions(status=status))

        writer = BatchWriter(store, dry_run=dry_run, progress=lambda message: click.echo(f"[import] {message}"))
        wipe_targets = [MEMBERS] if wipe_posts else ([SUBMITTED_MEMBERS] if wipe_submitted else [])
        wipes = _run_wipes(store, wipe_targets, writer)

        created = writer.create_documents(result.documents)

        run.status = ImportRunStatus.SUCCEEDED
        run.counts_json = {
            "rows_in_file": len(parsed.rows),
            "rows_processed": result.rows_seen,
            "rows_skipped_blank": parsed.rows_skipped_blank,
            "parser": parsed.parser,
            "documents_prepared": len(result.documents),
            "documents_created": created.written,
            "country_fallbacks": result.fallback_count,
            "problems": result.problems.counts(),
            "unmatched_countries": dict(result.top_unmatched(TOP_UNMATCHED)),
            "wipes": [summary.as_dict() for summary in wipes],
        }
        run.problems_json = result.problems.as_dict()
        run.finished_at = datetime.now(timezone.utc)
        db.session.commit()
    except (CSVAdapterError, StoreError) as exc:
        _mark_failed(run_id, exc)
        app.logger.error("Import run %s failed: %s", run_id, exc)
        raise click.ClickException(f"Import run {run_id} failed: {exc}") from exc
    except Exception as exc:
        _mark_failed(run_id, exc)
        app.logger.exception("Import run %s failed unexpectedly", run_id)
        raise click.ClickException(f"Import run {run_id} failed: {exc}") from exc

    click.echo(_format_summary(run, result, created.written, len(parsed.rows)))
    if dry_run:
        click.echo("[import] DRY RUN - no writes were made. First documents:")
        click.echo(preview_documents(result.documents))
    _echo_unmatched(result)
    if result.fallback_count and not dry_run:
        click.echo('Note: some rows were imported without a country reference (saved as "importCountryRaw").')
    if result.problems.region_mismatch:
        click.echo(
            f"Note: {len(result.problems.region_mismatch)} row(s) had a source region that differs from "
            "the country's region (the country mapping was kept)."
        )
    if summary_json:
        click.echo(json.dumps({"run_id": run.id, "dry_run": dry_run, **run.counts_json}, indent=2, sort_keys=True))


@importer_cli.command("wipe")
@click.option("--wipe-posts", "--posts", "wipe_posts", is_flag=True, help="Also delete every member document.")
@click.option("--skip-memberships", is_flag=True, help="Keep membership documents.")
@click.option("--dry-run", is_flag=True, help="Only report what would be deleted.")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
def importer_wipe(wipe_posts: bool, skip_memberships: bool, dry_run: bool, yes: bool):
    """Delete memberships and optionally members, cleaning inbound references first."""

    targets = ([] if skip_memberships else [MEMBERSHIPS]) + ([MEMBERS] if wipe_posts else [])
    if not targets:
        click.echo("Nothing to wipe.")
        return

    store = _resolve_store(for_writes=not dry_run)
    if not dry_run and not yes:
        what = " + ".join(target.label for target in targets)
        answer = click.prompt(f"Type {CONFIRM_WORD} to wipe {what}", default="", show_default=False)
        if answer.strip() != CONFIRM_WORD:
            click.echo("Aborted.")
            return

    writer = BatchWriter(store, dry_run=dry_run, progress=lambda message: click.echo(f"[wipe] {message}"))
    try:
        _run_wipes(store, targets, writer)
    except StoreError as exc:
        raise click.ClickException(f"Wipe failed: {exc}") from exc
    click.echo("[dry-run] No changes were made." if dry_run else "[wipe] done.")


@importer_cli.command("normalize-regions")
@click.option("--apply", "apply_changes", is_flag=True, help="Write the changes (default is a dry run).")
@click.option("--delete-extras", is_flag=True, help="Delete non-canonical regions no country references.")
def importer_normalize_regions(apply_changes: bool, delete_extras: bool):
    """Ensure the canonical regions exist and point every country at one."""

    store = _resolve_store(for_writes=apply_changes)
    writer = BatchWriter(store, dry_run=not apply_changes, progress=lambda message: click.echo(f"  - {message}"))
    click.echo(f"[regions] {'APPLY' if apply_changes else 'DRY RUN'}")
    try:
        summary = normalize_regions(store, writer, delete_extras=delete_extras)
    except StoreError as exc:
        raise click.ClickException(f"Region normalization failed: {exc}") from exc

    plan = summary.plan
    counts = plan.counts()
    click.echo(f"[regions] existing region docs: {plan.existing_regions}, countries: {plan.countries}")
    click.echo("[regions] summary:")
    click.echo(f"  - already canonical: {counts['already_canonical']}")
    click.echo(f"  - need remap:        {counts['need_remap']}")
    click.echo(f"  - missing region:    {counts['missing_region']}")
    click.echo(f"  - unknown titles:    {counts['unknown_title']}")
    click.echo("[regions] sample remaps (first 10):")
    for remap in plan.sample:
        click.echo(f'    {remap.country}: "{remap.from_title}" -> {remap.to_id}')

    if not apply_changes:
        click.echo("[regions] (dry-run) no patches sent.")
        if delete_extras:
            click.echo("[regions] (dry-run) would delete unused non-canonical regions.")
        return
    if delete_extras:
        click.echo(f"[regions] deleted {len(summary.deleted_extras)} unused region doc(s).")
    click.echo("[regions] done.")


@importer_cli.command("tag-group")
@click.option("--group", "group_title", required=True, help="Title of the category to link members to.")
@click.option(
    "--kind",
    type=click.Choice([kind.name for kind in CATEGORY_KINDS]),
    default="actionGroup",
    show_default=True,
)
@click.option(
    "--file",
    "names_file",
    required=True,
    type=click.Path(path_type=Path, dir_okay=False),
    help="Text file with one member title per line.",
)
@click.option("--create-group", is_flag=True, help="Create the category when it does not exist.")
@click.option("--apply", "apply_changes", is_flag=True, help="Write the changes (default is a dry run).")
def importer_tag_group(group_title: str, kind: str, names_file: Path, create_group: bool, apply_changes: bool):
    """Link the members listed in a file to one category."""

    category_kind = get_category_kind(kind)
    try:
        names = load_names(names_file)
    except OSError as exc:
        raise click.ClickException(f"Input file not readable: {names_file} ({exc})") from exc
    if not names:
        raise click.ClickException("No input names provided.")

    store = _resolve_store(for_writes=apply_changes)
    writer = BatchWriter(store, dry_run=not apply_changes)
    try:
        group_id, created = resolve_category(
            store, category_kind, group_title, create=create_group, dry_run=not apply_changes
        )
        if created:
            verb = "would create" if not apply_changes else "created"
            click.echo(f'{verb} {category_kind.doc_type} "{group_title}"')
        summary = TagSummary(group_id=group_id, group_title=group_title, group_created=created)
        summary.outcomes = tag_members(store, names, category_kind, group_id, writer)
    except CategoryNotFound as exc:
        raise click.ClickException(f"{exc} (use --create-group to create it)") from exc
    except StoreError as exc:
        raise click.ClickException(f"Tagging failed: {exc}") from exc

    width = max(len(name) for name in names)
    click.echo(f"{'Name'.ljust(width)} | {'Found'.ljust(width)} | Strategy | Note")
    for outcome in summary.outcomes:
        click.echo(
            f"{outcome.name.ljust(width)} | {outcome.found_title.ljust(width)} | "
            f"{outcome.strategy.ljust(8)} | {outcome.note}"
        )
    counts = summary.counts()
    click.echo(
        f'\nGroup: "{group_title}" | Summary: Updated={counts["Updated"]} DryRun={counts["DryRun"]} '
        f'Already={counts["Already"]} NotFound={counts["NotFound"]}'
    )


@importer_cli.command("fix-keys")
@click.option("--field", "field_name", default="actionGroups", show_default=True, help="Array field to repair.")
@click.option("--apply", "apply_changes", is_flag=True, help="Write the changes (default is a dry run).")
def importer_fix_keys(field_name: str, apply_changes: bool):
    """Give every item of a reference array a ``_key``."""

    store = _resolve_store(for_writes=apply_changes)
    writer = BatchWriter(store, dry_run=not apply_changes)
    try:
        patches, _ = fix_missing_keys(store, field_name, writer)
    except (StoreError, ValueError) as exc:
        raise click.ClickException(f"Key repair failed: {exc}") from exc
    if not patches:
        click.echo("No documents need fixing.")
        return
    verb = "Patched" if apply_changes else "Would patch"
    for patch in patches:
        click.echo(f"{verb} {patch.doc_id}")
    click.echo(f"{verb} {len(patches)} document(s).")


@importer_cli.command("link-membership")
@click.option("--member", "member_id", required=True, help="Member document id.")
@click.option("--area", "area_id", required=True, help="Priority area document id.")
@click.option("--contribution", required=True, help="What the member contributes (10+ characters).")
@click.option("--since", default=None, help="Date the membership started.")
@click.option("--website", default=None, help="Related web page.")
@click.option("--status", default=MemberStatus.PUBLISHED.value, show_default=True)
def importer_link_membership(
    member_id: str,
    area_id: str,
    contribution: str,
    since: Optional[str],
    website: Optional[str],
    status: str,
):
    """Create or update one membership link."""

    from community_app.membership import MembershipError, submit_with_access

    store = _resolve_store(for_writes=True)
    selection = {"areaId": area_id, "contribution": contribution, "since": since, "website": website}
    try:
        result = submit_with_access(store, member_id, [selection], status=status)
    except MembershipError as exc:
        raise click.ClickException(exc.message) from exc
    except StoreError as exc:
        raise click.ClickException(f"Membership update failed: {exc}") from exc
    click.echo(f"Membership for {member_id}: created={result.created} updated={result.updated}")


@importer_cli.command("runs")
@click.option("--limit", type=int, default=10, show_default=True)
def importer_runs(limit: int):
    """List recent import runs."""

    runs = db.session.execute(db.select(ImportRun).order_by(ImportRun.id.desc()).limit(limit)).scalars().all()
    if not runs:
        click.echo("No import runs recorded.")
        return
    for run in runs:
        status_value = run.status.value if hasattr(run.status, "value") else str(run.status)
        counts = run.counts_json or {}
        started = run.started_at.isoformat(timespec="seconds") if run.started_at else "-"
        duration = f"{run.duration_seconds:.1f}s" if run.duration_seconds is not None else "-"
        click.echo(
            f"#{run.id} {status_value:<9} dry_run={run.dry_run!s:<5} started={started} duration={duration} "
            f"created={counts.get('documents_created', 0)} file={run.file_path or '-'}"
        )
        if run.error_summary:
            click.echo(f"    error: {run.error_summary}")
