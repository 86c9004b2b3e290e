"""
Backup run driver.

One run:
1. Authenticate
2. Global describe, then describe every object in batches (the schema catalog)
3. Create the output directory
4. For every selected object: plan columns, compile the query, export to CSV

Steps 1-3 are pre-flight: a failure there is reported through
``Report.fatal`` and ends the run. Failures in step 4 are confined to the
object being exported and become ERROR outcomes.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import AbstractSet, Iterable, List, Optional

from tqdm import tqdm

from .config import BackupConfig
from .exceptions import CatalogError
from .exporter import export_object
from .planner import TIMESTAMP_FIELDS, plan_columns
from .report import Outcome, Report, Status
from .schema import ObjectSummary, SchemaCatalog, parse_global_describe
from .soql import compile_query
from .utils import ensure_dir, lower_set

_logger = logging.getLogger(__name__)

# Objects that cannot be queried without a filter, or not at all by a
# backup user; never exported regardless of include/exclude.
RESTRICTED_OBJECTS = frozenset(
    {
        "contentdocumentlink",
        "ideacomment",
        "vote",
        "support_document__kav",
        "collaborationgrouprecord",
    }
)

NO_TIMESTAMP_REASON = "no {} field for incremental backup".format(" / ".join(TIMESTAMP_FIELDS))


def select_objects(
    summaries: Iterable[ObjectSummary],
    include: AbstractSet[str] = frozenset(),
    exclude: AbstractSet[str] = frozenset(),
    restricted: AbstractSet[str] = RESTRICTED_OBJECTS,
) -> List[ObjectSummary]:
    """Objects to back up, in global-describe order.

    ``include``, ``exclude`` and ``restricted`` hold lowercase names. An empty
    ``include`` means every object.
    """
    selected = []
    for s in summaries:
        lcname = s.name.lower()
        if not (s.queryable and s.createable):
            continue
        if include and lcname not in include:
            continue
        if lcname in exclude or lcname in restricted:
            continue
        selected.append(s)
    return selected


def incremental_boundary(
    hours: Optional[int], now: Optional[datetime] = None
) -> Optional[datetime]:
    if not hours or hours <= 0:
        return None
    now = now or datetime.now().astimezone()
    return now - timedelta(hours=hours)


def backup_object(
    api,
    catalog: SchemaCatalog,
    object_name: str,
    out_dir: str,
    since: Optional[datetime] = None,
) -> Outcome:
    """Export one object; never raises for failures of that object."""
    descriptor = catalog.lookup(object_name)
    if descriptor is None:
        return Outcome(object_name, Status.ERROR, message=f"object not described: {object_name}")

    try:
        plan = plan_columns(descriptor, catalog)
        soql = compile_query(
            plan.object_name,
            plan.columns,
            plan.blob_fields,
            since=since,
            timestamp_field=plan.timestamp_field,
        )
        if soql is None:
            _logger.info("Skipping %s: %s", object_name, NO_TIMESTAMP_REASON)
            return Outcome(object_name, Status.SKIPPED, message=NO_TIMESTAMP_REASON)
        count = export_object(api, soql, plan, out_dir)
    except Exception as e:
        _logger.warning("Backup of %s failed: %s", object_name, e, exc_info=True)
        return Outcome(object_name, Status.ERROR, message=str(e) or type(e).__name__)

    return Outcome(object_name, Status.SUCCESS, count=count)


def run_backup(
    api,
    config: BackupConfig,
    report: Report,
    *,
    now: Optional[datetime] = None,
    progress: bool = False,
    restricted: AbstractSet[str] = RESTRICTED_OBJECTS,
) -> List[Outcome]:
    """Run a complete backup and deliver the summary through ``report``.

    Raises FatalBackupError (via ``report.fatal``) on pre-flight failures and
    NotificationError when the final summary cannot be delivered.
    """
    try:
        api.connect()
    except Exception as e:
        report.fatal(f"login failed: {e}")

    try:
        summaries = parse_global_describe(api.describe_global())
    except Exception as e:
        report.fatal(f"global describe failed: {e}")

    try:
        catalog = SchemaCatalog.build(api, summaries)
    except CatalogError as e:
        report.fatal(str(e))

    try:
        ensure_dir(config.path)
    except OSError as e:
        report.fatal(f"failed to create output directory {config.path}: {e}")

    selected = select_objects(
        summaries,
        include=lower_set(config.include),
        exclude=lower_set(config.exclude),
        restricted=restricted,
    )
    since = incremental_boundary(config.hours, now)
    _logger.info(
        "Backing up %d of %d sObjects to %s (since=%s)",
        len(selected),
        len(summaries),
        config.path,
        since.isoformat() if since else "beginning",
    )

    for summary in tqdm(selected, desc="Objects", unit="obj", disable=not progress):
        outcome = backup_object(api, catalog, summary.name, config.path, since)
        report.record(outcome)

    report.finalize()
    return list(report.outcomes)
