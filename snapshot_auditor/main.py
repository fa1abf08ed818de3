"""
GKE Snapshot Auditor - Kubernetes CronJob

Ensures every bound PersistentVolume has a snapshot schedule, then builds
a PDF audit report of snapshot freshness and posts it to Slack.

Exit codes: 0 success, 1 fatal (nothing reconciled), 2 partial (some
volumes failed, see the report and alerts).
"""

import argparse
import logging
import sys
from datetime import date

from .config import AuditConfig, ConfigError
from .models import SweepOutcome, SweepStatus
from .providers import Providers, build_providers
from .providers.slack import ReportUploadError, SlackReportUploader
from .reconciler import PolicyReconciler
from .report import ReportError, build_pdf, render_latex

logger = logging.getLogger(__name__)

EXIT_CODES = {
    SweepStatus.SUCCESS: 0,
    SweepStatus.FATAL: 1,
    SweepStatus.PARTIAL: 2,
}


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Attach the default snapshot schedule to bound persistent volumes "
        "and report on snapshot freshness."
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report missing schedules but do not attach anything.",
    )
    parser.add_argument(
        "--no-report",
        action="store_true",
        help="Skip building the PDF report.",
    )
    parser.add_argument(
        "--no-upload",
        action="store_true",
        help="Build the PDF report but do not upload it to Slack.",
    )
    return parser.parse_args(argv)


def publish_report(config: AuditConfig, outcome: SweepOutcome, providers: Providers, upload: bool) -> None:
    """Render, compile and upload the report; failures are escalated, not raised."""
    today = date.today()
    latex = render_latex(outcome.rows, config.cluster_name, today)
    try:
        pdf_path = build_pdf(latex, config.report_dir, config.cluster_name)
    except ReportError as e:
        logger.error(f"Report generation failed: {e}")
        providers.alerts.notify(f"PDF generation failed for {config.cluster_name}.")
        return
    logger.info(f"Report written to {pdf_path}")

    if not upload:
        return
    if not (config.slack_token and config.slack_channel):
        logger.warning("Slack token or channel not configured, report not uploaded")
        return

    uploader = SlackReportUploader(config.slack_token, config.slack_channel)
    try:
        uploader.upload(pdf_path, f"{config.cluster_name} Report for {today.isoformat()}")
    except (ReportUploadError, OSError) as e:
        logger.error(f"Report upload failed: {e}")
        providers.alerts.notify(f"Unable to upload PDF to Slack: {e}")


def run(config: AuditConfig, providers: Providers, dry_run: bool = False,
        report: bool = True, upload: bool = True) -> int:
    reconciler = PolicyReconciler(
        config,
        providers.inventory,
        providers.disks,
        providers.snapshots,
        providers.alerts,
        dry_run=dry_run,
    )
    outcome = reconciler.run()

    if outcome.status == SweepStatus.FATAL:
        logger.error(f"Sweep aborted: {outcome.fatal_reason}")
        return EXIT_CODES[outcome.status]

    if report:
        publish_report(config, outcome, providers, upload)

    if outcome.errors:
        for error in outcome.errors:
            logger.error(f"Volume failure: {error}")
        providers.alerts.notify(
            f"Snapshot Scheduler verification for {config.cluster_name} finished "
            f"with {len(outcome.errors)} failed volume(s)."
        )
    else:
        providers.alerts.notify(f"Snapshot Scheduler verification complete for {config.cluster_name}")

    return EXIT_CODES[outcome.status]


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = AuditConfig.from_env()
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, stream=sys.stdout)
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CODES[SweepStatus.FATAL]

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout
    )
    logger.info(f"Starting snapshot audit for cluster {config.cluster_name}")

    providers = build_providers(config)
    return run(
        config,
        providers,
        dry_run=args.dry_run,
        report=not args.no_report,
        upload=not args.no_upload,
    )


if __name__ == "__main__":
    sys.exit(main())
