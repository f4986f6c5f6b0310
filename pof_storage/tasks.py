# pof_storage/tasks.py
import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .errors import PofStorageError
from .workflow import ReadinessReport, StorageWorkflow

log = logging.getLogger("tasks")


def check_balances(workflow: StorageWorkflow) -> Optional[ReadinessReport]:
    log.info("Running balance check...")
    try:
        report = workflow.readiness()
    except PofStorageError:
        # next run retries; a scheduler job must not raise
        log.exception("Balance check failed")
        return None

    if report.ready:
        log.info(
            "Account %s ready: %s tFIL, %s USDFC, %d active providers",
            report.address,
            report.native_balance,
            report.token_balance,
            report.active_providers,
        )
    for hint in report.recommendations():
        log.warning("Account %s: %s", report.address, hint)
    return report


def build_scheduler(workflow: StorageWorkflow, minutes: int) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(check_balances, "interval", minutes=minutes, args=[workflow], id="balance-check")
    return scheduler
