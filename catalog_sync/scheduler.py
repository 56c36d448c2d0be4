# catalog_sync/scheduler.py
from typing import Iterable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import SUPPLIERS
from .services.sync import sync_product_list
from .utils.logger import info

# (crontab, frequency)
JOBS = [
    ("0 0,12 * * *", "halfday"),
    ("0 * * * *", "hourly"),
]


def build_scheduler(stores: Optional[Iterable[str]] = None, scheduler=None) -> BackgroundScheduler:
    scheduler = scheduler or BackgroundScheduler()
    for store_name in (SUPPLIERS if stores is None else stores):
        for crontab, frequency in JOBS:
            scheduler.add_job(
                sync_product_list,
                CronTrigger.from_crontab(crontab),
                args=[store_name, frequency],
                id=f"{store_name}:{frequency}",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            info(f"Tracking product updates ({frequency}) on '{crontab}'.....", store_name)
    return scheduler


def start_scheduler(stores: Optional[Iterable[str]] = None) -> BackgroundScheduler:
    scheduler = build_scheduler(stores)
    scheduler.start()
    return scheduler
