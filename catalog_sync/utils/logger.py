# catalog_sync/utils/logger.py
import os, sys, time

LEVELS = {"ERROR": 40, "WARN": 30, "INFO": 20, "DEBUG": 10, "NONE": 100}
LOG_LEVEL = LEVELS.get(os.getenv("LOG_LEVEL", "INFO").upper(), 20)

def _ts():
    return time.strftime("%H:%M:%S")

def log(level: str, msg: str, store: str | None = None):
    if LEVELS[level] < LOG_LEVEL:
        return
    prefix = f"[{store}] " if store else ""
    print(f"[{_ts()}][{level}] {prefix}{msg}", file=sys.stdout if LEVELS[level] < 40 else sys.stderr, flush=True)

def debug(msg, store=None): log("DEBUG", msg, store)
def info(msg, store=None):  log("INFO", msg, store)
def warn(msg, store=None):  log("WARN", msg, store)
def error(msg, store=None): log("ERROR", msg, store)

def progress(done: int, total: int, what: str, store=None):
    info(f"{done}/{total} {what}", store)
