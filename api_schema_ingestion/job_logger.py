import os
import sys
import logging
import socket
from datetime import datetime
from typing import Optional


def init_job_logger(log_dir: Optional[str], task_name: str, identity_suffix: str | None = None) -> tuple[logging.Logger, Optional[str]]:
    """
    Build a per-run logger that writes JSON-shaped lines to stdout and, when log_dir
    is given, to a run-specific file under log_dir/job_<date>_<hour>_<task_name>/.
    """
    if not identity_suffix:
        identity_suffix = f"{socket.gethostname()}_{os.getpid()}"

    logger_name = f"api_schema_ingestion.{task_name}.{identity_suffix}"
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)
    logger.propagate = False

    for h in logger.handlers[:]:
        logger.removeHandler(h)
        h.close()

    fmt = logging.Formatter(
        f'{{"timestamp":"%(asctime)s","level":"%(levelname)s","task":"{task_name}","proc":"{identity_suffix}","message":"%(message)s"}}'
    )

    log_file = None
    if log_dir:
        # create run-specific sub-folder for logs
        folder = os.path.join(log_dir, f"job_{datetime.now().strftime('%Y-%m-%d_%H')}_{task_name}")
        os.makedirs(folder, exist_ok=True)
        filename = f"job_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S_%f')[:-3]}_{task_name}_{identity_suffix}.log"
        log_file = os.path.join(folder, filename)

        fh = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    logger.info(f"Logger initialized for task='{task_name}', file={log_file}")
    return logger, log_file
