import logging
import sys


_LOGGER: logging.Logger | None = None
_RUN_ID: str = ""


class RunIdFilter(logging.Filter):
    """Copies the current run id onto every record for the formatter."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _RUN_ID
        return True


def setup_logger(run_id: str, level: int = logging.INFO) -> logging.Logger:
    """
    Configure the "bcv" logger once per process: stdout only, run id on
    every line. Calling it again replaces the handler, it never stacks.
    """
    global _LOGGER, _RUN_ID
    _RUN_ID = run_id

    logger = logging.getLogger("bcv")
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s [%(run_id)s] %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    ))
    handler.addFilter(RunIdFilter())

    logger.addHandler(handler)
    logger.propagate = False

    _LOGGER = logger
    return logger


def set_run_id(run_id: str) -> None:
    """Re-stamp subsequent log lines, e.g. with the id of the job being handled."""
    global _RUN_ID
    _RUN_ID = run_id


def get_logger(name: str = "bcv") -> logging.Logger:
    """Child of the "bcv" logger; module names are passed as-is (get_logger(__name__))."""
    if _LOGGER is None:
        raise RuntimeError("Call setup_logger(run_id) before get_logger().")
    return _LOGGER.getChild(name.replace("bcv.", ""))
