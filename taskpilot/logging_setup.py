import logging
import sys


def configure_logging(level="INFO"):
    """Install one stderr handler on the root logger.

    Safe to call more than once; earlier handlers are replaced so the app
    factory can run repeatedly (tests) without duplicating output.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for handler in list(root.handlers):
        if getattr(handler, "_taskpilot", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handler._taskpilot = True
    root.addHandler(handler)

    # pymongo logs every heartbeat at DEBUG.
    logging.getLogger("pymongo").setLevel(logging.WARNING)
