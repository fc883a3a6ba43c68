import logging

from colorlog import ColoredFormatter

# color formatter
formatter = ColoredFormatter(
    "%(log_color)s[%(asctime)s] [%(filename)s:%(lineno)d] [%(levelname)s] %(message)s",
    datefmt="%d/%m/%y %H:%M:%S",
    log_colors={
        "DEBUG": "blue",
        "INFO": "white",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold_red",
    },
)


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Attach the colored handler to the root logger once and set its level."""
    root = logging.getLogger()
    if not any(getattr(h, "formatter", None) is formatter for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(fmt=formatter)
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    return root
