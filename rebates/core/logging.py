"""Logging setup for the calculator and its batch worker."""
from __future__ import annotations

import logging.config
from pathlib import Path

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "../.." / "configs" / "logging.yaml"
PACKAGE_LOGGERS: tuple[str, ...] = ("rebates", "workers")


def configure_logging(config_path: Path | str | None = None, *, level: int | str | None = None) -> bool:
    """Apply the YAML logging config, or a basic INFO setup when the file is absent.

    ``level`` overrides the level of the package loggers afterwards. Returns
    whether the YAML file was used.
    """

    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    loaded = path.exists()
    if loaded:
        import yaml  # type: ignore[import-untyped]

        with path.open("r", encoding="utf-8") as config_file:
            logging.config.dictConfig(yaml.safe_load(config_file))
    else:
        logging.basicConfig(level=logging.INFO)

    if level is not None:
        for name in PACKAGE_LOGGERS:
            logging.getLogger(name).setLevel(level)
    return loaded


__all__ = ["DEFAULT_CONFIG_PATH", "PACKAGE_LOGGERS", "configure_logging"]
