# app_config.py
import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_WORKBOOK_PATH = "data/billing.xlsx"
DEFAULT_ID_PAD_WIDTH = 3
DEFAULT_INTEREST_RATE = "1.5"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_workbook_path() -> Path:
    return Path(os.getenv("BILLING_WORKBOOK_PATH", DEFAULT_WORKBOOK_PATH)).resolve()


def get_id_pad_width() -> int:
    raw = os.getenv("BILLING_ID_PAD_WIDTH")
    if not raw:
        return DEFAULT_ID_PAD_WIDTH

    width = int(raw)
    if width < 1:
        raise RuntimeError("BILLING_ID_PAD_WIDTH must be a positive integer")
    return width


def get_default_interest_rate() -> Decimal:
    """
    Monthly interest percentage applied to a new loan when the form leaves it blank.
    """
    return Decimal(os.getenv("BILLING_DEFAULT_INTEREST_RATE", DEFAULT_INTEREST_RATE))


def configure_logging(level: Optional[str] = None) -> None:
    level_name = (level or os.getenv("BILLING_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
