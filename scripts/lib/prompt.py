"""Interactive overwrite confirmation for report files."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Iterable

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

YES_ANSWERS = {"y", "yes"}


def confirm_overwrite(path: Path, ask: Callable[[str], str] = input) -> bool:
    """Ask before replacing an existing file. Anything but y/yes declines."""
    if ask is input and (sys.stdin is None or not sys.stdin.isatty()):
        logger.warning("%s exists and stdin is not interactive; not overwriting "
                       "(pass --yes to skip this check)", path)
        return False
    try:
        answer = ask(f"{path} already exists. Overwrite? (y/N) ")
    except EOFError:
        return False
    return answer.strip().lower() in YES_ANSWERS


def confirm_overwrite_many(paths: Iterable[Path], ask: Callable[[str], str] = input) -> bool:
    """Single prompt covering several existing files."""
    existing = [p for p in paths if Path(p).exists()]
    if not existing:
        return True
    listing = "\n".join(f"  - {p}" for p in existing)
    try:
        answer = ask(f"These report files already exist:\n{listing}\nOverwrite them? (y/N) ")
    except EOFError:
        return False
    return answer.strip().lower() in YES_ANSWERS
