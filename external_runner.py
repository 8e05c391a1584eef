# external_runner.py
from __future__ import annotations
import logging, os, re, shutil, subprocess
from typing import Optional

logger = logging.getLogger(__name__)

_LEADING_JUNK  = re.compile(r'\A[\s"]+')
_TRAILING_JUNK = re.compile(r'[\s"]+\Z')

def resolve_executable(cmd: str) -> Optional[str]:
    """Return absolute path to executable or None.
    If cmd contains '/', treat it as a direct path. Otherwise search PATH."""
    if "/" in cmd:
        return cmd if os.path.exists(cmd) else None
    return shutil.which(cmd)

def run_shell(command: str) -> str:
    """Run a composed command line through the shell and wait for it.
    Returns whatever reached stdout; the redirection at the end of the
    command decides what happens to stderr."""
    logger.debug("running: %s", command)
    cp = subprocess.run(command, shell=True, stdout=subprocess.PIPE,
                        text=True, errors="replace")
    logger.debug("exit status %s, output:\n%s", cp.returncode, cp.stdout)
    return cp.stdout or ""

def clean_return_value(text: str) -> str:
    """Trim leading and trailing blanks and double quotes, as left behind
    by the elisp 'print' function."""
    text = _LEADING_JUNK.sub("", text)
    return _TRAILING_JUNK.sub("", text)

def run_clean(command: str, runner=run_shell) -> str:
    return clean_return_value(runner(command))
