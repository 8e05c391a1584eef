# init_resolver.py - locating init files and probing for elisp libraries
#
# Presence is inferred from the absence of emacs' "Cannot open load file"
# complaint: there is no positive confirmation to look for.
from __future__ import annotations

import logging
import os
from typing import List, Optional

from external_runner import run_shell
from invocation import InvocationConfig, compose_command, load_directive, MERGE_STREAMS

logger = logging.getLogger(__name__)

LOAD_FAILURE = "Cannot open load file:"
SITE_INIT_LIB = "site-start"
DEFAULT_INIT_LIB = "default"

# Same order emacs itself searches in.
USER_INIT_CANDIDATES = (
    ".emacs",
    ".emacs.elc",
    ".emacs.el",
    os.path.join(".emacs.d", "init.elc"),
    os.path.join(".emacs.d", "init.el"),
)


def user_init_candidates(home: str) -> List[str]:
    return [os.path.join(home, name) for name in USER_INIT_CANDIDATES]


def find_user_init(home: Optional[str]) -> Optional[str]:
    """First existing user init file under home, or None.
    Stale .elc files are emacs' problem, not ours."""
    if not home:
        return None
    for candidate in user_init_candidates(home):
        if os.path.exists(candidate):
            return candidate
    return None


def load_failed(output: str, name: str) -> bool:
    """True if the load did not go through.

    emacs stops at the first load error, so a failure signature on the last
    line means the probe failed whichever library it names: a library that
    exists can still fail on a missing dependency of its own. Earlier lines
    only count when the failure names the library itself, as the last
    comma-separated field ("Cannot open load file: No such file or directory, cl").
    """
    lines = [line for line in output.splitlines() if line.strip()]
    if lines and LOAD_FAILURE in lines[-1]:
        return True
    for line in lines:
        _, sep, rest = line.partition(LOAD_FAILURE)
        if sep and rest.rsplit(",", 1)[-1].strip() == name:
            return True
    return False


class LibraryDetector:
    """Probes the emacs installation for loadable libraries.

    Each probe is one batch run; nothing here changes the loader fragment
    it is given.
    """

    def __init__(self, config: InvocationConfig, runner=run_shell):
        self.config = config
        self.runner = runner

    def _probe(self, name: str, fragment: str = "") -> bool:
        cmd = compose_command(self.config, fragment, load_directive(name), MERGE_STREAMS)
        found = not load_failed(self.runner(cmd), name)
        logger.debug("probe for %s: %s", name, "found" if found else "missing")
        return found

    def detect_site_init(self) -> bool:
        # before_hook only: site-start is looked for in the raw load-path
        return self._probe(SITE_INIT_LIB)

    def detect_lib(self, name: str, fragment: str = "") -> bool:
        if not name:
            return False
        return self._probe(name, fragment)
