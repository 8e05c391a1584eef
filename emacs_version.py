# emacs_version.py - find out which emacs we are talking to
#
# A GNU Emacs banner starts with a line like "GNU Emacs 22.1.1" followed by
# copyright noise. XEmacs may print library loading messages first, so its
# last matching line is the one to trust:
#   XEmacs 21.4 (patch 18) "Social Property" [Lucid] (amd64-debian-linux, Mule)
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from external_runner import resolve_executable, run_shell

logger = logging.getLogger(__name__)

GNU_EMACS = "GNU Emacs"
XEMACS = "XEmacs"
UNKNOWN_EMACS_TYPE = "not so gnu, not xemacs either"

_GNU_BANNER = re.compile(r"^(GNU Emacs)[ \t]+(\d[\d.]*)", re.MULTILINE)
_XEMACS_BANNER = re.compile(r"^(XEmacs)[ \t]+(\d[\d.]*)", re.MULTILINE)


def major_version_of(version: str) -> str:
    return version.split(".", 1)[0]


@dataclass(frozen=True)
class VersionInfo:
    emacs_type: str
    version: str
    major_version: str

    @classmethod
    def from_version(cls, version: str, emacs_type: str = "") -> "VersionInfo":
        """Build the record for a caller-supplied version string."""
        version = str(version)
        return cls(emacs_type, version, major_version_of(version))

    @property
    def known(self) -> bool:
        return self.emacs_type in (GNU_EMACS, XEMACS)


def parse_version_string(text: str) -> VersionInfo:
    m = _GNU_BANNER.search(text)
    if m is None:
        hits = list(_XEMACS_BANNER.finditer(text))
        m = hits[-1] if hits else None
    if m is None:
        logger.debug("unrecognised version banner: %r", text[:200])
        return VersionInfo(UNKNOWN_EMACS_TYPE, "", "")

    emacs_type, version = m.group(1), m.group(2)
    logger.debug("version: %s, major_version: %s", version, major_version_of(version))
    return VersionInfo(emacs_type, version, major_version_of(version))


def probe_version(emacs_path: str, runner=run_shell) -> VersionInfo:
    """Run '<emacs> --version' and parse what comes back.

    A missing binary is not an error here: it just produces a banner we
    can't recognise.
    """
    if resolve_executable(emacs_path) is None:
        logger.warning("%s: command not found", emacs_path)
    return parse_version_string(runner(f"{emacs_path} --version 2>&1"))
