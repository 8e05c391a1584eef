# lib_loader.py - accumulating the command line fragment that loads elisp libraries
#
# Every library that gets loaded may change the emacs load-path, and that
# decides whether later "lib" lookups succeed. So the fragment is grown one
# directive at a time, and each "requested" probe runs with everything
# accepted so far already on the command line.
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from init_resolver import (DEFAULT_INIT_LIB, SITE_INIT_LIB, find_user_init,
                           user_init_candidates)
from invocation import InvocationConfig, eval_directive, load_directive

logger = logging.getLogger(__name__)

_ELISP_EXTENSION = re.compile(r"\.elc?$")


class EmacsRunError(Exception):
    """Base class for errors raised by emacs-run."""


class LibraryNotFoundError(EmacsRunError):
    pass


class LibType(str, Enum):
    FILE = "file"
    LIB = "lib"


class Priority(str, Enum):
    NEEDED = "needed"
    REQUESTED = "requested"


@dataclass(frozen=True)
class LibrarySpec:
    name: str
    type: Optional[LibType] = None
    priority: Optional[Priority] = None

    def __post_init__(self):
        if self.type is not None:
            object.__setattr__(self, "type", LibType(self.type))
        if self.priority is not None:
            object.__setattr__(self, "priority", Priority(self.priority))


def guess_type_from_name(name: str) -> LibType:
    """A path separator or an .el/.elc extension means it's a file."""
    seps = {os.sep, "/"} | ({os.altsep} if os.altsep else set())
    if any(sep in name for sep in seps) or _ELISP_EXTENSION.search(name):
        return LibType.FILE
    return LibType.LIB


def resolve_spec(spec: LibrarySpec, default_priority=Priority.REQUESTED) -> LibrarySpec:
    return replace(
        spec,
        type=spec.type or guess_type_from_name(spec.name),
        priority=spec.priority or Priority(default_priority),
    )


def as_spec(item) -> LibrarySpec:
    """Accept a LibrarySpec, a bare name, or a (name, {type, priority}) pair."""
    if isinstance(item, LibrarySpec):
        return item
    if isinstance(item, str):
        return LibrarySpec(item)
    name, attrs = item
    attrs = attrs or {}
    return LibrarySpec(name, attrs.get("type"), attrs.get("priority"))


def expand_home(path: str, home: Optional[str]) -> str:
    if home and (path == "~" or path.startswith("~/")):
        return home + path[1:]
    return path


def elisp_to_load_file(elisp_file: str) -> str:
    """Elisp that puts the file's directory on the load-path, then loads it.

    Loading by path alone would leave tools that call locate-library on
    the library (extract-docstrings.el, for one) unable to find it.
    """
    elisp_file = os.path.abspath(elisp_file)
    path = os.path.dirname(elisp_file)
    return (f"(progn (add-to-list 'load-path (expand-file-name \"{path}/\")) "
            f"(load-file \"{elisp_file}\"))")


# -----------------------
# Directive generators, one per (type, priority)
# -----------------------
class _Build:
    """State handed to the generators while one fragment is being built."""

    def __init__(self, detector, home, probe_needed_libs):
        self.detector = detector
        self.home = home
        self.probe_needed_libs = probe_needed_libs
        self.directives: List[str] = []

    @property
    def fragment(self) -> str:
        return " ".join(self.directives)

    def append(self, directive: str) -> str:
        self.directives.append(directive)
        return directive


def _lib_needed(build: _Build, name: str) -> Optional[str]:
    # Not probed unless asked: a missing needed lib normally shows up only
    # in the output of the eventual run.
    if build.probe_needed_libs and not build.detector.detect_lib(name, build.fragment):
        raise LibraryNotFoundError(f"Could not find required elisp library: {name}.")
    return build.append(load_directive(name))


def _file_needed(build: _Build, name: str) -> Optional[str]:
    path = expand_home(name, build.home)
    if not os.path.exists(path):
        raise LibraryNotFoundError(f"Could not find required elisp library file: {name}.")
    return build.append(eval_directive(elisp_to_load_file(path)))


def _lib_requested(build: _Build, name: str) -> Optional[str]:
    if not build.detector.detect_lib(name, build.fragment):
        logger.debug("requested lib %s not found, skipping", name)
        return None
    return build.append(load_directive(name))


def _file_requested(build: _Build, name: str) -> Optional[str]:
    path = expand_home(name, build.home)
    if not os.path.exists(path):
        logger.debug("requested file %s not found, skipping", name)
        return None
    return build.append(eval_directive(elisp_to_load_file(path)))


GENERATORS: Dict[Tuple[LibType, Priority], Callable[[_Build, str], Optional[str]]] = {
    (LibType.LIB, Priority.NEEDED): _lib_needed,
    (LibType.FILE, Priority.NEEDED): _file_needed,
    (LibType.LIB, Priority.REQUESTED): _lib_requested,
    (LibType.FILE, Priority.REQUESTED): _file_requested,
}


def _load_inits(build: _Build, config: InvocationConfig) -> None:
    if config.use_site_init and build.detector.detect_site_init():
        build.append(load_directive(SITE_INIT_LIB))

    if config.use_emacs_init:
        dot_emacs = find_user_init(build.home)
        if dot_emacs:
            build.append(load_directive(dot_emacs))

    if config.use_default_init and build.detector.detect_lib(DEFAULT_INIT_LIB, build.fragment):
        build.append(load_directive(DEFAULT_INIT_LIB))


def build_loader(specs: Iterable, config: InvocationConfig, *, home: Optional[str], detector,
                 default_priority=Priority.REQUESTED, probe_needed_libs: bool = False) -> str:
    """Build the loader fragment from scratch: init files first, then each
    library in order.

    detector needs detect_site_init() and detect_lib(name, fragment);
    see init_resolver.LibraryDetector. Raises LibraryNotFoundError for a
    needed file that isn't there, before any later spec is looked at.
    """
    if config.load_no_inits:
        # -Q in the before hook does the work; nothing gets loaded
        return ""

    build = _Build(detector, home, probe_needed_libs)
    _load_inits(build, config)

    for spec in specs:
        spec = resolve_spec(as_spec(spec), default_priority)
        GENERATORS[(spec.type, spec.priority)](build, spec.name)

    return build.fragment


def loader_cache_key(specs: Sequence, config: InvocationConfig, home: Optional[str],
                     default_priority=Priority.REQUESTED, probe_needed_libs: bool = False) -> tuple:
    """Everything build_loader's answer depends on, short of the emacs
    installation itself."""
    specs = tuple(resolve_spec(as_spec(s), default_priority) for s in specs)
    settings = (config.emacs_path, config.effective_before_hook, config.load_no_inits,
                config.use_site_init, config.use_emacs_init, config.use_default_init)

    watched = []
    if home and config.use_emacs_init:
        watched += user_init_candidates(home)
    watched += [expand_home(s.name, home) for s in specs if s.type is LibType.FILE]
    existing = tuple(os.path.exists(p) for p in watched)

    return (specs, settings, home, probe_needed_libs, tuple(watched), existing)
