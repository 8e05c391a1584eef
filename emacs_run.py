# emacs_run.py - run emacs as a batch lisp interpreter
"""Drive an external emacs from Python through "emacs --batch".

    er = EmacsRun()
    if int(er.emacs_major_version) > 22:
        print("You have a recent version of emacs")

    er = EmacsRun(emacs_libs=["~/lib/my-elisp.el", "/usr/lib/site-emacs/stuff.el"])
    load_path = er.get_load_path()
    email = er.get_variable("user-mail-address")
    name = er.eval_function("user-full-name")

    er = EmacsRun(load_emacs_init=False)
    er.eval_elisp("(print (+ 2 2))")        # "4"

    er = EmacsRun(lib_data=[
        ("dired",                {"type": "lib",  "priority": "needed"}),
        ("/tmp/my-load-path.el", {"type": "file", "priority": "requested"}),
        ("/tmp/my-elisp.el",     {"type": "file", "priority": "needed"}),
    ])

Unlike a bare "emacs --batch", all three kinds of init file (site-start,
the user's ~/.emacs, default) are loaded when they can be found, so that
the answers match what the user's interactive emacs would say. Each can be
switched off, or all of them at once with load_no_inits.
"""
from __future__ import annotations

import logging
import os
from typing import Iterable, List, Optional

from emacs_version import GNU_EMACS, VersionInfo, probe_version
from external_runner import run_clean, run_shell
from init_resolver import LibraryDetector
from invocation import (InvocationConfig, STDOUT_ONLY, compose_command,
                        eval_directive)
from lib_loader import (LibrarySpec, LibType, LibraryNotFoundError, Priority,
                        as_spec, build_loader, elisp_to_load_file,
                        loader_cache_key)

logger = logging.getLogger(__name__)


def _specs(names: Optional[Iterable[str]], type_: LibType, priority: Priority) -> List[LibrarySpec]:
    return [LibrarySpec(name, type_, priority) for name in (names or [])]


class EmacsRun:
    """One emacs installation plus the init files and libraries to load
    before running any code in it.

    Not meant to be shared between threads.
    """

    def __init__(self, emacs_path: str = "emacs", *,
                 emacs_version: Optional[str] = None, emacs_type: Optional[str] = None,
                 load_emacs_init: bool = True, load_site_init: bool = True,
                 load_default_init: bool = True, load_no_inits: bool = False,
                 lib_data=None, emacs_libs=None,
                 needed_libs=None, needed_elisp_files=None,
                 requested_libs=None, requested_elisp_files=None,
                 default_priority="requested", before_hook: str = "",
                 output_director: Optional[str] = None, home: Optional[str] = None,
                 probe_needed_libs: bool = False, runner=run_shell):
        self.runner = runner
        self.config = InvocationConfig(
            emacs_path=emacs_path or "emacs",
            before_hook=before_hook or "",
            output_director=output_director,
            load_emacs_init=load_emacs_init,
            load_site_init=load_site_init,
            load_default_init=load_default_init,
            load_no_inits=load_no_inits,
        )
        self.home = home if home is not None else os.path.expanduser("~")
        self.default_priority = Priority(default_priority)
        self.probe_needed_libs = probe_needed_libs

        self.lib_data: List[LibrarySpec] = [as_spec(item) for item in (lib_data or [])]
        self.emacs_libs: List[str] = []
        if emacs_libs:
            self.process_emacs_libs(emacs_libs)
        self.extra_libs: List[LibrarySpec] = (
            _specs(needed_libs, LibType.LIB, Priority.NEEDED)
            + _specs(needed_elisp_files, LibType.FILE, Priority.NEEDED)
            + _specs(requested_libs, LibType.LIB, Priority.REQUESTED)
            + _specs(requested_elisp_files, LibType.FILE, Priority.REQUESTED)
        )

        if emacs_version:
            self.version_info = VersionInfo.from_version(emacs_version, emacs_type or "")
        else:
            self.version_info = probe_version(self.config.emacs_path, runner)

        self._loader_cache = None

    # -----------------------
    # Version info
    # -----------------------
    @property
    def emacs_version(self) -> str:
        return self.version_info.version

    @property
    def emacs_major_version(self) -> str:
        return self.version_info.major_version

    @property
    def emacs_type(self) -> str:
        return self.version_info.emacs_type

    # -----------------------
    # Settings that feed the loader fragment
    # -----------------------
    @property
    def emacs_path(self) -> str:
        return self.config.emacs_path

    @property
    def before_hook(self) -> str:
        return self.config.effective_before_hook

    def set_before_hook(self, hook: str) -> str:
        self.config = self.config.with_changes(before_hook=hook or "")
        return self.before_hook

    def append_to_before_hook(self, extra: str) -> str:
        """Options such as --multibyte go here, right after --batch."""
        return self.set_before_hook(f"{self.config.before_hook} {extra}".strip())

    def set_output_director(self, director: Optional[str]) -> None:
        self.config = self.config.with_changes(output_director=director)

    def set_load_emacs_init(self, flag: bool) -> None:
        self.config = self.config.with_changes(load_emacs_init=bool(flag))

    def set_load_site_init(self, flag: bool) -> None:
        self.config = self.config.with_changes(load_site_init=bool(flag))

    def set_load_default_init(self, flag: bool) -> None:
        self.config = self.config.with_changes(load_default_init=bool(flag))

    def set_load_no_inits(self, flag: bool) -> None:
        self.config = self.config.with_changes(load_no_inits=bool(flag))

    def set_lib_data(self, lib_data) -> List[LibrarySpec]:
        self.lib_data = [as_spec(item) for item in (lib_data or [])]
        return self.lib_data

    def set_emacs_libs(self, emacs_libs) -> List[str]:
        self.emacs_libs = list(emacs_libs or [])
        return self.emacs_libs

    def process_emacs_libs(self, emacs_libs) -> List[LibrarySpec]:
        """Add plain library names (with or without paths); their type and
        priority are worked out when the loader is built."""
        names = list(emacs_libs)
        self.emacs_libs.extend(names)
        return [LibrarySpec(name) for name in names]

    def add_lib(self, name: str, type=None, priority=None) -> LibrarySpec:
        """Load one more library, after everything already listed."""
        spec = LibrarySpec(name, type, priority)
        self.extra_libs.append(spec)
        return spec

    @property
    def library_specs(self) -> List[LibrarySpec]:
        """lib_data first, then emacs_libs, then the needed/requested lists."""
        return self.lib_data + [LibrarySpec(n) for n in self.emacs_libs] + self.extra_libs

    # -----------------------
    # Loader fragment
    # -----------------------
    def set_up_ec_lib_loader(self) -> str:
        specs = self.library_specs
        key = loader_cache_key(specs, self.config, self.home,
                               self.default_priority, self.probe_needed_libs)
        if self._loader_cache is not None and self._loader_cache[0] == key:
            return self._loader_cache[1]

        fragment = build_loader(
            specs, self.config,
            home=self.home,
            detector=LibraryDetector(self.config, self.runner),
            default_priority=self.default_priority,
            probe_needed_libs=self.probe_needed_libs,
        )
        logger.debug("ec_lib_loader: %s", fragment)
        self._loader_cache = (key, fragment)
        return fragment

    @property
    def ec_lib_loader(self) -> str:
        return self.set_up_ec_lib_loader()

    def detect_lib(self, name: str) -> bool:
        """Is the library loadable, given everything the loader already loads?"""
        return LibraryDetector(self.config, self.runner).detect_lib(name, self.ec_lib_loader)

    # -----------------------
    # Running elisp
    # -----------------------
    def command_for(self, body_tail: str, output_director: Optional[str] = None) -> str:
        return compose_command(self.config, self.ec_lib_loader, body_tail, output_director)

    def _run(self, cmd: str) -> str:
        return run_clean(cmd, self.runner)

    def eval_elisp(self, elisp: str, output_director: Optional[str] = None) -> str:
        """Run a chunk of elisp after loading the init files and libraries.

        Returns the output with STDOUT and STDERR intermixed, unless some
        other output director is set. Both 'message' and 'print' produce
        output.
        """
        return self._run(self.command_for(eval_directive(elisp), output_director))

    def eval_elisp_skip_err(self, elisp: str) -> str:
        """Same as eval_elisp, but only STDOUT comes back."""
        return self.eval_elisp(elisp, STDOUT_ONLY)

    def get_variable(self, varname: str, output_director: Optional[str] = None) -> str:
        """Value of an emacs variable, as emacs' 'print' renders it. The
        load-path, say, comes back as ("/home/grunt/lib" "/usr/lib/emacs/site-lisp")."""
        return self.eval_elisp(f"(print {varname})", output_director or STDOUT_ONLY)

    def eval_function(self, funcname: str, *args: str, output_director: Optional[str] = None) -> str:
        """Call an emacs function and return what 'print' makes of the result.
        args are elisp expressions, passed through as written."""
        call = " ".join((funcname,) + args)
        return self.eval_elisp(f"(print ({call}))", output_director or STDOUT_ONLY)

    def get_load_path(self) -> List[str]:
        elisp = '(message (mapconcat (quote identity) load-path "\\n"))'
        output = self.eval_elisp(elisp)
        return [line for line in output.split("\n") if line]

    def run_elisp_on_file(self, filename: str, elisp: str, line: Optional[int] = None,
                          output_director: Optional[str] = None) -> str:
        """Visit filename, run elisp on the buffer, then save it."""
        hook = self.config.effective_before_hook
        # GNU Emacs 21 insists on a splash screen otherwise
        if self.emacs_major_version == "21" and self.emacs_type == GNU_EMACS:
            hook = f"{hook} --no-splash".strip()
        hook = f"{hook} --file='{filename}'".strip()

        if line is not None:
            elisp = f"(progn (goto-char (point-min)) (forward-line {int(line) - 1}) {elisp})"
        tail = f"{eval_directive(elisp)} -f save-buffer"

        cmd = compose_command(self.config, self.ec_lib_loader, tail, output_director, before_hook=hook)
        return self._run(cmd)

    # -----------------------
    # Library lookups
    # -----------------------
    def elisp_file_from_library_name_if_in_loadpath(self, library: str) -> Optional[str]:
        elisp = f'(progn (setq codefile (locate-library "{library}")) (message codefile))'
        output = self.eval_elisp(elisp)
        lines = output.split("\n")
        last_line = lines[-1].strip() if lines else ""
        if last_line and os.path.exists(last_line):
            logger.debug("%s is associated with %s", last_line, library)
            return last_line
        logger.debug("no file name found for lib: %s", library)
        return None

    def generate_elisp_to_load_library(self, name: str) -> str:
        """Elisp that loads the library and puts its directory on the load-path.
        name is either a .el file or a library name to look up."""
        if name.endswith(".el"):
            return elisp_to_load_file(name)
        elisp_file = self.elisp_file_from_library_name_if_in_loadpath(name)
        if not elisp_file:
            raise LibraryNotFoundError(f"Could not determine the file for the named library: {name}")
        return elisp_to_load_file(elisp_file)
