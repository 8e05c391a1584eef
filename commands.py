#!/usr/bin/env python3
# commands.py - subcommands for emacs-run
# Each function accepts the argparse namespace and returns an exit status.

import sys

from emacs_run import EmacsRun
from invocation import (MERGE_STREAMS, OUTPUT_DIRECTORS, STDOUT_ONLY,
                        stderr_append_to_file, stderr_to_file)
from lib_loader import LibrarySpec, LibType, Priority

OUTPUT_CHOICES = OUTPUT_DIRECTORS

# -----------------------
# Simple helpers
# -----------------------
def _print(msg=""):
    # plain output, no colors
    print(msg)

def output_director(args):
    """Director picked on the command line, or None for the defaults."""
    if getattr(args, "stderr_log", None):
        return stderr_append_to_file(args.stderr_log)
    if getattr(args, "stderr_file", None):
        return stderr_to_file(args.stderr_file)
    output = getattr(args, "output", None)
    return OUTPUT_DIRECTORS[output] if output else None

def build_runner(args, runner=None):
    lib_data = [LibrarySpec(name) for name in args.lib]
    lib_data += [LibrarySpec(name, LibType.LIB, Priority.NEEDED) for name in args.need_lib]
    lib_data += [LibrarySpec(name, LibType.FILE, Priority.NEEDED) for name in args.need_file]

    kwargs = {}
    if runner is not None:
        kwargs["runner"] = runner
    return EmacsRun(
        args.emacs_path,
        lib_data=lib_data,
        load_no_inits=args.no_inits,
        load_emacs_init=not args.no_user_init,
        load_site_init=not args.no_site_init,
        load_default_init=not args.no_default_init,
        before_hook=args.before_hook,
        home=args.home,
        probe_needed_libs=args.eager,
        **kwargs,
    )

# -----------------------
# Subcommands
# -----------------------
def version_command(args, er):
    info = er.version_info
    if not info.known:
        _print(f"{er.emacs_path}: {info.emacs_type}")
        return 1
    _print(f"{info.emacs_type} {info.version} (major version {info.major_version})")
    return 0

def eval_command(args, er):
    _print(er.eval_elisp(args.code, output_director(args)))
    return 0

def variable_command(args, er):
    _print(er.get_variable(args.name, output_director(args)))
    return 0

def function_command(args, er):
    _print(er.eval_function(args.name, *args.args, output_director=output_director(args)))
    return 0

def load_path_command(args, er):
    for path in er.get_load_path():
        _print(path)
    return 0

def on_file_command(args, er):
    out = er.run_elisp_on_file(args.path, args.code, line=args.line,
                               output_director=output_director(args))
    if out:
        _print(out)
    return 0

def locate_command(args, er):
    path = er.elisp_file_from_library_name_if_in_loadpath(args.library)
    if path is None:
        print(f"locate: {args.library}: not found in load-path", file=sys.stderr)
        return 1
    _print(path)
    return 0

def loader_command(args, er):
    _print(er.ec_lib_loader)
    return 0

def describe_director(director):
    if director == MERGE_STREAMS:
        return "merge"
    if director == STDOUT_ONLY:
        return "stdout"
    return director
