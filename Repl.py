#!/usr/bin/env python3
# Repl.py - emacs-run entry point: one-shot subcommands, elisp prompt, script mode
import glob
import logging
import os
import sys

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from prompt_toolkit.completion import Completer, Completion

import argparser
import commands
from invocation import OUTPUT_DIRECTORS, stderr_append_to_file
from lib_loader import EmacsRunError, Priority

# ------------------------------------------------------------
# Globals & integration
# ------------------------------------------------------------
parser = argparser.build_parser()

# script mode flag -> when True, don't echo banners
SCRIPT_MODE = False

# Meta commands (keep in sync with process_line)
_META = {
    ":var", ":func", ":load-path", ":lib", ":need", ":loader",
    ":version", ":output", ":help", ":quit",
}

_HELP = """\
:var NAME          value of an emacs variable
:func NAME [ARG..] call a function, print the result
:load-path         show the load-path
:lib NAME          load a library/file from now on, if it can be found
:need NAME         same, but it has to be there
:loader            show the options used to load libraries
:version           emacs type and version
:output [merge|stdout|FILE]  where stderr goes
:quit              leave
anything else is evaluated as elisp"""

session = None

def prompt(er):
    return f"elisp[{er.emacs_major_version or '?'}]> "

def history_path():
    return os.environ.get("EMACS_RUN_HISTORY", os.path.expanduser("~/.emacs_run_history"))

class ElispCompleter(Completer):
    def __init__(self, meta: set):
        self.meta = meta

    def get_completions(self, document, complete_event):
        word_before_cursor = document.get_word_before_cursor(WORD=True)
        word_len = len(word_before_cursor)
        text = document.text_before_cursor.lstrip()

        # 1. Meta commands at the start of the line
        if text == word_before_cursor and word_before_cursor.startswith(":"):
            for name in sorted(self.meta):
                if name.startswith(word_before_cursor):
                    yield Completion(name, -word_len)
            return

        # 2. File paths for :lib / :need
        if word_before_cursor and text.split()[0] in (":lib", ":need"):
            for path in sorted(glob.glob(os.path.expanduser(word_before_cursor) + "*")):
                display = path + os.sep if os.path.isdir(path) else path
                yield Completion(display, -word_len)

# -----------------------
# Line processor
# -----------------------
class ReplState:
    """What the prompt remembers between lines."""

    def __init__(self, er, director=None):
        self.er = er
        self.director = director

def set_output(state, arg):
    if not arg:
        print(f"output: {commands.describe_director(state.director) if state.director else 'default'}")
        return
    state.director = OUTPUT_DIRECTORS.get(arg) or stderr_append_to_file(arg)

def process_line(line: str, state) -> bool:
    """Handle one line. Returns False when the user asked to quit."""
    line = line.strip()
    if not line or line.startswith(";"):
        return True
    er = state.er

    if not line.startswith(":"):
        print(er.eval_elisp(line, state.director))
        return True

    cmd, _, rest = line.partition(" ")
    rest = rest.strip()
    if cmd == ":quit":
        return False
    elif cmd == ":help":
        print(_HELP)
    elif cmd == ":var" and rest:
        print(er.get_variable(rest, state.director))
    elif cmd == ":func" and rest:
        name, *args = rest.split()
        print(er.eval_function(name, *args, output_director=state.director))
    elif cmd == ":load-path":
        for path in er.get_load_path():
            print(path)
    elif cmd == ":lib" and rest:
        er.add_lib(rest)
    elif cmd == ":need" and rest:
        er.add_lib(rest, priority=Priority.NEEDED)
    elif cmd == ":loader":
        print(er.ec_lib_loader)
    elif cmd == ":version":
        info = er.version_info
        print(f"{info.emacs_type} {info.version}".strip())
    elif cmd == ":output":
        set_output(state, rest)
    else:
        print(f"unknown command: {line} (try :help)")
    return True

def run_line(line: str, state) -> bool:
    try:
        return process_line(line, state)
    except EmacsRunError as e:
        print(f"error: {e}", file=sys.stderr)
        return True

# -----------------------
# Script mode runner
# -----------------------
def run_script(path: str, state):
    global SCRIPT_MODE
    SCRIPT_MODE = True
    if not os.path.exists(path):
        print(f"Script not found: {path}", file=sys.stderr)
        return 1
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if not run_line(line.rstrip("\n"), state):
                break
    return 0

# -----------------------
# Main loop
# -----------------------
def interact(state):
    global session
    session = PromptSession(history=FileHistory(history_path()), completer=ElispCompleter(_META))
    if not SCRIPT_MODE:
        print(f"{state.er.emacs_type} {state.er.emacs_version} -- :help for commands")

    while True:
        try:
            line = session.prompt(prompt(state.er))
        except KeyboardInterrupt:
            print()
            continue
        except EOFError:
            print()
            break
        if not run_line(line, state):
            break
    return 0

def main(argv=None):
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(name)s: %(levelname)s: %(message)s")
    try:
        er = commands.build_runner(args)
        if args.func is not None:
            return args.func(args, er)
        state = ReplState(er, commands.output_director(args))
        if getattr(args, "script", None):
            return run_script(args.script, state)
        return interact(state)
    except EmacsRunError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

if __name__ == "__main__":
    sys.exit(main())
