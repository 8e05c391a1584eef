# argparser.py
import argparse
import os
import commands

def build_parser():
    parser = argparse.ArgumentParser(prog="emacs-run",
                                     description="Run emacs as a batch lisp interpreter")

    parser.add_argument("--emacs-path", default=os.environ.get("EMACS_RUN_EMACS", "emacs"),
                        help="emacs binary to run (default: $EMACS_RUN_EMACS or 'emacs')")
    parser.add_argument("--lib", action="append", default=[], metavar="NAME",
                        help="library or elisp file to load if it can be found")
    parser.add_argument("--need-lib", action="append", default=[], metavar="NAME",
                        help="library that must load (looked up in the load-path)")
    parser.add_argument("--need-file", action="append", default=[], metavar="PATH",
                        help="elisp file that must exist")
    parser.add_argument("--no-inits", action="store_true",
                        help="skip every init file (emacs -Q)")
    parser.add_argument("--no-user-init", action="store_true", help="skip ~/.emacs")
    parser.add_argument("--no-site-init", action="store_true", help="skip site-start")
    parser.add_argument("--no-default-init", action="store_true", help="skip default.el")
    parser.add_argument("--before-hook", default="",
                        help="options inserted right after --batch, e.g. --multibyte")
    parser.add_argument("--output", choices=sorted(commands.OUTPUT_CHOICES),
                        help="merge: stdout and stderr together; stdout: drop stderr")
    stderr = parser.add_mutually_exclusive_group()
    stderr.add_argument("--stderr-log", metavar="FILE",
                        help="append stderr to FILE instead of capturing it")
    stderr.add_argument("--stderr-file", metavar="FILE",
                        help="write stderr to FILE, replacing what was there")
    parser.add_argument("--home", default=None,
                        help="directory to look for the user's init file in")
    parser.add_argument("--eager", action="store_true",
                        help="check needed libraries before running anything")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="log the emacs command lines")

    # no subcommand -> interactive prompt
    parser.set_defaults(func=None, script=None)
    subs = parser.add_subparsers(dest="command")

    subs.add_parser("version", help="show emacs type and version").set_defaults(func=commands.version_command)

    ev = subs.add_parser("eval", help="evaluate elisp code")
    ev.add_argument("code")
    ev.set_defaults(func=commands.eval_command)

    var = subs.add_parser("var", help="print the value of a variable")
    var.add_argument("name")
    var.set_defaults(func=commands.variable_command)

    func = subs.add_parser("func", help="call a function and print the result")
    func.add_argument("name")
    func.add_argument("args", nargs="*", help="elisp expressions passed as arguments")
    func.set_defaults(func=commands.function_command)

    subs.add_parser("load-path", help="list the load-path").set_defaults(func=commands.load_path_command)

    on_file = subs.add_parser("on-file", help="run elisp on a file and save it")
    on_file.add_argument("path")
    on_file.add_argument("code")
    on_file.add_argument("--line", type=int, default=None)
    on_file.set_defaults(func=commands.on_file_command)

    locate = subs.add_parser("locate", help="find the file behind a library name")
    locate.add_argument("library")
    locate.set_defaults(func=commands.locate_command)

    subs.add_parser("loader", help="show the generated library loading options").set_defaults(
        func=commands.loader_command)

    repl = subs.add_parser("repl", help="interactive elisp prompt (or run a script of expressions)")
    repl.add_argument("script", nargs="?")
    repl.set_defaults(func=None)

    return parser
