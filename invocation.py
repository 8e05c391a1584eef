# invocation.py - building "emacs --batch ..." command lines
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

# Output directors are handed to the shell verbatim.
MERGE_STREAMS = "2>&1"
STDOUT_ONLY = "2>/dev/null"

# Minimal-startup option forced in when every init file is suppressed.
NO_INITS_FLAG = "-Q"

OUTPUT_DIRECTORS = {
    "merge": MERGE_STREAMS,
    "stdout": STDOUT_ONLY,
}


def stderr_to_file(path: str) -> str:
    return f"2>'{path}'"


def stderr_append_to_file(path: str) -> str:
    return f"2>>'{path}'"


def resolve_output_director(override: Optional[str], default: Optional[str] = None) -> str:
    """Per-call override first, then the object-level default, then merge."""
    if override:
        return override
    if default:
        return default
    return MERGE_STREAMS


def quote_elisp(elisp: str) -> str:
    """Add one backslash in front of every double quote.

    This is all the escaping done before code lands inside --eval "...";
    code holding a literal backslash-quote will not survive the shell.
    """
    return elisp.replace('"', '\\"')


def eval_directive(elisp: str) -> str:
    return f'--eval "{quote_elisp(elisp)}"'


def load_directive(name: str) -> str:
    return f'-l "{name}"'


@dataclass(frozen=True)
class InvocationConfig:
    emacs_path: str = "emacs"
    before_hook: str = ""
    output_director: Optional[str] = None
    load_emacs_init: bool = True
    load_site_init: bool = True
    load_default_init: bool = True
    load_no_inits: bool = False

    # load_no_inits overrides the three individual flags
    @property
    def use_emacs_init(self) -> bool:
        return self.load_emacs_init and not self.load_no_inits

    @property
    def use_site_init(self) -> bool:
        return self.load_site_init and not self.load_no_inits

    @property
    def use_default_init(self) -> bool:
        return self.load_default_init and not self.load_no_inits

    @property
    def effective_before_hook(self) -> str:
        hook = self.before_hook.strip()
        if self.load_no_inits and NO_INITS_FLAG not in hook.split():
            hook = f"{hook} {NO_INITS_FLAG}".strip()
        return hook

    def with_changes(self, **changes) -> "InvocationConfig":
        return replace(self, **changes)


def compose_command(config: InvocationConfig, loader_fragment: str = "", body_tail: str = "",
                    output_director: Optional[str] = None, before_hook: Optional[str] = None) -> str:
    """<emacs> --batch <before_hook> <loader_fragment> <body_tail> <director>

    Empty pieces are left out. before_hook replaces the config's effective
    hook when given (run_elisp_on_file adds --no-splash for old emacsen).
    """
    hook = config.effective_before_hook if before_hook is None else before_hook
    director = resolve_output_director(output_director, config.output_director)
    parts = [config.emacs_path, "--batch", hook, loader_fragment.strip(), body_tail.strip(), director]
    return " ".join(p for p in parts if p)
