import os
import re
import shutil
import tempfile
import unittest

from init_resolver import LibraryDetector
from invocation import InvocationConfig, compose_command, load_directive
from lib_loader import (GENERATORS, LibrarySpec, LibType, LibraryNotFoundError, Priority,
                        as_spec, build_loader, elisp_to_load_file, guess_type_from_name,
                        loader_cache_key, resolve_spec)

_DIRECTIVE = re.compile(r'-l "([^"]*)"|--eval "((?:[^"\\]|\\.)*)"')
_ADDED_DIR = re.compile(r'expand-file-name \\"(.*?)/\\"')


def write(path, text=";; elisp\n"):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path


class FakeEmacs:
    """Stands in for the emacs binary: walks the -l / --eval directives of a
    command in order, keeping its own load-path, and complains like emacs
    when a library can't be found."""

    def __init__(self, load_path=()):
        self.load_path = list(load_path)
        self.commands = []
        self.resolved = []

    def __call__(self, cmd):
        self.commands.append(cmd)
        load_path = list(self.load_path)
        self.resolved = []
        for m in _DIRECTIVE.finditer(cmd):
            lib, elisp = m.group(1), m.group(2)
            if elisp is not None:
                for directory in _ADDED_DIR.findall(elisp):
                    load_path.insert(0, directory)
                continue
            path = self.locate(lib, load_path)
            if path is None:
                return f"Cannot open load file: No such file or directory, {lib}\n"
            self.resolved.append((lib, path))
        return ""

    @staticmethod
    def locate(lib, load_path):
        if os.path.isabs(lib):
            return lib if os.path.exists(lib) else None
        for directory in load_path:
            candidate = os.path.join(directory, lib + ".el")
            if os.path.exists(candidate):
                return candidate
        return None


class RecordingDetector:
    def __init__(self, present=(), site_init=False):
        self.present = set(present)
        self.site_init = site_init
        self.calls = []

    def detect_site_init(self):
        self.calls.append(("site-start", ""))
        return self.site_init

    def detect_lib(self, name, fragment=""):
        self.calls.append((name, fragment))
        return name in self.present


class GuessTypeTest(unittest.TestCase):
    def test_plain_name_is_lib(self):
        self.assertIs(guess_type_from_name("dired"), LibType.LIB)

    def test_path_is_file(self):
        self.assertIs(guess_type_from_name("lisp/dired"), LibType.FILE)

    def test_extension_is_file(self):
        self.assertIs(guess_type_from_name("dired.el"), LibType.FILE)
        self.assertIs(guess_type_from_name("dired.elc"), LibType.FILE)

    def test_other_extension_is_lib(self):
        self.assertIs(guess_type_from_name("cl-lib.elisp"), LibType.LIB)


class ResolveSpecTest(unittest.TestCase):
    def test_fills_missing_fields(self):
        spec = resolve_spec(LibrarySpec("/tmp/x.el"), Priority.NEEDED)
        self.assertEqual(spec, LibrarySpec("/tmp/x.el", LibType.FILE, Priority.NEEDED))

    def test_keeps_given_fields(self):
        spec = resolve_spec(LibrarySpec("odd.el", "lib", "needed"))
        self.assertEqual((spec.type, spec.priority), (LibType.LIB, Priority.NEEDED))

    def test_strings_coerced(self):
        self.assertIs(LibrarySpec("x", "file", "requested").type, LibType.FILE)
        with self.assertRaises(ValueError):
            LibrarySpec("x", "directory")

    def test_as_spec_pairs(self):
        self.assertEqual(as_spec(("dired", {"type": "lib", "priority": "needed"})),
                         LibrarySpec("dired", LibType.LIB, Priority.NEEDED))
        self.assertEqual(as_spec("dired"), LibrarySpec("dired"))

    def test_dispatch_table_complete(self):
        self.assertEqual(set(GENERATORS), {(t, p) for t in LibType for p in Priority})


class ElispToLoadFileTest(unittest.TestCase):
    def test_adds_directory_then_loads(self):
        elisp = elisp_to_load_file("/usr/share/elisp/foo.el")
        self.assertEqual(elisp,
                         "(progn (add-to-list 'load-path (expand-file-name \"/usr/share/elisp/\")) "
                         "(load-file \"/usr/share/elisp/foo.el\"))")

    def test_relative_path_made_absolute(self):
        elisp = elisp_to_load_file("foo.el")
        self.assertIn(os.path.join(os.getcwd(), "foo.el"), elisp)


class BuildLoaderTest(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp(prefix="emacs_run_")
        self.home = os.path.join(self.tmp, "home")
        os.makedirs(self.home)
        self.config = InvocationConfig()

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def build(self, specs, detector, config=None, **kw):
        return build_loader(specs, config or self.config, home=self.home, detector=detector, **kw)

    def test_empty(self):
        detector = RecordingDetector()
        self.assertEqual(self.build([], detector), "")
        self.assertEqual([name for name, _ in detector.calls], ["site-start", "default"])

    def test_init_order(self):
        dot_emacs = write(os.path.join(self.home, ".emacs"))
        detector = RecordingDetector(present={"default"}, site_init=True)
        fragment = self.build([], detector)
        self.assertEqual(fragment, f'-l "site-start" -l "{dot_emacs}" -l "default"')
        # default is probed with the site and user inits in place
        self.assertEqual(detector.calls[-1], ("default", f'-l "site-start" -l "{dot_emacs}"'))

    def test_init_flags(self):
        write(os.path.join(self.home, ".emacs"))
        config = InvocationConfig(load_emacs_init=False, load_site_init=False, load_default_init=False)
        detector = RecordingDetector(present={"default"}, site_init=True)
        self.assertEqual(self.build([], detector, config), "")
        self.assertEqual(detector.calls, [])

    def test_no_inits_skips_everything(self):
        detector = RecordingDetector(present={"dired"}, site_init=True)
        write(os.path.join(self.home, ".emacs"))
        specs = [LibrarySpec("dired", "lib", "needed"), write(os.path.join(self.tmp, "a.el"))]
        fragment = self.build(specs, detector, InvocationConfig(load_no_inits=True))
        self.assertEqual(fragment, "")
        self.assertEqual(detector.calls, [])

    def test_lib_needed_not_probed(self):
        detector = RecordingDetector()
        config = InvocationConfig(load_site_init=False, load_default_init=False)
        fragment = self.build([LibrarySpec("missing", "lib", "needed")], detector, config)
        self.assertEqual(fragment, '-l "missing"')
        self.assertEqual(detector.calls, [])

    def test_lib_needed_eager(self):
        config = InvocationConfig(load_site_init=False, load_default_init=False)
        with self.assertRaises(LibraryNotFoundError):
            self.build([LibrarySpec("missing", "lib", "needed")], RecordingDetector(), config,
                       probe_needed_libs=True)
        fragment = self.build([LibrarySpec("dired", "lib", "needed")], RecordingDetector({"dired"}),
                              config, probe_needed_libs=True)
        self.assertEqual(fragment, '-l "dired"')

    def test_requested_lib_skipped_when_absent(self):
        config = InvocationConfig(load_site_init=False, load_default_init=False)
        fragment = self.build(["dired", "nope", "cl-lib"], RecordingDetector({"dired", "cl-lib"}), config)
        self.assertEqual(fragment, '-l "dired" -l "cl-lib"')

    def test_requested_file_missing(self):
        config = InvocationConfig(load_site_init=False, load_default_init=False)
        missing = os.path.join(self.tmp, "missing.el")
        fragment = self.build([LibrarySpec(missing, "file", "requested")], RecordingDetector(), config)
        self.assertEqual(fragment, "")

    def test_requested_file_present(self):
        config = InvocationConfig(load_site_init=False, load_default_init=False)
        path = write(os.path.join(self.tmp, "lib", "mine.el"))
        fragment = self.build([path], RecordingDetector(), config)
        self.assertTrue(fragment.startswith('--eval "(progn (add-to-list'))
        self.assertIn(f'(load-file \\"{path}\\")', fragment)

    def test_tilde_expands_to_home(self):
        config = InvocationConfig(load_site_init=False, load_default_init=False)
        path = write(os.path.join(self.home, "lib", "mine.el"))
        fragment = self.build(["~/lib/mine.el"], RecordingDetector(), config)
        self.assertIn(path, fragment)

    def test_needed_file_missing_fails_fast(self):
        config = InvocationConfig(load_site_init=False, load_default_init=False)
        detector = RecordingDetector({"first", "later"})
        missing = os.path.join(self.tmp, "missing.el")
        specs = ["first", LibrarySpec(missing, "file", "needed"), "later"]
        with self.assertRaises(LibraryNotFoundError) as cm:
            self.build(specs, detector, config)
        self.assertIn(missing, str(cm.exception))
        self.assertEqual([name for name, _ in detector.calls], ["first"])

    def test_default_priority(self):
        config = InvocationConfig(load_site_init=False, load_default_init=False)
        missing = os.path.join(self.tmp, "missing.el")
        with self.assertRaises(LibraryNotFoundError):
            self.build([missing], RecordingDetector(), config, default_priority="needed")

    def test_probes_see_earlier_directives(self):
        config = InvocationConfig(load_site_init=False, load_default_init=False)
        detector = RecordingDetector({"a", "b"})
        self.build(["a", "b"], detector, config)
        self.assertEqual(detector.calls, [("a", ""), ("b", '-l "a"')])

    def test_idempotent(self):
        write(os.path.join(self.home, ".emacs.d", "init.el"))
        path = write(os.path.join(self.tmp, "x.el"))
        specs = ["dired", path, "nope"]
        detector = RecordingDetector({"dired", "default"}, site_init=True)
        self.assertEqual(self.build(specs, detector), self.build(specs, detector))


class LoadPathShadowingTest(unittest.TestCase):
    """Libraries are probed against the load-path as left by the ones before."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp(prefix="emacs_run_")
        self.dir_a = os.path.join(self.tmp, "a")
        self.dir_b = os.path.join(self.tmp, "b")
        write(os.path.join(self.dir_a, "foo.el"))
        write(os.path.join(self.dir_b, "foo.el"))
        write(os.path.join(self.dir_a, "bar.el"))
        self.setup_file = write(os.path.join(self.dir_a, "setup.el"))
        self.emacs = FakeEmacs(load_path=[self.dir_b])
        self.config = InvocationConfig(load_site_init=False, load_default_init=False)

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def build(self, specs):
        return build_loader(specs, self.config, home=None,
                            detector=LibraryDetector(self.config, self.emacs))

    def run_with(self, fragment, lib):
        self.emacs(compose_command(self.config, fragment, load_directive(lib)))
        return dict(self.emacs.resolved)[lib]

    def test_lib_only_reachable_after_earlier_load(self):
        self.assertEqual(self.build(["bar"]), "")
        fragment = self.build([self.setup_file, "bar"])
        self.assertTrue(fragment.endswith('-l "bar"'))

    def test_earlier_load_shadows_later_lookup(self):
        plain = self.build(["foo"])
        self.assertEqual(self.run_with(plain, "foo"), os.path.join(self.dir_b, "foo.el"))

        shadowed = self.build([self.setup_file, "foo"])
        self.assertEqual(self.run_with(shadowed, "foo"), os.path.join(self.dir_a, "foo.el"))


class CacheKeyTest(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp(prefix="emacs_run_")

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_stable(self):
        config = InvocationConfig()
        self.assertEqual(loader_cache_key(["dired"], config, self.tmp),
                         loader_cache_key([LibrarySpec("dired")], config, self.tmp))

    def test_changes_with_specs_and_flags(self):
        config = InvocationConfig()
        key = loader_cache_key(["dired"], config, self.tmp)
        self.assertNotEqual(key, loader_cache_key(["dired", "cl-lib"], config, self.tmp))
        self.assertNotEqual(key, loader_cache_key(["dired"], config.with_changes(load_site_init=False), self.tmp))

    def test_output_director_irrelevant(self):
        config = InvocationConfig()
        self.assertEqual(loader_cache_key([], config, self.tmp),
                         loader_cache_key([], config.with_changes(output_director="2>/dev/null"), self.tmp))

    def test_changes_when_file_appears(self):
        path = os.path.join(self.tmp, "late.el")
        config = InvocationConfig()
        before = loader_cache_key([path], config, self.tmp)
        write(path)
        self.assertNotEqual(before, loader_cache_key([path], config, self.tmp))

    def test_changes_when_init_appears(self):
        config = InvocationConfig()
        before = loader_cache_key([], config, self.tmp)
        write(os.path.join(self.tmp, ".emacs"))
        self.assertNotEqual(before, loader_cache_key([], config, self.tmp))


if __name__ == "__main__":
    unittest.main()
