"""
Static test-structure extractor for Go test sources.

Parses ``*_test.go`` files with the tree-sitter Go grammar and builds a tree
of test units per file:

  - top-level ``TestXxx`` functions become root units
  - ``t.Run(name, func(...) {...})`` calls become nested units, recursively
  - ``for _, v := range []T{...}`` loops around such calls expand the
    sub-test name once per literal element

Each unit carries the comment block immediately preceding it and a machine
name that matches the ``go test`` / JUnit naming convention
(``TestFoo/sub_name``).
"""

from __future__ import annotations

import logging
import os
import platform
import re
import sys
from dataclasses import dataclass, field

from tree_sitter_language_pack import get_parser

log = logging.getLogger("mkdocs.plugins.gotestdoc")

# Largest byte distance between a comment's end and the node it documents
MAX_GAP_SIZE = 10

TEST_PREFIX = "Test"
TEST_FILE_SUFFIX = "_test.go"
RUN_METHOD = "Run"

_SKIP_DIRS = frozenset({"vendor", "testdata"})
_WHITESPACE_RE = re.compile(r"\s")
_MODULE_RE = re.compile(r'^\s*module\s+"?([^\s"]+)"?', re.MULTILINE)
_GO_BUILD_RE = re.compile(r"^//go:build\s+(.+)$")
_BUILD_TOKEN_RE = re.compile(r"\s*(&&|\|\||!|\(|\)|[\w.]+)")
_GO_VERSION_TAG_RE = re.compile(r"^go1\.\d+$")

# GOOS and GOARCH values recognised in file name suffixes (go/build syslist)
KNOWN_OS = frozenset(
    "aix android darwin dragonfly freebsd hurd illumos ios js linux nacl netbsd "
    "openbsd plan9 solaris wasip1 windows zos".split()
)
KNOWN_ARCH = frozenset(
    "386 amd64 amd64p32 arm armbe arm64 arm64be loong64 mips mipsle mips64 "
    "mips64le mips64p32 mips64p32le ppc ppc64 ppc64le riscv riscv64 s390 s390x "
    "sparc sparc64 wasm".split()
)
_UNIX_OS = frozenset(
    "aix android darwin dragonfly freebsd hurd illumos ios linux netbsd openbsd solaris".split()
)
_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv6l": "arm",
    "armv7l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}
_GO_ESCAPE_RE = re.compile(
    r"\\(?:(?P<simple>[abfnrtv\\'\"])|(?P<oct>[0-7]{3})|x(?P<hex>[0-9a-fA-F]{2})"
    r"|u(?P<u4>[0-9a-fA-F]{4})|U(?P<u8>[0-9a-fA-F]{8}))"
)
_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
}

_STRING_TYPES = frozenset({"interpreted_string_literal", "raw_string_literal"})
_ELEMENT_WRAPPERS = frozenset({"literal_element", "element"})


# -- data model --


@dataclass
class TestUnit:
    __test__ = False

    name: str
    machine_name: str
    comment: str = ""
    subtests: list[TestUnit] = field(default_factory=list)


@dataclass
class TestSuite:
    __test__ = False

    package: str
    name: str
    comment: str = ""
    units: list[TestUnit] = field(default_factory=list)


@dataclass(frozen=True)
class LoopBinding:
    var: str
    values: tuple[str, ...] = ()


@dataclass(frozen=True)
class CommentGroup:
    text: str
    start: int
    end: int
    end_point: tuple[int, int] = (0, 0)


class SourceFile:
    """Bytes of one source file, read at most once, with row/column mapping."""

    def __init__(self, path, data=None):
        self.path = path
        self._data = data
        self._line_starts = None

    def read(self):
        if self._data is None:
            with open(self.path, "rb") as f:
                self._data = f.read()
        return self._data

    def offset(self, point):
        if self._line_starts is None:
            data = self.read()
            starts = [0]
            pos = data.find(b"\n")
            while pos != -1:
                starts.append(pos + 1)
                pos = data.find(b"\n", pos + 1)
            self._line_starts = starts
        row, column = point
        return self._line_starts[row] + column


def machine_name(name):
    return _WHITESPACE_RE.sub("_", name)


def _text(node):
    return node.text.decode("utf-8", errors="replace")


# -- Go literals --


def unquote_go_string(literal):
    """Decode a Go string literal (interpreted or raw) into its value.

    Raises ValueError when *literal* is not a valid Go string literal.
    """
    if len(literal) >= 2 and literal[0] == "`" and literal[-1] == "`":
        return literal[1:-1].replace("\r", "")
    if len(literal) < 2 or literal[0] != '"' or literal[-1] != '"':
        raise ValueError(f"not a string literal: {literal!r}")

    body = literal[1:-1]
    out = bytearray()
    pos = 0
    for m in _GO_ESCAPE_RE.finditer(body):
        chunk = body[pos : m.start()]
        if "\\" in chunk or '"' in chunk:
            raise ValueError(f"invalid escape in {literal!r}")
        out += chunk.encode("utf-8")
        if m.group("simple"):
            if m.group("simple") == "'":
                raise ValueError(f"invalid escape in {literal!r}")
            out += _SIMPLE_ESCAPES[m.group("simple")].encode("utf-8")
        elif m.group("oct"):
            value = int(m.group("oct"), 8)
            if value > 255:
                raise ValueError(f"octal escape out of range in {literal!r}")
            out.append(value)
        elif m.group("hex"):
            out.append(int(m.group("hex"), 16))
        else:
            code = int(m.group("u4") or m.group("u8"), 16)
            if code > 0x10FFFF or 0xD800 <= code <= 0xDFFF:
                raise ValueError(f"invalid code point in {literal!r}")
            out += chr(code).encode("utf-8")
        pos = m.end()
    tail = body[pos:]
    if "\\" in tail or '"' in tail:
        raise ValueError(f"invalid escape in {literal!r}")
    out += tail.encode("utf-8")
    return out.decode("utf-8", errors="replace")


def _literal_value(node):
    text = _text(node)
    if node.type in _STRING_TYPES:
        try:
            return unquote_go_string(text)
        except ValueError:
            return text
    return text


# -- Name Expander --


def expand_test_name(node, bindings=()):
    """Return every concrete name a sub-test name expression can produce.

    ``bindings`` is the ordered sequence of visible loop bindings, innermost
    last. The result is never empty: unsupported expressions come back as
    their source text.
    """
    if node.type in _STRING_TYPES:
        return [_literal_value(node)]

    if node.type == "binary_expression":
        op = node.child_by_field_name("operator")
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if op is not None and op.type == "+" and left is not None and right is not None:
            lefts = expand_test_name(left, bindings)
            rights = expand_test_name(right, bindings)
            return [l + r for l in lefts for r in rights]

    if node.type == "identifier":
        name = _text(node)
        for binding in reversed(bindings):
            if binding.var == name:
                if binding.values:
                    return list(binding.values)
                break
        return [name]

    return [_text(node)]


def extract_range_values(for_stmt):
    """Element values of the composite literal a range loop iterates.

    Returns None when the loop is not a ``range`` over a composite literal.
    """
    clause = _range_clause(for_stmt)
    if clause is None:
        return None
    collection = clause.child_by_field_name("right")
    if collection is None or collection.type != "composite_literal":
        return None

    values = []
    body = collection.child_by_field_name("body")
    if body is None:
        return values
    for elt in body.named_children:
        if elt.type == "comment":
            continue
        if elt.type in _ELEMENT_WRAPPERS and elt.named_child_count == 1:
            elt = elt.named_children[0]
        values.append(_literal_value(elt))
    return values


def _range_clause(for_stmt):
    for child in for_stmt.named_children:
        if child.type == "range_clause":
            return child
    return None


def _range_value_name(for_stmt):
    clause = _range_clause(for_stmt)
    left = clause.child_by_field_name("left") if clause is not None else None
    if left is None:
        return ""
    names = [n for n in left.named_children if n.type != "comment"]
    if len(names) < 2 or names[1].type != "identifier":
        return ""
    return _text(names[1])


# -- comment index --


def collect_comments(root, source_bytes):
    """Group the file's comments the way ``go/parser`` does.

    Comments on consecutive lines belong to one group; a blank line or code
    in between starts a new one. A comment trailing code on its line forms
    its own group.
    """
    nodes = []
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "comment":
            nodes.append(node)
            continue
        stack.extend(reversed(node.children))
    nodes.sort(key=lambda n: n.start_byte)

    groups = []
    current = []
    current_trailing = False
    for node in nodes:
        line_start = source_bytes.rfind(b"\n", 0, node.start_byte) + 1
        trailing = bool(source_bytes[line_start : node.start_byte].strip())
        if current:
            gap = source_bytes[current[-1].end_byte : node.start_byte]
            if trailing or current_trailing or gap.strip() or gap.count(b"\n") > 1:
                groups.append(_make_group(current, source_bytes))
                current = []
        if not current:
            current_trailing = trailing
        current.append(node)
    if current:
        groups.append(_make_group(current, source_bytes))
    return groups


def _make_group(nodes, source_bytes):
    start, last = nodes[0].start_byte, nodes[-1]
    return CommentGroup(
        text=source_bytes[start : last.end_byte].decode("utf-8", errors="replace"),
        start=start,
        end=last.end_byte,
        end_point=(last.end_point[0], last.end_point[1]),
    )


# -- Comment Binder --


def find_relative_comment(pos, comments, source):
    """Return the comment block ending right before byte offset *pos*.

    A block binds when it ends at most MAX_GAP_SIZE bytes before *pos* and
    the gap holds no more than one newline. Returns "" when nothing binds.
    """
    for group in comments:
        gap = pos - group.end
        if gap < 0 or gap > MAX_GAP_SIZE:
            continue
        if gap > 0:
            try:
                start = source.offset(group.end_point)
                between = source.read()[start:pos]
            except OSError as exc:
                log.warning("gotestdoc: cannot read %s: %s", source.path, exc)
                return ""
            if between.count(b"\n") > 1:
                log.debug(
                    "gotestdoc: %s: comment at byte %d separated by a blank line, not bound",
                    source.path,
                    group.start,
                )
                continue
        return group.text
    return ""


# -- Sub-test Collector --


def collect_subtests(body, comments, source, parent_name, bindings=()):
    """Discover the sub-tests registered inside a function body.

    Returns the units in declaration order, each with its own nested
    sub-tests already collected.
    """
    tests = []
    _collect(body, comments, source, parent_name, tuple(bindings), tests)
    return tests


def _collect(node, comments, source, parent_name, bindings, tests):
    if node.type == "for_statement":
        values = extract_range_values(node)
        if values is not None:
            loop_body = node.child_by_field_name("body")
            if loop_body is not None:
                scope = bindings + (LoopBinding(_range_value_name(node), tuple(values)),)
                _collect(loop_body, comments, source, parent_name, scope, tests)
            return

    if node.type == "call_expression":
        run_args = _run_call_args(node)
        if run_args is not None:
            name_expr, test_func = run_args
            if test_func.type == "func_literal":
                tests.extend(
                    _subtest_units(
                        node, name_expr, test_func, comments, source, parent_name, bindings
                    )
                )
            # a Run whose body is not a literal hides its sub-tests
            return

    for child in node.named_children:
        _collect(child, comments, source, parent_name, bindings, tests)


def _run_call_args(call):
    """Return the first two arguments of an ``x.Run(name, f, ...)`` call, else None."""
    fn = call.child_by_field_name("function")
    if fn is None or fn.type != "selector_expression":
        return None
    sel = fn.child_by_field_name("field")
    if sel is None or _text(sel) != RUN_METHOD:
        return None
    args = call.child_by_field_name("arguments")
    if args is None:
        return None
    params = [a for a in args.named_children if a.type != "comment"]
    if len(params) < 2:
        return None
    return params[0], params[1]


def _subtest_units(call, name_expr, test_func, comments, source, parent_name, bindings):
    comment = find_relative_comment(call.start_byte, comments, source)
    body = test_func.child_by_field_name("body")

    units = []
    for name in expand_test_name(name_expr, bindings):
        path = machine_name(f"{parent_name}/{name}")
        subtests = []
        if body is not None:
            subtests = collect_subtests(body, comments, source, path, bindings)
        units.append(TestUnit(name=name, machine_name=path, comment=comment, subtests=subtests))
    return units


# -- Suite Assembler --


def parse_go(data):
    return get_parser("go").parse(data)


def parse_test_file(filepath, package, tags=None):
    """Build the TestSuite for one test file, or None when it has no tests."""
    if tags is None:
        tags = build_tags()
    if not matches_platform(filepath, tags):
        log.debug("gotestdoc: %s excluded by file name suffix", filepath)
        return None
    source = SourceFile(filepath)
    try:
        data = source.read()
    except OSError as exc:
        log.warning("gotestdoc: cannot read %s: %s", filepath, exc)
        return None
    try:
        buildable = is_buildable(data, tags)
    except ValueError as exc:
        log.warning("gotestdoc: %s: bad build constraint: %s", filepath, exc)
        return None
    if not buildable:
        log.debug("gotestdoc: %s excluded by build constraint", filepath)
        return None

    tree = parse_go(data)
    root = tree.root_node
    if root.has_error:
        log.warning("gotestdoc: parse error %s", filepath)
        return None

    comments = collect_comments(root, data)
    units = []
    for decl in root.named_children:
        if decl.type != "function_declaration":
            continue
        name_node = decl.child_by_field_name("name")
        body = decl.child_by_field_name("body")
        if name_node is None or body is None:
            continue
        name = _text(name_node)
        if not name.startswith(TEST_PREFIX):
            continue
        units.append(
            TestUnit(
                name=name,
                machine_name=name,
                comment=find_relative_comment(decl.start_byte, comments, source),
                subtests=collect_subtests(body, comments, source, name),
            )
        )

    if not units:
        return None
    return TestSuite(package=package, name=os.path.basename(filepath), units=units)


def find_module(source_dir):
    """Locate the enclosing Go module: returns (module root, module path)."""
    d = os.path.abspath(source_dir)
    while True:
        gomod = os.path.join(d, "go.mod")
        if os.path.isfile(gomod):
            with open(gomod, "r", encoding="utf-8", errors="replace") as f:
                m = _MODULE_RE.search(f.read())
            if not m:
                raise RuntimeError(f"no module directive in {gomod}")
            return d, m.group(1)
        parent = os.path.dirname(d)
        if parent == d:
            raise RuntimeError(f"{source_dir} is not inside a Go module (no go.mod found)")
        d = parent


def package_path(module_root, module_path, pkg_dir):
    """Import path of the package in *pkg_dir*.

    External test packages (``package foo_test``) share the directory's
    import path, so the directory alone decides it.
    """
    rel = os.path.relpath(pkg_dir, module_root)
    if rel == os.curdir:
        return module_path
    return f"{module_path}/{rel.replace(os.sep, '/')}"


# -- build constraints --


def build_tags(extra=()):
    """Tags satisfied by a default ``go test`` on this host, plus *extra*."""
    goos = sys.platform
    if goos.startswith("linux"):
        goos = "linux"
    elif goos in ("win32", "cygwin", "msys"):
        goos = "windows"
    elif goos.startswith("freebsd"):
        goos = "freebsd"
    elif goos.startswith("sunos"):
        goos = "solaris"
    goarch = _ARCH_ALIASES.get(platform.machine().lower(), platform.machine().lower())

    tags = {goos, goarch, "gc"}
    if goos in _UNIX_OS:
        tags.add("unix")
    tags.update(t.strip() for t in extra if t.strip())
    return frozenset(tags)


class _ConstraintParser:
    """Recursive-descent evaluator for ``//go:build`` expressions."""

    def __init__(self, expr, tags):
        self.expr = expr
        self.tags = tags
        self.tokens = []
        self.pos = 0
        text = expr.strip()
        i = 0
        while i < len(text):
            m = _BUILD_TOKEN_RE.match(text, i)
            if not m:
                raise ValueError(f"invalid build constraint: {expr!r}")
            self.tokens.append(m.group(1))
            i = m.end()

    def evaluate(self):
        value = self._or()
        if self.pos != len(self.tokens):
            raise ValueError(f"unexpected {self.tokens[self.pos]!r} in {self.expr!r}")
        return value

    def _peek(self):
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self):
        tok = self._peek()
        if tok is None:
            raise ValueError(f"unexpected end of {self.expr!r}")
        self.pos += 1
        return tok

    def _or(self):
        value = self._and()
        while self._peek() == "||":
            self.pos += 1
            rhs = self._and()
            value = value or rhs
        return value

    def _and(self):
        value = self._not()
        while self._peek() == "&&":
            self.pos += 1
            rhs = self._not()
            value = value and rhs
        return value

    def _not(self):
        tok = self._next()
        if tok == "!":
            return not self._not()
        if tok == "(":
            value = self._or()
            if self._next() != ")":
                raise ValueError(f"missing ')' in {self.expr!r}")
            return value
        if tok in ("&&", "||", ")"):
            raise ValueError(f"unexpected {tok!r} in {self.expr!r}")
        return tok in self.tags or bool(_GO_VERSION_TAG_RE.match(tok))


def eval_constraint(expr, tags):
    """Evaluate a ``//go:build`` expression; raises ValueError when malformed."""
    return _ConstraintParser(expr, tags).evaluate()


def is_buildable(data, tags=None):
    """False when the file's ``//go:build`` line is not satisfied by *tags*."""
    if tags is None:
        tags = build_tags()
    for raw in data.split(b"\n"):
        s = raw.decode("utf-8", errors="replace").strip()
        if s.startswith("package "):
            break
        m = _GO_BUILD_RE.match(s)
        if m:
            return eval_constraint(m.group(1), tags)
    return True


def matches_platform(filename, tags=None):
    """Apply the ``_GOOS``, ``_GOARCH`` and ``_GOOS_GOARCH`` file name suffixes."""
    if tags is None:
        tags = build_tags()
    stem = os.path.basename(filename)
    if stem.endswith(".go"):
        stem = stem[:-3]
    stem = stem.removesuffix("_test")
    # the part before the first underscore never counts as a suffix
    parts = stem.split("_")[1:]
    if len(parts) >= 2 and parts[-2] in KNOWN_OS and parts[-1] in KNOWN_ARCH:
        return parts[-2] in tags and parts[-1] in tags
    if parts and parts[-1] in KNOWN_OS:
        return parts[-1] in tags
    if parts and parts[-1] in KNOWN_ARCH:
        return parts[-1] in tags
    return True


def discover_test_packages(source_dir):
    """Yield (directory, [test files]) for every package below *source_dir*."""
    root = os.path.abspath(source_dir)
    for dirpath, dirnames, fnames in os.walk(root):
        dirnames[:] = sorted(
            d
            for d in dirnames
            if d not in _SKIP_DIRS
            and not d.startswith((".", "_"))
            and not os.path.isfile(os.path.join(dirpath, d, "go.mod"))
        )
        files = [
            os.path.join(dirpath, fn)
            for fn in sorted(fnames)
            if fn.endswith(TEST_FILE_SUFFIX) and not fn.startswith((".", "_"))
        ]
        if files:
            yield dirpath, files


def parse_test_suites(source_dir, tags=()):
    """Collect the TestSuites of every Go test file below *source_dir*.

    Raises RuntimeError when *source_dir* is missing or not inside a Go
    module. Unreadable or unparsable files are logged and skipped. *tags*
    adds build tags to the host defaults, as ``go test -tags`` does.
    """
    if not os.path.isdir(source_dir):
        raise RuntimeError(f"source directory not found: {source_dir}")
    module_root, module_path = find_module(source_dir)
    active_tags = build_tags(tags)

    suites = []
    nfiles = 0
    for pkg_dir, files in discover_test_packages(source_dir):
        package = package_path(module_root, module_path, pkg_dir)
        for filepath in files:
            nfiles += 1
            suite = parse_test_file(filepath, package, active_tags)
            if suite is not None:
                suites.append(suite)

    log.info("gotestdoc: %d test suites in %d files under %s", len(suites), nfiles, source_dir)
    return suites
