# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Selector (pointcut) expressions for AOP advice targeting.

Glob syntax
-----------
* ``*`` : any run of characters inside one dot-separated segment
  (``*Service``, ``get_*``, or a whole segment).
* ``?`` : exactly one character inside a segment.
* ``..`` : any depth: ``com.example..*Service.*`` matches
  ``com.example.OrderService.get`` and ``com.example.a.b.OrderService.get``.
  A leading ``..`` matches any package prefix.
* ``**`` : one or more whole segments.

Expression syntax
-----------------
::

    expr    := or
    or      := and ( "OR" and )*
    and     := unary ( "AND" unary )*
    unary   := "NOT" unary | primary
    primary := "(" expr ")" | NAME "(" [ STRING ( "," STRING )* ] ")"

``NAME`` is one of ``exec`` (alias ``execution``), ``within``, ``returns``,
``args`` and ``marker``.  Keywords are case-insensitive and ``&&``, ``||``
and ``!`` are accepted as aliases.  Text without parentheses or spaces is
shorthand for ``exec(text)``, so ``"service.*.*"`` still works.

Examples
--------
>>> parse_selector('exec("com.example..*Service.*") AND NOT marker("internal")')
AllOf(children=(Execution(pattern='com.example..*Service.*'), Not(child=Marker(name='internal'))))
>>> matches_pointcut("**.*Service.*", "a.b.c.OrderService.create")
True
"""

from __future__ import annotations

import functools
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from interweave.aop.types import OperationDescriptor
from interweave.kernel.exceptions import MalformedSelector

# ---------------------------------------------------------------------------
# Glob engine
# ---------------------------------------------------------------------------


def _segment_to_regex(seg: str) -> str:
    """Convert a single pattern segment to a regex fragment."""
    if seg == "**":
        return r"(?:[^.]+\.)*[^.]+"
    if seg == "*":
        return r"[^.]+"

    parts: list[str] = []
    for ch in seg:
        if ch == "*":
            parts.append("[^.]*")
        elif ch == "?":
            parts.append("[^.]")
        else:
            parts.append(re.escape(ch))
    return "".join(parts)


@functools.lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a dotted glob into a regex; raises ``ValueError`` if malformed."""
    if not pattern or pattern.strip() != pattern or not pattern.strip("."):
        raise ValueError(f"invalid glob {pattern!r}")

    tokens = re.split(r"(\.\.|\.)", pattern)
    last = len(tokens) - 1
    regex: list[str] = []
    for i, tok in enumerate(tokens):
        if i % 2 == 0:
            if tok == "":
                leading = i == 0 and last > 0 and tokens[1] == ".."
                trailing = i == last and last > 0 and tokens[i - 1] == ".."
                if not (leading or trailing):
                    raise ValueError(f"empty segment in glob {pattern!r}")
                continue
            regex.append(_segment_to_regex(tok))
        elif tok == ".":
            regex.append(r"\.")
        elif i == 1 and tokens[0] == "":
            regex.append(r"(?:[^.]+\.)*")
        elif i == last - 1 and tokens[last] == "":
            regex.append(r"(?:\.[^.]+)*")
        else:
            regex.append(r"\.(?:[^.]+\.)*")
    if not regex:
        raise ValueError(f"glob {pattern!r} matches nothing")
    return re.compile("".join(regex))


def matches_pointcut(pattern: str, qualified_name: str) -> bool:
    """Check whether *qualified_name* matches a dotted glob *pattern*.

    >>> matches_pointcut("service.*.*", "service.OrderService.create")
    True
    >>> matches_pointcut("mymod.MyClass.get_*", "mymod.MyClass.get_order")
    True
    >>> matches_pointcut("*.my_method", "a.b.MyClass.my_method")
    False
    """
    return compile_glob(pattern).fullmatch(qualified_name) is not None


# ---------------------------------------------------------------------------
# Selector model
# ---------------------------------------------------------------------------


class Selector(ABC):
    """A pure predicate over :class:`OperationDescriptor`."""

    @abstractmethod
    def matches(self, descriptor: OperationDescriptor) -> bool: ...

    def __and__(self, other: Selector) -> Selector:
        return AllOf((self, other))

    def __or__(self, other: Selector) -> Selector:
        return AnyOf((self, other))

    def __invert__(self) -> Selector:
        return Not(self)


@dataclass(frozen=True)
class Execution(Selector):
    """Glob over the operation's qualified name."""

    pattern: str
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", compile_glob(self.pattern))

    def matches(self, descriptor: OperationDescriptor) -> bool:
        return self._regex.fullmatch(descriptor.qualified_name) is not None


@dataclass(frozen=True)
class Within(Selector):
    """Glob over the declaring type name."""

    pattern: str
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", compile_glob(self.pattern))

    def matches(self, descriptor: OperationDescriptor) -> bool:
        return self._regex.fullmatch(descriptor.declaring_type) is not None


@dataclass(frozen=True)
class Returns(Selector):
    """Glob over the declared return type name."""

    pattern: str
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", compile_glob(self.pattern))

    def matches(self, descriptor: OperationDescriptor) -> bool:
        return self._regex.fullmatch(descriptor.return_type) is not None


@dataclass(frozen=True)
class Args(Selector):
    """Argument shape: one type glob per parameter, ``..`` for any run of them."""

    patterns: tuple[str, ...]
    _regexes: tuple[re.Pattern[str] | None, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        regexes = tuple(None if p == ".." else compile_glob(p) for p in self.patterns)
        object.__setattr__(self, "_regexes", regexes)

    def matches(self, descriptor: OperationDescriptor) -> bool:
        patterns, types = self._regexes, descriptor.parameter_types
        p = t = 0
        star_p, star_t = -1, 0
        while t < len(types):
            if p < len(patterns) and patterns[p] is None:
                star_p, star_t = p, t
                p += 1
            elif p < len(patterns) and patterns[p].fullmatch(types[t]) is not None:
                p += 1
                t += 1
            elif star_p != -1:
                p = star_p + 1
                star_t += 1
                t = star_t
            else:
                return False
        while p < len(patterns) and patterns[p] is None:
            p += 1
        return p == len(patterns)


@dataclass(frozen=True)
class Marker(Selector):
    """True when the operation (or its type) carries marker *name*."""

    name: str

    def matches(self, descriptor: OperationDescriptor) -> bool:
        return self.name in descriptor.markers


@dataclass(frozen=True)
class AllOf(Selector):
    """Conjunction; an empty one matches everything."""

    children: tuple[Selector, ...] = ()

    def matches(self, descriptor: OperationDescriptor) -> bool:
        return all(child.matches(descriptor) for child in self.children)


@dataclass(frozen=True)
class AnyOf(Selector):
    """Disjunction; an empty one matches nothing."""

    children: tuple[Selector, ...] = ()

    def matches(self, descriptor: OperationDescriptor) -> bool:
        return any(child.matches(descriptor) for child in self.children)


@dataclass(frozen=True)
class Not(Selector):
    child: Selector

    def matches(self, descriptor: OperationDescriptor) -> bool:
        return not self.child.matches(descriptor)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<comma>,)
  | (?P<and>&&)
  | (?P<or>\|\|)
  | (?P<not>!)
  | (?P<string>"[^"]*"|'[^']*')
  | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)

_KEYWORDS = {"and": "and", "or": "or", "not": "not"}


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str
    pos: int


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            if text[pos] in "\"'":
                raise MalformedSelector("unterminated string", text, pos)
            raise MalformedSelector(f"unexpected character {text[pos]!r}", text, pos)
        kind = m.lastgroup or ""
        value = m.group()
        if kind == "word" and value.lower() in _KEYWORDS:
            kind = _KEYWORDS[value.lower()]
        elif kind == "string":
            value = value[1:-1]
        if kind != "ws":
            tokens.append(_Token(kind, value, pos))
        pos = m.end()
    tokens.append(_Token("end", "", len(text)))
    return tokens


class _Parser:
    def __init__(self, text: str) -> None:
        self._text = text
        self._tokens = _tokenize(text)
        self._i = 0

    def _peek(self) -> _Token:
        return self._tokens[self._i]

    def _next(self) -> _Token:
        tok = self._tokens[self._i]
        self._i += 1
        return tok

    def _expect(self, kind: str, what: str) -> _Token:
        tok = self._next()
        if tok.kind != kind:
            found = tok.value or "end of expression"
            raise MalformedSelector(f"expected {what}, found {found!r}", self._text, tok.pos)
        return tok

    def parse(self) -> Selector:
        result = self._or()
        tok = self._peek()
        if tok.kind != "end":
            raise MalformedSelector(f"unexpected {tok.value!r}", self._text, tok.pos)
        return result

    def _or(self) -> Selector:
        children = [self._and()]
        while self._peek().kind == "or":
            self._next()
            children.append(self._and())
        return children[0] if len(children) == 1 else AnyOf(tuple(children))

    def _and(self) -> Selector:
        children = [self._unary()]
        while self._peek().kind == "and":
            self._next()
            children.append(self._unary())
        return children[0] if len(children) == 1 else AllOf(tuple(children))

    def _unary(self) -> Selector:
        if self._peek().kind == "not":
            self._next()
            return Not(self._unary())
        return self._primary()

    def _primary(self) -> Selector:
        tok = self._next()
        if tok.kind == "lparen":
            inner = self._or()
            self._expect("rparen", "')'")
            return inner
        if tok.kind != "word":
            found = tok.value or "end of expression"
            raise MalformedSelector(f"expected a designator, found {found!r}", self._text, tok.pos)

        self._expect("lparen", f"'(' after {tok.value!r}")
        args: list[str] = []
        if self._peek().kind != "rparen":
            args.append(self._expect("string", "a quoted pattern").value)
            while self._peek().kind == "comma":
                self._next()
                args.append(self._expect("string", "a quoted pattern").value)
        self._expect("rparen", "')'")
        return self._designator(tok, args)

    def _designator(self, tok: _Token, args: list[str]) -> Selector:
        name = tok.value.lower()
        if name == "args":
            return self._build(tok, Args, tuple(args))
        factory = _DESIGNATORS.get(name)
        if factory is None:
            raise MalformedSelector(f"unknown designator {tok.value!r}", self._text, tok.pos)
        if len(args) != 1:
            raise MalformedSelector(f"{tok.value}() takes exactly one pattern, got {len(args)}", self._text, tok.pos)
        return self._build(tok, factory, args[0])

    def _build(self, tok: _Token, factory: Any, pattern: Any) -> Selector:
        try:
            return factory(pattern)
        except ValueError as exc:
            raise MalformedSelector(str(exc), self._text, tok.pos) from exc


_DESIGNATORS = {
    "exec": Execution,
    "execution": Execution,
    "within": Within,
    "returns": Returns,
    "marker": Marker,
}


@functools.lru_cache(maxsize=1024)
def parse_selector(text: str) -> Selector:
    """Parse selector *text*; raises :class:`MalformedSelector` on bad input."""
    if not text or not text.strip():
        raise MalformedSelector("empty selector", text, 0)
    stripped = text.strip()
    if "(" not in stripped and not any(ch.isspace() for ch in stripped):
        try:
            return Execution(stripped)
        except ValueError as exc:
            raise MalformedSelector(str(exc), text, 0) from exc
    return _Parser(text).parse()


def as_selector(value: str | Selector) -> Selector:
    """Accept selector text or an already-built :class:`Selector`."""
    if isinstance(value, Selector):
        return value
    return parse_selector(value)
