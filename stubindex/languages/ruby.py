"""Ruby stub parser: turns stub source into ordered declaration events.

Source is parsed with the tree-sitter Ruby grammar and the declarative
surface used by stub files is read off the syntax tree: class and module
bodies, constants, method signatures, aliases, visibility markers, mixins and
attribute macros. Method bodies and other expressions are never entered.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import tree_sitter_ruby
from tree_sitter import Language, Node, Parser

from stubindex.core.exceptions import ParseError
from stubindex.core.models import (
    ConstantValue,
    MixinKind,
    NamespaceKind,
    Parameter,
    ParamKind,
    ReceiverKind,
    Reference,
    SourceUnit,
    Visibility,
    join_name,
    split_name,
)
from stubindex.languages.models import (
    ChangeVisibility,
    CloseNamespace,
    DefineAlias,
    DefineConstant,
    DefineMethod,
    Event,
    IncludeModule,
    OpenNamespace,
    ParseResult,
    SetModuleFunction,
    SetVisibility,
)

RUBY_LANGUAGE = Language(tree_sitter_ruby.language())

_MAGIC_COMMENT_RE = re.compile(r"^#\s*(?:frozen_string_literal|encoding|coding|warn_indent):")

_VISIBILITY_CALLS = {
    "private": Visibility.PRIVATE,
    "protected": Visibility.PROTECTED,
    "public": Visibility.PUBLIC,
}
_MIXIN_CALLS = {
    "include": MixinKind.INCLUDE,
    "extend": MixinKind.EXTEND,
    "prepend": MixinKind.PREPEND,
}
_ATTR_CALLS = frozenset({"attr_reader", "attr_writer", "attr_accessor"})

# Nodes that name a constant path: `Foo`, `Foo::Bar`, `::Foo`.
_CONSTANT_NODES = frozenset({"constant", "scope_resolution"})
# Nodes that name a method directly, as in `alias new old`.
_METHOD_NAME_NODES = frozenset({"identifier", "constant", "operator", "setter"})


class RubyStubParser:
    """Parser for Ruby stub files.

    Args:
        strict_aliases: Fail the unit when an alias names a method that has not
            been declared earlier in the same unit and namespace.
    """

    def __init__(self, strict_aliases: bool = False) -> None:
        self._strict_aliases = strict_aliases

    def parse_unit(self, unit: SourceUnit) -> ParseResult:
        """Extract declaration events from an in-memory unit."""
        return self.parse_text(unit.text, unit.name)

    def parse_text(self, source: str, unit: str = "<string>") -> ParseResult:
        """Extract declaration events from stub source text.

        Raises:
            ParseError: The unit is malformed; nothing from it should be used.
        """
        # Parser objects are not shared: builds parse units on several threads.
        tree = Parser(RUBY_LANGUAGE).parse(source.encode("utf-8"))
        if tree.root_node.has_error:
            raise _syntax_error(tree.root_node, unit)

        visitor = _RubyVisitor(unit, self._strict_aliases)
        visitor.visit(tree.root_node)
        return ParseResult(unit=unit, events=visitor.events)


@dataclass
class _Scope:
    """An open class, module or `class << self` body."""

    path: tuple[str, ...]
    receiver: ReceiverKind = ReceiverKind.INSTANCE


class _RubyVisitor:
    """Walks statement lists and emits events in source order."""

    def __init__(self, unit: str, strict_aliases: bool) -> None:
        self.unit = unit
        self.events: list[Event] = []

        self._strict_aliases = strict_aliases
        self._scopes: list[_Scope] = []
        self._doc: list[Node] = []
        # Row where the last statement ended, to tell trailing comments apart.
        self._last_row = -1

        # Method names seen so far, for strict alias checking.
        self._seen: dict[tuple[tuple[str, ...], ReceiverKind], set[str]] = {}

    @property
    def _path(self) -> tuple[str, ...]:
        """Fully-qualified path of the innermost open namespace."""
        return self._scopes[-1].path if self._scopes else ()

    @property
    def _receiver(self) -> ReceiverKind:
        return self._scopes[-1].receiver if self._scopes else ReceiverKind.INSTANCE

    def _error(self, message: str, node: Node) -> ParseError:
        line = _line(node)
        return ParseError(f"{message} in {self.unit} at line {line}", unit=self.unit, line=line)

    def _remember(self, name: str, receiver: ReceiverKind) -> None:
        self._seen.setdefault((self._path, receiver), set()).add(name)

    def visit(self, node: Node) -> None:
        """Visit the statements directly inside a program or namespace body."""
        for child in node.children:
            if not child.is_named:
                continue
            if child.type == "body_statement":
                self.visit(child)
            elif child.type == "comment":
                self._comment(child)
            else:
                doc = self._take_doc(child)
                handler = getattr(self, f"visit_{child.type}", None)
                if handler is not None:
                    handler(child, doc)

    def _comment(self, node: Node) -> None:
        text = _text(node)
        row = node.start_point[0]
        if row == self._last_row or text.startswith("=begin"):
            self._doc = []
            return
        if not self.events and not self._scopes and _MAGIC_COMMENT_RE.match(text):
            return
        if self._doc and row != self._doc[-1].start_point[0] + 1:
            self._doc = []
        self._doc.append(node)

    def _take_doc(self, node: Node) -> str:
        """Return the comment block directly above `node` and reset it."""
        comments, self._doc = self._doc, []
        self._last_row = node.end_point[0]
        if not comments or node.start_point[0] != comments[-1].start_point[0] + 1:
            return ""
        return "\n".join(_comment_text(c) for c in comments).strip()

    def _body(self, node: Node) -> None:
        self._last_row = node.start_point[0]
        self.visit(node)
        self._doc = []
        self._last_row = node.end_point[0]

    # Namespaces

    def visit_class(self, node: Node, doc: str) -> None:
        superclass = None
        clause = node.child_by_field_name("superclass")
        if clause is not None:
            expr = next((c for c in clause.named_children if c.type in _CONSTANT_NODES), None)
            if expr is not None:
                superclass = Reference(_text(expr), self._path)
        self._namespace(node, NamespaceKind.CLASS, superclass, doc)

    def visit_module(self, node: Node, doc: str) -> None:
        self._namespace(node, NamespaceKind.MODULE, None, doc)

    def _namespace(
        self,
        node: Node,
        kind: NamespaceKind,
        superclass: Reference | None,
        doc: str,
    ) -> None:
        name = _text(node.child_by_field_name("name"))
        path = split_name(name) if name.startswith("::") else self._path + split_name(name)
        self.events.append(
            OpenNamespace(line=_line(node), path=path, kind=kind, superclass=superclass, doc=doc)
        )
        self._scopes.append(_Scope(path))
        self._body(node)
        self._scopes.pop()
        self.events.append(CloseNamespace(line=_end_line(node)))

    def visit_singleton_class(self, node: Node, doc: str) -> None:
        """`class << self`; other singleton classes are not part of a stub."""
        value = node.child_by_field_name("value")
        if value is None or value.type != "self":
            return
        self._scopes.append(_Scope(self._path, ReceiverKind.SINGLETON))
        self._body(node)
        self._scopes.pop()
        self.events.append(
            SetVisibility(
                line=_end_line(node), level=Visibility.PUBLIC, receiver=ReceiverKind.SINGLETON
            )
        )

    # Members

    def visit_method(
        self,
        node: Node,
        doc: str,
        visibility: Visibility | None = None,
        receiver: ReceiverKind | None = None,
    ) -> None:
        self._define(node, receiver or self._receiver, doc, visibility)

    def visit_singleton_method(
        self,
        node: Node,
        doc: str,
        visibility: Visibility | None = None,
        receiver: ReceiverKind | None = None,
    ) -> None:
        owner = node.child_by_field_name("object")
        if owner is None or (owner.type != "self" and owner.type not in _CONSTANT_NODES):
            return
        self._define(node, ReceiverKind.SINGLETON, doc, visibility)

    def _define(
        self,
        node: Node,
        receiver: ReceiverKind,
        doc: str,
        visibility: Visibility | None,
    ) -> None:
        name = _text(node.child_by_field_name("name"))
        self.events.append(
            DefineMethod(
                line=_line(node),
                name=name,
                receiver=receiver,
                params=_parameters(node.child_by_field_name("parameters")),
                doc=doc,
                visibility=visibility,
            )
        )
        self._remember(name, receiver)

    def visit_alias(self, node: Node, doc: str) -> None:
        new_name = _symbol_name(node.child_by_field_name("name"))
        target = _symbol_name(node.child_by_field_name("alias"))
        # `alias $new $old` aliases globals, not methods.
        if new_name is None or target is None:
            return
        self._alias(node, new_name, target, doc)

    def _alias(self, node: Node, new_name: str, target: str, doc: str) -> None:
        receiver = self._receiver
        if self._strict_aliases and target not in self._seen.get((self._path, receiver), set()):
            raise self._error(f"Alias '{new_name}' refers to undeclared method '{target}'", node)
        self.events.append(
            DefineAlias(
                line=_line(node), new_name=new_name, target=target, receiver=receiver, doc=doc
            )
        )
        self._remember(new_name, receiver)

    def visit_assignment(self, node: Node, doc: str) -> None:
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is None or right is None or left.type != "constant":
            return
        self.events.append(
            DefineConstant(
                line=_line(node),
                name=_text(left),
                value=ConstantValue.from_source(_value_source(right)),
                doc=doc,
            )
        )

    # Macros

    def visit_identifier(self, node: Node, doc: str) -> None:
        """Bare `private`, `protected`, `public` or `module_function`."""
        name = _text(node)
        if name in _VISIBILITY_CALLS:
            self.events.append(
                SetVisibility(line=_line(node), level=_VISIBILITY_CALLS[name], receiver=self._receiver)
            )
        elif name == "module_function":
            self.events.append(SetModuleFunction(line=_line(node)))

    def visit_call(self, node: Node, doc: str) -> None:
        if node.child_by_field_name("receiver") is not None:
            return
        method = node.child_by_field_name("method")
        if method is None:
            return
        name = _text(method)
        args = _arguments(node)

        if name in _VISIBILITY_CALLS:
            self._visibility(node, _VISIBILITY_CALLS[name], args, doc)
        elif name == "module_function":
            self._module_function(node, args, doc)
        elif name in _MIXIN_CALLS:
            self._mixin(node, _MIXIN_CALLS[name], args)
        elif name in _ATTR_CALLS:
            self._attributes(node, name, args, doc)
        elif name == "alias_method":
            names = [_symbol_name(arg) for arg in args]
            if len(names) != 2 or None in names:
                raise self._error(f"Malformed alias_method '{_squash(_text(node))}'", node)
            self._alias(node, names[0], names[1], doc)

    def _visibility(self, node: Node, level: Visibility, args: list[Node], doc: str) -> None:
        if not args:
            self.events.append(SetVisibility(line=_line(node), level=level, receiver=self._receiver))
            return
        names: list[str] = []
        for arg in args:
            if arg.type == "method":
                self.visit_method(arg, doc, visibility=level)
            elif arg.type == "singleton_method":
                self.visit_singleton_method(arg, doc, visibility=level)
            elif arg.type == "call" and _call_name(arg) in _ATTR_CALLS:
                self._attributes(arg, _call_name(arg), _arguments(arg), doc, visibility=level)
            elif (name := _symbol_name(arg)) is not None:
                names.append(name)
        if names:
            self.events.append(
                ChangeVisibility(
                    line=_line(node), names=tuple(names), level=level, receiver=self._receiver
                )
            )

    def _module_function(self, node: Node, args: list[Node], doc: str) -> None:
        names: list[str] = []
        for arg in args:
            if arg.type == "method":
                self.visit_method(arg, doc, receiver=ReceiverKind.MODULE_FUNCTION)
            elif (name := _symbol_name(arg)) is not None:
                names.append(name)
        if names or not args:
            self.events.append(SetModuleFunction(line=_line(node), names=tuple(names)))

    def _mixin(self, node: Node, mode: MixinKind, args: list[Node]) -> None:
        if mode == MixinKind.INCLUDE and self._receiver == ReceiverKind.SINGLETON:
            mode = MixinKind.EXTEND
        # `include A, B` mixes in B first, so A ends up nearest.
        for arg in reversed(args):
            if arg.type == "self":
                if not self._path:
                    continue
                name = "::" + join_name(self._path)
            elif arg.type in _CONSTANT_NODES:
                name = _text(arg)
            else:
                continue
            self.events.append(
                IncludeModule(line=_line(node), reference=Reference(name, self._path), mode=mode)
            )

    def _attributes(
        self,
        node: Node,
        macro: str,
        args: list[Node],
        doc: str,
        visibility: Visibility | None = None,
    ) -> None:
        receiver = self._receiver
        for name in filter(None, (_symbol_name(arg) for arg in args)):
            if macro in ("attr_reader", "attr_accessor"):
                self.events.append(
                    DefineMethod(
                        line=_line(node),
                        name=name,
                        receiver=receiver,
                        doc=doc,
                        accessor=True,
                        visibility=visibility,
                    )
                )
                self._remember(name, receiver)
            if macro in ("attr_writer", "attr_accessor"):
                self.events.append(
                    DefineMethod(
                        line=_line(node),
                        name=f"{name}=",
                        receiver=receiver,
                        params=(Parameter("value", ParamKind.REQUIRED),),
                        doc=doc,
                        accessor=True,
                        visibility=visibility,
                    )
                )
                self._remember(f"{name}=", receiver)


def _syntax_error(root: Node, unit: str) -> ParseError:
    """Describe the first error tree-sitter recovered from."""
    node = _first_error(root) or root
    if node.is_missing:
        owner = node.parent or root
        line = _line(owner)
        if node.type == "end":
            message = f"Unterminated {owner.type}"
        else:
            message = f"Missing '{node.type}' in {owner.type}"
    else:
        line = _line(node)
        message = "Syntax error"
    return ParseError(f"{message} in {unit} at line {line}", unit=unit, line=line)


def _first_error(node: Node) -> Node | None:
    if node.type == "ERROR" or node.is_missing:
        return node
    for child in node.children:
        if child.has_error or child.is_missing:
            found = _first_error(child)
            if found is not None:
                return found
    return None


def _parameters(node: Node | None) -> tuple[Parameter, ...]:
    """Read a `method_parameters` node into parameter descriptors."""
    if node is None:
        return ()
    params: list[Parameter] = []
    for child in node.named_children:
        kind = child.type
        if kind == "identifier":
            params.append(Parameter(_text(child), ParamKind.REQUIRED))
        elif kind == "optional_parameter":
            params.append(
                Parameter(_field_text(child, "name"), ParamKind.OPTIONAL, _field_text(child, "value"))
            )
        elif kind == "keyword_parameter":
            default = _field_text(child, "value") or None
            params.append(Parameter(_field_text(child, "name"), ParamKind.KEYWORD, default))
        elif kind == "splat_parameter":
            params.append(Parameter(_field_text(child, "name"), ParamKind.SPLAT))
        elif kind == "hash_splat_parameter":
            params.append(Parameter(_field_text(child, "name"), ParamKind.KEYWORD_SPLAT))
        elif kind == "block_parameter":
            params.append(Parameter(_field_text(child, "name"), ParamKind.BLOCK))
        elif kind == "forward_parameter":
            params.append(Parameter("...", ParamKind.SPLAT))
        elif kind == "destructured_parameter":
            params.append(Parameter(_squash(_text(child)), ParamKind.REQUIRED))
    return tuple(params)


def _arguments(call: Node) -> list[Node]:
    arguments = call.child_by_field_name("arguments")
    if arguments is None:
        return []
    return [arg for arg in arguments.named_children if arg.type != "comment"]


def _call_name(call: Node) -> str:
    method = call.child_by_field_name("method")
    return _text(method) if method is not None else ""


def _symbol_name(node: Node | None) -> str | None:
    """Turn `:name`, `"name"` or `name` into `name`; None for anything else."""
    if node is None:
        return None
    if node.type in ("simple_symbol", "hash_key_symbol"):
        return _text(node).lstrip(":")
    if node.type in ("delimited_symbol", "string"):
        content = "".join(_text(c) for c in node.named_children if c.type == "string_content")
        return content or None
    if node.type in _METHOD_NAME_NODES:
        return _text(node)
    return None


def _value_source(node: Node) -> str:
    """Source of a constant's value, without any trailing `do ... end` block."""
    text = node.text or b""
    if node.type == "call":
        block = node.child_by_field_name("block")
        if block is not None:
            text = text[: block.start_byte - node.start_byte]
    return _squash(text.decode("utf-8"))


def _field_text(node: Node, name: str) -> str:
    child = node.child_by_field_name(name)
    return _squash(_text(child)) if child is not None else ""


def _comment_text(node: Node) -> str:
    text = _text(node).rstrip()[1:]
    return text[1:] if text.startswith(" ") else text


def _squash(text: str) -> str:
    """Join a multi-line snippet into one line."""
    return " ".join(line.strip() for line in text.splitlines() if line.strip())


def _text(node: Node | None) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def _line(node: Node) -> int:
    return node.start_point[0] + 1


def _end_line(node: Node) -> int:
    return node.end_point[0] + 1
