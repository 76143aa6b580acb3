"""Tests for the Ruby stub parser."""

from dataclasses import FrozenInstanceError

import pytest

from stubindex.core.exceptions import ParseError
from stubindex.core.models import (
    MixinKind,
    NamespaceKind,
    ParamKind,
    ReceiverKind,
    SourceUnit,
    Visibility,
)
from stubindex.languages import (
    ChangeVisibility,
    CloseNamespace,
    DefineAlias,
    DefineConstant,
    DefineMethod,
    IncludeModule,
    OpenNamespace,
    RubyStubParser,
    SetModuleFunction,
    SetVisibility,
)


@pytest.fixture
def parser() -> RubyStubParser:
    return RubyStubParser()


def parse(source: str, strict_aliases: bool = False) -> list:
    return RubyStubParser(strict_aliases=strict_aliases).parse_text(source, "test.rb").events


class TestNamespaces:
    """Tests for class and module bodies."""

    def test_single_line_class(self) -> None:
        """Test that `;`-separated statements on one line are split."""
        events = parse("class Foo; def bar; end; end")

        assert [type(e) for e in events] == [OpenNamespace, DefineMethod, CloseNamespace]
        assert events[0].path == ("Foo",)
        assert events[0].kind == NamespaceKind.CLASS
        assert events[1].name == "bar"

    def test_nested_namespaces_compose_paths(self) -> None:
        """Test that nested bodies produce fully-qualified paths."""
        events = parse(
            """
module OpenSSL
  class Cipher
    class CipherError < OpenSSL::OpenSSLError
    end
  end
end
"""
        )
        opens = [e for e in events if isinstance(e, OpenNamespace)]

        assert [o.path for o in opens] == [
            ("OpenSSL",),
            ("OpenSSL", "Cipher"),
            ("OpenSSL", "Cipher", "CipherError"),
        ]
        assert opens[0].kind == NamespaceKind.MODULE
        superclass = opens[2].superclass
        assert superclass is not None
        assert superclass.name == "OpenSSL::OpenSSLError"
        assert superclass.scope == ("OpenSSL", "Cipher")

    def test_compact_and_absolute_paths(self) -> None:
        """Test `class A::B` and `class ::C` forms."""
        events = parse(
            """
module Outer
  class Inner::Deep
  end
  class ::TopLevel
  end
end
"""
        )
        opens = [e for e in events if isinstance(e, OpenNamespace)]

        assert opens[1].path == ("Outer", "Inner", "Deep")
        assert opens[2].path == ("TopLevel",)

    def test_doc_comment_attaches_to_namespace(self) -> None:
        """Test that a leading comment block becomes the namespace doc."""
        events = parse(
            """# frozen_string_literal: true
# Represents a calendar date.
# Immutable.
class Date
end
"""
        )

        assert events[0].doc == "Represents a calendar date.\nImmutable."

    def test_blank_line_detaches_comment(self) -> None:
        """Test that a blank line between comment and declaration drops the doc."""
        events = parse("# Stray comment\n\nclass Foo\nend\n")

        assert events[0].doc == ""


class TestMethods:
    """Tests for method definitions."""

    def test_parameter_kinds(self) -> None:
        """Test that every parameter shape is recognised."""
        events = parse(
            """
class Foo
  def x(a, b = _, *rest, key:, opt: 1, **kw, &blk)
  end
end
"""
        )
        method = events[1]
        shapes = [(p.name, p.kind, p.default) for p in method.params]

        assert shapes == [
            ("a", ParamKind.REQUIRED, None),
            ("b", ParamKind.OPTIONAL, "_"),
            ("rest", ParamKind.SPLAT, None),
            ("key", ParamKind.KEYWORD, None),
            ("opt", ParamKind.KEYWORD, "1"),
            ("kw", ParamKind.KEYWORD_SPLAT, None),
            ("blk", ParamKind.BLOCK, None),
        ]

    def test_argument_forwarding(self) -> None:
        """Test that `...` is kept as a splat."""
        events = parse("class Foo\n  def x(...) end\nend\n")

        assert events[1].params[0].name == "..."
        assert events[1].params[0].kind == ParamKind.SPLAT

    def test_multiline_body_is_skipped(self) -> None:
        """Test that statements inside a method body are not declarations."""
        events = parse(
            """
class Foo
  def bar
    if baz
      def nested; end
    end
    CONST = 1
  end
  def after; end
end
"""
        )
        methods = [e.name for e in events if isinstance(e, DefineMethod)]

        assert methods == ["bar", "after"]
        assert not any(isinstance(e, DefineConstant) for e in events)
        assert isinstance(events[-1], CloseNamespace)

    def test_singleton_forms(self) -> None:
        """Test `def self.x`, `def Const.x` and `class << self`."""
        events = parse(
            """
class Foo
  def self.create; end
  def Foo.build; end
  class << self
    def make; end
  end
  def instance_method; end
end
"""
        )
        receivers = {e.name: e.receiver for e in events if isinstance(e, DefineMethod)}

        assert receivers == {
            "create": ReceiverKind.SINGLETON,
            "build": ReceiverKind.SINGLETON,
            "make": ReceiverKind.SINGLETON,
            "instance_method": ReceiverKind.INSTANCE,
        }

    def test_endless_def(self) -> None:
        """Test that an endless def does not open a body."""
        events = parse("class Foo\n  def answer = 42\n  def other; end\nend\n")
        methods = [e.name for e in events if isinstance(e, DefineMethod)]

        assert methods == ["answer", "other"]

    def test_operator_and_setter_names(self) -> None:
        """Test operator and setter method names."""
        events = parse(
            """
class Vec
  def +(other) end
  def [](i) end
  def <=>(other) end
  def name=(value) end
  def empty?; end
end
"""
        )
        names = [e.name for e in events if isinstance(e, DefineMethod)]

        assert names == ["+", "[]", "<=>", "name=", "empty?"]

    def test_method_doc(self) -> None:
        """Test that the comment block above a def becomes its doc."""
        events = parse(
            """
class Foo
  # Returns the bar.
  #
  #   foo.bar # => 1
  def bar; end
end
"""
        )

        assert events[1].doc == "Returns the bar.\n\n  foo.bar # => 1"

    def test_attribute_macros(self) -> None:
        """Test attr_reader, attr_writer and attr_accessor."""
        events = parse(
            """
class Point
  attr_reader :x
  attr_writer :y
  attr_accessor :z
end
"""
        )
        methods = [e for e in events if isinstance(e, DefineMethod)]

        assert [m.name for m in methods] == ["x", "y=", "z", "z="]
        assert all(m.accessor for m in methods)
        assert methods[1].params[0].name == "value"
        assert methods[1].params[0].kind == ParamKind.REQUIRED


class TestAliases:
    """Tests for alias directives."""

    def test_alias_forms(self) -> None:
        """Test bare, symbol and alias_method forms."""
        events = parse(
            """
class Foo
  def a; end
  alias b a
  alias :c :a
  alias_method :d, :a
  alias $new_global $old_global
end
"""
        )
        aliases = [(e.new_name, e.target) for e in events if isinstance(e, DefineAlias)]

        assert aliases == [("b", "a"), ("c", "a"), ("d", "a")]

    def test_alias_in_singleton_class(self) -> None:
        """Test that aliases inside `class << self` are singleton aliases."""
        events = parse(
            """
class Foo
  class << self
    def create; end
    alias build create
  end
end
"""
        )
        alias = next(e for e in events if isinstance(e, DefineAlias))

        assert alias.receiver == ReceiverKind.SINGLETON

    def test_forward_alias_allowed_by_default(self) -> None:
        """Test that an alias to a name declared elsewhere parses."""
        events = parse("class Foo\n  alias baz bar\nend\n")

        assert any(isinstance(e, DefineAlias) for e in events)

    def test_strict_alias_requires_prior_declaration(self) -> None:
        """Test that strict mode rejects an alias to an unseen method."""
        with pytest.raises(ParseError) as exc_info:
            parse("class Foo\n  alias baz bar\nend\n", strict_aliases=True)

        assert exc_info.value.line == 2
        assert "undeclared method 'bar'" in str(exc_info.value)

    def test_strict_alias_accepts_declared_method(self) -> None:
        """Test that strict mode accepts aliases of earlier methods."""
        events = parse("class Foo\n  def bar; end\n  alias baz bar\nend\n", strict_aliases=True)

        assert any(isinstance(e, DefineAlias) for e in events)


class TestVisibilityAndMixins:
    """Tests for visibility markers, module_function and mixins."""

    def test_visibility_markers(self) -> None:
        """Test bare, retroactive and inline visibility."""
        events = parse(
            """
class Foo
  private
  def a; end
  public :a, :b
  protected def c; end
  private_constant :X
end
"""
        )

        assert isinstance(events[1], SetVisibility)
        assert events[1].level == Visibility.PRIVATE
        change = next(e for e in events if isinstance(e, ChangeVisibility))
        assert change.names == ("a", "b")
        assert change.level == Visibility.PUBLIC
        inline = next(e for e in events if isinstance(e, DefineMethod) and e.name == "c")
        assert inline.visibility == Visibility.PROTECTED

    def test_singleton_class_resets_visibility_on_close(self) -> None:
        """Test that closing `class << self` resets the singleton mode."""
        events = parse(
            """
class Foo
  class << self
    private
  end
end
"""
        )
        modes = [(e.level, e.receiver) for e in events if isinstance(e, SetVisibility)]

        assert modes == [
            (Visibility.PRIVATE, ReceiverKind.SINGLETON),
            (Visibility.PUBLIC, ReceiverKind.SINGLETON),
        ]

    def test_module_function_forms(self) -> None:
        """Test bare and named module_function."""
        events = parse(
            """
module Util
  module_function
  def helper; end
  module_function :other
end
"""
        )
        markers = [e.names for e in events if isinstance(e, SetModuleFunction)]

        assert markers == [(), ("other",)]

    def test_mixins(self) -> None:
        """Test include, extend and prepend, with multiple names."""
        events = parse(
            """
class Foo
  include Comparable, Enumerable
  extend Forwardable
  prepend ::Loud
  class << self
    include Helpers
  end
end
"""
        )
        mixins = [(e.reference.name, e.mode) for e in events if isinstance(e, IncludeModule)]

        assert mixins == [
            ("Enumerable", MixinKind.INCLUDE),
            ("Comparable", MixinKind.INCLUDE),
            ("Forwardable", MixinKind.EXTEND),
            ("::Loud", MixinKind.PREPEND),
            ("Helpers", MixinKind.EXTEND),
        ]

    def test_extend_self(self) -> None:
        """Test that `extend self` names the enclosing module absolutely."""
        events = parse("module Util\n  extend self\nend\n")
        mixin = next(e for e in events if isinstance(e, IncludeModule))

        assert mixin.reference.name == "::Util"
        assert mixin.mode == MixinKind.EXTEND

    def test_predicate_call_is_not_a_mixin(self) -> None:
        """Test that `include?` is not mistaken for include."""
        events = parse("class Foo\n  include? x\nend\n")

        assert not any(isinstance(e, IncludeModule) for e in events)


class TestConstants:
    """Tests for constant assignments."""

    def test_placeholder_is_unknown(self) -> None:
        """Test that `_` is kept as an unknown value, not a guess."""
        events = parse('class Foo\n  MAX = _\n  NAME = "foo"\nend\n')
        constants = {e.name: e.value for e in events if isinstance(e, DefineConstant)}

        assert constants["MAX"].is_unknown
        assert constants["NAME"].text == '"foo"'

    def test_multiline_value(self) -> None:
        """Test that a bracketed value may span lines."""
        events = parse(
            """
class Foo
  NAMES = [
    :a,
    :b,
  ]
  def after; end
end
"""
        )
        constant = next(e for e in events if isinstance(e, DefineConstant))

        assert constant.value.text == "[ :a, :b, ]"
        assert any(isinstance(e, DefineMethod) and e.name == "after" for e in events)

    def test_constant_with_block(self) -> None:
        """Test that `X = Struct.new(...) do` skips the block body."""
        events = parse(
            """
class Foo
  Pair = Struct.new(:a, :b) do
    def swap; end
  end
  def after; end
end
"""
        )
        methods = [e.name for e in events if isinstance(e, DefineMethod)]

        assert methods == ["after"]


class TestMultilineConstructs:
    """Tests for statements that span several lines."""

    def test_multiline_parameter_list(self) -> None:
        """Test that a parameter list may wrap across lines."""
        events = parse(
            """
class Foo
  def bar(a,
          b = 1)
  end
  def baz; end
end
"""
        )
        methods = [e for e in events if isinstance(e, DefineMethod)]

        assert [m.name for m in methods] == ["bar", "baz"]
        assert [(p.name, p.kind, p.default) for p in methods[0].params] == [
            ("a", ParamKind.REQUIRED, None),
            ("b", ParamKind.OPTIONAL, "1"),
        ]

    def test_heredoc_constant(self) -> None:
        """Test that heredoc bodies are not read as statements."""
        events = parse(
            """
class Foo
  USAGE = <<~TEXT
    end
    class Hidden
  TEXT
  def bar; end
end
"""
        )

        assert [e.name for e in events if isinstance(e, DefineConstant)] == ["USAGE"]
        assert [e.name for e in events if isinstance(e, DefineMethod)] == ["bar"]
        assert [e.path for e in events if isinstance(e, OpenNamespace)] == [("Foo",)]

    def test_multiline_expression_in_body(self) -> None:
        """Test that an `if` used as a value inside a method stays in the body."""
        events = parse(
            """
class Foo
  def bar
    y = if ready?
      1
    else
      2
    end
    y
  end
  def baz; end
end
"""
        )

        assert [e.name for e in events if isinstance(e, DefineMethod)] == ["bar", "baz"]
        assert isinstance(events[-1], CloseNamespace)

    def test_regexp_constant(self) -> None:
        """Test that brackets inside a regexp literal are not counted."""
        events = parse("class Foo\n  OPEN = /\\(/\n  def bar; end\nend\n")
        constant = next(e for e in events if isinstance(e, DefineConstant))

        assert constant.value.text == "/\\(/"
        assert [e.name for e in events if isinstance(e, DefineMethod)] == ["bar"]

    def test_trailing_comment_is_not_a_doc(self) -> None:
        """Test that a comment after a statement does not document the next one."""
        events = parse("class Foo\n  def a; end # helper\n  def b; end\nend\n")
        docs = {e.name: e.doc for e in events if isinstance(e, DefineMethod)}

        assert docs == {"a": "", "b": ""}


class TestParseErrors:
    """Tests for malformed input."""

    def test_unterminated_namespace(self) -> None:
        """Test that a missing `end` fails the unit."""
        with pytest.raises(ParseError) as exc_info:
            parse("class Foo\n  def bar\n  end\n")

        assert exc_info.value.unit == "test.rb"
        assert exc_info.value.line is not None
        assert "test.rb" in str(exc_info.value)

    def test_unexpected_end(self) -> None:
        """Test that a stray `end` is an error."""
        with pytest.raises(ParseError) as exc_info:
            parse("class Foo\nend\nend\n")

        assert exc_info.value.unit == "test.rb"

    def test_unterminated_parameter_list(self) -> None:
        """Test that an unclosed parameter list is an error."""
        with pytest.raises(ParseError):
            parse("class Foo\n  def bar(a, b\nend\n")

    def test_malformed_alias_method(self) -> None:
        """Test that alias_method needs exactly two names."""
        with pytest.raises(ParseError) as exc_info:
            parse("class Foo\n  alias_method :only\nend\n")

        assert exc_info.value.line == 2
        assert "Malformed alias_method" in str(exc_info.value)

    def test_unrecognised_statements_are_ignored(self) -> None:
        """Test that requires and expressions do not fail the unit."""
        events = parse('require "date"\nputs 1 + 2\nclass Foo\nend\n')

        assert [type(e) for e in events] == [OpenNamespace, CloseNamespace]

    def test_comment_block_and_data_section(self) -> None:
        """Test that =begin/=end blocks and __END__ data are skipped."""
        events = parse("=begin\nclass Hidden\n=end\nclass Foo\nend\n__END__\nclass Data\n")

        assert [e.path for e in events if isinstance(e, OpenNamespace)] == [("Foo",)]


class TestParserUnits:
    """Tests for the parser entry points."""

    def test_parse_unit(self, parser: RubyStubParser) -> None:
        """Test parsing an in-memory unit keeps its name."""
        result = parser.parse_unit(SourceUnit("core/foo.rb", "class Foo\n  def a; end\nend\n"))

        assert result.unit == "core/foo.rb"
        assert [e.name for e in result.events if isinstance(e, DefineMethod)] == ["a"]

    def test_parse_text_default_unit(self, parser: RubyStubParser) -> None:
        """Test that text without a unit name gets a placeholder name."""
        result = parser.parse_text("module M\nend\n")

        assert result.unit == "<string>"
        assert [e.path for e in result.events if isinstance(e, OpenNamespace)] == [("M",)]

    def test_events_are_immutable(self, parser: RubyStubParser) -> None:
        """Test that emitted events cannot be changed after parsing."""
        event = parser.parse_text("class Foo\nend\n").events[0]

        with pytest.raises(FrozenInstanceError):
            event.doc = "changed"
