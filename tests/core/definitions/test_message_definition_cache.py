"""Tests for message definition resolution."""

import tempfile
from pathlib import Path

import pytest

from mcapstore.core.definitions.locator import SearchPathLocator
from mcapstore.core.definitions.message_definition_cache import (
    DefinitionFormat,
    DefinitionIdentifier,
    MessageDefinitionCache,
    parse_dependencies,
)
from mcapstore.core.errors import (
    DefinitionNotFoundError,
    ErrorKind,
    InvalidResourceNameError,
    PackageNotFoundError,
)

SEPARATOR = "\n" + "=" * 80 + "\n"


def write_definition(share: Path, resource: str, text: str) -> None:
    """Write share/<pkg>/msg/<Type><ext> for a resource like pkg/Type.msg."""
    package, filename = resource.split("/", 1)
    path = share / package / "msg" / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


class TestParseDependencies:
    """Test dependency extraction."""
    
    def test_msg_dependencies(self):
        """Test qualified, local and primitive field types."""
        text = (
            "# A comment line\n"
            "std_msgs/Header header\n"
            "Point[] points\n"
            "uint8[16] data\n"
            "string name\n"
            "int32 CONSTANT=1\n"
        )
        
        deps = parse_dependencies(DefinitionFormat.MSG, text, "geometry_msgs")
        
        assert deps == frozenset({"std_msgs/Header", "geometry_msgs/Point"})
    
    def test_msg_primitives_only(self):
        """Test that primitive-only definitions have no dependencies."""
        text = "bool a\nbyte b\nchar c\nfloat32 d\nfloat64 e\nint64 f\nuint64 g\n"
        
        assert parse_dependencies(DefinitionFormat.MSG, text, "pkg") == frozenset()
    
    def test_msg_bounded_array(self):
        """Test array suffixes with bounds are stripped."""
        deps = parse_dependencies(DefinitionFormat.MSG, "other_pkg/Thing[<=5] things\n", "pkg")
        
        assert deps == frozenset({"other_pkg/Thing"})
    
    def test_idl_dependencies(self):
        """Test include directives in both quote styles."""
        text = (
            '#include "std_msgs/msg/Header.idl"\n'
            "#include <geometry_msgs/msg/Point.idl>\n"
            "module pkg { module msg { struct Thing { double x; }; }; };\n"
        )
        
        deps = parse_dependencies(DefinitionFormat.IDL, text, "pkg")
        
        assert deps == frozenset({"std_msgs/msg/Header", "geometry_msgs/msg/Point"})


class TestMessageDefinitionCache:
    """Test MessageDefinitionCache."""
    
    @pytest.fixture
    def share_dir(self):
        """Create a temporary share directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)
    
    @pytest.fixture
    def cache(self, share_dir):
        """Create a cache reading from the share directory."""
        return MessageDefinitionCache(SearchPathLocator([share_dir]))
    
    def test_single_definition(self, share_dir, cache):
        """Test a type without dependencies."""
        write_definition(share_dir, "pkg/Simple.msg", "int32 data\n")
        
        definition_format, text = cache.get_full_text("pkg/msg/Simple")
        
        assert definition_format == DefinitionFormat.MSG
        assert text == "int32 data\n"
    
    def test_diamond_dependency_appears_once(self, share_dir, cache):
        """Test root -> {B, C}, B -> D, C -> D includes D once."""
        write_definition(share_dir, "pkg_a/Root.msg", "pkg_b/B b\npkg_c/C c\n")
        write_definition(share_dir, "pkg_b/B.msg", "pkg_d/D d\n")
        write_definition(share_dir, "pkg_c/C.msg", "pkg_d/D d\n")
        write_definition(share_dir, "pkg_d/D.msg", "float64 value\n")
        
        _, text = cache.get_full_text("pkg_a/Root")
        
        expected = (
            "pkg_b/B b\npkg_c/C c\n"
            + SEPARATOR + "MSG: pkg_b/B\n" + "pkg_d/D d\n"
            + SEPARATOR + "MSG: pkg_d/D\n" + "float64 value\n"
            + SEPARATOR + "MSG: pkg_c/C\n" + "pkg_d/D d\n"
        )
        assert text == expected
        assert text.count("MSG: pkg_d/D") == 1
    
    def test_cycle_terminates(self, share_dir, cache):
        """Test mutually dependent types are each emitted once."""
        write_definition(share_dir, "pkg/A.msg", "B b\n")
        write_definition(share_dir, "pkg/B.msg", "A a\n")
        
        _, text = cache.get_full_text("pkg/A")
        
        assert text == "B b\n" + SEPARATOR + "MSG: pkg/B\n" + "A a\n"
    
    def test_local_types_resolved_in_package(self, share_dir, cache):
        """Test bare type names resolve within the referencing package."""
        write_definition(share_dir, "nav/Path.msg", "Pose[] poses\n")
        write_definition(share_dir, "nav/Pose.msg", "float64 x\n")
        
        _, text = cache.get_full_text("nav/Path")
        
        assert SEPARATOR + "MSG: nav/Pose\n" in text
    
    def test_msg_root_never_prefixed(self, share_dir, cache):
        """Test MSG output starts with the root text itself."""
        write_definition(share_dir, "pkg/Root.msg", "pkg/Leaf leaf\n")
        write_definition(share_dir, "pkg/Leaf.msg", "int8 x\n")
        
        _, text = cache.get_full_text("pkg/Root")
        
        assert text.startswith("pkg/Leaf leaf\n")
        assert not text.startswith(SEPARATOR)
    
    def test_idl_every_entry_prefixed(self, share_dir, cache):
        """Test IDL output prefixes the root as well."""
        thing = '#include "pkg_b/msg/Dep.idl"\nmodule pkg_a { };\n'
        dep = "module pkg_b { };\n"
        write_definition(share_dir, "pkg_a/Thing.idl", thing)
        write_definition(share_dir, "pkg_b/Dep.idl", dep)
        
        definition_format, text = cache.get_full_text("pkg_a/msg/Thing")
        
        assert definition_format == DefinitionFormat.IDL
        assert text == (
            SEPARATOR + "IDL: pkg_a/msg/Thing\n" + thing
            + SEPARATOR + "IDL: pkg_b/msg/Dep\n" + dep
        )
    
    def test_load_message_spec_is_cached(self, share_dir, cache):
        """Test repeated loads return the same immutable spec."""
        write_definition(share_dir, "pkg/A.msg", "pkg/B b\n")
        identifier = DefinitionIdentifier(DefinitionFormat.MSG, "pkg/A")
        
        first = cache.load_message_spec(identifier)
        (share_dir / "pkg" / "msg" / "A.msg").write_text("changed\n")
        second = cache.load_message_spec(identifier)
        
        assert first is second
        assert second.text == "pkg/B b\n"
        assert second.dependencies == frozenset({"pkg/B"})
        assert len(cache) == 1
    
    def test_invalid_resource_name(self, cache):
        """Test malformed type names are rejected."""
        with pytest.raises(InvalidResourceNameError, match="Invalid package resource name"):
            cache.get_full_text("not a type")
        
        with pytest.raises(InvalidResourceNameError):
            cache.load_message_spec(
                DefinitionIdentifier(DefinitionFormat.MSG, "pkg/srv/Thing")
            )
    
    def test_missing_definition(self, share_dir, cache):
        """Test a missing dependency file raises DefinitionNotFoundError."""
        write_definition(share_dir, "pkg/Root.msg", "pkg/Missing m\n")
        
        with pytest.raises(DefinitionNotFoundError, match="pkg/Missing") as exc_info:
            cache.get_full_text("pkg/Root")
        
        assert exc_info.value.kind == ErrorKind.MISSING_DEFINITION
        assert not exc_info.value.is_fatal
    
    def test_missing_package(self, cache):
        """Test an unknown package is reported as a missing definition."""
        with pytest.raises(PackageNotFoundError):
            cache.get_full_text("nowhere_msgs/Thing")
