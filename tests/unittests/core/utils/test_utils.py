#!/usr/bin/env python
"""Collection of tests for :mod:`hypersearch.core.utils`."""
import pytest

from hypersearch.core.utils import GenericFactory, compute_identity
from hypersearch.core.utils.flatten import flatten


class Base:
    pass


class A(Base):
    pass


class B(Base):
    pass


class C(A):
    pass


def test_factory_finds_children():
    """Children at any level are found by lower case name"""
    factory = GenericFactory(Base)

    assert factory.get_classes() == {"a": A, "b": B, "c": C}
    assert isinstance(factory.create("C"), C)


def test_factory_unknown_type():
    """Unknown types list the available ones"""
    factory = GenericFactory(Base)

    with pytest.raises(NotImplementedError) as exc:
        factory.create("d")

    assert "['a', 'b', 'c']" in str(exc.value)


def test_factory_passes_arguments():
    """Arguments are passed to the constructor"""

    class Parent:
        pass

    class WithArgs(Parent):
        def __init__(self, value, other=None):
            self.value = value
            self.other = other

    created = GenericFactory(Parent).create("withargs", 1, other=2)
    assert (created.value, created.other) == (1, 2)


class TestComputeIdentity:
    """Test hashing candidate params"""

    def test_order_independent(self):
        """Key order does not change the hash"""
        assert compute_identity(a=1, b=2) == compute_identity(b=2, a=1)

    def test_nested_order_independent(self):
        """Key order of nested dicts does not change the hash"""
        assert compute_identity(model={"a": 1, "b": 2}) == compute_identity(
            model={"b": 2, "a": 1}
        )

    def test_values_matter(self):
        """Different values give different hashes"""
        assert compute_identity(a=1) != compute_identity(a=2)

    def test_size(self):
        """Hash is truncated to `size`"""
        assert len(compute_identity(size=8, a=1)) == 8
        assert len(compute_identity(a=1)) == 16


def test_flatten():
    """Nested keys are joined with dots, empty dicts are kept"""
    assert flatten({"a": {"b": 1, "c": {"d": 2}}, "e": {}, "f": [1]}) == {
        "a.b": 1,
        "a.c.d": 2,
        "e": {},
        "f": [1],
    }
