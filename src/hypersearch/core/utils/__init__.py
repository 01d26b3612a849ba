"""
Package-wide useful routines
============================

"""
from __future__ import annotations

import hashlib
import logging
from importlib.metadata import entry_points
from typing import Generic, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")  # pylint: disable=invalid-name


def get_all_subclasses(parent):
    """Get set of subclasses recursively"""
    subclasses = set()
    for subclass in parent.__subclasses__():
        subclasses.add(subclass)
        subclasses |= get_all_subclasses(subclass)

    return subclasses


def get_all_types(parent_cls, cls_name):
    """Get all subclasses and lowercase subclass names"""
    types = [
        class_
        for class_ in get_all_subclasses(parent_cls)
        if class_.__name__ != cls_name
    ]

    return {class_.__name__.lower(): class_ for class_ in types}


def _import_entry_points(group):
    """Import the implementations advertised in the entry points of a group"""
    for entry_point in entry_points(group=group):
        entry_point.load()
        log.debug(
            "Found a %s %s from distribution: %s",
            entry_point.name,
            group,
            entry_point.dist.name if entry_point.dist is not None else "unknown",
        )


class GenericFactory(Generic[T]):
    """Factory to create instances of classes inheriting a given ``base`` class.

    Children are looked up by class name, case insensitive, at any level of inheritance.
    Implementations living outside of the imported modules are found if they are
    registered in the ``entry_points`` of their distribution under the name of the
    base class.

    Parameters
    ----------
    base: class
       Base class of all children that the factory can instantiate.

    """

    def __init__(self, base: type[T]):
        self.base = base

    def create(self, of_type: str, *args, **kwargs) -> T:
        """Create an object, instance of a child of ``self.base`` named ``of_type``"""
        constructor = self.get_class(of_type)
        return constructor(*args, **kwargs)

    def get_class(self, of_type: str) -> type[T]:
        """Get the class object (not instantiated)"""
        of_type = of_type.lower()
        constructors = self.get_classes()

        if of_type not in constructors:
            raise NotImplementedError(
                f"Could not find implementation of {self.base.__name__}, type = '{of_type}'\n"
                "Currently, there is an implementation for types:\n"
                f"{sorted(constructors.keys())}"
            )

        return constructors[of_type]

    def get_classes(self) -> dict[str, type[T]]:
        """Get children classes of ``self.base``"""
        _import_entry_points(self.base.__name__)
        return get_all_types(self.base, self.base.__name__)


def compute_identity(size: int = 16, **sample) -> str:
    """Compute a unique hash out of a dictionary

    Parameters
    ----------
    size: int
        size of the unique hash

    **sample:
        Dictionary to compute the hash from. Nested dictionaries are hashed
        recursively so that key order never changes the identity.

    """
    sample_hash = hashlib.sha256()

    for k, v in sorted(sample.items()):
        sample_hash.update(k.encode("utf8"))

        if isinstance(v, dict):
            sample_hash.update(compute_identity(size, **v).encode("utf8"))
        else:
            sample_hash.update(str(v).encode("utf8"))

    return sample_hash.hexdigest()[:size]
