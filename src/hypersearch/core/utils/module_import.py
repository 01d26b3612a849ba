"""
Utility functions for importing modules
=======================================

"""
import importlib
import pkgutil


def load_modules_in_path(path, filter_function=None):
    """
    Import all modules of package `path` and return a list of those
    fitting the filter function.
    """
    package = importlib.import_module(path)

    modules = [
        importlib.import_module(f"{path}.{name}")
        for _, name, is_package in pkgutil.iter_modules(package.__path__)
        if not is_package
    ]

    if filter_function is not None:
        modules = [module for module in modules if filter_function(module)]

    return modules
