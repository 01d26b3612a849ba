"""
Worker side of the hypersearch
==============================

Model evaluation, best model election and the search worker loop.
"""
