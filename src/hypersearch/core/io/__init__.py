"""
Input/output of hypersearch
===========================

Configuration, databases, record streams, prediction outputs and checkpoints.
"""
