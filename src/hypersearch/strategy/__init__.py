"""
Search strategies
=================

Strategies decide which candidate models the workers of a job evaluate.

"""
