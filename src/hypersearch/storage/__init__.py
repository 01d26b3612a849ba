"""
Job store
=========

Shared record store of jobs and models, see :mod:`hypersearch.storage.base`.
"""
