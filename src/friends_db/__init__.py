"""
Friends DB - Embedded Versioned Record Store

A small embedded persistence layer built around an asynchronous
request/transaction lifecycle: a database is opened and schematized once,
and every operation runs in its own scoped transaction.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
