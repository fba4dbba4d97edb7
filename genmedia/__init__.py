"""genmedia package initialization.

Ticket ledger, settlement and job submission backend for generative media
endpoints.
"""

__version__ = '0.4.0'
