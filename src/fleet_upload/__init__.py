"""Bulk job-upload client for the fleet operations backend.

Parses an Excel workbook through the backend, sorts the returned rows into
valid / error / in-file duplicate / database duplicate buckets, lets an
operator patch rows, and submits each bucket through its own confirm flow.
"""

__version__ = "0.4.0"
