"""
ScanTrack — Production Scan Reconciliation
Blueprint registry.
"""

from flask import request


def paging_args(default_limit=50, max_limit=100):
    """Read limit/offset pagination parameters from the query string.

    Query params:
        limit  — max items (default ``default_limit``, capped at ``max_limit``)
        offset — starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 0), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset
