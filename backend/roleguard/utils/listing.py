from __future__ import annotations
from typing import Iterable, Optional
from flask import request, make_response
import hashlib


def compute_etag(ids: Iterable[int], total: int, limit: int, offset: int, latest_ts: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def make_cached_list_response(rows: list, total: int, limit: int, offset: int):
    """List response with an ETag; 304 when the client's If-None-Match still matches."""
    latest = max((r.get('updated_at') or '' for r in rows), default='')
    etag = compute_etag([r.get('id') for r in rows], total, limit, offset, latest)
    inm = request.headers.get('If-None-Match')
    if inm and inm.strip('"') == etag:
        resp = make_response('', 304)
    else:
        resp = make_response(build_list_payload(rows, total, limit, offset))
    resp.headers['ETag'] = etag
    return resp


__all__ = ['compute_etag', 'build_list_payload', 'make_cached_list_response']
