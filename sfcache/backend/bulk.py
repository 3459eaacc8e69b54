"""
Bulk create and delete split to chunks of SALESFORCE_BULK_OPERATION_SIZE

Every chunk is one SObject Collections request with its own allOrNone
transaction. A failed all-or-none chunk does not roll back previous chunks.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from sfcache import conf
from sfcache.backend.logs import log_salesforce_error
from sfcache.backend.utils import chunked
from sfcache.dbapi.exceptions import BulkLimitError, Error

log = logging.getLogger(__name__)

ChunkCallback = Callable[[List[Dict[str, Any]]], None]


class BulkResult(list):
    """Per-record results of succeeded records. Failed records are in `errors`."""

    def __init__(self, *args) -> None:
        super(BulkResult, self).__init__(*args)
        self.errors = []  # type: List[Dict[str, Any]]
        self.chunks = 0
        self.failed_chunks = 0


def is_success(result: Any) -> bool:
    return not isinstance(result, dict) or result.get('success', True) is not False


class BulkMutator:
    """Chunked bulk operations over an adapter (bulk_create, bulk_delete)"""

    def __init__(self, adapter, chunk_size: Optional[int] = None,
                 throw_exceptions: Optional[bool] = None) -> None:
        self.adapter = adapter
        self.chunk_size = chunk_size or conf.bulk_operation_size()
        self.throw_exceptions = conf.throw_exceptions() if throw_exceptions is None else throw_exceptions

    def bulk_insert(self, entity: str, records: Sequence[Dict[str, Any]], all_or_none: bool = False,
                    on_chunk: Optional[ChunkCallback] = None) -> BulkResult:
        """Create records, the result contains results of created records

        on_chunk: called with results of every chunk that created some records
        """
        out = BulkResult()
        for chunk in chunked(records, self.chunk_size):
            response = self._dispatch('create', entity, self.adapter.bulk_create, chunk, all_or_none, out)
            if response is None:
                continue
            if response.get('results') is None:
                # no per-record detail, the whole chunk has succeeded
                succeeded = [{'success': True} for _ in chunk]
            else:
                succeeded = [x for x in response['results'] if is_success(x)]
                out.errors.extend(x for x in response['results'] if not is_success(x))
            out.extend(succeeded)
            if on_chunk and succeeded:
                on_chunk(succeeded)
        return out

    def bulk_delete(self, entity: str, record_ids: Sequence[str], all_or_none: bool = False,
                    on_chunk: Optional[ChunkCallback] = None) -> BulkResult:
        """Delete records, the length of the result is the number of deleted records"""
        out = BulkResult()
        for chunk in chunked(record_ids, self.chunk_size):
            response = self._dispatch('delete', entity, self.adapter.bulk_delete, chunk, all_or_none, out)
            if response is None:
                continue
            if response.get('results') is None:
                succeeded = [{'id': x, 'success': True} for x in chunk]
            else:
                results = [dict(result, id=result.get('id') or record_id)
                           for record_id, result in zip(chunk, response['results'])]
                succeeded = [x for x in results if is_success(x)]
                out.errors.extend(x for x in results if not is_success(x))
            out.extend(succeeded)
            if on_chunk and succeeded:
                on_chunk(succeeded)
        return out

    def _dispatch(self, operation, entity, method, chunk, all_or_none, out):
        """Send one chunk. Return the response or None if it failed and should be skipped."""
        out.chunks += 1
        try:
            return method(entity, chunk, all_or_none)
        except BulkLimitError:
            raise
        except Error as exc:
            if all_or_none or self.throw_exceptions:
                raise
            out.failed_chunks += 1
            log_salesforce_error("Bulk %s chunk failed" % operation, {
                'operation': 'bulk_%s' % operation,
                'object': entity,
                'chunk_size': len(chunk),
                'exception': type(exc).__name__,
                'message': str(exc),
            })
            return None
