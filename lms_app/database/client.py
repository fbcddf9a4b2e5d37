import logging
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from postgrest.exceptions import APIError

from lms_app.config import SUPABASE_URL, SUPABASE_ANON_KEY
from lms_app.utils.errors import DataError

logger = logging.getLogger(__name__)


class Op(NamedTuple):
    """Non-equality filter, e.g. Op('gte', '2025-01-01') or Op('not_is', 'null')"""
    name: str
    value: Any


SUPPORTED_OPS = ('eq', 'neq', 'gt', 'gte', 'lt', 'lte', 'is', 'not_is', 'in', 'ilike')

Filters = Optional[Dict[str, Any]]
Order = Optional[Union[str, Tuple[str, bool], Sequence[Tuple[str, bool]]]]


def not_null() -> Op:
    return Op('not_is', 'null')


def create_supabase_client(url: str = None, key: str = None):
    """Create the shared Supabase client from config"""
    from supabase import create_client

    url = (url or SUPABASE_URL).strip()
    key = (key or SUPABASE_ANON_KEY).strip()
    if not url or not key:
        raise DataError("SUPABASE_URL and SUPABASE_ANON_KEY must be set in the environment")
    return create_client(url, key)


class DataClient:
    """Generic row access to the remote collections.

    Every call returns plain row dicts and raises DataError on failure, so
    screens and the attempt engine never see client-library exceptions.
    """

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = create_supabase_client()
        return self._client

    @property
    def auth(self):
        return self.client.auth

    # ---- query building ------------------------------------------------------

    @staticmethod
    def _apply_filters(query, filters: Filters):
        for column, value in (filters or {}).items():
            if isinstance(value, Op):
                if value.name not in SUPPORTED_OPS:
                    raise DataError(f"Unsupported filter operator: {value.name}")
                if value.name == 'not_is':
                    query = query.not_.is_(column, value.value)
                elif value.name == 'is':
                    query = query.is_(column, value.value)
                elif value.name == 'in':
                    query = query.in_(column, list(value.value))
                else:
                    query = getattr(query, value.name)(column, value.value)
            elif isinstance(value, (list, set, frozenset)):
                query = query.in_(column, list(value))
            elif value is None:
                query = query.is_(column, 'null')
            else:
                query = query.eq(column, value)
        return query

    @staticmethod
    def _normalize_order(order: Order) -> List[Tuple[str, bool]]:
        """Return [(column, descending), ...]"""
        if not order:
            return []
        if isinstance(order, str):
            if order.startswith('-'):
                return [(order[1:], True)]
            return [(order, False)]
        if isinstance(order, tuple) and len(order) == 2 and isinstance(order[1], bool):
            return [order]
        return [tuple(item) for item in order]

    def _execute(self, action: str, collection: str, query):
        try:
            return query.execute()
        except APIError as e:
            logger.warning("%s on %s failed: %s (%s)", action, collection, e.message, e.code)
            raise DataError(e.message or f"{action} on {collection} failed", code=e.code, cause=e) from e
        except DataError:
            raise
        except Exception as e:
            logger.warning("%s on %s failed: %s", action, collection, e)
            raise DataError(f"{action} on {collection} failed: {e}", cause=e) from e

    # ---- operations ----------------------------------------------------------

    def select(self, collection: str, filters: Filters = None, order: Order = None,
               columns: str = '*', limit: Optional[int] = None) -> List[Dict[str, Any]]:
        query = self.client.table(collection).select(columns)
        query = self._apply_filters(query, filters)
        for column, descending in self._normalize_order(order):
            query = query.order(column, desc=descending)
        if limit:
            query = query.limit(limit)
        response = self._execute('select', collection, query)
        return list(response.data or [])

    def select_one(self, collection: str, filters: Filters = None, order: Order = None,
                   columns: str = '*') -> Optional[Dict[str, Any]]:
        rows = self.select(collection, filters, order=order, columns=columns, limit=1)
        return rows[0] if rows else None

    def count(self, collection: str, filters: Filters = None, columns: str = 'id') -> int:
        """Row count; `columns` may embed a related table to filter on it"""
        query = self.client.table(collection).select(columns, count='exact', head=True)
        query = self._apply_filters(query, filters)
        response = self._execute('count', collection, query)
        return int(response.count or 0)

    def insert(self, collection: str, row: Union[Dict[str, Any], List[Dict[str, Any]]]):
        """Insert one row (returns the stored row) or a list (returns stored rows)"""
        query = self.client.table(collection).insert(row)
        response = self._execute('insert', collection, query)
        data = list(response.data or [])
        if isinstance(row, dict):
            if not data:
                raise DataError(f"insert on {collection} returned no row")
            return data[0]
        return data

    def update(self, collection: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> None:
        if not filters:
            # An unfiltered update would rewrite the whole collection
            raise DataError(f"update on {collection} requires a filter")
        query = self.client.table(collection).update(patch)
        query = self._apply_filters(query, filters)
        self._execute('update', collection, query)

    def upsert(self, collection: str, row: Dict[str, Any], on_conflict: str) -> None:
        query = self.client.table(collection).upsert(row, on_conflict=on_conflict)
        self._execute('upsert', collection, query)

    def delete(self, collection: str, filters: Dict[str, Any]) -> None:
        if not filters:
            raise DataError(f"delete on {collection} requires a filter")
        query = self.client.table(collection).delete()
        query = self._apply_filters(query, filters)
        self._execute('delete', collection, query)

    def rpc(self, procedure: str, params: Optional[Dict[str, Any]] = None):
        query = self.client.rpc(procedure, params or {})
        response = self._execute('rpc', procedure, query)
        return response.data


_shared_client = None

def get_data_client() -> DataClient:
    """Get or create the process-wide data client"""
    global _shared_client
    if _shared_client is None:
        _shared_client = DataClient()
    return _shared_client
