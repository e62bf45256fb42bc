"""
Filter, sort and page helpers shared by the list endpoints.

Each list screen fetches a whole collection, narrows it with a
case-insensitive substring search, optionally sorts by one column and
shows a window of the result.
"""
from rest_framework.response import Response


def _field_value(item, field):
    if isinstance(item, dict):
        return item.get(field)
    return getattr(item, field, None)


def filter_items(items, query, fields):
    """Keep items where any of `fields` contains `query`, ignoring case"""
    if not query:
        return list(items)

    needle = str(query).lower()
    result = []
    for item in items:
        for field in fields:
            value = _field_value(item, field)
            if value is not None and needle in str(value).lower():
                result.append(item)
                break
    return result


def sort_items(items, key, descending=False):
    """
    Stable sort by a single field.

    None values go last when ascending (first when descending). Strings
    compare case-insensitively.
    """
    def sort_key(item):
        value = _field_value(item, key)
        if value is None:
            return (1, '')
        if isinstance(value, str):
            value = value.lower()
        return (0, value)

    return sorted(items, key=sort_key, reverse=descending)


def page_window(items, offset=0, limit=None):
    """
    Offset/limit window over a list.

    Returns:
        dict: {'items': list, 'total': int, 'offset': int, 'limit': int|None,
               'has_more': bool}
    """
    items = list(items)
    total = len(items)
    offset = max(0, int(offset or 0))

    if limit is None:
        window = items[offset:]
    else:
        limit = max(0, int(limit))
        window = items[offset:offset + limit]

    return {
        'items': window,
        'total': total,
        'offset': offset,
        'limit': limit,
        'has_more': offset + len(window) < total,
    }


class ListQueryMixin:
    """
    Apply `search`, `sort`, `order`, `offset` and `limit` query params to a
    viewset's list action.

    Viewsets declare `search_fields` and `sort_fields`; sorting on any other
    field is ignored.
    """

    search_fields = ()
    sort_fields = ()
    default_limit = None

    def list_window(self, items):
        params = self.request.query_params

        items = filter_items(items, params.get('search', ''), self.search_fields)

        sort = params.get('sort')
        if sort and sort in self.sort_fields:
            descending = params.get('order', 'asc').lower() == 'desc'
            items = sort_items(items, sort, descending=descending)

        offset = _int_param(params.get('offset'), 0)
        limit = _int_param(params.get('limit'), self.default_limit)
        return page_window(items, offset, limit)

    def list(self, request, *args, **kwargs):
        window = self.list_window(self.filter_queryset(self.get_queryset()))
        serializer = self.get_serializer(window['items'], many=True)
        return self.windowed_response(window, serializer.data)

    def windowed_response(self, window, data):
        return Response({
            'count': window['total'],
            'offset': window['offset'],
            'limit': window['limit'],
            'has_more': window['has_more'],
            'results': data,
        })


def _int_param(value, default):
    if value in (None, ''):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
