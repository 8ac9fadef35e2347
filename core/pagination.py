"""
Page/limit pagination used by product, order and user listings.
"""
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class StorefrontPagination(PageNumberPagination):
    """
    ?page=2&limit=12  ->  {"results": [...], "pagination": {...}}
    """
    page_size = 12
    page_query_param = 'page'
    page_size_query_param = 'limit'
    max_page_size = 100

    def get_paginated_response(self, data):
        page = self.page
        return Response({
            'results': data,
            'pagination': {
                'total': page.paginator.count,
                'page': page.number,
                'limit': page.paginator.per_page,
                'total_pages': page.paginator.num_pages,
                'has_next_page': page.has_next(),
                'has_prev_page': page.has_previous(),
            },
        })
