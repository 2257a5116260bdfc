"""
Custom pagination that allows client to override page_size via query param.
Used by the payment grid, which loads a whole month of residents at once.
"""
from rest_framework.pagination import PageNumberPagination


class FlexiblePageNumberPagination(PageNumberPagination):
    """PageNumberPagination that accepts per_page from query params."""
    page_size = 25
    page_size_query_param = 'per_page'
    max_page_size = 10000
