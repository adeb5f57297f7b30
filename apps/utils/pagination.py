from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class StandardResultsSetPagination(PageNumberPagination):
    """
    ?page=2&limit=10 style pagination.
    Response shape: {"success": true, "<results_key>": [...], "pagination": {...}}
    """
    page_size = 10
    page_size_query_param = "limit"
    max_page_size = 50
    results_key = "results"

    def get_paginated_response(self, data):
        return Response({
            "success": True,
            self.results_key: data,
            "pagination": {
                "current": self.page.number,
                "total": self.page.paginator.num_pages,
                "count": len(data),
                "total_items": self.page.paginator.count,
            },
        })


class OrderResultsSetPagination(StandardResultsSetPagination):
    results_key = "orders"
