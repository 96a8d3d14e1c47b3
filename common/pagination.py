from rest_framework.pagination import PageNumberPagination


class LedgerPagination(PageNumberPagination):
    """Page-number pagination for document registers.

    `?page_size=` is honoured up to 500 rows so a month of invoices fits one page.
    """

    page_size_query_param = "page_size"
    max_page_size = 500
