from django.urls import path
from rest_framework.routers import DefaultRouter

from billing.reports import (
    OutstandingReceivablesReportView,
    PartyStatementView,
    PayablesAgingReportView,
    ReceivablesAgingReportView,
)
from billing.views import CreditNoteViewSet, InvoiceViewSet, PaymentViewSet, PurchaseInvoiceViewSet

router = DefaultRouter()
router.register(r"invoices", InvoiceViewSet, basename="invoice")
router.register(r"payments", PaymentViewSet, basename="payment")
router.register(r"credit-notes", CreditNoteViewSet, basename="credit-note")
router.register(r"purchase-invoices", PurchaseInvoiceViewSet, basename="purchase-invoice")

urlpatterns = router.urls + [
    path("parties/<uuid:party_id>/statement/", PartyStatementView.as_view(), name="party-statement"),
    path("reports/receivables-aging/", ReceivablesAgingReportView.as_view(), name="report-receivables-aging"),
    path("reports/payables-aging/", PayablesAgingReportView.as_view(), name="report-payables-aging"),
    path("reports/outstanding-receivables/", OutstandingReceivablesReportView.as_view(), name="report-outstanding-receivables"),
]
