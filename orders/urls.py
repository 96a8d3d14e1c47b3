from rest_framework.routers import DefaultRouter

from orders.views import (
    DivisionViewSet,
    InwardGatePassViewSet,
    OutwardGatePassViewSet,
    PartyViewSet,
    PurchaseOrderViewSet,
)

router = DefaultRouter()
router.register(r"divisions", DivisionViewSet, basename="division")
router.register(r"parties", PartyViewSet, basename="party")
router.register(r"purchase-orders", PurchaseOrderViewSet, basename="purchase-order")
router.register(r"gate-passes/inward", InwardGatePassViewSet, basename="inward-gate-pass")
router.register(r"gate-passes/outward", OutwardGatePassViewSet, basename="outward-gate-pass")

urlpatterns = router.urls
