from stableupi.routes.scans import router as scans_router
from stableupi.routes.conversion import router as conversion_router
from stableupi.routes.transactions import router as transactions_router
from stableupi.routes.payouts import router as payouts_router
from stableupi.routes.webhooks import router as webhooks_router
from stableupi.routes.beneficiaries import router as beneficiaries_router
from stableupi.routes.admin import router as admin_router

__all__ = [
    "scans_router", "conversion_router", "transactions_router", "payouts_router",
    "webhooks_router", "beneficiaries_router", "admin_router",
]
