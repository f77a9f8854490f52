from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vinepallet.config import settings
from vinepallet.middleware.exceptions import register_exception_handlers
from vinepallet.middleware.security import SecurityHeadersMiddleware
from vinepallet.routers import cart, checkout, health, pallets, reservations, zones
from vinepallet.services.scheduler import lifespan

app = FastAPI(
    title="VinePallet",
    description="Shared wine pallet zones, capacity, and checkout validation",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
app.add_middleware(SecurityHeadersMiddleware)

# CORS (storefront + admin origins, cart cookie needs credentials)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
# Public / storefront
app.include_router(health.router)
app.include_router(checkout.router, prefix="/api/checkout", tags=["checkout"])
app.include_router(cart.router, prefix="/api/cart", tags=["cart"])
app.include_router(reservations.router, prefix="/api/reservations", tags=["reservations"])

# Admin (require role=admin in JWT; shipping-cost and for-producer are public)
app.include_router(pallets.router, prefix="/api/pallets", tags=["pallets"])
app.include_router(zones.router, prefix="/api/zones", tags=["zones"])
