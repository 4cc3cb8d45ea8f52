import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from venue_inventory.config import settings
from venue_inventory.error_handlers import install_error_handlers
from venue_inventory.routers import alerts, auth, pricing, product_inventory, purchase_orders, raw_materials, recipes
from venue_inventory.security.headers import install_security_headers

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='Venue Inventory')

install_security_headers(app)
install_error_handlers(app)

app.include_router(auth.router)
app.include_router(raw_materials.router)
app.include_router(recipes.router)
app.include_router(pricing.router)
app.include_router(product_inventory.router)
app.include_router(purchase_orders.router)
app.include_router(alerts.router)


@app.get('/health')
def health() -> dict[str, str]:
    return {'status': 'ok'}


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
