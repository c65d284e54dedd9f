"""
VeriGate HTTP API.

- app: create_app() factory (components on app.state, maintenance lifespan)
- deps: FastAPI dependencies resolving components
- routers: admin blocks, verification status, manual reviews
"""
