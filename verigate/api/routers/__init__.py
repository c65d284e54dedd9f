"""VeriGate API routers."""
