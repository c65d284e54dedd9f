"""
VeriGate server entry point.

Run: uvicorn verigate.main:app --host 0.0.0.0 --port 8002
"""

from verigate.api.app import create_app

app = create_app()
