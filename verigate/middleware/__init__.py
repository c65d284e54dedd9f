"""
VeriGate HTTP Middleware.

- error_handler: Structured error responses (outermost)
- admission: AdmissionLimiter gate, 429 + Retry-After, security headers
"""
