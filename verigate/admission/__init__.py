"""
VeriGate Admission Limiter.

Components:
- schemas: Request/result models, scope keys, block entries
- limits: Default limit table and endpoint classification
- store: Scoped counter store interface + in-memory implementation
- suspicion: Per-device suspicious pattern detection
- limiter: AdmissionLimiter (check, block/unblock, prune)
"""
