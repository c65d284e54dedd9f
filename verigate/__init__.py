"""
VeriGate — Risk-Adaptive Verification Admission.

Architecture:
    verigate/
    ├── admission/       # Multi-dimensional rate limiting, blocks, suspicion patterns
    ├── validation/      # Pre-screen, fuzzy matching, cross-source validation
    ├── routing/         # Adaptive tiers, conflict detection, manual review queue
    ├── middleware/      # HTTP admission + error handling
    ├── api/             # FastAPI admin surface
    ├── pipeline.py      # Async orchestration over external verifiers
    └── scheduler.py     # Periodic pruning

Data Flow:
    Request → Admission Limiter → Adaptive Strategy → External Verifiers
    → Cross-Source Validator → Tier Router → (Manual Review Queue)

Version: 1.0.0
"""

__version__ = "1.0.0"
