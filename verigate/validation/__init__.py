"""
VeriGate Cross-Source Validator.

Components:
- schemas: User data, source results, verification records
- matching: Edit distance, fuzzy match, phone and account comparison
- prescreen: Field/denylist/velocity pre-screen with the attempt ledger
- engine: CrossSourceValidator (pre_screen, cross_validate_all, record cache)
"""
