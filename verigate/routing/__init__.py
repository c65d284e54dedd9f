"""
VeriGate Tier Router.

Components:
- schemas: Tiers, conflicts, routing decisions, review entries
- strategy: Ordered threshold rules (first match wins)
- review_queue: FIFO manual review queue
- router: TierRouter (adaptive strategy, final routing, rejections)
"""
