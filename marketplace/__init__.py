"""
SeedBay marketplace core: order lifecycle, Stripe reconciliation, gated downloads.
"""
