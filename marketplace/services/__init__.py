"""
marketplace.services

Business logic for the order lifecycle and paid-access reconciliation.
Views stay thin; everything that touches orders, grants or the payment
processor lives here.
"""
