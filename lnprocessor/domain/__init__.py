"""Domain layer for Lightning payment verification.

Contains records, value objects, enums, and domain events.
"""
