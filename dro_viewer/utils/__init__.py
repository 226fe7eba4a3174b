"""Utilities package for the DRO viewer.

Helper modules that support the core resolvers and the UI but carry no
pharmacokinetic logic of their own:
- Coordinate and shape validation (`validators`).
"""
