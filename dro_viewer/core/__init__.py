"""Core, renderer-independent logic of the DRO viewer.

- `dataset`: validated, immutable DRO fit results.
- `modeling`: model evaluators and the model registry.
- `selection`: the analyst's selection snapshot.
- `maps` and `curves`: pure resolvers producing the arrays each view draws.
- `io`, `phantom`, `reporting`: loading/saving, synthetic data, summaries.
"""
