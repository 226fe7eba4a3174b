"""User Interface (UI) package for the DRO viewer.

PyQt5 widgets with pyqtgraph plots:
- `main_window`: selection controls wired to the core resolvers.
- `widgets`: map, RSS panel and best-model views.
"""
