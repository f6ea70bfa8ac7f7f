"""Book Tracker - services package

- Pooled HTTP client
- Remote snapshot stores (HTTP and in-memory)
- Legacy local JSON storage
- Debounced sync engine
"""
