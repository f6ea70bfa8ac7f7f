"""Book Tracker - core package

- Entities and library state (book.py, models.py)
- Reducer and actions (reducer.py, actions.py) with saga, history and points helpers
- In-memory store (store.py) and legacy migration (migration.py)
- Snapshot API (api.py) over SQLite (database.py)
- CLI (main.py)
"""
