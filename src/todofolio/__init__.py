"""
todofolio: FastAPI back end for the todo-list and portfolio demo apps.

The application factory lives in ``todofolio.main`` (``create_app``); a
ready-made instance is exposed there as ``app`` for ASGI servers.
"""

__version__ = "1.0.0"
