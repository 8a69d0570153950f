"""
Chore allowance backend package.

Build an application with ``chore_api.main.create_app``; ``chore_api.main.app``
is the default instance configured from the environment (used by uvicorn).
"""

__version__ = "0.1.0"
