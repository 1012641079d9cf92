# PATH: strategy/jobs/__init__.py
"""
Strategy jobs package.

Available entry points:
    python -m strategy.jobs.encode          # Trade graph JSON -> program hex

NOTE: This __init__.py intentionally does NOT import encode to avoid
side effects (logging setup, .env loading) when importing the package.
"""

__all__: list[str] = []
