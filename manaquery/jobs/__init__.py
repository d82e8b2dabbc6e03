"""
ManaQuery scheduled jobs.

Each module exposes a ``run_*`` coroutine and a ``main()`` console entry point.
"""
