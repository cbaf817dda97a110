"""
Research Gate Backend — Application Package Initializer
========================================================

What: Marks the `research_gate` directory as a Python package.
Why:  Enables module imports like `from research_gate.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by pytest and uvicorn.

Architecture Note:
    Every request travels the same path, whatever the outcome:

    ┌─────────────────────────────────────┐
    │   Middleware (CORS, ID, logging)    │  ← HTTP plumbing only
    ├─────────────────────────────────────┤
    │        Dispatcher (prefixes)        │  ← picks one Resource Router
    ├─────────────────────────────────────┤
    │   Resource Routers (auth, posts…)   │  ← return Ok(...) / Err(...)
    ├─────────────────────────────────────┤
    │   Response Pipeline (one response)  │  ← Success / Failure / NotFound
    ├─────────────────────────────────────┤
    │   Persistence Handle (MongoDB)      │  ← injected into every router
    └─────────────────────────────────────┘

    Routers never write to the client themselves. They hand a Result back to
    the pipeline, which renders exactly one JSON body per request.
"""

__version__ = "1.0.0"
