"""Room domain services: game modes, ledger, scoring and the room controller.

Imported by the HTTP blueprints; kept free of request handling so the
core rules can be exercised directly inside an app context.
"""
