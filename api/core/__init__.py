"""
Shared, cross-cutting code for the data-access layer.

`core/` should contain small building blocks that multiple features use
(DB wiring, errors, logging). Keep feature-specific SQL and query logic
in the corresponding feature package (e.g. `releases/`).
"""
