"""dagctl - execution status core for DAG workflow controllers.

Tracks execution and vertex phases, folds batch job outcomes into them and
evaluates the match rules that gate conditional edges.
"""

__version__ = "0.1.0"
