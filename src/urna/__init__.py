"""Motor de voto único y conciliación de conteo en tiempo real.

English:
    One-ballot-per-voter invariant and real-time tally reconciliation engine.
"""

__version__ = "0.1.0"
