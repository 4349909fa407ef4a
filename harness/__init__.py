"""Data-integration test harness.

Provisions synthetic tables in MySQL, GBase, KingBase or Vastbase,
registers them with an asset catalog and checks row counts.
"""

__version__ = "1.0.0"
