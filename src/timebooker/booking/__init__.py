"""Resilient booking engine.

Leaf-first: ``categories`` and ``schedule`` decide what to book,
``overlay`` opens the category overlay, ``selector`` picks a leaf,
``apply`` commits it, ``resilience`` bounds retries and wall-clock time,
``orchestrator`` runs one item and ``batch`` runs them all.  ``runner``
wires the engine to a browser session and the portal.
"""
