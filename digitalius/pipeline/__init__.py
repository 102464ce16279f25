"""
Pipeline modules for the classify → fetch → synthesize architecture.

Stage 1: Query Understanding  (intent.py)
Stage 2: Retrieval            (query_compiler.py, dispatcher.py, latest.py, normalizer.py)
Stage 3: Answer Synthesis     (synthesis.py)

Orchestrated by: orchestrator.py
"""
