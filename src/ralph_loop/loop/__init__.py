"""Iteration loop driving an external CLI coding agent against a PRD ledger.

Each iteration re-reads ``prd.json``, runs the agent once with the ledger,
progress log and prompt paths, and scans its output for the completion
sentinel. The agent owns every write to the ledger; the loop only reads it.
"""
