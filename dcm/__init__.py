"""Declarative Container Manager (DCM).

Keeps each declared container converging toward its definition:
 - one supervisor thread per container
 - periodic and on-demand reconcile passes
 - create / start / replace / remove driven by a version label
 - a small HTTP API and CLI to trigger reloads and read events

Each container is supervised independently; a failing engine call only
delays that container's convergence.
"""
